"""Tests for the Ask AI chat endpoints."""

import json

from fakes import text_chunks, web_chunk

from vocalyn.models import ChatSession, UserMessage

GROUNDED_REPLY = 'The sky is blue.\n%%SOURCES_JSON%%\n[{"noteId":"n1","snippet":"sky note"}]'


def sse_events(response):
    """Decode the ``data:`` lines of a Server-Sent Events body."""
    return [
        json.loads(line[len("data: ") :])
        for line in response.text.splitlines()
        if line.startswith("data: ")
    ]


def create_session(api_client, auth_headers, note_ids=("n1", "n2")):
    response = api_client.post(
        "/chat/sessions", json={"noteIds": list(note_ids)}, headers=auth_headers
    )
    assert response.status_code == 201
    return response.json()


class TestChatSessions:
    """Session lifecycle endpoints."""

    def test_create_session_is_not_persisted(self, api_client, auth_headers, session_store):
        data = create_session(api_client, auth_headers, ["n1", "n1", "n2"])

        assert data["title"] == "New Chat"
        assert data["noteIds"] == ["n1", "n2"]
        assert data["messages"] == []
        assert session_store.upserts == []

        response = api_client.get(f"/chat/sessions/{data['id']}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["id"] == data["id"]

    def test_create_session_requires_notes(self, api_client, auth_headers):
        response = api_client.post("/chat/sessions", json={"noteIds": []}, headers=auth_headers)
        assert response.status_code == 422

    def test_requires_auth(self, api_client):
        response = api_client.post("/chat/sessions", json={"noteIds": ["n1"]})
        assert response.status_code in (401, 403)

    def test_invalid_token(self, api_client):
        response = api_client.get(
            "/chat/sessions", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    def test_list_sessions_from_store(self, api_client, auth_headers, session_store):
        stored = ChatSession(title="Old chat", note_ids=["n1"], messages=[UserMessage(text="hi")])
        session_store.sessions[stored.id] = stored

        response = api_client.get("/chat/sessions", headers=auth_headers)

        assert response.status_code == 200
        assert [s["title"] for s in response.json()] == ["Old chat"]

    def test_unknown_session(self, api_client, auth_headers):
        response = api_client.get("/chat/sessions/missing", headers=auth_headers)
        assert response.status_code == 404

    def test_delete_session(self, api_client, auth_headers):
        data = create_session(api_client, auth_headers)

        response = api_client.delete(f"/chat/sessions/{data['id']}", headers=auth_headers)
        assert response.status_code == 204

        response = api_client.get(f"/chat/sessions/{data['id']}", headers=auth_headers)
        assert response.status_code == 404

    def test_delete_unknown_session(self, api_client, auth_headers):
        response = api_client.delete("/chat/sessions/missing", headers=auth_headers)
        assert response.status_code == 404


class TestAsk:
    """Streaming question endpoint."""

    def test_grounded_answer_stream(self, api_client, auth_headers, fake_backend, session_store):
        fake_backend.chunks = text_chunks(GROUNDED_REPLY)
        data = create_session(api_client, auth_headers)

        response = api_client.post(
            f"/chat/sessions/{data['id']}/ask",
            json={"question": "What color is the sky?"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = sse_events(response)
        assert [e["type"] for e in events] == ["delta", "sources", "done"]
        assert events[0]["text"] == "The sky is blue.\n"
        assert events[1]["citations"] == [{"noteId": "n1", "snippet": "sky note"}]

        session = events[-1]["session"]
        assert session["title"] == "What color is the sky?"
        assert [m["role"] for m in session["messages"]] == ["user", "assistant"]
        assert session["messages"][1]["noteCitations"][0]["noteId"] == "n1"
        assert len(session_store.upserts) == 1

    def test_search_answer_stream(self, api_client, auth_headers, fake_backend):
        fake_backend.chunks = [*text_chunks("Sunny ", "today."), web_chunk(("https://a.com", ""))]
        data = create_session(api_client, auth_headers)

        response = api_client.post(
            f"/chat/sessions/{data['id']}/ask",
            json={"question": "Weather?", "useExternalSearch": True},
            headers=auth_headers,
        )

        events = sse_events(response)
        assert [e["type"] for e in events] == ["delta", "delta", "web_sources", "done"]
        assert events[2]["citations"] == [{"uri": "https://a.com", "title": "https://a.com"}]
        assert fake_backend.search_flags == [True]

    def test_backend_failure_emits_error(
        self, api_client, auth_headers, fake_backend, session_store
    ):
        fake_backend.error = ConnectionError("reset")
        data = create_session(api_client, auth_headers)

        response = api_client.post(
            f"/chat/sessions/{data['id']}/ask", json={"question": "Q?"}, headers=auth_headers
        )

        events = sse_events(response)
        assert events[-1] == {"type": "error", "error": "AI service unavailable"}
        assert "done" not in [e["type"] for e in events]
        assert session_store.upserts == []

        # The question stays visible, the placeholder does not
        session = api_client.get(f"/chat/sessions/{data['id']}", headers=auth_headers).json()
        assert session["messages"] == [{"role": "user", "text": "Q?"}]

    def test_follow_up_keeps_title(self, api_client, auth_headers, session_store):
        data = create_session(api_client, auth_headers)
        url = f"/chat/sessions/{data['id']}/ask"

        api_client.post(url, json={"question": "First"}, headers=auth_headers)
        response = api_client.post(url, json={"question": "Second"}, headers=auth_headers)

        session = sse_events(response)[-1]["session"]
        assert session["title"] == "First"
        assert len(session["messages"]) == 4
        assert len(session_store.upserts) == 2

    def test_ask_persisted_session(self, api_client, auth_headers, session_store):
        stored = ChatSession(title="Old chat", note_ids=["n1"])
        session_store.sessions[stored.id] = stored

        response = api_client.post(
            f"/chat/sessions/{stored.id}/ask", json={"question": "Again?"}, headers=auth_headers
        )

        assert sse_events(response)[-1]["type"] == "done"
        assert session_store.upserts[0].id == stored.id

    def test_blank_question(self, api_client, auth_headers):
        data = create_session(api_client, auth_headers)
        url = f"/chat/sessions/{data['id']}/ask"

        empty = api_client.post(url, json={"question": ""}, headers=auth_headers)
        blank = api_client.post(url, json={"question": "  "}, headers=auth_headers)

        assert empty.status_code == 422
        assert blank.status_code == 400

    def test_unknown_session(self, api_client, auth_headers):
        response = api_client.post(
            "/chat/sessions/missing/ask", json={"question": "Q?"}, headers=auth_headers
        )
        assert response.status_code == 404


class TestLiveSessions:
    """Sessions kept in memory between requests."""

    def test_saved_session_leaves_memory(self, api_client, auth_headers, session_store):
        registry = api_client.app.state.session_registry
        data = create_session(api_client, auth_headers)
        assert len(registry) == 1

        api_client.post(
            f"/chat/sessions/{data['id']}/ask", json={"question": "Q?"}, headers=auth_headers
        )

        assert len(registry) == 0
        response = api_client.get(f"/chat/sessions/{data['id']}", headers=auth_headers)
        assert response.status_code == 200
        assert len(response.json()["messages"]) == 2

    def test_unsaved_sessions_are_capped(self, api_client, auth_headers):
        registry = api_client.app.state.session_registry
        registry.max_sessions = 5

        ids = [create_session(api_client, auth_headers)["id"] for _ in range(8)]

        assert len(registry) == 5
        oldest = api_client.get(f"/chat/sessions/{ids[0]}", headers=auth_headers)
        newest = api_client.get(f"/chat/sessions/{ids[-1]}", headers=auth_headers)
        assert oldest.status_code == 404
        assert newest.status_code == 200

    def test_busy_session_rejects_second_question(self, api_client, auth_headers, session_store):
        data = create_session(api_client, auth_headers)
        reconciler = api_client.app.state.session_registry.get("user-1", data["id"])
        reconciler.reserve()

        response = api_client.post(
            f"/chat/sessions/{data['id']}/ask", json={"question": "Q?"}, headers=auth_headers
        )
        deleted = api_client.delete(f"/chat/sessions/{data['id']}", headers=auth_headers)

        assert response.status_code == 409
        assert deleted.status_code == 409
        assert session_store.upserts == []
