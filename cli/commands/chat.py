"""Ask AI chat command handlers."""

import json

import httpx

from ..api import auth_headers, report_error
from ..config import API_URL, load_session, save_session
from .notes import fetch_notes, note_title


def _parse_selection(raw: str, count: int) -> list[int] | None:
    """Parse a comma-separated list of 1-based note numbers."""
    try:
        picks = [int(part) for part in raw.replace(" ", "").split(",") if part]
    except ValueError:
        return None
    if not picks or any(pick < 1 or pick > count for pick in picks):
        return None
    return [pick - 1 for pick in picks]


def new_session():
    """Start a chat about a selection of notes."""
    headers = auth_headers()
    if headers is None:
        return

    notes = fetch_notes(headers)
    if notes is None:
        return
    if not notes:
        print("\nNo notes to chat about yet. Use /note to create one.\n")
        return

    print("\n=== New Chat ===")
    for i, note in enumerate(notes, 1):
        print(f"  {i}. {note_title(note)}")
    picks = _parse_selection(input("Notes to include (e.g. 1,3): "), len(notes))
    if picks is None:
        print("Error: Pick one or more note numbers from the list.\n")
        return

    try:
        response = httpx.post(
            f"{API_URL}/chat/sessions",
            json={"noteIds": [notes[i]["id"] for i in picks]},
            headers=headers,
            timeout=10.0,
        )
        response.raise_for_status()
    except httpx.HTTPError as e:
        report_error(e, "create session")
        return

    session = response.json()
    save_session(session["id"])
    print(f"\n✓ Chat started with {len(picks)} note(s). Ask away!\n")


def list_sessions():
    """List saved chat sessions."""
    headers = auth_headers()
    if headers is None:
        return

    try:
        response = httpx.get(f"{API_URL}/chat/sessions", headers=headers, timeout=10.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        report_error(e, "list sessions")
        return

    sessions = response.json()
    if not sessions:
        print("\nNo saved chats yet. Use /new to start one.\n")
        return

    print("\n=== Your Chats ===")
    current_session = load_session()
    for i, session in enumerate(sessions, 1):
        marker = "→" if session["id"] == current_session else " "
        print(f"{marker} {i}. {session['title']}")
        print(f"     ID: {session['id']}")
        print(f"     Started: {session['createdAt'][:19]} | Notes: {len(session['noteIds'])}")
    print()


def switch_session():
    """Switch to a different chat session."""
    headers = auth_headers()
    if headers is None:
        return

    session_id = input("\nEnter session ID: ").strip()
    if not session_id:
        print("Error: Session ID is required.\n")
        return

    try:
        response = httpx.get(f"{API_URL}/chat/sessions/{session_id}", headers=headers, timeout=10.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        report_error(e, "switch session")
        return

    save_session(session_id)
    print(f"\n✓ Switched to: {response.json()['title']}\n")


def _print_sources(message: dict):
    for citation in message.get("noteCitations", []):
        print(f"  [note {citation['noteId']}] {citation['snippet']}")
    for citation in message.get("webCitations", []):
        print(f"  [web] {citation['title']}: {citation['uri']}")


def view_history():
    """View the messages of the current session."""
    headers = auth_headers()
    if headers is None:
        return

    session_id = load_session()
    if not session_id:
        print("Error: No active chat. Use /new to start one or /switch to switch.\n")
        return

    try:
        response = httpx.get(f"{API_URL}/chat/sessions/{session_id}", headers=headers, timeout=10.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        report_error(e, "load history")
        return

    session = response.json()
    if not session["messages"]:
        print("\nNo messages in this chat yet.\n")
        return

    print(f"\n=== {session['title']} ===")
    for message in session["messages"]:
        if message["role"] == "user":
            print(f"\nYou: {message['text']}")
        else:
            print(f"\nAssistant: {message['answerText']}")
            _print_sources(message)
    print()


def ask_question(question: str, use_external_search: bool = False):
    """Ask the active session a question and print the answer as it streams."""
    headers = auth_headers()
    if headers is None:
        return

    session_id = load_session()
    if not session_id:
        print("Error: No active chat. Use /new to pick notes first.\n")
        return

    sources = {"noteCitations": [], "webCitations": []}
    try:
        with httpx.stream(
            "POST",
            f"{API_URL}/chat/sessions/{session_id}/ask",
            json={"question": question, "useExternalSearch": use_external_search},
            headers=headers,
            timeout=httpx.Timeout(10.0, read=120.0),
        ) as response:
            if response.is_error:
                response.read()
            response.raise_for_status()

            print("Assistant: ", end="", flush=True)
            for line in response.iter_lines():
                if not line.startswith("data: "):
                    continue
                event = json.loads(line[len("data: ") :])
                if event["type"] == "delta":
                    print(event["text"], end="", flush=True)
                elif event["type"] == "sources":
                    sources["noteCitations"] = event["citations"]
                elif event["type"] == "web_sources":
                    sources["webCitations"] = event["citations"]
                elif event["type"] == "error":
                    print(f"\nError: {event['error']}\n")
                    return
    except httpx.HTTPError as e:
        report_error(e, "ask question")
        return

    print()
    _print_sources(sources)
    print()
