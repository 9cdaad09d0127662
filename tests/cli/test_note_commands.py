"""Tests for the note editing CLI commands."""

from unittest.mock import MagicMock, patch

from cli.commands.notes import delete_note, reschedule_item

HEADERS = {"Authorization": "Bearer token"}


def json_response(payload):
    response = MagicMock()
    response.json.return_value = payload
    return response


class TestRescheduleItem:
    def test_sends_zero_based_index(self, capsys):
        moved = {"actionItems": [{"text": "Vacuum", "dueDate": "2025-03-21", "completed": False}]}
        with (
            patch("cli.commands.notes.auth_headers", return_value=HEADERS),
            patch("cli.commands.notes.httpx.patch", return_value=json_response(moved)) as send,
        ):
            reschedule_item("n3 1 2025-03-21")

        url = send.call_args.args[0]
        assert url.endswith("/notes/n3/action-items/0/due-date")
        assert send.call_args.kwargs["json"] == {"dueDate": "2025-03-21"}
        assert "Vacuum (2025-03-21)" in capsys.readouterr().out

    def test_rejects_bad_arguments(self, capsys):
        with patch("cli.commands.notes.httpx.patch") as send:
            reschedule_item("n3 first 2025-03-21")
            reschedule_item("n3 1 next-friday")

        send.assert_not_called()
        out = capsys.readouterr().out
        assert "Usage: /move" in out
        assert "YYYY-MM-DD" in out


class TestDeleteNote:
    def test_requires_confirmation(self, capsys):
        with (
            patch("cli.commands.notes.auth_headers", return_value=HEADERS),
            patch("builtins.input", return_value="n"),
            patch("cli.commands.notes.httpx.delete") as send,
        ):
            delete_note("n1")

        send.assert_not_called()
        assert "Cancelled" in capsys.readouterr().out

    def test_deletes_after_confirmation(self):
        with (
            patch("cli.commands.notes.auth_headers", return_value=HEADERS),
            patch("builtins.input", return_value="y"),
            patch("cli.commands.notes.httpx.delete") as send,
        ):
            delete_note("n1")

        assert send.call_args.args[0].endswith("/notes/n1")
        assert send.call_args.kwargs["headers"] == HEADERS
