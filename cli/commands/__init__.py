"""CLI command handlers."""

from .actions import add_task, show_date, show_today
from .auth import logout_user, set_token
from .chat import ask_question, list_sessions, new_session, switch_session, view_history
from .notes import create_note, delete_note, list_notes, reschedule_item, update_note

__all__ = [
    # Auth commands
    "logout_user",
    "set_token",
    # Notes commands
    "create_note",
    "delete_note",
    "list_notes",
    "update_note",
    # Calendar commands
    "add_task",
    "reschedule_item",
    "show_date",
    "show_today",
    # Chat commands
    "ask_question",
    "list_sessions",
    "new_session",
    "switch_session",
    "view_history",
]
