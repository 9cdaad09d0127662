"""Calendar command handlers: today's tasks, tasks by date and manual tasks."""

from datetime import date

import httpx

from ..api import auth_headers, report_error
from ..config import API_URL
from .notes import format_action_item


def _print_items(items: list[dict], heading: str):
    if not items:
        print(f"\nNothing due {heading}.\n")
        return

    print(f"\n=== Due {heading} ===")
    for entry in items:
        item = entry["item"]
        print(f"  {format_action_item(item)}")
        print(f"      from: {entry['noteTitle']}")
    print()


def _ask_date(prompt: str) -> date | None:
    raw = input(prompt).strip()
    if not raw:
        return date.today()
    try:
        return date.fromisoformat(raw)
    except ValueError:
        print("Error: Use the YYYY-MM-DD format.\n")
        return None


def show_today():
    """Show incomplete action items due today."""
    headers = auth_headers()
    if headers is None:
        return

    try:
        response = httpx.get(
            f"{API_URL}/actions/today",
            params={"today": date.today().isoformat()},
            headers=headers,
            timeout=10.0,
        )
        response.raise_for_status()
    except httpx.HTTPError as e:
        report_error(e, "load today's tasks")
        return

    _print_items(response.json(), "today")


def show_date():
    """Show all action items due on a chosen date."""
    headers = auth_headers()
    if headers is None:
        return

    day = _ask_date("Date (YYYY-MM-DD, Enter for today): ")
    if day is None:
        return

    try:
        response = httpx.get(f"{API_URL}/actions/{day.isoformat()}", headers=headers, timeout=10.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        report_error(e, "load tasks")
        return

    _print_items(response.json(), f"on {day.isoformat()}")


def add_task():
    """Add a task to a calendar day."""
    headers = auth_headers()
    if headers is None:
        return

    print("\n=== Add Task ===")
    text = input("Task: ").strip()
    if not text:
        print("Error: Task text is required.\n")
        return
    day = _ask_date("Due date (YYYY-MM-DD, Enter for today): ")
    if day is None:
        return
    time = input("Time (HH:MM, optional): ").strip() or None

    try:
        response = httpx.post(
            f"{API_URL}/actions",
            json={"text": text, "dueDate": day.isoformat(), "time": time},
            headers=headers,
            timeout=10.0,
        )
        response.raise_for_status()
    except httpx.HTTPError as e:
        report_error(e, "add task")
        return

    print(f"\n✓ Task added for {day.isoformat()}.\n")
