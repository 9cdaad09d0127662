"""Notes command handlers."""

import os
import subprocess
import sys
import tempfile
from datetime import date
from pathlib import Path

import httpx

from ..api import auth_headers, report_error
from ..config import API_URL

TEMPLATE_MARKER = "<!-- Write or paste the transcript below. This line is ignored. -->"


def _get_editor() -> str:
    """Get the user's preferred text editor."""
    editor = os.environ.get("VISUAL") or os.environ.get("EDITOR")
    if editor:
        return editor
    return "notepad" if sys.platform == "win32" else "nano"


def _edit_text(initial: str, purpose: str) -> str | None:
    """Open the editor on a temporary file holding ``initial`` and return the result."""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".md", delete=False) as tmp_file:
        tmp_file.write(initial)
        tmp_file_path = Path(tmp_file.name)

    try:
        editor = _get_editor()
        print(f"\nOpening editor ({editor}) for the {purpose}...")
        print("Save and close the editor when you are done.\n")
        try:
            subprocess.run([editor, str(tmp_file_path)], check=True)
        except subprocess.CalledProcessError:
            print(f"\nError: Editor '{editor}' exited with an error.\n")
            return None
        except FileNotFoundError:
            print(f"\nError: Editor '{editor}' not found.\n")
            print("You can set your preferred editor with: export EDITOR=nano\n")
            return None

        return tmp_file_path.read_text(encoding="utf-8")
    finally:
        if tmp_file_path.exists():
            tmp_file_path.unlink()


def _read_transcript() -> str | None:
    content = _edit_text(f"{TEMPLATE_MARKER}\n\n", "transcript")
    if content is None:
        return None
    return content.replace(TEMPLATE_MARKER, "").strip()


def format_action_item(item: dict) -> str:
    box = "[x]" if item.get("completed") else "[ ]"
    when = " ".join(part for part in (item.get("dueDate"), item.get("time")) if part)
    return f"{box} {item['text']}" + (f" ({when})" if when else "")


def create_note():
    """Turn a transcript into a note; the AI refines it and extracts action items."""
    print("\n=== Create New Note ===")
    headers = auth_headers()
    if headers is None:
        return

    transcript = _read_transcript()
    if transcript is None:
        return
    if not transcript:
        print("\nError: Transcript cannot be empty.\n")
        return

    print("Analyzing transcript...")
    try:
        response = httpx.post(
            f"{API_URL}/notes",
            json={"transcript": transcript, "currentDate": date.today().isoformat()},
            headers=headers,
            timeout=60.0,
        )
        response.raise_for_status()
        note = response.json()
    except httpx.HTTPError as e:
        report_error(e, "create note")
        return

    print("\n✓ Note created successfully!")
    print(f"  Note ID: {note['id']}")
    print(f"  Feeling: {note['emotionSummary']}")
    for item in note["actionItems"]:
        print(f"  {format_action_item(item)}")
    print()


def fetch_notes(headers: dict[str, str]) -> list[dict] | None:
    try:
        response = httpx.get(f"{API_URL}/notes", headers=headers, timeout=10.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        report_error(e, "list notes")
        return None
    return response.json()


def note_title(note: dict) -> str:
    first_line = note["refinedText"].strip().split("\n", 1)[0]
    return first_line.lstrip("#").strip() or "Untitled Note"


def list_notes():
    """List all notes for the authenticated user, newest first."""
    headers = auth_headers()
    if headers is None:
        return

    notes = fetch_notes(headers)
    if notes is None:
        return
    if not notes:
        print("\nNo notes yet. Use /note to create one.\n")
        return

    print(f"\n=== Your Notes ({len(notes)} total) ===\n")
    for i, note in enumerate(notes, 1):
        print(f"{i}. {note_title(note)}")
        print(f"   ID: {note['id']} | Created: {note['createdAt'][:16]}")
        open_items = sum(1 for item in note["actionItems"] if not item.get("completed"))
        if note["actionItems"]:
            print(f"   Action items: {open_items} open of {len(note['actionItems'])}")
    print()


def _find_note(headers: dict[str, str], note_id: str) -> dict | None:
    notes = fetch_notes(headers)
    if notes is None:
        return None
    for note in notes:
        if note["id"] == note_id:
            return note
    print(f"Error: Note with ID '{note_id}' not found.\n")
    return None


def update_note(note_id: str):
    """Edit a note's text in the external editor. Its action items start open again."""
    note_id = note_id.strip()
    if not note_id:
        print("Error: Note ID is required. Usage: /edit <note_id>\n")
        return

    headers = auth_headers()
    if headers is None:
        return

    note = _find_note(headers, note_id)
    if note is None:
        return

    content = _edit_text(note["refinedText"], f"note '{note_title(note)}'")
    if content is None:
        return
    content = content.strip()
    if not content:
        print("\nError: Note cannot be empty. No changes saved.\n")
        return
    if content == note["refinedText"].strip():
        print("\nNo changes made.\n")
        return

    body = {
        "refinedText": content,
        "emotionSummary": note["emotionSummary"],
        "emotions": note["emotions"],
        "actionItems": [
            {"text": item["text"], "dueDate": item["dueDate"]} for item in note["actionItems"]
        ],
    }
    try:
        response = httpx.put(f"{API_URL}/notes/{note_id}", json=body, headers=headers, timeout=10.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        report_error(e, "update note")
        return

    print("\n✓ Note updated successfully!\n")


def delete_note(note_id: str):
    """Delete a note after confirmation."""
    note_id = note_id.strip()
    if not note_id:
        print("Error: Note ID is required. Usage: /delete <note_id>\n")
        return

    headers = auth_headers()
    if headers is None:
        return

    confirm = input(f"Delete note {note_id}? This cannot be undone. [y/N]: ").strip().lower()
    if confirm != "y":
        print("Cancelled.\n")
        return

    try:
        response = httpx.delete(f"{API_URL}/notes/{note_id}", headers=headers, timeout=10.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        report_error(e, "delete note")
        return

    print("\n✓ Note deleted.\n")


def reschedule_item(args: str):
    """Move an action item to another day: /move <note_id> <item_number> <YYYY-MM-DD>."""
    parts = args.split()
    if len(parts) != 3 or not parts[1].isdigit():
        print("Usage: /move <note_id> <item_number> <YYYY-MM-DD>\n")
        return
    note_id, number, new_date = parts

    try:
        due_date = date.fromisoformat(new_date)
    except ValueError:
        print("Error: Use the YYYY-MM-DD format.\n")
        return

    headers = auth_headers()
    if headers is None:
        return

    try:
        response = httpx.patch(
            f"{API_URL}/notes/{note_id}/action-items/{int(number) - 1}/due-date",
            json={"dueDate": due_date.isoformat()},
            headers=headers,
            timeout=10.0,
        )
        response.raise_for_status()
    except httpx.HTTPError as e:
        report_error(e, "move task")
        return

    item = response.json()["actionItems"][int(number) - 1]
    print(f"\n✓ Moved: {format_action_item(item)}\n")
