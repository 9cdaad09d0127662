"""Main CLI client with REPL loop."""

import os

from .commands import (
    add_task,
    ask_question,
    create_note,
    delete_note,
    list_notes,
    list_sessions,
    logout_user,
    new_session,
    reschedule_item,
    set_token,
    show_date,
    show_today,
    switch_session,
    update_note,
    view_history,
)
from .config import load_session, load_token

COMMANDS = {
    "/token": set_token,
    "/logout": logout_user,
    "/note": create_note,
    "/notes": list_notes,
    "/today": show_today,
    "/date": show_date,
    "/task": add_task,
    "/new": new_session,
    "/sessions": list_sessions,
    "/switch": switch_session,
    "/history": view_history,
}

# Commands that take the rest of the line as an argument
ARGUMENT_COMMANDS = {
    "/edit": update_note,
    "/delete": delete_note,
    "/move": reschedule_item,
}


def main():
    """CLI client for the Vocalyn API."""
    print("Welcome to Vocalyn CLI!")
    print("\nAuth Commands:")
    print("  /token - Save an access token")
    print("  /logout - Forget the saved token")
    print("\nNote Commands:")
    print("  /note - Create a note from a transcript (opens your editor)")
    print("  /notes - List your notes")
    print("  /edit <note_id> - Edit a note in your editor")
    print("  /delete <note_id> - Delete a note")
    print("\nCalendar Commands:")
    print("  /today - Tasks due today")
    print("  /date - Tasks due on a date")
    print("  /task - Add a task to a day")
    print("  /move <note_id> <item_number> <date> - Move a task to another day")
    print("\nAsk AI Commands:")
    print("  /new - Start a chat about selected notes")
    print("  /sessions - List your saved chats")
    print("  /switch - Switch to a different chat")
    print("  /history - View the current chat")
    print("  /search - Toggle live web search for answers")
    print("\nUtility Commands:")
    print("  /clear - Clear the terminal screen")
    print("\nType 'exit' or 'quit' to end the conversation.")
    print("Note: Make sure the API server is running (python -m vocalyn.server)\n")

    if load_token():
        print("✓ You are signed in.\n")
    else:
        print("⚠ No access token saved. Use /token to sign in.\n")

    use_external_search = False

    while True:
        try:
            user_input = input("You: ").strip()

            if user_input.lower() in ["exit", "quit"]:
                print("\nGoodbye!")
                break

            if not user_input:
                continue

            command = user_input.lower()
            if command in COMMANDS:
                COMMANDS[command]()
                continue

            name, _, argument = user_input.partition(" ")
            if name.lower() in ARGUMENT_COMMANDS:
                ARGUMENT_COMMANDS[name.lower()](argument)
                continue

            if command == "/search":
                use_external_search = not use_external_search
                state = "on" if use_external_search else "off"
                print(f"\nWeb search is {state}.\n")
                continue

            if command == "/clear":
                # Clear terminal screen (cross-platform)
                os.system("cls" if os.name == "nt" else "clear")
                continue

            if command.startswith("/"):
                print(f"Unknown command: {user_input}\n")
                continue

            if not load_session():
                print("Error: No active chat. Use /new to pick notes first.\n")
                continue

            ask_question(user_input, use_external_search=use_external_search)

        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break
        except EOFError:
            print("\n\nGoodbye!")
            break


if __name__ == "__main__":
    main()
