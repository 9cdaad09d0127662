"""Shared request helpers for the CLI command handlers."""

import httpx

from .config import delete_session, delete_token, load_token


def auth_headers() -> dict[str, str] | None:
    """Bearer headers for the saved token, or None (with a message) if there is none."""
    token = load_token()
    if not token:
        print("Error: No access token saved. Use /token to paste one.\n")
        return None
    return {"Authorization": f"Bearer {token}"}


def error_detail(response: httpx.Response) -> str:
    try:
        detail = response.json().get("detail", "Unknown error")
    except ValueError:
        return response.text or "Unknown error"
    return detail if isinstance(detail, str) else str(detail)


def report_error(e: httpx.HTTPError, action: str):
    """Print a friendly message for a failed API call."""
    if isinstance(e, httpx.ConnectError):
        print("Error: Could not connect to API server.")
        print("Please start the server with: python -m vocalyn.server\n")
    elif isinstance(e, httpx.HTTPStatusError):
        status = e.response.status_code
        if status == 401:
            print("Error: Authentication failed. Use /token to save a new token.\n")
            delete_token()
        elif status == 404 and "session" in error_detail(e.response).lower():
            print("Error: Chat session not found.\n")
            delete_session()
        else:
            print(f"Error: Failed to {action}: {error_detail(e.response)}\n")
    else:
        print(f"Error: API request failed: {e}\n")
