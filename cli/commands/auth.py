"""Access token command handlers."""

from ..config import delete_session, delete_token, save_token


def set_token():
    """Save a bearer token issued by the identity provider."""
    print("\n=== Access Token ===")
    token = input("Paste your access token: ").strip()
    if not token:
        print("Error: Token is required.\n")
        return

    save_token(token)
    delete_session()
    print("\n✓ Token saved. You are now signed in.\n")


def logout_user():
    delete_token()
    delete_session()
    print("\n✓ Logged out successfully.\n")
