"""inbox-bridge: one email API over Gmail, Outlook and Yahoo mailboxes."""

from . import server


def main() -> None:
    """Main entry point for the package."""
    server.main()


__all__ = ["main", "server"]
