"""Typed errors raised above the email-service boundary.

Email service methods never raise these for provider failures; they turn
those into result values. Everything else (factory, token refresh, the
dispatcher) raises one of the classes below, and the HTTP layer maps
``status_code`` onto a response.
"""


class InboxBridgeError(Exception):
    """Base class for all inbox-bridge errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BadRequestError(InboxBridgeError):
    """Raised when the caller asked for something that cannot be served.

    This includes unsupported auth providers and missing identifiers.
    """

    status_code = 400


class UnauthorizedError(InboxBridgeError):
    """Raised when provider credentials are missing, expired or unrefreshable.

    The caller is expected to send the user back through the provider's
    OAuth flow.
    """

    status_code = 401


class NotFoundError(InboxBridgeError):
    """Raised when the requested user does not exist."""

    status_code = 404


class InternalError(InboxBridgeError):
    """Raised for unexpected server-side failures."""

    status_code = 500


class ProviderError(InboxBridgeError):
    """Raised when a provider result must be consumed but came back as an error."""

    status_code = 502


class ConfigurationError(InternalError):
    """Raised when required configuration is absent."""


class TokenCipherError(InternalError):
    """Raised when a stored token cannot be encrypted or decrypted."""
