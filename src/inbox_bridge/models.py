"""Data model for users, provider credentials and email-service results."""

import base64
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Literal, Optional

# Providers that can back an EmailService
MAIL_PROVIDERS = ("google", "microsoft", "yahoo")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthProvider(str, Enum):
    """How a user signed in; decides which EmailService is built for them."""

    GOOGLE = "google"        # Gmail
    MICROSOFT = "microsoft"  # Outlook / Graph
    YAHOO = "yahoo"          # IMAP + SMTP
    LOCAL = "local"          # password account, no mailbox


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"


class SubscriptionPlan(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


@dataclass
class Subscription:
    """Plan and usage counters attached to a user.

    Not used by the email core; it is loaded together with the user document.
    """
    plan: SubscriptionPlan = SubscriptionPlan.FREE
    start_date: datetime = field(default_factory=utcnow)
    end_date: datetime = field(default_factory=lambda: utcnow() + timedelta(days=365))
    status: Literal["ACTIVE", "EXPIRED", "CANCELLED"] = "ACTIVE"
    daily_requests: int = 0
    daily_tokens: int = 0
    last_request_date: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    auto_renew: bool = True


@dataclass
class User:
    """User aggregate with per-provider encrypted credentials.

    Token attributes always hold ciphertext produced by TokenCipher; use
    ``users.store_credentials`` to write them and ``TokenCipher.decrypt`` to
    read them back.

    Attributes:
        id: Document id (uuid4 hex)
        name: Display name
        email: Unique, lowercased email address
        role: Authorization role
        auth_provider: Provider whose EmailService is used for this user
        last_sync: Time of the last credential mutation
    """
    id: str
    name: str
    email: str
    auth_provider: AuthProvider
    role: UserRole = UserRole.USER
    google_id: Optional[str] = None
    microsoft_id: Optional[str] = None
    yahoo_id: Optional[str] = None
    google_access_token: Optional[str] = None
    microsoft_access_token: Optional[str] = None
    yahoo_access_token: Optional[str] = None
    google_refresh_token: Optional[str] = None
    microsoft_refresh_token: Optional[str] = None
    yahoo_refresh_token: Optional[str] = None
    last_sync: datetime = field(default_factory=utcnow)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    subscription: Subscription = field(default_factory=Subscription)

    def __post_init__(self) -> None:
        self.email = self.email.strip().lower()
        self.auth_provider = AuthProvider(self.auth_provider)
        self.role = UserRole(self.role)

    def access_token_for(self, provider: AuthProvider) -> Optional[str]:
        """Return the stored (encrypted) access token for a mail provider."""
        return getattr(self, f"{_mail_provider(provider)}_access_token")

    def refresh_token_for(self, provider: AuthProvider) -> Optional[str]:
        """Return the stored (encrypted) refresh token for a mail provider."""
        return getattr(self, f"{_mail_provider(provider)}_refresh_token")

    def to_public_dict(self) -> Dict[str, Any]:
        """Serialize the user without any credential fields."""
        data = asdict(self)
        for provider in MAIL_PROVIDERS:
            data.pop(f"{provider}_access_token", None)
            data.pop(f"{provider}_refresh_token", None)
        data["auth_provider"] = self.auth_provider.value
        data["role"] = self.role.value
        data["subscription"]["plan"] = self.subscription.plan.value
        return data


def _mail_provider(provider: AuthProvider) -> str:
    value = AuthProvider(provider).value
    if value not in MAIL_PROVIDERS:
        raise ValueError(f"{value} accounts have no provider credentials")
    return value


@dataclass
class SendResult:
    """Outcome of a send or reply; errors are carried as data, not raised."""
    status: Literal["success", "error"]
    message_id: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def success(cls, message_id: Optional[str] = None) -> "SendResult":
        return cls(status="success", message_id=message_id)

    @classmethod
    def error(cls, error_message: str) -> "SendResult":
        return cls(status="error", error_message=error_message)

    @property
    def ok(self) -> bool:
        return self.status == "success"


@dataclass
class Attachment:
    """A file attached to an outgoing email."""
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "Attachment":
        """Build an attachment from ``{filename, content_type, data}`` with base64 data.

        Raises:
            ValueError: If filename or data is missing, or data is not valid base64
        """
        filename = data.get("filename")
        encoded = data.get("data")
        if not filename or encoded is None:
            raise ValueError("Attachments need 'filename' and base64 'data'")
        try:
            content = base64.b64decode(encoded, validate=True)
        except ValueError as e:
            raise ValueError(f"Attachment '{filename}' is not valid base64") from e
        return cls(
            filename=filename,
            content=content,
            content_type=data.get("content_type") or "application/octet-stream",
        )
