"""Build the EmailService that matches a user's bound provider."""

import logging
from functools import partial

from .crypto import TokenCipher
from .errors import BadRequestError, NotFoundError, UnauthorizedError
from .models import AuthProvider
from .repository import UserRepository
from .services import EmailService, GmailService, OutlookService, YahooService
from .token_refresh import TokenRefresher
from .users import read_credential

logger = logging.getLogger(__name__)


async def create_email_service(
    user_id: str,
    *,
    users: UserRepository,
    cipher: TokenCipher,
    refresher: TokenRefresher,
) -> EmailService:
    """Return a new EmailService for the user's current ``auth_provider``.

    Google tokens are refreshed before the service is built. Microsoft and
    Yahoo services start with the stored access token and refresh reactively
    when the provider rejects it. A new instance is built on every call.

    Args:
        user_id: Authenticated user's id
        users: User repository
        cipher: Cipher for stored tokens
        refresher: Token refresher shared by the process

    Returns:
        A GmailService, OutlookService or YahooService

    Raises:
        NotFoundError: If the user does not exist
        UnauthorizedError: If the provider's credentials are missing or unusable
        BadRequestError: If the user's provider has no email service
    """
    user = users.find_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")

    provider = user.auth_provider
    logger.info(f"Building email service for user {user.id} ({provider.value})")

    if provider is AuthProvider.GOOGLE:
        access_token = await refresher.refresh_google_token(user.id)
        return GmailService(access_token, user.email)

    if provider is AuthProvider.MICROSOFT:
        access_token = read_credential(user.microsoft_access_token, cipher)
        if not access_token:
            raise UnauthorizedError(
                "Microsoft access token is missing. Please re-authenticate with Microsoft."
            )
        return OutlookService(
            access_token,
            user.email,
            refresh_access_token=partial(refresher.refresh_microsoft_token, user.id),
        )

    if provider is AuthProvider.YAHOO:
        access_token = read_credential(user.yahoo_access_token, cipher)
        if not access_token:
            raise UnauthorizedError(
                "Yahoo access token is missing. Please re-authenticate with Yahoo."
            )
        refresh_token = read_credential(user.yahoo_refresh_token, cipher)
        hook = partial(refresher.refresh_yahoo_token, user.id) if refresh_token else None
        return YahooService(access_token, user.email, refresh_access_token=hook)

    raise BadRequestError(f"Unsupported auth provider: {provider.value}")
