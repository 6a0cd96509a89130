"""Credential lifecycle for users: linking OAuth accounts, logout, lookup.

``store_credentials`` is the only function that writes token fields, and it
always encrypts before writing.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .crypto import TokenCipher
from .errors import BadRequestError, NotFoundError, TokenCipherError
from .models import MAIL_PROVIDERS, AuthProvider, User, utcnow
from .repository import UserRepository, new_user_id

logger = logging.getLogger(__name__)


@dataclass
class OAuthProfile:
    """What a provider's OAuth callback tells us about the signed-in account."""
    provider_id: str
    email: Optional[str]
    name: str
    access_token: str
    refresh_token: Optional[str] = None


def store_credentials(
    user: User,
    provider: AuthProvider,
    access_token: str,
    refresh_token: Optional[str],
    cipher: TokenCipher,
) -> User:
    """Encrypt and set a provider's tokens on the user (does not save).

    The refresh token is only replaced when a new one is given; providers
    often omit it on refresh responses.
    """
    provider = AuthProvider(provider)
    setattr(user, f"{provider.value}_access_token", cipher.encrypt(access_token))
    if refresh_token:
        setattr(user, f"{provider.value}_refresh_token", cipher.encrypt(refresh_token))
    user.last_sync = utcnow()
    return user


def read_credential(value: Optional[str], cipher: TokenCipher) -> str:
    """Decrypt a stored token, treating an undecryptable value as absent."""
    try:
        return cipher.decrypt(value)
    except TokenCipherError:
        logger.warning("Stored token could not be decrypted; treating it as missing")
        return ""


def link_oauth_account(
    profile: OAuthProfile,
    provider: AuthProvider,
    *,
    users: UserRepository,
    cipher: TokenCipher,
) -> User:
    """Attach a provider login to the user with the same email, creating one if needed.

    Args:
        profile: Account details and tokens from the provider callback
        provider: Provider that completed the OAuth flow
        users: User repository
        cipher: Cipher used to encrypt the tokens

    Returns:
        The saved user, now bound to ``provider``

    Raises:
        BadRequestError: If the provider did not return an email address
    """
    provider = AuthProvider(provider)
    if not profile.email:
        raise BadRequestError(f"No email found in {provider.value} profile")

    email = profile.email.strip().lower()
    user = users.find_by_email(email)
    if user is None:
        user = users.create(
            User(
                id=new_user_id(),
                name=profile.name,
                email=email,
                auth_provider=provider,
            )
        )
        logger.info(f"Created user {user.id} from {provider.value} login")

    user.auth_provider = provider
    setattr(user, f"{provider.value}_id", profile.provider_id)
    store_credentials(user, provider, profile.access_token, profile.refresh_token, cipher)
    users.save(user)
    logger.info(
        f"Linked {provider.value} account for user {user.id} "
        f"(refresh token: {'present' if profile.refresh_token else 'absent'})"
    )
    return user


def logout(user_id: str, *, users: UserRepository) -> User:
    """Clear every stored provider token for the user."""
    user = users.find_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")

    for provider in MAIL_PROVIDERS:
        setattr(user, f"{provider}_access_token", None)
        setattr(user, f"{provider}_refresh_token", None)
    user.last_sync = utcnow()
    users.save(user)
    logger.info(f"Cleared credentials for user {user_id}")
    return user


def get_current_user(user_id: Optional[str], *, users: UserRepository) -> User:
    if not user_id:
        raise BadRequestError("User ID is required")
    user = users.find_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user
