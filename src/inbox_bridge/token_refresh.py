"""Exchange stored refresh tokens for fresh provider access tokens.

Each provider gets one public coroutine with the same shape: load the user,
decrypt the refresh token, call the provider's token endpoint, persist the
re-encrypted result and hand the plaintext access token back to the caller.
"""

import asyncio
import logging
import weakref
from typing import Dict, Optional

import httpx

from . import config
from .config import OAuthClientConfig
from .crypto import TokenCipher
from .errors import InternalError, NotFoundError, UnauthorizedError
from .models import AuthProvider, User
from .repository import UserRepository
from .users import read_credential, store_credentials

logger = logging.getLogger(__name__)

# httpx logs every request line at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)

PROVIDER_LABELS = {
    AuthProvider.GOOGLE: "Google",
    AuthProvider.MICROSOFT: "Microsoft",
    AuthProvider.YAHOO: "Yahoo",
}


def default_oauth_clients() -> Dict[AuthProvider, OAuthClientConfig]:
    return {
        AuthProvider.GOOGLE: config.GOOGLE_OAUTH,
        AuthProvider.MICROSOFT: config.MICROSOFT_OAUTH,
        AuthProvider.YAHOO: config.YAHOO_OAUTH,
    }


class TokenRefresher:
    """Refreshes provider access tokens and writes them back to the user store.

    Refreshes for the same user are serialized within this process so that
    two concurrent requests do not both spend the same refresh token.

    Attributes:
        users: User repository
        cipher: Cipher for stored tokens
        clients: OAuth client settings per provider
    """

    def __init__(
        self,
        users: UserRepository,
        cipher: TokenCipher,
        clients: Optional[Dict[AuthProvider, OAuthClientConfig]] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = config.PROVIDER_TIMEOUT,
    ) -> None:
        self.users = users
        self.cipher = cipher
        self.clients = clients or default_oauth_clients()
        self._transport = transport
        self._timeout = timeout
        # Entries vanish once no coroutine holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        return self._locks.setdefault(user_id, asyncio.Lock())

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    def _load_user(self, user_id: str) -> User:
        user = self.users.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def refresh_google_token(self, user_id: str) -> str:
        """Return a usable Google access token for the user.

        When no refresh token is stored the current access token is checked
        against Google's tokeninfo endpoint and returned unchanged if still
        valid, without a refresh call.

        Raises:
            NotFoundError: If the user does not exist
            UnauthorizedError: If the token cannot be validated or refreshed
            InternalError: If Google cannot be reached
        """
        async with self._lock_for(user_id):
            user = self._load_user(user_id)
            refresh_token = read_credential(user.google_refresh_token, self.cipher)
            if not refresh_token:
                logger.warning(f"No Google refresh token stored for user {user_id}")
                access_token = read_credential(user.google_access_token, self.cipher)
                if access_token and await self._google_token_is_valid(access_token):
                    logger.info("Google access token is still valid, proceeding without refresh")
                    return access_token
                raise UnauthorizedError(
                    "Authentication expired. Please re-authenticate with Google."
                )
            return await self._exchange(user, AuthProvider.GOOGLE, refresh_token)

    async def refresh_microsoft_token(self, user_id: str) -> str:
        """Return a new Microsoft Graph access token for the user."""
        return await self._refresh(user_id, AuthProvider.MICROSOFT)

    async def refresh_yahoo_token(self, user_id: str) -> str:
        """Return a new Yahoo access token for the user."""
        return await self._refresh(user_id, AuthProvider.YAHOO)

    async def refresh(self, user_id: str, provider: AuthProvider) -> str:
        """Dispatch to the provider-specific refresh coroutine."""
        provider = AuthProvider(provider)
        if provider is AuthProvider.GOOGLE:
            return await self.refresh_google_token(user_id)
        if provider is AuthProvider.MICROSOFT:
            return await self.refresh_microsoft_token(user_id)
        if provider is AuthProvider.YAHOO:
            return await self.refresh_yahoo_token(user_id)
        raise ValueError(f"{provider.value} accounts have no provider tokens")

    async def _refresh(self, user_id: str, provider: AuthProvider) -> str:
        async with self._lock_for(user_id):
            user = self._load_user(user_id)
            refresh_token = read_credential(user.refresh_token_for(provider), self.cipher)
            if not refresh_token:
                raise UnauthorizedError(
                    f"No {PROVIDER_LABELS[provider]} refresh token available. Please re-authenticate."
                )
            return await self._exchange(user, provider, refresh_token)

    async def _exchange(self, user: User, provider: AuthProvider, refresh_token: str) -> str:
        """POST a refresh_token grant and persist the issued tokens."""
        label = PROVIDER_LABELS[provider]
        client = self.clients[provider]
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client.client_id or "",
            "client_secret": client.client_secret or "",
        }
        if client.scope:
            data["scope"] = client.scope
        if provider is AuthProvider.YAHOO and client.redirect_uri:
            data["redirect_uri"] = client.redirect_uri

        try:
            async with self._http_client() as http:
                response = await http.post(
                    client.token_url, data=data, headers={"Accept": "application/json"}
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"{label} token refresh failed with status {e.response.status_code}: "
                f"{e.response.text[:200]}"
            )
            raise UnauthorizedError(f"Failed to refresh {label} token") from e
        except httpx.HTTPError as e:
            logger.error(f"{label} token endpoint unreachable: {e!s}", exc_info=True)
            raise InternalError(f"Failed to refresh {label} token: {e!s}") from e
        except ValueError as e:
            logger.error(f"{label} token endpoint returned invalid JSON")
            raise InternalError(f"Failed to refresh {label} token") from e

        access_token = payload.get("access_token")
        if not access_token:
            raise UnauthorizedError(f"Failed to refresh {label} token")

        new_refresh_token = payload.get("refresh_token")
        store_credentials(user, provider, access_token, new_refresh_token, self.cipher)
        self.users.save(user)
        logger.info(
            f"{label} token refreshed for user {user.id} "
            f"(new refresh token: {'present' if new_refresh_token else 'not present'})"
        )
        return access_token

    async def _google_token_is_valid(self, access_token: str) -> bool:
        try:
            async with self._http_client() as http:
                response = await http.get(
                    config.GOOGLE_TOKENINFO_URL, params={"access_token": access_token}
                )
        except httpx.HTTPError as e:
            logger.error(f"Google tokeninfo unreachable: {e!s}", exc_info=True)
            raise InternalError(f"Failed to validate Google token: {e!s}") from e
        if response.status_code != 200:
            logger.warning(f"Google access token rejected by tokeninfo ({response.status_code})")
            return False
        return True
