"""Token lifecycle management for SharePoint access.

TokenManager owns the in-memory token set for the process. It loads from
disk lazily, reloads while the held set is expired (another process may
have authenticated), refreshes through OAuthClient and hands out a
currently valid access token. Concurrent callers that find the token
expired share a single refresh.
"""

import asyncio
import logging

import httpx

from sharepoint_mcp.auth.models import TokenSet, TokenStatus
from sharepoint_mcp.auth.oauth_client import OAuthClient
from sharepoint_mcp.auth.token_storage import TokenStorage
from sharepoint_mcp.errors import AuthProviderError, AuthRequired

logger = logging.getLogger(__name__)


class TokenManager:
    """Decides whether the cached token is usable and refreshes it when not.

    Attributes:
        storage: Token storage used for lazy loading and clearing.
        oauth: OAuth client used for refresh and code exchange.

    Example:
        ```python
        manager = TokenManager(storage, oauth)
        token = await manager.get_valid_token()
        if token is None:
            ...  # run the authorization flow
        ```
    """

    def __init__(self, storage: TokenStorage, oauth: OAuthClient) -> None:
        self.storage = storage
        self.oauth = oauth
        self._token: TokenSet | None = None
        self._refresh_lock = asyncio.Lock()
        self._refresh_generation = 0

    @property
    def token(self) -> TokenSet | None:
        """The token set currently held in memory (after a lazy load)."""
        return self._load_if_needed()

    def _load_if_needed(self) -> TokenSet | None:
        # Another process (the auth server) may have written a newer set
        if self._token is None or self._token.is_expired():
            stored = self.storage.load()
            if stored is not None:
                self._token = stored
        return self._token

    def is_authenticated(self) -> bool:
        """Check for a usable access token without refreshing.

        Triggers a lazy load from disk but never a network call.

        Returns:
            True if an unexpired access token is held.
        """
        token = self._load_if_needed()
        return bool(token and token.access_token and not token.is_expired())

    def get_status(self) -> TokenStatus:
        """Classify the held token set as valid, expired or missing."""
        token = self._load_if_needed()
        if token is None or not token.access_token:
            return TokenStatus.MISSING
        if token.is_expired():
            return TokenStatus.EXPIRED
        return TokenStatus.VALID

    async def get_valid_token(self) -> str | None:
        """Return a currently valid access token, refreshing if needed.

        Returns:
            Access token string, or None when authentication is required
            (no token held, no refresh token, or the refresh failed).
        """
        token = self._load_if_needed()
        if token is None or not token.access_token:
            return None

        if not token.is_expired():
            return token.access_token

        generation = self._refresh_generation
        async with self._refresh_lock:
            token = self._token
            if generation != self._refresh_generation:
                # A refresh finished while we waited; share its outcome
                if token is not None and token.access_token and not token.is_expired():
                    return token.access_token
                return None
            try:
                return await self._refresh(token)
            finally:
                self._refresh_generation += 1

    async def _refresh(self, token: TokenSet | None) -> str | None:
        if token is None or not token.refresh_token:
            logger.warning("Token expired and no refresh token is available")
            return None

        logger.info("Token expired, refreshing...")
        try:
            self._token = await self.oauth.refresh(token.refresh_token)
        except (AuthProviderError, httpx.HTTPError) as e:
            logger.warning(f"Failed to refresh token: {e}")
            return None

        return self._token.access_token

    async def ensure_authenticated(self, force_new: bool = False) -> str:
        """Return a valid access token or raise.

        Args:
            force_new: Demand a fresh authorization. There is no silent
                re-authentication path, so this always raises.

        Returns:
            Access token string.

        Raises:
            AuthRequired: If no valid token can be obtained.
        """
        if force_new:
            self.force_reauthenticate()

        access_token = await self.get_valid_token()
        if not access_token:
            raise AuthRequired()
        return access_token

    def force_reauthenticate(self) -> None:
        """Signal that a new interactive authorization is needed.

        Raises:
            AuthRequired: Always.
        """
        raise AuthRequired()

    async def exchange_code(self, code: str) -> TokenSet:
        """Complete the authorization-code flow and adopt the new token set."""
        self._token = await self.oauth.exchange_code(code)
        return self._token

    def clear(self) -> None:
        """Forget the token set in memory and on disk (logout)."""
        self._token = None
        self.storage.clear()
        logger.info("Cleared stored tokens")
