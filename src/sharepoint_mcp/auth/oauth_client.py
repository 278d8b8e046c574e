"""OAuth2 client for the Microsoft identity platform token endpoint.

Speaks the authorization-code and refresh-token grants directly with
form-encoded POSTs. No retries happen here: provider rejections raise
AuthProviderError and network failures propagate as httpx errors.
"""

import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from sharepoint_mcp.auth.models import TokenSet
from sharepoint_mcp.auth.token_storage import TokenStorage
from sharepoint_mcp.config import SharePointConfig
from sharepoint_mcp.errors import AuthProviderError

logger = logging.getLogger(__name__)

AUTH_STATE = "sharepoint_mcp_auth"


class OAuthClient:
    """Exchanges authorization codes and refresh tokens for access tokens.

    Every successful exchange is persisted through TokenStorage before it
    is returned.

    Attributes:
        config: Application settings (client credentials, scopes, endpoints).
        storage: Token storage used to persist new token sets.
    """

    def __init__(
        self,
        config: SharePointConfig,
        storage: TokenStorage,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.storage = storage
        self._http_client = http_client

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.request_timeout, connect=10.0)
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def authorization_url(self, state: str = AUTH_STATE) -> str:
        """Build the URL the user opens to start the authorization-code flow."""
        params = {
            "client_id": self.config.client_id,
            "response_type": "code",
            "redirect_uri": self.config.redirect_uri,
            "response_mode": "query",
            "scope": " ".join(self.config.scopes),
            "state": state,
        }
        return f"{self.config.authorize_endpoint}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenSet:
        """Exchange an authorization code for a token set.

        Args:
            code: One-time code delivered to the redirect URI.

        Returns:
            The new, persisted TokenSet.

        Raises:
            AuthProviderError: If the provider rejects the code.
            httpx.HTTPError: On network failure.
        """
        payload = await self._post_token_request(
            {
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "code": code,
                "redirect_uri": self.config.redirect_uri,
                "grant_type": "authorization_code",
                "scope": " ".join(self.config.scopes),
            }
        )
        token = TokenSet.from_token_response(payload)
        self.storage.save(token)
        logger.info("Exchanged authorization code for tokens")
        return token

    async def refresh(self, refresh_token: str) -> TokenSet:
        """Obtain a new access token with a refresh token.

        If the provider does not return a new refresh token, the current one
        is kept.

        Args:
            refresh_token: Current refresh token.

        Returns:
            The refreshed, persisted TokenSet.

        Raises:
            AuthProviderError: If the provider rejects the refresh token.
            httpx.HTTPError: On network failure.
        """
        payload = await self._post_token_request(
            {
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
                "scope": " ".join(self.config.scopes),
            }
        )
        token = TokenSet.from_token_response(payload, previous_refresh_token=refresh_token)
        self.storage.save(token)
        logger.info("Refreshed access token")
        return token

    async def _post_token_request(self, form: dict[str, str]) -> dict[str, Any]:
        """POST a form-encoded grant to the token endpoint and decode the reply."""
        client = self._get_http_client()
        response = await client.post(
            self.config.token_endpoint,
            data=form,
            headers={"Accept": "application/json"},
        )

        try:
            payload = response.json()
        except ValueError as err:
            raise AuthProviderError(
                "invalid_response",
                f"Token endpoint returned non-JSON response (HTTP {response.status_code})",
            ) from err

        if not isinstance(payload, dict):
            raise AuthProviderError("invalid_response", "Token endpoint returned unexpected JSON")

        if "error" in payload:
            raise AuthProviderError(payload["error"], payload.get("error_description"))

        if response.is_error or "access_token" not in payload:
            raise AuthProviderError(
                "invalid_response",
                f"Token endpoint returned no access token (HTTP {response.status_code})",
            )

        return payload
