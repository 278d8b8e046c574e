"""Unit tests for the local OAuth callback server."""

import threading
from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from sharepoint_mcp.auth.callback_server import AuthCallbackServer, create_callback_server
from sharepoint_mcp.config import SharePointConfig
from sharepoint_mcp.errors import AuthProviderError

AUTHORIZE_URL = "https://login.microsoftonline.com/test-tenant/oauth2/v2.0/authorize?x=1"


@pytest.fixture
def mock_oauth() -> MagicMock:
    """Create a mock OAuthClient."""
    oauth = MagicMock()
    oauth.authorization_url.return_value = AUTHORIZE_URL
    oauth.exchange_code = AsyncMock()
    oauth.close = AsyncMock()
    return oauth


@pytest.fixture
def callback_server(
    mock_oauth: MagicMock, sp_config: SharePointConfig
) -> Generator[AuthCallbackServer, None, None]:
    """Run a callback server on an ephemeral port in a background thread."""
    server = AuthCallbackServer(("127.0.0.1", 0), mock_oauth, sp_config)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()
    thread.join(timeout=5)


def _get(server: AuthCallbackServer, path: str) -> httpx.Response:
    host, port = server.server_address[:2]
    return httpx.get(f"http://{host}:{port}{path}", follow_redirects=False)


@pytest.mark.unit
class TestCallbackRoutes:
    """Tests for the callback server routes."""

    def test_should_report_health(self, callback_server: AuthCallbackServer) -> None:
        """Verify /health returns a JSON liveness probe."""
        response = _get(callback_server, "/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_should_redirect_to_authorize_url(self, callback_server: AuthCallbackServer) -> None:
        """Verify /auth/start redirects the browser to Microsoft sign-in."""
        response = _get(callback_server, "/auth/start")

        assert response.status_code == 302
        assert response.headers["Location"] == AUTHORIZE_URL

    def test_should_exchange_code(
        self, callback_server: AuthCallbackServer, mock_oauth: MagicMock
    ) -> None:
        """Verify a callback with a code completes the exchange."""
        response = _get(callback_server, "/auth/callback?code=abc123&state=sharepoint_mcp_auth")

        assert response.status_code == 200
        assert "Authentication Successful" in response.text
        mock_oauth.exchange_code.assert_awaited_once_with("abc123")
        mock_oauth.close.assert_awaited()
        assert callback_server.authenticated is True

    def test_should_report_provider_error(
        self, callback_server: AuthCallbackServer, mock_oauth: MagicMock
    ) -> None:
        """Verify an error callback renders the error without exchanging."""
        response = _get(
            callback_server,
            "/auth/callback?error=access_denied&error_description=User+cancelled",
        )

        assert response.status_code == 200
        assert "access_denied" in response.text
        assert "User cancelled" in response.text
        mock_oauth.exchange_code.assert_not_awaited()

    def test_should_reject_missing_code(self, callback_server: AuthCallbackServer) -> None:
        """Verify a callback without code is a bad request."""
        response = _get(callback_server, "/auth/callback")

        assert response.status_code == 400
        assert callback_server.authenticated is False

    def test_should_report_failed_exchange(
        self, callback_server: AuthCallbackServer, mock_oauth: MagicMock
    ) -> None:
        """Verify a rejected code yields a 500 page."""
        mock_oauth.exchange_code.side_effect = AuthProviderError(
            "invalid_grant", "<b>expired</b>"
        )

        response = _get(callback_server, "/auth/callback?code=stale")

        assert response.status_code == 500
        assert "&lt;b&gt;expired&lt;/b&gt;" in response.text
        assert callback_server.authenticated is False

    def test_should_show_index(self, callback_server: AuthCallbackServer) -> None:
        """Verify the index page shows configuration status."""
        response = _get(callback_server, "/")

        assert response.status_code == 200
        assert "Ready!" in response.text
        assert "/auth/start" in response.text

    def test_should_return_not_found(self, callback_server: AuthCallbackServer) -> None:
        """Verify unknown paths return 404."""
        assert _get(callback_server, "/nope").status_code == 404


@pytest.mark.unit
class TestCreateCallbackServer:
    """Tests for create_callback_server()."""

    def test_should_bind_redirect_uri_host(
        self, mock_oauth: MagicMock, sp_config: SharePointConfig
    ) -> None:
        """Verify the server listens on the redirect URI host."""
        config = sp_config.model_copy(update={"redirect_uri": "http://127.0.0.1:0/auth/callback"})

        server = create_callback_server(mock_oauth, config)
        try:
            assert server.server_address[0] == "127.0.0.1"
            assert server.server_address[1] != 0
            assert server.oauth is mock_oauth
        finally:
            server.server_close()

    def test_should_serve_custom_callback_path(
        self, mock_oauth: MagicMock, sp_config: SharePointConfig
    ) -> None:
        """Verify the code is accepted on the redirect URI's own path."""
        config = sp_config.model_copy(
            update={"redirect_uri": "http://127.0.0.1:0/oauth2/sharepoint/return"}
        )
        server = create_callback_server(mock_oauth, config)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        try:
            assert server.callback_path == "/oauth2/sharepoint/return"

            response = _get(server, "/oauth2/sharepoint/return?code=abc123")

            assert response.status_code == 200
            mock_oauth.exchange_code.assert_awaited_once_with("abc123")
            assert _get(server, "/auth/callback?code=abc123").status_code == 404
        finally:
            server.shutdown()
            server.server_close()
            thread.join(timeout=5)
