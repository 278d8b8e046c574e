"""Shared pytest fixtures for sharepoint-mcp tests.

This module provides reusable fixtures for token handling, OAuth, and
Graph clients wired to an in-memory ``httpx.MockTransport``.
"""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

from sharepoint_mcp.auth.models import TokenSet
from sharepoint_mcp.config import SharePointConfig

GRAPH_BASE = "https://graph.microsoft.com/v1.0"
DRIVE_BASE = "/v1.0/sites/site-1/drives/drive-1"

Handler = Callable[[httpx.Request], httpx.Response]

# =============================================================================
# Token Fixtures
# =============================================================================


@pytest.fixture
def valid_token() -> TokenSet:
    """Create a valid, non-expired token set."""
    return TokenSet(
        access_token="test_access_token_abc123",
        refresh_token="test_refresh_token_xyz789",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
    )


@pytest.fixture
def expired_token() -> TokenSet:
    """Create an expired token set that can still be refreshed."""
    return TokenSet(
        access_token="expired_access_token",
        refresh_token="test_refresh_token",
        expires_at=datetime.now(timezone.utc) - timedelta(hours=1),
    )


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def temp_token_path(tmp_path: Path) -> Path:
    """Get the path for a temporary token file."""
    return tmp_path / "tokens.json"


@pytest.fixture
def sp_config(temp_token_path: Path) -> SharePointConfig:
    """Create a fully configured SharePointConfig with pre-resolved site and drive."""
    return SharePointConfig(
        client_id="test-client-id",
        client_secret="test-client-secret",  # pragma: allowlist secret
        tenant_id="test-tenant",
        site_id="site-1",
        drive_id="drive-1",
        site_url="https://contoso.sharepoint.com/sites/Team",
        token_path=temp_token_path,
    )


# =============================================================================
# Token Storage Fixtures
# =============================================================================


@pytest.fixture
def token_storage(temp_token_path: Path):
    """Create a TokenStorage instance with temporary storage."""
    from sharepoint_mcp.auth.token_storage import TokenStorage

    return TokenStorage(token_path=temp_token_path)


@pytest.fixture
def authenticated_storage(token_storage, valid_token: TokenSet):
    """TokenStorage that already holds a valid token set."""
    token_storage.save(valid_token)
    return token_storage


# =============================================================================
# HTTP Mock Fixtures
# =============================================================================


@pytest.fixture
def mock_http() -> Callable[[Handler], httpx.AsyncClient]:
    """Factory for AsyncClients backed by an in-memory transport."""

    def _make(handler: Handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make


@pytest.fixture
def graph_factory(sp_config: SharePointConfig, mock_http):
    """Factory building a GraphClient whose HTTP traffic goes to ``handler``.

    The token manager shares the same transport, so refresh requests are
    visible to the handler too.
    """
    from sharepoint_mcp.auth.oauth_client import OAuthClient
    from sharepoint_mcp.auth.token_manager import TokenManager
    from sharepoint_mcp.auth.token_storage import TokenStorage
    from sharepoint_mcp.graph.client import GraphClient

    def _make(handler: Handler, config: SharePointConfig | None = None) -> GraphClient:
        config = config or sp_config
        client = mock_http(handler)
        storage = TokenStorage(config.token_path)
        manager = TokenManager(storage, OAuthClient(config, storage, http_client=client))
        return GraphClient(config, manager, http_client=client)

    return _make


# =============================================================================
# CLI Test Fixtures
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()
