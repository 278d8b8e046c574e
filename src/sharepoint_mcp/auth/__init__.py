"""OAuth authentication for SharePoint MCP.

This package manages the delegated OAuth2 token lifecycle against the
Microsoft identity platform.

Quick Start:
    ```python
    from sharepoint_mcp.auth import OAuthClient, TokenManager, TokenStorage
    from sharepoint_mcp.config import load_config

    config = load_config()
    storage = TokenStorage(config.token_path)
    manager = TokenManager(storage, OAuthClient(config, storage))

    token = await manager.get_valid_token()
    ```
"""

from sharepoint_mcp.auth.models import TokenSet, TokenStatus
from sharepoint_mcp.auth.oauth_client import OAuthClient
from sharepoint_mcp.auth.token_manager import TokenManager
from sharepoint_mcp.auth.token_storage import TokenStorage

__all__ = [
    "OAuthClient",
    "TokenManager",
    "TokenSet",
    "TokenStatus",
    "TokenStorage",
]
