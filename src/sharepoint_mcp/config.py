"""Configuration for the SharePoint MCP server.

Values are read from environment variables once at startup by
``load_config()``. Limits that callers rarely need to change (page sizes,
traversal bounds, redirect caps) are plain defaults on the model.

Environment Variables:
    SHAREPOINT_CLIENT_ID: Azure AD application (client) ID.
    SHAREPOINT_CLIENT_SECRET: Azure AD client secret value.
    SHAREPOINT_TENANT_ID: Azure AD directory (tenant) ID.
    SHAREPOINT_REDIRECT_URI: OAuth redirect URI (default: http://localhost:3334/auth/callback).
    SHAREPOINT_SCOPES: Space separated delegated scopes.
    SHAREPOINT_TOKEN_PATH: Token file location (default: ~/.sharepoint-mcp-tokens.json).
    SHAREPOINT_SITE_URL: Full SharePoint site URL.
    SHAREPOINT_SITE_ID: Graph site ID (skips site lookup when set).
    SHAREPOINT_DRIVE_ID: Graph drive ID (skips library lookup when set).
    SHAREPOINT_DOC_LIBRARY: Document library name (default: Shared Documents).
"""

import os
from pathlib import Path
from urllib.parse import urlparse

from pydantic import BaseModel, Field

SERVER_NAME = "sharepoint-mcp"

DEFAULT_GRAPH_ENDPOINT = "https://graph.microsoft.com/v1.0"
DEFAULT_AUTHORITY = "https://login.microsoftonline.com"
DEFAULT_REDIRECT_URI = "http://localhost:3334/auth/callback"
DEFAULT_TOKEN_PATH = Path.home() / ".sharepoint-mcp-tokens.json"

SHAREPOINT_SCOPES = [
    "Sites.Read.All",
    "Sites.ReadWrite.All",
    "Files.Read.All",
    "Files.ReadWrite.All",
    "offline_access",
]

# Graph $select field lists
DOCUMENT_SELECT_FIELDS = (
    "id,name,size,createdDateTime,lastModifiedDateTime,webUrl,file,folder,parentReference"
)
DOCUMENT_DETAIL_FIELDS = DOCUMENT_SELECT_FIELDS + ",@microsoft.graph.downloadUrl"
FOLDER_SELECT_FIELDS = "id,name,folder,webUrl,parentReference,createdDateTime,lastModifiedDateTime"


class SharePointConfig(BaseModel):
    """Settings for authentication, site addressing and request limits.

    Attributes:
        client_id: Azure AD application (client) ID.
        client_secret: Azure AD client secret.
        tenant_id: Azure AD tenant ID.
        redirect_uri: Redirect URI registered for the application.
        scopes: Delegated scopes requested during authorization.
        token_path: Where the token set is persisted.
        site_url: SharePoint site URL used to look up the site ID.
        site_id: Pre-resolved site ID.
        drive_id: Pre-resolved drive ID.
        doc_library: Library name used when looking up the drive.
    """

    client_id: str = ""
    client_secret: str = ""
    tenant_id: str = ""
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scopes: list[str] = Field(default_factory=lambda: list(SHAREPOINT_SCOPES))
    token_path: Path = DEFAULT_TOKEN_PATH

    site_url: str = ""
    site_id: str = ""
    drive_id: str = ""
    doc_library: str = "Shared Documents"

    graph_api_endpoint: str = DEFAULT_GRAPH_ENDPOINT
    authority: str = DEFAULT_AUTHORITY

    default_page_size: int = 100
    max_result_count: int = 200
    max_tree_depth: int = 15
    max_folders_per_level: int = 100
    tree_concurrency: int = 8
    max_redirects: int = 5
    request_timeout: float = 30.0

    @property
    def is_configured(self) -> bool:
        """True when enough is set to start an authorization flow."""
        return bool(self.client_id and self.tenant_id)

    @property
    def token_endpoint(self) -> str:
        return f"{self.authority}/{self.tenant_id}/oauth2/v2.0/token"

    @property
    def authorize_endpoint(self) -> str:
        return f"{self.authority}/{self.tenant_id}/oauth2/v2.0/authorize"

    @property
    def api_host(self) -> str:
        """Hostname of the Graph API; only requests to it carry a bearer token."""
        return urlparse(self.graph_api_endpoint).hostname or ""

    @property
    def auth_server_url(self) -> str:
        """Base URL of the local callback server derived from the redirect URI."""
        parsed = urlparse(self.redirect_uri)
        return f"{parsed.scheme}://{parsed.netloc}"


def load_config() -> SharePointConfig:
    """Construct a SharePointConfig from environment variables.

    Returns:
        Configured SharePointConfig instance.
    """
    env = os.environ
    scopes = env.get("SHAREPOINT_SCOPES", "").split()
    token_path = env.get("SHAREPOINT_TOKEN_PATH")

    return SharePointConfig(
        client_id=env.get("SHAREPOINT_CLIENT_ID", ""),
        client_secret=env.get("SHAREPOINT_CLIENT_SECRET", ""),
        tenant_id=env.get("SHAREPOINT_TENANT_ID", ""),
        redirect_uri=env.get("SHAREPOINT_REDIRECT_URI", DEFAULT_REDIRECT_URI),
        scopes=scopes or list(SHAREPOINT_SCOPES),
        token_path=Path(token_path).expanduser() if token_path else DEFAULT_TOKEN_PATH,
        site_url=env.get("SHAREPOINT_SITE_URL", ""),
        site_id=env.get("SHAREPOINT_SITE_ID", ""),
        drive_id=env.get("SHAREPOINT_DRIVE_ID", ""),
        doc_library=env.get("SHAREPOINT_DOC_LIBRARY", "Shared Documents"),
        graph_api_endpoint=env.get("SHAREPOINT_GRAPH_ENDPOINT", DEFAULT_GRAPH_ENDPOINT),
        authority=env.get("SHAREPOINT_AUTHORITY", DEFAULT_AUTHORITY),
    )
