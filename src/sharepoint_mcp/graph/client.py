"""Authenticated Microsoft Graph client for SharePoint document libraries.

Every request obtains a bearer token from TokenManager, so callers never
deal with tokens. Non-2xx responses become HttpError with the most useful
message available; 2xx responses are decoded leniently (empty bodies and
plain-text bodies are accepted).
"""

import json
import logging
from typing import Any
from urllib.parse import urljoin, urlparse

import httpx
from pydantic import ValidationError

from sharepoint_mcp.auth.token_manager import TokenManager
from sharepoint_mcp.config import SharePointConfig
from sharepoint_mcp.errors import ConfigurationError, HttpError, TooManyRedirects
from sharepoint_mcp.graph.models import (
    DriveContext,
    DriveItem,
    DriveItemPage,
    GraphErrorEnvelope,
    RequestDescriptor,
)
from sharepoint_mcp.graph.paths import resolve_folder_path

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
ERROR_BODY_PREVIEW = 200


def _error_message(response: httpx.Response) -> str:
    """Extract the best available error message from a failed response."""
    text = response.text
    if not text.strip():
        return f"HTTP {response.status_code}: Empty response"

    try:
        payload = json.loads(text)
    except ValueError:
        return f"HTTP {response.status_code}: {text[:ERROR_BODY_PREVIEW]}"

    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        try:
            message = GraphErrorEnvelope.model_validate(payload).best_message()
        except ValidationError:
            message = None
        if message:
            return message
    return f"HTTP {response.status_code}"


def parse_response(response: httpx.Response) -> Any:
    """Decode a Graph response or raise HttpError.

    Returns:
        Decoded JSON; ``{"success": True}`` for an empty 2xx body;
        ``{"rawData": text}`` for a non-JSON 2xx body.

    Raises:
        HttpError: If the status is outside [200, 300).
    """
    if not response.is_success:
        raise HttpError(response.status_code, _error_message(response))

    text = response.text
    if not text.strip():
        return {"success": True}

    try:
        return json.loads(text)
    except ValueError:
        return {"rawData": text}


class GraphClient:
    """Generic authenticated request executor for the Graph API.

    Attributes:
        config: Application settings (endpoints, limits, site addressing).
        tokens: Token manager providing bearer tokens.
    """

    def __init__(
        self,
        config: SharePointConfig,
        tokens: TokenManager,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.tokens = tokens
        self._http_client = http_client
        self._drive_context: DriveContext | None = None

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client with connection pooling."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
                timeout=httpx.Timeout(self.config.request_timeout, connect=10.0),
                follow_redirects=False,
            )
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client and release resources."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def build_url(self, endpoint: str) -> str:
        """Absolute URL for an endpoint relative to the Graph base URL."""
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.config.graph_api_endpoint}{endpoint}"

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        params: dict[str, Any] | None = None,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Make an authenticated request to the Graph API.

        Args:
            endpoint: Path relative to the Graph base URL, or an absolute URL.
            method: HTTP method.
            params: Query parameters; None values are omitted.
            body: JSON value, or str/bytes sent unchanged.
            headers: Extra request headers.

        Returns:
            Decoded response (see ``parse_response``).

        Raises:
            AuthRequired: If no valid token is available. No request is sent.
            HttpError: If the API returns a non-2xx status.
        """
        descriptor = RequestDescriptor(
            endpoint=endpoint,
            method=method.upper(),
            params=params or {},
            headers=headers or {},
            body=body,
        )
        return await self.execute(descriptor)

    async def execute(self, descriptor: RequestDescriptor) -> Any:
        """Execute a RequestDescriptor. See ``request`` for semantics."""
        access_token = await self.tokens.ensure_authenticated()
        client = self._get_http_client()

        request_headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        request_headers.update(descriptor.headers)

        content: bytes | str | None = None
        if isinstance(descriptor.body, (bytes, str)):
            content = descriptor.body
        elif descriptor.body is not None:
            content = json.dumps(descriptor.body)

        response = await client.request(
            method=descriptor.method,
            url=self.build_url(descriptor.endpoint),
            params=descriptor.query_params(),
            content=content,
            headers=request_headers,
        )
        return parse_response(response)

    async def upload_raw(
        self,
        endpoint: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> Any:
        """Upload raw bytes with PUT, creating or replacing the target file.

        Args:
            endpoint: Upload endpoint, normally ``{item path}/content``.
            content: File bytes.
            content_type: MIME type sent as Content-Type.

        Returns:
            Decoded response, normally the resulting DriveItem JSON.

        Raises:
            AuthRequired: If no valid token is available.
            HttpError: If the API returns a non-2xx status.
        """
        access_token = await self.tokens.ensure_authenticated()
        client = self._get_http_client()

        response = await client.put(
            self.build_url(endpoint),
            content=content,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": content_type,
                "Content-Length": str(len(content)),
            },
        )
        return parse_response(response)

    async def download_raw(self, url: str) -> bytes:
        """Download bytes from a URL, following redirects.

        A bearer token is attached only to requests for the Graph API host;
        pre-authenticated download URLs are fetched without one.

        Args:
            url: Graph content URL or a pre-authenticated download URL.

        Returns:
            The response body of the final, non-redirect response.

        Raises:
            AuthRequired: If a Graph-hosted hop needs a token and none is available.
            TooManyRedirects: If more than ``max_redirects`` hops are needed.
            HttpError: If the final response is not 2xx.
        """
        client = self._get_http_client()
        max_redirects = self.config.max_redirects

        for hop in range(max_redirects + 1):
            headers = {}
            if urlparse(url).hostname == self.config.api_host:
                access_token = await self.tokens.ensure_authenticated()
                headers["Authorization"] = f"Bearer {access_token}"

            response = await client.get(url, headers=headers)

            location = response.headers.get("Location")
            if response.status_code in REDIRECT_STATUSES and location:
                if hop == max_redirects:
                    raise TooManyRedirects(response.status_code, hop + 1)
                url = urljoin(url, location)
                continue

            if not response.is_success:
                raise HttpError(response.status_code, f"HTTP {response.status_code}")
            return response.content

        # Unreachable: the loop either returns or raises
        raise TooManyRedirects(0, max_redirects + 1)

    async def get_drive_context(self) -> DriveContext:
        """Resolve and cache the site ID and drive ID for the configured library.

        Raises:
            ConfigurationError: If the site cannot be addressed or no
                document library matches.
        """
        if self._drive_context is None:
            site_id = await self._resolve_site_id()
            drive_id = await self._resolve_drive_id(site_id)
            self._drive_context = DriveContext(site_id=site_id, drive_id=drive_id)
        return self._drive_context

    async def _resolve_site_id(self) -> str:
        if self.config.site_id:
            return self.config.site_id
        if not self.config.site_url:
            raise ConfigurationError(
                "Set SHAREPOINT_SITE_ID or SHAREPOINT_SITE_URL to address a SharePoint site."
            )

        parsed = urlparse(self.config.site_url)
        site = await self.request(f"/sites/{parsed.hostname}:{parsed.path.rstrip('/')}")
        return site["id"]

    async def _resolve_drive_id(self, site_id: str) -> str:
        if self.config.drive_id:
            return self.config.drive_id

        response = await self.request(f"/sites/{site_id}/drives")
        library = self.config.doc_library
        for drive in response.get("value", []):
            if (
                drive.get("name") == library
                or drive.get("name") == "Documents"
                or drive.get("driveType") == "documentLibrary"
            ):
                return drive["id"]

        raise ConfigurationError(f'Document library "{library}" not found')

    async def list_children(
        self,
        folder_path: str | None,
        item_filter: str | None = None,
        select: str | None = None,
        page_size: int | None = None,
        max_items: int | None = None,
        follow_next_link: bool = False,
    ) -> DriveItemPage:
        """List the children of a folder.

        Args:
            folder_path: Logical folder path; empty means the library root.
            item_filter: OData $filter, e.g. "folder ne null".
            select: OData $select field list.
            page_size: $top for each page (default: config default_page_size).
            max_items: Upper bound on returned items, capped at max_result_count.
            follow_next_link: Follow @odata.nextLink until max_items is reached.

        Returns:
            DriveItemPage with the collected items. ``next_link`` is set if
            more items were available.
        """
        context = await self.get_drive_context()
        page_size = page_size or self.config.default_page_size
        max_items = min(max_items or page_size, self.config.max_result_count)

        data = await self.request(
            f"{context.base_path}{resolve_folder_path(folder_path)}/children",
            params={"$filter": item_filter, "$select": select, "$top": page_size},
        )
        page = DriveItemPage.model_validate(data)
        items = list(page.value)

        while follow_next_link and page.next_link and len(items) < max_items:
            page = DriveItemPage.model_validate(await self.request(page.next_link))
            items.extend(page.value)

        return DriveItemPage(value=items[:max_items], next_link=page.next_link)

    async def get_item(
        self,
        item_path: str,
        select: str | None = None,
        expand: str | None = None,
    ) -> DriveItem:
        """Fetch a single drive item by its resolved Graph path segment."""
        context = await self.get_drive_context()
        data = await self.request(
            f"{context.base_path}{item_path}",
            params={"$select": select, "$expand": expand},
        )
        return DriveItem.model_validate(data)
