"""Unit tests for GraphClient request execution, downloads, and listings."""

import json

import httpx
import pytest

from sharepoint_mcp.config import SharePointConfig
from sharepoint_mcp.errors import AuthRequired, ConfigurationError, HttpError, TooManyRedirects
from sharepoint_mcp.graph.client import parse_response

GRAPH_BASE = "https://graph.microsoft.com/v1.0"
DRIVE_BASE = "/v1.0/sites/site-1/drives/drive-1"


class RecordingHandler:
    """Transport handler returning queued responses and recording requests."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self.responses) == 1:
            return self.responses[0]
        return self.responses.pop(0)


@pytest.mark.unit
class TestParseResponse:
    """Tests for parse_response()."""

    def test_should_map_empty_success_body(self) -> None:
        """Verify a 204 yields a success marker."""
        assert parse_response(httpx.Response(204)) == {"success": True}

    def test_should_wrap_non_json_success_body(self) -> None:
        """Verify plain text 2xx bodies are wrapped, not rejected."""
        assert parse_response(httpx.Response(200, text="hello")) == {"rawData": "hello"}

    def test_should_use_graph_error_message(self) -> None:
        """Verify the Graph error envelope message is preferred."""
        response = httpx.Response(
            404, json={"error": {"code": "itemNotFound", "message": "Item not found"}}
        )
        with pytest.raises(HttpError) as exc_info:
            parse_response(response)

        assert exc_info.value.status == 404
        assert str(exc_info.value) == "Item not found"

    def test_should_fall_back_to_error_code(self) -> None:
        """Verify the error code is used when no message is given."""
        with pytest.raises(HttpError, match="accessDenied"):
            parse_response(httpx.Response(403, json={"error": {"code": "accessDenied"}}))

    def test_should_report_empty_error_body(self) -> None:
        """Verify an empty error body is described as such."""
        with pytest.raises(HttpError, match="HTTP 503: Empty response"):
            parse_response(httpx.Response(503))

    def test_should_truncate_non_json_error_body(self) -> None:
        """Verify non-JSON error text is included, truncated to 200 characters."""
        with pytest.raises(HttpError) as exc_info:
            parse_response(httpx.Response(500, text="x" * 500))

        assert exc_info.value.message == "HTTP 500: " + "x" * 200

    def test_should_report_bare_status_for_unexpected_json(self) -> None:
        """Verify JSON error bodies without an envelope report the status."""
        with pytest.raises(HttpError, match="^HTTP 400$"):
            parse_response(httpx.Response(400, json=["unexpected"]))

    def test_should_report_bare_status_for_malformed_envelope(self) -> None:
        """Verify an error envelope with non-string fields still raises HttpError."""
        with pytest.raises(HttpError, match="^HTTP 502$") as exc_info:
            parse_response(httpx.Response(502, json={"error": {"code": 123}}))

        assert exc_info.value.status == 502


@pytest.mark.unit
class TestGraphRequest:
    """Tests for GraphClient.request()."""

    @pytest.mark.asyncio
    async def test_should_send_bearer_and_json_headers(
        self, graph_factory, authenticated_storage, valid_token
    ) -> None:
        """Verify every request carries the current access token."""
        handler = RecordingHandler(httpx.Response(200, json={"id": "1"}))
        graph = graph_factory(handler)

        assert await graph.request("/me") == {"id": "1"}

        request = handler.requests[0]
        assert request.url.host == "graph.microsoft.com"
        assert request.url.path == "/v1.0/me"
        assert request.headers["Authorization"] == f"Bearer {valid_token.access_token}"
        assert request.headers["Accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_should_omit_none_query_params(self, graph_factory, authenticated_storage) -> None:
        """Verify None-valued params are dropped and others stringified."""
        handler = RecordingHandler(httpx.Response(200, json={}))
        graph = graph_factory(handler)

        await graph.request("/items", params={"$select": None, "$top": 5, "flag": True})

        params = handler.requests[0].url.params
        assert "$select" not in params
        assert params["$top"] == "5"
        assert params["flag"] == "true"

    @pytest.mark.asyncio
    async def test_should_serialize_json_body(self, graph_factory, authenticated_storage) -> None:
        """Verify dict bodies are sent as JSON."""
        handler = RecordingHandler(httpx.Response(201, json={"id": "new"}))
        graph = graph_factory(handler)

        await graph.request("/items", method="post", body={"name": "x"})

        request = handler.requests[0]
        assert request.method == "POST"
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.content) == {"name": "x"}

    @pytest.mark.asyncio
    async def test_should_raise_http_error(self, graph_factory, authenticated_storage) -> None:
        """Verify non-2xx responses raise HttpError."""
        handler = RecordingHandler(
            httpx.Response(409, json={"error": {"code": "nameAlreadyExists", "message": "Exists"}})
        )
        graph = graph_factory(handler)

        with pytest.raises(HttpError) as exc_info:
            await graph.request("/items", method="POST", body={})

        assert exc_info.value.status == 409

    @pytest.mark.asyncio
    async def test_should_not_send_request_when_unauthenticated(self, graph_factory) -> None:
        """Verify AuthRequired is raised before any network traffic."""
        handler = RecordingHandler(httpx.Response(200, json={}))
        graph = graph_factory(handler)

        with pytest.raises(AuthRequired):
            await graph.request("/me")

        assert handler.requests == []


@pytest.mark.unit
class TestUploadRaw:
    """Tests for GraphClient.upload_raw()."""

    @pytest.mark.asyncio
    async def test_should_put_bytes(self, graph_factory, authenticated_storage) -> None:
        """Verify raw bytes are PUT with content headers."""
        handler = RecordingHandler(httpx.Response(201, json={"id": "f1", "name": "a.bin"}))
        graph = graph_factory(handler)

        result = await graph.upload_raw("/drives/d/root:/a.bin:/content", b"\x00\x01\x02")

        request = handler.requests[0]
        assert request.method == "PUT"
        assert request.content == b"\x00\x01\x02"
        assert request.headers["Content-Type"] == "application/octet-stream"
        assert request.headers["Content-Length"] == "3"
        assert result["id"] == "f1"


@pytest.mark.unit
class TestDownloadRaw:
    """Tests for GraphClient.download_raw()."""

    @pytest.mark.asyncio
    async def test_should_follow_redirect_and_drop_auth_off_host(
        self, graph_factory, authenticated_storage
    ) -> None:
        """Verify the bearer token is only sent to the Graph host."""
        handler = RecordingHandler(
            httpx.Response(302, headers={"Location": "https://contoso.sharepoint.com/dl/a.txt?t=1"}),
            httpx.Response(200, content=b"file bytes"),
        )
        graph = graph_factory(handler)

        data = await graph.download_raw(f"{GRAPH_BASE}/drives/d/items/1/content")

        assert data == b"file bytes"
        first, second = handler.requests
        assert "Authorization" in first.headers
        assert second.url.host == "contoso.sharepoint.com"
        assert "Authorization" not in second.headers

    @pytest.mark.asyncio
    async def test_should_resolve_relative_location(
        self, graph_factory, authenticated_storage
    ) -> None:
        """Verify relative Location headers resolve against the current URL."""
        handler = RecordingHandler(
            httpx.Response(307, headers={"Location": "/dl/other"}),
            httpx.Response(200, content=b"ok"),
        )
        graph = graph_factory(handler)

        assert await graph.download_raw("https://files.example.com/dl/first") == b"ok"
        assert str(handler.requests[1].url) == "https://files.example.com/dl/other"

    @pytest.mark.asyncio
    async def test_should_not_require_token_for_preauthenticated_url(
        self, graph_factory
    ) -> None:
        """Verify downloads from other hosts work without any stored token."""
        handler = RecordingHandler(httpx.Response(200, content=b"public"))
        graph = graph_factory(handler)

        assert await graph.download_raw("https://contoso.sharepoint.com/dl/x") == b"public"

    @pytest.mark.asyncio
    async def test_should_stop_after_redirect_cap(
        self, graph_factory, sp_config: SharePointConfig
    ) -> None:
        """Verify an endless redirect chain raises TooManyRedirects."""
        handler = RecordingHandler(
            httpx.Response(302, headers={"Location": "https://cdn.example.com/loop"})
        )
        graph = graph_factory(handler)

        with pytest.raises(TooManyRedirects) as exc_info:
            await graph.download_raw("https://cdn.example.com/start")

        assert len(handler.requests) == sp_config.max_redirects + 1
        assert exc_info.value.hops == sp_config.max_redirects + 1

    @pytest.mark.asyncio
    async def test_should_raise_for_failed_download(self, graph_factory) -> None:
        """Verify a non-2xx final response raises HttpError."""
        graph = graph_factory(RecordingHandler(httpx.Response(410)))

        with pytest.raises(HttpError) as exc_info:
            await graph.download_raw("https://cdn.example.com/gone")

        assert exc_info.value.status == 410


@pytest.mark.unit
class TestDriveContext:
    """Tests for site and drive resolution."""

    @pytest.mark.asyncio
    async def test_should_use_configured_ids_without_lookup(self, graph_factory) -> None:
        """Verify pre-resolved IDs need no requests."""
        handler = RecordingHandler(httpx.Response(500))
        graph = graph_factory(handler)

        context = await graph.get_drive_context()

        assert context.base_path == "/sites/site-1/drives/drive-1"
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_should_resolve_site_and_library(
        self, graph_factory, sp_config: SharePointConfig, authenticated_storage
    ) -> None:
        """Verify the site URL and library name are looked up once."""
        config = sp_config.model_copy(update={"site_id": "", "drive_id": ""})

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v1.0/sites/contoso.sharepoint.com:/sites/Team":
                return httpx.Response(200, json={"id": "resolved-site"})
            if request.url.path == "/v1.0/sites/resolved-site/drives":
                return httpx.Response(
                    200,
                    json={
                        "value": [
                            {"id": "other", "name": "Archive", "driveType": "business"},
                            {"id": "docs", "name": "Shared Documents", "driveType": "business"},
                        ]
                    },
                )
            return httpx.Response(404)

        graph = graph_factory(handler, config)

        context = await graph.get_drive_context()

        assert context.site_id == "resolved-site"
        assert context.drive_id == "docs"
        assert await graph.get_drive_context() is context

    @pytest.mark.asyncio
    async def test_should_fail_without_site_address(
        self, graph_factory, sp_config: SharePointConfig
    ) -> None:
        """Verify a missing site URL and ID is a configuration error."""
        config = sp_config.model_copy(update={"site_id": "", "site_url": ""})
        graph = graph_factory(RecordingHandler(httpx.Response(500)), config)

        with pytest.raises(ConfigurationError):
            await graph.get_drive_context()


@pytest.mark.unit
class TestListChildren:
    """Tests for GraphClient.list_children()."""

    @pytest.mark.asyncio
    async def test_should_send_filter_select_and_top(
        self, graph_factory, authenticated_storage
    ) -> None:
        """Verify OData parameters and the resolved folder path."""
        handler = RecordingHandler(httpx.Response(200, json={"value": [{"id": "1", "name": "A"}]}))
        graph = graph_factory(handler)

        page = await graph.list_children(
            "My Folder", item_filter="folder ne null", select="id,name", page_size=50
        )

        request = handler.requests[0]
        assert request.url.path == f"{DRIVE_BASE}/root:/My Folder:/children"
        assert request.url.params["$filter"] == "folder ne null"
        assert request.url.params["$select"] == "id,name"
        assert request.url.params["$top"] == "50"
        assert [item.name for item in page.value] == ["A"]

    @pytest.mark.asyncio
    async def test_should_follow_next_links_up_to_max_items(
        self, graph_factory, authenticated_storage
    ) -> None:
        """Verify pagination stops once enough items are collected."""
        next_link = f"{GRAPH_BASE}/sites/site-1/drives/drive-1/root/children?$skiptoken=abc"
        handler = RecordingHandler(
            httpx.Response(
                200,
                json={
                    "value": [{"name": "a"}, {"name": "b"}],
                    "@odata.nextLink": next_link,
                },
            ),
            httpx.Response(200, json={"value": [{"name": "c"}, {"name": "d"}]}),
        )
        graph = graph_factory(handler)

        page = await graph.list_children(
            "", page_size=2, max_items=3, follow_next_link=True
        )

        assert [item.name for item in page.value] == ["a", "b", "c"]
        assert handler.requests[1].url.params["$skiptoken"] == "abc"

    @pytest.mark.asyncio
    async def test_should_not_follow_next_link_by_default(
        self, graph_factory, authenticated_storage
    ) -> None:
        """Verify a single page is fetched unless asked otherwise."""
        handler = RecordingHandler(
            httpx.Response(
                200,
                json={"value": [{"name": "a"}], "@odata.nextLink": f"{GRAPH_BASE}/next"},
            )
        )
        graph = graph_factory(handler)

        page = await graph.list_children("Reports")

        assert len(handler.requests) == 1
        assert page.next_link == f"{GRAPH_BASE}/next"
