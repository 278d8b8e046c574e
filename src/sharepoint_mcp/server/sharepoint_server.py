"""SharePoint MCP server for Claude Desktop integration.

This MCP server exposes a SharePoint document library through Microsoft
Graph: listing, reading, uploading, updating, deleting and downloading
documents, managing folders, and walking folder trees.

Tokens come from the delegated OAuth flow completed by the local auth
server (``sharepoint-mcp auth-server``) and are refreshed automatically.
"""

import asyncio
import base64
import binascii
import json
import logging
import re
from pathlib import Path
from typing import Any

import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from sharepoint_mcp.auth import OAuthClient, TokenManager, TokenStorage
from sharepoint_mcp.config import (
    DOCUMENT_DETAIL_FIELDS,
    DOCUMENT_SELECT_FIELDS,
    FOLDER_SELECT_FIELDS,
    SERVER_NAME,
    SharePointConfig,
    load_config,
)
from sharepoint_mcp.errors import AuthRequired, HttpError
from sharepoint_mcp.graph import FolderTreeBuilder, GraphClient, resolve_file_path, resolve_folder_path
from sharepoint_mcp.graph.tree import DEFAULT_TREE_DEPTH

# Configure logging (stderr; stdout carries the MCP protocol)
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

AUTH_REQUIRED_TEXT = "Authentication required. Please use the 'authenticate' tool first."

TEXT_MIME_MARKERS = ("text/", "application/json", "application/xml", "application/javascript")
TEXT_EXTENSIONS = re.compile(
    r"\.(txt|md|json|xml|html|css|js|ts|py|java|c|cpp|h|yml|yaml|csv|log)$", re.IGNORECASE
)

_FOLDER_PATH_PROPERTY = {
    "type": "string",
    "description": "Folder containing the document",
}
_FILE_NAME_PROPERTY = {
    "type": "string",
    "description": "Name of the file",
}


def _failure(message: str) -> dict[str, Any]:
    return {"success": False, "error": message}


def _file_summary(item: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": item.get("id"),
        "name": item.get("name"),
        "size": item.get("size"),
        "webUrl": item.get("webUrl"),
    }


def _decode_content(content: str, is_base64: bool) -> bytes:
    if is_base64:
        try:
            return base64.b64decode(content, validate=True)
        except binascii.Error as err:
            raise ValueError("Content is not valid base64.") from err
    return content.encode("utf-8")


def is_text_file(file_name: str, mime_type: str) -> bool:
    """Decide whether downloaded content should be returned as text."""
    return any(marker in mime_type for marker in TEXT_MIME_MARKERS) or bool(
        TEXT_EXTENSIONS.search(file_name)
    )


class SharePointServer:
    """MCP server for a SharePoint document library.

    Attributes:
        server: MCP Server instance.
        config: Application settings.
        storage: TokenStorage persisting the OAuth token set.
        oauth: OAuthClient for token endpoint exchanges.
        tokens: TokenManager handing out valid access tokens.
        graph: GraphClient executing authenticated Graph requests.
        tree_builder: FolderTreeBuilder used by get_folder_tree.
    """

    def __init__(
        self,
        config: SharePointConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the SharePoint MCP server.

        Args:
            config: Settings; loaded from the environment when omitted.
            http_client: Shared HTTP client (injected by tests).
        """
        self.config = config or load_config()
        self.server = Server(SERVER_NAME)
        self.storage = TokenStorage(self.config.token_path)
        self.oauth = OAuthClient(self.config, self.storage, http_client=http_client)
        self.tokens = TokenManager(self.storage, self.oauth)
        self.graph = GraphClient(self.config, self.tokens, http_client=http_client)
        self.tree_builder = FolderTreeBuilder(self.graph)
        self._setup_handlers()

    async def close(self) -> None:
        """Close HTTP clients and release resources."""
        await self.graph.close()
        await self.oauth.close()

    def _setup_handlers(self) -> None:
        """Register MCP tool handlers."""

        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            """Return list of available tools."""
            return self.tool_definitions()

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            """Handle tool calls."""
            return await self.handle_tool_call(name, arguments)

    def tool_definitions(self) -> list[Tool]:
        """Declare every tool with its input schema."""
        return [
            Tool(
                name="authenticate",
                description=(
                    "Start the SharePoint authentication process. Returns a URL that the user "
                    "must open in a browser. The auth server must be running first "
                    "(sharepoint-mcp auth-server)."
                ),
                inputSchema={"type": "object", "properties": {}, "required": []},
            ),
            Tool(
                name="check_auth_status",
                description="Check the current SharePoint authentication status",
                inputSchema={"type": "object", "properties": {}, "required": []},
            ),
            Tool(
                name="logout",
                description="Clear SharePoint authentication tokens and log out",
                inputSchema={"type": "object", "properties": {}, "required": []},
            ),
            Tool(
                name="list_folders",
                description=(
                    "List all folders in a specified SharePoint directory. "
                    "Returns folder names, IDs, and metadata."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "parent_folder": {
                            "type": "string",
                            "description": (
                                "Parent folder path relative to document library root. "
                                "Leave empty for root folder."
                            ),
                        },
                    },
                    "required": [],
                },
            ),
            Tool(
                name="create_folder",
                description="Create a new folder in SharePoint",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "folder_name": {
                            "type": "string",
                            "description": "Name of the folder to create",
                        },
                        "parent_folder": {
                            "type": "string",
                            "description": "Parent folder path. Leave empty to create in root.",
                        },
                    },
                    "required": ["folder_name"],
                },
            ),
            Tool(
                name="delete_folder",
                description="Delete a folder from SharePoint. The folder must be empty.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "folder_path": {
                            "type": "string",
                            "description": "Path to the folder to delete",
                        },
                    },
                    "required": ["folder_path"],
                },
            ),
            Tool(
                name="get_folder_tree",
                description=(
                    "Get a recursive tree view of folders in SharePoint. "
                    "Useful for understanding folder structure."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "parent_folder": {
                            "type": "string",
                            "description": "Starting folder path. Leave empty for root.",
                        },
                        "max_depth": {
                            "type": "integer",
                            "description": (
                                f"Maximum depth to traverse (default: {DEFAULT_TREE_DEPTH}, "
                                f"max: {self.config.max_tree_depth})"
                            ),
                            "default": DEFAULT_TREE_DEPTH,
                        },
                    },
                    "required": [],
                },
            ),
            Tool(
                name="list_documents",
                description=(
                    "List all documents (files) in a specified SharePoint folder. "
                    "Returns file names, sizes, and metadata."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "folder_path": {
                            "type": "string",
                            "description": (
                                "Folder path relative to document library root. "
                                "Leave empty for root folder."
                            ),
                        },
                    },
                    "required": [],
                },
            ),
            Tool(
                name="get_document_content",
                description=(
                    "Get the content of a document from SharePoint. Works best with "
                    "text-based files (txt, json, md, etc); other files are returned base64-encoded."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "folder_path": _FOLDER_PATH_PROPERTY,
                        "file_name": {"type": "string", "description": "Name of the file to read"},
                    },
                    "required": ["file_name"],
                },
            ),
            Tool(
                name="upload_document",
                description=(
                    "Upload a new document to SharePoint. For text content, provide the content "
                    "directly. For binary files, provide base64-encoded content."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "folder_path": {"type": "string", "description": "Destination folder path"},
                        "file_name": {
                            "type": "string",
                            "description": "Name for the uploaded file",
                        },
                        "content": {
                            "type": "string",
                            "description": "File content (text or base64-encoded)",
                        },
                        "is_base64": {
                            "type": "boolean",
                            "description": "Set to true if content is base64-encoded",
                            "default": False,
                        },
                    },
                    "required": ["file_name", "content"],
                },
            ),
            Tool(
                name="upload_document_from_path",
                description="Upload a file from the local filesystem to SharePoint",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "local_path": {"type": "string", "description": "Local file path to upload"},
                        "folder_path": {
                            "type": "string",
                            "description": "Destination folder in SharePoint",
                        },
                        "new_file_name": {
                            "type": "string",
                            "description": "Optional new name for the file in SharePoint",
                        },
                    },
                    "required": ["local_path"],
                },
            ),
            Tool(
                name="update_document",
                description="Update an existing document in SharePoint with new content",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "folder_path": _FOLDER_PATH_PROPERTY,
                        "file_name": {"type": "string", "description": "Name of the file to update"},
                        "content": {"type": "string", "description": "New file content"},
                        "is_base64": {
                            "type": "boolean",
                            "description": "Set to true if content is base64-encoded",
                            "default": False,
                        },
                    },
                    "required": ["file_name", "content"],
                },
            ),
            Tool(
                name="delete_document",
                description="Delete a document from SharePoint",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "folder_path": _FOLDER_PATH_PROPERTY,
                        "file_name": {"type": "string", "description": "Name of the file to delete"},
                    },
                    "required": ["file_name"],
                },
            ),
            Tool(
                name="download_document",
                description="Download a document from SharePoint to the local filesystem",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "folder_path": {
                            "type": "string",
                            "description": "SharePoint folder containing the document",
                        },
                        "file_name": {
                            "type": "string",
                            "description": "Name of the file to download",
                        },
                        "local_path": {
                            "type": "string",
                            "description": "Local path to save the file (including filename)",
                        },
                    },
                    "required": ["file_name", "local_path"],
                },
            ),
            Tool(
                name="get_file_metadata",
                description="Get metadata fields for a SharePoint file",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "folder_path": _FOLDER_PATH_PROPERTY,
                        "file_name": _FILE_NAME_PROPERTY,
                    },
                    "required": ["file_name"],
                },
            ),
            Tool(
                name="update_file_metadata",
                description="Update metadata fields for a SharePoint file",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "folder_path": _FOLDER_PATH_PROPERTY,
                        "file_name": _FILE_NAME_PROPERTY,
                        "metadata": {
                            "type": "object",
                            "description": "Object containing field names and values to update",
                        },
                    },
                    "required": ["file_name", "metadata"],
                },
            ),
        ]

    async def handle_tool_call(self, name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Run a tool and render its result (or failure) as a JSON text block."""
        try:
            result = await self._dispatch_tool(name, arguments or {})
        except AuthRequired:
            return [TextContent(type="text", text=AUTH_REQUIRED_TEXT)]
        except Exception as e:
            logger.exception(f"Error calling tool {name}")
            result = _failure(str(e))
        return [TextContent(type="text", text=json.dumps(result, indent=2))]

    async def _dispatch_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Dispatch tool call to appropriate handler.

        Raises:
            ValueError: If tool name is not recognized.
        """
        handlers = {
            # Authentication
            "authenticate": self._authenticate,
            "check_auth_status": self._check_auth_status,
            "logout": self._logout,
            # Folders
            "list_folders": self._list_folders,
            "create_folder": self._create_folder,
            "delete_folder": self._delete_folder,
            "get_folder_tree": self._get_folder_tree,
            # Documents
            "list_documents": self._list_documents,
            "get_document_content": self._get_document_content,
            "upload_document": self._upload_document,
            "upload_document_from_path": self._upload_document_from_path,
            "update_document": self._update_document,
            "delete_document": self._delete_document,
            "download_document": self._download_document,
            "get_file_metadata": self._get_file_metadata,
            "update_file_metadata": self._update_file_metadata,
        }

        handler = handlers.get(name)
        if handler is None:
            raise ValueError(f"Unknown tool: {name}")

        return await handler(arguments)

    # ------------------------------------------------------------------
    # Authentication tools
    # ------------------------------------------------------------------

    async def _authenticate(self, arguments: dict[str, Any]) -> dict[str, Any]:
        if self.tokens.is_authenticated():
            return {
                "status": "already_authenticated",
                "message": (
                    "You are already authenticated with SharePoint. Use check_auth_status "
                    "to verify or logout to re-authenticate."
                ),
            }

        if not self.config.is_configured:
            return {
                "status": "error",
                "message": (
                    "Missing SHAREPOINT_CLIENT_ID or SHAREPOINT_TENANT_ID environment variables. "
                    "Please configure these before authenticating."
                ),
            }

        return {
            "status": "auth_required",
            "message": (
                "Please open the following URL in your browser to authenticate with SharePoint. "
                "Make sure the auth server is running first (sharepoint-mcp auth-server)."
            ),
            "authUrl": self.oauth.authorization_url(),
            "authServerUrl": self.config.auth_server_url,
            "instructions": [
                "1. Start the auth server: sharepoint-mcp auth-server",
                "2. Open the authUrl in your browser",
                "3. Sign in with your Microsoft account",
                "4. Grant the requested permissions",
                "5. You'll be redirected back and authentication will complete automatically",
            ],
        }

    async def _check_auth_status(self, arguments: dict[str, Any]) -> dict[str, Any]:
        authenticated = self.tokens.is_authenticated()
        return {
            "authenticated": authenticated,
            "message": (
                "Successfully authenticated with SharePoint"
                if authenticated
                else "Not authenticated. Use the authenticate tool to begin authentication."
            ),
            "siteUrl": self.config.site_url if authenticated else None,
        }

    async def _logout(self, arguments: dict[str, Any]) -> dict[str, Any]:
        self.tokens.clear()
        return {
            "status": "logged_out",
            "message": "Successfully logged out. Use authenticate to log in again.",
        }

    # ------------------------------------------------------------------
    # Folder tools
    # ------------------------------------------------------------------

    async def _list_folders(self, arguments: dict[str, Any]) -> dict[str, Any]:
        parent_folder = arguments.get("parent_folder") or ""
        page = await self.graph.list_children(
            parent_folder,
            item_filter="folder ne null",
            select=FOLDER_SELECT_FIELDS,
            page_size=self.config.default_page_size,
            max_items=self.config.max_result_count,
            follow_next_link=True,
        )

        folders = [
            {
                "id": item.id,
                "name": item.name,
                "webUrl": item.web_url,
                "createdDateTime": item.created_date_time,
                "lastModifiedDateTime": item.last_modified_date_time,
                "childCount": item.child_count,
            }
            for item in page.value
        ]
        return {
            "success": True,
            "path": parent_folder or "/",
            "count": len(folders),
            "folders": folders,
        }

    async def _create_folder(self, arguments: dict[str, Any]) -> dict[str, Any]:
        folder_name = arguments.get("folder_name")
        parent_folder = arguments.get("parent_folder") or ""
        if not folder_name:
            return _failure("Folder name is required.")

        context = await self.graph.get_drive_context()
        response = await self.graph.request(
            f"{context.base_path}{resolve_folder_path(parent_folder)}/children",
            method="POST",
            body={
                "name": folder_name,
                "folder": {},
                "@microsoft.graph.conflictBehavior": "fail",
            },
        )

        location = f'inside "{parent_folder}"' if parent_folder else "at the root level"
        return {
            "success": True,
            "message": f'Successfully created folder "{folder_name}" {location}.',
            "folder": {
                "id": response.get("id"),
                "name": response.get("name"),
                "webUrl": response.get("webUrl"),
            },
        }

    async def _delete_folder(self, arguments: dict[str, Any]) -> dict[str, Any]:
        folder_path = arguments.get("folder_path")
        if not folder_path:
            return _failure("Folder path is required.")

        # The service deletes non-empty folders, so refuse here
        children = await self.graph.list_children(folder_path, page_size=1)
        if children.value:
            return _failure("Folder is not empty. Delete all contents first.")

        context = await self.graph.get_drive_context()
        await self.graph.request(
            f"{context.base_path}{resolve_folder_path(folder_path)}", method="DELETE"
        )
        return {"success": True, "message": f'Successfully deleted folder "{folder_path}".'}

    async def _get_folder_tree(self, arguments: dict[str, Any]) -> dict[str, Any]:
        parent_folder = arguments.get("parent_folder") or ""
        max_depth = self.tree_builder.clamp_depth(arguments.get("max_depth"))
        tree = await self.tree_builder.build_tree(parent_folder, max_depth)
        return {
            "success": True,
            "rootPath": parent_folder or "/",
            "maxDepth": max_depth,
            "tree": [node.model_dump(mode="json", by_alias=True) for node in tree],
        }

    # ------------------------------------------------------------------
    # Document tools
    # ------------------------------------------------------------------

    async def _list_documents(self, arguments: dict[str, Any]) -> dict[str, Any]:
        folder_path = arguments.get("folder_path") or ""
        page = await self.graph.list_children(
            folder_path,
            item_filter="file ne null",
            select=DOCUMENT_SELECT_FIELDS,
            page_size=self.config.default_page_size,
            max_items=self.config.max_result_count,
            follow_next_link=True,
        )

        documents = [
            {
                "id": item.id,
                "name": item.name,
                "size": item.size,
                "mimeType": item.mime_type,
                "webUrl": item.web_url,
                "createdDateTime": item.created_date_time,
                "lastModifiedDateTime": item.last_modified_date_time,
            }
            for item in page.value
        ]
        return {
            "success": True,
            "path": folder_path or "/",
            "count": len(documents),
            "documents": documents,
        }

    async def _get_document_content(self, arguments: dict[str, Any]) -> dict[str, Any]:
        file_name = arguments.get("file_name")
        if not file_name:
            return _failure("File name is required.")

        item = await self.graph.get_item(
            resolve_file_path(arguments.get("folder_path"), file_name),
            select=DOCUMENT_DETAIL_FIELDS,
        )
        if not item.download_url:
            raise ValueError("Could not get download URL for file")

        data = await self.graph.download_raw(item.download_url)
        mime_type = item.mime_type or "application/octet-stream"

        if is_text_file(file_name, mime_type):
            content = data.decode("utf-8", errors="replace")
            encoding = "text"
        else:
            content = base64.b64encode(data).decode("ascii")
            encoding = "base64"

        return {
            "success": True,
            "file": {
                "name": item.name,
                "size": item.size,
                "mimeType": mime_type,
                "webUrl": item.web_url,
                "lastModified": item.last_modified_date_time,
            },
            "encoding": encoding,
            "content": content,
        }

    async def _upload_content(self, folder_path: str | None, file_name: str, data: bytes) -> Any:
        context = await self.graph.get_drive_context()
        endpoint = f"{context.base_path}{resolve_file_path(folder_path, file_name)}/content"
        return await self.graph.upload_raw(endpoint, data)

    async def _upload_document(self, arguments: dict[str, Any]) -> dict[str, Any]:
        file_name = arguments.get("file_name")
        content = arguments.get("content")
        if not file_name:
            return _failure("File name is required.")
        if not content:
            return _failure("Content is required.")

        data = _decode_content(content, bool(arguments.get("is_base64")))
        response = await self._upload_content(arguments.get("folder_path"), file_name, data)
        return {
            "success": True,
            "message": f'File "{file_name}" uploaded successfully.',
            "file": _file_summary(response),
        }

    async def _upload_document_from_path(self, arguments: dict[str, Any]) -> dict[str, Any]:
        local_path = arguments.get("local_path")
        if not local_path:
            return _failure("Local file path is required.")

        path = Path(local_path).expanduser()
        if not path.is_file():
            raise FileNotFoundError(f"Local file not found: {local_path}")

        data = await asyncio.to_thread(path.read_bytes)
        file_name = arguments.get("new_file_name") or path.name
        response = await self._upload_content(arguments.get("folder_path"), file_name, data)
        return {
            "success": True,
            "message": f'File "{file_name}" uploaded successfully from {local_path}.',
            "file": _file_summary(response),
        }

    async def _update_document(self, arguments: dict[str, Any]) -> dict[str, Any]:
        file_name = arguments.get("file_name")
        content = arguments.get("content")
        if not file_name:
            return _failure("File name is required.")
        if not content:
            return _failure("Content is required.")

        folder_path = arguments.get("folder_path")
        try:
            await self.graph.get_item(resolve_file_path(folder_path, file_name), select="id")
        except HttpError as err:
            raise ValueError(
                f'File "{file_name}" does not exist in the specified folder.'
            ) from err

        data = _decode_content(content, bool(arguments.get("is_base64")))
        response = await self._upload_content(folder_path, file_name, data)
        return {
            "success": True,
            "message": f'File "{file_name}" updated successfully.',
            "file": _file_summary(response),
        }

    async def _delete_document(self, arguments: dict[str, Any]) -> dict[str, Any]:
        file_name = arguments.get("file_name")
        if not file_name:
            return _failure("File name is required.")

        context = await self.graph.get_drive_context()
        await self.graph.request(
            f"{context.base_path}{resolve_file_path(arguments.get('folder_path'), file_name)}",
            method="DELETE",
        )
        return {"success": True, "message": f'File "{file_name}" deleted successfully.'}

    async def _download_document(self, arguments: dict[str, Any]) -> dict[str, Any]:
        file_name = arguments.get("file_name")
        local_path = arguments.get("local_path")
        if not file_name:
            return _failure("File name is required.")
        if not local_path:
            return _failure("Local path is required.")

        item = await self.graph.get_item(
            resolve_file_path(arguments.get("folder_path"), file_name),
            select="@microsoft.graph.downloadUrl,name,size",
        )
        if not item.download_url:
            raise ValueError("Could not get download URL for file")

        data = await self.graph.download_raw(item.download_url)

        target = Path(local_path).expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(target.write_bytes, data)

        return {
            "success": True,
            "message": f'File "{file_name}" downloaded successfully.',
            "file": {"name": item.name, "size": item.size, "localPath": local_path},
        }

    async def _get_file_metadata(self, arguments: dict[str, Any]) -> dict[str, Any]:
        file_name = arguments.get("file_name")
        if not file_name:
            return _failure("File name is required.")

        item = await self.graph.get_item(
            resolve_file_path(arguments.get("folder_path"), file_name),
            expand="listItem($expand=fields)",
        )
        metadata = (item.list_item.fields if item.list_item else None) or {}
        return {
            "success": True,
            "file": {"name": item.name, "id": item.id, "webUrl": item.web_url},
            "metadata": metadata,
        }

    async def _update_file_metadata(self, arguments: dict[str, Any]) -> dict[str, Any]:
        file_name = arguments.get("file_name")
        metadata = arguments.get("metadata")
        if not file_name:
            return _failure("File name is required.")
        if not metadata:
            return _failure("Metadata object is required.")

        item = await self.graph.get_item(
            resolve_file_path(arguments.get("folder_path"), file_name),
            expand="listItem",
        )
        if not item.list_item or not item.list_item.id:
            raise ValueError("Could not get list item for file")

        context = await self.graph.get_drive_context()
        await self.graph.request(
            f"/sites/{context.site_id}/drive/items/{item.id}/listItem/fields",
            method="PATCH",
            body=metadata,
        )
        return {
            "success": True,
            "message": f'Metadata updated for "{file_name}".',
            "updatedFields": list(metadata.keys()),
        }

    async def run(self) -> None:
        """Run the MCP server using stdio transport."""
        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(
                    read_stream,
                    write_stream,
                    self.server.create_initialization_options(),
                )
        finally:
            await self.close()


def main() -> None:
    """Entry point for the SharePoint MCP server."""
    server = SharePointServer()
    asyncio.run(server.run())


if __name__ == "__main__":
    main()
