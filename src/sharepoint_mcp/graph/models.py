"""Data models for Microsoft Graph requests, responses and folder trees."""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]


class RequestDescriptor(BaseModel):
    """One Graph API call.

    Attributes:
        endpoint: Path relative to the Graph base URL, or an absolute URL.
        method: HTTP verb.
        params: Query parameters; None values are dropped.
        headers: Extra request headers.
        body: JSON-serializable value, or raw bytes/str sent as-is.
    """

    endpoint: str
    method: HttpMethod = "GET"
    params: dict[str, Any] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None

    def query_params(self) -> dict[str, str]:
        """Query parameters with None values omitted and scalars stringified."""
        result = {}
        for key, value in self.params.items():
            if value is None:
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            result[key] = str(value)
        return result


class GraphErrorDetail(BaseModel):
    code: str | None = None
    message: str | None = None


class GraphErrorEnvelope(BaseModel):
    """Error body returned by Graph: ``{"error": {"code": ..., "message": ...}}``."""

    error: GraphErrorDetail

    def best_message(self) -> str | None:
        return self.error.message or self.error.code


class FolderFacet(BaseModel):
    child_count: int = Field(default=0, alias="childCount")

    model_config = {"populate_by_name": True}


class FileFacet(BaseModel):
    mime_type: str | None = Field(default=None, alias="mimeType")

    model_config = {"populate_by_name": True}


class ListItemRef(BaseModel):
    id: str | None = None
    fields: dict[str, Any] | None = None


class DriveItem(BaseModel):
    """A file or folder in a document library."""

    id: str | None = None
    name: str = ""
    size: int | None = None
    web_url: str | None = Field(default=None, alias="webUrl")
    created_date_time: str | None = Field(default=None, alias="createdDateTime")
    last_modified_date_time: str | None = Field(default=None, alias="lastModifiedDateTime")
    folder: FolderFacet | None = None
    file: FileFacet | None = None
    download_url: str | None = Field(default=None, alias="@microsoft.graph.downloadUrl")
    list_item: ListItemRef | None = Field(default=None, alias="listItem")

    model_config = {"populate_by_name": True, "extra": "allow"}

    @property
    def is_folder(self) -> bool:
        return self.folder is not None

    @property
    def child_count(self) -> int:
        return self.folder.child_count if self.folder else 0

    @property
    def mime_type(self) -> str | None:
        return self.file.mime_type if self.file else None


class DriveItemPage(BaseModel):
    """One page of a children listing."""

    value: list[DriveItem] = Field(default_factory=list)
    next_link: str | None = Field(default=None, alias="@odata.nextLink")

    model_config = {"populate_by_name": True}


class DriveContext(BaseModel):
    """Resolved site and drive addressing for the configured library."""

    site_id: str
    drive_id: str

    @property
    def base_path(self) -> str:
        return f"/sites/{self.site_id}/drives/{self.drive_id}"


class NodeState(str, Enum):
    """How far a folder node was expanded during tree traversal."""

    EXPANDED = "expanded"
    EMPTY = "empty"
    TRUNCATED = "truncated"
    FAILED = "failed"


class FolderNode(BaseModel):
    """A folder in a traversal result.

    ``children`` is None when the depth limit stopped traversal and an
    empty list when the folder has no subfolders or its listing failed;
    ``state`` tells these cases apart.
    """

    name: str
    path: str
    child_count: int = Field(default=0, alias="childCount")
    children: "list[FolderNode] | None" = None
    state: NodeState = NodeState.TRUNCATED

    model_config = {"populate_by_name": True}
