"""Microsoft Graph access for SharePoint document libraries."""

from sharepoint_mcp.graph.client import GraphClient
from sharepoint_mcp.graph.models import (
    DriveContext,
    DriveItem,
    DriveItemPage,
    FolderNode,
    NodeState,
    RequestDescriptor,
)
from sharepoint_mcp.graph.paths import resolve_file_path, resolve_folder_path
from sharepoint_mcp.graph.tree import FolderTreeBuilder

__all__ = [
    "DriveContext",
    "DriveItem",
    "DriveItemPage",
    "FolderNode",
    "FolderTreeBuilder",
    "GraphClient",
    "NodeState",
    "RequestDescriptor",
    "resolve_file_path",
    "resolve_folder_path",
]
