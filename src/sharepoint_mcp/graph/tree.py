"""Recursive folder tree traversal with depth, width and concurrency bounds."""

import asyncio
import logging

from sharepoint_mcp.graph.client import GraphClient
from sharepoint_mcp.graph.models import DriveItem, FolderNode, NodeState
from sharepoint_mcp.graph.paths import clean_path, join_path

logger = logging.getLogger(__name__)

DEFAULT_TREE_DEPTH = 3
FOLDER_FILTER = "folder ne null"
TREE_SELECT_FIELDS = "id,name,folder"


class FolderTreeBuilder:
    """Expands a folder into a tree of its subfolders.

    Sibling subfolders are expanded concurrently and joined before their
    level returns. At most ``max_concurrency`` listing requests are in
    flight at once; the limit covers single HTTP calls, never whole
    subtrees, so deep trees cannot starve themselves.

    Attributes:
        graph: Graph client used for listings.
        max_depth_ceiling: Hard upper bound on the requested depth.
        max_folders_per_level: Page size for each folder listing.
    """

    def __init__(
        self,
        graph: GraphClient,
        max_depth_ceiling: int | None = None,
        max_folders_per_level: int | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        config = graph.config
        self.graph = graph
        self.max_depth_ceiling = max_depth_ceiling or config.max_tree_depth
        self.max_folders_per_level = max_folders_per_level or config.max_folders_per_level
        self._semaphore = asyncio.Semaphore(max_concurrency or config.tree_concurrency)

    def clamp_depth(self, max_depth: int | None) -> int:
        """Apply the default and the hard ceiling to a requested depth."""
        if not max_depth or max_depth < 1:
            max_depth = DEFAULT_TREE_DEPTH
        return min(max_depth, self.max_depth_ceiling)

    async def build_tree(self, root_path: str | None, max_depth: int | None = None) -> list[FolderNode]:
        """Build the folder tree below ``root_path``.

        Args:
            root_path: Logical starting folder; empty means the library root.
            max_depth: Levels to expand, clamped to the ceiling.

        Returns:
            Nodes for the root's immediate subfolders, each expanded down to
            ``max_depth``.

        Raises:
            AuthRequired: If no valid token is available.
            HttpError: If listing the starting folder fails.
        """
        depth_limit = self.clamp_depth(max_depth)
        return await self._expand(clean_path(root_path), 1, depth_limit)

    async def _list_folders(self, folder_path: str) -> list[DriveItem]:
        async with self._semaphore:
            page = await self.graph.list_children(
                folder_path,
                item_filter=FOLDER_FILTER,
                select=TREE_SELECT_FIELDS,
                page_size=self.max_folders_per_level,
            )
        return page.value

    async def _expand(self, folder_path: str, depth: int, depth_limit: int) -> list[FolderNode]:
        items = await self._list_folders(folder_path)
        return list(
            await asyncio.gather(
                *(self._build_node(item, folder_path, depth, depth_limit) for item in items)
            )
        )

    async def _build_node(
        self, item: DriveItem, parent_path: str, depth: int, depth_limit: int
    ) -> FolderNode:
        node = FolderNode(
            name=item.name,
            path=join_path(parent_path, item.name),
            child_count=item.child_count,
        )
        if depth + 1 > depth_limit:
            return node

        try:
            node.children = await self._expand(node.path, depth + 1, depth_limit)
        except Exception as e:
            logger.warning(f"Error building tree for {node.path}: {e}")
            node.children = []
            node.state = NodeState.FAILED
            return node

        node.state = NodeState.EXPANDED if node.children else NodeState.EMPTY
        return node
