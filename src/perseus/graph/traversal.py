"""Depth-bounded dependency tree walks.

Builds a nested tree of a module's dependencies or dependents by
expanding one level at a time, depth first, through a PageConsumer.
Cycles in the graph are not detected; the depth bound is the only guard.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from perseus.common.exceptions import InvalidArgumentError, SearchCancelledError
from perseus.common.logging import get_logger
from perseus.common.metrics import TREE_NODES_VISITED
from perseus.graph.client import GraphQueryClient
from perseus.graph.identity import Direction, ModuleIdentity
from perseus.graph.paging import PageConsumer

logger = get_logger(__name__)

StatusCallback = Callable[[str], None]


@dataclass
class DependencyTreeNode:
    """A module and its expanded dependencies, in store order."""

    module: ModuleIdentity
    direct: bool = False
    deps: list["DependencyTreeNode"] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON tree representation.

        Empty dependency lists are omitted.
        """
        result: dict[str, Any] = {
            "module": {"Path": self.module.path, "Version": self.module.version},
        }
        if self.deps:
            result["deps"] = [d.to_dict() for d in self.deps]
        return result

    def depth(self) -> int:
        """Number of levels below this node."""
        if not self.deps:
            return 0
        return 1 + max(d.depth() for d in self.deps)


def _log_status(description: str) -> None:
    logger.debug("Walking dependency tree", status=description)


class TreeWalker:
    """Sequential, depth-first dependency tree builder.

    Each child's subtree is completed before its next sibling is started.
    Any query failure aborts the whole walk; no partial tree is returned.
    """

    def __init__(
        self,
        client: GraphQueryClient,
        status: StatusCallback | None = None,
        page_size: int | None = None,
    ) -> None:
        """Initialize walker.

        Args:
            client: Graph query client, usually wrapped for retries.
            status: Progress callback invoked once per visited node.
            page_size: Page size for dependency queries.
        """
        self._pages = PageConsumer(client, page_size=page_size)
        self._status = status or _log_status

    async def walk_level(self, module: ModuleIdentity, direction: Direction) -> list[ModuleIdentity]:
        """Return the direct edges of a single module."""
        return await self._pages.drain(module, direction)

    async def walk(
        self,
        root: ModuleIdentity,
        direction: Direction,
        max_depth: int,
        cancel_event: asyncio.Event | None = None,
    ) -> DependencyTreeNode:
        """Build the dependency tree rooted at root.

        Args:
            root: Starting module. Its version must already be resolved.
            direction: Which edges to follow.
            max_depth: Deepest level to expand, at least 1.
            cancel_event: Set by the caller to abort the walk.

        Returns:
            Root node whose descendants are at most max_depth levels deep.

        Raises:
            InvalidArgumentError: If max_depth is below 1 or root has no version.
            SearchCancelledError: If cancel_event was set during the walk.
            QueryError: If any dependency query fails.
        """
        if max_depth < 1:
            raise InvalidArgumentError(
                f"max_depth must be at least 1, got {max_depth}",
                details={"max_depth": max_depth},
            )
        if not root.version:
            raise InvalidArgumentError(f"A version is required to walk the tree of {root.path}")

        logger.debug(
            "Starting tree walk",
            root=str(root),
            direction=Direction(direction).value,
            max_depth=max_depth,
        )
        node = DependencyTreeNode(module=root)
        await self._expand(node, direction, 1, max_depth, cancel_event)
        return node

    async def _expand(
        self,
        node: DependencyTreeNode,
        direction: Direction,
        depth: int,
        max_depth: int,
        cancel_event: asyncio.Event | None,
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise SearchCancelledError(f"Tree walk cancelled at {node.module}")

        self._status(f"processing {node.module}")
        TREE_NODES_VISITED.labels(direction=Direction(direction).value).inc()

        for edge in await self.walk_level(node.module, direction):
            child = DependencyTreeNode(module=edge, direct=depth == 1)
            if depth + 1 <= max_depth:
                await self._expand(child, direction, depth + 1, max_depth, cancel_event)
            node.deps.append(child)
