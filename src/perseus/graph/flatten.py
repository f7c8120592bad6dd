"""Flattening of dependency trees into de-duplicated module lists."""

from collections import deque
from dataclasses import dataclass
from typing import Any

from perseus.graph import semver
from perseus.graph.traversal import DependencyTreeNode, StatusCallback


@dataclass(frozen=True)
class DependencyItem:
    """A module version reached from the query root.

    degree is the level at which the module was first discovered, so
    direct dependencies have degree 1.
    """

    path: str
    version: str
    is_direct: bool
    degree: int

    @property
    def name(self) -> str:
        return f"{self.path}@{self.version}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "version": self.version,
            "is_direct": self.is_direct,
            "degree": self.degree,
        }


def flatten_tree(tree: DependencyTreeNode, status: StatusCallback | None = None) -> list[DependencyItem]:
    """Flatten a dependency tree, breadth first, one item per module version.

    Traversal is level by level, left to right, starting at the root's
    direct children. A module version seen before is neither emitted nor
    traversed again, so each keeps the degree at which it was first found.

    Args:
        tree: Root of the tree. The root itself is not emitted.
        status: Progress callback invoked once per emitted module.

    Returns:
        Items sorted by path ascending, then by version descending.
    """
    seen: set[str] = set()
    items: list[DependencyItem] = []
    queue: deque[tuple[DependencyTreeNode, int]] = deque((child, 1) for child in tree.deps)

    while queue:
        node, degree = queue.popleft()
        key = str(node.module)
        if key in seen:
            continue
        seen.add(key)
        if status is not None:
            status(f"flattening {key}")
        items.append(
            DependencyItem(
                path=node.module.path,
                version=node.module.version,
                is_direct=degree == 1,
                degree=degree,
            )
        )
        queue.extend((child, degree + 1) for child in node.deps)

    # stable sorts: newest version first within each path
    items.sort(key=lambda i: semver.sort_key(i.version), reverse=True)
    items.sort(key=lambda i: i.path)
    return items
