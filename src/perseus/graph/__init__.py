"""Graph queries - paging, tree walks, path search, and flattening.

All traversal runs against a GraphQueryClient, so the same algorithms
work against the REST service or an in-memory graph.
"""

from perseus.graph.client import GraphQueryClient, HTTPGraphQueryClient
from perseus.graph.flatten import DependencyItem, flatten_tree
from perseus.graph.identity import DependencyPage, Direction, ModuleIdentity
from perseus.graph.paging import PageConsumer
from perseus.graph.pathfinder import PathFinder, PathResult, PathSearch, collect_paths
from perseus.graph.retry import RetryingQueryClient
from perseus.graph.traversal import DependencyTreeNode, TreeWalker

__all__ = [
    # Identity
    "ModuleIdentity",
    "Direction",
    "DependencyPage",
    # Clients
    "GraphQueryClient",
    "HTTPGraphQueryClient",
    "RetryingQueryClient",
    # Traversal
    "PageConsumer",
    "TreeWalker",
    "DependencyTreeNode",
    # Path search
    "PathFinder",
    "PathSearch",
    "PathResult",
    "collect_paths",
    # Flattening
    "DependencyItem",
    "flatten_tree",
]
