"""Unit tests for dependency tree flattening."""

import pytest

from perseus.graph.flatten import DependencyItem, flatten_tree
from perseus.graph.identity import Direction, ModuleIdentity
from perseus.graph.traversal import DependencyTreeNode, TreeWalker


def node(arg: str, *deps: DependencyTreeNode) -> DependencyTreeNode:
    return DependencyTreeNode(module=ModuleIdentity.parse(arg), deps=list(deps))


@pytest.mark.unit
class TestFlattenTree:
    """Test cases for flatten_tree."""

    def test_root_only(self):
        """Test a lone root flattens to nothing."""
        assert flatten_tree(node("x.com/root@v1.0.0")) == []

    def test_degrees_and_dedup(self):
        """Test degrees and de-duplication."""
        tree = node(
            "x.com/root@v1.0.0",
            node("x.com/b@v1.0.0", node("x.com/d@v1.0.0", node("x.com/e@v1.0.0"))),
            node("x.com/c@v1.0.0", node("x.com/d@v1.0.0", node("x.com/e@v1.0.0"))),
        )

        items = flatten_tree(tree)

        assert items == [
            DependencyItem("x.com/b", "v1.0.0", is_direct=True, degree=1),
            DependencyItem("x.com/c", "v1.0.0", is_direct=True, degree=1),
            DependencyItem("x.com/d", "v1.0.0", is_direct=False, degree=2),
            DependencyItem("x.com/e", "v1.0.0", is_direct=False, degree=3),
        ]

    def test_shallowest_degree_wins(self):
        """Test the shallowest occurrence sets the degree."""
        # d appears deep under b before it appears directly under the root
        tree = node(
            "x.com/root@v1.0.0",
            node("x.com/b@v1.0.0", node("x.com/c@v1.0.0", node("x.com/d@v1.0.0"))),
            node("x.com/d@v1.0.0"),
        )

        by_path = {i.path: i for i in flatten_tree(tree)}

        assert by_path["x.com/d"].degree == 1
        assert by_path["x.com/d"].is_direct

    def test_sorted_by_path_then_version_desc(self):
        """Test output order by path then newest version."""
        tree = node(
            "x.com/root@v1.0.0",
            node("x.com/z@v1.0.0"),
            node("x.com/a@v1.2.0"),
            node("x.com/a@v1.10.0"),
            node("x.com/a@v1.10.0-rc.1"),
        )

        assert [i.name for i in flatten_tree(tree)] == [
            "x.com/a@v1.10.0",
            "x.com/a@v1.10.0-rc.1",
            "x.com/a@v1.2.0",
            "x.com/z@v1.0.0",
        ]

    def test_status_callback(self):
        """Test the status callback sees each item."""
        messages: list[str] = []
        flatten_tree(node("x.com/root@v1.0.0", node("x.com/b@v1.0.0")), status=messages.append)

        assert messages == ["flattening x.com/b@v1.0.0"]

    def test_to_dict(self):
        """Test item serialization."""
        item = DependencyItem("x.com/b", "v1.0.0", is_direct=True, degree=1)
        assert item.to_dict() == {"path": "x.com/b", "version": "v1.0.0", "is_direct": True, "degree": 1}

    @pytest.mark.asyncio
    async def test_depth_one_matches_direct_edges(self, diamond_client):
        """Test a depth one walk flattens to the direct edges."""
        root = ModuleIdentity("example.com/a", "v1.0.0")
        tree = await TreeWalker(diamond_client).walk(root, Direction.DEPENDENCIES, max_depth=1)

        items = flatten_tree(tree)

        assert [i.name for i in items] == ["example.com/b@v1.0.0", "example.com/c@v1.2.0"]
        assert all(i.is_direct and i.degree == 1 for i in items)
