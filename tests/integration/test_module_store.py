"""Integration tests for the PostgreSQL module store."""

import pytest

from perseus.common.exceptions import InvalidArgumentError, InvalidPageTokenError
from perseus.graph.identity import ModuleIdentity
from perseus.services.module_store import ModuleStore, ModuleVersionQuery


def m(arg: str) -> ModuleIdentity:
    return ModuleIdentity.parse(arg)


@pytest.mark.integration
class TestModuleStore:
    """Test cases for ModuleStore against a real database."""

    @pytest.mark.asyncio
    async def test_save_module_is_idempotent(self, test_db):
        """Test saving a module twice."""
        store = ModuleStore(test_db)

        first = await store.save_module("github.com/x/a")
        second = await store.save_module("github.com/x/a")

        assert first == second

    @pytest.mark.asyncio
    async def test_query_modules_paging(self, test_db):
        """Test paging module queries."""
        store = ModuleStore(test_db)
        for name in ("github.com/x/c", "github.com/x/a", "github.com/x/b", "golang.org/x/sys"):
            await store.save_module(name)

        names, token = await store.query_modules("github.com/*", count=2)
        assert names == ["github.com/x/a", "github.com/x/b"]
        assert token

        names, token = await store.query_modules("github.com/*", page_token=token, count=2)
        assert names == ["github.com/x/c"]
        assert token == ""

        with pytest.raises(InvalidPageTokenError):
            await store.query_modules("golang.org/*", page_token="e30=", count=2)

    @pytest.mark.asyncio
    async def test_query_module_versions(self, test_db):
        """Test version queries."""
        store = ModuleStore(test_db)
        module_id = await store.save_module("github.com/x/a")
        await store.save_module_versions(module_id, ["v1.2.0", "v1.10.0", "v1.11.0-rc.1", "v1.2.0"])

        versions, _ = await store.query_module_versions(ModuleVersionQuery(module_name="github.com/x/a"))
        assert [v.version for v in versions] == ["v1.10.0", "v1.2.0"]

        versions, _ = await store.query_module_versions(
            ModuleVersionQuery(module_name="github.com/x/a", include_prerelease=True, latest_only=True)
        )
        assert versions == [m("github.com/x/a@v1.11.0-rc.1")]

        versions, _ = await store.query_module_versions(
            ModuleVersionQuery(module_filter="github.com/*", version_filter="v1.1*")
        )
        assert [v.version for v in versions] == ["v1.10.0"]

    @pytest.mark.asyncio
    async def test_query_module_versions_requires_criteria(self, test_db):
        """Test version queries need criteria."""
        with pytest.raises(InvalidArgumentError):
            await ModuleStore(test_db).query_module_versions(ModuleVersionQuery())

    @pytest.mark.asyncio
    async def test_dependency_edges(self, test_db):
        """Test dependency edges in both directions."""
        store = ModuleStore(test_db)
        app = m("github.com/x/app@v1.0.0")
        await store.save_module_dependencies(app, [m("github.com/x/lib@v0.2.0"), m("golang.org/x/sys@v0.15.0")])
        await store.save_module_dependencies(m("github.com/x/other@v2.0.0+incompatible"), [m("golang.org/x/sys@v0.15.0")])
        # re-recording the same edges is a no-op
        await store.save_module_dependencies(app, [m("github.com/x/lib@v0.2.0")])

        deps, token = await store.get_dependees("github.com/x/app", "v1.0.0")
        assert deps == [m("github.com/x/lib@v0.2.0"), m("golang.org/x/sys@v0.15.0")]
        assert token == ""

        dependents, _ = await store.get_dependents("golang.org/x/sys", "v0.15.0", count=1)
        assert dependents == [m("github.com/x/app@v1.0.0")]

    @pytest.mark.asyncio
    async def test_module_without_dependencies_has_version(self, test_db):
        """Test a leaf module gets its version recorded."""
        store = ModuleStore(test_db)
        await store.save_module_dependencies(m("github.com/x/leaf@v0.1.0"), [])

        versions, _ = await store.query_module_versions(ModuleVersionQuery(module_name="github.com/x/leaf"))

        assert versions == [m("github.com/x/leaf@v0.1.0")]
