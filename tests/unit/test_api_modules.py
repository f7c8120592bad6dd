"""Unit tests for the module graph API endpoints.

Requests go through the full FastAPI application with the module store
replaced by an in-memory fake.
"""

import httpx
import pytest
from prometheus_client import REGISTRY

from perseus.api.main import UNMATCHED_ROUTE
from perseus.graph.client import HTTPGraphQueryClient
from perseus.graph.identity import Direction, ModuleIdentity
from perseus.graph.pathfinder import PathFinder, collect_paths
from perseus.graph.traversal import TreeWalker


async def put_module(client, name: str, versions: list[str]) -> httpx.Response:
    return await client.put("/api/v1/modules", json={"module": {"name": name, "versions": versions}})


async def put_deps(client, module: str, version: str, deps: dict[str, str]) -> httpx.Response:
    return await client.put(
        "/api/v1/update-module-dependencies",
        json={
            "module_name": module,
            "version": version,
            "dependencies": [{"name": n, "versions": [v]} for n, v in deps.items()],
        },
    )


def sample(name: str, labels: dict[str, str]) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.mark.unit
class TestAdminEndpoints:
    """Test cases for health and info endpoints."""

    @pytest.mark.asyncio
    async def test_liveness(self, async_client):
        """Test the liveness check always answers ok."""
        response = await async_client.get("/healthz")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_info(self, async_client):
        """Test service info endpoint."""
        response = await async_client.get("/info")

        assert response.status_code == 200
        assert response.json()["name"] == "Perseus"

    @pytest.mark.asyncio
    async def test_metrics(self, async_client):
        """Test Prometheus metrics are exposed."""
        await async_client.get("/healthz")
        response = await async_client.get("/metrics")

        assert response.status_code == 200
        assert "perseus_api_requests_total" in response.text

    @pytest.mark.asyncio
    async def test_requests_counted_per_route(self, async_client):
        """Test request metrics are labelled by route template."""
        labels = {"method": "GET", "route": "/api/v1/modules", "status": "200"}
        before = sample("perseus_api_requests_total", labels)

        await async_client.get("/api/v1/modules", params={"filter": "github.com/a*"})
        await async_client.get("/api/v1/modules", params={"filter": "github.com/b*"})

        assert sample("perseus_api_requests_total", labels) == before + 2

    @pytest.mark.asyncio
    async def test_unknown_paths_share_a_label(self, async_client):
        """Test unmatched paths are counted under a single route label."""
        labels = {"method": "GET", "route": UNMATCHED_ROUTE, "status": "404"}
        before = sample("perseus_api_requests_total", labels)

        await async_client.get("/no/such/path")
        await async_client.get("/another/missing/path")

        assert sample("perseus_api_requests_total", labels) == before + 2

    @pytest.mark.asyncio
    async def test_errors_counted_by_code(self, async_client):
        """Test error responses increment the error code counter."""
        before = sample("perseus_api_errors_total", {"error_code": "INVALID_PAGE_TOKEN"})

        response = await async_client.get("/api/v1/modules", params={"page_token": "***"})

        assert response.status_code == 400
        assert sample("perseus_api_errors_total", {"error_code": "INVALID_PAGE_TOKEN"}) == before + 1


@pytest.mark.unit
class TestModuleEndpoints:
    """Test cases for module registration and listing."""

    @pytest.mark.asyncio
    async def test_create_module(self, async_client, fake_store):
        """Test registering a module with versions."""
        response = await put_module(async_client, "github.com/x/y", ["v1.0.0", "v1.1.0"])

        assert response.status_code == 200
        assert response.json() == {"module": {"name": "github.com/x/y", "versions": ["v1.0.0", "v1.1.0"]}}
        assert fake_store.modules["github.com/x/y"] == {"1.0.0", "1.1.0"}

    @pytest.mark.asyncio
    async def test_create_module_without_versions(self, async_client, fake_store):
        """Test registering a module with no versions."""
        response = await put_module(async_client, "github.com/x/y/v3", [])

        assert response.status_code == 200
        assert fake_store.modules["github.com/x/y/v3"] == set()

    @pytest.mark.asyncio
    async def test_create_module_invalid_version(self, async_client):
        """Test invalid versions are rejected."""
        response = await put_module(async_client, "github.com/x/y", ["1.0"])

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert body["message"].startswith("invalid module/version")

    @pytest.mark.asyncio
    async def test_create_module_major_mismatch(self, async_client):
        """Test versions must match the module path major suffix."""
        response = await put_module(async_client, "github.com/x/y/v2", ["v3.0.0"])

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_malformed_body(self, async_client):
        """Test malformed JSON bodies become validation errors."""
        response = await async_client.put("/api/v1/modules", json={"nope": True})

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_list_modules_with_paging(self, async_client):
        """Test module listing pages through results."""
        for name in ("github.com/x/a", "github.com/x/b", "github.com/x/c", "golang.org/x/sys"):
            await put_module(async_client, name, ["v1.0.0"])

        first = await async_client.get("/api/v1/modules", params={"filter": "github.com/*", "page_size": 2})
        assert first.status_code == 200
        assert [m["name"] for m in first.json()["modules"]] == ["github.com/x/a", "github.com/x/b"]
        token = first.json()["next_page_token"]
        assert token

        second = await async_client.get(
            "/api/v1/modules",
            params={"filter": "github.com/*", "page_size": 2, "page_token": token},
        )
        assert [m["name"] for m in second.json()["modules"]] == ["github.com/x/c"]
        assert second.json()["next_page_token"] == ""

    @pytest.mark.asyncio
    async def test_page_token_bound_to_query(self, async_client):
        """Test a page token cannot be reused with another filter."""
        for name in ("github.com/x/a", "github.com/x/b"):
            await put_module(async_client, name, ["v1.0.0"])
        first = await async_client.get("/api/v1/modules", params={"filter": "github.com/*", "page_size": 1})

        response = await async_client.get(
            "/api/v1/modules",
            params={"filter": "other*", "page_token": first.json()["next_page_token"]},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_PAGE_TOKEN"

    @pytest.mark.asyncio
    async def test_garbage_page_token(self, async_client):
        """Test undecodable page tokens are rejected."""
        response = await async_client.get("/api/v1/modules", params={"page_token": "***"})

        assert response.status_code == 400
        assert "base64" in response.json()["message"]


@pytest.mark.unit
class TestModuleVersionEndpoints:
    """Test cases for version listing."""

    @pytest.mark.asyncio
    async def test_all_versions_newest_first(self, async_client):
        """Test versions are listed newest first."""
        await put_module(async_client, "github.com/x/y", ["v1.2.0", "v1.10.0", "v1.3.0-rc.1"])

        response = await async_client.get("/api/v1/module-versions", params={"module_name": "github.com/x/y"})

        assert response.status_code == 200
        assert response.json()["modules"] == [{"name": "github.com/x/y", "versions": ["v1.10.0", "v1.2.0"]}]

    @pytest.mark.asyncio
    async def test_include_prerelease(self, async_client):
        """Test prereleases are listed only on request."""
        await put_module(async_client, "github.com/x/y", ["v1.2.0", "v1.3.0-rc.1"])

        response = await async_client.get(
            "/api/v1/module-versions",
            params={"module_name": "github.com/x/y", "include_prerelease": "true"},
        )

        assert response.json()["modules"][0]["versions"] == ["v1.3.0-rc.1", "v1.2.0"]

    @pytest.mark.asyncio
    async def test_latest_per_module(self, async_client):
        """Test latest option returns one version per module."""
        await put_module(async_client, "github.com/x/a", ["v1.0.0", "v1.4.0"])
        await put_module(async_client, "github.com/x/b", ["v0.1.0"])

        response = await async_client.get(
            "/api/v1/module-versions",
            params={"module_filter": "github.com/x/*", "version_option": "latest"},
        )

        assert response.json()["modules"] == [
            {"name": "github.com/x/a", "versions": ["v1.4.0"]},
            {"name": "github.com/x/b", "versions": ["v0.1.0"]},
        ]

    @pytest.mark.asyncio
    async def test_requires_name_or_filter(self, async_client):
        """Test version queries need a module name or filter."""
        response = await async_client.get("/api/v1/module-versions")

        assert response.status_code == 400
        assert "module name or a module filter" in response.json()["message"]

    @pytest.mark.asyncio
    async def test_rejects_none_option(self, async_client):
        """Test the none version option is rejected."""
        response = await async_client.get(
            "/api/v1/module-versions",
            params={"module_name": "github.com/x/y", "version_option": "none"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_latest_with_page_token_rejected(self, async_client):
        """Test latest queries cannot be paged."""
        response = await async_client.get(
            "/api/v1/module-versions",
            params={"module_name": "github.com/x/y", "version_option": "latest", "page_token": "abc"},
        )

        assert response.status_code == 400
        assert "Paging" in response.json()["message"]


@pytest.mark.unit
class TestDependencyEndpoints:
    """Test cases for recording and querying dependency edges."""

    @pytest.mark.asyncio
    async def test_update_and_query_both_directions(self, async_client):
        """Test recorded edges are visible from both ends."""
        response = await put_deps(
            async_client,
            "github.com/x/app",
            "v1.0.0",
            {"github.com/x/lib": "v0.2.0", "golang.org/x/sys": "v0.15.0"},
        )
        assert response.status_code == 200
        assert response.json() == {}

        deps = await async_client.get(
            "/api/v1/modules-dependencies",
            params={"module_name": "github.com/x/app", "version": "v1.0.0"},
        )
        assert deps.json()["modules"] == [
            {"name": "github.com/x/lib", "versions": ["v0.2.0"]},
            {"name": "golang.org/x/sys", "versions": ["v0.15.0"]},
        ]

        dependents = await async_client.get(
            "/api/v1/modules-dependencies",
            params={"module_name": "golang.org/x/sys", "version": "v0.15.0", "direction": "dependents"},
        )
        assert dependents.json()["modules"] == [{"name": "github.com/x/app", "versions": ["v1.0.0"]}]

    @pytest.mark.asyncio
    async def test_module_without_dependencies_is_recorded(self, async_client, fake_store):
        """Test a module with no dependencies still gets its version recorded."""
        response = await put_deps(async_client, "github.com/x/leaf", "v1.0.0", {})

        assert response.status_code == 200
        assert fake_store.modules["github.com/x/leaf"] == {"1.0.0"}

    @pytest.mark.asyncio
    async def test_dependency_needs_exactly_one_version(self, async_client):
        """Test each dependency must carry exactly one version."""
        response = await async_client.put(
            "/api/v1/update-module-dependencies",
            json={
                "module_name": "github.com/x/app",
                "version": "v1.0.0",
                "dependencies": [{"name": "github.com/x/lib", "versions": ["v0.1.0", "v0.2.0"]}],
            },
        )

        assert response.status_code == 400
        assert "exactly 1 version" in response.json()["message"]

    @pytest.mark.asyncio
    async def test_query_requires_module(self, async_client):
        """Test dependency queries need a module."""
        response = await async_client.get("/api/v1/modules-dependencies", params={"version": "v1.0.0"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_query_rejects_invalid_version(self, async_client):
        """Test dependency queries reject invalid versions."""
        response = await async_client.get(
            "/api/v1/modules-dependencies",
            params={"module_name": "github.com/x/app", "version": "latest"},
        )

        assert response.status_code == 400


@pytest.mark.unit
class TestGraphClientAgainstService:
    """The HTTP client and search algorithms driven through the API."""

    @pytest.fixture
    def graph_client(self, async_client) -> HTTPGraphQueryClient:
        return HTTPGraphQueryClient(base_url="", client=async_client)

    @pytest.mark.asyncio
    async def test_tree_walk_and_path_search(self, async_client, graph_client):
        """Test walking and path search against the live API."""
        await put_deps(async_client, "github.com/x/a", "v1.0.0", {"github.com/x/b": "v1.0.0", "github.com/x/c": "v1.0.0"})
        await put_deps(async_client, "github.com/x/b", "v1.0.0", {"github.com/x/d": "v1.0.0"})
        root = ModuleIdentity("github.com/x/a", "v1.0.0")

        tree = await TreeWalker(graph_client, page_size=1).walk(root, Direction.DEPENDENCIES, max_depth=3)
        assert [c.module.path for c in tree.deps] == ["github.com/x/b", "github.com/x/c"]
        assert tree.deps[0].deps[0].module == ModuleIdentity("github.com/x/d", "v1.0.0")

        finder = PathFinder(graph_client, max_depth=3, parallelism=2, page_size=1)
        paths = await collect_paths(finder, root, ModuleIdentity("github.com/x/d"), show_all=True)
        assert [[str(m) for m in p] for p in paths] == [
            ["github.com/x/a@v1.0.0", "github.com/x/b@v1.0.0", "github.com/x/d@v1.0.0"]
        ]

    @pytest.mark.asyncio
    async def test_resolve_latest_version(self, async_client, graph_client):
        """Test latest version resolution through the API."""
        await put_module(async_client, "github.com/x/a", ["v1.0.0", "v1.3.0", "v1.2.0"])

        assert await graph_client.resolve_latest_version("github.com/x/a") == "v1.3.0"
