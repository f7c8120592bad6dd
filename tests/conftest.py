"""Pytest configuration and fixtures for Perseus tests."""

import asyncio
import re
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from perseus.api.dependencies import get_store
from perseus.api.main import create_app
from perseus.common.config import Settings
from perseus.common.exceptions import QueryError
from perseus.graph import semver
from perseus.graph.identity import DependencyPage, Direction, ModuleIdentity
from perseus.models import Base
from perseus.services.module_store import ModuleVersionQuery, _page, add_v, glob_to_like, strip_v


def mod(arg: str) -> ModuleIdentity:
    """Shorthand for ModuleIdentity.parse."""
    return ModuleIdentity.parse(arg)


class FakeGraphClient:
    """In-memory GraphQueryClient over an adjacency map.

    Pages hold at most page_size edges and the token is the stringified
    offset of the next page.
    """

    def __init__(
        self,
        edges: dict[str, list[str]] | None = None,
        page_size: int = 2,
        latest: dict[str, str] | None = None,
    ) -> None:
        self.edges = {k: [mod(v) for v in vs] for k, vs in (edges or {}).items()}
        self.page_size = page_size
        self.latest = latest or {}
        self.calls: list[tuple[str, str, Direction, str]] = []
        self.failures: dict[str, Exception] = {}
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0

    def _reverse(self, key: str) -> list[ModuleIdentity]:
        return [mod(src) for src, dsts in self.edges.items() if any(str(d) == key for d in dsts)]

    async def fetch_dependency_page(
        self,
        module: str,
        version: str,
        direction: Direction,
        page_token: str = "",
        page_size: int | None = None,
    ) -> DependencyPage:
        key = f"{module}@{version}"
        self.calls.append((module, version, direction, page_token))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)
            if key in self.failures:
                raise self.failures[key]
        finally:
            self.in_flight -= 1

        if Direction(direction) == Direction.DEPENDENCIES:
            all_edges = self.edges.get(key, [])
        else:
            all_edges = self._reverse(key)
        size = page_size or self.page_size
        offset = int(page_token) if page_token else 0
        page = all_edges[offset:offset + size]
        next_offset = offset + size
        token = str(next_offset) if next_offset < len(all_edges) else ""
        return DependencyPage(modules=page, next_page_token=token)

    async def resolve_latest_version(self, module: str) -> str:
        if module not in self.latest:
            raise QueryError(f"No version found for module {module}")
        return self.latest[module]


class FakeModuleStore:
    """In-memory stand-in for ModuleStore used by API tests."""

    def __init__(self) -> None:
        self.modules: dict[str, set[str]] = {}
        self.edges: set[tuple[ModuleIdentity, ModuleIdentity]] = set()
        self._next_id = 1
        self.ids: dict[str, int] = {}

    async def save_module(self, name: str, description: str = "") -> int:
        if name not in self.ids:
            self.ids[name] = self._next_id
            self._next_id += 1
            self.modules[name] = set()
        return self.ids[name]

    async def save_module_versions(self, module_id: int, versions) -> None:
        name = next(n for n, i in self.ids.items() if i == module_id)
        self.modules[name].update(strip_v(v) for v in versions)

    async def query_modules(self, name_filter: str = "", page_token: str = "", count: int = 0):
        pattern = glob_to_like(name_filter) if name_filter else "%"
        names = sorted(n for n in self.modules if _like(n, pattern))
        return _page(names, name_filter, page_token, count)

    async def query_module_versions(self, query: ModuleVersionQuery):
        rows = []
        for name, versions in self.modules.items():
            if query.module_name and name != query.module_name:
                continue
            if not query.module_name and not _like(name, glob_to_like(query.module_filter)):
                continue
            for v in versions:
                if not query.include_prerelease and semver.prerelease(add_v(v)):
                    continue
                rows.append(ModuleIdentity(name, add_v(v)))
        rows.sort(key=lambda m: semver.sort_key(m.version), reverse=True)
        rows.sort(key=lambda m: m.path)
        if query.latest_only:
            rows = [m for i, m in enumerate(rows) if i == 0 or rows[i - 1].path != m.path]
        return _page(rows, query.page_key, query.page_token, query.count)

    async def get_dependees(self, module, version, page_token="", count=0):
        subject = ModuleIdentity(module, add_v(version))
        rows = sorted((d for s, d in self.edges if s == subject), key=lambda m: (m.path, m.version))
        return _page(rows, f"dependencies:{subject}", page_token, count)

    async def get_dependents(self, module, version, page_token="", count=0):
        subject = ModuleIdentity(module, add_v(version))
        rows = sorted((s for s, d in self.edges if d == subject), key=lambda m: (m.path, m.version))
        return _page(rows, f"dependents:{subject}", page_token, count)

    async def save_module_dependencies(self, module: ModuleIdentity, deps) -> None:
        for m in [module, *deps]:
            module_id = await self.save_module(m.path)
            await self.save_module_versions(module_id, [m.version])
        for d in deps:
            self.edges.add((module, d))


def _like(value: str, pattern: str) -> bool:
    regex = "".join(".*" if c == "%" else "." if c == "_" else re.escape(c) for c in pattern)
    return re.fullmatch(regex, value) is not None


@pytest.fixture
def fake_store() -> FakeModuleStore:
    """Empty in-memory module store."""
    return FakeModuleStore()


@pytest_asyncio.fixture
async def async_client(fake_store: FakeModuleStore) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for testing API endpoints."""
    app = create_app()

    async def override_get_store():
        return fake_store

    app.dependency_overrides[get_store] = override_get_store

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def make_graph_client():
    """Factory for in-memory graph query clients."""
    return FakeGraphClient


@pytest.fixture
def diamond_client() -> FakeGraphClient:
    """Graph a -> b, c; b -> d; c -> d; d -> e."""
    return FakeGraphClient(
        {
            "example.com/a@v1.0.0": ["example.com/b@v1.0.0", "example.com/c@v1.2.0"],
            "example.com/b@v1.0.0": ["example.com/d@v0.3.0"],
            "example.com/c@v1.2.0": ["example.com/d@v0.3.0"],
            "example.com/d@v0.3.0": ["example.com/e@v2.0.0"],
        }
    )


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Get test settings."""
    return Settings(
        environment="development",
        debug=True,
        database={"database": "perseus_test"},
    )


@pytest_asyncio.fixture
async def test_db(test_settings: Settings) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session.

    Creates tables before test and drops them after. Skips the test when
    no PostgreSQL server is reachable.
    """
    engine = create_async_engine(test_settings.database.async_url, echo=False)

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except (OSError, DBAPIError) as e:
        await engine.dispose()
        pytest.skip(f"PostgreSQL not available: {e}")

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()
