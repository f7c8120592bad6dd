"""Persistence of modules, versions, and dependency edges.

Versions cross this boundary with their leading "v" and are stored
without it. Result ordering uses Go semantic version precedence, which
is applied after loading since the database has no semver type.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import Select, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from perseus.common.exceptions import DatabaseError, InvalidArgumentError
from perseus.common.logging import get_logger
from perseus.graph import semver
from perseus.graph.identity import Direction, ModuleIdentity
from perseus.models import Module, ModuleDependency, ModuleVersion
from perseus.services.page_token import decode_page_token, encode_page_token

logger = get_logger(__name__)


def glob_to_like(pattern: str) -> str:
    """Translate a glob into a SQL LIKE pattern.

    "*" and "?" become "%" and "_". A pattern without wildcards matches
    any name containing it.
    """
    if "*" not in pattern and "?" not in pattern:
        return f"%{pattern}%"
    return pattern.replace("*", "%").replace("?", "_")


def strip_v(version: str) -> str:
    return version[1:] if version.startswith("v") else version


def add_v(version: str) -> str:
    return version if version.startswith("v") else f"v{version}"


def _sort_modules(modules: Iterable[ModuleIdentity]) -> list[ModuleIdentity]:
    # by name, then newest version first
    ordered = sorted(modules, key=lambda m: semver.sort_key(m.version), reverse=True)
    return sorted(ordered, key=lambda m: m.path)


def _page(items: list, key: str, page_token: str, count: int) -> tuple[list, str]:
    offset = decode_page_token(page_token, key) if page_token else 0
    if count > 0:
        page = items[offset:offset + count]
    else:
        page = items[offset:]
    return page, encode_page_token(key, len(page), offset, count)


@dataclass
class ModuleVersionQuery:
    """Criteria for listing module versions.

    module_name matches one module exactly; otherwise module_filter is
    applied as a glob. version_filter is a glob over versions.
    """

    module_name: str = ""
    module_filter: str = ""
    version_filter: str = ""
    include_prerelease: bool = False
    latest_only: bool = False
    page_token: str = ""
    count: int = 0

    @property
    def page_key(self) -> str:
        return (
            f"moduleversions:{self.module_name}:{self.module_filter}:{self.version_filter}"
            f":{self.include_prerelease}:{self.latest_only}"
        )


class ModuleStore:
    """Module graph storage on an async SQLAlchemy session.

    The session is committed or rolled back by its owner.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def save_module(self, name: str, description: str = "") -> int:
        """Create a module if it does not exist and return its ID."""
        try:
            stmt = pg_insert(Module).values(
                name=name,
                description=description or None,
            ).on_conflict_do_nothing(index_elements=["name"])
            await self._db.execute(stmt)

            result = await self._db.execute(select(Module.id).where(Module.name == name))
            return result.scalar_one()
        except SQLAlchemyError as e:
            logger.error("Failed to save module", module=name, error=str(e))
            raise DatabaseError(f"unable to save module {name!r}: a database operation failed", cause=e) from e

    async def save_module_versions(self, module_id: int, versions: Iterable[str]) -> None:
        """Record versions of a module, ignoring ones already known."""
        if not module_id:
            raise InvalidArgumentError("module_id must be provided")
        try:
            for version in versions:
                stmt = pg_insert(ModuleVersion).values(
                    module_id=module_id,
                    version=strip_v(version),
                ).on_conflict_do_nothing(index_elements=["module_id", "version"])
                await self._db.execute(stmt)
            await self._db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to save module versions", module_id=module_id, error=str(e))
            raise DatabaseError("unable to save module versions: a database operation failed", cause=e) from e

    async def _module_version_id(self, name: str, version: str) -> int:
        module_id = await self.save_module(name)
        await self.save_module_versions(module_id, [version])
        result = await self._db.execute(
            select(ModuleVersion.id).where(
                ModuleVersion.module_id == module_id,
                ModuleVersion.version == strip_v(version),
            )
        )
        return result.scalar_one()

    async def query_modules(
        self,
        name_filter: str = "",
        page_token: str = "",
        count: int = 0,
    ) -> tuple[list[str], str]:
        """List module names matching a glob, in name order.

        Returns:
            Tuple of (module names, next page token).
        """
        offset = decode_page_token(page_token, name_filter) if page_token else 0

        stmt = select(Module.name)
        if name_filter:
            stmt = stmt.where(Module.name.like(glob_to_like(name_filter)))
        stmt = stmt.order_by(Module.name)
        if offset > 0:
            stmt = stmt.offset(offset)
        if count > 0:
            stmt = stmt.limit(count)

        try:
            result = await self._db.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Failed to query modules", filter=name_filter, error=str(e))
            raise DatabaseError("Unable to query the database", cause=e) from e

        names = list(result.scalars().all())
        return names, encode_page_token(name_filter, len(names), offset, count)

    async def query_module_versions(self, query: ModuleVersionQuery) -> tuple[list[ModuleIdentity], str]:
        """List module versions, grouped by module and newest first.

        Returns:
            Tuple of (module versions, next page token).

        Raises:
            InvalidArgumentError: If neither a module name nor filter is given.
        """
        if not query.module_name and not query.module_filter:
            raise InvalidArgumentError("Either the module name or a module filter pattern must be specified")

        stmt = select(Module.name, ModuleVersion.version).join(ModuleVersion, ModuleVersion.module_id == Module.id)
        if query.module_name:
            stmt = stmt.where(Module.name == query.module_name)
        else:
            stmt = stmt.where(Module.name.like(glob_to_like(query.module_filter)))
        if query.version_filter:
            stmt = stmt.where(ModuleVersion.version.like(glob_to_like(strip_v(query.version_filter))))

        rows = await self._fetch_versions(stmt)
        if not query.include_prerelease:
            rows = [m for m in rows if not semver.prerelease(m.version)]
        rows = _sort_modules(rows)

        if query.latest_only:
            latest: list[ModuleIdentity] = []
            for m in rows:
                if not latest or latest[-1].path != m.path:
                    latest.append(m)
            rows = latest

        return _page(rows, query.page_key, query.page_token, query.count)

    async def get_dependees(
        self,
        module: str,
        version: str,
        page_token: str = "",
        count: int = 0,
    ) -> tuple[list[ModuleIdentity], str]:
        """List the module versions that module@version directly depends on."""
        return await self._get_edges(module, version, Direction.DEPENDENCIES, page_token, count)

    async def get_dependents(
        self,
        module: str,
        version: str,
        page_token: str = "",
        count: int = 0,
    ) -> tuple[list[ModuleIdentity], str]:
        """List the module versions that directly depend on module@version."""
        return await self._get_edges(module, version, Direction.DEPENDENTS, page_token, count)

    async def _get_edges(
        self,
        module: str,
        version: str,
        direction: Direction,
        page_token: str,
        count: int,
    ) -> tuple[list[ModuleIdentity], str]:
        if not module:
            raise InvalidArgumentError("module must not be blank")
        if not version:
            raise InvalidArgumentError("version must not be blank")

        key = f"moduledependencies:{module}@{strip_v(version)}:{direction.value}"
        # decode first so a bad token fails before touching the database
        if page_token:
            decode_page_token(page_token, key)

        subject_module = aliased(Module)
        subject = aliased(ModuleVersion)
        other_module = aliased(Module)
        other = aliased(ModuleVersion)
        if direction == Direction.DEPENDENCIES:
            subject_col, other_col = ModuleDependency.dependent_id, ModuleDependency.dependee_id
        else:
            subject_col, other_col = ModuleDependency.dependee_id, ModuleDependency.dependent_id

        stmt = (
            select(other_module.name, other.version)
            .select_from(ModuleDependency)
            .join(subject, subject.id == subject_col)
            .join(subject_module, subject_module.id == subject.module_id)
            .join(other, other.id == other_col)
            .join(other_module, other_module.id == other.module_id)
            .where(subject_module.name == module, subject.version == strip_v(version))
        )
        rows = _sort_modules(await self._fetch_versions(stmt))
        logger.debug(
            "Queried module edges",
            module=module,
            version=version,
            direction=direction.value,
            count=len(rows),
        )
        return _page(rows, key, page_token, count)

    async def _fetch_versions(self, stmt: Select) -> list[ModuleIdentity]:
        try:
            result = await self._db.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Failed to query module versions", error=str(e))
            raise DatabaseError("Unable to query the graph: a database operation failed", cause=e) from e
        return [ModuleIdentity(path=name, version=add_v(version)) for name, version in result.all()]

    async def save_module_dependencies(self, module: ModuleIdentity, deps: Iterable[ModuleIdentity]) -> None:
        """Record the direct dependencies of module@version.

        Existing edges are kept; modules and versions are created as needed.
        """
        if not module.path or not module.version:
            raise InvalidArgumentError("invalid module, both the module name and version must be specified")

        count = 0
        try:
            dependent_id = await self._module_version_id(module.path, module.version)
            for dep in deps:
                dependee_id = await self._module_version_id(dep.path, dep.version)
                stmt = pg_insert(ModuleDependency).values(
                    dependent_id=dependent_id,
                    dependee_id=dependee_id,
                ).on_conflict_do_nothing(index_elements=["dependent_id", "dependee_id"])
                await self._db.execute(stmt)
                count += 1
            await self._db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to save module dependencies", module=str(module), error=str(e))
            raise DatabaseError(
                "Unable to update the graph: database operation failed",
                cause=e,
            ) from e

        logger.info("Saved module dependencies", module=str(module), count=count)
