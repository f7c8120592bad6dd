"""Module graph API endpoints."""

import re

from fastapi import APIRouter, Query

from perseus.api.dependencies import PageSize, Store
from perseus.common.exceptions import InvalidArgumentError, ValidationError
from perseus.common.logging import get_logger
from perseus.graph.identity import Direction, ModuleIdentity, check_module
from perseus.schemas.module import (
    CreateModuleRequest,
    CreateModuleResponse,
    ModuleListResponse,
    ModuleSchema,
    UpdateDependenciesRequest,
    VersionOption,
)
from perseus.services.module_store import ModuleVersionQuery

logger = get_logger(__name__)

router = APIRouter(tags=["modules"])

_MAJOR_VERSION_RE = re.compile(r".+/v([2-9][0-9]*)$")


def module_check(path: str, version: str) -> None:
    """Validate a module path and version.

    Raises:
        ValidationError: If either is invalid.
    """
    try:
        check_module(path, version)
    except InvalidArgumentError as e:
        raise ValidationError(
            f"invalid module/version: {e.message}",
            details={"module": path, "version": version},
        ) from e


def _group(modules: list[ModuleIdentity]) -> list[ModuleSchema]:
    """Collapse consecutive versions of the same module into one entry."""
    grouped: list[ModuleSchema] = []
    for m in modules:
        if not grouped or grouped[-1].name != m.path:
            grouped.append(ModuleSchema(name=m.path))
        grouped[-1].versions.append(m.version)
    return grouped


@router.put("/modules", response_model=CreateModuleResponse)
async def create_module(request: CreateModuleRequest, store: Store) -> CreateModuleResponse:
    """Register a module and, optionally, some of its versions."""
    module = request.module
    if not module.name:
        raise ValidationError("module name is required")

    logger.info("Creating module", module=module.name, versions=module.versions)
    if module.versions:
        for v in module.versions:
            module_check(module.name, v)
    else:
        # validate the name against the version its major suffix implies
        synthetic = "v0.0.0"
        m = _MAJOR_VERSION_RE.match(module.name)
        if m:
            synthetic = f"v{m.group(1)}.0.0"
        module_check(module.name, synthetic)

    module_id = await store.save_module(module.name)
    if module.versions:
        await store.save_module_versions(module_id, module.versions)

    return CreateModuleResponse(module=module)


@router.get("/modules", response_model=ModuleListResponse)
async def list_modules(
    store: Store,
    page_size: PageSize,
    filter: str = Query("", description="Glob pattern matched against module names"),
    page_token: str = Query(""),
) -> ModuleListResponse:
    """List known modules, optionally filtered by name."""
    names, next_token = await store.query_modules(filter, page_token, page_size)
    return ModuleListResponse(
        modules=[ModuleSchema(name=n) for n in names],
        next_page_token=next_token,
    )


@router.get("/module-versions", response_model=ModuleListResponse)
async def list_module_versions(
    store: Store,
    page_size: PageSize,
    module_name: str = Query(""),
    module_filter: str = Query("", description="Glob pattern matched against module names"),
    version_filter: str = Query("", description="Glob pattern matched against versions"),
    include_prerelease: bool = Query(False),
    version_option: VersionOption = Query(VersionOption.ALL),
    page_token: str = Query(""),
) -> ModuleListResponse:
    """List the versions of one module, or of every module matching a pattern."""
    if not module_name and not module_filter:
        raise ValidationError("Either the module name or a module filter pattern must be specified")
    if version_option == VersionOption.NONE:
        raise ValidationError("The version option cannot be 'none'")
    if version_option == VersionOption.LATEST and page_token:
        raise ValidationError("Paging is only supported when the version option is 'all'")

    versions, next_token = await store.query_module_versions(
        ModuleVersionQuery(
            module_name=module_name,
            module_filter=module_filter,
            version_filter=version_filter,
            include_prerelease=include_prerelease,
            latest_only=version_option == VersionOption.LATEST,
            page_token=page_token,
            count=page_size,
        )
    )
    return ModuleListResponse(modules=_group(versions), next_page_token=next_token)


@router.put("/update-module-dependencies")
async def update_dependencies(request: UpdateDependenciesRequest, store: Store) -> dict:
    """Record the direct dependencies of a module version."""
    module_check(request.module_name, request.version)

    deps: list[ModuleIdentity] = []
    for dep in request.dependencies:
        if len(dep.versions) != 1:
            raise ValidationError(
                "must specify exactly 1 version of a dependency",
                details={"module": dep.name, "versions": dep.versions},
            )
        module_check(dep.name, dep.versions[0])
        deps.append(ModuleIdentity(path=dep.name, version=dep.versions[0]))

    await store.save_module_dependencies(
        ModuleIdentity(path=request.module_name, version=request.version),
        deps,
    )
    return {}


@router.get("/modules-dependencies", response_model=ModuleListResponse)
async def query_dependencies(
    store: Store,
    page_size: PageSize,
    module_name: str = Query(...),
    version: str = Query(...),
    direction: Direction = Query(Direction.DEPENDENCIES),
    page_token: str = Query(""),
) -> ModuleListResponse:
    """List the direct dependencies or dependents of a module version."""
    module_check(module_name, version)

    if direction == Direction.DEPENDENCIES:
        edges, next_token = await store.get_dependees(module_name, version, page_token, page_size)
    else:
        edges, next_token = await store.get_dependents(module_name, version, page_token, page_size)

    return ModuleListResponse(
        modules=[ModuleSchema(name=e.path, versions=[e.version]) for e in edges],
        next_page_token=next_token,
    )
