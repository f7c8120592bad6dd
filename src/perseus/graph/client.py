"""Graph query clients.

GraphQueryClient is the capability the traversal algorithms depend on.
HTTPGraphQueryClient implements it, and the rest of the service API,
over the Perseus REST endpoints.
"""

from typing import Any, Protocol, runtime_checkable

import httpx
from pydantic import ValidationError as PydanticValidationError

from perseus.common.config import ClientSettings, get_settings
from perseus.common.exceptions import ConfigurationError, QueryError, TransientUnavailableError
from perseus.common.logging import get_logger
from perseus.graph.identity import DependencyPage, Direction, ModuleIdentity
from perseus.schemas.module import ModuleListResponse

logger = get_logger(__name__)

API_PREFIX = "/api/v1"

# Gateway statuses that indicate the server is temporarily unreachable
_TRANSIENT_STATUSES = frozenset({502, 503, 504})


@runtime_checkable
class GraphQueryClient(Protocol):
    """Read access to the module dependency graph.

    Implementations raise QueryError on failure, or its subclass
    TransientUnavailableError when the call may succeed if retried.
    """

    async def fetch_dependency_page(
        self,
        module: str,
        version: str,
        direction: Direction,
        page_token: str = "",
        page_size: int | None = None,
    ) -> DependencyPage:
        """Fetch one page of the direct edges of module@version."""
        ...

    async def resolve_latest_version(self, module: str) -> str:
        """Return the highest known version of a module."""
        ...


class HTTPGraphQueryClient:
    """GraphQueryClient backed by the Perseus REST API.

    Also exposes the module listing and update operations used by the CLI.
    The underlying httpx client is created on demand unless one is
    injected, in which case the caller owns its lifetime.
    """

    def __init__(
        self,
        base_url: str | None = None,
        settings: ClientSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Server base URL. Derived from settings when omitted.
            settings: Client settings. Uses global settings if not provided.
            client: Pre-configured HTTP client to use instead of creating one.

        Raises:
            ConfigurationError: If no server address is configured.
        """
        self._settings = settings or get_settings().client
        if base_url is None:
            if not self._settings.addr and client is None:
                raise ConfigurationError("The Perseus server address must be specified")
            base_url = self._settings.base_url if self._settings.addr else ""
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "HTTPGraphQueryClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._settings.timeout_seconds,
                headers={"User-Agent": "Perseus/1.0"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Issue a request and decode the JSON body.

        Raises:
            TransientUnavailableError: Connection failures, timeouts, and
                gateway errors.
            QueryError: Any other failed request.
        """
        url = f"{self._base_url}{API_PREFIX}{path}"
        if params:
            params = {k: v for k, v in params.items() if v not in (None, "")}
        try:
            response = await self._get_client().request(method, url, params=params, json=json)
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            raise TransientUnavailableError(
                f"Unable to reach the Perseus server: {e}",
                details={"url": url},
                cause=e,
            ) from e
        except httpx.HTTPError as e:
            raise QueryError(f"Request to the Perseus server failed: {e}", details={"url": url}, cause=e) from e

        if response.status_code in _TRANSIENT_STATUSES:
            raise TransientUnavailableError(
                f"The Perseus server is unavailable (HTTP {response.status_code})",
                details={"url": url, "status_code": response.status_code},
            )
        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            if not isinstance(body, dict):
                body = {}
            raise QueryError(
                body.get("message") or f"HTTP {response.status_code}",
                details={"url": url, "status_code": response.status_code, "error": body.get("error")},
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise QueryError("The Perseus server returned an invalid response", cause=e) from e

    async def _list(self, path: str, params: dict[str, Any]) -> ModuleListResponse:
        data = await self._request("GET", path, params=params)
        try:
            return ModuleListResponse.model_validate(data)
        except PydanticValidationError as e:
            raise QueryError("The Perseus server returned an invalid response", cause=e) from e

    async def fetch_dependency_page(
        self,
        module: str,
        version: str,
        direction: Direction,
        page_token: str = "",
        page_size: int | None = None,
    ) -> DependencyPage:
        resp = await self._list(
            "/modules-dependencies",
            {
                "module_name": module,
                "version": version,
                "direction": Direction(direction).value,
                "page_token": page_token,
                "page_size": page_size,
            },
        )
        modules = [
            ModuleIdentity(path=m.name, version=v)
            for m in resp.modules
            for v in m.versions
        ]
        logger.debug(
            "Fetched dependency page",
            module=module,
            version=version,
            direction=Direction(direction).value,
            count=len(modules),
            has_more=bool(resp.next_page_token),
        )
        return DependencyPage(modules=modules, next_page_token=resp.next_page_token)

    async def resolve_latest_version(self, module: str) -> str:
        resp = await self._list(
            "/module-versions",
            {"module_name": module, "version_option": "latest"},
        )
        for m in resp.modules:
            if m.name == module and m.versions:
                return m.versions[0]
        raise QueryError(f"No version found for module {module}", details={"module": module})

    async def list_modules(
        self,
        pattern: str = "",
        page_token: str = "",
        page_size: int | None = None,
    ) -> ModuleListResponse:
        """List known modules whose names match a glob pattern."""
        return await self._list(
            "/modules",
            {"filter": pattern, "page_token": page_token, "page_size": page_size},
        )

    async def list_module_versions(
        self,
        module_name: str = "",
        module_filter: str = "",
        version_filter: str = "",
        latest: bool = False,
        include_prerelease: bool = False,
        page_token: str = "",
        page_size: int | None = None,
    ) -> ModuleListResponse:
        """List the known versions of one module or of modules matching a pattern."""
        return await self._list(
            "/module-versions",
            {
                "module_name": module_name,
                "module_filter": module_filter,
                "version_filter": version_filter,
                "version_option": "latest" if latest else "all",
                "include_prerelease": "true" if include_prerelease else None,
                "page_token": page_token,
                "page_size": page_size,
            },
        )

    async def update_dependencies(
        self,
        module: ModuleIdentity,
        dependencies: list[ModuleIdentity],
    ) -> None:
        """Record the direct dependencies of module@version."""
        await self._request(
            "PUT",
            "/update-module-dependencies",
            json={
                "module_name": module.path,
                "version": module.version,
                "dependencies": [
                    {"name": d.path, "versions": [d.version]} for d in dependencies
                ],
            },
        )
        logger.info("Updated module dependencies", module=str(module), count=len(dependencies))
