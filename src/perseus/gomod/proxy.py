"""Go module proxy client.

Implements the read side of the GOPROXY protocol: version lists and
go.mod files. Proxies are tried in order; a 404 or 410 from one moves on
to the next.
"""

from typing import Any

import httpx

from perseus.common.config import ModuleProxySettings, get_settings
from perseus.common.exceptions import ModuleProxyError, ModuleVersionNotFoundError
from perseus.common.logging import get_logger
from perseus.gomod.modfile import GoModFile, parse_go_mod
from perseus.graph import semver

logger = get_logger(__name__)

_FALLTHROUGH_STATUSES = frozenset({404, 410})


def escape_path(path: str) -> str:
    """Escape a module path for use in proxy URLs.

    Upper-case letters become "!" followed by the lower-case letter.
    """
    return "".join(f"!{c.lower()}" if c.isupper() else c for c in path)


class ModuleProxy:
    """Client for one or more Go module proxies."""

    def __init__(
        self,
        urls: list[str] | None = None,
        client: httpx.AsyncClient | None = None,
        settings: ModuleProxySettings | None = None,
    ) -> None:
        """Initialize the proxy client.

        Args:
            urls: Proxy base URLs. Parsed from GOPROXY if not provided.
            client: HTTP client to use instead of creating one.
            settings: Proxy settings. Uses global settings if not provided.
        """
        self._settings = settings or get_settings().proxy
        self._urls = [u.rstrip("/") for u in (urls or self._settings.urls)]
        self._client = client
        self._owns_client = client is None

    @property
    def urls(self) -> list[str]:
        return list(self._urls)

    async def __aenter__(self) -> "ModuleProxy":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._settings.timeout_seconds,
                follow_redirects=True,
                headers={"User-Agent": "Perseus/1.0"},
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _get(self, suffix: str) -> str | None:
        """GET suffix from the first proxy that has it.

        Returns:
            The response body, or None if every proxy returned 404/410 or
            an empty body.
        """
        for proxy in self._urls:
            url = f"{proxy}/{suffix}"
            try:
                response = await self._get_client().get(url)
            except httpx.HTTPError as e:
                raise ModuleProxyError(
                    f"error fetching {url}: {e}",
                    details={"proxy": proxy},
                    cause=e,
                ) from e

            if response.status_code in _FALLTHROUGH_STATUSES:
                logger.debug("Module not found on proxy", url=url, status_code=response.status_code)
                continue
            if response.status_code != 200:
                raise ModuleProxyError(
                    f"unexpected response code ({response.status_code}) from {proxy}",
                    details={"url": url, "status_code": response.status_code},
                )
            if not response.text:
                continue
            return response.text
        return None

    async def get_module_versions(self, module: str) -> list[str]:
        """List the versions a proxy knows for a module.

        Raises:
            ModuleVersionNotFoundError: If no proxy lists any version.
            ModuleProxyError: If a proxy request fails.
        """
        body = await self._get(f"{escape_path(module)}/@v/list")
        versions = [line.strip() for line in (body or "").splitlines() if line.strip()]
        if not versions:
            raise ModuleVersionNotFoundError(f"no versions found for {module}", details={"module": module})
        return versions

    async def get_current_version(self, module: str, include_prerelease: bool = False) -> str:
        """Return the highest version of a module known to the proxies.

        Raises:
            ModuleVersionNotFoundError: If no suitable version exists.
        """
        versions = await self.get_module_versions(module)
        latest = semver.latest(versions, include_prerelease=include_prerelease)
        if not latest:
            raise ModuleVersionNotFoundError(f"no released versions found for {module}", details={"module": module})
        logger.debug("Resolved current module version", module=module, version=latest)
        return latest

    async def get_mod_file(self, module: str, version: str) -> GoModFile:
        """Fetch and parse the go.mod of module@version.

        Raises:
            ModuleVersionNotFoundError: If no proxy has the module version.
            ModuleProxyError: If a proxy request fails.
        """
        canonical = semver.canonical(version) or version
        sv = semver.parse(version)
        if sv is not None and sv.build == "incompatible":
            canonical += "+incompatible"
        body = await self._get(f"{escape_path(module)}/@v/{escape_path(canonical)}.mod")
        if body is None:
            raise ModuleVersionNotFoundError(
                f"the module {module}@{version} was not found",
                details={"module": module, "version": version},
            )
        return parse_go_mod(body, source=f"{module}@{version}/go.mod")
