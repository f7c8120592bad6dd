"""Consumption of paginated dependency queries."""

from collections.abc import AsyncIterator

from perseus.common.metrics import QUERY_PAGES_FETCHED
from perseus.graph.client import GraphQueryClient
from perseus.graph.identity import DependencyPage, Direction, ModuleIdentity


class PageConsumer:
    """Drains every page of a module's direct edges.

    Paging starts with an empty token and stops after the first page that
    returns an empty next-page token. Failures propagate immediately and
    are never retried here.
    """

    def __init__(self, client: GraphQueryClient, page_size: int | None = None) -> None:
        self._client = client
        self._page_size = page_size

    async def iter_pages(
        self,
        module: ModuleIdentity,
        direction: Direction,
    ) -> AsyncIterator[DependencyPage]:
        """Yield each page of direct edges in server order."""
        token = ""
        while True:
            page = await self._client.fetch_dependency_page(
                module.path,
                module.version,
                direction,
                page_token=token,
                page_size=self._page_size,
            )
            QUERY_PAGES_FETCHED.labels(direction=Direction(direction).value).inc()
            yield page
            token = page.next_page_token
            if not token:
                return

    async def drain(self, module: ModuleIdentity, direction: Direction) -> list[ModuleIdentity]:
        """Return every direct edge of module, concatenated across pages."""
        edges: list[ModuleIdentity] = []
        async for page in self.iter_pages(module, direction):
            edges.extend(page.modules)
        return edges
