"""Concurrent dependency path search.

Explores the dependency graph outward from a start module, one task per
branch, looking for paths to a target module. A semaphore bounds how
many branches may query the server at once, and a shared cancellation
event lets the caller stop the search as soon as it has what it needs.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any

from perseus.common.config import get_settings
from perseus.common.exceptions import InvalidArgumentError, SearchCancelledError
from perseus.common.logging import get_logger
from perseus.common.metrics import PATH_SEARCH_DURATION, PATHS_FOUND
from perseus.graph.client import GraphQueryClient
from perseus.graph.identity import Direction, ModuleIdentity
from perseus.graph.paging import PageConsumer
from perseus.graph.traversal import StatusCallback

logger = get_logger(__name__)

# Closes the result stream
_DONE = object()


@dataclass
class PathResult:
    """A discovered path from the start module to a match, or an error."""

    path: list[ModuleIdentity] | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class PathSearch:
    """A running path search.

    Iterate it to receive PathResult values as they are discovered, in no
    particular order. The stream ends once every spawned branch has
    finished. Use it as an async context manager so the search is always
    cancelled and its tasks awaited on exit.
    """

    def __init__(
        self,
        pages: PageConsumer,
        start: ModuleIdentity,
        target: ModuleIdentity,
        max_depth: int,
        parallelism: int,
        status: StatusCallback | None = None,
    ) -> None:
        self._pages = pages
        self._start = start
        self._target = target
        self._max_depth = max_depth
        self._status = status
        self._semaphore = asyncio.Semaphore(parallelism)
        self._results: asyncio.Queue[Any] = asyncio.Queue()
        self._cancelled = asyncio.Event()
        self._idle = asyncio.Event()
        self._tasks: set[asyncio.Task[None]] = set()
        self._outstanding = 0
        self._finished = False
        self._started_at = time.perf_counter()
        self._spawn([start], 1)

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop issuing queries and spawning branches.

        Queries already in flight complete; results already queued are
        still delivered.
        """
        if not self._cancelled.is_set():
            logger.debug("Cancelling path search", start=str(self._start), target=str(self._target))
            self._cancelled.set()

    async def aclose(self) -> None:
        """Cancel the search and wait for every branch to finish."""
        self.cancel()
        await self._idle.wait()

    async def __aenter__(self) -> "PathSearch":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def __aiter__(self) -> "PathSearch":
        return self

    async def __anext__(self) -> PathResult:
        if self._finished:
            raise StopAsyncIteration
        item = await self._results.get()
        if item is _DONE:
            self._finished = True
            raise StopAsyncIteration
        return item

    def _spawn(self, chain: list[ModuleIdentity], depth: int) -> None:
        self._outstanding += 1
        task = asyncio.create_task(self._expand(chain, depth))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        self._outstanding -= 1
        if self._outstanding == 0:
            PATH_SEARCH_DURATION.observe(time.perf_counter() - self._started_at)
            self._idle.set()
            self._results.put_nowait(_DONE)

    def _emit(self, result: PathResult) -> None:
        if result.path is not None:
            PATHS_FOUND.inc()
            logger.debug("Found path", path=" -> ".join(str(m) for m in result.path))
        self._results.put_nowait(result)

    async def _expand(self, chain: list[ModuleIdentity], depth: int) -> None:
        if self._cancelled.is_set():
            return

        current = chain[-1]
        async with self._semaphore:
            if self._cancelled.is_set():
                self._emit(PathResult(error=SearchCancelledError(f"Path search cancelled at {current}")))
                return

            if self._status is not None:
                self._status(f"processing {current}")
            try:
                edges = await self._pages.drain(current, Direction.DEPENDENCIES)
            except Exception as e:
                # Reported through the result stream and handled by the consumer
                self._emit(PathResult(error=e))
                return

            children: list[ModuleIdentity] = []
            for child in edges:
                if child in chain:
                    continue
                if child.matches(self._target):
                    self._emit(PathResult(path=[*chain, child]))
                children.append(child)

        if depth < self._max_depth and not self._cancelled.is_set():
            for child in children:
                self._spawn([*chain, child], depth + 1)


class PathFinder:
    """Finds dependency paths between two modules.

    Only dependencies are followed, so every path leads from the start
    module towards the modules it depends on. Paths never visit the same
    module twice and have at most max_depth hops.
    """

    def __init__(
        self,
        client: GraphQueryClient,
        max_depth: int,
        parallelism: int | None = None,
        status: StatusCallback | None = None,
        page_size: int | None = None,
    ) -> None:
        """Initialize path finder.

        Args:
            client: Graph query client, usually wrapped for retries.
            max_depth: Maximum number of hops in a path, at least 1.
            parallelism: Maximum concurrent queries. Uses search settings if not provided.
            status: Progress callback invoked once per expanded module.
            page_size: Page size for dependency queries.

        Raises:
            InvalidArgumentError: If max_depth or parallelism is below 1.
        """
        if max_depth < 1:
            raise InvalidArgumentError(
                f"max_depth must be at least 1, got {max_depth}",
                details={"max_depth": max_depth},
            )
        if parallelism is None:
            parallelism = get_settings().search.parallelism
        if parallelism < 1:
            raise InvalidArgumentError(f"parallelism must be at least 1, got {parallelism}")

        self._pages = PageConsumer(client, page_size=page_size)
        self._max_depth = max_depth
        self._parallelism = parallelism
        self._status = status

    @property
    def max_depth(self) -> int:
        return self._max_depth

    def find_paths_between(self, from_: ModuleIdentity, to: ModuleIdentity) -> PathSearch:
        """Start searching for paths from from_ to any version of to.

        When to has a version only that exact version matches.
        Must be called from a running event loop.

        Raises:
            InvalidArgumentError: If from_ has no version or to has no path.
        """
        if not from_.version:
            raise InvalidArgumentError(f"A version is required for the starting module {from_.path}")
        if not to.path:
            raise InvalidArgumentError("The target module must be specified")

        logger.debug(
            "Starting path search",
            start=str(from_),
            target=str(to),
            max_depth=self._max_depth,
            parallelism=self._parallelism,
        )
        return PathSearch(
            self._pages,
            from_,
            to,
            max_depth=self._max_depth,
            parallelism=self._parallelism,
            status=self._status,
        )


async def collect_paths(
    finder: PathFinder,
    from_: ModuleIdentity,
    to: ModuleIdentity,
    show_all: bool = False,
) -> list[list[ModuleIdentity]]:
    """Run a path search to completion and return the discovered paths.

    Unless show_all is set the search is cancelled as soon as the first
    path arrives. Cancellation results are dropped; any other error stops
    the search and is raised.
    """
    paths: list[list[ModuleIdentity]] = []
    async with finder.find_paths_between(from_, to) as search:
        async for result in search:
            if result.error is not None:
                if isinstance(result.error, (SearchCancelledError, asyncio.CancelledError)):
                    continue
                raise result.error
            paths.append(result.path)
            if not show_all:
                search.cancel()
                break
    return paths
