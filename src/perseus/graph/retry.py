"""Retry wrapper for graph query clients.

Retries calls that fail with TransientUnavailableError on a fixed,
slowly growing delay schedule with random jitter. Every other error is
raised immediately.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from perseus.common.config import get_settings
from perseus.common.exceptions import TransientUnavailableError
from perseus.common.logging import get_logger
from perseus.common.metrics import QUERY_RETRIES
from perseus.graph.client import GraphQueryClient
from perseus.graph.identity import DependencyPage, Direction

logger = get_logger(__name__)

T = TypeVar("T")


class RetryingQueryClient:
    """GraphQueryClient decorator that retries transient failures.

    With the default schedule a call is attempted up to six times, sleeping
    100, 200, 300, 500 and 800 ms (each plus up to 20% jitter) between
    attempts. When every attempt fails the last TransientUnavailableError
    is raised.
    """

    def __init__(
        self,
        inner: GraphQueryClient,
        delays: Sequence[float] | None = None,
        jitter: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the wrapper.

        Args:
            inner: Client to delegate to.
            delays: Seconds to wait before each retry. Uses retry settings if not provided.
            jitter: Maximum extra delay as a fraction of each base delay.
            sleep: Coroutine used to wait between attempts.
        """
        settings = get_settings().retry
        self._inner = inner
        self._delays = list(delays) if delays is not None else settings.delays
        self._jitter = jitter if jitter is not None else settings.jitter
        self._sleep = sleep

    @property
    def inner(self) -> GraphQueryClient:
        return self._inner

    def _delay_for(self, attempt: int) -> float:
        base = self._delays[attempt]
        return base + base * self._jitter * random.random()

    async def _call(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            try:
                return await fn()
            except TransientUnavailableError as e:
                if attempt >= len(self._delays):
                    logger.warning(
                        "Giving up after repeated unavailability",
                        operation=operation,
                        attempts=attempt + 1,
                        error=e.message,
                    )
                    raise
                delay = self._delay_for(attempt)
                attempt += 1
                QUERY_RETRIES.labels(operation=operation).inc()
                logger.warning(
                    "Server unavailable, retrying",
                    operation=operation,
                    attempt=attempt,
                    delay_ms=round(delay * 1000),
                    error=e.message,
                )
                await self._sleep(delay)

    async def fetch_dependency_page(
        self,
        module: str,
        version: str,
        direction: Direction,
        page_token: str = "",
        page_size: int | None = None,
    ) -> DependencyPage:
        return await self._call(
            "fetch_dependency_page",
            lambda: self._inner.fetch_dependency_page(module, version, direction, page_token, page_size),
        )

    async def resolve_latest_version(self, module: str) -> str:
        return await self._call(
            "resolve_latest_version",
            lambda: self._inner.resolve_latest_version(module),
        )
