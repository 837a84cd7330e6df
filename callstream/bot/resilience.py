"""
Recreate-on-failure policy shared by provider bindings.

A ResilientHandle owns one lazily created provider resource (a recognition
stream, an AI chat stream). Operations run against the current resource;
when one fails the resource is closed and dropped, and the operation is
retried against a fresh one up to the policy's retry budget with a fixed
backoff. With a zero retry budget the handle simply discards the failed
resource so the next use recreates it.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from callstream.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

T = TypeVar("T")
R = TypeVar("R")

Factory = Callable[[], Awaitable[T]]
Closer = Callable[[T], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retries with a fixed delay between attempts."""

    max_retries: int = 3
    backoff_seconds: float = 1.0


NO_RETRY = RetryPolicy(max_retries=0, backoff_seconds=0.0)


class ResourceClosedError(RuntimeError):
    """The handle was closed; its resource will not be recreated."""


class ResilientHandle(Generic[T]):
    """Lazily created resource that is replaced after a failure."""

    def __init__(
        self,
        name: str,
        factory: Optional[Factory] = None,
        closer: Optional[Closer] = None,
        policy: RetryPolicy = NO_RETRY,
    ):
        self.name = name
        self.policy = policy
        self._factory = factory
        self._closer = closer
        self._current: Optional[T] = None
        self._closed = False

    @property
    def current(self) -> Optional[T]:
        """The live resource, or None if it has not been created yet."""
        return self._current

    @property
    def closed(self) -> bool:
        return self._closed

    async def acquire(self, factory: Optional[Factory] = None) -> T:
        """
        Return the live resource, creating it first if needed.

        Args:
            factory: Overrides the factory given at construction for this call

        Raises:
            ResourceClosedError: if the handle has been closed
            Whatever the factory raises; nothing is stored in that case.
        """
        if self._closed:
            raise ResourceClosedError(f"{self.name} is closed")
        if self._current is None:
            create = factory or self._factory
            if create is None:
                raise RuntimeError(f"No factory configured for {self.name}")
            resource = await create()
            if self._closed:
                # closed while the resource was being created
                await self._close_resource(resource)
                raise ResourceClosedError(f"{self.name} is closed")
            self._current = resource
            logger.debug(f"Created resource for {self.name}")
        return self._current

    async def invalidate(self) -> None:
        """Close and drop the live resource. Safe to call repeatedly."""
        resource, self._current = self._current, None
        if resource is not None:
            await self._close_resource(resource)

    async def close(self) -> None:
        """Release the resource for good; later acquire() and run() calls fail."""
        self._closed = True
        await self.invalidate()

    async def _close_resource(self, resource: T) -> None:
        if self._closer is None:
            return
        try:
            await self._closer(resource)
        except Exception as e:
            logger.warning(f"Error closing resource for {self.name}: {e}")

    async def run(self, operation: Callable[[T], Awaitable[R]]) -> R:
        """
        Run an operation against the resource, recreating it on failure.

        The last error is re-raised once the retry budget is exhausted, or
        straight away if the handle was closed while the operation ran.
        """
        attempt = 0
        while True:
            try:
                resource = await self.acquire()
                return await operation(resource)
            except Exception as e:
                await self.invalidate()
                if self._closed:
                    raise
                if attempt >= self.policy.max_retries:
                    logger.error(
                        f"{self.name} failed after {attempt + 1} attempt(s): {e}"
                    )
                    raise
                attempt += 1
                logger.warning(
                    f"{self.name} failed ({e}); recreating "
                    f"(retry {attempt}/{self.policy.max_retries}) in {self.policy.backoff_seconds}s"
                )
                await asyncio.sleep(self.policy.backoff_seconds)
