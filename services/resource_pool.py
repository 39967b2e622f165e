"""
Bounded pool of reusable worker resources (OCR engines, rectifier contexts).

Resources are built once by a factory at ``start()``, handed out one request
at a time, reset before reuse, and closed at ``shutdown()``. Blocking work
runs in the default thread pool executor.

A call that exceeds its timeout raises ``ProcessingTimeoutError`` to the
caller, but its resource stays checked out until the underlying work
actually finishes; only then is it returned to the pool.
"""
import asyncio
import logging
from typing import Any, Callable, Generic, List, Optional, TypeVar

from utils.exceptions import ProcessingTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResourcePool(Generic[T]):

    def __init__(
        self,
        factory: Callable[[], T],
        size: int,
        name: str = "resource",
        default_timeout: Optional[float] = None,
    ):
        if size < 1:
            raise ValueError("Pool size must be at least 1")
        self.factory = factory
        self.size = size
        self.name = name
        self.default_timeout = default_timeout
        self._resources: List[T] = []
        self._queue: Optional[asyncio.Queue] = None
        self._in_flight = 0

    @property
    def started(self) -> bool:
        return self._queue is not None

    @property
    def available(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def start(self) -> None:
        """Build every resource up front. Factory errors propagate."""
        if self.started:
            return
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.size)
        resources = []
        try:
            for _ in range(self.size):
                resource = await loop.run_in_executor(None, self.factory)
                resources.append(resource)
                queue.put_nowait(resource)
        except Exception:
            for resource in resources:
                close = getattr(resource, "close", None)
                if callable(close):
                    close()
            raise
        self._resources = resources
        self._queue = queue
        logger.info(f"{self.name} pool started with {self.size} worker(s)")

    async def shutdown(self) -> None:
        if not self.started:
            return
        for resource in self._resources:
            close = getattr(resource, "close", None)
            if callable(close):
                try:
                    close()
                except Exception as e:
                    logger.warning(f"Error closing {self.name}: {e}")
        self._resources = []
        self._queue = None
        logger.info(f"{self.name} pool shut down")

    def _release(self, resource: T) -> None:
        self._in_flight -= 1
        if self._queue is None:
            return
        reset = getattr(resource, "reset", None)
        if callable(reset):
            try:
                reset()
            except Exception as e:
                logger.warning(f"Error resetting {self.name}: {e}")
        self._queue.put_nowait(resource)

    async def run(self, fn: Callable[..., Any], *args, timeout: Optional[float] = None) -> Any:
        """
        Run ``fn(resource, *args)`` in the executor with an exclusive resource.

        Waits for a free resource when the pool is exhausted.
        """
        if not self.started:
            raise RuntimeError(f"{self.name} pool is not started")

        timeout = self.default_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()

        resource = await self._queue.get()
        self._in_flight += 1
        try:
            future = loop.run_in_executor(None, fn, resource, *args)
        except Exception:
            self._release(resource)
            raise

        # Return the resource only once the work settles, whatever the caller sees
        future.add_done_callback(lambda _f: self._release(resource))

        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"{self.name} call timed out after {timeout}s; resource held until work completes"
            )
            # Retrieve the eventual exception so it is not reported as unhandled
            future.add_done_callback(lambda f: f.cancelled() or f.exception())
            raise ProcessingTimeoutError(self.name, timeout)
