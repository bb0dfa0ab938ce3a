"""
Batching Module - Concurrent fan-out of per-shard oracle calls.
==============================================================

Without a batch size, every call of a stage starts at once. With one, calls
run in groups of ``batch_size`` with a fixed delay between groups so the
backend's rate limit is respected. Either way results come back in
submission order and a failing call never cancels its siblings.
"""

import asyncio
from typing import Awaitable, Callable, Optional, Sequence, TypeVar, Union

from coursescout.shared.config import Settings
from coursescout.shared.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

ShardOutcome = Union[T, Exception]


class ShardRunner:
    """
    Run coroutine factories concurrently.

    Example:
        >>> runner = ShardRunner(batch_size=5, batch_delay=1.0)
        >>> outcomes = await runner.run([lambda: oracle.invoke(p, 0.3, 0) for p in prompts])
    """

    def __init__(
        self,
        batch_size: Optional[int] = None,
        batch_delay: float = 1.0,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        if batch_size is not None and batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._sleep = sleep or asyncio.sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> "ShardRunner":
        return cls(
            batch_size=settings.pipeline.batch_size,
            batch_delay=settings.pipeline.batch_delay_seconds,
        )

    async def run(
        self,
        factories: Sequence[Callable[[], Awaitable[T]]],
    ) -> list[ShardOutcome]:
        """
        Run every factory and collect results or exceptions.

        Args:
            factories: Zero-argument callables returning awaitables

        Returns:
            One entry per factory, in the same order: the result, or the
            Exception it raised
        """
        if not factories:
            return []

        if self.batch_size is None:
            return await self._gather(factories)

        outcomes: list[ShardOutcome] = []
        batches = [
            factories[i : i + self.batch_size]
            for i in range(0, len(factories), self.batch_size)
        ]
        for i, batch in enumerate(batches):
            logger.debug(f"Running batch {i + 1}/{len(batches)} ({len(batch)} calls)")
            outcomes.extend(await self._gather(batch))
            if i < len(batches) - 1 and self.batch_delay > 0:
                await self._sleep(self.batch_delay)

        return outcomes

    async def _gather(self, factories: Sequence[Callable[[], Awaitable[T]]]) -> list[ShardOutcome]:
        results = await asyncio.gather(*(f() for f in factories), return_exceptions=True)
        for result in results:
            # Cancellation and interrupts are not shard failures
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
        return list(results)
