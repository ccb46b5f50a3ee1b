"""
Batched fan-out helpers for calls against the tracker.

Two join flavours are provided: `gather_fail_fast` aborts the remaining
tasks on the first error, `gather_settled` waits for every task and
returns results and exceptions side by side.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")

log = logging.getLogger(__name__)


async def gather_fail_fast(aws: Iterable[Awaitable[T]]) -> list[T]:
    """
    Runs all awaitables concurrently and returns their results in order.
    The first exception cancels the siblings still running and is re-raised.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    if not tasks:
        return []
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()
        return [task.result() for task in tasks]
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


async def gather_settled(aws: Iterable[Awaitable[T]]) -> list[T | BaseException]:
    """
    Runs all awaitables concurrently and waits for every one of them.
    Failures are returned in place of results; nothing is cancelled.
    """
    return await asyncio.gather(*aws, return_exceptions=True)


class BatchFetcher:
    """
    Maps a coroutine over items in fixed-size batches. Each batch runs fully in
    parallel; a fixed delay separates consecutive batches so the sustained
    request rate against the tracker stays bounded.
    """

    def __init__(self, batch_size: int = 5, batch_delay: float = 0.5):
        """
        Args:
            batch_size: Maximum number of items processed at the same time.
            batch_delay: Seconds to wait between two batches.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.batch_size = batch_size
        self.batch_delay = batch_delay

    async def map_concurrently(
        self, items: Sequence[T], worker: Callable[[T], Awaitable[R]]
    ) -> list[R | BaseException]:
        """
        Applies `worker` to every item and returns the outcomes in input order.
        A failing item yields its exception and does not abort its batch.
        """
        if not items:
            return []

        log.debug(
            f"Batch processing {len(items)} items "
            f"({self.batch_size} per batch, {self.batch_delay}s apart)..."
        )
        outcomes: list[R | BaseException] = []
        for offset in range(0, len(items), self.batch_size):
            if offset > 0 and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)
            batch = items[offset : offset + self.batch_size]
            outcomes.extend(await gather_settled(worker(item) for item in batch))
        return outcomes

    async def map_successful(
        self,
        items: Sequence[T],
        worker: Callable[[T], Awaitable[R]],
        describe: Callable[[T], str] = str,
    ) -> list[R]:
        """
        Like `map_concurrently`, but failed items are logged and omitted.
        """
        outcomes = await self.map_concurrently(items, worker)
        results = []
        for item, outcome in zip(items, outcomes, strict=True):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                log.warning(f"Skipping {describe(item)}: {outcome}")
                continue
            results.append(outcome)
        return results
