"""
Per-item execution policy for remote-store batches.

Batches run either sequentially with a fixed inter-item delay (the default,
for rate-sensitive storage APIs) or with bounded concurrency. Either way every
item is wrapped in its own timeout, exceptions are converted into that item's
failure record, and results come back in input order so each outcome stays
attributable to its item.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar

logger = logging.getLogger("order_assets.pacing")

T = TypeVar("T")

ItemWorker = Callable[[T], Awaitable[Dict[str, Any]]]
ItemErrorHandler = Callable[[T, BaseException], Dict[str, Any]]


class PacingPolicy:
    """
    Runs an async worker over a batch of items.

    Attributes:
        delay_seconds: Pause between consecutive items (sequential mode)
        max_concurrency: 1 for sequential, >1 for a bounded worker pool
        item_timeout: Seconds before a single item is abandoned (None = no limit)
    """

    def __init__(
        self,
        delay_seconds: float = 0.0,
        max_concurrency: int = 1,
        item_timeout: Optional[float] = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.delay_seconds = max(0.0, delay_seconds)
        self.max_concurrency = max_concurrency
        self.item_timeout = item_timeout

    @property
    def sequential(self) -> bool:
        return self.max_concurrency == 1

    async def run(
        self,
        items: Iterable[T],
        worker: ItemWorker,
        on_error: ItemErrorHandler,
    ) -> List[Dict[str, Any]]:
        """
        Execute ``worker`` for each item.

        Args:
            items: Items to process
            worker: Coroutine function returning the item's result dict
            on_error: Builds the failure result for an item that raised or timed out

        Returns:
            Result dicts in input order
        """
        items = list(items)
        if not items:
            return []

        if self.sequential:
            results = []
            for position, item in enumerate(items):
                results.append(await self._run_one(item, worker, on_error))
                if self.delay_seconds and position < len(items) - 1:
                    await asyncio.sleep(self.delay_seconds)
            return results

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(item: T) -> Dict[str, Any]:
            async with semaphore:
                result = await self._run_one(item, worker, on_error)
                if self.delay_seconds:
                    await asyncio.sleep(self.delay_seconds)
                return result

        return list(await asyncio.gather(*(bounded(item) for item in items)))

    async def _run_one(self, item: T, worker: ItemWorker, on_error: ItemErrorHandler) -> Dict[str, Any]:
        try:
            if self.item_timeout:
                return await asyncio.wait_for(worker(item), timeout=self.item_timeout)
            return await worker(item)
        except asyncio.TimeoutError:
            logger.warning(f"Item {item!r} timed out after {self.item_timeout}s")
            return on_error(item, TimeoutError(f"timed out after {self.item_timeout}s"))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Item {item!r} failed: {e}")
            return on_error(item, e)
