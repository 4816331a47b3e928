# partsync/dispatcher.py
import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Sequence

from .logger import get_logger
from .models import Part

logger = get_logger(__name__)

WriteFn = Callable[[Part], Awaitable[bool]]


@dataclass
class BatchResult:
    attempted: List[str] = field(default_factory=list)
    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class ActionDispatcher:
    """
    Serializes remote writes. Items of one batch are written strictly in
    order, each after the previous attempt settled, with a fixed pause
    between items so the script endpoint behind the store is not flooded.
    Nothing is retried here.
    """

    def __init__(self, item_delay: float = 0.6, sleep=asyncio.sleep):
        self.item_delay = item_delay
        self._sleep = sleep

    async def dispatch_one(self, item: Part, write_fn: WriteFn) -> bool:
        try:
            ok = bool(await write_fn(item))
        except Exception as e:
            logger.error("Remote write failed for %s: %s", item.id, e)
            return False
        if not ok:
            logger.warning("Remote write not accepted for %s", item.id)
        return ok

    async def dispatch_batch(self, items: Sequence[Part], write_fn: WriteFn) -> BatchResult:
        result = BatchResult()
        total = len(items)
        for idx, item in enumerate(items):
            result.attempted.append(item.id)
            if await self.dispatch_one(item, write_fn):
                result.succeeded.append(item.id)
            else:
                result.failed.append(item.id)

            if idx < total - 1 and self.item_delay > 0:
                await self._sleep(self.item_delay)

        if result.failed:
            logger.warning(
                "Batch dispatch finished with %d/%d failures: %s",
                len(result.failed), total, result.failed,
            )
        else:
            logger.info("Batch dispatch wrote %d items.", total)
        return result
