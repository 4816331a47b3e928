# partsync/engine.py
"""
Reconciliation engine: the single owner of the local inventory and sales
collections.

Every user action mutates the local collections first, synchronously, so the
caller sees the result immediately. The matching remote write is dispatched
afterwards and a forced resync is scheduled a few seconds later. Remote
writes are not acknowledged by the store, so local state stays the best
available truth until the next successful resync replaces it.

A non-forced resync (timer driven) is skipped while the last user action is
younger than the cooldown window; otherwise a read that raced a just-sent
write would put stale server rows back on screen.
"""
import asyncio
import datetime
import sqlite3
import time
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Set, Union

import pytz

from remote.sheets import WriteAction, build_payload

from . import storage
from .dispatcher import ActionDispatcher, BatchResult
from .journal import MutationJournal, MutationKind, diff_collections
from .logger import get_logger
from .models import ConnectivityStatus, Part, PartStatus, SyncError
from .normalize import generate_id, split_snapshot
from .session import AppContext, Session, SessionEvent

logger = get_logger(__name__)


class ItemNotFoundError(SyncError, LookupError):
    """The requested id is not in the collection the action needs."""


def _index_of(parts: List[Part], item_id: str) -> Optional[int]:
    for idx, p in enumerate(parts):
        if p.id == item_id:
            return idx
    return None


class ReconciliationEngine:
    def __init__(
        self,
        context: AppContext,
        dispatcher: Optional[ActionDispatcher] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.context = context
        self.config = context.config
        self.store = context.store
        self.dispatcher = dispatcher or ActionDispatcher(item_delay=self.config.batch_item_delay)
        self._clock = clock

        self.active_inventory: List[Part] = []
        self.sales_history: List[Part] = []
        self.last_user_action_at: Optional[float] = None
        self.connectivity = ConnectivityStatus.CONNECTED
        self.last_sync: Optional[datetime.datetime] = None
        self.journal = MutationJournal(ttl=self.config.journal_ttl)

        self._online = True
        self._writes_in_flight = 0
        self._reads_in_flight = 0
        self._background: Set[asyncio.Task] = set()
        self._unsubscribe = context.session.subscribe(self._on_session_event)

    # ------------------------------------------------------------------ state

    @property
    def is_syncing_write(self) -> bool:
        return self._writes_in_flight > 0

    @property
    def is_syncing_read(self) -> bool:
        return self._reads_in_flight > 0

    @property
    def pending_resyncs(self) -> int:
        return len(self._background)

    def summary(self) -> Dict[str, object]:
        return {
            "tenant": self.context.tenant.id,
            "inventory": len(self.active_inventory),
            "sales": len(self.sales_history),
            "inventory_value": round(sum(p.suggested_price for p in self.active_inventory), 2),
            "sales_total": round(sum(p.final_price or 0 for p in self.sales_history), 2),
            "connectivity": self.connectivity.value,
            "last_sync": self.last_sync.isoformat() if self.last_sync else None,
        }

    def _stamp(self) -> float:
        now = self._clock()
        self.last_user_action_at = now
        return now

    def _mark_error(self) -> None:
        # An offline device stays OFFLINE; ERROR means the network was expected to work
        if self._online:
            self.connectivity = ConnectivityStatus.ERROR

    # ----------------------------------------------------------------- writes

    def _record_event(self, action: WriteAction, sheet: str, part: Part, ok: bool) -> None:
        if not self.context.db_path:
            return
        price = part.final_price if part.final_price is not None else part.suggested_price
        try:
            storage.record_write_event(
                self.context.tenant.id, action.value, sheet, part.id, part.name,
                price, ok, db_path=self.context.db_path,
            )
        except sqlite3.Error as e:
            logger.warning("Could not record %s event for %s: %s", action.value, part.id, e)

    def _writer(self, action: WriteAction, sheet: str):
        async def write(part: Part) -> bool:
            ok = False
            self._writes_in_flight += 1
            try:
                ok = await asyncio.to_thread(
                    self.store.write, build_payload(action, sheet, part)
                )
                return ok
            finally:
                self._writes_in_flight -= 1
                if not ok:
                    self._mark_error()
                self._record_event(action, sheet, part, ok)
        return write

    # -------------------------------------------------------------- resyncs

    def _schedule_resync(self, delay: float) -> Optional[asyncio.Task]:
        try:
            task = asyncio.get_running_loop().create_task(self._delayed_resync(delay))
        except RuntimeError:
            logger.debug("No running event loop; resync in %.1fs not scheduled.", delay)
            return None
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _delayed_resync(self, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        try:
            await self.resync(force=True)
        except Exception as e:
            logger.exception("Scheduled resync failed: %s", e)

    async def resync(self, force: bool = False) -> bool:
        """
        Replace local collections with a fresh remote read.
        Returns True when the collections were replaced.
        """
        now = self._clock()
        if not force:
            if (
                self.last_user_action_at is not None
                and now - self.last_user_action_at < self.config.cooldown_seconds
            ):
                logger.debug(
                    "Resync skipped: last action %.1fs ago (cooldown %.1fs).",
                    now - self.last_user_action_at, self.config.cooldown_seconds,
                )
                return False
            if self.is_syncing_read:
                logger.debug("Resync skipped: another read is in flight.")
                return False

        self._reads_in_flight += 1
        try:
            inventory_rows, sales_rows = await asyncio.gather(
                asyncio.to_thread(self.store.read, self.config.inventory_sheet),
                asyncio.to_thread(self.store.read, self.config.sales_sheet),
            )
        except Exception as e:
            logger.exception("Resync read raised: %s", e)
            inventory_rows = sales_rows = None
        finally:
            self._reads_in_flight -= 1

        if inventory_rows is None or sales_rows is None:
            self._mark_error()
            logger.warning(
                "Resync for %s failed; keeping %d inventory / %d sales items.",
                self.context.tenant.id, len(self.active_inventory), len(self.sales_history),
            )
            return False

        inventory, sales = split_snapshot(inventory_rows, sales_rows)

        confirmed = self.journal.confirm(inventory, sales)
        if self.config.resync_mode == "merge":
            inventory, sales = self.journal.replay(inventory, sales, self._clock())
        self.journal.prune(self._clock())

        added, removed, changed = diff_collections(self.active_inventory, inventory)
        logger.info(
            "Resync %s: %d inventory (+%d/-%d/~%d), %d sales, %d writes confirmed.",
            self.context.tenant.id, len(inventory), len(added), len(removed),
            len(changed), len(sales), confirmed,
        )

        self.active_inventory = inventory
        self.sales_history = sales
        if self._online:
            self.connectivity = ConnectivityStatus.CONNECTED
        self.last_sync = datetime.datetime.now(tz=pytz.UTC)
        return True

    # -------------------------------------------------------------- actions

    async def sell(self, item_id: str, price: float) -> Part:
        if price is None or price < 0:
            raise ValueError(f"sale price must be a non-negative number, got {price!r}")
        idx = _index_of(self.active_inventory, item_id)
        if idx is None:
            raise ItemNotFoundError(f"{item_id} is not in active inventory")

        sold = self.active_inventory[idx].mark_sold(price)
        self.active_inventory = [p for p in self.active_inventory if p.id != item_id]
        self.sales_history = [sold] + [p for p in self.sales_history if p.id != item_id]
        self.journal.record(MutationKind.SELL, sold, self._stamp())
        logger.info("Sold %s (%s) for %.2f.", sold.id, sold.name, sold.final_price)

        try:
            await self.dispatcher.dispatch_one(
                sold, self._writer(WriteAction.SELL, self.config.inventory_sheet)
            )
        finally:
            self._schedule_resync(self.config.sell_resync_delay)
        return sold

    async def delete_item(self, item_id: str) -> Part:
        idx = _index_of(self.active_inventory, item_id)
        if idx is None:
            raise ItemNotFoundError(f"{item_id} is not in active inventory")

        removed = self.active_inventory[idx]
        self.active_inventory = [p for p in self.active_inventory if p.id != item_id]
        self.journal.record(MutationKind.DELETE, removed, self._stamp())
        logger.info("Deleted %s (%s).", removed.id, removed.name)

        try:
            await self.dispatcher.dispatch_one(
                removed, self._writer(WriteAction.DELETE, self.config.removed_sheet)
            )
        finally:
            self._schedule_resync(self.config.sell_resync_delay)
        return removed

    async def return_item(self, item: Union[Part, str]) -> Part:
        item_id = item.id if isinstance(item, Part) else item
        idx = _index_of(self.sales_history, item_id)
        if idx is None:
            raise ItemNotFoundError(f"{item_id} is not in sales history")

        returned = self.sales_history[idx].mark_returned()
        self.sales_history = [p for p in self.sales_history if p.id != item_id]
        self.active_inventory = [returned] + [
            p for p in self.active_inventory if p.id != item_id
        ]
        self.journal.record(MutationKind.RETURN, returned, self._stamp())
        logger.info("Returned %s (%s) to inventory.", returned.id, returned.name)

        try:
            await self.dispatcher.dispatch_one(
                returned, self._writer(WriteAction.RETURN, self.config.sales_sheet)
            )
        finally:
            self._schedule_resync(self.config.sell_resync_delay)
        return returned

    def _prepare_new(self, parts: List[Part]) -> List[Part]:
        taken = {p.id for p in self.active_inventory} | {p.id for p in self.sales_history}
        prepared: List[Part] = []
        for p in parts:
            part_id = p.id
            if not part_id or part_id in taken:
                if part_id:
                    logger.warning("Id %s already in use; assigning a new one.", part_id)
                part_id = generate_id()
                while part_id in taken:
                    part_id = generate_id()
            taken.add(part_id)
            prepared.append(
                replace(p, id=part_id, status=PartStatus.AVAILABLE, final_price=None)
            )
        return prepared

    async def add_items(self, parts: List[Part]) -> BatchResult:
        if not parts:
            return BatchResult()

        new_parts = self._prepare_new(list(parts))
        self.active_inventory = new_parts + self.active_inventory
        now = self._stamp()
        for p in new_parts:
            self.journal.record(MutationKind.ADD, p, now)
        logger.info("Added %d items to inventory.", len(new_parts))

        try:
            result = await self.dispatcher.dispatch_batch(
                new_parts, self._writer(WriteAction.ADD, self.config.inventory_sheet)
            )
        finally:
            self._schedule_resync(self.config.add_resync_delay)
        return result

    # ---------------------------------------------------- session & network

    def set_online(self, online: bool) -> None:
        if not online:
            self._online = False
            self.connectivity = ConnectivityStatus.OFFLINE
            logger.warning("Device offline; local changes keep being applied.")
            return
        was_offline = not self._online
        self._online = True
        if was_offline:
            logger.info("Back online; scheduling resync.")
            self._schedule_resync(0)

    def _on_session_event(self, event: SessionEvent, session: Optional[Session]) -> None:
        if event == SessionEvent.SIGNED_IN:
            self._schedule_resync(0)
        elif event == SessionEvent.SIGNED_OUT:
            self.active_inventory = []
            self.sales_history = []
            self.journal.clear()
            self.last_user_action_at = None

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def drain(self) -> None:
        """Wait for every scheduled resync to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        self.detach()
