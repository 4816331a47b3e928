import threading

import pytest

from partsync.config import SyncConfig, TenantConfig
from partsync.normalize import normalize_rows
from partsync.session import AppContext, SessionContext

INVENTORY = "Inventario"
SALES = "Ventas"
REMOVED = "Eliminados"


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeStore:
    """
    In-memory stand-in for the sheet endpoint. With apply_writes=True it
    behaves like the sheet script: writes move rows between sheets.
    """

    def __init__(self, inventory=None, sales=None, apply_writes=False):
        self.sheets = {
            INVENTORY: list(inventory or []),
            SALES: list(sales or []),
            REMOVED: [],
        }
        self.apply_writes = apply_writes
        self.writes = []
        self.reads = []
        self.fail_reads = set()
        self.fail_write_ids = set()
        self.raise_on_write = False
        self._lock = threading.Lock()

    def read(self, sheet):
        with self._lock:
            self.reads.append(sheet)
            if sheet in self.fail_reads:
                return None
            return normalize_rows(self.sheets.get(sheet, []))

    def _drop(self, sheet, item_id):
        self.sheets[sheet] = [r for r in self.sheets[sheet] if r.get("id") != item_id]

    def write(self, payload):
        with self._lock:
            self.writes.append(payload)
            if self.raise_on_write:
                raise RuntimeError("boom")
            if payload["id"] in self.fail_write_ids:
                return False
            if self.apply_writes:
                action, item_id = payload["action"], payload["id"]
                if action == "ADD":
                    self.sheets[INVENTORY].append(dict(payload))
                elif action == "SELL":
                    self._drop(INVENTORY, item_id)
                    self.sheets[SALES].append(dict(payload))
                elif action == "DELETE":
                    self._drop(INVENTORY, item_id)
                    self.sheets[REMOVED].append(dict(payload))
                elif action == "RETURN":
                    self._drop(SALES, item_id)
                    self.sheets[INVENTORY].append(dict(payload))
            return True

    def actions(self):
        return [(w["action"], w["id"]) for w in self.writes]


def quiet_config(**overrides) -> SyncConfig:
    """Config whose trailing resyncs never fire during a test unless asked."""
    values = dict(
        cooldown_seconds=20.0,
        sell_resync_delay=3600.0,
        add_resync_delay=3600.0,
        batch_item_delay=0.0,
    )
    values.update(overrides)
    return SyncConfig(**values)


def make_context(store, config=None, db_path=None) -> AppContext:
    return AppContext(
        tenant=TenantConfig(id="yard", name="Test Yard", location="Dallas, Texas"),
        config=config or quiet_config(),
        store=store,
        session=SessionContext(),
        db_path=db_path,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return FakeStore()
