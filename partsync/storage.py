# partsync/storage.py
import os
import sqlite3
from typing import Any, Dict, List, Optional

from .logger import get_logger
from .models import now_utc_iso

logger = get_logger(__name__)

DB_PATH = os.getenv("DB_PATH", "/data/partsync.sqlite3")

VIEW_MODE_KEY = "inventory_view_mode"
VIEW_MODES = ("grid", "list")
DEFAULT_VIEW_MODE = "grid"


def _connect(db_path: Optional[str] = None):
    path = db_path or DB_PATH
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    return sqlite3.connect(path)


def ensure_db(db_path: Optional[str] = None):
    with _connect(db_path) as con:
        cur = con.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS preferences (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated TEXT
            )
        """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS write_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                ts TEXT,
                tenant_id TEXT,
                action TEXT,   -- ADD|SELL|DELETE|RETURN
                sheet TEXT,
                item_id TEXT,
                name TEXT,
                price REAL,
                ok INTEGER
            )
        """
        )
        con.commit()


def get_preference(key: str, default: Optional[str] = None, db_path: Optional[str] = None) -> Optional[str]:
    with _connect(db_path) as con:
        cur = con.cursor()
        cur.execute("SELECT value FROM preferences WHERE key=?", (key,))
        row = cur.fetchone()
    return row[0] if row and row[0] is not None else default


def set_preference(key: str, value: str, db_path: Optional[str] = None):
    with _connect(db_path) as con:
        cur = con.cursor()
        cur.execute(
            """
            INSERT INTO preferences (key, value, updated) VALUES (?,?,?)
            ON CONFLICT(key) DO UPDATE SET
                value=excluded.value,
                updated=excluded.updated
        """,
            (key, value, now_utc_iso()),
        )
        con.commit()


def get_view_mode(db_path: Optional[str] = None) -> str:
    value = get_preference(VIEW_MODE_KEY, DEFAULT_VIEW_MODE, db_path=db_path)
    return value if value in VIEW_MODES else DEFAULT_VIEW_MODE


def set_view_mode(mode: str, db_path: Optional[str] = None):
    mode = (mode or "").strip().lower()
    if mode not in VIEW_MODES:
        raise ValueError(f"view mode must be one of {VIEW_MODES}, got {mode!r}")
    set_preference(VIEW_MODE_KEY, mode, db_path=db_path)


def record_write_event(
    tenant_id: str,
    action: str,
    sheet: str,
    item_id: str,
    name: str,
    price: Optional[float],
    ok: bool,
    db_path: Optional[str] = None,
):
    with _connect(db_path) as con:
        cur = con.cursor()
        cur.execute(
            """
            INSERT INTO write_events (
                ts, tenant_id, action, sheet, item_id, name, price, ok
            )
            VALUES (?,?,?,?,?,?,?,?)
        """,
            (now_utc_iso(), tenant_id, action, sheet, item_id, name, price, 1 if ok else 0),
        )
        con.commit()


def recent_events(tenant_id: str, limit: int = 50, db_path: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Return the latest write events for a tenant, newest first.
    """
    with _connect(db_path) as con:
        cur = con.cursor()
        cur.execute(
            """
            SELECT ts, action, sheet, item_id, name, price, ok
            FROM write_events
            WHERE tenant_id=?
            ORDER BY id DESC
            LIMIT ?
        """,
            (tenant_id, limit),
        )
        rows = cur.fetchall()

    out: List[Dict[str, Any]] = []
    for ts, action, sheet, item_id, name, price, ok in rows:
        out.append(
            {
                "ts": ts,
                "action": action,
                "sheet": sheet,
                "item_id": item_id,
                "name": name,
                "price": price,
                "ok": bool(ok),
            }
        )
    return out
