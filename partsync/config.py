# partsync/config.py
import json
import os
from dataclasses import dataclass
from typing import Any, Dict, List

from .logger import get_logger
from .models import SyncError

logger = get_logger(__name__)

RESYNC_MODES = ("overwrite", "merge")


class ConfigError(SyncError):
    """Raised when the tenant registry or sync settings are unusable."""


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r; using %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


@dataclass
class SyncConfig:
    """
    Timing and naming knobs for the sync engine.
    Durations are in seconds.
    """
    cooldown_seconds: float = 20.0
    sell_resync_delay: float = 3.0
    add_resync_delay: float = 4.0
    batch_item_delay: float = 0.6
    poll_seconds: float = 60.0
    read_timeout: float = 30.0
    read_attempts: int = 3
    resync_mode: str = "overwrite"
    journal_ttl: float = 300.0
    inventory_sheet: str = "Inventario"
    sales_sheet: str = "Ventas"
    removed_sheet: str = "Eliminados"

    def __post_init__(self):
        if self.resync_mode not in RESYNC_MODES:
            raise ConfigError(
                f"resync_mode must be one of {RESYNC_MODES}, got {self.resync_mode!r}"
            )
        if self.read_attempts < 1:
            raise ConfigError("read_attempts must be at least 1")
        for name in ("cooldown_seconds", "sell_resync_delay", "add_resync_delay",
                     "batch_item_delay", "journal_ttl"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative")

    @classmethod
    def from_env(cls) -> "SyncConfig":
        return cls(
            cooldown_seconds=_env_float("PARTSYNC_COOLDOWN_SECONDS", 20.0),
            sell_resync_delay=_env_float("PARTSYNC_SELL_RESYNC_DELAY", 3.0),
            add_resync_delay=_env_float("PARTSYNC_ADD_RESYNC_DELAY", 4.0),
            batch_item_delay=_env_float("PARTSYNC_BATCH_ITEM_DELAY", 0.6),
            poll_seconds=_env_float("PARTSYNC_POLL_SECONDS", 60.0),
            read_timeout=_env_float("PARTSYNC_READ_TIMEOUT", 30.0),
            read_attempts=_env_int("PARTSYNC_READ_ATTEMPTS", 3),
            resync_mode=os.getenv("PARTSYNC_RESYNC_MODE", "overwrite").strip().lower(),
            journal_ttl=_env_float("PARTSYNC_JOURNAL_TTL", 300.0),
            inventory_sheet=os.getenv("PARTSYNC_INVENTORY_SHEET", "Inventario"),
            sales_sheet=os.getenv("PARTSYNC_SALES_SHEET", "Ventas"),
            removed_sheet=os.getenv("PARTSYNC_REMOVED_SHEET", "Eliminados"),
        )


@dataclass
class TenantConfig:
    """One business using the app, with its own remote store endpoint."""
    id: str
    name: str
    location: str = ""
    script_url: str = ""
    branding_color: str = "#f59e0b"


def parse_tenants(cfg: Any) -> List[TenantConfig]:
    if not isinstance(cfg, dict) or "tenants" not in cfg:
        raise ConfigError("config must be an object with a 'tenants' key.")

    raw = cfg["tenants"]
    if not isinstance(raw, list) or not raw:
        raise ConfigError("config 'tenants' must be a non-empty list.")

    tenants: List[TenantConfig] = []
    seen: Dict[str, int] = {}
    for idx, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ConfigError(f"tenant #{idx} must be an object, got {entry!r}")
        tenant_id = str(entry.get("id", "")).strip()
        name = str(entry.get("name", "")).strip()
        if not tenant_id or not name:
            raise ConfigError(f"tenant #{idx} is missing 'id' or 'name'")
        if tenant_id in seen:
            raise ConfigError(f"duplicate tenant id {tenant_id!r}")
        seen[tenant_id] = idx
        tenants.append(
            TenantConfig(
                id=tenant_id,
                name=name,
                location=str(entry.get("location", "")).strip(),
                script_url=str(entry.get("script_url", "")).strip(),
                branding_color=str(entry.get("branding_color", "#f59e0b")).strip(),
            )
        )
    return tenants


def load_tenants(path: str) -> List[TenantConfig]:
    if not os.path.exists(path):
        raise ConfigError(f"Config file not found at {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Failed to load config at {path}: {e}") from e
    return parse_tenants(cfg)
