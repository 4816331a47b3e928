import asyncio
import os
import random
from typing import List

from partsync import storage
from partsync.config import ConfigError, SyncConfig, TenantConfig, load_tenants
from partsync.engine import ReconciliationEngine
from partsync.logger import get_logger
from partsync.session import build_context

logger = get_logger(__name__)

MODE = os.getenv("MODE", "daemon").lower()  # "daemon" or "once"
CONFIG_PATH = os.getenv("CONFIG_PATH", "/data/config.json")
SYNC_USER = os.getenv("SYNC_USER", "sync-daemon")


def jitter_delay(seconds: float) -> float:
    base = max(1.0, seconds)
    return base + random.uniform(-0.1 * base, 0.1 * base)


def load_config(path: str = CONFIG_PATH) -> List[TenantConfig]:
    try:
        return load_tenants(path)
    except ConfigError as e:
        logger.error("%s", e)
        raise SystemExit(1)


def build_engines(tenants: List[TenantConfig], config: SyncConfig) -> List[ReconciliationEngine]:
    engines = []
    for tenant in tenants:
        if not tenant.script_url:
            logger.error("Tenant '%s' has no script_url; skipping.", tenant.id)
            continue
        context = build_context(tenant, config, db_path=storage.DB_PATH)
        engines.append(ReconciliationEngine(context))
    return engines


def _log_summary(engine: ReconciliationEngine) -> None:
    s = engine.summary()
    logger.info(
        "Tenant %s: %d in inventory (%.2f), %d sold (%.2f), status=%s",
        s["tenant"], s["inventory"], s["inventory_value"], s["sales"],
        s["sales_total"], s["connectivity"],
    )


async def run_once(config: SyncConfig) -> int:
    storage.ensure_db()
    engines = build_engines(load_config(), config)
    if not engines:
        logger.error("No usable tenants configured.")
        return 1

    results = await asyncio.gather(*(e.resync(force=True) for e in engines))
    for engine in engines:
        _log_summary(engine)
        await engine.aclose()
    return 0 if all(results) else 2


async def run_daemon(config: SyncConfig) -> None:
    logger.info("Starting daemon; resync every %.0f seconds.", config.poll_seconds)
    storage.ensure_db()
    engines = build_engines(load_config(), config)
    if not engines:
        logger.error("No usable tenants configured.")
        raise SystemExit(1)

    for engine in engines:
        engine.context.session.sign_in(SYNC_USER, engine.context.tenant.id)

    try:
        while True:
            order = list(engines)
            random.shuffle(order)
            for engine in order:
                try:
                    if await engine.resync():
                        _log_summary(engine)
                except Exception as e:
                    logger.exception(
                        "Error syncing tenant %s: %s", engine.context.tenant.id, e
                    )

            delay = jitter_delay(config.poll_seconds)
            logger.debug("Sleeping %.1f seconds before next cycle.", delay)
            await asyncio.sleep(delay)
    finally:
        for engine in engines:
            await engine.aclose()


def main() -> None:
    try:
        config = SyncConfig.from_env()
    except ConfigError as e:
        logger.error("Invalid sync settings: %s", e)
        raise SystemExit(1)

    if MODE == "once":
        raise SystemExit(asyncio.run(run_once(config)))
    asyncio.run(run_daemon(config))


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        logger.info("Interrupted; exiting.")
    except SystemExit:
        raise
    except Exception as e:
        logger.exception("Fatal sync error: %s", e)
        raise SystemExit(2)
