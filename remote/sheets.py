# remote/sheets.py
import json
import time
from enum import Enum
from typing import Any, Dict, List, Optional

import requests
from tenacity import RetryError, retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from partsync.logger import get_logger
from partsync.models import Part, now_utc_iso
from partsync.normalize import normalize_row

logger = get_logger(__name__)

WRITE_HEADERS = {"Content-Type": "text/plain;charset=utf-8"}


class WriteAction(str, Enum):
    ADD = "ADD"
    SELL = "SELL"
    DELETE = "DELETE"
    RETURN = "RETURN"


class MalformedResponse(ValueError):
    """The read endpoint answered with something other than a JSON array."""


def build_payload(action: WriteAction, sheet: str, part: Part) -> Dict[str, Any]:
    vehicle = part.vehicle_info
    return {
        "action": WriteAction(action).value,
        "sheet": sheet,
        "id": part.id,
        "parte": part.name,
        "categoria": part.category.value,
        "marca": vehicle.make,
        "modelo": vehicle.model,
        "anio": vehicle.year,
        "condicion": part.condition,
        "precio": part.suggested_price,
        "minPrice": part.min_price,
        "finalPrice": part.final_price if part.final_price is not None else "",
        "status": part.status.value,
        "vin": vehicle.vin,
        "fecha": part.date_added,
        "timestamp": now_utc_iso(),
    }


class RemoteStoreClient:
    """
    Client for the sheet-backed remote store.

    Reads are cache-busted GETs returning a JSON array of loose rows. Writes
    are fire-and-forget POSTs whose response cannot be trusted, so a write
    counts as successful unless the request itself raises.
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
        read_attempts: int = 3,
        retry_initial: float = 1,
        verify_status: bool = False,
    ):
        self.base_url = (base_url or "").strip()
        self.session = session or requests.Session()
        self.timeout = timeout
        self.read_attempts = max(1, read_attempts)
        self.retry_initial = retry_initial
        self.verify_status = verify_status

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def _get_rows(self, sheet: str) -> List[Any]:
        params = {"sheet": sheet, "nocache": int(time.time() * 1000)}
        r = self.session.get(self.base_url, params=params, timeout=self.timeout)
        r.raise_for_status()
        try:
            data = r.json()
        except ValueError as e:
            raise MalformedResponse(f"sheet {sheet} returned non-JSON body") from e
        if not isinstance(data, list):
            raise MalformedResponse(
                f"sheet {sheet} returned {type(data).__name__}, expected a list"
            )
        return data

    def read(self, sheet: str) -> Optional[List[Part]]:
        """
        Fetch and normalize every row of a sheet.
        Returns None on failure so the caller can flag connectivity; an empty
        list means the sheet really is empty.
        """
        if not self.configured:
            logger.warning("Remote store URL not configured; cannot read %s.", sheet)
            return None

        fetch = retry(
            wait=wait_exponential_jitter(initial=self.retry_initial, max=30, jitter=self.retry_initial),
            stop=stop_after_attempt(self.read_attempts),
            retry=retry_if_exception_type(requests.RequestException),
        )(self._get_rows)

        try:
            rows = fetch(sheet)
        except RetryError as e:
            logger.error("Read of sheet %s failed after retries: %s", sheet, e)
            return None
        except MalformedResponse as e:
            logger.error("Read of sheet %s failed: %s", sheet, e)
            return None
        except Exception as e:
            logger.error("Read of sheet %s threw unexpected exception: %s", sheet, e)
            return None

        parts: List[Part] = []
        skipped = 0
        for row in rows:
            if not isinstance(row, dict):
                skipped += 1
                continue
            parts.append(normalize_row(row))
        if skipped:
            logger.warning("Skipped %d non-object rows in sheet %s.", skipped, sheet)

        logger.debug("Read %d rows from sheet %s.", len(parts), sheet)
        return parts

    def write(self, payload: Dict[str, Any]) -> bool:
        if not self.configured:
            logger.warning(
                "Remote store URL not configured; dropping %s for %s.",
                payload.get("action"), payload.get("id"),
            )
            return False

        try:
            r = self.session.post(
                self.base_url,
                data=json.dumps(payload).encode("utf-8"),
                headers=WRITE_HEADERS,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(
                "Write %s for %s failed: %s", payload.get("action"), payload.get("id"), e
            )
            return False

        if self.verify_status and not r.ok:
            logger.error(
                "Write %s for %s rejected with HTTP %s",
                payload.get("action"), payload.get("id"), r.status_code,
            )
            return False

        logger.debug("Sent %s for %s.", payload.get("action"), payload.get("id"))
        return True
