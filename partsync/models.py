# partsync/models.py
import datetime
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

import pytz


class SyncError(Exception):
    """Base error for the sync package."""


class PartCategory(str, Enum):
    ENGINE = "ENGINE"
    TRANSMISSION = "TRANSMISSION"
    BODY = "BODY"
    ELECTRICAL = "ELECTRICAL"
    SUSPENSION = "SUSPENSION"
    BRAKES = "BRAKES"
    INTERIOR = "INTERIOR"
    LIGHTING = "LIGHTING"
    WHEELS = "WHEELS"
    COOLING = "COOLING"
    EXHAUST = "EXHAUST"
    OTHER = "OTHER"


class PartStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    SOLD = "SOLD"


class ConnectivityStatus(str, Enum):
    CONNECTED = "CONNECTED"
    ERROR = "ERROR"
    OFFLINE = "OFFLINE"


def now_utc_iso() -> str:
    return datetime.datetime.now(tz=pytz.UTC).isoformat()


@dataclass
class VehicleInfo:
    year: int = 0
    make: str = ""
    model: str = ""
    trim: str = ""
    vin: str = ""

    def label(self) -> str:
        parts = [str(self.year) if self.year else "", self.make, self.model]
        return " ".join(p for p in parts if p)


@dataclass
class Part:
    """
    Canonical representation of an inventory part.
    An AVAILABLE part lives in active inventory; a SOLD part lives in sales
    history and carries its final price.
    """
    id: str
    name: str
    category: PartCategory = PartCategory.OTHER
    status: PartStatus = PartStatus.AVAILABLE
    condition: str = ""
    suggested_price: float = 0.0
    min_price: float = 0.0
    final_price: Optional[float] = None
    date_added: str = field(default_factory=now_utc_iso)
    vehicle_info: VehicleInfo = field(default_factory=VehicleInfo)

    @property
    def is_sold(self) -> bool:
        return self.status == PartStatus.SOLD

    def mark_sold(self, price: float) -> "Part":
        return replace(self, status=PartStatus.SOLD, final_price=float(price))

    def mark_returned(self) -> "Part":
        return replace(self, status=PartStatus.AVAILABLE, final_price=None)
