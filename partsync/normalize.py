# partsync/normalize.py
"""
Normalization of loosely-typed rows coming back from the remote sheet.

Rows are written by people and by scripts in English or Spanish, so field
names, casing, accents and number formats all vary. Everything here is a pure
function: a malformed value never raises, it becomes a safe default.
"""
import math
import re
import secrets
import unicodedata
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .models import Part, PartCategory, PartStatus, VehicleInfo, now_utc_iso

SOLD_SYNONYMS = frozenset({"SOLD", "VENDIDO", "VENDIDA"})

# Folded key synonyms (accents stripped, lower case, non-alphanumerics removed)
ID_KEYS = ("id",)
NAME_KEYS = ("name", "parte", "pieza", "nombre")
CATEGORY_KEYS = ("category", "categoria")
STATUS_KEYS = ("status", "estatus", "estado")
CONDITION_KEYS = ("condition", "condicion")
PRICE_KEYS = ("suggestedprice", "price", "precio", "preciosugerido")
MIN_PRICE_KEYS = ("minprice", "preciominimo")
FINAL_PRICE_KEYS = ("finalprice", "preciofinal", "precioventa")
DATE_KEYS = ("dateadded", "fecha", "date", "timestamp")
VEHICLE_KEYS = ("vehicleinfo", "vehiculo")
YEAR_KEYS = ("year", "anio", "ano")
MAKE_KEYS = ("make", "marca")
MODEL_KEYS = ("model", "modelo")
TRIM_KEYS = ("trim", "version")
VIN_KEYS = ("vin",)

CATEGORY_ALIASES = {
    "MOTOR": PartCategory.ENGINE,
    "TRANSMISION": PartCategory.TRANSMISSION,
    "CARROCERIA": PartCategory.BODY,
    "ELECTRICO": PartCategory.ELECTRICAL,
    "ELECTRICA": PartCategory.ELECTRICAL,
    "FRENOS": PartCategory.BRAKES,
    "ILUMINACION": PartCategory.LIGHTING,
    "LUCES": PartCategory.LIGHTING,
    "RUEDAS": PartCategory.WHEELS,
    "LLANTAS": PartCategory.WHEELS,
    "RINES": PartCategory.WHEELS,
    "ENFRIAMIENTO": PartCategory.COOLING,
    "REFRIGERACION": PartCategory.COOLING,
    "ESCAPE": PartCategory.EXHAUST,
    "OTRO": PartCategory.OTHER,
    "OTROS": PartCategory.OTHER,
}

_PRICE_JUNK_RE = re.compile(r"[^0-9.\-]")
_KEY_JUNK_RE = re.compile(r"[^a-z0-9]")


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def fold_key(key: Any) -> str:
    return _KEY_JUNK_RE.sub("", strip_accents(str(key)).lower())


def _fold_row(row: Mapping[Any, Any]) -> Dict[str, Any]:
    folded: Dict[str, Any] = {}
    for k, v in row.items():
        # First spelling wins when two source columns fold to the same key
        folded.setdefault(fold_key(k), v)
    return folded


def _pick(folded: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for k in keys:
        v = folded.get(k)
        if v is None:
            continue
        if isinstance(v, str) and not v.strip():
            continue
        return v
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def normalize_status(value: Any) -> PartStatus:
    if value is None:
        return PartStatus.AVAILABLE
    if strip_accents(str(value)).strip().upper() in SOLD_SYNONYMS:
        return PartStatus.SOLD
    return PartStatus.AVAILABLE


def parse_price(value: Any) -> float:
    """
    Parse a price from a number or from text such as "$1,250.00 MXN".
    Returns 0 for anything that is missing, unparsable or negative.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        cleaned = _PRICE_JUNK_RE.sub("", str(value))
        if not cleaned:
            return 0.0
        try:
            number = float(cleaned)
        except ValueError:
            return 0.0
    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0.0
    return number


def parse_optional_price(value: Any) -> Optional[float]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_price(value)


def parse_year(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = float(str(value).strip())
    except ValueError:
        return 0
    if not math.isfinite(number):
        return 0
    year = int(number)
    return year if year > 0 else 0


def normalize_category(value: Any) -> PartCategory:
    if value is None:
        return PartCategory.OTHER
    key = strip_accents(str(value)).strip().upper()
    if key in PartCategory.__members__:
        return PartCategory[key]
    return CATEGORY_ALIASES.get(key, PartCategory.OTHER)


def generate_id() -> str:
    """Session-unique id for rows that arrive without one."""
    return f"P-{secrets.token_hex(6).upper()}"


def _normalize_vehicle(folded: Mapping[str, Any]) -> VehicleInfo:
    source = folded
    nested = _pick(folded, VEHICLE_KEYS)
    if isinstance(nested, Mapping):
        source = _fold_row(nested)
    return VehicleInfo(
        year=parse_year(_pick(source, YEAR_KEYS)),
        make=_text(_pick(source, MAKE_KEYS)),
        model=_text(_pick(source, MODEL_KEYS)),
        trim=_text(_pick(source, TRIM_KEYS)),
        vin=_text(_pick(source, VIN_KEYS)),
    )


def normalize_row(row: Mapping[Any, Any]) -> Part:
    folded = _fold_row(row)

    status = normalize_status(_pick(folded, STATUS_KEYS))
    suggested = parse_price(_pick(folded, PRICE_KEYS))
    final_price = None
    if status == PartStatus.SOLD:
        final_price = parse_optional_price(_pick(folded, FINAL_PRICE_KEYS))
        if final_price is None:
            final_price = suggested

    date_added = _text(_pick(folded, DATE_KEYS)) or now_utc_iso()

    return Part(
        id=_text(_pick(folded, ID_KEYS)) or generate_id(),
        name=_text(_pick(folded, NAME_KEYS)),
        category=normalize_category(_pick(folded, CATEGORY_KEYS)),
        status=status,
        condition=_text(_pick(folded, CONDITION_KEYS)),
        suggested_price=suggested,
        min_price=parse_price(_pick(folded, MIN_PRICE_KEYS)),
        final_price=final_price,
        date_added=date_added,
        vehicle_info=_normalize_vehicle(folded),
    )


def normalize_rows(rows: Iterable[Mapping[Any, Any]]) -> List[Part]:
    return [normalize_row(r) for r in rows]


def split_snapshot(
    inventory: Iterable[Part], sales: Iterable[Part]
) -> Tuple[List[Part], List[Part]]:
    """
    Enforce the two-collection invariant on a fresh remote snapshot.

    Everything read from the sales sheet is SOLD. Rows on the inventory sheet
    already marked SOLD move to sales, and an id present in sales never stays
    in inventory. Duplicate ids keep their first occurrence.
    """
    sales_out: List[Part] = []
    sales_ids = set()
    for p in sales:
        if p.id in sales_ids:
            continue
        if not p.is_sold:
            p = p.mark_sold(p.suggested_price)
        sales_out.append(p)
        sales_ids.add(p.id)

    inventory_out: List[Part] = []
    inventory_ids = set()
    for p in inventory:
        if p.id in sales_ids:
            continue
        if p.is_sold:
            sales_out.append(p)
            sales_ids.add(p.id)
            continue
        if p.id in inventory_ids:
            continue
        inventory_out.append(p)
        inventory_ids.add(p.id)

    return inventory_out, sales_out
