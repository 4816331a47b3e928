from partsync.models import Part, PartCategory, PartStatus
from partsync.normalize import (
    normalize_category,
    normalize_row,
    normalize_status,
    parse_price,
    parse_year,
    split_snapshot,
)


def test_sold_synonyms_are_case_insensitive():
    assert normalize_status("VENDIDA") == PartStatus.SOLD
    assert normalize_status("vendido") == PartStatus.SOLD
    assert normalize_status(" Sold ") == PartStatus.SOLD


def test_anything_else_is_available():
    for value in ("DISPONIBLE", "available", "", None, 3, "sold out"):
        assert normalize_status(value) == PartStatus.AVAILABLE


def test_price_with_symbol_and_thousands_separator():
    assert parse_price("$1,250.00") == 1250
    assert parse_price("1,250 MXN") == 1250
    assert parse_price("€ 80") == 80


def test_numeric_prices_pass_through():
    assert parse_price(99) == 99.0
    assert parse_price(12.5) == 12.5


def test_bad_prices_become_zero():
    for value in ("abc", "", None, "-5", -3, True, "1.2.3", float("nan")):
        assert parse_price(value) == 0


def test_unknown_category_falls_back_to_other():
    assert normalize_category("Ñandú") == PartCategory.OTHER
    assert normalize_category(None) == PartCategory.OTHER
    assert normalize_category("") == PartCategory.OTHER


def test_category_ignores_case_and_accents():
    assert normalize_category("brakes") == PartCategory.BRAKES
    assert normalize_category("Carrocería") == PartCategory.BODY
    assert normalize_category("motor") == PartCategory.ENGINE
    assert normalize_category(" Eléctrico ") == PartCategory.ELECTRICAL


def test_missing_ids_are_generated_and_distinct():
    a = normalize_row({"name": "Door"})
    b = normalize_row({"name": "Door"})
    assert a.id and b.id
    assert a.id != b.id


def test_spanish_row():
    part = normalize_row({
        "ID": "X1",
        "Parte": "Alternador",
        "Categoría": "Eléctrico",
        "Marca": "Ford",
        "Modelo": "F-150",
        "Año": "2015",
        "Precio": "$1,200",
        "Precio Mínimo": "900",
        "Condición": "Buena",
        "Estatus": "Disponible",
        "VIN": "1FTEW1EF0FFA00000",
    })
    assert part.id == "X1"
    assert part.name == "Alternador"
    assert part.category == PartCategory.ELECTRICAL
    assert part.status == PartStatus.AVAILABLE
    assert part.suggested_price == 1200
    assert part.min_price == 900
    assert part.condition == "Buena"
    assert part.final_price is None
    assert part.vehicle_info.year == 2015
    assert part.vehicle_info.make == "Ford"
    assert part.vehicle_info.model == "F-150"
    assert part.vehicle_info.vin == "1FTEW1EF0FFA00000"


def test_english_row_with_nested_vehicle():
    part = normalize_row({
        "id": "E9",
        "name": "Radiator",
        "category": "COOLING",
        "status": "AVAILABLE",
        "suggestedPrice": 150,
        "dateAdded": "2024-03-01T10:00:00+00:00",
        "vehicleInfo": {"year": 2012, "make": "Honda", "model": "Civic", "trim": "EX"},
    })
    assert part.category == PartCategory.COOLING
    assert part.suggested_price == 150
    assert part.date_added == "2024-03-01T10:00:00+00:00"
    assert part.vehicle_info.trim == "EX"
    assert part.vehicle_info.vin == ""


def test_missing_vehicle_fields_default_to_empty():
    part = normalize_row({"id": "V0"})
    assert part.vehicle_info.year == 0
    assert part.vehicle_info.make == ""
    assert part.name == ""
    assert part.min_price == 0


def test_non_finite_years_become_zero():
    for cell in ("Infinity", "-inf", "nan", "1e999", float("inf")):
        assert parse_year(cell) == 0
    assert parse_year("2012.0") == 2012
    assert normalize_row({"id": "X", "anio": "Infinity"}).vehicle_info.year == 0


def test_sold_row_without_final_price_uses_suggested():
    part = normalize_row({"id": "S1", "precio": "300", "status": "VENDIDO"})
    assert part.status == PartStatus.SOLD
    assert part.final_price == 300


def test_available_row_never_carries_final_price():
    part = normalize_row({"id": "A1", "precio": 300, "finalPrice": 250})
    assert part.final_price is None


def test_float_ids_from_sheet_cells_lose_the_decimal():
    assert normalize_row({"id": 123.0}).id == "123"


def test_split_snapshot_enforces_single_collection():
    inventory = [
        Part(id="A", name="a"),
        Part(id="B", name="b", status=PartStatus.SOLD, final_price=10),
        Part(id="C", name="c"),
        Part(id="A", name="dup"),
    ]
    sales = [Part(id="C", name="c sold"), Part(id="D", name="d", status=PartStatus.SOLD, final_price=5)]

    inv, sold = split_snapshot(inventory, sales)

    assert [p.id for p in inv] == ["A"]
    assert inv[0].name == "a"
    assert [p.id for p in sold] == ["C", "D", "B"]
    assert all(p.status == PartStatus.SOLD for p in sold)
    assert all(p.status == PartStatus.AVAILABLE for p in inv)
