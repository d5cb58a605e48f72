from datetime import date, datetime, timezone
from decimal import Decimal

from posbatch.models import AllocationLine, BatchRecord, Product, format_qty, parse_expiry, to_decimal


def test_parse_expiry_formats():
    midnight = datetime(2025, 3, 1, tzinfo=timezone.utc)

    assert parse_expiry("2025-03-01") == midnight
    assert parse_expiry("2025-03-01T00:00:00Z") == midnight
    assert parse_expiry("2025-03-01T02:00:00+02:00") == midnight
    assert parse_expiry(date(2025, 3, 1)) == midnight
    assert parse_expiry("") is None
    assert parse_expiry("not a date") is None
    assert parse_expiry(None) is None


def test_batch_from_dict_normalizes_quantities():
    b = BatchRecord.from_dict({"id": 7, "batch_number": "L1", "expiry": None, "available_qty": -4})

    assert b.id == "7"
    assert b.available_qty == 0
    assert b.expiry is None
    assert not b.selectable


def test_allocation_line_accepts_expiry_alias_and_keeps_raw_payload():
    raw = {"batch_id": "B1", "qty": 2, "expiry": "2025-03-01"}
    line = AllocationLine.from_dict(raw)

    assert line.qty == Decimal("2")
    assert line.expiry_date == "2025-03-01"
    assert line.to_payload() == raw


def test_allocation_line_payload_without_raw():
    line = AllocationLine(batch_id="B2", qty=Decimal("1.5"), expiry_date=None)

    assert line.to_payload() == {"batch_id": "B2", "qty": 1.5, "expiry_date": None}


def test_format_qty():
    assert format_qty(Decimal("3.0")) == "3"
    assert format_qty(Decimal("100")) == "100"
    assert format_qty(Decimal("2.50")) == "2.5"


def test_product_from_dict():
    p = Product.from_dict({"id": "P1", "name": "Paracetamol 500mg", "price": "12.50", "tax_rate": 5})

    assert p.price == Decimal("12.50")
    assert p.tax_rate == Decimal("5")
    assert p.stock is None


def test_parse_expiry_short_utc_offsets():
    midnight = datetime(2025, 3, 1, tzinfo=timezone.utc)

    assert parse_expiry("2025-03-01 00:00:00+00") == midnight
    assert parse_expiry("2025-03-01T09:00:00+0900") == midnight
    assert parse_expiry("2025-02-28 19:00:00.000-05") == midnight


def test_batch_from_dict_flags_unparseable_expiry():
    bad = BatchRecord.from_dict({"id": "b", "expiry": "31/12/2019", "available_qty": 1})
    missing = BatchRecord.from_dict({"id": "c", "expiry": None, "available_qty": 1})

    assert bad.expiry is None
    assert bad.expiry_invalid is True
    assert missing.expiry_invalid is False


def test_to_decimal_maps_non_finite_values_to_zero():
    assert to_decimal("nan") == 0
    assert to_decimal("inf") == 0
    assert to_decimal(float("inf")) == 0
    assert to_decimal(Decimal("Infinity")) == 0
    assert to_decimal("2.5") == Decimal("2.5")
