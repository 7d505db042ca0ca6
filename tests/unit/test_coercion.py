from datetime import datetime, timezone
from decimal import Decimal

import pytest

from migration.common.coercion import (
    clean_str,
    optional_decimal,
    optional_int,
    parse_json_list,
    require,
    required_decimal,
    required_int,
    timestamp_or_default,
    to_bool,
)
from migration.common.errors import RowMappingError
from migration.dump.records import LegacyService, Rating

PROCESSED_AT = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_to_bool_only_accepts_one():
    assert to_bool("1") is True
    assert to_bool("0") is False
    assert to_bool(None) is False
    assert to_bool("true") is False


def test_clean_str_blank_is_none():
    assert clean_str("  ") is None
    assert clean_str(" a ") == "a"
    assert clean_str(None) is None


def test_require_raises_row_mapping_error():
    with pytest.raises(RowMappingError):
        require({"id": None}, "id")
    with pytest.raises(RowMappingError):
        require({}, "id")
    assert require({"id": " x "}, "id") == "x"


def test_optional_int_handles_decimals_and_garbage():
    assert optional_int("42") == 42
    assert optional_int("42.0") == 42
    assert optional_int("42.5") is None
    assert optional_int("abc") is None
    assert optional_int("NaN") is None
    assert optional_int(None) is None


def test_required_int_raises_for_bad_value():
    with pytest.raises(RowMappingError):
        required_int("x", "duration")


def test_optional_decimal_rejects_non_finite():
    assert optional_decimal("750.50") == Decimal("750.50")
    assert optional_decimal("Infinity") is None
    assert optional_decimal("") is None
    with pytest.raises(RowMappingError):
        required_decimal(None, "amount")


def test_timestamp_or_default_uses_processed_at():
    assert timestamp_or_default("2024-03-01 10:00:00", PROCESSED_AT) == "2024-03-01T10:00:00.000+00:00"
    assert timestamp_or_default("0000-00-00 00:00:00", PROCESSED_AT) == "2025-01-01T12:00:00.000+00:00"
    assert timestamp_or_default(None, PROCESSED_AT) == "2025-01-01T12:00:00.000+00:00"


def test_parse_json_list_is_lenient():
    assert parse_json_list('["a", "b"]') == ["a", "b"]
    assert parse_json_list('"a"') == ["a"]
    assert parse_json_list("not json") == []
    assert parse_json_list("null") == []
    assert parse_json_list(None) == []


def _service_row(**overrides):
    row = {
        "id": "SV-1",
        "stylist_id": "s-1",
        "subcategory_id": None,
        "duration": "60",
        "amount": "500.00",
        "currency": "NOK",
        "is_published": "1",
        "description": "Haircut",
        "created_at": None,
        "updated_at": None,
        "deleted_at": None,
    }
    row.update(overrides)
    return row


def test_service_record_requires_numeric_price_and_duration():
    service = LegacyService.from_row(_service_row())
    assert service.id == "sv-1"
    assert service.duration == 60
    assert service.amount == Decimal("500.00")

    with pytest.raises(RowMappingError, match="duration"):
        LegacyService.from_row(_service_row(duration=None))
    with pytest.raises(RowMappingError, match="amount"):
        LegacyService.from_row(_service_row(amount="free"))


def test_rating_record_requires_integer_rating():
    row = {"id": "r-1", "buyer_id": "b-1", "stylist_id": "s-1", "booking_id": "bk-1", "rating": "4"}
    assert Rating.from_row(row).rating == 4
    with pytest.raises(RowMappingError, match="rating"):
        Rating.from_row({**row, "rating": "four"})
