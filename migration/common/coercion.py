"""Pure conversions from raw dump strings to typed values."""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from migration.common.errors import RowMappingError
from migration.common.time_utils import parse_legacy_timestamp, to_iso


def to_bool(value: str | None) -> bool:
    return value == "1"


def clean_str(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def require(row: Mapping[str, str | None], column: str) -> str:
    value = clean_str(row.get(column))
    if value is None:
        raise RowMappingError(f"Missing required field '{column}'")
    return value


def optional_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        pass
    try:
        as_decimal = Decimal(value.strip())
    except InvalidOperation:
        return None
    if not as_decimal.is_finite() or as_decimal != as_decimal.to_integral_value():
        return None
    return int(as_decimal)


def required_int(value: str | None, column: str) -> int:
    parsed = optional_int(value)
    if parsed is None:
        raise RowMappingError(f"Field '{column}' is not an integer: {value!r}")
    return parsed


def optional_decimal(value: str | None) -> Decimal | None:
    if value is None:
        return None
    try:
        parsed = Decimal(value.strip())
    except InvalidOperation:
        return None
    if not parsed.is_finite():
        return None
    return parsed


def required_decimal(value: str | None, column: str) -> Decimal:
    parsed = optional_decimal(value)
    if parsed is None:
        raise RowMappingError(f"Field '{column}' is not a decimal: {value!r}")
    return parsed


def timestamp_or_default(value: str | None, processed_at: datetime) -> str:
    """ISO timestamp for a legacy DATETIME, or ``processed_at`` when missing or unparsable."""
    parsed = parse_legacy_timestamp(value)
    if parsed is None:
        return to_iso(processed_at)
    return to_iso(parsed)


def parse_json_list(value: str | None) -> list[Any]:
    """Lenient JSON array parsing: invalid -> [], scalar -> [scalar]."""
    if value is None or not value.strip():
        return []
    try:
        parsed = json.loads(value)
    except ValueError:
        return []
    if parsed is None:
        return []
    if isinstance(parsed, list):
        return parsed
    return [parsed]
