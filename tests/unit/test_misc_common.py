from datetime import datetime, timezone
from pathlib import Path

from migration.common.fs import read_json, write_json, write_json_atomic
from migration.common.ids import generate_run_id, normalise_legacy_id
from migration.common.time_utils import add_minutes_iso, parse_legacy_timestamp, to_iso


def test_generate_run_id_prefix():
    assert generate_run_id().startswith("run-")


def test_normalise_legacy_id():
    assert normalise_legacy_id(" ABC-1 ") == "abc-1"
    assert normalise_legacy_id("  ") is None
    assert normalise_legacy_id(None) is None


def test_parse_legacy_timestamp_formats_are_utc():
    parsed = parse_legacy_timestamp("2024-03-01 10:00:00.123456")
    assert parsed == datetime(2024, 3, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)
    assert parse_legacy_timestamp("2024-03-01") == datetime(2024, 3, 1, tzinfo=timezone.utc)
    assert parse_legacy_timestamp("2024-03-01T10:00:00+01:00") == datetime(2024, 3, 1, 9, tzinfo=timezone.utc)
    assert parse_legacy_timestamp("yesterday") is None
    assert parse_legacy_timestamp("") is None


def test_add_minutes_iso():
    start = to_iso(datetime(2024, 3, 1, 23, 30, tzinfo=timezone.utc))
    assert add_minutes_iso(start, 90) == "2024-03-02T01:00:00.000+00:00"


def test_write_json_is_sorted_and_atomic_write_leaves_no_tmp(tmp_path: Path):
    path = tmp_path / "nested" / "out.json"
    write_json(path, {"b": 1, "a": "ø"})
    assert path.read_text(encoding="utf-8").index('"a"') < path.read_text(encoding="utf-8").index('"b"')
    assert "ø" in path.read_text(encoding="utf-8")

    write_json_atomic(path, {"c": 3})
    assert read_json(path) == {"c": 3}
    assert [p.name for p in path.parent.iterdir()] == ["out.json"]
