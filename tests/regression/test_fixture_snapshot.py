from __future__ import annotations

from pathlib import Path

import pytest

from migration.cli import parse_args, run_command
from migration.common.fs import read_json

FIXTURE_DUMP = Path(__file__).resolve().parents[1] / "fixtures" / "legacy_dump.sql"
CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"

EXPECTED_EXTRACT_COUNTS = {
    "users": {
        "source_rows": {"buyer": 4, "stylist": 2},
        "excluded": {"soft_deleted": 1},
        "skipped": 1,
        "records": {"profiles": 3, "stylist_details": 2, "user_preferences": 3},
    },
    "addresses": {
        "source_rows": {"address": 5},
        "excluded": {"salon_address": 1, "soft_deleted": 1},
        "skipped": 1,
        "records": {"addresses": 2},
    },
    "services": {
        "source_rows": {"category": 1, "subcategory": 2, "service": 3},
        "excluded": {"soft_deleted": 1},
        "skipped": 1,
        "records": {"parent_categories": 1, "categories": 1, "services": 2, "service_categories": 1},
    },
    "bookings": {
        "source_rows": {"booking": 3, "booking_services_service": 3},
        "excluded": {"link_for_unmigrated_booking": 1},
        "skipped": 1,
        "records": {"bookings": 2, "booking_services": 3},
    },
    "payments": {
        "source_rows": {"payment": 3},
        "excluded": {},
        "skipped": 1,
        "records": {"payments": 2},
    },
    "chats": {
        "source_rows": {"chat": 2, "message": 3},
        "excluded": {"inactive_chat": 1},
        "skipped": 1,
        "records": {"chats": 1, "messages": 2},
    },
    "reviews": {
        "source_rows": {"rating": 2},
        "excluded": {},
        "skipped": 1,
        "records": {"reviews": 1},
    },
}


@pytest.mark.regression
def test_fixture_pipeline_snapshot_counts_are_stable(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("MAPBOX_TOKEN", raising=False)
    data_dir = tmp_path / "data"
    args = parse_args(
        [
            "all",
            "--dump",
            str(FIXTURE_DUMP),
            "--data-dir",
            str(data_dir),
            "--run-id",
            "run-snapshot",
            "--no-enrichment",
            "--config-dir",
            str(CONFIG_DIR),
        ]
    )

    assert run_command(args) == 0

    summary = read_json(data_dir / "reports" / "run_summary.json")
    for entity, expected in EXPECTED_EXTRACT_COUNTS.items():
        assert summary["entities"][entity]["phases"]["extract"]["counts"] == expected, entity

    bookings_extract = read_json(data_dir / "checkpoints" / "bookings" / "extract.json")
    assert bookings_extract["metadata"]["stats"]["duplicates_removed"] == 1
    assert bookings_extract["metadata"]["stats"]["status_distribution"] == {"cancelled": 1, "completed": 1}

    skipped = read_json(data_dir / "checkpoints" / "addresses" / "extract.skipped.json")["skipped"]
    assert [item["legacy_id"] for item in skipped] == ["a-4"]
    assert skipped[0]["record"]["buyer_id"] == "b-999"
