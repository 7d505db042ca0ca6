from pathlib import Path

import pytest

from migration.cli import main, parse_args, run_command
from migration.common.fs import read_json

FIXTURE_DUMP = Path(__file__).resolve().parents[1] / "fixtures" / "legacy_dump.sql"
CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"


@pytest.mark.integration
def test_cli_all_generates_expected_artifacts(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("MAPBOX_TOKEN", raising=False)
    data_dir = tmp_path / "data"
    args = parse_args(
        [
            "all",
            "--dump",
            str(FIXTURE_DUMP),
            "--config-dir",
            str(CONFIG_DIR),
            "--data-dir",
            str(data_dir),
            "--run-id",
            "run-test",
            "--no-enrichment",
        ]
    )

    exit_code = run_command(args)

    assert exit_code == 0
    for entity_type in ("buyer", "stylist", "address", "category", "service", "booking", "payment", "chat", "review"):
        assert (data_dir / "mappings" / f"{entity_type}.json").exists()
    assert (data_dir / "checkpoints" / "reviews" / "validate.json").exists()
    assert (data_dir / "checkpoints" / "payments" / "extract.skipped.json").exists()
    assert (data_dir / "reports" / "run-test.json").exists()
    assert (data_dir / "run_meta" / "run-test.log.jsonl").exists()

    summary = read_json(data_dir / "reports" / "run_summary.json")
    assert summary["success"] is True
    assert summary["validation_passed"] is True
    assert summary["dump_tables"]["buyer"]["rows"] == 4


@pytest.mark.integration
def test_cli_phase_before_prerequisites_is_hard_failure(tmp_path: Path):
    exit_code = main(
        [
            "extract",
            "--entity",
            "bookings",
            "--dump",
            str(FIXTURE_DUMP),
            "--data-dir",
            str(tmp_path / "data"),
            "--run-id",
            "run-prereq",
            "--no-enrichment",
            "--config-dir",
            str(CONFIG_DIR),
        ]
    )

    assert exit_code == 20
    summary = read_json(tmp_path / "data" / "reports" / "run_summary.json")
    assert summary["fatal_errors"][0]["error_code"] == "PREREQUISITE_MISSING"


@pytest.mark.integration
def test_cli_missing_config_dir_is_hard_failure(tmp_path: Path):
    exit_code = main(["extract", "--config-dir", str(tmp_path / "nowhere"), "--data-dir", str(tmp_path / "data")])

    assert exit_code == 20
