from pathlib import Path

import pytest

from migration.common.errors import PrerequisiteError
from migration.common.fs import read_json
from migration.store.checkpoints import CheckpointRepository


def test_save_and_load_checkpoint(tmp_path: Path):
    repo = CheckpointRepository(tmp_path, "run-1")
    path = repo.save(
        "bookings",
        "extract",
        counts={"records": {"bookings": 1}},
        records={"bookings": [{"legacy_id": "bk-1"}]},
        extra={"stats": {"duplicates_removed": 0}},
    )

    assert path == tmp_path / "bookings" / "extract.json"
    loaded = repo.load("bookings", "extract")
    assert loaded.records == {"bookings": [{"legacy_id": "bk-1"}]}
    assert loaded.metadata["run_id"] == "run-1"
    assert loaded.metadata["stats"] == {"duplicates_removed": 0}


def test_side_file_is_named_after_phase(tmp_path: Path):
    repo = CheckpointRepository(tmp_path, "run-1")
    path = repo.save_side_file("payments", "extract", "skipped", [{"legacy_id": "p-3", "reason": "x"}])

    assert path.name == "extract.skipped.json"
    payload = read_json(path)
    assert payload["metadata"]["total"] == 1
    assert payload["skipped"][0]["legacy_id"] == "p-3"


def test_missing_checkpoint_is_prerequisite_error(tmp_path: Path):
    repo = CheckpointRepository(tmp_path, "run-1")

    assert repo.exists("users", "extract") is False
    with pytest.raises(PrerequisiteError):
        repo.load("users", "extract")
