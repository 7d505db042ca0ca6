from datetime import datetime, timezone
from pathlib import Path

from migration.common.config_loader import load_config
from migration.common.logging import RunLog
from migration.dump.parser import DumpSource
from migration.dump.records import Buyer, Stylist
from migration.pipeline.base import PipelineContext
from migration.pipeline.users import MERGE_TO_CUSTOMER, MERGE_TO_STYLIST, UsersPipeline, resolve_duplicate
from migration.store.checkpoints import CheckpointRepository
from migration.store.destination import MemoryDestination
from migration.store.mapping import IdentifierMappingStore

FIXTURE_DUMP = Path(__file__).resolve().parents[1] / "fixtures" / "legacy_dump.sql"


def _context(tmp_path: Path, dump: DumpSource | None = None) -> PipelineContext:
    log = RunLog("run-users-unit")
    return PipelineContext(
        run_id="run-users-unit",
        config=load_config(Path("config")),
        dump=dump or DumpSource(FIXTURE_DUMP, log=log),
        mappings=IdentifierMappingStore(tmp_path / "mappings"),
        checkpoints=CheckpointRepository(tmp_path / "checkpoints", "run-users-unit"),
        destination=MemoryDestination(),
        log=log,
        processed_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


def _buyer(**overrides) -> Buyer:
    row = {"id": "b-1", "email": "same@example.no", "last_login_at": "2024-01-01 00:00:00"}
    row.update(overrides)
    return Buyer.from_row(row)


def _stylist(**overrides) -> Stylist:
    row = {"id": "s-1", "email": "same@example.no", "last_login_at": "2023-01-01 00:00:00"}
    row.update(overrides)
    return Stylist.from_row(row)


def test_duplicate_with_business_data_merges_to_stylist():
    resolution = resolve_duplicate(_buyer(), _stylist(stripe_account_id="acct_1"))

    assert resolution.resolution == MERGE_TO_STYLIST
    assert resolution.reason == "Stylist has business data"


def test_duplicate_prefers_more_recently_active_buyer():
    resolution = resolve_duplicate(_buyer(), _stylist())

    assert resolution.resolution == MERGE_TO_CUSTOMER


def test_duplicate_defaults_to_stylist_without_activity():
    resolution = resolve_duplicate(_buyer(last_login_at=None, updated_at=None), _stylist())

    assert resolution.resolution == MERGE_TO_STYLIST
    assert resolution.reason == "Defaulting to stylist role"


def test_transform_consolidates_buyers_and_stylists(tmp_path: Path):
    extraction = UsersPipeline(_context(tmp_path)).transform()

    profiles = extraction.records["profiles"]
    assert [p.email for p in profiles] == ["kari@example.no", "dup@example.no", "stine@example.no"]
    assert [p.role for p in profiles] == ["customer", "stylist", "stylist"]

    merged = profiles[1]
    assert merged.buyer_legacy_id == "b-2"
    assert merged.stylist_legacy_id == "s-2"
    assert merged.created_at == "2023-01-15T10:00:00.000+00:00"
    assert merged.updated_at == "2023-06-01T08:00:00.000+00:00"

    assert profiles[0].full_name == "Kari O'Brien"
    assert len(extraction.records["stylist_details"]) == 2
    assert len(extraction.records["user_preferences"]) == 3
    assert extraction.excluded == {"soft_deleted": 1}
    assert [skip.legacy_id for skip in extraction.skips] == ["b-4"]
    assert extraction.stats["duplicate_emails"] == 1
    assert extraction.stats["merged_to_stylist"] == 1


def test_stylist_details_keep_social_links(tmp_path: Path):
    extraction = UsersPipeline(_context(tmp_path)).transform()

    details = {d.legacy_id: d for d in extraction.records["stylist_details"]}
    assert details["s-1"].instagram_profile == "stine.hair"
    assert details["s-1"].travel_distance_km == 15
    assert details["s-1"].stripe_account_id == "acct_1"
    assert details["s-2"].other_social_media_urls == []


def test_transform_reports_source_issues_as_warnings(tmp_path: Path):
    extraction = UsersPipeline(_context(tmp_path)).transform()

    # Fixture ids are short legacy keys, not UUIDs; those rows still migrate.
    assert extraction.stats["validation_issue_counts"] == {"buyer": 2, "stylist": 2}
    issue = extraction.stats["validation_issues"][0]
    assert issue == {
        "table": "buyer",
        "legacy_id": "b-1",
        "field": "id",
        "value": "b-1",
        "message": "Invalid UUID format",
        "severity": "warning",
    }
    assert len(extraction.records["profiles"]) == 3


def test_malformed_email_row_is_skipped(tmp_path: Path):
    text = FIXTURE_DUMP.read_text(encoding="utf-8").replace("'kari@example.no'", "'kari at example.no'")
    extraction = UsersPipeline(_context(tmp_path, DumpSource(text=text))).transform()

    skips = {skip.legacy_id: skip for skip in extraction.skips}
    assert skips["b-1"].reason == "buyer: Invalid email format (kari at example.no)"
    assert skips["b-1"].record["email"] == "kari at example.no"
    assert "kari@example.no" not in [p.email for p in extraction.records["profiles"]]
    assert extraction.stats["validation_issue_counts"]["buyer"] == 3
