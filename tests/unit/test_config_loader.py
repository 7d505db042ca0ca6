from pathlib import Path

import pytest

from migration.common.config_loader import load_config, resolve_entities
from migration.common.errors import ConfigError


def test_load_config_from_repo_config_dir():
    bundle = load_config(Path("config"))

    assert bundle.destination["kind"] == "memory"
    assert bundle.create["batch_size"] == 50
    assert bundle.addresses["default_country"] == "Norway"
    assert bundle.enrichment["token_env"] == "MAPBOX_TOKEN"


def test_resolve_entities():
    assert resolve_entities("all") == ["users", "addresses", "services", "bookings", "payments", "chats", "reviews"]
    assert resolve_entities("payments") == ["payments"]
    with pytest.raises(ConfigError):
        resolve_entities("salons")


def test_load_config_applies_overlay_values(tmp_path: Path):
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "migration.yml").write_text(
        """create:
  batch_size: 5
destination:
  kind: rest
""",
        encoding="utf-8",
    )

    bundle = load_config(Path("config"), overlay_config_dir=overlay)

    assert bundle.create["batch_size"] == 5
    assert bundle.create["max_workers"] == 8
    assert bundle.destination["kind"] == "rest"
    assert bundle.destination["url_env"] == "MIGRATION_DESTINATION_URL"


def test_empty_overlay_is_ignored(tmp_path: Path):
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "migration.yml").write_text("", encoding="utf-8")

    bundle = load_config(Path("config"), overlay_config_dir=overlay)
    assert bundle.create["batch_size"] == 50


def test_missing_config_file_raises(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_config(tmp_path)
