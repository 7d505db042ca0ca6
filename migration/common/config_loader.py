"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from migration.common.constants import ENTITY_ORDER
from migration.common.errors import ConfigError
from migration.common.fs import read_yaml
from migration.common.schema import validate_migration_config

CONFIG_FILENAME = "migration.yml"


@dataclass(frozen=True)
class ConfigBundle:
    dump: dict
    create: dict
    validate: dict
    destination: dict
    enrichment: dict
    addresses: dict


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    return _deep_merge(base, overlay)


def load_config(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> ConfigBundle:
    overlay_path = None
    if overlay_config_dir is not None:
        overlay_path = overlay_config_dir / CONFIG_FILENAME
    cfg = validate_migration_config(
        _load_yaml_with_overlay(config_dir / CONFIG_FILENAME, overlay_path),
        allow_unknown=allow_unknown,
    )
    return ConfigBundle(
        dump=cfg["dump"],
        create=cfg["create"],
        validate=cfg["validate"],
        destination=cfg["destination"],
        enrichment=cfg["enrichment"],
        addresses=cfg["addresses"],
    )


def resolve_entities(target: str) -> list[str]:
    if target == "all":
        return list(ENTITY_ORDER)
    if target not in ENTITY_ORDER:
        raise ConfigError(f"Unknown entity type: {target}")
    return [target]
