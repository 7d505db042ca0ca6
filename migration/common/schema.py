"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from migration.common.errors import ConfigError

TOP_LEVEL_KEYS = {"dump", "create", "validate", "destination", "enrichment", "addresses"}
DESTINATION_KINDS = {"memory", "rest"}


def _assert_mapping(obj, ctx: str) -> dict:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    return obj


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_positive_int(value, ctx: str) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ConfigError(f"{ctx} must be a positive integer")


def validate_migration_config(cfg, *, allow_unknown: bool = False) -> dict:
    cfg = _assert_mapping(cfg, "migration config")
    _assert_required_keys(cfg, TOP_LEVEL_KEYS, "migration config")
    _assert_no_unknown_keys(cfg, TOP_LEVEL_KEYS, "migration config", allow_unknown)

    dump = _assert_mapping(cfg["dump"], "dump")
    _assert_required_keys(dump, {"path", "backslash_escapes"}, "dump")

    create = _assert_mapping(cfg["create"], "create")
    _assert_required_keys(create, {"batch_size", "max_workers"}, "create")
    _assert_positive_int(create["batch_size"], "create.batch_size")
    _assert_positive_int(create["max_workers"], "create.max_workers")

    validate = _assert_mapping(cfg["validate"], "validate")
    _assert_required_keys(validate, {"sample_size", "amount_tolerance"}, "validate")
    _assert_positive_int(validate["sample_size"], "validate.sample_size")

    destination = _assert_mapping(cfg["destination"], "destination")
    _assert_required_keys(destination, {"kind"}, "destination")
    if destination["kind"] not in DESTINATION_KINDS:
        raise ConfigError(f"destination.kind must be one of: {', '.join(sorted(DESTINATION_KINDS))}")
    if destination["kind"] == "rest":
        _assert_required_keys(destination, {"url_env", "key_env"}, "destination")

    enrichment = _assert_mapping(cfg["enrichment"], "enrichment")
    _assert_required_keys(
        enrichment,
        {"enabled", "endpoint", "token_env", "batch_size", "batch_delay_ms"},
        "enrichment",
    )
    _assert_positive_int(enrichment["batch_size"], "enrichment.batch_size")

    addresses = _assert_mapping(cfg["addresses"], "addresses")
    _assert_required_keys(addresses, {"default_country", "bbox_wgs84"}, "addresses")
    _assert_required_keys(
        addresses["bbox_wgs84"],
        {"min_lat", "max_lat", "min_lon", "max_lon"},
        "addresses.bbox_wgs84",
    )

    return cfg
