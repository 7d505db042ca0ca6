import copy

import pytest

from migration.common.errors import ConfigError
from migration.common.schema import validate_migration_config

BASE_CONFIG = {
    "dump": {"path": "dump.sql", "backslash_escapes": False},
    "create": {"batch_size": 50, "max_workers": 8},
    "validate": {"sample_size": 100, "amount_tolerance": 0.01},
    "destination": {"kind": "memory"},
    "enrichment": {
        "enabled": False,
        "endpoint": "https://geo.test",
        "token_env": "TOKEN",
        "batch_size": 10,
        "batch_delay_ms": 0,
    },
    "addresses": {
        "default_country": "Norway",
        "bbox_wgs84": {"min_lat": 50, "max_lat": 75, "min_lon": -10, "max_lon": 35},
    },
}


def test_validate_migration_config_accepts_valid_shape():
    validated = validate_migration_config(copy.deepcopy(BASE_CONFIG))
    assert validated["destination"]["kind"] == "memory"


def test_validate_migration_config_rejects_unknown_key_by_default():
    bad = copy.deepcopy(BASE_CONFIG)
    bad["unexpected"] = True
    with pytest.raises(ConfigError):
        validate_migration_config(bad)


def test_validate_migration_config_allows_unknown_when_enabled():
    okay = copy.deepcopy(BASE_CONFIG)
    okay["extra"] = 1
    validate_migration_config(okay, allow_unknown=True)


def test_batch_size_must_be_positive_int():
    bad = copy.deepcopy(BASE_CONFIG)
    bad["create"]["batch_size"] = 0
    with pytest.raises(ConfigError):
        validate_migration_config(bad)

    bad["create"]["batch_size"] = True
    with pytest.raises(ConfigError):
        validate_migration_config(bad)


def test_rest_destination_needs_env_names():
    bad = copy.deepcopy(BASE_CONFIG)
    bad["destination"] = {"kind": "rest"}
    with pytest.raises(ConfigError):
        validate_migration_config(bad)

    bad["destination"] = {"kind": "sqlite"}
    with pytest.raises(ConfigError):
        validate_migration_config(bad)


def test_bbox_keys_required():
    bad = copy.deepcopy(BASE_CONFIG)
    del bad["addresses"]["bbox_wgs84"]["max_lon"]
    with pytest.raises(ConfigError):
        validate_migration_config(bad)
