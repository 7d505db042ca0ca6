"""Application constants."""

USER_AGENT = "legacy-dump-migration/1.0 (+data-migration; contact: configured-email)"
ENTITY_ORDER = (
    "users",
    "addresses",
    "services",
    "bookings",
    "payments",
    "chats",
    "reviews",
)
PHASES = (
    "extract",
    "create",
    "validate",
)
EXIT_SUCCESS = 0
EXIT_VALIDATION_FAILED = 10
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "level",
    "run_id",
    "entity",
    "phase",
    "event",
    "status",
    "legacy_id",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
DEFAULT_COUNTRY = "Norway"
COUNTRY_CODES = {
    "norway": "NO",
    "norge": "NO",
    "sweden": "SE",
    "sverige": "SE",
    "denmark": "DK",
    "danmark": "DK",
    "finland": "FI",
    "suomi": "FI",
}
NORDIC_BBOX_WGS84 = {
    "min_lat": 50.0,
    "max_lat": 75.0,
    "min_lon": -10.0,
    "max_lon": 35.0,
}
