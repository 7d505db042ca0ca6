"""Format checks for legacy buyer/stylist rows and the consolidated profiles."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from migration.common.time_utils import parse_legacy_timestamp
from migration.dump.records import LegacyUser, Stylist

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE)
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[\d\s\-()]{8,20}$")
ISO_TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d{3})?(?:Z|[+-]\d{2}:\d{2})?$")
INSTAGRAM_URL_RE = re.compile(r"^https://www\.instagram\.com/[\w.\-]+/$", re.IGNORECASE)
FACEBOOK_URL_RE = re.compile(r"^https://www\.facebook\.com/[\w.\-]+/$", re.IGNORECASE)
_INSTAGRAM_HANDLE_RE = re.compile(r"instagram\.com/([^/?#]+)", re.IGNORECASE)
_FACEBOOK_HANDLE_RE = re.compile(r"(?:facebook|fb)\.com/([^/?#]+)", re.IGNORECASE)

MAX_TRAVEL_DISTANCE_KM = 1000
VALID_ROLES = ("customer", "stylist")
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"


@dataclass(frozen=True)
class ValidationIssue:
    table: str
    legacy_id: str
    field: str
    value: Any
    message: str
    severity: str = SEVERITY_WARNING

    def to_dict(self) -> dict:
        return asdict(self)


def is_valid_uuid(value: str) -> bool:
    return bool(UUID_RE.match(value))


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value.strip()))


def is_valid_phone(value: str) -> bool:
    return bool(PHONE_RE.match(value))


def is_valid_timestamp(value: str) -> bool:
    parsed = parse_legacy_timestamp(value)
    return parsed is not None and parsed > EPOCH


def _social_url(raw: str, domain: str, handle_re: re.Pattern) -> str:
    cleaned = raw.strip().lstrip("@")
    match = handle_re.search(cleaned)
    handle = match.group(1) if match else cleaned
    return f"https://www.{domain}/{handle}/"


def normalise_instagram_url(raw: str) -> str:
    """Bare handles, ``@handle`` and any instagram.com URL become ``https://www.instagram.com/<handle>/``."""
    return _social_url(raw, "instagram.com", _INSTAGRAM_HANDLE_RE)


def normalise_facebook_url(raw: str) -> str:
    return _social_url(raw, "facebook.com", _FACEBOOK_HANDLE_RE)


def _collector(issues: list[ValidationIssue], table: str, legacy_id: str):
    def add(field: str, value: Any, message: str, severity: str = SEVERITY_WARNING) -> None:
        issues.append(ValidationIssue(table, legacy_id, field, value, message, severity))

    return add


def check_source_user(user: LegacyUser, table: str) -> list[ValidationIssue]:
    """Issues for one legacy row; a malformed email is the only error."""
    issues: list[ValidationIssue] = []
    add = _collector(issues, table, user.id)

    if not is_valid_uuid(user.id):
        add("id", user.id, "Invalid UUID format")
    if user.email and not is_valid_email(user.email):
        add("email", user.email, "Invalid email format", SEVERITY_ERROR)
    if user.phone_number and not is_valid_phone(user.phone_number):
        add("phone_number", user.phone_number, "Invalid phone number format")
    for field in ("created_at", "updated_at"):
        value = getattr(user, field)
        if value and not is_valid_timestamp(value):
            add(field, value, "Invalid date")

    if isinstance(user, Stylist):
        distance = user.travel_distance
        if distance is not None and not 0 <= distance <= MAX_TRAVEL_DISTANCE_KM:
            add("travel_distance", distance, f"Travel distance must be between 0 and {MAX_TRAVEL_DISTANCE_KM} km")
        if user.instagram_profile and not INSTAGRAM_URL_RE.match(normalise_instagram_url(user.instagram_profile)):
            add("instagram_profile", user.instagram_profile, "Invalid Instagram URL")
        if user.facebook_profile and not FACEBOOK_URL_RE.match(normalise_facebook_url(user.facebook_profile)):
            add("facebook_profile", user.facebook_profile, "Invalid Facebook URL")
    return issues


def check_profiles(profiles: Iterable[Any], stylist_detail_ids: set[str]) -> list[ValidationIssue]:
    """Consistency of consolidated profiles: unique ids and emails, known roles, ISO timestamps."""
    issues: list[ValidationIssue] = []
    seen_ids: set[str] = set()
    seen_emails: set[str] = set()
    for profile in profiles:
        add = _collector(issues, "profiles", profile.legacy_id)
        if profile.legacy_id in seen_ids:
            add("id", profile.legacy_id, "Duplicate profile id")
        seen_ids.add(profile.legacy_id)
        email = profile.email.lower()
        if email in seen_emails:
            add("email", profile.email, "Duplicate email")
        seen_emails.add(email)

        if profile.role not in VALID_ROLES:
            add("role", profile.role, f"Role must be one of {', '.join(VALID_ROLES)}")
        has_details = profile.legacy_id in stylist_detail_ids
        if profile.role == "stylist" and not has_details:
            add("stylist_details", None, "Stylist profile has no stylist details")
        if profile.role == "customer" and has_details:
            add("stylist_details", profile.legacy_id, "Customer profile has stylist details")
        for field in ("created_at", "updated_at"):
            value = getattr(profile, field)
            if not ISO_TIMESTAMP_RE.match(value):
                add(field, value, "Not an ISO timestamp")
    return issues


def summarise(issues: Iterable[ValidationIssue]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for issue in issues:
        counts[issue.table] = counts.get(issue.table, 0) + 1
    return counts
