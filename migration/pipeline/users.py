"""Buyer and stylist consolidation into profiles, stylist details, and preferences."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime

from migration.common.coercion import timestamp_or_default
from migration.common.time_utils import parse_legacy_timestamp
from migration.dump.records import Buyer, LegacyUser, Stylist
from migration.pipeline.base import EntityPipeline, Extraction, ParentRef, TargetRecord, WriteStep, resolve_required
from migration.pipeline.ownership import OWNER_BUYER, OWNER_STYLIST
from migration.pipeline.user_validation import (
    SEVERITY_ERROR,
    ValidationIssue,
    check_profiles,
    check_source_user,
    summarise,
)

ROLE_CUSTOMER = "customer"
ROLE_STYLIST = "stylist"
MERGE_TO_STYLIST = "merge_to_stylist"
MERGE_TO_CUSTOMER = "merge_to_customer"


@dataclass(frozen=True)
class ProfileRecord(TargetRecord):
    email: str
    full_name: str | None
    phone_number: str | None
    bankid_verified: bool
    role: str
    stripe_customer_id: str | None
    created_at: str
    updated_at: str
    buyer_legacy_id: str | None = None
    stylist_legacy_id: str | None = None


@dataclass(frozen=True)
class StylistDetailsRecord(TargetRecord):
    bio: str | None
    can_travel: bool
    has_own_place: bool
    travel_distance_km: int | None
    instagram_profile: str | None
    facebook_profile: str | None
    other_social_media_urls: list = field(default_factory=list)
    stripe_account_id: str | None = None


@dataclass(frozen=True)
class PreferencesRecord(TargetRecord):
    owner_kind: str
    email_delivery: bool
    sms_delivery: bool
    marketing_emails: bool
    promotional_sms: bool


@dataclass(frozen=True)
class DuplicateResolution:
    email: str
    buyer_id: str
    stylist_id: str
    resolution: str
    reason: str


def _activity(user: LegacyUser) -> datetime | None:
    return parse_legacy_timestamp(user.last_login_at) or parse_legacy_timestamp(user.updated_at)


def resolve_duplicate(buyer: Buyer, stylist: Stylist) -> DuplicateResolution:
    """Stylist wins with business data, else the more recently active account, else stylist."""
    email = buyer.normalised_email or ""
    if stylist.has_business_data:
        return DuplicateResolution(email, buyer.id, stylist.id, MERGE_TO_STYLIST, "Stylist has business data")
    buyer_activity = _activity(buyer)
    stylist_activity = _activity(stylist)
    if buyer_activity is not None and (stylist_activity is None or buyer_activity > stylist_activity):
        return DuplicateResolution(email, buyer.id, stylist.id, MERGE_TO_CUSTOMER, "Buyer account more recently active")
    return DuplicateResolution(email, buyer.id, stylist.id, MERGE_TO_STYLIST, "Defaulting to stylist role")


class UsersPipeline(EntityPipeline):
    entity = "users"

    def _timestamps(self, *users: LegacyUser) -> tuple[str, str]:
        processed_at = self.ctx.processed_at
        created = [timestamp_or_default(u.created_at, processed_at) for u in users]
        updated = [timestamp_or_default(u.updated_at, processed_at) for u in users]
        return min(created), max(updated)

    def _profile(self, primary: LegacyUser, secondary: LegacyUser | None, role: str) -> ProfileRecord:
        users = (primary,) if secondary is None else (primary, secondary)
        created_at, updated_at = self._timestamps(*users)
        buyer = next((u for u in users if isinstance(u, Buyer)), None)
        stylist = next((u for u in users if isinstance(u, Stylist)), None)
        return ProfileRecord(
            legacy_id=primary.id,
            email=primary.normalised_email or "",
            full_name=primary.name or (secondary.name if secondary else None),
            phone_number=primary.phone_number or (secondary.phone_number if secondary else None),
            bankid_verified=primary.bankid_verified or bool(secondary and secondary.bankid_verified),
            role=role,
            stripe_customer_id=buyer.stripe_customer_id if buyer else None,
            created_at=created_at,
            updated_at=updated_at,
            buyer_legacy_id=buyer.id if buyer else None,
            stylist_legacy_id=stylist.id if stylist else None,
        )

    def _details(self, stylist: Stylist) -> StylistDetailsRecord:
        return StylistDetailsRecord(
            legacy_id=stylist.id,
            bio=stylist.bio,
            can_travel=stylist.can_travel,
            has_own_place=stylist.has_own_place,
            travel_distance_km=stylist.travel_distance,
            instagram_profile=stylist.instagram_profile,
            facebook_profile=stylist.facebook_profile,
            other_social_media_urls=[stylist.twitter_profile] if stylist.twitter_profile else [],
            stripe_account_id=stylist.stripe_account_id,
        )

    def _preferences(self, user: LegacyUser) -> PreferencesRecord:
        return PreferencesRecord(
            legacy_id=user.id,
            owner_kind=OWNER_STYLIST if isinstance(user, Stylist) else OWNER_BUYER,
            email_delivery=user.email_enabled,
            sms_delivery=user.sms_enabled,
            marketing_emails=user.email_enabled,
            promotional_sms=user.sms_enabled,
        )

    def _active_by_email(
        self,
        extraction: Extraction,
        users: list,
        table: str,
        issues: list[ValidationIssue],
    ) -> dict[str, LegacyUser]:
        by_email: dict[str, LegacyUser] = {}
        for user in users:
            email = user.normalised_email
            if email is None:
                self.skip(extraction, user.id, f"{table} has no email address")
                continue
            row_issues = check_source_user(user, table)
            issues.extend(row_issues)
            errors = [issue.message for issue in row_issues if issue.severity == SEVERITY_ERROR]
            if errors:
                reason = "; ".join(errors)
                self.skip(extraction, user.id, f"{table}: {reason} ({user.email})", record=user)
                continue
            if email in by_email:
                self.skip(extraction, user.id, f"Duplicate email within {table} table (kept {by_email[email].id})")
                continue
            by_email[email] = user
        extraction.stats[f"active_{table}s"] = len(users)
        return by_email

    def transform(self) -> Extraction:
        extraction = Extraction()
        issues: list[ValidationIssue] = []
        buyers = self._active_by_email(
            extraction, self.typed_rows(extraction, "buyer", Buyer.from_row), "buyer", issues
        )
        stylists = self._active_by_email(
            extraction, self.typed_rows(extraction, "stylist", Stylist.from_row), "stylist", issues
        )

        resolutions: list[DuplicateResolution] = []
        for email, buyer in buyers.items():
            stylist = stylists.get(email)
            if stylist is None:
                extraction.add("profiles", self._profile(buyer, None, ROLE_CUSTOMER))
                extraction.add("user_preferences", self._preferences(buyer))
                continue
            resolution = resolve_duplicate(buyer, stylist)
            resolutions.append(resolution)
            if resolution.resolution == MERGE_TO_STYLIST:
                extraction.add("profiles", self._profile(stylist, buyer, ROLE_STYLIST))
                extraction.add("stylist_details", self._details(stylist))
                extraction.add("user_preferences", self._preferences(stylist))
            else:
                extraction.add("profiles", self._profile(buyer, stylist, ROLE_CUSTOMER))
                extraction.add("user_preferences", self._preferences(buyer))

        for email, stylist in stylists.items():
            if email in buyers:
                continue
            extraction.add("profiles", self._profile(stylist, None, ROLE_STYLIST))
            extraction.add("stylist_details", self._details(stylist))
            extraction.add("user_preferences", self._preferences(stylist))

        extraction.stats["duplicate_emails"] = len(resolutions)
        extraction.stats["merged_to_stylist"] = sum(1 for r in resolutions if r.resolution == MERGE_TO_STYLIST)
        extraction.stats["merged_to_customer"] = sum(1 for r in resolutions if r.resolution == MERGE_TO_CUSTOMER)
        extraction.stats["duplicate_resolutions"] = [asdict(r) for r in resolutions]

        detail_ids = {record.legacy_id for record in extraction.records.get("stylist_details", [])}
        issues.extend(check_profiles(extraction.records.get("profiles", []), detail_ids))
        extraction.stats["validation_issue_counts"] = summarise(issues)
        extraction.stats["validation_issues"] = [issue.to_dict() for issue in issues]
        if issues and self.current_phase == "extract":
            self.log.warning(
                f"{len(issues)} source data issues in buyer/stylist rows",
                entity=self.entity,
                phase="extract",
                event="SOURCE_DATA_ISSUES",
            )
        return extraction

    def _profile_row(self, record: ProfileRecord) -> dict:
        return {
            "email": record.email,
            "full_name": record.full_name,
            "phone_number": record.phone_number,
            "bankid_verified": record.bankid_verified,
            "role": record.role,
            "stripe_customer_id": record.stripe_customer_id,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
        }

    def _profile_mapping_keys(self, record: ProfileRecord) -> list[tuple[str, str]]:
        keys = []
        if record.buyer_legacy_id:
            keys.append((OWNER_BUYER, record.buyer_legacy_id))
        if record.stylist_legacy_id:
            keys.append((OWNER_STYLIST, record.stylist_legacy_id))
        return keys

    def _details_row(self, record: StylistDetailsRecord) -> dict:
        return {
            "profile_id": resolve_required(self.ctx.mappings, OWNER_STYLIST, record.legacy_id, "stylist"),
            "bio": record.bio,
            "can_travel": record.can_travel,
            "has_own_place": record.has_own_place,
            "travel_distance_km": record.travel_distance_km,
            "instagram_profile": record.instagram_profile,
            "facebook_profile": record.facebook_profile,
            "other_social_media_urls": list(record.other_social_media_urls),
            "stripe_account_id": record.stripe_account_id,
        }

    def _preferences_row(self, record: PreferencesRecord) -> dict:
        return {
            "user_id": resolve_required(self.ctx.mappings, record.owner_kind, record.legacy_id, record.owner_kind),
            "newsletter_subscribed": True,
            "marketing_emails": record.marketing_emails,
            "promotional_sms": record.promotional_sms,
            "booking_confirmations": True,
            "booking_reminders": True,
            "booking_cancellations": True,
            "booking_status_updates": True,
            "chat_messages": True,
            "new_booking_requests": True,
            "review_notifications": True,
            "payment_notifications": True,
            "application_status_updates": True,
            "email_delivery": record.email_delivery,
            "sms_delivery": record.sms_delivery,
            "push_notifications": True,
        }

    def write_steps(self) -> list[WriteStep]:
        return [
            WriteStep(
                collection="profiles",
                table="profiles",
                record_type=ProfileRecord,
                natural_key=("email",),
                to_row=self._profile_row,
                mapping_keys=self._profile_mapping_keys,
                mapping_entities=(OWNER_BUYER, OWNER_STYLIST),
                sample_fields=("full_name", "role", "phone_number", "bankid_verified"),
            ),
            WriteStep(
                collection="stylist_details",
                table="stylist_details",
                record_type=StylistDetailsRecord,
                natural_key=("profile_id",),
                to_row=self._details_row,
                parent_refs=(ParentRef("profile_id", "profiles"),),
                sample_fields=("bio", "can_travel", "stripe_account_id"),
            ),
            WriteStep(
                collection="user_preferences",
                table="user_preferences",
                record_type=PreferencesRecord,
                natural_key=("user_id",),
                to_row=self._preferences_row,
                parent_refs=(ParentRef("user_id", "profiles"),),
                sample_fields=("email_delivery", "sms_delivery"),
            ),
        ]
