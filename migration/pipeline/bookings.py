"""Bookings and their booking-service links."""

from __future__ import annotations

from dataclasses import dataclass

from migration.common.coercion import parse_json_list, timestamp_or_default
from migration.common.ids import normalise_legacy_id
from migration.common.time_utils import add_minutes_iso
from migration.dump.records import BookingServiceLink, LegacyBooking
from migration.pipeline.base import EntityPipeline, Extraction, ParentRef, TargetRecord, WriteStep, resolve_required
from migration.pipeline.ownership import OWNER_BUYER, OWNER_STYLIST
from migration.pipeline.status import map_booking_status

DEFAULT_SERVICE_MINUTES = 60
LINK_SOURCE_JSON = "booking_json"
LINK_SOURCE_JUNCTION = "junction_table"


@dataclass(frozen=True)
class BookingRecord(TargetRecord):
    customer_id: str
    stylist_id: str
    start_time: str
    end_time: str
    message_to_stylist: str | None
    status: str
    cancelled_at: str | None
    cancellation_reason: str | None
    address_id: str | None
    total_price: float
    total_duration_minutes: int
    created_at: str
    updated_at: str
    legacy_status: str | None = None


@dataclass(frozen=True)
class BookingServiceRecord(TargetRecord):
    booking_legacy_id: str
    service_legacy_id: str
    source: str


def service_ids_from_json(value: str | None) -> list[str]:
    """Legacy bookings store their services as a JSON list of ids or of objects with an id."""
    ids = []
    for item in parse_json_list(value):
        if isinstance(item, dict):
            item = item.get("id")
        if isinstance(item, (str, int)):
            normalised = normalise_legacy_id(str(item))
            if normalised is not None:
                ids.append(normalised)
    return ids


def dedupe_links(links: list[BookingServiceRecord]) -> tuple[list[BookingServiceRecord], int]:
    seen: set[tuple[str, str]] = set()
    unique = []
    for link in links:
        key = (link.booking_legacy_id, link.service_legacy_id)
        if key in seen:
            continue
        seen.add(key)
        unique.append(link)
    return unique, len(links) - len(unique)


class BookingsPipeline(EntityPipeline):
    entity = "bookings"
    requires = ("buyer", "stylist", "service", "address")

    def _booking(self, booking: LegacyBooking, customer_id: str, stylist_id: str, service_count: int) -> BookingRecord:
        processed_at = self.ctx.processed_at
        mapped = map_booking_status(booking.status)
        start_time = timestamp_or_default(booking.date_time, processed_at)
        duration = DEFAULT_SERVICE_MINUTES * max(1, service_count)
        updated_at = timestamp_or_default(booking.updated_at, processed_at)
        return BookingRecord(
            legacy_id=booking.id,
            customer_id=customer_id,
            stylist_id=stylist_id,
            start_time=start_time,
            end_time=add_minutes_iso(start_time, duration),
            message_to_stylist=booking.additional_notes,
            status=mapped.status,
            cancelled_at=updated_at if mapped.is_cancelled else None,
            cancellation_reason=mapped.reason,
            address_id=self.ctx.mappings.get("address", booking.address_id),
            total_price=float(booking.amount or 0),
            total_duration_minutes=duration,
            created_at=timestamp_or_default(booking.created_at, processed_at),
            updated_at=updated_at,
            legacy_status=booking.status,
        )

    def transform(self) -> Extraction:
        extraction = Extraction()
        mappings = self.ctx.mappings
        migrated: set[str] = set()
        links: list[BookingServiceRecord] = []
        status_counts: dict[str, int] = {}
        unknown_statuses: dict[str, int] = {}
        unresolved_addresses = 0

        for booking in self.typed_rows(extraction, "booking", LegacyBooking.from_row):
            customer_id = mappings.get(OWNER_BUYER, booking.buyer_id)
            if customer_id is None:
                self.skip(extraction, booking.id, f"Customer not migrated (buyer_id={booking.buyer_id})")
                continue
            stylist_id = mappings.get(OWNER_STYLIST, booking.stylist_id)
            if stylist_id is None:
                self.skip(extraction, booking.id, f"Stylist not migrated (stylist_id={booking.stylist_id})")
                continue

            service_ids = service_ids_from_json(booking.service)
            record = self._booking(booking, customer_id, stylist_id, len(service_ids))
            if booking.address_id is not None and record.address_id is None:
                unresolved_addresses += 1
            if map_booking_status(booking.status).known is False:
                key = booking.status or "<null>"
                unknown_statuses[key] = unknown_statuses.get(key, 0) + 1
            status_counts[record.status] = status_counts.get(record.status, 0) + 1

            extraction.add("bookings", record)
            migrated.add(booking.id)
            links.extend(
                BookingServiceRecord(
                    legacy_id=f"{booking.id}:{service_id}",
                    booking_legacy_id=booking.id,
                    service_legacy_id=service_id,
                    source=LINK_SOURCE_JSON,
                )
                for service_id in service_ids
            )

        for link in self.typed_rows(extraction, "booking_services_service", BookingServiceLink.from_row):
            if link.booking_id not in migrated:
                extraction.exclude("link_for_unmigrated_booking")
                continue
            links.append(
                BookingServiceRecord(
                    legacy_id=f"{link.booking_id}:{link.service_id}",
                    booking_legacy_id=link.booking_id,
                    service_legacy_id=link.service_id,
                    source=LINK_SOURCE_JUNCTION,
                )
            )

        unique_links, duplicates_removed = dedupe_links(links)
        for link in unique_links:
            if mappings.get("service", link.service_legacy_id) is None:
                self.skip(extraction, link.legacy_id, f"Service {link.service_legacy_id} not migrated")
                continue
            extraction.add("booking_services", link)

        extraction.stats.update(
            {
                "status_distribution": status_counts,
                "unknown_statuses": unknown_statuses,
                "unresolved_addresses": unresolved_addresses,
                "duplicates_removed": duplicates_removed,
            }
        )
        return extraction

    def _booking_row(self, record: BookingRecord) -> dict:
        return {
            "id": record.legacy_id,
            "customer_id": record.customer_id,
            "stylist_id": record.stylist_id,
            "start_time": record.start_time,
            "end_time": record.end_time,
            "message_to_stylist": record.message_to_stylist,
            "status": record.status,
            "cancelled_at": record.cancelled_at,
            "cancellation_reason": record.cancellation_reason,
            "address_id": record.address_id,
            "total_price": record.total_price,
            "total_duration_minutes": record.total_duration_minutes,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
        }

    def _link_row(self, record: BookingServiceRecord) -> dict:
        return {
            "booking_id": resolve_required(self.ctx.mappings, "booking", record.booking_legacy_id, "booking"),
            "service_id": resolve_required(self.ctx.mappings, "service", record.service_legacy_id, "service"),
        }

    def write_steps(self) -> list[WriteStep]:
        return [
            WriteStep(
                collection="bookings",
                table="bookings",
                record_type=BookingRecord,
                natural_key=("id",),
                to_row=self._booking_row,
                mapping_keys=lambda record: [("booking", record.legacy_id)],
                mapping_entities=("booking",),
                parent_refs=(
                    ParentRef("customer_id", "profiles"),
                    ParentRef("stylist_id", "profiles"),
                    ParentRef("address_id", "addresses", required=False),
                ),
                sample_fields=("status", "total_price", "start_time", "end_time"),
            ),
            WriteStep(
                collection="booking_services",
                table="booking_services",
                record_type=BookingServiceRecord,
                natural_key=("booking_id", "service_id"),
                to_row=self._link_row,
                parent_refs=(
                    ParentRef("booking_id", "bookings"),
                    ParentRef("service_id", "services"),
                ),
            ),
        ]

