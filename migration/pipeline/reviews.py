"""Booking reviews from the legacy rating table."""

from __future__ import annotations

from dataclasses import dataclass

from migration.common.coercion import timestamp_or_default
from migration.dump.records import Rating
from migration.pipeline.base import EntityPipeline, Extraction, ParentRef, TargetRecord, WriteStep
from migration.pipeline.ownership import OWNER_BUYER, OWNER_STYLIST

MIN_RATING = 1
MAX_RATING = 5


@dataclass(frozen=True)
class ReviewRecord(TargetRecord):
    booking_id: str
    customer_id: str
    stylist_id: str
    rating: int
    comment: str | None
    created_at: str


def rating_in_range(value: int) -> bool:
    return MIN_RATING <= value <= MAX_RATING


class ReviewsPipeline(EntityPipeline):
    entity = "reviews"
    requires = ("booking", "buyer", "stylist")

    def transform(self) -> Extraction:
        extraction = Extraction()
        mappings = self.ctx.mappings
        distribution = {value: 0 for value in range(MIN_RATING, MAX_RATING + 1)}
        with_comments = 0

        for rating in self.typed_rows(extraction, "rating", Rating.from_row):
            booking_id = mappings.get("booking", rating.booking_id)
            if booking_id is None:
                self.skip(extraction, rating.id, f"Booking {rating.booking_id} not migrated")
                continue
            if not rating_in_range(rating.rating):
                self.skip(extraction, rating.id, f"Invalid rating value: {rating.rating!r}")
                continue
            customer_id = mappings.get(OWNER_BUYER, rating.buyer_id)
            if customer_id is None:
                self.skip(extraction, rating.id, f"Customer not migrated (buyer_id={rating.buyer_id})")
                continue
            stylist_id = mappings.get(OWNER_STYLIST, rating.stylist_id)
            if stylist_id is None:
                self.skip(extraction, rating.id, f"Stylist not migrated (stylist_id={rating.stylist_id})")
                continue

            comment = rating.review if rating.review and rating.review.strip() else None
            added = self.add(
                extraction,
                "reviews",
                ReviewRecord(
                    legacy_id=rating.id,
                    booking_id=booking_id,
                    customer_id=customer_id,
                    stylist_id=stylist_id,
                    rating=rating.rating,
                    comment=comment,
                    created_at=timestamp_or_default(rating.created_at, self.ctx.processed_at),
                ),
            )
            if added:
                with_comments += int(comment is not None)
                distribution[rating.rating] += 1

        extraction.stats["rating_distribution"] = {str(key): count for key, count in distribution.items()}
        extraction.stats["reviews_with_comments"] = with_comments
        return extraction

    def _row(self, record: ReviewRecord) -> dict:
        return {
            "id": record.legacy_id,
            "booking_id": record.booking_id,
            "customer_id": record.customer_id,
            "stylist_id": record.stylist_id,
            "rating": record.rating,
            "comment": record.comment,
            "created_at": record.created_at,
        }

    def write_steps(self) -> list[WriteStep]:
        return [
            WriteStep(
                collection="reviews",
                table="reviews",
                record_type=ReviewRecord,
                natural_key=("booking_id",),
                to_row=self._row,
                mapping_keys=lambda record: [("review", record.legacy_id)],
                mapping_entities=("review",),
                parent_refs=(
                    ParentRef("booking_id", "bookings"),
                    ParentRef("customer_id", "profiles"),
                    ParentRef("stylist_id", "profiles"),
                ),
                sample_fields=("rating", "comment", "customer_id", "stylist_id"),
            )
        ]
