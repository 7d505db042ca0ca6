"""Payments, keyed to migrated bookings through the booking's payment reference."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from migration.common.coercion import timestamp_or_default
from migration.common.ids import normalise_legacy_id
from migration.dump.records import LegacyPayment
from migration.pipeline.base import EntityPipeline, Extraction, ParentRef, TargetRecord, WriteStep
from migration.pipeline.status import PAYMENT_SUCCEEDED, map_payment_status

CURRENCY = "NOK"
MINOR_UNITS = Decimal(100)


@dataclass(frozen=True)
class PaymentRecord(TargetRecord):
    booking_id: str
    payment_intent_id: str
    original_amount: float
    final_amount: float
    platform_fee: float
    stylist_payout: float
    stripe_application_fee_amount: int
    currency: str
    status: str
    stylist_transfer_id: str | None
    captured_at: str | None
    succeeded_at: str | None
    payout_initiated_at: str | None
    refunded_amount: float
    refund_reason: str | None
    created_at: str
    updated_at: str


def to_minor_units(amount: Decimal) -> int:
    return int((amount * MINOR_UNITS).quantize(Decimal(1), rounding=ROUND_HALF_UP))


class PaymentsPipeline(EntityPipeline):
    entity = "payments"
    requires = ("booking",)

    def _booking_by_payment(self) -> dict[str, str]:
        by_payment: dict[str, str] = {}
        for row in self.ctx.dump.rows("booking"):
            payment_id = normalise_legacy_id(row.get("payment_id"))
            booking_id = normalise_legacy_id(row.get("id"))
            if payment_id is not None and booking_id is not None:
                by_payment.setdefault(payment_id, booking_id)
        return by_payment

    def _payment(self, payment: LegacyPayment, booking_id: str) -> PaymentRecord:
        processed_at = self.ctx.processed_at
        mapped = map_payment_status(payment.status)
        stylist_amount = payment.stylist_amount or Decimal(0)
        platform_amount = payment.platform_amount or Decimal(0)
        final_amount = stylist_amount + platform_amount
        updated_at = timestamp_or_default(payment.updated_at, processed_at)
        captured = mapped.status == PAYMENT_SUCCEEDED
        refunded = (payment.status or "").lower() == "refunded"
        return PaymentRecord(
            legacy_id=payment.id,
            booking_id=booking_id,
            payment_intent_id=payment.payment_intent_id or "",
            original_amount=float(final_amount),
            final_amount=float(final_amount),
            platform_fee=float(platform_amount),
            stylist_payout=float(stylist_amount),
            stripe_application_fee_amount=to_minor_units(platform_amount),
            currency=CURRENCY,
            status=mapped.status,
            stylist_transfer_id=payment.stylist_transfer_id,
            captured_at=updated_at if captured else None,
            succeeded_at=updated_at if captured else None,
            payout_initiated_at=updated_at if payment.stylist_transfer_id else None,
            refunded_amount=float(final_amount) if refunded else 0.0,
            refund_reason=mapped.reason if refunded else None,
            created_at=timestamp_or_default(payment.created_at, processed_at),
            updated_at=updated_at,
        )

    def transform(self) -> Extraction:
        extraction = Extraction()
        bookings = self._booking_by_payment()
        status_counts: dict[str, int] = {}

        for payment in self.typed_rows(extraction, "payment", LegacyPayment.from_row):
            legacy_booking_id = bookings.get(payment.id)
            if legacy_booking_id is None:
                self.skip(extraction, payment.id, "No booking references this payment")
                continue
            booking_id = self.ctx.mappings.get("booking", legacy_booking_id)
            if booking_id is None:
                self.skip(extraction, payment.id, f"Booking {legacy_booking_id} not migrated")
                continue
            if payment.payment_intent_id is None:
                self.skip(extraction, payment.id, "Missing payment_intent_id")
                continue
            record = self._payment(payment, booking_id)
            if self.add(extraction, "payments", record):
                status_counts[record.status] = status_counts.get(record.status, 0) + 1

        extraction.stats["status_distribution"] = status_counts
        return extraction

    def _row(self, record: PaymentRecord) -> dict:
        return {
            "id": record.legacy_id,
            "booking_id": record.booking_id,
            "payment_intent_id": record.payment_intent_id,
            "original_amount": record.original_amount,
            "discount_amount": 0,
            "final_amount": record.final_amount,
            "platform_fee": record.platform_fee,
            "stylist_payout": record.stylist_payout,
            "affiliate_commission": 0,
            "currency": record.currency,
            "stripe_application_fee_amount": record.stripe_application_fee_amount,
            "stylist_transfer_id": record.stylist_transfer_id,
            "status": record.status,
            "captured_at": record.captured_at,
            "succeeded_at": record.succeeded_at,
            "payout_initiated_at": record.payout_initiated_at,
            "refunded_amount": record.refunded_amount,
            "refund_reason": record.refund_reason,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
        }

    def write_steps(self) -> list[WriteStep]:
        return [
            WriteStep(
                collection="payments",
                table="payments",
                record_type=PaymentRecord,
                natural_key=("payment_intent_id",),
                to_row=self._row,
                mapping_keys=lambda record: [("payment", record.legacy_id)],
                mapping_entities=("payment",),
                parent_refs=(ParentRef("booking_id", "bookings"),),
                sample_fields=("final_amount", "platform_fee", "status", "booking_id"),
            )
        ]
