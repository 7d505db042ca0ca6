"""Legacy status code remapping; every table is total with an explicit default."""

from __future__ import annotations

from dataclasses import dataclass

BOOKING_PENDING = "pending"
BOOKING_CONFIRMED = "confirmed"
BOOKING_CANCELLED = "cancelled"
BOOKING_COMPLETED = "completed"

PAYMENT_PENDING = "pending"
PAYMENT_REQUIRES_CAPTURE = "requires_capture"
PAYMENT_SUCCEEDED = "succeeded"
PAYMENT_CANCELLED = "cancelled"


@dataclass(frozen=True)
class StatusMapping:
    status: str
    reason: str | None = None
    known: bool = True

    @property
    def is_cancelled(self) -> bool:
        return self.status == BOOKING_CANCELLED


BOOKING_STATUS_MAP = {
    "payment_pending": StatusMapping(BOOKING_PENDING),
    "needs_confirmation": StatusMapping(BOOKING_PENDING),
    "pending": StatusMapping(BOOKING_PENDING),
    "confirmed": StatusMapping(BOOKING_CONFIRMED),
    "completed": StatusMapping(BOOKING_COMPLETED),
    "cancelled": StatusMapping(BOOKING_CANCELLED),
    "rejected": StatusMapping(BOOKING_CANCELLED, "Rejected by stylist"),
    "system_cancel": StatusMapping(BOOKING_CANCELLED, "System cancellation"),
    "expired": StatusMapping(BOOKING_CANCELLED, "Booking expired"),
    "failed": StatusMapping(BOOKING_CANCELLED, "Payment failed"),
}
BOOKING_DEFAULT = StatusMapping(BOOKING_PENDING, known=False)

PAYMENT_STATUS_MAP = {
    "pending": StatusMapping(PAYMENT_PENDING),
    "needs_capture": StatusMapping(PAYMENT_REQUIRES_CAPTURE),
    "captured": StatusMapping(PAYMENT_SUCCEEDED),
    "refunded": StatusMapping(PAYMENT_SUCCEEDED, "Customer requested refund"),
    "cancelled": StatusMapping(PAYMENT_CANCELLED),
    "failed": StatusMapping(PAYMENT_CANCELLED),
}
PAYMENT_DEFAULT = StatusMapping(PAYMENT_PENDING, known=False)


def _lookup(table: dict[str, StatusMapping], default: StatusMapping, code: str | None) -> StatusMapping:
    if code is None:
        return default
    return table.get(code.strip().lower(), default)


def map_booking_status(code: str | None) -> StatusMapping:
    return _lookup(BOOKING_STATUS_MAP, BOOKING_DEFAULT, code)


def map_payment_status(code: str | None) -> StatusMapping:
    return _lookup(PAYMENT_STATUS_MAP, PAYMENT_DEFAULT, code)
