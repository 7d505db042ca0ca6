from migration.pipeline.status import (
    BOOKING_STATUS_MAP,
    PAYMENT_STATUS_MAP,
    map_booking_status,
    map_payment_status,
)

BOOKING_TARGETS = {"pending", "confirmed", "cancelled", "completed"}
PAYMENT_TARGETS = {"pending", "requires_capture", "succeeded", "cancelled"}


def test_booking_status_table_is_total():
    for code in [*BOOKING_STATUS_MAP, "something_new", "", None]:
        assert map_booking_status(code).status in BOOKING_TARGETS


def test_payment_status_table_is_total():
    for code in [*PAYMENT_STATUS_MAP, "disputed", None]:
        assert map_payment_status(code).status in PAYMENT_TARGETS


def test_cancelled_variants_carry_reasons():
    rejected = map_booking_status("rejected")
    assert rejected.status == "cancelled"
    assert rejected.is_cancelled is True
    assert rejected.reason == "Rejected by stylist"
    assert map_booking_status("expired").reason == "Booking expired"


def test_unknown_codes_are_flagged_and_case_insensitive():
    assert map_booking_status("COMPLETED").status == "completed"
    assert map_booking_status("COMPLETED").known is True
    assert map_booking_status("mystery").known is False


def test_refunded_payment_maps_to_succeeded_with_reason():
    refunded = map_payment_status("refunded")
    assert refunded.status == "succeeded"
    assert refunded.reason == "Customer requested refund"
    assert map_payment_status("needs_capture").status == "requires_capture"
