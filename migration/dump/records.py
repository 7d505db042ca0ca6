"""Typed source records built from raw dump rows."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Mapping

from migration.common.coercion import (
    clean_str,
    optional_decimal,
    optional_int,
    require,
    required_decimal,
    required_int,
    to_bool,
)
from migration.common.ids import normalise_legacy_id

Row = Mapping[str, "str | None"]


def _ref(row: Row, column: str) -> str | None:
    return normalise_legacy_id(row.get(column))


def _id(row: Row, column: str = "id") -> str:
    return require(row, column).lower()


@dataclass(frozen=True)
class LegacyUser:
    id: str
    email: str | None
    name: str | None
    phone_number: str | None
    bankid_verified: bool
    stripe_customer_id: str | None
    sms_enabled: bool
    email_enabled: bool
    default_address_id: str | None
    last_login_at: str | None
    created_at: str | None
    updated_at: str | None
    deleted_at: str | None

    @property
    def normalised_email(self) -> str | None:
        if self.email is None:
            return None
        return self.email.strip().lower() or None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Buyer(LegacyUser):
    @classmethod
    def from_row(cls, row: Row) -> "Buyer":
        return cls(
            id=_id(row),
            email=clean_str(row.get("email")),
            name=clean_str(row.get("name")),
            phone_number=clean_str(row.get("phone_number")),
            bankid_verified=to_bool(row.get("bankid_verified")),
            stripe_customer_id=clean_str(row.get("stripe_customer_id")),
            sms_enabled=to_bool(row.get("sms_enabled")),
            email_enabled=to_bool(row.get("email_enabled")),
            default_address_id=_ref(row, "default_address_id"),
            last_login_at=row.get("last_login_at"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            deleted_at=row.get("deleted_at"),
        )


@dataclass(frozen=True)
class Stylist(LegacyUser):
    bio: str | None = None
    can_travel: bool = False
    has_own_place: bool = False
    travel_distance: int | None = None
    instagram_profile: str | None = None
    facebook_profile: str | None = None
    twitter_profile: str | None = None
    stripe_account_id: str | None = None

    @property
    def has_business_data(self) -> bool:
        return bool(
            self.bio
            or self.instagram_profile
            or self.facebook_profile
            or self.twitter_profile
            or self.stripe_account_id
            or self.can_travel
        )

    @classmethod
    def from_row(cls, row: Row) -> "Stylist":
        return cls(
            id=_id(row),
            email=clean_str(row.get("email")),
            name=clean_str(row.get("name")),
            phone_number=clean_str(row.get("phone_number")),
            bankid_verified=to_bool(row.get("bankid_verified")),
            stripe_customer_id=None,
            sms_enabled=to_bool(row.get("sms_enabled")),
            email_enabled=to_bool(row.get("email_enabled")),
            default_address_id=_ref(row, "default_address_id"),
            last_login_at=row.get("last_login_at"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            deleted_at=row.get("deleted_at"),
            bio=clean_str(row.get("bio")),
            can_travel=to_bool(row.get("can_travel")),
            has_own_place=to_bool(row.get("has_own_place")),
            travel_distance=optional_int(row.get("travel_distance")),
            instagram_profile=clean_str(row.get("instagram_profile")),
            facebook_profile=clean_str(row.get("facebook_profile")),
            twitter_profile=clean_str(row.get("twitter_profile")),
            stripe_account_id=clean_str(row.get("stripe_account_id")),
        )


@dataclass(frozen=True)
class LegacyAddress:
    id: str
    buyer_id: str | None
    stylist_id: str | None
    salon_id: str | None
    street_name: str | None
    street_no: str | None
    formatted_address: str | None
    city: str | None
    zipcode: str | None
    country: str | None
    tag: str | None
    coordinates: str | None
    created_at: str | None
    updated_at: str | None
    deleted_at: str | None

    @classmethod
    def from_row(cls, row: Row) -> "LegacyAddress":
        return cls(
            id=_id(row),
            buyer_id=_ref(row, "buyer_id"),
            stylist_id=_ref(row, "stylist_id"),
            salon_id=_ref(row, "salon_id"),
            street_name=clean_str(row.get("street_name")),
            street_no=clean_str(row.get("street_no")),
            formatted_address=clean_str(row.get("formatted_address")),
            # Empty city and zipcode are kept as legacy data.
            city=row.get("city"),
            zipcode=row.get("zipcode"),
            country=clean_str(row.get("country")),
            tag=clean_str(row.get("tag")),
            coordinates=row.get("coordinates") if row.get("coordinates") is not None else row.get("location"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            deleted_at=row.get("deleted_at"),
        )


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    description: str | None
    created_at: str | None
    updated_at: str | None

    @classmethod
    def from_row(cls, row: Row) -> "Category":
        return cls(
            id=_id(row),
            name=require(row, "name"),
            description=clean_str(row.get("description")),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


@dataclass(frozen=True)
class Subcategory:
    id: str
    name: str
    description: str | None
    category_id: str
    created_at: str | None
    updated_at: str | None

    @classmethod
    def from_row(cls, row: Row) -> "Subcategory":
        return cls(
            id=_id(row),
            name=require(row, "name"),
            description=clean_str(row.get("description")),
            category_id=_id(row, "category_id"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


@dataclass(frozen=True)
class LegacyService:
    id: str
    stylist_id: str
    subcategory_id: str | None
    duration: int
    amount: Decimal
    currency: str | None
    is_published: bool
    description: str | None
    created_at: str | None
    updated_at: str | None
    deleted_at: str | None

    @classmethod
    def from_row(cls, row: Row) -> "LegacyService":
        return cls(
            id=_id(row),
            stylist_id=_id(row, "stylist_id"),
            subcategory_id=_ref(row, "subcategory_id"),
            duration=required_int(row.get("duration"), "duration"),
            amount=required_decimal(row.get("amount"), "amount"),
            currency=clean_str(row.get("currency")),
            is_published=to_bool(row.get("is_published")),
            description=row.get("description"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            deleted_at=row.get("deleted_at"),
        )


@dataclass(frozen=True)
class BookingServiceLink:
    booking_id: str
    service_id: str

    @classmethod
    def from_row(cls, row: Row) -> "BookingServiceLink":
        booking_column = "booking_id" if "booking_id" in row else "bookingId"
        service_column = "service_id" if "service_id" in row else "serviceId"
        return cls(booking_id=_id(row, booking_column), service_id=_id(row, service_column))


@dataclass(frozen=True)
class LegacyBooking:
    id: str
    buyer_id: str
    stylist_id: str
    date_time: str | None
    amount: Decimal | None
    status: str | None
    additional_notes: str | None
    address_id: str | None
    payment_id: str | None
    service: str | None
    created_at: str | None
    updated_at: str | None

    @classmethod
    def from_row(cls, row: Row) -> "LegacyBooking":
        return cls(
            id=_id(row),
            buyer_id=_id(row, "buyer_id"),
            stylist_id=_id(row, "stylist_id"),
            date_time=row.get("date_time"),
            amount=optional_decimal(row.get("amount")),
            status=clean_str(row.get("status")),
            additional_notes=clean_str(row.get("additional_notes")),
            address_id=_ref(row, "address_id"),
            payment_id=_ref(row, "payment_id"),
            service=row.get("service"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


@dataclass(frozen=True)
class LegacyPayment:
    id: str
    payment_intent_id: str | None
    stylist_amount: Decimal | None
    platform_amount: Decimal | None
    stylist_transfer_id: str | None
    status: str | None
    created_at: str | None
    updated_at: str | None

    @classmethod
    def from_row(cls, row: Row) -> "LegacyPayment":
        return cls(
            id=_id(row),
            payment_intent_id=clean_str(row.get("payment_intent_id")),
            stylist_amount=optional_decimal(row.get("stylist_amount")),
            platform_amount=optional_decimal(row.get("platform_amount")),
            stylist_transfer_id=clean_str(row.get("stylist_transfer_id")),
            status=clean_str(row.get("status")),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


@dataclass(frozen=True)
class LegacyChat:
    id: str
    booking_id: str
    is_active: bool
    created_at: str | None
    updated_at: str | None

    @classmethod
    def from_row(cls, row: Row) -> "LegacyChat":
        return cls(
            id=_id(row),
            booking_id=_id(row, "booking_id"),
            is_active=to_bool(row.get("is_active")),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


@dataclass(frozen=True)
class LegacyMessage:
    id: str
    chat_id: str
    message: str | None
    is_from: str | None
    is_unread: bool
    is_image: bool
    created_at: str | None

    @classmethod
    def from_row(cls, row: Row) -> "LegacyMessage":
        return cls(
            id=_id(row),
            chat_id=_id(row, "chat_id"),
            message=row.get("message"),
            is_from=clean_str(row.get("is_from")),
            is_unread=to_bool(row.get("is_unread")),
            is_image=to_bool(row.get("is_image")),
            created_at=row.get("created_at"),
        )


@dataclass(frozen=True)
class Rating:
    id: str
    buyer_id: str
    stylist_id: str
    booking_id: str
    rating: int
    review: str | None
    created_at: str | None

    @classmethod
    def from_row(cls, row: Row) -> "Rating":
        return cls(
            id=_id(row),
            buyer_id=_id(row, "buyer_id"),
            stylist_id=_id(row, "stylist_id"),
            booking_id=_id(row, "booking_id"),
            rating=required_int(row.get("rating"), "rating"),
            review=row.get("review"),
            created_at=row.get("created_at"),
        )
