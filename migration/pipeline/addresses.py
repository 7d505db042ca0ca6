"""Address migration with polymorphic ownership and location enrichment."""

from __future__ import annotations

from dataclasses import dataclass

from migration.common.coercion import timestamp_or_default
from migration.common.constants import COUNTRY_CODES
from migration.common.ids import normalise_legacy_id
from migration.dump.records import LegacyAddress
from migration.enrich.coordinates import parse_legacy_point
from migration.enrich.geocoder import CONFIDENCE_HIGH, CONFIDENCE_NONE, EnrichmentRequest, EnrichmentResult
from migration.pipeline.base import EntityPipeline, Extraction, ParentRef, TargetRecord, WriteStep
from migration.pipeline.ownership import ResolvedOwner, resolve_owner


@dataclass(frozen=True)
class AddressRecord(TargetRecord):
    user_id: str
    owner_kind: str
    street_address: str | None
    city: str | None
    postal_code: str | None
    country: str
    country_code: str | None
    nickname: str | None
    is_primary: bool
    created_at: str
    updated_at: str
    location: str | None = None
    geocoding_confidence: str = CONFIDENCE_NONE


def derive_country_code(country: str | None) -> str | None:
    if not country:
        return None
    return COUNTRY_CODES.get(country.strip().lower())


def street_address_of(address: LegacyAddress) -> str | None:
    street = " ".join(part for part in (address.street_name, address.street_no) if part)
    return street or address.formatted_address


class AddressesPipeline(EntityPipeline):
    entity = "addresses"
    requires = ("buyer", "stylist")

    def _default_address_ids(self) -> set[str]:
        defaults: set[str] = set()
        for table in ("buyer", "stylist"):
            for row in self.ctx.dump.rows(table):
                address_id = normalise_legacy_id(row.get("default_address_id"))
                if address_id is not None:
                    defaults.add(f"{table}:{(row.get('id') or '').lower()}:{address_id}")
        return defaults

    def _enrich(self, requests: list[EnrichmentRequest]) -> dict[str, EnrichmentResult]:
        geocoder = self.ctx.geocoder
        if geocoder is not None and self.current_phase == "extract":
            return geocoder.enhance_many(requests, cancel_event=self.ctx.cancel_event)
        bbox = self.ctx.config.addresses["bbox_wgs84"]
        results = {}
        for request in requests:
            point = parse_legacy_point(request.coordinates, bbox)
            if point is None:
                results[request.legacy_id] = EnrichmentResult(legacy_id=request.legacy_id, confidence=CONFIDENCE_NONE)
            else:
                results[request.legacy_id] = EnrichmentResult(
                    legacy_id=request.legacy_id,
                    confidence=CONFIDENCE_HIGH,
                    lon=point.lon,
                    lat=point.lat,
                    source=point.source_format,
                )
        return results

    def transform(self) -> Extraction:
        extraction = Extraction()
        default_country = self.ctx.config.addresses["default_country"]
        defaults = self._default_address_ids()

        owned: list[tuple[LegacyAddress, ResolvedOwner]] = []
        for address in self.typed_rows(extraction, "address", LegacyAddress.from_row):
            if address.salon_id is not None:
                extraction.exclude("salon_address")
                continue
            owner = resolve_owner(address.buyer_id, address.stylist_id, self.ctx.mappings)
            if not isinstance(owner, ResolvedOwner):
                self.skip(extraction, address.id, owner.reason, record=address)
                continue
            owned.append((address, owner))

        requests = [
            EnrichmentRequest(
                legacy_id=address.id,
                street_address=street_address_of(address),
                city=address.city,
                postal_code=address.zipcode,
                country=address.country or default_country,
                coordinates=address.coordinates,
            )
            for address, _owner in owned
        ]
        enriched = self._enrich(requests)

        confidence_counts: dict[str, int] = {}
        processed_at = self.ctx.processed_at
        for address, owner in owned:
            result = enriched[address.id]
            country = address.country or default_country
            confidence_counts[result.confidence] = confidence_counts.get(result.confidence, 0) + 1
            extraction.add(
                "addresses",
                AddressRecord(
                    legacy_id=address.id,
                    user_id=owner.resolved_id,
                    owner_kind=owner.kind,
                    street_address=street_address_of(address),
                    city=address.city,
                    postal_code=address.zipcode,
                    country=country,
                    country_code=result.country_code or derive_country_code(country),
                    nickname=address.tag,
                    is_primary=f"{owner.kind}:{owner.legacy_id}:{address.id}" in defaults,
                    created_at=timestamp_or_default(address.created_at, processed_at),
                    updated_at=timestamp_or_default(address.updated_at, processed_at),
                    location=result.location_wkt,
                    geocoding_confidence=result.confidence,
                ),
            )
        extraction.stats["geocoding_confidence"] = confidence_counts
        if self.ctx.geocoder is not None and self.current_phase == "extract":
            extraction.stats["geocoder"] = self.ctx.geocoder.stats()
        return extraction

    def _row(self, record: AddressRecord) -> dict:
        return {
            "id": record.legacy_id,
            "user_id": record.user_id,
            "street_address": record.street_address,
            "city": record.city,
            "postal_code": record.postal_code,
            "country": record.country,
            "country_code": record.country_code,
            "nickname": record.nickname,
            "entry_instructions": None,
            "location": record.location,
            "is_primary": record.is_primary,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
        }

    def write_steps(self) -> list[WriteStep]:
        return [
            WriteStep(
                collection="addresses",
                table="addresses",
                record_type=AddressRecord,
                natural_key=("id",),
                to_row=self._row,
                mapping_keys=lambda record: [("address", record.legacy_id)],
                mapping_entities=("address",),
                parent_refs=(ParentRef("user_id", "profiles"),),
                sample_fields=("user_id", "street_address", "city", "postal_code", "is_primary"),
            )
        ]
