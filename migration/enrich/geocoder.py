"""Forward geocoding of legacy addresses that lack a usable location."""

from __future__ import annotations

import os
import threading
from dataclasses import asdict, dataclass
from urllib.parse import quote

from migration.common.batching import process_in_batches
from migration.common.errors import StageError
from migration.common.http import HttpClient, HttpRequestError, RetryConfig, TimeoutConfig
from migration.common.logging import RunLog
from migration.enrich.coordinates import Point, parse_legacy_point, within_bbox

CONFIDENCE_HIGH = "high"
CONFIDENCE_MEDIUM = "medium"
CONFIDENCE_LOW = "low"
CONFIDENCE_NONE = "none"
MIN_QUERY_LENGTH = 3


@dataclass(frozen=True)
class GeocodeCandidate:
    text: str
    lon: float
    lat: float
    postcode: str | None = None
    place: str | None = None
    country: str | None = None
    country_code: str | None = None


@dataclass(frozen=True)
class EnrichmentRequest:
    legacy_id: str
    street_address: str | None
    city: str | None
    postal_code: str | None
    country: str | None
    coordinates: str | None = None

    @property
    def geocodable(self) -> bool:
        return bool(self.street_address or (self.city and self.postal_code))

    def query(self) -> str:
        locality = " ".join(part for part in (self.postal_code, self.city) if part)
        return ", ".join(part for part in (self.street_address, locality, self.country) if part)


@dataclass(frozen=True)
class EnrichmentResult:
    legacy_id: str
    confidence: str
    lon: float | None = None
    lat: float | None = None
    country_code: str | None = None
    source: str | None = None
    error: str | None = None

    @property
    def location_wkt(self) -> str | None:
        if self.lon is None or self.lat is None:
            return None
        return f"POINT({self.lon} {self.lat})"

    def to_dict(self) -> dict:
        return asdict(self)


def candidate_from_feature(feature: dict) -> GeocodeCandidate | None:
    center = feature.get("center") or (feature.get("geometry") or {}).get("coordinates")
    if not center or len(center) < 2:
        return None
    postcode = place = country = country_code = None
    for item in feature.get("context") or []:
        item_id = item.get("id", "")
        if item_id.startswith("postcode"):
            postcode = item.get("text")
        elif item_id.startswith("place"):
            place = item.get("text")
        elif item_id.startswith("country"):
            country = item.get("text")
            short_code = item.get("short_code")
            country_code = short_code.upper() if short_code else None
    text = feature.get("text") or ""
    if feature.get("address"):
        text = f"{text} {feature['address']}"
    return GeocodeCandidate(
        text=text or feature.get("place_name", ""),
        lon=float(center[0]),
        lat=float(center[1]),
        postcode=postcode,
        place=place,
        country=country,
        country_code=country_code,
    )


class Geocoder:
    def __init__(
        self,
        enrichment_config: dict,
        *,
        token: str | None,
        client: HttpClient | None = None,
        bbox: dict | None = None,
        log: RunLog | None = None,
    ) -> None:
        self.config = enrichment_config
        self.token = token
        self.bbox = bbox
        self.log = log
        self.client = client
        if self.client is None and enrichment_config.get("enabled", True) and token:
            self.client = HttpClient(
                timeout=TimeoutConfig(read=float(enrichment_config.get("timeout_seconds", 20))),
                retry=RetryConfig(max_attempts=int(enrichment_config.get("max_attempts", 1))),
                geocoder_rate_per_sec=float(enrichment_config.get("rate_per_sec", 10)),
            )
        self.request_count = 0
        self.failed_queries: list[str] = []
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        enrichment_config: dict,
        *,
        client: HttpClient | None = None,
        bbox: dict | None = None,
        log: RunLog | None = None,
    ) -> "Geocoder":
        token = os.environ.get(enrichment_config["token_env"]) or None
        if log is not None and enrichment_config.get("enabled") and token is None:
            log.warning(
                f"{enrichment_config['token_env']} not set; addresses without coordinates get confidence 'none'",
                event="ENRICHMENT_DISABLED",
            )
        return cls(enrichment_config, token=token, client=client, bbox=bbox, log=log)

    @property
    def available(self) -> bool:
        return bool(self.config.get("enabled", True) and self.token and self.client is not None)

    def search(self, query: str) -> list[GeocodeCandidate]:
        """Raises HttpRequestError on transport or status failures."""
        if not self.available or len(query) < MIN_QUERY_LENGTH:
            return []
        url = f"{self.config['endpoint'].rstrip('/')}/{quote(query, safe='')}.json"
        params = {
            "access_token": self.token,
            "country": self.config.get("country", "no"),
            "types": self.config.get("types", "address,postcode,place"),
            "language": self.config.get("language", "no"),
            "limit": int(self.config.get("limit", 1)),
            "autocomplete": "false",
        }
        with self._lock:
            self.request_count += 1
        payload = self.client.get_json(url, source_type="geocoder", params=params)
        candidates = []
        for feature in (payload or {}).get("features", []):
            candidate = candidate_from_feature(feature)
            if candidate is not None:
                candidates.append(candidate)
        return candidates

    def enhance(self, request: EnrichmentRequest) -> EnrichmentResult:
        existing: Point | None = parse_legacy_point(request.coordinates, self.bbox)
        if existing is not None:
            return EnrichmentResult(
                legacy_id=request.legacy_id,
                confidence=CONFIDENCE_HIGH,
                lon=existing.lon,
                lat=existing.lat,
                source=existing.source_format,
            )
        if not self.available:
            return EnrichmentResult(legacy_id=request.legacy_id, confidence=CONFIDENCE_NONE)
        if not request.geocodable:
            return EnrichmentResult(legacy_id=request.legacy_id, confidence=CONFIDENCE_LOW)

        query = request.query()
        try:
            candidates = self.search(query)
        except HttpRequestError as exc:
            with self._lock:
                self.failed_queries.append(query)
            if self.log is not None:
                self.log.warning(
                    f"geocoding failed for address {request.legacy_id}: {exc}",
                    event="GEOCODE_FAILED",
                    legacy_id=request.legacy_id,
                    error_code=exc.error_code,
                )
            return EnrichmentResult(legacy_id=request.legacy_id, confidence=CONFIDENCE_LOW, error=str(exc))

        for candidate in candidates:
            if not within_bbox(candidate.lat, candidate.lon, self.bbox):
                continue
            return EnrichmentResult(
                legacy_id=request.legacy_id,
                confidence=CONFIDENCE_HIGH if candidate.country_code else CONFIDENCE_MEDIUM,
                lon=candidate.lon,
                lat=candidate.lat,
                country_code=candidate.country_code,
                source="geocoder",
            )
        return EnrichmentResult(legacy_id=request.legacy_id, confidence=CONFIDENCE_LOW)

    def enhance_many(
        self,
        requests: list[EnrichmentRequest],
        cancel_event: threading.Event | None = None,
    ) -> dict[str, EnrichmentResult]:
        """Enhance in bounded batches; raises StageError if cancelled before every batch ran."""
        batch_size = int(self.config.get("batch_size", 10))
        run = process_in_batches(
            requests,
            self.enhance,
            batch_size=batch_size,
            max_workers=batch_size,
            batch_delay_ms=int(self.config.get("batch_delay_ms", 100)) if self.available else 0,
            cancel_event=cancel_event,
        )
        if run.cancelled:
            raise StageError(
                f"geocoding cancelled after {len(run.outcomes)} of {len(requests)} addresses"
            )
        results: dict[str, EnrichmentResult] = {}
        for outcome in run.outcomes:
            if outcome.ok:
                results[outcome.item.legacy_id] = outcome.result
            else:
                results[outcome.item.legacy_id] = EnrichmentResult(
                    legacy_id=outcome.item.legacy_id,
                    confidence=CONFIDENCE_LOW,
                    error=str(outcome.error),
                )
        return results

    def stats(self) -> dict:
        return {
            "enabled": self.available,
            "request_count": self.request_count,
            "failed_geocodes": len(self.failed_queries),
        }

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
