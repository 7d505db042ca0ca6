from __future__ import annotations

import threading

import pytest

from migration.common.errors import StageError
from migration.common.http import HttpClient, RetryConfig
from migration.enrich.geocoder import EnrichmentRequest, Geocoder, candidate_from_feature

CONFIG = {
    "enabled": True,
    "endpoint": "https://geo.test/places",
    "token_env": "MAPBOX_TOKEN",
    "country": "no",
    "language": "no",
    "types": "address",
    "limit": 1,
    "batch_size": 2,
    "batch_delay_ms": 0,
}

OSLO_FEATURE = {
    "center": [10.7461, 59.9127],
    "text": "Karl Johans gate",
    "address": "1",
    "context": [
        {"id": "postcode.1", "text": "0154"},
        {"id": "place.1", "text": "Oslo"},
        {"id": "country.1", "text": "Norway", "short_code": "no"},
    ],
}


class FakeResponse:
    def __init__(self, status_code: int, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        return self._payload


def _request(legacy_id: str = "a-1", **overrides) -> EnrichmentRequest:
    fields = {
        "legacy_id": legacy_id,
        "street_address": "Karl Johans gate 1",
        "city": "Oslo",
        "postal_code": "0154",
        "country": "Norway",
        "coordinates": None,
    }
    fields.update(overrides)
    return EnrichmentRequest(**fields)


def _geocoder(monkeypatch, response: FakeResponse, captured: list | None = None) -> Geocoder:
    client = HttpClient(retry=RetryConfig(max_attempts=1), geocoder_rate_per_sec=1000)

    def _fake(**kwargs):
        if captured is not None:
            captured.append(kwargs)
        return response

    monkeypatch.setattr(client.session, "request", _fake)
    return Geocoder(CONFIG, token="tok", client=client)


def test_candidate_from_feature_reads_context():
    candidate = candidate_from_feature(OSLO_FEATURE)

    assert candidate.country_code == "NO"
    assert candidate.postcode == "0154"
    assert candidate.text == "Karl Johans gate 1"
    assert candidate_from_feature({"text": "no center"}) is None


def test_query_joins_address_parts():
    assert _request().query() == "Karl Johans gate 1, 0154 Oslo, Norway"


def test_enhance_high_confidence_from_geocoder(monkeypatch):
    captured: list = []
    geocoder = _geocoder(monkeypatch, FakeResponse(200, {"features": [OSLO_FEATURE]}), captured)

    result = geocoder.enhance(_request())

    assert result.confidence == "high"
    assert result.country_code == "NO"
    assert result.location_wkt == "POINT(10.7461 59.9127)"
    assert captured[0]["params"]["access_token"] == "tok"
    assert captured[0]["params"]["autocomplete"] == "false"
    assert captured[0]["url"].startswith("https://geo.test/places/Karl%20Johans%20gate%201")


def test_enhance_without_country_context_is_medium(monkeypatch):
    feature = {"center": [10.0, 60.0], "text": "Somewhere"}
    geocoder = _geocoder(monkeypatch, FakeResponse(200, {"features": [feature]}))

    assert geocoder.enhance(_request()).confidence == "medium"


def test_enhance_outside_bbox_is_low(monkeypatch):
    feature = {"center": [-74.0, 40.7], "text": "New York"}
    geocoder = _geocoder(monkeypatch, FakeResponse(200, {"features": [feature]}))

    result = geocoder.enhance(_request())
    assert result.confidence == "low"
    assert result.location_wkt is None


def test_enhance_http_failure_is_low_and_counted(monkeypatch):
    geocoder = _geocoder(monkeypatch, FakeResponse(500))

    result = geocoder.enhance(_request())

    assert result.confidence == "low"
    assert result.error is not None
    assert geocoder.stats()["failed_geocodes"] == 1


def test_existing_point_skips_geocoding(monkeypatch):
    captured: list = []
    geocoder = _geocoder(monkeypatch, FakeResponse(200, {"features": []}), captured)

    result = geocoder.enhance(_request(coordinates="POINT(5.32 60.39)"))

    assert result.confidence == "high"
    assert result.source == "point_text"
    assert captured == []


def test_absent_token_gives_none_confidence(monkeypatch):
    monkeypatch.delenv("MAPBOX_TOKEN", raising=False)
    geocoder = Geocoder.from_config(CONFIG)

    assert geocoder.available is False
    assert geocoder.enhance(_request()).confidence == "none"


def test_ungeocodable_request_is_low(monkeypatch):
    geocoder = _geocoder(monkeypatch, FakeResponse(200, {"features": [OSLO_FEATURE]}))

    result = geocoder.enhance(_request(street_address=None, postal_code=None))
    assert result.confidence == "low"


def test_enhance_many_keys_results_by_legacy_id(monkeypatch):
    geocoder = _geocoder(monkeypatch, FakeResponse(200, {"features": [OSLO_FEATURE]}))

    results = geocoder.enhance_many([_request("a-1"), _request("a-2"), _request("a-3")])

    assert set(results) == {"a-1", "a-2", "a-3"}
    assert geocoder.stats()["request_count"] == 3


def test_enhance_many_stops_at_batch_boundary_when_cancelled(monkeypatch):
    captured: list = []
    geocoder = _geocoder(monkeypatch, FakeResponse(200, {"features": [OSLO_FEATURE]}), captured)
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(StageError, match="0 of 3"):
        geocoder.enhance_many([_request("a-1"), _request("a-2"), _request("a-3")], cancel_event=cancel)
    assert captured == []


def test_disabled_geocoder_is_unavailable_even_with_token():
    geocoder = Geocoder({**CONFIG, "enabled": False}, token="tok")

    assert geocoder.client is None
    assert geocoder.available is False
    assert geocoder.search("Karl Johans gate 1") == []
