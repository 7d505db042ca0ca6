from __future__ import annotations

import pytest

from migration.common.errors import ConfigError, DestinationError
from migration.common.http import HttpClient, RetryConfig
from migration.store.destination import MemoryDestination, RestDestination, build_destination


class FakeResponse:
    def __init__(self, status_code: int, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        return self._payload


def test_memory_destination_assigns_ids_and_finds_by_natural_key():
    destination = MemoryDestination()

    new_id = destination.insert("profiles", {"email": "kari@example.no"})
    kept_id = destination.insert("addresses", {"id": "a-1", "city": "Oslo"})

    assert destination.find_id("profiles", {"email": "kari@example.no"}) == new_id
    assert destination.find_id("profiles", {"email": "other@example.no"}) is None
    assert kept_id == "a-1"
    assert destination.count("addresses") == 1


def test_memory_destination_rejects_duplicate_id():
    destination = MemoryDestination()
    destination.insert("addresses", {"id": "a-1"})

    with pytest.raises(DestinationError):
        destination.insert("addresses", {"id": "a-1"})


def test_memory_destination_select_projects_columns():
    destination = MemoryDestination()
    destination.insert("services", {"id": "sv-1", "title": "Haircut", "price": 500.0})

    assert destination.select("services", ["id"]) == [{"id": "sv-1"}]
    destination.delete("services", "sv-1")
    assert destination.select("services") == []


def test_rest_destination_builds_postgrest_filters(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1), destination_rate_per_sec=1000)
    captured = []

    def _request(**kwargs):
        captured.append(kwargs)
        return FakeResponse(200, [{"id": "p-1"}])

    monkeypatch.setattr(client.session, "request", _request)
    destination = RestDestination("https://db.test/", "secret", client)

    found = destination.find_id("profiles", {"email": "kari@example.no", "deleted_at": None, "active": True})

    assert found == "p-1"
    request = captured[0]
    assert request["url"] == "https://db.test/rest/v1/profiles"
    assert request["params"]["email"] == "eq.kari@example.no"
    assert request["params"]["deleted_at"] == "is.null"
    assert request["params"]["active"] == "is.true"
    assert request["headers"]["apikey"] == "secret"


def test_rest_destination_insert_requests_representation(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1), destination_rate_per_sec=1000)
    captured = []

    def _request(**kwargs):
        captured.append(kwargs)
        return FakeResponse(201, [{"id": "new-1"}])

    monkeypatch.setattr(client.session, "request", _request)
    destination = RestDestination("https://db.test", "secret", client)

    assert destination.insert("bookings", {"id": "bk-1"}) == "new-1"
    assert captured[0]["headers"]["Prefer"] == "return=representation"


def test_rest_destination_http_failure_becomes_destination_error(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1), destination_rate_per_sec=1000)
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(409, {"message": "conflict"}))
    destination = RestDestination("https://db.test", "secret", client)

    with pytest.raises(DestinationError):
        destination.insert("bookings", {"id": "bk-1"})


def test_rest_destination_select_paginates(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1), destination_rate_per_sec=1000)
    pages = [[{"id": "1"}, {"id": "2"}], [{"id": "3"}]]
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, pages.pop(0)))
    destination = RestDestination("https://db.test", "secret", client, page_size=2)

    assert [row["id"] for row in destination.select("reviews")] == ["1", "2", "3"]


def test_build_destination_rest_requires_env(monkeypatch):
    monkeypatch.delenv("TEST_DB_URL", raising=False)
    monkeypatch.delenv("TEST_DB_KEY", raising=False)
    cfg = {"kind": "rest", "url_env": "TEST_DB_URL", "key_env": "TEST_DB_KEY"}

    with pytest.raises(ConfigError):
        build_destination(cfg)

    monkeypatch.setenv("TEST_DB_URL", "https://db.test")
    monkeypatch.setenv("TEST_DB_KEY", "secret")
    assert isinstance(build_destination(cfg), RestDestination)
    assert isinstance(build_destination({"kind": "memory"}), MemoryDestination)
