"""Destination store interface with in-memory and PostgREST implementations."""

from __future__ import annotations

import os
import threading
import uuid
from typing import Any, Protocol

from migration.common.errors import ConfigError, DestinationError
from migration.common.http import HttpClient, HttpRequestError, RetryConfig, TimeoutConfig

NaturalKey = dict[str, Any]


class Destination(Protocol):
    def find_id(self, table: str, natural_key: NaturalKey) -> str | None: ...

    def insert(self, table: str, row: dict) -> str: ...

    def select(self, table: str, columns: list[str] | None = None) -> list[dict]: ...

    def count(self, table: str) -> int: ...


def _matches(row: dict, natural_key: NaturalKey) -> bool:
    return all(row.get(column) == value for column, value in natural_key.items())


class MemoryDestination:
    """Dict-backed destination used for dry runs and tests."""

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, dict]] = {}
        self.lock = threading.Lock()

    def find_id(self, table: str, natural_key: NaturalKey) -> str | None:
        with self.lock:
            for row_id, row in self.tables.get(table, {}).items():
                if _matches(row, natural_key):
                    return row_id
        return None

    def insert(self, table: str, row: dict) -> str:
        with self.lock:
            rows = self.tables.setdefault(table, {})
            row_id = str(row.get("id") or uuid.uuid4())
            if row_id in rows:
                raise DestinationError(f"duplicate key value for {table}.id: {row_id}")
            rows[row_id] = {**row, "id": row_id}
            return row_id

    def select(self, table: str, columns: list[str] | None = None) -> list[dict]:
        with self.lock:
            rows = [dict(row) for row in self.tables.get(table, {}).values()]
        if columns is None:
            return rows
        return [{column: row.get(column) for column in columns} for row in rows]

    def count(self, table: str) -> int:
        with self.lock:
            return len(self.tables.get(table, {}))

    def delete(self, table: str, row_id: str) -> None:
        with self.lock:
            self.tables.get(table, {}).pop(row_id, None)


def _filter_value(value: Any) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"is.{str(value).lower()}"
    return f"eq.{value}"


class RestDestination:
    """PostgREST-style table API (``/rest/v1/<table>``)."""

    def __init__(self, base_url: str, api_key: str, client: HttpClient, *, page_size: int = 1000) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.client = client
        self.page_size = page_size

    def _url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    def _auth_headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {"apikey": self.api_key, "Authorization": f"Bearer {self.api_key}"}
        if extra:
            headers.update(extra)
        return headers

    def find_id(self, table: str, natural_key: NaturalKey) -> str | None:
        params = {"select": "id", "limit": 1}
        for column, value in natural_key.items():
            params[column] = _filter_value(value)
        try:
            payload = self.client.get_json(
                self._url(table),
                source_type="destination",
                params=params,
                headers=self._auth_headers(),
            )
        except HttpRequestError as exc:
            raise DestinationError(f"lookup in {table} failed: {exc}") from exc
        if not payload:
            return None
        return str(payload[0]["id"])

    def insert(self, table: str, row: dict) -> str:
        try:
            payload = self.client.post_json(
                self._url(table),
                source_type="destination",
                body=row,
                headers=self._auth_headers({"Prefer": "return=representation"}),
            )
        except HttpRequestError as exc:
            raise DestinationError(f"insert into {table} failed: {exc}") from exc
        if not payload:
            raise DestinationError(f"insert into {table} returned no representation")
        return str(payload[0]["id"])

    def select(self, table: str, columns: list[str] | None = None) -> list[dict]:
        rows: list[dict] = []
        offset = 0
        while True:
            params = {
                "select": ",".join(columns) if columns else "*",
                "limit": self.page_size,
                "offset": offset,
                "order": "id",
            }
            try:
                page = self.client.get_json(
                    self._url(table),
                    source_type="destination",
                    params=params,
                    headers=self._auth_headers(),
                )
            except HttpRequestError as exc:
                raise DestinationError(f"select from {table} failed: {exc}") from exc
            page = page or []
            rows.extend(page)
            if len(page) < self.page_size:
                return rows
            offset += self.page_size

    def count(self, table: str) -> int:
        return len(self.select(table, ["id"]))


def build_destination(destination_config: dict, client: HttpClient | None = None) -> Destination:
    kind = destination_config["kind"]
    if kind == "memory":
        return MemoryDestination()
    if kind == "rest":
        base_url = os.environ.get(destination_config["url_env"])
        api_key = os.environ.get(destination_config["key_env"])
        if not base_url or not api_key:
            raise ConfigError(
                f"destination.kind=rest needs {destination_config['url_env']} and "
                f"{destination_config['key_env']} in the environment"
            )
        if client is None:
            client = HttpClient(
                timeout=TimeoutConfig(read=float(destination_config.get("timeout_seconds", 30))),
                retry=RetryConfig(max_attempts=int(destination_config.get("max_attempts", 1))),
                destination_rate_per_sec=float(destination_config.get("rate_per_sec", 50)),
            )
        return RestDestination(base_url, api_key, client)
    raise ConfigError(f"Unknown destination kind: {kind}")
