"""JSON logging with stable schema."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from types import TracebackType
from typing import Any

from migration.common.constants import JSON_LOG_FIELDS
from migration.common.fs import ensure_dir
from migration.common.time_utils import utc_timestamp_iso


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": utc_timestamp_iso(),
            "level": record.levelname,
            "run_id": getattr(record, "run_id", None),
            "entity": getattr(record, "entity", None),
            "phase": getattr(record, "phase", None),
            "event": getattr(record, "event", None),
            "status": getattr(record, "status", None),
            "legacy_id": getattr(record, "legacy_id", None),
            "duration_ms": getattr(record, "duration_ms", None),
            "rows_in": getattr(record, "rows_in", None),
            "rows_out": getattr(record, "rows_out", None),
            "error_code": getattr(record, "error_code", None),
            "message": record.getMessage(),
        }
        for field in JSON_LOG_FIELDS:
            payload.setdefault(field, None)
        return json.dumps(payload, ensure_ascii=False)


class RunLog:
    """Per-run logging context passed explicitly to every component.

    Writes JSON lines to stderr and ``run_meta/<run_id>.log.jsonl``; warnings
    and errors are additionally written to ``run_meta/<run_id>.warnings.jsonl``.
    """

    def __init__(self, run_id: str, data_dir: Path | None = None, level: str = "INFO") -> None:
        self.run_id = run_id
        self.logger = logging.getLogger(f"legacy_migration.{run_id}")
        self.logger.setLevel(level.upper())
        self.logger.propagate = False
        self.logger.handlers.clear()

        stream = logging.StreamHandler()
        stream.setFormatter(JsonLineFormatter())
        self.logger.addHandler(stream)

        self.log_path: Path | None = None
        self.warnings_path: Path | None = None
        if data_dir is not None:
            self.log_path = data_dir / "run_meta" / f"{run_id}.log.jsonl"
            self.warnings_path = data_dir / "run_meta" / f"{run_id}.warnings.jsonl"
            ensure_dir(self.log_path.parent)

            file_handler = logging.FileHandler(self.log_path, encoding="utf-8")
            file_handler.setFormatter(JsonLineFormatter())
            self.logger.addHandler(file_handler)

            warnings_handler = logging.FileHandler(self.warnings_path, encoding="utf-8", delay=True)
            warnings_handler.setLevel(logging.WARNING)
            warnings_handler.setFormatter(JsonLineFormatter())
            self.logger.addHandler(warnings_handler)

    def _log(self, level: int, message: str, fields: dict[str, Any]) -> None:
        fields.setdefault("run_id", self.run_id)
        self.logger.log(level, message, extra=fields)

    def event(self, message: str, **event_fields: Any) -> None:
        self._log(logging.INFO, message, event_fields)

    def debug(self, message: str, **event_fields: Any) -> None:
        self._log(logging.DEBUG, message, event_fields)

    def warning(self, message: str, **event_fields: Any) -> None:
        event_fields.setdefault("status", "warning")
        self._log(logging.WARNING, message, event_fields)

    def error(self, message: str, **event_fields: Any) -> None:
        event_fields.setdefault("status", "error")
        self._log(logging.ERROR, message, event_fields)

    def close(self) -> None:
        for handler in list(self.logger.handlers):
            handler.flush()
            handler.close()
            self.logger.removeHandler(handler)

    def __enter__(self) -> "RunLog":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
