"""Extract -> Create -> Validate phases shared by every entity pipeline."""

from __future__ import annotations

import random
import threading
import time
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable

from migration.common.batching import process_in_batches
from migration.common.config_loader import ConfigBundle
from migration.common.errors import (
    MappingConflictError,
    RecordError,
    RowMappingError,
    StageError,
    UnresolvedReferenceError,
)
from migration.common.logging import RunLog
from migration.dump.parser import DumpSource
from migration.enrich.geocoder import Geocoder
from migration.store.checkpoints import CheckpointRepository
from migration.store.destination import Destination
from migration.store.mapping import IdentifierMappingStore


@dataclass(frozen=True)
class TargetRecord:
    legacy_id: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict):
        names = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in payload.items() if key in names})


@dataclass(frozen=True)
class SkipRecord:
    entity: str
    legacy_id: str
    reason: str
    phase: str = "extract"
    record: dict | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ParentRef:
    column: str
    table: str
    required: bool = True


@dataclass(frozen=True)
class WriteStep:
    """One destination collection written by an entity pipeline."""

    collection: str
    table: str
    record_type: type
    natural_key: tuple[str, ...]
    to_row: Callable[[Any], dict]
    mapping_keys: Callable[[Any], list[tuple[str, str]]] = lambda _record: []
    mapping_entities: tuple[str, ...] = ()
    parent_refs: tuple[ParentRef, ...] = ()
    sample_fields: tuple[str, ...] = ()

    def key_of(self, row: dict) -> tuple:
        return tuple(row.get(column) for column in self.natural_key)

    def record_key(self, record: Any) -> tuple | None:
        """Natural key read off an extracted record; ``None`` when a column is only known at create."""
        values = []
        for column in self.natural_key:
            if column == "id":
                values.append(record.legacy_id)
            elif hasattr(record, column):
                values.append(getattr(record, column))
            else:
                return None
        return tuple(values)


@dataclass
class Extraction:
    records: dict[str, list[TargetRecord]] = field(default_factory=dict)
    skips: list[SkipRecord] = field(default_factory=list)
    excluded: dict[str, int] = field(default_factory=dict)
    source_rows: dict[str, int] = field(default_factory=dict)
    stats: dict[str, Any] = field(default_factory=dict)
    claimed_keys: dict[str, dict[tuple, str]] = field(default_factory=dict, repr=False)

    def add(self, collection: str, record: TargetRecord) -> None:
        self.records.setdefault(collection, []).append(record)

    def exclude(self, reason: str, count: int = 1) -> None:
        self.excluded[reason] = self.excluded.get(reason, 0) + count

    def counts(self) -> dict:
        return {
            "source_rows": dict(self.source_rows),
            "excluded": dict(self.excluded),
            "skipped": len(self.skips),
            "records": {name: len(items) for name, items in self.records.items()},
        }


@dataclass
class PhaseResult:
    entity: str
    phase: str
    status: str
    counts: dict = field(default_factory=dict)
    details: dict = field(default_factory=dict)

    @property
    def failed_validation(self) -> bool:
        return self.phase == "validate" and self.status == "failed"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CollectionValidation:
    collection: str
    table: str
    expected: int = 0
    actual: int = 0
    matched: int = 0
    sampled: int = 0
    missing: list[dict] = field(default_factory=list)
    orphaned: list[dict] = field(default_factory=list)
    mismatched: list[dict] = field(default_factory=list)
    unresolved: list[dict] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not (self.missing or self.orphaned or self.mismatched or self.unresolved)

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["passed"] = self.passed
        return payload


@dataclass
class ValidationReport:
    entity: str
    source_rows: dict = field(default_factory=dict)
    excluded: dict = field(default_factory=dict)
    skipped: int = 0
    collections: list[CollectionValidation] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(item.passed for item in self.collections)

    def counts(self) -> dict:
        return {
            "source_rows": self.source_rows,
            "excluded": self.excluded,
            "skipped": self.skipped,
            "missing": sum(len(item.missing) for item in self.collections),
            "orphaned": sum(len(item.orphaned) for item in self.collections),
            "mismatched": sum(len(item.mismatched) for item in self.collections),
            "unresolved": sum(len(item.unresolved) for item in self.collections),
        }

    def to_dict(self) -> dict:
        return {
            "entity": self.entity,
            "passed": self.passed,
            "counts": self.counts(),
            "collections": [item.to_dict() for item in self.collections],
        }


@dataclass
class PipelineContext:
    run_id: str
    config: ConfigBundle
    dump: DumpSource
    mappings: IdentifierMappingStore
    checkpoints: CheckpointRepository
    destination: Destination
    log: RunLog
    processed_at: datetime
    geocoder: Geocoder | None = None
    cancel_event: threading.Event = field(default_factory=threading.Event)


def _values_equal(expected: Any, actual: Any, tolerance: float) -> bool:
    if isinstance(expected, bool) or isinstance(actual, bool):
        return expected == actual
    if isinstance(expected, (int, float, Decimal)) and actual is not None:
        try:
            return abs(float(expected) - float(actual)) <= tolerance
        except (TypeError, ValueError):
            return False
    return expected == actual


class EntityPipeline:
    """Subclasses provide ``transform`` and ``write_steps``; the phases are shared."""

    entity = ""
    requires: tuple[str, ...] = ()

    def __init__(self, ctx: PipelineContext) -> None:
        self.ctx = ctx
        self.current_phase: str | None = None
        self._steps: dict[str, WriteStep] | None = None
        self._key_locks: dict[tuple, threading.Lock] = {}
        self._key_locks_guard = threading.Lock()

    @property
    def log(self) -> RunLog:
        return self.ctx.log

    def transform(self) -> Extraction:
        raise NotImplementedError

    def write_steps(self) -> list[WriteStep]:
        raise NotImplementedError

    def skip(self, extraction: Extraction, legacy_id: str, reason: str, record: Any = None) -> None:
        payload = None
        if record is not None:
            payload = asdict(record) if is_dataclass(record) else dict(record)
        extraction.skips.append(SkipRecord(entity=self.entity, legacy_id=legacy_id, reason=reason, record=payload))
        self.log.debug(
            f"skipping {self.entity} {legacy_id}: {reason}",
            entity=self.entity,
            event="RECORD_SKIPPED",
            legacy_id=legacy_id,
        )

    def add(self, extraction: Extraction, collection: str, record: TargetRecord) -> bool:
        """Add ``record`` unless an earlier record already holds its natural key.

        A dropped duplicate becomes a skip naming the record that kept the key.
        """
        if self._steps is None:
            self._steps = {step.collection: step for step in self.write_steps()}
        step = self._steps.get(collection)
        key = step.record_key(record) if step is not None else None
        if key is not None:
            claimed = extraction.claimed_keys.setdefault(collection, {})
            holder = claimed.get(key)
            if holder is not None:
                described = ", ".join(f"{column} {value}" for column, value in zip(step.natural_key, key))
                self.skip(
                    extraction,
                    record.legacy_id,
                    f"Duplicate {collection} record for {described}; kept {holder}",
                    record=record,
                )
                return False
            claimed[key] = record.legacy_id
        extraction.add(collection, record)
        return True

    def typed_rows(self, extraction: Extraction, table: str, factory: Callable[[dict], Any]) -> list:
        """Build typed records from ``table``.

        Soft-deleted rows are excluded before anything else looks at them; rows
        missing required fields become skips.
        """
        rows = self.ctx.dump.rows(table)
        extraction.source_rows[table] = len(rows)
        out = []
        for index, row in enumerate(rows):
            if row.get("deleted_at") is not None:
                extraction.exclude("soft_deleted")
                continue
            try:
                out.append(factory(row))
            except RowMappingError as exc:
                legacy_id = (row.get("id") or f"{table}#{index}").lower()
                self.skip(extraction, legacy_id, f"{table}: {exc}", record=row)
        return out

    def run_phase(self, phase: str) -> PhaseResult:
        if phase == "extract":
            return self.extract()
        if phase == "create":
            return self.create()
        if phase == "validate":
            return self.validate()
        raise ValueError(f"Unknown phase: {phase}")

    def extract(self) -> PhaseResult:
        self.current_phase = "extract"
        self.ctx.mappings.require(*self.requires)
        started = time.monotonic()
        extraction = self.transform()
        counts = extraction.counts()

        self.ctx.checkpoints.save(
            self.entity,
            "extract",
            counts=counts,
            records={name: [record.to_dict() for record in items] for name, items in extraction.records.items()},
            extra={"stats": extraction.stats},
        )
        self.ctx.checkpoints.save_side_file(
            self.entity,
            "extract",
            "skipped",
            [skip.to_dict() for skip in extraction.skips],
        )
        self.log.event(
            f"extracted {self.entity}",
            entity=self.entity,
            phase="extract",
            event="PHASE_END",
            status="ok",
            rows_in=sum(extraction.source_rows.values()),
            rows_out=sum(len(items) for items in extraction.records.values()),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return PhaseResult(entity=self.entity, phase="extract", status="ok", counts=counts)

    def _natural_key_lock(self, table: str, key: tuple) -> threading.Lock:
        with self._key_locks_guard:
            return self._key_locks.setdefault((table, key), threading.Lock())

    def _write_record(self, step: WriteStep, record: Any) -> dict:
        row = step.to_row(record)
        natural_key = {column: row.get(column) for column in step.natural_key}
        # Lookup and insert must not interleave for the same key across workers.
        with self._natural_key_lock(step.table, step.key_of(row)):
            existing_id = self.ctx.destination.find_id(step.table, natural_key)
            if existing_id is not None:
                new_id, status = existing_id, "existing"
            else:
                new_id, status = self.ctx.destination.insert(step.table, row), "created"
        for entity_type, legacy_id in step.mapping_keys(record):
            self.ctx.mappings.put(entity_type, legacy_id, new_id)
        return {"legacy_id": record.legacy_id, "new_id": new_id, "status": status}

    def create(self) -> PhaseResult:
        self.current_phase = "create"
        self.ctx.mappings.require(*self.requires)
        checkpoint = self.ctx.checkpoints.load(self.entity, "extract")
        create_cfg = self.ctx.config.create
        started = time.monotonic()

        results: dict[str, list[dict]] = {}
        failures: list[dict] = []
        counts: dict[str, dict] = {}
        cancelled = False

        for step in self.write_steps():
            records = [step.record_type.from_dict(item) for item in checkpoint.records.get(step.collection, [])]
            for entity_type in step.mapping_entities:
                self.ctx.mappings.touch(entity_type)

            run = process_in_batches(
                records,
                lambda record, step=step: self._write_record(step, record),
                batch_size=int(create_cfg["batch_size"]),
                max_workers=int(create_cfg["max_workers"]),
                batch_delay_ms=int(create_cfg.get("batch_delay_ms", 0)),
                cancel_event=self.ctx.cancel_event,
                on_batch_done=lambda _index, _outcomes: self.ctx.mappings.flush(),
            )
            self.ctx.mappings.flush()

            conflicts = [o.error for o in run.failed if isinstance(o.error, MappingConflictError)]
            if conflicts:
                raise conflicts[0]

            results[step.collection] = [outcome.result for outcome in run.succeeded]
            for outcome in run.failed:
                error = outcome.error
                failures.append(
                    {
                        "collection": step.collection,
                        "legacy_id": outcome.item.legacy_id,
                        "error_code": getattr(error, "error_code", "UNEXPECTED_ERROR"),
                        "reason": str(error),
                    }
                )
                self.log.warning(
                    f"{step.collection} {outcome.item.legacy_id} not written: {error}",
                    entity=self.entity,
                    phase="create",
                    event="RECORD_FAILED",
                    legacy_id=outcome.item.legacy_id,
                    error_code=getattr(error, "error_code", "UNEXPECTED_ERROR"),
                )
            created = sum(1 for item in results[step.collection] if item["status"] == "created")
            counts[step.collection] = {
                "input": len(records),
                "created": created,
                "existing": len(results[step.collection]) - created,
                "failed": len(run.failed),
            }
            if run.cancelled:
                cancelled = True
                break

        status = "cancelled" if cancelled else "ok"
        self.ctx.checkpoints.save(self.entity, "create", counts=counts, records=results, extra={"status": status})
        self.ctx.checkpoints.save_side_file(self.entity, "create", "failed", failures)
        self.log.event(
            f"created {self.entity}",
            entity=self.entity,
            phase="create",
            event="PHASE_END",
            status=status,
            rows_in=sum(item["input"] for item in counts.values()),
            rows_out=sum(item["created"] + item["existing"] for item in counts.values()),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        if cancelled:
            raise StageError(f"create phase for {self.entity} cancelled; completed batches are checkpointed")
        return PhaseResult(entity=self.entity, phase="create", status=status, counts=counts)

    def _parent_ids(self, table: str, cache: dict[str, set]) -> set:
        if table not in cache:
            cache[table] = {row.get("id") for row in self.ctx.destination.select(table, ["id"])}
        return cache[table]

    def _validate_step(self, step: WriteStep, expected: Iterable[Any], parent_cache: dict[str, set]) -> CollectionValidation:
        validate_cfg = self.ctx.config.validate
        tolerance = float(validate_cfg["amount_tolerance"])
        report = CollectionValidation(collection=step.collection, table=step.table)

        actual_rows = self.ctx.destination.select(step.table)
        report.actual = len(actual_rows)
        actual_index = {step.key_of(row): row for row in actual_rows}

        matched: list[tuple[Any, dict, dict]] = []
        for record in expected:
            report.expected += 1
            try:
                row = step.to_row(record)
            except RecordError as exc:
                report.unresolved.append({"legacy_id": record.legacy_id, "reason": str(exc)})
                continue
            key = step.key_of(row)
            actual = actual_index.get(key)
            if actual is None:
                report.missing.append(
                    {"legacy_id": record.legacy_id, "natural_key": dict(zip(step.natural_key, key))}
                )
                continue
            matched.append((record, row, actual))
        report.matched = len(matched)

        if step.sample_fields and matched:
            sample_size = min(int(validate_cfg["sample_size"]), len(matched))
            sample = random.Random(self.ctx.run_id).sample(matched, sample_size)
            report.sampled = len(sample)
            for record, row, actual in sample:
                diffs = {
                    name: {"expected": row.get(name), "actual": actual.get(name)}
                    for name in step.sample_fields
                    if not _values_equal(row.get(name), actual.get(name), tolerance)
                }
                if diffs:
                    report.mismatched.append({"legacy_id": record.legacy_id, "fields": diffs})

        for parent in step.parent_refs:
            parent_ids = self._parent_ids(parent.table, parent_cache)
            for row in actual_rows:
                value = row.get(parent.column)
                if value is None:
                    if parent.required:
                        report.orphaned.append(
                            {"id": row.get("id"), "column": parent.column, "reason": "null reference"}
                        )
                    continue
                if value not in parent_ids:
                    report.orphaned.append(
                        {
                            "id": row.get("id"),
                            "column": parent.column,
                            "reason": f"no {parent.table} row {value}",
                        }
                    )
        return report

    def validate(self) -> PhaseResult:
        self.current_phase = "validate"
        self.ctx.mappings.require(*self.requires)
        started = time.monotonic()
        extraction = self.transform()
        report = ValidationReport(
            entity=self.entity,
            source_rows=dict(extraction.source_rows),
            excluded=dict(extraction.excluded),
            skipped=len(extraction.skips),
        )
        parent_cache: dict[str, set] = {}
        for step in self.write_steps():
            report.collections.append(
                self._validate_step(step, extraction.records.get(step.collection, []), parent_cache)
            )

        status = "passed" if report.passed else "failed"
        self.ctx.checkpoints.save(
            self.entity,
            "validate",
            counts=report.counts(),
            extra={"passed": report.passed, "report": report.to_dict()},
        )
        log_fn = self.log.event if report.passed else self.log.warning
        log_fn(
            f"validated {self.entity}: {status}",
            entity=self.entity,
            phase="validate",
            event="PHASE_END",
            status=status,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return PhaseResult(
            entity=self.entity,
            phase="validate",
            status=status,
            counts=report.counts(),
            details=report.to_dict(),
        )


def resolve_required(mappings: IdentifierMappingStore, entity_type: str, legacy_id: str | None, what: str) -> str:
    resolved = mappings.get(entity_type, legacy_id)
    if resolved is None:
        raise UnresolvedReferenceError(f"{what} {legacy_id} has no {entity_type} mapping")
    return resolved
