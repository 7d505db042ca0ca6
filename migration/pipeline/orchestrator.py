"""Runs entity pipelines in dependency order, phase by phase."""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from migration.common.constants import ENTITY_ORDER, PHASES
from migration.common.errors import PipelineError
from migration.common.time_utils import utc_timestamp_iso
from migration.pipeline.addresses import AddressesPipeline
from migration.pipeline.base import EntityPipeline, PipelineContext
from migration.pipeline.bookings import BookingsPipeline
from migration.pipeline.chats import ChatsPipeline
from migration.pipeline.payments import PaymentsPipeline
from migration.pipeline.reviews import ReviewsPipeline
from migration.pipeline.services import ServicesPipeline
from migration.pipeline.users import UsersPipeline

PIPELINES: dict[str, type[EntityPipeline]] = {
    "users": UsersPipeline,
    "addresses": AddressesPipeline,
    "services": ServicesPipeline,
    "bookings": BookingsPipeline,
    "payments": PaymentsPipeline,
    "chats": ChatsPipeline,
    "reviews": ReviewsPipeline,
}


@dataclass
class RunReport:
    run_id: str
    started_at: str
    finished_at: str | None = None
    entities: dict[str, dict] = field(default_factory=dict)
    fatal_errors: list[dict] = field(default_factory=list)
    validation_failures: list[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return not self.fatal_errors and not self.cancelled

    @property
    def validation_passed(self) -> bool:
        return not self.validation_failures

    def summary_lines(self) -> list[str]:
        lines = [f"run {self.run_id}: {'success' if self.success else 'failed'}"]
        for entity, entity_report in self.entities.items():
            phases = entity_report["phases"]
            parts = [f"{phase}={result['status']}" for phase, result in phases.items()]
            line = f"{entity}: {entity_report['status']}"
            if parts:
                line += f" ({', '.join(parts)})"
            if entity_report.get("error"):
                line += f" - {entity_report['error_code']}: {entity_report['error']}"
            lines.append(line)
        if self.validation_failures:
            lines.append(f"validation discrepancies in: {', '.join(self.validation_failures)}")
        return lines

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "success": self.success,
            "validation_passed": self.validation_passed,
            "cancelled": self.cancelled,
            "entities": self.entities,
            "fatal_errors": self.fatal_errors,
            "validation_failures": self.validation_failures,
            "summary": self.summary_lines(),
        }


def order_entities(entities: list[str]) -> list[str]:
    unknown = [name for name in entities if name not in ENTITY_ORDER]
    if unknown:
        raise ValueError(f"Unknown entity types: {', '.join(unknown)}")
    return sorted(set(entities), key=ENTITY_ORDER.index)


def order_phases(phases: list[str]) -> list[str]:
    return sorted(set(phases), key=PHASES.index)


def _phase_summary(result) -> dict:
    summary = {"status": result.status, "counts": result.counts}
    if result.phase == "validate":
        summary["passed"] = result.status == "passed"
    return summary


def run_migration(ctx: PipelineContext, entities: list[str], phases: list[str]) -> RunReport:
    """A fatal error aborts the remaining phases of that entity only."""
    report = RunReport(run_id=ctx.run_id, started_at=utc_timestamp_iso())
    log = ctx.log

    for entity in order_entities(entities):
        pipeline = PIPELINES[entity](ctx)
        entity_report: dict = {"status": "ok", "phases": {}}
        report.entities[entity] = entity_report

        for phase in order_phases(phases):
            if ctx.cancel_event.is_set():
                report.cancelled = True
                entity_report["status"] = "cancelled"
                break
            log.event(f"{phase} {entity} start", entity=entity, phase=phase, event="PHASE_START", status="ok")
            started = time.monotonic()
            try:
                result = pipeline.run_phase(phase)
            except PipelineError as exc:
                entity_report.update(status="failed", failed_phase=phase, error_code=exc.error_code, error=str(exc))
                report.fatal_errors.append(
                    {"entity": entity, "phase": phase, "error_code": exc.error_code, "error": str(exc)}
                )
                log.error(
                    f"{phase} failed for {entity}: {exc}",
                    entity=entity,
                    phase=phase,
                    event="PHASE_FAIL",
                    error_code=exc.error_code,
                    duration_ms=int((time.monotonic() - started) * 1000),
                )
                break
            except Exception as exc:
                entity_report.update(status="failed", failed_phase=phase, error_code="UNEXPECTED_ERROR", error=repr(exc))
                report.fatal_errors.append(
                    {"entity": entity, "phase": phase, "error_code": "UNEXPECTED_ERROR", "error": repr(exc)}
                )
                log.error(
                    f"unexpected failure in {phase} for {entity}: {exc!r}",
                    entity=entity,
                    phase=phase,
                    event="PHASE_FAIL",
                    error_code="UNEXPECTED_ERROR",
                )
                break

            entity_report["phases"][phase] = _phase_summary(result)
            if result.failed_validation:
                entity_report["status"] = "validation_failed"
                report.validation_failures.append(entity)

    if ctx.cancel_event.is_set():
        report.cancelled = True
    report.finished_at = utc_timestamp_iso()
    return report
