"""Run report persistence and exit status."""

from __future__ import annotations

from pathlib import Path

from migration.common.constants import EXIT_HARD_FAIL, EXIT_SUCCESS, EXIT_VALIDATION_FAILED
from migration.common.fs import write_json
from migration.pipeline.orchestrator import RunReport


def write_run_report(data_dir: Path, report: RunReport, *, dump_stats: dict | None = None) -> Path:
    payload = report.to_dict()
    if dump_stats is not None:
        payload["dump_tables"] = dump_stats
    reports_dir = data_dir / "reports"
    write_json(reports_dir / f"{report.run_id}.json", payload)
    summary_path = reports_dir / "run_summary.json"
    write_json(summary_path, payload)
    return summary_path


def exit_code_for(report: RunReport) -> int:
    if not report.success:
        return EXIT_HARD_FAIL
    if not report.validation_passed:
        return EXIT_VALIDATION_FAILED
    return EXIT_SUCCESS
