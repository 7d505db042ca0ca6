"""CLI entrypoint for the legacy marketplace data migration."""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path

from migration.common.config_loader import ConfigBundle, load_config, resolve_entities
from migration.common.constants import ENTITY_ORDER, EXIT_HARD_FAIL, PHASES
from migration.common.errors import PipelineError
from migration.common.ids import generate_run_id
from migration.common.logging import RunLog
from migration.common.time_utils import utc_now
from migration.dump.parser import DumpSource
from migration.enrich.geocoder import Geocoder
from migration.pipeline.base import PipelineContext
from migration.pipeline.orchestrator import run_migration
from migration.pipeline.reports import exit_code_for, write_run_report
from migration.store.checkpoints import CheckpointRepository
from migration.store.destination import build_destination
from migration.store.mapping import IdentifierMappingStore


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=[*PHASES, "all"])
    parser.add_argument("--entity", default="all", choices=[*ENTITY_ORDER, "all"])
    parser.add_argument("--dump", default=None, help="Path to the legacy SQL dump; overrides dump.path")
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--destination", default=None, choices=["memory", "rest"])
    parser.add_argument("--no-enrichment", action="store_true")
    return parser.parse_args(argv)


def build_context(
    args: argparse.Namespace,
    bundle: ConfigBundle,
    run_id: str,
    data_dir: Path,
    log: RunLog,
) -> PipelineContext:
    dump_path = Path(args.dump or bundle.dump["path"])
    dump = DumpSource(dump_path, backslash_escapes=bool(bundle.dump.get("backslash_escapes", False)), log=log)

    destination_cfg = dict(bundle.destination)
    if args.destination:
        destination_cfg["kind"] = args.destination

    enrichment_cfg = dict(bundle.enrichment)
    if args.no_enrichment:
        enrichment_cfg["enabled"] = False

    return PipelineContext(
        run_id=run_id,
        config=bundle,
        dump=dump,
        mappings=IdentifierMappingStore(data_dir / "mappings"),
        checkpoints=CheckpointRepository(data_dir / "checkpoints", run_id),
        destination=build_destination(destination_cfg),
        log=log,
        processed_at=utc_now(),
        geocoder=Geocoder.from_config(enrichment_cfg, bbox=bundle.addresses.get("bbox_wgs84"), log=log),
        cancel_event=threading.Event(),
    )


def _install_interrupt_handler(ctx: PipelineContext):
    if threading.current_thread() is not threading.main_thread():
        return None

    def _cancel(_signum, _frame) -> None:
        ctx.log.warning("interrupt received; finishing in-flight batch", event="RUN_CANCELLED")
        ctx.cancel_event.set()

    return signal.signal(signal.SIGINT, _cancel)


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    data_dir = Path(args.data_dir)

    with RunLog(run_id, data_dir=data_dir, level=args.log_level) as log:
        bundle = load_config(config_dir, overlay_config_dir=overlay_config_dir)
        entities = resolve_entities(args.entity)
        phases = list(PHASES) if args.command == "all" else [args.command]

        ctx = build_context(args, bundle, run_id, data_dir, log)
        previous_handler = _install_interrupt_handler(ctx)
        log.event(
            f"run start: {args.command} {args.entity}",
            event="RUN_START",
            status="ok",
        )
        try:
            report = run_migration(ctx, entities, phases)
        finally:
            if previous_handler is not None:
                signal.signal(signal.SIGINT, previous_handler)
            if ctx.geocoder is not None:
                ctx.geocoder.close()

        summary_path = write_run_report(data_dir, report, dump_stats=ctx.dump.stats())
        exit_code = exit_code_for(report)
        for line in report.summary_lines():
            log.event(line, event="RUN_SUMMARY")
        log.event(
            f"run end; report at {summary_path}",
            event="RUN_END",
            status="ok" if exit_code == 0 else "error",
        )
        return exit_code


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError as exc:
        print(f"{exc.error_code}: {exc}", file=sys.stderr)
        return EXIT_HARD_FAIL
    except Exception as exc:
        print(f"UNEXPECTED_ERROR: {exc!r}", file=sys.stderr)
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
