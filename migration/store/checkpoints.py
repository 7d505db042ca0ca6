"""Phase checkpoint files under ``checkpoints/<entity>/<phase>.json``."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from migration.common.errors import PrerequisiteError
from migration.common.fs import read_json, write_json
from migration.common.time_utils import utc_timestamp_iso


@dataclass
class Checkpoint:
    entity: str
    phase: str
    metadata: dict
    records: dict[str, list[dict]] = field(default_factory=dict)


class CheckpointRepository:
    def __init__(self, root: Path, run_id: str) -> None:
        self.root = root
        self.run_id = run_id

    def path_for(self, entity: str, phase: str, suffix: str = "") -> Path:
        return self.root / entity / f"{phase}{suffix}.json"

    def exists(self, entity: str, phase: str) -> bool:
        return self.path_for(entity, phase).exists()

    def save(
        self,
        entity: str,
        phase: str,
        *,
        counts: dict,
        records: dict[str, list[dict]] | None = None,
        extra: dict | None = None,
    ) -> Path:
        metadata = {
            "entity": entity,
            "phase": phase,
            "run_id": self.run_id,
            "timestamp": utc_timestamp_iso(),
            "counts": counts,
        }
        if extra:
            metadata.update(extra)
        path = self.path_for(entity, phase)
        write_json(path, {"metadata": metadata, "records": records or {}})
        return path

    def save_side_file(self, entity: str, phase: str, name: str, items: list[dict]) -> Path:
        path = self.path_for(entity, phase, f".{name}")
        write_json(
            path,
            {
                "metadata": {
                    "entity": entity,
                    "phase": phase,
                    "run_id": self.run_id,
                    "timestamp": utc_timestamp_iso(),
                    "total": len(items),
                },
                name: items,
            },
        )
        return path

    def load(self, entity: str, phase: str) -> Checkpoint:
        path = self.path_for(entity, phase)
        if not path.exists():
            raise PrerequisiteError(f"No {phase} checkpoint for {entity}; run the {phase} phase first")
        payload = read_json(path)
        return Checkpoint(
            entity=entity,
            phase=phase,
            metadata=payload.get("metadata", {}),
            records=payload.get("records", {}),
        )
