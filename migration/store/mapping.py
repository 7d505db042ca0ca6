"""Durable append-only legacy id -> new id mappings, one file per entity type."""

from __future__ import annotations

import threading
from pathlib import Path

from migration.common.errors import MappingConflictError, PrerequisiteError
from migration.common.fs import ensure_dir, read_json, write_json_atomic
from migration.common.time_utils import utc_timestamp_iso


class IdentifierMappingStore:
    def __init__(self, root: Path) -> None:
        self.root = root
        self._mappings: dict[str, dict[str, str]] = {}
        self._dirty: set[str] = set()
        self._lock = threading.RLock()

    def path_for(self, entity_type: str) -> Path:
        return self.root / f"{entity_type}.json"

    def _load(self, entity_type: str) -> dict[str, str]:
        loaded = self._mappings.get(entity_type)
        if loaded is not None:
            return loaded
        path = self.path_for(entity_type)
        mapping: dict[str, str] = {}
        if path.exists():
            payload = read_json(path)
            mapping = dict(payload.get("mapping", {}))
        self._mappings[entity_type] = mapping
        return mapping

    def touch(self, entity_type: str) -> None:
        """Mark an entity type as migrated so its mapping file is written even when empty."""
        with self._lock:
            self._load(entity_type)
            self._dirty.add(entity_type)

    def has_entity(self, entity_type: str) -> bool:
        with self._lock:
            return entity_type in self._dirty or self.path_for(entity_type).exists()

    def require(self, *entity_types: str) -> None:
        missing = [name for name in entity_types if not self.has_entity(name)]
        if missing:
            raise PrerequisiteError(
                f"Identifier mappings missing for: {', '.join(missing)}; run their create phase first"
            )

    def get(self, entity_type: str, legacy_id: str | None) -> str | None:
        if legacy_id is None:
            return None
        with self._lock:
            return self._load(entity_type).get(legacy_id)

    def put(self, entity_type: str, legacy_id: str, new_id: str) -> bool:
        """Record a mapping; returns False when the identical mapping already exists."""
        with self._lock:
            mapping = self._load(entity_type)
            existing = mapping.get(legacy_id)
            if existing == new_id:
                return False
            if existing is not None:
                raise MappingConflictError(
                    f"{entity_type} {legacy_id} already mapped to {existing}, refusing {new_id}"
                )
            mapping[legacy_id] = new_id
            self._dirty.add(entity_type)
            return True

    def all(self, entity_type: str) -> dict[str, str]:
        with self._lock:
            return dict(self._load(entity_type))

    def size(self, entity_type: str) -> int:
        with self._lock:
            return len(self._load(entity_type))

    def flush(self, entity_type: str | None = None) -> None:
        with self._lock:
            targets = [entity_type] if entity_type is not None else sorted(self._dirty)
            for name in targets:
                if name not in self._dirty:
                    continue
                mapping = self._mappings[name]
                ensure_dir(self.root)
                write_json_atomic(
                    self.path_for(name),
                    {
                        "metadata": {
                            "entity": name,
                            "updated_at": utc_timestamp_iso(),
                            "total_mappings": len(mapping),
                        },
                        "mapping": mapping,
                    },
                )
                self._dirty.discard(name)
