"""Thread-safe in-process record store."""
from __future__ import annotations

import threading

import structlog

from ..exceptions import ConflictError
from ..models import Member
from .base import RECORD_MODELS, ChangeSet, Record, RecordKey, RecordKind, RecordStore, key_of

logger = structlog.get_logger(__name__)


class InMemoryRecordStore(RecordStore):
    """Dict-backed store for tests, the CLI's scratch mode and embedding.

    Records are held as JSON so that callers never share mutable state with
    the store. A single lock makes apply() atomic and serializes it against
    reads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[RecordKey, str] = {}
        self._versions: dict[RecordKey, int] = {}
        self.commit_count = 0

    def get(self, kind: RecordKind, record_id: str) -> Record | None:
        with self._lock:
            body = self._records.get((kind, record_id))
        if body is None:
            return None
        return RECORD_MODELS[kind].model_validate_json(body)

    def list_members(self, tree_id: str) -> list[Member]:
        with self._lock:
            bodies = [body for (kind, _), body in sorted(self._records.items()) if kind == RecordKind.MEMBER]
        members = [Member.model_validate_json(body) for body in bodies]
        return [m for m in members if m.tree_id == tree_id]

    def apply(self, changes: ChangeSet) -> None:
        with self._lock:
            stale = [
                (kind.value, record_id)
                for (kind, record_id), expected in changes.expected_versions.items()
                if self._versions.get((kind, record_id), 0) != expected
            ]
            if stale:
                logger.debug("store.memory.stale", stale=stale)
                raise ConflictError("Records changed since they were read", stale)

            for record in changes.puts:
                key = key_of(record)
                record.version = changes.expected_versions[key] + 1
                self._records[key] = record.model_dump_json()
                self._versions[key] = record.version
            for key in changes.deletes:
                self._records.pop(key, None)
                self._versions.pop(key, None)
            if changes.has_writes:
                self.commit_count += 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
