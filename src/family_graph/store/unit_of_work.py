"""Per-operation snapshot and staging area.

A UnitOfWork reads records lazily through the store and remembers the
version of each record it saw, including records it found missing. Changes
are made on private copies and staged; commit() sends one ChangeSet whose
expected versions cover the whole read set, so any concurrent write to a
record this operation looked at turns into a ConflictError.
"""
from __future__ import annotations

import structlog

from ..exceptions import NotFoundError
from ..models import FamilyTree, Invitation, Member
from .base import ChangeSet, Record, RecordKey, RecordKind, RecordStore, key_of

logger = structlog.get_logger(__name__)


class UnitOfWork:
    def __init__(self, store: RecordStore) -> None:
        self._store = store
        self._records: dict[RecordKey, Record] = {}
        self._read_versions: dict[RecordKey, int] = {}
        self._dirty: dict[RecordKey, None] = {}  # insertion-ordered set
        self._deleted: dict[RecordKey, None] = {}
        self.committed = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _load(self, kind: RecordKind, record_id: str) -> Record | None:
        key = (kind, record_id)
        if key in self._deleted:
            return None
        if key in self._records:
            return self._records[key]
        if key in self._read_versions:
            return None  # read earlier and found missing
        record = self._store.get(kind, record_id)
        self._read_versions[key] = record.version if record is not None else 0
        if record is not None:
            self._records[key] = record
        return record

    def find_member(self, member_id: str) -> Member | None:
        return self._load(RecordKind.MEMBER, member_id)  # type: ignore[return-value]

    def member(self, member_id: str) -> Member:
        record = self.find_member(member_id)
        if record is None:
            raise NotFoundError("member", member_id)
        return record

    def cached_member(self, member_id: str) -> Member | None:
        """Return a member only if this unit of work already holds it."""
        key = (RecordKind.MEMBER, member_id)
        if key in self._deleted:
            return None
        return self._records.get(key)  # type: ignore[return-value]

    def cached_tree(self, tree_id: str) -> FamilyTree | None:
        return self._records.get((RecordKind.TREE, tree_id))  # type: ignore[return-value]

    def tree(self, tree_id: str) -> FamilyTree:
        record = self._load(RecordKind.TREE, tree_id)
        if record is None:
            raise NotFoundError("tree", tree_id)
        return record  # type: ignore[return-value]

    def invitation(self, invitation_id: str) -> Invitation:
        record = self._load(RecordKind.INVITATION, invitation_id)
        if record is None:
            raise NotFoundError("invitation", invitation_id)
        return record  # type: ignore[return-value]

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    def add(self, record: Record) -> None:
        """Stage a brand-new record; the commit fails if the id is taken."""
        key = key_of(record)
        if key in self._records:
            raise ValueError(f"record already staged: {key}")
        self._read_versions.setdefault(key, 0)
        self._deleted.pop(key, None)
        self._records[key] = record
        self._dirty[key] = None

    def put(self, record: Record) -> None:
        """Mark a record obtained from this unit of work as modified."""
        key = key_of(record)
        if self._records.get(key) is not record:
            raise ValueError(f"record was not loaded through this unit of work: {key}")
        self._dirty[key] = None

    def delete(self, record: Record) -> None:
        key = key_of(record)
        if self._records.get(key) is not record:
            raise ValueError(f"record was not loaded through this unit of work: {key}")
        del self._records[key]
        self._dirty.pop(key, None)
        self._deleted[key] = None

    @property
    def written(self) -> list[Record]:
        return [self._records[key] for key in self._dirty]

    def written_members(self) -> list[Member]:
        return [r for r in self.written if isinstance(r, Member)]

    @property
    def deleted_keys(self) -> list[RecordKey]:
        return list(self._deleted)

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def change_set(self) -> ChangeSet:
        return ChangeSet(
            expected_versions=dict(self._read_versions),
            puts=self.written,
            deletes=[key for key in self._deleted if self._read_versions.get(key, 0) > 0],
        )

    def commit(self) -> None:
        if self.committed:
            raise RuntimeError("unit of work already committed")
        changes = self.change_set()
        # Read-only work still verifies its snapshot was consistent
        if changes.expected_versions:
            self._store.apply(changes)
        self.committed = True
        logger.debug(
            "uow.committed",
            reads=len(changes.expected_versions),
            puts=len(changes.puts),
            deletes=len(changes.deletes),
        )
