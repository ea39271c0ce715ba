"""Durable SQLite record store."""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

import structlog

from ..exceptions import ConflictError, StorageError
from ..models import FamilyTree, Member
from .base import RECORD_MODELS, ChangeSet, Record, RecordKind, RecordStore, key_of

logger = structlog.get_logger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS records (
    kind TEXT NOT NULL,
    id TEXT NOT NULL,
    version INTEGER NOT NULL,
    tree_id TEXT,
    body TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (kind, id)
);

CREATE INDEX IF NOT EXISTS idx_records_tree ON records(kind, tree_id);
"""


def _tree_id(record: Record) -> str:
    if isinstance(record, FamilyTree):
        return record.id
    return record.tree_id


class SQLiteRecordStore(RecordStore):
    """One table of JSON record bodies keyed by (kind, id) with a version column.

    apply() runs under BEGIN IMMEDIATE so version checks and writes happen
    while holding the database write lock.
    """

    def __init__(self, db_path: str | Path, busy_timeout_ms: int = 5000) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.busy_timeout_ms = busy_timeout_ms
        self._init_schema()

    @contextmanager
    def _get_conn(self):
        try:
            conn = sqlite3.connect(self.db_path, isolation_level=None)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open record store: {e}") from e
        conn.row_factory = sqlite3.Row
        # Enforce PRAGMAs per-connection
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)};")
        try:
            yield conn
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._get_conn() as conn:
            conn.executescript(SCHEMA_SQL)

    def get(self, kind: RecordKind, record_id: str) -> Record | None:
        try:
            with self._get_conn() as conn:
                row = conn.execute(
                    "SELECT body FROM records WHERE kind = ? AND id = ?",
                    (kind.value, record_id),
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read {kind.value} {record_id}: {e}") from e
        if row is None:
            return None
        return RECORD_MODELS[kind].model_validate_json(row["body"])

    def list_members(self, tree_id: str) -> list[Member]:
        try:
            with self._get_conn() as conn:
                rows = conn.execute(
                    "SELECT body FROM records WHERE kind = ? AND tree_id = ? ORDER BY id",
                    (RecordKind.MEMBER.value, tree_id),
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list members of {tree_id}: {e}") from e
        return [Member.model_validate_json(row["body"]) for row in rows]

    def apply(self, changes: ChangeSet) -> None:
        with self._get_conn() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
                stale = self._stale_records(conn, changes)
                if stale:
                    conn.execute("ROLLBACK")
                    raise ConflictError("Records changed since they were read", stale)

                now = datetime.now(UTC).isoformat()
                for record in changes.puts:
                    kind, record_id = key_of(record)
                    record.version = changes.expected_versions[(kind, record_id)] + 1
                    conn.execute(
                        """
                        INSERT INTO records (kind, id, version, tree_id, body, updated_at)
                        VALUES (?, ?, ?, ?, ?, ?)
                        ON CONFLICT(kind, id) DO UPDATE SET
                            version = excluded.version,
                            tree_id = excluded.tree_id,
                            body = excluded.body,
                            updated_at = excluded.updated_at
                        """,
                        (kind.value, record_id, record.version, _tree_id(record), record.model_dump_json(), now),
                    )
                for kind, record_id in changes.deletes:
                    conn.execute("DELETE FROM records WHERE kind = ? AND id = ?", (kind.value, record_id))
                conn.execute("COMMIT")
            except sqlite3.OperationalError as e:
                self._rollback(conn)
                if "locked" in str(e) or "busy" in str(e):
                    raise ConflictError(f"Record store busy: {e}") from e
                raise StorageError(f"Commit failed: {e}") from e
            except sqlite3.Error as e:
                self._rollback(conn)
                raise StorageError(f"Commit failed: {e}") from e

    def _stale_records(self, conn: sqlite3.Connection, changes: ChangeSet) -> list[tuple[str, str]]:
        stale = []
        for (kind, record_id), expected in changes.expected_versions.items():
            row = conn.execute(
                "SELECT version FROM records WHERE kind = ? AND id = ?",
                (kind.value, record_id),
            ).fetchone()
            current = row["version"] if row else 0
            if current != expected:
                stale.append((kind.value, record_id))
        if stale:
            logger.debug("store.sqlite.stale", stale=stale)
        return stale

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    def count(self, kind: RecordKind, tree_id: str | None = None) -> int:
        """Number of stored records of a kind, optionally within one tree."""
        query = "SELECT COUNT(*) FROM records WHERE kind = ?"
        params: tuple = (kind.value,)
        if tree_id is not None:
            query += " AND tree_id = ?"
            params += (tree_id,)
        with self._get_conn() as conn:
            return conn.execute(query, params).fetchone()[0]
