"""Record storage and the per-operation transaction arena."""
from __future__ import annotations

from .base import ChangeSet, Record, RecordKind, RecordStore
from .memory import InMemoryRecordStore
from .sqlite import SQLiteRecordStore
from .unit_of_work import UnitOfWork

__all__ = [
    "ChangeSet",
    "InMemoryRecordStore",
    "Record",
    "RecordKind",
    "RecordStore",
    "SQLiteRecordStore",
    "UnitOfWork",
]
