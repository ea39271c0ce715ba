"""Record store interface.

A store keeps member, tree and invitation records with a version counter
each. Reads return private copies. Writes only happen through apply(),
which commits a whole ChangeSet or nothing.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from ..models import FamilyTree, Invitation, Member

Record = Union[Member, FamilyTree, Invitation]


class RecordKind(str, Enum):
    MEMBER = "member"
    TREE = "tree"
    INVITATION = "invitation"


RECORD_MODELS: dict[RecordKind, type[Record]] = {
    RecordKind.MEMBER: Member,
    RecordKind.TREE: FamilyTree,
    RecordKind.INVITATION: Invitation,
}

RecordKey = tuple[RecordKind, str]


def kind_of(record: Record) -> RecordKind:
    if isinstance(record, Member):
        return RecordKind.MEMBER
    if isinstance(record, FamilyTree):
        return RecordKind.TREE
    if isinstance(record, Invitation):
        return RecordKind.INVITATION
    raise TypeError(f"Not a storable record: {type(record).__name__}")


def key_of(record: Record) -> RecordKey:
    return kind_of(record), record.id


@dataclass
class ChangeSet:
    """Everything one operation read and wants to write.

    expected_versions maps every record the operation read (or creates) to
    the version it saw; 0 means "must not exist". Every put and delete must
    have an entry.
    """

    expected_versions: dict[RecordKey, int] = field(default_factory=dict)
    puts: list[Record] = field(default_factory=list)
    deletes: list[RecordKey] = field(default_factory=list)

    @property
    def has_writes(self) -> bool:
        return bool(self.puts or self.deletes)

    def __post_init__(self) -> None:
        for record in self.puts:
            if key_of(record) not in self.expected_versions:
                raise ValueError(f"put without expected version: {key_of(record)}")
        for key in self.deletes:
            if key not in self.expected_versions:
                raise ValueError(f"delete without expected version: {key}")


class RecordStore(ABC):
    """Durable per-record storage with an atomic multi-record commit."""

    @abstractmethod
    def get(self, kind: RecordKind, record_id: str) -> Record | None:
        """Return a copy of the record, or None if absent."""

    @abstractmethod
    def apply(self, changes: ChangeSet) -> None:
        """Atomically verify expected versions and apply writes.

        Each written record's version becomes its expected version + 1 (the
        passed record objects are updated in place).

        Raises:
            ConflictError: a record changed since it was read
            StorageError: the store could not complete the commit
        """

    @abstractmethod
    def list_members(self, tree_id: str) -> list[Member]:
        """Every stored member whose tree_id is tree_id, ordered by id."""

    def get_member(self, member_id: str) -> Member | None:
        return self.get(RecordKind.MEMBER, member_id)  # type: ignore[return-value]

    def get_tree(self, tree_id: str) -> FamilyTree | None:
        return self.get(RecordKind.TREE, tree_id)  # type: ignore[return-value]

    def get_invitation(self, invitation_id: str) -> Invitation | None:
        return self.get(RecordKind.INVITATION, invitation_id)  # type: ignore[return-value]

    def close(self) -> None:
        """Release resources held by the store."""
