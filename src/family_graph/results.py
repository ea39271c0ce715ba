"""Typed results returned by engine operations."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .models import FamilyTree, Invitation, Member
from .projector import project_member


@dataclass
class OperationResult:
    """What an operation committed.

    updated_members holds every member record the operation wrote, after
    commit, so versions are current. member_id names the primary subject
    (the created member, the updated member, ...).
    """

    operation: str
    member_id: str | None = None
    tree: FamilyTree | None = None
    invitation: Invitation | None = None
    updated_members: list[Member] = field(default_factory=list)
    removed_member_ids: list[str] = field(default_factory=list)
    replayed: bool = False

    @property
    def member(self) -> Member | None:
        for member in self.updated_members:
            if member.id == self.member_id:
                return member
        return None

    @property
    def updated_nodes(self) -> list[dict[str, Any]]:
        return [project_member(m, self.tree) for m in self.updated_members]

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "memberId": self.member_id,
            "treeId": self.tree.id if self.tree else None,
            "invitation": self.invitation.model_dump(mode="json", by_alias=True) if self.invitation else None,
            "updatedNodes": self.updated_nodes,
            "removedMemberIds": list(self.removed_member_ids),
            "replayed": self.replayed,
        }
