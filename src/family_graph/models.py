"""Pydantic records for members, trees and invitations.

Relationship fields hold typed adjacency lists. Which edge types are legal
for which kind of edge is a closed table (ALLOWED_TYPES) that the
validator enforces; the models themselves accept any RelType so that a bad
request is reported as a structured violation rather than a parse error.
"""
from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from uuid_utils import uuid7 as _uuid7


def new_id() -> str:
    """Generate a time-ordered record id."""
    return str(UUID(str(_uuid7())))


def utcnow() -> datetime:
    return datetime.now(UTC)


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class RelType(str, Enum):
    """Qualifier carried by an edge."""

    BLOOD = "blood"
    ADOPTED = "adopted"
    HALF = "half"
    MARRIED = "married"
    DIVORCED = "divorced"


class EdgeKind(str, Enum):
    """Which adjacency list an edge lives in, seen from the record holding it."""

    PARENT = "parent"
    CHILD = "child"
    SPOUSE = "spouse"
    SIBLING = "sibling"


class RelationType(str, Enum):
    """How a newly created member relates to the member it is attached to."""

    PARENT = "parent"
    CHILD = "child"
    SPOUSE = "spouse"
    SIBLING = "sibling"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class TreeRole(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"


PARENTAGE_TYPES = frozenset({RelType.BLOOD, RelType.ADOPTED, RelType.HALF})

ALLOWED_TYPES: dict[EdgeKind, frozenset[RelType]] = {
    EdgeKind.PARENT: PARENTAGE_TYPES,
    EdgeKind.CHILD: PARENTAGE_TYPES,
    EdgeKind.SPOUSE: frozenset({RelType.MARRIED, RelType.DIVORCED}),
    EdgeKind.SIBLING: frozenset({RelType.BLOOD, RelType.HALF}),
}

DEFAULT_TYPES: dict[EdgeKind, RelType] = {
    EdgeKind.PARENT: RelType.BLOOD,
    EdgeKind.CHILD: RelType.BLOOD,
    EdgeKind.SPOUSE: RelType.MARRIED,
    EdgeKind.SIBLING: RelType.BLOOD,
}

INVERSE_KIND: dict[EdgeKind, EdgeKind] = {
    EdgeKind.PARENT: EdgeKind.CHILD,
    EdgeKind.CHILD: EdgeKind.PARENT,
    EdgeKind.SPOUSE: EdgeKind.SPOUSE,
    EdgeKind.SIBLING: EdgeKind.SIBLING,
}

_EDGE_FIELDS: dict[EdgeKind, str] = {
    EdgeKind.PARENT: "parents",
    EdgeKind.CHILD: "children",
    EdgeKind.SPOUSE: "spouses",
    EdgeKind.SIBLING: "siblings",
}


class Edge(BaseModel):
    """A typed link to another member."""

    model_config = ConfigDict(frozen=True)

    member_id: str
    type: RelType


# =============================================================================
# Member
# =============================================================================


class MemberAttributes(BaseModel):
    """Descriptive fields supplied when a member is created."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    display_name: str | None = Field(default=None, alias="displayName", max_length=200)
    first_name: str | None = Field(default=None, alias="firstName", max_length=50)
    last_name: str | None = Field(default=None, alias="lastName", max_length=50)
    gender: Gender = Gender.OTHER
    birth_date: date | None = Field(default=None, alias="dateOfBirth")
    death_date: date | None = Field(default=None, alias="dateOfDeath")
    bio: str | None = Field(default=None, max_length=500)
    image_url: str | None = Field(default=None, alias="imageUrl")
    email: str | None = None
    phone_number: str | None = Field(default=None, alias="phoneNumber")

    @model_validator(mode="after")
    def _fill_display_name(self) -> MemberAttributes:
        if not self.display_name:
            parts = [p.strip() for p in (self.first_name, self.last_name) if p and p.strip()]
            if not parts:
                raise ValueError("display name or first/last name is required")
            self.display_name = " ".join(parts)
        if self.birth_date and self.death_date and self.death_date < self.birth_date:
            raise ValueError("death date precedes birth date")
        return self


class MemberAttributesUpdate(BaseModel):
    """Partial attribute update; only fields explicitly set are applied."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    display_name: str | None = Field(default=None, alias="displayName", min_length=1, max_length=200)
    first_name: str | None = Field(default=None, alias="firstName", max_length=50)
    last_name: str | None = Field(default=None, alias="lastName", max_length=50)
    gender: Gender | None = None
    birth_date: date | None = Field(default=None, alias="dateOfBirth")
    death_date: date | None = Field(default=None, alias="dateOfDeath")
    bio: str | None = Field(default=None, max_length=500)
    image_url: str | None = Field(default=None, alias="imageUrl")
    email: str | None = None
    phone_number: str | None = Field(default=None, alias="phoneNumber")

    @field_validator("display_name", "gender", mode="before")
    @classmethod
    def _not_null(cls, value):
        # These may be omitted but never cleared
        if value is None:
            raise ValueError("may be omitted but not set to null")
        return value


class Member(BaseModel):
    """A person node and its adjacency lists."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=new_id)
    tree_id: str
    display_name: str
    first_name: str | None = None
    last_name: str | None = None
    gender: Gender = Gender.OTHER
    birth_date: date | None = None
    death_date: date | None = None
    bio: str | None = None
    image_url: str | None = None
    email: str | None = None
    phone_number: str | None = None

    parents: list[Edge] = Field(default_factory=list)
    children: list[Edge] = Field(default_factory=list)
    spouses: list[Edge] = Field(default_factory=list)
    siblings: list[Edge] = Field(default_factory=list)  # derived, see siblings.py

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = Field(default=0, ge=0)

    @classmethod
    def new(cls, tree_id: str, attributes: MemberAttributes) -> Member:
        return cls(tree_id=tree_id, **attributes.model_dump())

    def edges(self, kind: EdgeKind) -> list[Edge]:
        return getattr(self, _EDGE_FIELDS[kind])

    def edge_to(self, kind: EdgeKind, member_id: str) -> Edge | None:
        for edge in self.edges(kind):
            if edge.member_id == member_id:
                return edge
        return None

    def ids(self, kind: EdgeKind) -> list[str]:
        return [e.member_id for e in self.edges(kind)]

    def kinds_linking(self, member_id: str) -> list[EdgeKind]:
        """Every edge kind on this record that points at member_id."""
        return [kind for kind in EdgeKind if self.edge_to(kind, member_id) is not None]

    def set_edge(self, kind: EdgeKind, member_id: str, rel_type: RelType) -> None:
        """Add an edge, or replace the type of an existing one."""
        field_name = _EDGE_FIELDS[kind]
        kept = [e for e in getattr(self, field_name) if e.member_id != member_id]
        kept.append(Edge(member_id=member_id, type=rel_type))
        setattr(self, field_name, kept)

    def remove_edge(self, kind: EdgeKind, member_id: str) -> bool:
        field_name = _EDGE_FIELDS[kind]
        current = getattr(self, field_name)
        kept = [e for e in current if e.member_id != member_id]
        setattr(self, field_name, kept)
        return len(kept) != len(current)

    def replace_edges(self, kind: EdgeKind, edges: list[Edge]) -> None:
        setattr(self, _EDGE_FIELDS[kind], sorted(edges, key=lambda e: e.member_id))

    def related_ids(self) -> set[str]:
        """Ids referenced from any adjacency list."""
        return {e.member_id for kind in EdgeKind for e in self.edges(kind)}

    def apply_attributes(self, update: MemberAttributesUpdate) -> list[str]:
        """Apply explicitly-set attribute fields; returns the changed field names."""
        changed = []
        for name, value in update.model_dump(exclude_unset=True).items():
            if name == "display_name" and not value:
                continue
            if getattr(self, name) != value:
                setattr(self, name, value)
                changed.append(name)
        return changed

    def touch(self) -> None:
        self.updated_at = utcnow()


# =============================================================================
# Family tree
# =============================================================================


class FamilyTree(BaseModel):
    """Tree membership and admin roles. admin_ids is a subset of member_ids."""

    id: str = Field(default_factory=new_id)
    name: str = Field(min_length=1, max_length=100)
    created_by: str
    member_ids: list[str] = Field(default_factory=list)
    admin_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_updated_by: str | None = None
    version: int = Field(default=0, ge=0)

    def is_member(self, member_id: str | None) -> bool:
        return member_id is not None and member_id in self.member_ids

    def is_admin(self, member_id: str | None) -> bool:
        return member_id is not None and member_id in self.admin_ids

    def add_member(self, member_id: str, *, admin: bool = False) -> None:
        if member_id not in self.member_ids:
            self.member_ids.append(member_id)
        if admin and member_id not in self.admin_ids:
            self.admin_ids.append(member_id)

    def remove_member(self, member_id: str) -> None:
        self.member_ids = [m for m in self.member_ids if m != member_id]
        self.admin_ids = [m for m in self.admin_ids if m != member_id]

    def touch(self, by: str | None) -> None:
        self.updated_at = utcnow()
        self.last_updated_by = by


# =============================================================================
# Requests
# =============================================================================


class CreateMemberOptions(BaseModel):
    """Secondary wiring performed when a member is attached to a relative."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    connect_to_spouse: bool = Field(default=False, alias="connectToSpouse")
    connect_to_existing_parent: bool = Field(default=False, alias="connectToExistingParent")
    connect_to_children: bool = Field(default=False, alias="connectToChildren")
    edge_type: RelType | None = Field(
        default=None, alias="edgeType", description="Type of the primary edge; kind default if unset"
    )


class RelationshipUpdates(BaseModel):
    """Batched edge changes for one member, in the client's wire shape."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    add_parents: list[str] = Field(default_factory=list, alias="addParents")
    remove_parents: list[str] = Field(default_factory=list, alias="removeParents")
    add_children: list[str] = Field(default_factory=list, alias="addChildren")
    remove_children: list[str] = Field(default_factory=list, alias="removeChildren")
    add_spouses: list[str] = Field(default_factory=list, alias="addSpouses")
    remove_spouses: list[str] = Field(default_factory=list, alias="removeSpouses")
    add_siblings: list[str] = Field(default_factory=list, alias="addSiblings")
    remove_siblings: list[str] = Field(default_factory=list, alias="removeSiblings")
    relationship_types: dict[str, RelType] = Field(default_factory=dict, alias="relationshipTypes")

    def referenced_ids(self) -> set[str]:
        ids: set[str] = set(self.relationship_types)
        for name in (
            "add_parents", "remove_parents", "add_children", "remove_children",
            "add_spouses", "remove_spouses", "add_siblings", "remove_siblings",
        ):
            ids.update(getattr(self, name))
        return ids

    @property
    def is_empty(self) -> bool:
        return not self.referenced_ids()


# =============================================================================
# Invitation
# =============================================================================


class InviteeContact(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+$")
    display_name: str | None = Field(default=None, alias="displayName")
    gender: Gender = Gender.OTHER


class ProposedRelation(BaseModel):
    """Where an invitee is attached once they accept."""

    model_config = ConfigDict(populate_by_name=True)

    relation_type: RelationType = Field(alias="relationType")
    target_member_id: str = Field(alias="targetMemberId")
    options: CreateMemberOptions = Field(default_factory=CreateMemberOptions)


class Invitation(BaseModel):
    """Pending -> accepted | rejected. Resolved invitations are kept for audit."""

    id: str = Field(default_factory=new_id)
    tree_id: str
    inviter_id: str
    invitee: InviteeContact
    proposed_relation: ProposedRelation
    role: TreeRole = TreeRole.MEMBER
    message: str | None = Field(default=None, max_length=1000)
    status: InvitationStatus = InvitationStatus.PENDING
    expires_at: datetime
    created_at: datetime = Field(default_factory=utcnow)
    resolved_at: datetime | None = None
    member_id: str | None = Field(default=None, description="Member created on acceptance")
    result_member_ids: list[str] = Field(
        default_factory=list, description="Members written by the acceptance, replayed on repeat calls"
    )
    version: int = Field(default=0, ge=0)

    @classmethod
    def expiring_in(cls, days: int, **data) -> Invitation:
        return cls(expires_at=utcnow() + timedelta(days=days), **data)

    @property
    def is_resolved(self) -> bool:
        return self.status != InvitationStatus.PENDING

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at
