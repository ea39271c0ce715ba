"""Structural checks for relationship changes.

Everything here is side-effect free. A RelationshipDelta is checked
against a read-only GraphView (anything with member()/find_member(), e.g. a
UnitOfWork) and either comes back normalized or is rejected with a
ValidationError listing every Violation found in the first failing phase.

Check phases, in order:
1. self-reference and derived-field (sibling) requests
2. duplicate / missing edges, evaluated on an overlay after each change
3. edge type compatibility against ALLOWED_TYPES
4. acyclicity of the parent direction
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Protocol

from .exceptions import ValidationError, Violation
from .models import (
    ALLOWED_TYPES,
    DEFAULT_TYPES,
    INVERSE_KIND,
    EdgeKind,
    Member,
    RelationshipUpdates,
    RelType,
)


class GraphView(Protocol):
    def member(self, member_id: str) -> Member: ...

    def find_member(self, member_id: str) -> Member | None: ...


class EdgeOp(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    RETYPE = "retype"


_OP_ORDER = {EdgeOp.REMOVE: 0, EdgeOp.RETYPE: 1, EdgeOp.ADD: 2}


@dataclass(frozen=True)
class EdgeChange:
    """One requested edge change.

    PARENT changes read "source is a parent of target". SPOUSE and SIBLING
    changes are unordered pairs. A RETYPE built from a bare type override
    has kind None until the validator resolves it against existing edges.
    """

    op: EdgeOp
    kind: EdgeKind | None
    source: str
    target: str
    rel_type: RelType | None = None

    @property
    def pair(self) -> frozenset[str]:
        return frozenset((self.source, self.target))

    def key(self) -> tuple:
        if self.kind == EdgeKind.PARENT:
            return (self.kind, self.source, self.target)
        return (self.kind, *sorted((self.source, self.target)))

    def describe(self) -> str:
        kind = self.kind.value if self.kind else "edge"
        return f"{self.op.value} {kind} {self.source} -> {self.target}"


@dataclass
class RelationshipDelta:
    changes: list[EdgeChange] = field(default_factory=list)

    def member_ids(self) -> set[str]:
        ids: set[str] = set()
        for change in self.changes:
            ids.update((change.source, change.target))
        return ids

    def __iter__(self):
        return iter(self.changes)

    def __len__(self) -> int:
        return len(self.changes)


def build_delta(member_id: str, updates: RelationshipUpdates) -> RelationshipDelta:
    """Translate a client update batch for one member into canonical edge changes."""
    types = updates.relationship_types
    changes: list[EdgeChange] = []

    def add(kind: EdgeKind, source: str, target: str, other: str) -> None:
        changes.append(EdgeChange(EdgeOp.ADD, kind, source, target, types.get(other, DEFAULT_TYPES[kind])))

    for other in updates.remove_parents:
        changes.append(EdgeChange(EdgeOp.REMOVE, EdgeKind.PARENT, other, member_id))
    for other in updates.remove_children:
        changes.append(EdgeChange(EdgeOp.REMOVE, EdgeKind.PARENT, member_id, other))
    for other in updates.remove_spouses:
        changes.append(EdgeChange(EdgeOp.REMOVE, EdgeKind.SPOUSE, member_id, other))
    for other in updates.remove_siblings:
        changes.append(EdgeChange(EdgeOp.REMOVE, EdgeKind.SIBLING, member_id, other))

    for other in updates.add_parents:
        add(EdgeKind.PARENT, other, member_id, other)
    for other in updates.add_children:
        add(EdgeKind.PARENT, member_id, other, other)
    for other in updates.add_spouses:
        add(EdgeKind.SPOUSE, member_id, other, other)
    for other in updates.add_siblings:
        add(EdgeKind.SIBLING, member_id, other, other)

    added = {*updates.add_parents, *updates.add_children, *updates.add_spouses, *updates.add_siblings}
    for other, rel_type in types.items():
        if other not in added:
            changes.append(EdgeChange(EdgeOp.RETYPE, None, member_id, other, rel_type))
    return RelationshipDelta(changes)


# =============================================================================
# Overlay
# =============================================================================


class _Overlay:
    """Post-change adjacency for the members a delta touches.

    Holds parent/child/spouse edges only; sibling edges are derived later and
    are judged through shared parents instead.
    """

    def __init__(self, view: GraphView) -> None:
        self._view = view
        self._adj: dict[str, dict[EdgeKind, dict[str, RelType]]] = {}

    def _entry(self, member_id: str) -> dict[EdgeKind, dict[str, RelType]]:
        if member_id not in self._adj:
            member = self._view.member(member_id)
            self._adj[member_id] = {
                kind: {e.member_id: e.type for e in member.edges(kind)}
                for kind in (EdgeKind.PARENT, EdgeKind.CHILD, EdgeKind.SPOUSE)
            }
        return self._adj[member_id]

    def touch(self, member_id: str) -> None:
        self._entry(member_id)

    def edge_type(self, kind: EdgeKind, holder: str, other: str) -> RelType | None:
        return self._entry(holder)[kind].get(other)

    def kinds_between(self, a: str, b: str) -> list[EdgeKind]:
        entry = self._entry(a)
        return [kind for kind, edges in entry.items() if b in edges]

    def set(self, kind: EdgeKind, holder: str, other: str, rel_type: RelType) -> None:
        self._entry(holder)[kind][other] = rel_type
        self._entry(other)[INVERSE_KIND[kind]][holder] = rel_type

    def remove(self, kind: EdgeKind, holder: str, other: str) -> None:
        self._entry(holder)[kind].pop(other, None)
        self._entry(other)[INVERSE_KIND[kind]].pop(holder, None)

    def parents(self, member_id: str) -> Iterable[str]:
        if member_id in self._adj:
            return list(self._adj[member_id][EdgeKind.PARENT])
        member = self._view.find_member(member_id)
        return member.ids(EdgeKind.PARENT) if member is not None else []

    def children(self, member_id: str) -> list[str]:
        return list(self._entry(member_id)[EdgeKind.CHILD])


def _holder_view(change: EdgeChange) -> tuple[EdgeKind, str, str]:
    """(kind, holder, other) as stored on the holder's record."""
    if change.kind == EdgeKind.PARENT:
        return EdgeKind.CHILD, change.source, change.target
    return change.kind, change.source, change.target  # type: ignore[return-value]


# =============================================================================
# Checker
# =============================================================================


class _Checker:
    def __init__(self, view: GraphView, traversal_limit: int) -> None:
        self.view = view
        self.traversal_limit = traversal_limit
        self.overlay = _Overlay(view)

    def run(self, delta: RelationshipDelta) -> tuple[RelationshipDelta, list[Violation]]:
        for member_id in sorted(delta.member_ids()):
            self.overlay.touch(member_id)  # NotFoundError surfaces before any check

        phases: list[Callable[[list[EdgeChange]], list[Violation]]] = [
            self._check_self_and_derived,
            self._check_existence,
            self._check_types,
            self._check_acyclic,
        ]
        changes = self._resolve_retypes(delta.changes)
        normalized, violations = self._normalize(changes)
        if violations:
            return RelationshipDelta(normalized), violations
        for phase in phases:
            violations = phase(normalized)
            if violations:
                break
        return RelationshipDelta(normalized), violations

    # -- normalization ---------------------------------------------------

    def _resolve_retypes(self, changes: list[EdgeChange]) -> list[EdgeChange]:
        resolved = []
        for change in changes:
            if change.op != EdgeOp.RETYPE or change.kind is not None:
                resolved.append(change)
                continue
            holder, other = change.source, change.target
            kinds = [k for k in self.overlay.kinds_between(holder, other) if k != EdgeKind.SIBLING]
            if EdgeKind.PARENT in kinds:
                resolved.append(EdgeChange(EdgeOp.RETYPE, EdgeKind.PARENT, other, holder, change.rel_type))
            elif EdgeKind.CHILD in kinds:
                resolved.append(EdgeChange(EdgeOp.RETYPE, EdgeKind.PARENT, holder, other, change.rel_type))
            elif EdgeKind.SPOUSE in kinds:
                resolved.append(EdgeChange(EdgeOp.RETYPE, EdgeKind.SPOUSE, holder, other, change.rel_type))
            else:
                # Left unresolved; _check_existence reports it
                resolved.append(change)
        return resolved

    def _normalize(self, changes: list[EdgeChange]) -> tuple[list[EdgeChange], list[Violation]]:
        seen: dict[tuple, EdgeChange] = {}
        violations = []
        for change in changes:
            dedupe_key = (change.op, change.key())
            previous = seen.get(dedupe_key)
            if previous is None:
                seen[dedupe_key] = change
            elif previous.rel_type != change.rel_type:
                violations.append(
                    Violation(
                        "duplicate_edge",
                        f"conflicting types requested for {change.describe()}",
                        (change.source, change.target),
                    )
                )
        ordered = sorted(seen.values(), key=lambda c: _OP_ORDER[c.op])
        return ordered, violations

    # -- phase 1 -----------------------------------------------------------

    def _check_self_and_derived(self, changes: list[EdgeChange]) -> list[Violation]:
        violations = []
        for change in changes:
            if change.source == change.target:
                violations.append(
                    Violation("self_reference", f"member cannot relate to itself ({change.describe()})", (change.source,))
                )
            if change.kind == EdgeKind.SIBLING:
                violations.append(
                    Violation(
                        "derived_field",
                        "siblings are derived from shared parents; change parent edges instead",
                        (change.source, change.target),
                    )
                )
        return violations

    # -- phase 2 -----------------------------------------------------------

    def _check_existence(self, changes: list[EdgeChange]) -> list[Violation]:
        violations = []
        adds = []
        for change in changes:
            if change.kind is None:
                violations.append(
                    Violation("missing_edge", f"no edge to retype between {change.source} and {change.target}",
                              (change.source, change.target))
                )
                continue
            kind, holder, other = _holder_view(change)
            current = self.overlay.edge_type(kind, holder, other)
            if change.op in (EdgeOp.REMOVE, EdgeOp.RETYPE):
                if current is None:
                    violations.append(
                        Violation("missing_edge", f"edge does not exist ({change.describe()})", (holder, other))
                    )
                elif change.op == EdgeOp.REMOVE:
                    self.overlay.remove(kind, holder, other)
                else:
                    self.overlay.set(kind, holder, other, change.rel_type)  # type: ignore[arg-type]
                continue

            existing = self.overlay.kinds_between(holder, other)
            if existing:
                names = ", ".join(k.value for k in existing)
                violations.append(
                    Violation("duplicate_edge", f"members already linked as {names} ({change.describe()})",
                              (holder, other))
                )
                continue
            self.overlay.set(kind, holder, other, change.rel_type)  # type: ignore[arg-type]
            adds.append(change)

        violations.extend(self._check_sibling_overlap(adds))
        return violations

    def _check_sibling_overlap(self, adds: list[EdgeChange]) -> list[Violation]:
        """Members that will share a parent must not also be parent/child/spouse."""
        pairs: set[frozenset[str]] = set()
        for change in adds:
            pairs.add(change.pair)
            if change.kind == EdgeKind.PARENT:
                for sibling in self.overlay.children(change.source):
                    if sibling != change.target:
                        pairs.add(frozenset((change.target, sibling)))

        violations = []
        for pair in sorted(pairs, key=sorted):
            a, b = sorted(pair)
            if not set(self.overlay.parents(a)) & set(self.overlay.parents(b)):
                continue
            linked = self.overlay.kinds_between(a, b)
            if linked:
                names = ", ".join(k.value for k in linked)
                violations.append(
                    Violation("duplicate_edge", f"{a} and {b} would be siblings and {names}", (a, b))
                )
        return violations

    # -- phase 3 -----------------------------------------------------------

    def _check_types(self, changes: list[EdgeChange]) -> list[Violation]:
        violations = []
        for change in changes:
            if change.op == EdgeOp.REMOVE or change.kind is None:
                continue
            if change.rel_type not in ALLOWED_TYPES[change.kind]:
                allowed = ", ".join(sorted(t.value for t in ALLOWED_TYPES[change.kind]))
                violations.append(
                    Violation(
                        "incompatible_type",
                        f"{change.rel_type.value if change.rel_type else None} is not a valid "
                        f"{change.kind.value} edge type (allowed: {allowed})",
                        (change.source, change.target),
                    )
                )
        return violations

    # -- phase 4 -----------------------------------------------------------

    def _check_acyclic(self, changes: list[EdgeChange]) -> list[Violation]:
        violations = []
        for change in changes:
            if change.op != EdgeOp.ADD or change.kind != EdgeKind.PARENT:
                continue
            # source becomes a parent of target: target must not be an ancestor of source
            found, exhausted = self._is_ancestor(change.target, change.source)
            if found:
                violations.append(
                    Violation("cycle", f"{change.target} is already an ancestor of {change.source}",
                              (change.source, change.target))
                )
            elif exhausted:
                violations.append(
                    Violation("traversal_limit",
                              f"ancestry search exceeded {self.traversal_limit} members",
                              (change.source, change.target))
                )
        return violations

    def _is_ancestor(self, candidate: str, start: str) -> tuple[bool, bool]:
        visited = {start}
        queue = deque([start])
        while queue:
            current = queue.popleft()
            for parent in self.overlay.parents(current):
                if parent == candidate:
                    return True, False
                if parent in visited:
                    continue
                if len(visited) >= self.traversal_limit:
                    return False, True
                visited.add(parent)
                queue.append(parent)
        return False, False


# =============================================================================
# Public API
# =============================================================================


def find_violations(
    delta: RelationshipDelta, view: GraphView, *, traversal_limit: int = 10_000
) -> list[Violation]:
    """Return the violations of the first failing check phase (empty if valid)."""
    return _Checker(view, traversal_limit).run(delta)[1]


def validate_delta(
    delta: RelationshipDelta, view: GraphView, *, traversal_limit: int = 10_000
) -> RelationshipDelta:
    """Return the normalized delta, or raise ValidationError.

    Raises:
        NotFoundError: a referenced member does not exist
        ValidationError: the change would break a graph invariant
    """
    normalized, violations = _Checker(view, traversal_limit).run(delta)
    if violations:
        raise ValidationError.from_violations(violations)
    return normalized


def check_member(member: Member) -> list[Violation]:
    """Structural invariants that can be checked on a single record."""
    violations = []
    linked: dict[str, EdgeKind] = {}
    for kind in EdgeKind:
        for edge in member.edges(kind):
            if edge.member_id == member.id:
                violations.append(Violation("self_reference", f"{member.id} lists itself as {kind.value}", (member.id,)))
            if edge.type not in ALLOWED_TYPES[kind]:
                violations.append(
                    Violation("incompatible_type", f"{kind.value} edge to {edge.member_id} has type {edge.type.value}",
                              (member.id, edge.member_id))
                )
            if edge.member_id in linked:
                violations.append(
                    Violation(
                        "duplicate_edge",
                        f"{member.id} links {edge.member_id} as both {linked[edge.member_id].value} and {kind.value}",
                        (member.id, edge.member_id),
                    )
                )
            linked[edge.member_id] = kind
    return violations


def check_symmetry(member: Member, lookup: Callable[[str], Member | None]) -> list[Violation]:
    """Every edge must be mirrored, with the same type, on the other record.

    Only counterparts that lookup() returns are compared.
    """
    violations = []
    for kind in EdgeKind:
        for edge in member.edges(kind):
            other = lookup(edge.member_id)
            if other is None:
                continue
            mirror = other.edge_to(INVERSE_KIND[kind], member.id)
            if mirror is None or mirror.type != edge.type:
                violations.append(
                    Violation(
                        "asymmetric_edge",
                        f"{kind.value} edge {member.id} -> {other.id} is not mirrored on {other.id}",
                        (member.id, other.id),
                    )
                )
    return violations
