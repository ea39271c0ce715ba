"""Sibling sets derived from shared parentage.

Two members are siblings iff they share at least one parent. The edge is
"blood" when some shared parent is linked to both of them by blood edges,
otherwise "half". Sibling lists are never written from a request; they are
recomputed here whenever a parent set changes.
"""
from __future__ import annotations

from typing import Iterable, Protocol

import structlog

from .models import Edge, EdgeKind, Member, RelType

logger = structlog.get_logger(__name__)


class SiblingView(Protocol):
    def find_member(self, member_id: str) -> Member | None: ...

    def put(self, record: Member) -> None: ...


def derive_siblings(member: Member, view: SiblingView) -> list[Edge]:
    """Compute the sibling list implied by the member's current parents."""
    shares_blood: dict[str, bool] = {}
    for parent_edge in member.parents:
        parent = view.find_member(parent_edge.member_id)
        if parent is None:
            continue
        for child_edge in parent.children:
            if child_edge.member_id == member.id:
                continue
            blood = parent_edge.type == RelType.BLOOD and child_edge.type == RelType.BLOOD
            shares_blood[child_edge.member_id] = shares_blood.get(child_edge.member_id, False) or blood
    return sorted(
        (Edge(member_id=mid, type=RelType.BLOOD if blood else RelType.HALF) for mid, blood in shares_blood.items()),
        key=lambda e: e.member_id,
    )


def _sync(member: Member, view: SiblingView) -> tuple[bool, set[str]]:
    """Rewrite one member's siblings. Returns (changed, old | new sibling ids)."""
    old = sorted(member.siblings, key=lambda e: e.member_id)
    new = derive_siblings(member, view)
    peers = {e.member_id for e in old} | {e.member_id for e in new}
    if new == old:
        return False, peers
    member.replace_edges(EdgeKind.SIBLING, new)
    member.touch()
    view.put(member)
    return True, peers


def refresh_siblings(changed_ids: Iterable[str], view: SiblingView) -> set[str]:
    """Re-derive siblings for members whose parents changed, and their peers.

    Peers are every member that was a sibling before or is one now. Only
    pairs involving a changed member can differ, so one pass over the peers
    is enough. Running this twice without a parent change in between writes
    nothing the second time.

    Returns:
        Ids of members whose sibling list was rewritten.
    """
    changed_ids = set(changed_ids)
    rewritten: set[str] = set()
    peers: set[str] = set()
    for member_id in sorted(changed_ids):
        member = view.find_member(member_id)
        if member is None:
            continue
        changed, member_peers = _sync(member, view)
        if changed:
            rewritten.add(member_id)
        peers |= member_peers

    for member_id in sorted(peers - changed_ids):
        member = view.find_member(member_id)
        if member is None:
            logger.debug("siblings.peer_missing", member_id=member_id)
            continue
        changed, _ = _sync(member, view)
        if changed:
            rewritten.add(member_id)

    if rewritten:
        logger.debug("siblings.refreshed", changed=len(changed_ids), rewritten=sorted(rewritten))
    return rewritten
