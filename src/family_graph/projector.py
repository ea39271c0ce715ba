"""Convert stored records into the node shape the tree renderer consumes."""
from __future__ import annotations

from typing import Any, Iterable

from .models import Edge, FamilyTree, Member


def _edges(edges: list[Edge]) -> list[dict[str, str]]:
    return [{"id": e.member_id, "type": e.type.value} for e in edges]


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def project_member(member: Member, tree: FamilyTree | None = None) -> dict[str, Any]:
    """Render one member as a renderer node.

    Example:
        >>> project_member(member, tree)["parents"]
        [{'id': '0190...', 'type': 'blood'}]
    """
    return {
        "id": member.id,
        "gender": member.gender.value,
        "parents": _edges(member.parents),
        "children": _edges(member.children),
        "siblings": _edges(member.siblings),
        "spouses": _edges(member.spouses),
        "attributes": {
            "displayName": member.display_name,
            "firstName": member.first_name,
            "lastName": member.last_name,
            "dateOfBirth": _iso(member.birth_date),
            "dateOfDeath": _iso(member.death_date),
            "bio": member.bio,
            "profilePicture": member.image_url,
            "familyTreeId": member.tree_id,
            "treeOwnerId": tree.created_by if tree else None,
            "isAdmin": tree.is_admin(member.id) if tree else False,
        },
    }


def project_tree(tree: FamilyTree, members: Iterable[Member]) -> dict[str, Any]:
    """Render a whole tree; nodes follow the tree's member order."""
    by_id = {m.id: m for m in members}
    nodes = [project_member(by_id[mid], tree) for mid in tree.member_ids if mid in by_id]
    root_id = tree.created_by if tree.created_by in by_id else (nodes[0]["id"] if nodes else None)
    return {"treeId": tree.id, "treeName": tree.name, "rootId": root_id, "nodes": nodes}
