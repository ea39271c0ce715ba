"""Member creation, deletion and attribute updates.

Creation can attach the new member to an existing relative in the same
transaction, with optional secondary wiring:

    relation  option                      extra edges
    --------  --------------------------  ---------------------------------------
    parent    connect_to_existing_parent  new parent marries each existing parent
    child     connect_to_spouse           target's married spouses become parents
    spouse    connect_to_children         new spouse becomes parent of target's children
    sibling   (always)                    new member gets the target's parents

Deletion strips every edge that references the member before the record
goes, then re-derives siblings for everyone whose parent set lost it.
"""
from __future__ import annotations

from typing import Any

import structlog

from .config import EngineConfig
from .exceptions import ValidationError, Violation
from .guards import parse_request, require_admin, require_admin_or_self, require_in_tree, verify_records
from .models import (
    DEFAULT_TYPES,
    INVERSE_KIND,
    CreateMemberOptions,
    EdgeKind,
    FamilyTree,
    Member,
    MemberAttributes,
    MemberAttributesUpdate,
    RelationType,
    RelType,
)
from .mutator import apply_delta
from .results import OperationResult
from .siblings import refresh_siblings
from .store.unit_of_work import UnitOfWork
from .transactions import TransactionRunner
from .validator import EdgeChange, EdgeOp, RelationshipDelta, validate_delta

logger = structlog.get_logger(__name__)


def plan_attachment(
    new_member_id: str,
    relation: RelationType,
    target: Member,
    options: CreateMemberOptions,
) -> RelationshipDelta:
    """Edge changes that attach a new member to target."""
    add = EdgeOp.ADD
    parent = EdgeKind.PARENT
    changes: list[EdgeChange] = []

    if relation == RelationType.PARENT:
        changes.append(EdgeChange(add, parent, new_member_id, target.id, options.edge_type or DEFAULT_TYPES[parent]))
        if options.connect_to_existing_parent:
            for edge in target.parents:
                changes.append(EdgeChange(add, EdgeKind.SPOUSE, new_member_id, edge.member_id, RelType.MARRIED))

    elif relation == RelationType.CHILD:
        changes.append(EdgeChange(add, parent, target.id, new_member_id, options.edge_type or DEFAULT_TYPES[parent]))
        if options.connect_to_spouse:
            for edge in target.spouses:
                if edge.type == RelType.MARRIED:
                    changes.append(EdgeChange(add, parent, edge.member_id, new_member_id, DEFAULT_TYPES[parent]))

    elif relation == RelationType.SPOUSE:
        spouse = EdgeKind.SPOUSE
        changes.append(EdgeChange(add, spouse, target.id, new_member_id, options.edge_type or DEFAULT_TYPES[spouse]))
        if options.connect_to_children:
            for edge in target.children:
                changes.append(EdgeChange(add, parent, new_member_id, edge.member_id, DEFAULT_TYPES[parent]))

    elif relation == RelationType.SIBLING:
        if not target.parents:
            raise ValidationError(
                "Cannot add a sibling to a member without parents",
                [Violation("no_shared_parent", "siblings are derived from shared parents", (target.id,))],
            )
        for edge in target.parents:
            changes.append(EdgeChange(add, parent, edge.member_id, new_member_id, options.edge_type or edge.type))

    return RelationshipDelta(changes)


def attach_new_member(
    uow: UnitOfWork,
    tree: FamilyTree,
    attributes: MemberAttributes,
    relation: RelationType | None,
    target_member_id: str | None,
    options: CreateMemberOptions,
    *,
    actor: str | None,
    admin: bool = False,
    traversal_limit: int = 10_000,
) -> Member:
    """Stage a new member in tree, wired to target_member_id per relation.

    Shared by create_member and invitation acceptance. Runs the pre-commit
    guard; the caller commits.
    """
    target = None
    if relation is None and target_member_id is not None:
        raise ValidationError(
            "A relation type is required when a target member is given",
            [Violation("missing_relation", f"target {target_member_id} needs a relation type", (target_member_id,))],
        )
    if relation is not None:
        if target_member_id is None:
            raise ValidationError(
                "A target member is required when a relation is given",
                [Violation("missing_target", f"relation {relation.value} needs a target member")],
            )
        target = uow.member(target_member_id)
        require_in_tree(tree, target)

    member = Member.new(tree.id, attributes)
    uow.add(member)
    tree.add_member(member.id, admin=admin)
    tree.touch(actor)
    uow.put(tree)

    if target is not None:
        delta = validate_delta(
            plan_attachment(member.id, relation, target, options), uow, traversal_limit=traversal_limit
        )
        refresh_siblings(apply_delta(delta, uow), uow)
    verify_records(uow)
    return member


class MemberLifecycleManager:
    def __init__(self, runner: TransactionRunner, config: EngineConfig | None = None) -> None:
        self.runner = runner
        self.config = config or runner.config

    def create_member(
        self,
        tree_id: str,
        attributes: MemberAttributes | dict[str, Any],
        relation_type: RelationType | str | None = None,
        target_member_id: str | None = None,
        options: CreateMemberOptions | dict[str, Any] | None = None,
        *,
        caller_id: str | None,
    ) -> OperationResult:
        """Create a member, optionally attached to an existing relative.

        Raises:
            ValidationError: bad attributes, or wiring would break an invariant
            NotFoundError: the tree or target member does not exist
            PermissionDeniedError: caller is not a tree admin
        """
        attributes = parse_request(MemberAttributes, attributes)
        options = parse_request(CreateMemberOptions, options)
        relation = _parse_relation(relation_type)

        def work(uow: UnitOfWork) -> OperationResult:
            tree = uow.tree(tree_id)
            require_admin(tree, caller_id, "add members")
            member = attach_new_member(
                uow,
                tree,
                attributes,
                relation,
                target_member_id,
                options,
                actor=caller_id,
                traversal_limit=self.config.traversal_limit,
            )
            return OperationResult(
                operation="create_member",
                member_id=member.id,
                tree=tree,
                updated_members=uow.written_members(),
            )

        result = self.runner.run("create_member", work, tree_id=tree_id, relation=relation_type)
        logger.info(
            "member.created",
            member_id=result.member_id,
            tree_id=tree_id,
            relation=relation.value if relation else None,
            target_member_id=target_member_id,
        )
        return result

    def delete_member(self, member_id: str, tree_id: str, caller_id: str | None) -> OperationResult:
        """Remove a member and every edge that references it.

        Raises:
            ValidationError: the member is the tree's last admin
            NotFoundError: the member or tree does not exist
            PermissionDeniedError: caller is not a tree admin
        """

        def work(uow: UnitOfWork) -> OperationResult:
            tree = uow.tree(tree_id)
            require_admin(tree, caller_id, "remove members")
            member = uow.member(member_id)
            require_in_tree(tree, member)
            if tree.admin_ids == [member_id]:
                raise ValidationError(
                    "Cannot remove the last admin of a tree",
                    [Violation("last_admin", "a tree must keep at least one admin", (member_id,))],
                )

            rederive = set(member.ids(EdgeKind.CHILD)) | set(member.ids(EdgeKind.SIBLING))
            for kind in EdgeKind:
                for edge in member.edges(kind):
                    other = uow.find_member(edge.member_id)
                    if other is None:
                        logger.warning("member.dangling_edge", member_id=member_id, other_id=edge.member_id)
                        continue
                    other.remove_edge(INVERSE_KIND[kind], member_id)
                    other.touch()
                    uow.put(other)

            uow.delete(member)
            tree.remove_member(member_id)
            tree.touch(caller_id)
            uow.put(tree)
            refresh_siblings(rederive, uow)
            verify_records(uow)
            return OperationResult(
                operation="delete_member",
                member_id=member_id,
                tree=tree,
                updated_members=uow.written_members(),
                removed_member_ids=[member_id],
            )

        result = self.runner.run("delete_member", work, member_id=member_id, tree_id=tree_id)
        logger.info("member.deleted", member_id=member_id, tree_id=tree_id, caller_id=caller_id)
        return result

    def update_member(
        self,
        member_id: str,
        tree_id: str,
        attributes: MemberAttributesUpdate | dict[str, Any],
        *,
        caller_id: str | None,
    ) -> OperationResult:
        """Update descriptive fields. Admins may edit anyone; members may edit themselves."""
        update = parse_request(MemberAttributesUpdate, attributes)

        def work(uow: UnitOfWork) -> OperationResult:
            tree = uow.tree(tree_id)
            require_admin_or_self(tree, caller_id, member_id, "edit other members")
            member = uow.member(member_id)
            require_in_tree(tree, member)
            changed = member.apply_attributes(update)
            if member.birth_date and member.death_date and member.death_date < member.birth_date:
                raise ValidationError(
                    "Date of death precedes date of birth",
                    [Violation("invalid_dates", "death date precedes birth date", (member_id,))],
                )
            if changed:
                member.touch()
                uow.put(member)
            verify_records(uow)
            return OperationResult(
                operation="update_member",
                member_id=member_id,
                tree=tree,
                updated_members=uow.written_members(),
            )

        return self.runner.run("update_member", work, member_id=member_id, tree_id=tree_id)

    def get_member(self, member_id: str) -> Member:
        return self.runner.run("get_member", lambda uow: uow.member(member_id), member_id=member_id)


def _parse_relation(value: RelationType | str | None) -> RelationType | None:
    if value is None or isinstance(value, RelationType):
        return value
    try:
        return RelationType(value)
    except ValueError:
        allowed = ", ".join(r.value for r in RelationType)
        raise ValidationError(
            f"Unknown relation type: {value}",
            [Violation("invalid_input", f"relation type must be one of: {allowed}")],
        ) from None
