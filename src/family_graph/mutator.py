"""Batched, atomic relationship updates."""
from __future__ import annotations

from typing import Any

import structlog

from .config import EngineConfig
from .guards import parse_request, require_admin_or_self, require_in_tree, verify_records
from .models import EdgeKind, RelationshipUpdates
from .results import OperationResult
from .siblings import refresh_siblings
from .store.unit_of_work import UnitOfWork
from .transactions import TransactionRunner
from .validator import EdgeOp, RelationshipDelta, build_delta, validate_delta

logger = structlog.get_logger(__name__)


def apply_delta(delta: RelationshipDelta, uow: UnitOfWork) -> set[str]:
    """Write a validated delta to both ends of every edge.

    Returns the ids of members whose parent set changed (including a change
    of parent edge type), which is what sibling derivation needs.
    """
    parent_changed: set[str] = set()
    for change in delta:
        source = uow.member(change.source)
        target = uow.member(change.target)
        if change.kind == EdgeKind.PARENT:
            forward, backward = EdgeKind.CHILD, EdgeKind.PARENT
            parent_changed.add(target.id)
        else:
            forward = backward = EdgeKind.SPOUSE

        if change.op == EdgeOp.REMOVE:
            source.remove_edge(forward, target.id)
            target.remove_edge(backward, source.id)
        else:
            source.set_edge(forward, target.id, change.rel_type)
            target.set_edge(backward, source.id, change.rel_type)
        for member in (source, target):
            member.touch()
            uow.put(member)
    return parent_changed


class RelationshipMutator:
    """Applies add/remove/retype batches for one member in one transaction."""

    def __init__(self, runner: TransactionRunner, config: EngineConfig | None = None) -> None:
        self.runner = runner
        self.config = config or runner.config

    def update_relationships(
        self,
        member_id: str,
        tree_id: str,
        updates: RelationshipUpdates | dict[str, Any],
        *,
        caller_id: str | None,
    ) -> OperationResult:
        """Validate the whole batch against one snapshot, then commit it.

        Removals are applied before additions, so replacing a parent in a
        single batch works. Siblings are re-derived for every member whose
        parents changed. The tree record is read but never written.

        Raises:
            ValidationError: the batch would break a graph invariant, or
                references a member of another tree
            NotFoundError: the member, tree or a referenced member is missing
            PermissionDeniedError: caller is neither an admin nor the member
            ConflictError: retries were exhausted
        """
        updates = parse_request(RelationshipUpdates, updates)

        def work(uow: UnitOfWork) -> OperationResult:
            tree = uow.tree(tree_id)
            require_admin_or_self(tree, caller_id, member_id, "update relationships")
            subject = uow.member(member_id)
            require_in_tree(tree, subject)
            for other_id in sorted(updates.referenced_ids()):
                require_in_tree(tree, uow.member(other_id))

            delta = validate_delta(
                build_delta(member_id, updates), uow, traversal_limit=self.config.traversal_limit
            )
            parent_changed = apply_delta(delta, uow)
            refresh_siblings(parent_changed, uow)
            verify_records(uow)
            return OperationResult(
                operation="update_relationships",
                member_id=member_id,
                tree=tree,
                updated_members=uow.written_members(),
            )

        result = self.runner.run("update_relationships", work, member_id=member_id, tree_id=tree_id)
        logger.info(
            "relationships.updated",
            member_id=member_id,
            tree_id=tree_id,
            written=[m.id for m in result.updated_members],
        )
        return result
