"""Authorization checks and the pre-commit invariant guard."""
from __future__ import annotations

from typing import Any, TypeVar

import pydantic
import structlog

from .exceptions import PermissionDeniedError, ValidationError, Violation
from .models import FamilyTree, Member
from .store.unit_of_work import UnitOfWork
from .validator import check_member, check_symmetry

logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=pydantic.BaseModel)


def parse_request(model: type[M], data: M | dict[str, Any] | None) -> M:
    """Accept a model instance or its wire dict; bad input is a ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data or {})
    except pydantic.ValidationError as e:
        violations = [
            Violation("invalid_input", f"{'.'.join(str(p) for p in err['loc']) or model.__name__}: {err['msg']}")
            for err in e.errors()
        ]
        raise ValidationError(f"Invalid {model.__name__}: {e.error_count()} error(s)", violations) from e


def require_admin(tree: FamilyTree, caller_id: str | None, action: str) -> None:
    if not tree.is_admin(caller_id):
        raise PermissionDeniedError(caller_id, tree.id, action)


def require_admin_or_self(tree: FamilyTree, caller_id: str | None, member_id: str, action: str) -> None:
    if caller_id == member_id and tree.is_member(caller_id):
        return
    require_admin(tree, caller_id, action)


def require_in_tree(tree: FamilyTree, member: Member) -> None:
    """Reject members that belong to another tree."""
    if member.tree_id != tree.id or not tree.is_member(member.id):
        raise ValidationError(
            f"Member {member.id} does not belong to tree {tree.id}",
            [Violation("cross_tree", "members of different trees cannot be linked", (member.id,))],
        )


def verify_records(uow: UnitOfWork) -> None:
    """Re-check every record an operation is about to write.

    Member records are checked on their own and for edge symmetry against
    every counterpart already held by the unit of work. Tree records must
    keep admin_ids a non-empty subset of member_ids.
    """
    violations: list[Violation] = []
    for record in uow.written:
        if isinstance(record, Member):
            violations.extend(check_member(record))
            violations.extend(check_symmetry(record, uow.cached_member))
            tree = uow.cached_tree(record.tree_id)
            if tree is not None and not tree.is_member(record.id):
                violations.append(
                    Violation("tree_membership", f"{record.id} is not listed in tree {tree.id}", (record.id,))
                )
        elif isinstance(record, FamilyTree):
            outsiders = sorted(set(record.admin_ids) - set(record.member_ids))
            if outsiders:
                violations.append(Violation("admin_subset", "admins must be tree members", tuple(outsiders)))
            if not record.admin_ids:
                violations.append(Violation("no_admin", f"tree {record.id} must keep at least one admin"))
    if violations:
        logger.error("guard.rejected", violations=[v.to_dict() for v in violations])
        raise ValidationError.from_violations(violations)
