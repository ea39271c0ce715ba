"""Typed errors surfaced by engine operations.

Validation, permission and not-found errors are returned to the caller
unchanged. ConflictError is retried internally before it surfaces.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes handed back to request handlers."""

    VALIDATION = "validation_error"
    NOT_FOUND = "not_found"
    PERMISSION = "permission_denied"
    CONFLICT = "conflict"
    STORAGE = "storage_error"


class FamilyGraphError(Exception):
    """Base class for every engine error."""

    code: ErrorCode = ErrorCode.STORAGE

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Payload for the HTTP layer."""
        return {"error": self.message, "code": self.code.value, "details": self.details}


@dataclass(frozen=True)
class Violation:
    """A single broken invariant found by the validator."""

    code: str  # self_reference, duplicate_edge, missing_edge, incompatible_type, cycle, ...
    message: str
    member_ids: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "member_ids": list(self.member_ids)}


class ValidationError(FamilyGraphError):
    """The requested change would violate a graph invariant."""

    code = ErrorCode.VALIDATION

    def __init__(self, message: str, violations: list[Violation] | None = None) -> None:
        self.violations = list(violations or [])
        super().__init__(message, {"violations": [v.to_dict() for v in self.violations]})

    @classmethod
    def from_violations(cls, violations: list[Violation]) -> ValidationError:
        summary = "; ".join(v.message for v in violations)
        return cls(f"Invalid relationship change: {summary}", violations)


class NotFoundError(FamilyGraphError):
    """A referenced member, tree or invitation does not exist."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, record_kind: str, record_id: str) -> None:
        self.record_kind = record_kind
        self.record_id = record_id
        super().__init__(
            f"{record_kind} not found: {record_id}",
            {"record_kind": record_kind, "record_id": record_id},
        )


class PermissionDeniedError(FamilyGraphError):
    """The caller lacks admin or ownership rights for the operation."""

    code = ErrorCode.PERMISSION

    def __init__(self, caller_id: str | None, tree_id: str, action: str) -> None:
        self.caller_id = caller_id
        self.tree_id = tree_id
        self.action = action
        super().__init__(
            f"Only tree admins can {action}",
            {"caller_id": caller_id, "tree_id": tree_id, "action": action},
        )


class ConflictError(FamilyGraphError):
    """A concurrent write changed a record after it was read. Safe to retry."""

    code = ErrorCode.CONFLICT

    def __init__(self, message: str, stale_records: list[tuple[str, str]] | None = None) -> None:
        self.stale_records = list(stale_records or [])
        super().__init__(
            message,
            {"stale_records": [{"kind": k, "id": i} for k, i in self.stale_records]},
        )


class StorageError(FamilyGraphError):
    """The record store failed for infrastructural reasons."""

    code = ErrorCode.STORAGE
