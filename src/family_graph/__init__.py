"""Family relationship graph consistency engine."""

__version__ = "0.1.0"

from .logging import configure_logging
from .config import EngineConfig, load_config
from .engine import FamilyGraphEngine
from .exceptions import (
    ConflictError,
    FamilyGraphError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
    Violation,
)
from .models import (
    CreateMemberOptions,
    Edge,
    EdgeKind,
    FamilyTree,
    Gender,
    Invitation,
    InvitationStatus,
    Member,
    MemberAttributes,
    RelationshipUpdates,
    RelationType,
    RelType,
    TreeRole,
)
from .results import OperationResult
from .store import InMemoryRecordStore, SQLiteRecordStore

__all__ = [
    "ConflictError",
    "CreateMemberOptions",
    "Edge",
    "EdgeKind",
    "EngineConfig",
    "FamilyGraphEngine",
    "FamilyGraphError",
    "FamilyTree",
    "Gender",
    "InMemoryRecordStore",
    "Invitation",
    "InvitationStatus",
    "Member",
    "MemberAttributes",
    "NotFoundError",
    "OperationResult",
    "PermissionDeniedError",
    "RelType",
    "RelationType",
    "RelationshipUpdates",
    "SQLiteRecordStore",
    "StorageError",
    "TreeRole",
    "ValidationError",
    "Violation",
    "configure_logging",
    "load_config",
]
