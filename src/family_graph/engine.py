"""Process-scoped service facade wiring the managers to one record store."""
from __future__ import annotations

from typing import Any

import structlog

from .config import EngineConfig
from .lifecycle import MemberLifecycleManager
from .membership import TreeMembershipManager
from .models import Member
from .mutator import RelationshipMutator
from .projector import project_tree
from .store.base import RecordStore
from .store.sqlite import SQLiteRecordStore
from .store.unit_of_work import UnitOfWork
from .transactions import TransactionRunner

logger = structlog.get_logger(__name__)


class FamilyGraphEngine:
    """Entry point for request handlers.

    Construct one per process with an explicit store; nothing here is global.

    Example:
        engine = FamilyGraphEngine(InMemoryRecordStore())
        root = engine.trees.create_tree({"firstName": "Ada"})
        engine.members.create_member(
            root.tree.id, {"firstName": "Byron"}, "child", root.member_id,
            caller_id=root.member_id,
        )
    """

    def __init__(self, store: RecordStore, config: EngineConfig | None = None) -> None:
        self.store = store
        self.config = config or EngineConfig()
        self.runner = TransactionRunner(store, self.config)
        self.members = MemberLifecycleManager(self.runner, self.config)
        self.relationships = RelationshipMutator(self.runner, self.config)
        self.trees = TreeMembershipManager(self.runner, self.config)

    @classmethod
    def from_config(cls, config: EngineConfig) -> FamilyGraphEngine:
        logger.debug("engine.open", db_path=config.db_path)
        return cls(SQLiteRecordStore(config.db_path), config)

    def tree_view(self, tree_id: str) -> dict[str, Any]:
        """Projected renderer nodes for every member, from one consistent snapshot."""

        def work(uow: UnitOfWork) -> dict[str, Any]:
            tree = uow.tree(tree_id)
            members: list[Member] = []
            for member_id in tree.member_ids:
                member = uow.find_member(member_id)
                if member is None:
                    logger.warning("engine.missing_member", tree_id=tree_id, member_id=member_id)
                    continue
                members.append(member)
            return project_tree(tree, members)

        return self.runner.run("tree_view", work, tree_id=tree_id)

    def close(self) -> None:
        self.store.close()
