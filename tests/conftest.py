"""Shared fixtures for the family graph tests."""

from dataclasses import dataclass

import pytest

from family_graph.config import EngineConfig
from family_graph.engine import FamilyGraphEngine
from family_graph.exceptions import NotFoundError
from family_graph.models import EdgeKind, Gender, Member, RelType
from family_graph.store import InMemoryRecordStore


@pytest.fixture
def config():
    """Engine settings with near-zero retry backoff."""
    return EngineConfig(retry_wait_initial=0.001, retry_wait_max=0.005, operation_timeout=5.0)


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def engine(store, config):
    return FamilyGraphEngine(store, config)


@dataclass
class Family:
    """A tree with its root admin, plus shortcuts for building members."""

    engine: FamilyGraphEngine
    tree_id: str
    root_id: str

    def add(self, first_name, relation=None, target=None, caller=None, **options):
        result = self.engine.members.create_member(
            self.tree_id,
            {"firstName": first_name},
            relation,
            target,
            options,
            caller_id=caller or self.root_id,
        )
        return result.member_id

    def get(self, member_id) -> Member:
        return self.engine.members.get_member(member_id)


@pytest.fixture
def family(engine):
    """Tree rooted at Margaret Hale, who is its only admin."""
    result = engine.trees.create_tree({"firstName": "Margaret", "lastName": "Hale", "gender": "female"})
    return Family(engine=engine, tree_id=result.tree.id, root_id=result.member_id)


class Graph:
    """Hand-built member graph that satisfies the validator's and deriver's views."""

    def __init__(self):
        self.members = {}
        self.puts = []

    def person(self, name, gender=Gender.OTHER):
        member = Member(id=name, tree_id="t", display_name=name, gender=gender)
        self.members[name] = member
        return member

    def parent(self, parent_id, child_id, rel_type=RelType.BLOOD):
        self.members[parent_id].set_edge(EdgeKind.CHILD, child_id, rel_type)
        self.members[child_id].set_edge(EdgeKind.PARENT, parent_id, rel_type)

    def spouse(self, a, b, rel_type=RelType.MARRIED):
        self.members[a].set_edge(EdgeKind.SPOUSE, b, rel_type)
        self.members[b].set_edge(EdgeKind.SPOUSE, a, rel_type)

    def member(self, member_id):
        if member_id not in self.members:
            raise NotFoundError("member", member_id)
        return self.members[member_id]

    def find_member(self, member_id):
        return self.members.get(member_id)

    def put(self, record):
        self.puts.append(record.id)


@pytest.fixture
def graph():
    return Graph()
