"""Tests for sibling derivation."""

from family_graph.models import Edge, EdgeKind, RelType
from family_graph.siblings import derive_siblings, refresh_siblings


def _siblings(graph, name):
    return [(e.member_id, e.type) for e in graph.members[name].siblings]


class TestDeriveSiblings:
    """Tests for computing a sibling list from parents."""

    def test_full_siblings_are_blood(self, graph):
        for name in ("mum", "dad", "a", "b"):
            graph.person(name)
        for child in ("a", "b"):
            graph.parent("mum", child)
            graph.parent("dad", child)
        assert derive_siblings(graph.members["a"], graph) == [Edge(member_id="b", type=RelType.BLOOD)]

    def test_one_shared_blood_parent_is_blood(self, graph):
        for name in ("mum", "dad", "step", "a", "b"):
            graph.person(name)
        graph.parent("mum", "a")
        graph.parent("mum", "b")
        graph.parent("dad", "a")
        graph.parent("step", "b")
        assert derive_siblings(graph.members["a"], graph) == [Edge(member_id="b", type=RelType.BLOOD)]

    def test_adopted_link_makes_half(self, graph):
        for name in ("mum", "a", "b"):
            graph.person(name)
        graph.parent("mum", "a")
        graph.parent("mum", "b", RelType.ADOPTED)
        assert derive_siblings(graph.members["a"], graph) == [Edge(member_id="b", type=RelType.HALF)]

    def test_no_parents_no_siblings(self, graph):
        graph.person("solo")
        assert derive_siblings(graph.members["solo"], graph) == []

    def test_excludes_self_and_sorts(self, graph):
        for name in ("mum", "c", "a", "b"):
            graph.person(name)
        for child in ("c", "a", "b"):
            graph.parent("mum", child)
        assert [e.member_id for e in derive_siblings(graph.members["b"], graph)] == ["a", "c"]


class TestRefreshSiblings:
    """Tests for refreshing stored sibling lists."""

    def test_new_child_updates_existing_children(self, graph):
        for name in ("mum", "a", "b"):
            graph.person(name)
        graph.parent("mum", "a")
        graph.parent("mum", "b")

        rewritten = refresh_siblings({"b"}, graph)

        assert rewritten == {"a", "b"}
        assert _siblings(graph, "a") == [("b", RelType.BLOOD)]
        assert _siblings(graph, "b") == [("a", RelType.BLOOD)]

    def test_idempotent(self, graph):
        for name in ("mum", "a", "b", "c"):
            graph.person(name)
        for child in ("a", "b", "c"):
            graph.parent("mum", child)
        refresh_siblings({"a", "b", "c"}, graph)
        snapshot = {name: list(m.siblings) for name, m in graph.members.items()}
        graph.puts.clear()

        assert refresh_siblings({"a", "b", "c"}, graph) == set()
        assert graph.puts == []
        assert {name: list(m.siblings) for name, m in graph.members.items()} == snapshot

    def test_removed_parent_clears_old_peers(self, graph):
        for name in ("mum", "a", "b"):
            graph.person(name)
        graph.parent("mum", "a")
        graph.parent("mum", "b")
        refresh_siblings({"a", "b"}, graph)

        graph.members["mum"].remove_edge(EdgeKind.CHILD, "b")
        graph.members["b"].remove_edge(EdgeKind.PARENT, "mum")
        rewritten = refresh_siblings({"b"}, graph)

        assert rewritten == {"a", "b"}
        assert _siblings(graph, "a") == []
        assert _siblings(graph, "b") == []

    def test_missing_members_are_skipped(self, graph):
        graph.person("a")
        assert refresh_siblings({"a", "ghost"}, graph) == set()
