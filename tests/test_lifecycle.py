"""Tests for member creation, deletion and attribute updates."""

import pytest

from family_graph.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from family_graph.models import Edge, RelType
from family_graph.store.base import RecordKind


def _edges(edges):
    return [(e.member_id, e.type) for e in edges]


class TestScenarios:
    """Create, attach, derive siblings and delete, end to end."""

    def test_root_tree(self, family):
        tree = family.engine.trees.get_tree(family.tree_id)
        assert tree.member_ids == [family.root_id]
        assert tree.admin_ids == [family.root_id]
        assert tree.created_by == family.root_id

    def test_child_gets_symmetric_parent_edge(self, family):
        m2 = family.add("Fred", "child", family.root_id)

        assert _edges(family.get(m2).parents) == [(family.root_id, RelType.BLOOD)]
        assert _edges(family.get(family.root_id).children) == [(m2, RelType.BLOOD)]

    def test_second_child_derives_siblings(self, family):
        m2 = family.add("Fred", "child", family.root_id)
        m3 = family.add("Frances", "child", family.root_id)

        assert _edges(family.get(m2).siblings) == [(m3, RelType.BLOOD)]
        assert _edges(family.get(m3).siblings) == [(m2, RelType.BLOOD)]

    def test_delete_strips_edges_and_siblings(self, family, store):
        m2 = family.add("Fred", "child", family.root_id)
        m3 = family.add("Frances", "child", family.root_id)

        result = family.engine.members.delete_member(m2, family.tree_id, family.root_id)

        assert result.removed_member_ids == [m2]
        assert _edges(family.get(family.root_id).children) == [(m3, RelType.BLOOD)]
        assert family.get(m3).siblings == []
        assert store.get_member(m2) is None
        assert m2 not in family.engine.trees.get_tree(family.tree_id).member_ids


class TestCreateMember:
    """Tests for wiring options and failure modes of create_member."""

    def test_standalone_member(self, family):
        member_id = family.add("Loner")
        member = family.get(member_id)
        assert member.related_ids() == set()
        tree = family.engine.trees.get_tree(family.tree_id)
        assert member_id in tree.member_ids
        assert member_id not in tree.admin_ids
        assert tree.last_updated_by == family.root_id

    def test_result_reports_every_written_member(self, family):
        result = family.engine.members.create_member(
            family.tree_id, {"firstName": "Fred"}, "child", family.root_id, caller_id=family.root_id
        )
        assert {n["id"] for n in result.updated_nodes} == {result.member_id, family.root_id}
        assert result.member.display_name == "Fred"

    def test_parent_connect_to_existing_parent(self, family):
        mother = family.add("Maria", "parent", family.root_id)
        father = family.add("Richard", "parent", family.root_id, connect_to_existing_parent=True)

        assert _edges(family.get(father).spouses) == [(mother, RelType.MARRIED)]
        assert _edges(family.get(mother).spouses) == [(father, RelType.MARRIED)]
        assert {e.member_id for e in family.get(family.root_id).parents} == {mother, father}

    def test_parent_without_option_stays_single(self, family):
        mother = family.add("Maria", "parent", family.root_id)
        father = family.add("Richard", "parent", family.root_id)
        assert family.get(father).spouses == []
        assert family.get(mother).spouses == []

    def test_child_connect_to_spouse(self, family):
        spouse = family.add("John", "spouse", family.root_id)
        child = family.add("Fred", "child", family.root_id, connect_to_spouse=True)

        assert {e.member_id for e in family.get(child).parents} == {family.root_id, spouse}
        assert _edges(family.get(spouse).children) == [(child, RelType.BLOOD)]

    def test_connect_to_spouse_skips_divorced(self, family):
        spouse = family.add("John", "spouse", family.root_id, edge_type="divorced")
        child = family.add("Fred", "child", family.root_id, connect_to_spouse=True)
        assert _edges(family.get(child).parents) == [(family.root_id, RelType.BLOOD)]
        assert _edges(family.get(spouse).spouses) == [(family.root_id, RelType.DIVORCED)]

    def test_spouse_connect_to_children(self, family):
        child = family.add("Fred", "child", family.root_id)
        spouse = family.add("John", "spouse", family.root_id, connect_to_children=True)

        assert _edges(family.get(spouse).children) == [(child, RelType.BLOOD)]
        assert {e.member_id for e in family.get(child).parents} == {family.root_id, spouse}

    def test_sibling_copies_parents(self, family):
        mother = family.add("Maria", "parent", family.root_id)
        sister = family.add("Dixon", "sibling", family.root_id)

        assert _edges(family.get(sister).parents) == [(mother, RelType.BLOOD)]
        assert _edges(family.get(family.root_id).siblings) == [(sister, RelType.BLOOD)]

    def test_sibling_with_edge_type(self, family):
        family.add("Maria", "parent", family.root_id)
        sister = family.add("Dixon", "sibling", family.root_id, edge_type="adopted")
        assert _edges(family.get(family.root_id).siblings) == [(sister, RelType.HALF)]

    def test_sibling_requires_parents(self, family, store):
        before = len(store)
        with pytest.raises(ValidationError) as exc:
            family.add("Dixon", "sibling", family.root_id)
        assert exc.value.violations[0].code == "no_shared_parent"
        assert len(store) == before

    def test_adopted_child(self, family):
        child = family.add("Fred", "child", family.root_id, edge_type="adopted")
        assert family.get(child).parents == [Edge(member_id=family.root_id, type=RelType.ADOPTED)]

    def test_non_admin_rejected(self, family, store):
        member_id = family.add("Loner")
        before = len(store)
        with pytest.raises(PermissionDeniedError):
            family.add("Fred", "child", family.root_id, caller=member_id)
        assert len(store) == before

    def test_missing_target(self, family):
        with pytest.raises(NotFoundError) as exc:
            family.add("Fred", "child", "no-such-member")
        assert exc.value.record_kind == "member"

    def test_missing_tree(self, engine):
        with pytest.raises(NotFoundError):
            engine.members.create_member("no-such-tree", {"firstName": "Fred"}, caller_id="x")

    def test_relation_without_target(self, family):
        with pytest.raises(ValidationError):
            family.add("Fred", "child")

    def test_target_without_relation(self, family, store):
        before = len(store)
        with pytest.raises(ValidationError) as exc:
            family.add("Fred", target=family.root_id)
        assert exc.value.violations[0].code == "missing_relation"
        assert len(store) == before

    def test_unknown_relation(self, family):
        with pytest.raises(ValidationError):
            family.add("Fred", "cousin", family.root_id)

    def test_invalid_attributes(self, family):
        with pytest.raises(ValidationError) as exc:
            family.engine.members.create_member(family.tree_id, {"bio": "nameless"}, caller_id=family.root_id)
        assert exc.value.violations[0].code == "invalid_input"

    def test_unknown_option(self, family):
        with pytest.raises(ValidationError):
            family.add("Fred", "child", family.root_id, connect_to_cousins=True)

    def test_target_in_other_tree(self, family, engine):
        other = engine.trees.create_tree({"firstName": "Thornton"})
        with pytest.raises(ValidationError) as exc:
            family.add("Fred", "child", other.member_id)
        assert exc.value.violations[0].code == "cross_tree"


class TestDeleteMember:
    """Tests for delete_member."""

    def test_removes_spouse_and_parent_edges(self, family):
        spouse = family.add("John", "spouse", family.root_id)
        child = family.add("Fred", "child", family.root_id, connect_to_spouse=True)

        family.engine.members.delete_member(spouse, family.tree_id, family.root_id)

        assert family.get(family.root_id).spouses == []
        assert _edges(family.get(child).parents) == [(family.root_id, RelType.BLOOD)]

    def test_no_dangling_references(self, family, store):
        mother = family.add("Maria", "parent", family.root_id)
        sister = family.add("Dixon", "sibling", family.root_id)
        family.add("Fred", "child", family.root_id)

        family.engine.members.delete_member(mother, family.tree_id, family.root_id)

        for member in store.list_members(family.tree_id):
            assert mother not in member.related_ids()
        assert family.get(sister).siblings == []

    def test_requires_admin(self, family, store):
        member_id = family.add("Loner")
        with pytest.raises(PermissionDeniedError):
            family.engine.members.delete_member(family.root_id, family.tree_id, member_id)
        assert store.get_member(family.root_id) is not None

    def test_last_admin_cannot_be_removed(self, family):
        with pytest.raises(ValidationError) as exc:
            family.engine.members.delete_member(family.root_id, family.tree_id, family.root_id)
        assert exc.value.violations[0].code == "last_admin"

    def test_admin_removed_when_another_remains(self, family):
        other = family.add("John")
        family.engine.trees.promote_to_admin(other, family.tree_id, family.root_id)
        family.engine.members.delete_member(family.root_id, family.tree_id, other)
        tree = family.engine.trees.get_tree(family.tree_id)
        assert tree.admin_ids == [other]
        assert tree.member_ids == [other]

    def test_missing_member(self, family):
        with pytest.raises(NotFoundError):
            family.engine.members.delete_member("no-such-member", family.tree_id, family.root_id)

    def test_single_commit(self, family, store):
        family.add("Fred", "child", family.root_id)
        family.add("Frances", "child", family.root_id)
        commits = store.commit_count
        child = family.engine.trees.get_tree(family.tree_id).member_ids[1]
        family.engine.members.delete_member(child, family.tree_id, family.root_id)
        assert store.commit_count == commits + 1


class TestUpdateMember:
    """Tests for attribute updates."""

    def test_admin_updates_anyone(self, family):
        member_id = family.add("Fred")
        family.engine.members.update_member(
            member_id, family.tree_id, {"bio": "Mill owner", "dateOfBirth": "1820-04-01"}, caller_id=family.root_id
        )
        member = family.get(member_id)
        assert member.bio == "Mill owner"
        assert member.birth_date.year == 1820

    def test_self_update(self, family):
        member_id = family.add("Fred")
        result = family.engine.members.update_member(
            member_id, family.tree_id, {"displayName": "Frederick"}, caller_id=member_id
        )
        assert result.member.display_name == "Frederick"

    def test_other_member_rejected(self, family):
        a = family.add("Fred")
        b = family.add("Frances")
        with pytest.raises(PermissionDeniedError):
            family.engine.members.update_member(a, family.tree_id, {"bio": "x"}, caller_id=b)

    def test_death_before_birth(self, family):
        member_id = family.add("Fred")
        family.engine.members.update_member(
            member_id, family.tree_id, {"dateOfBirth": "1820-04-01"}, caller_id=family.root_id
        )
        with pytest.raises(ValidationError):
            family.engine.members.update_member(
                member_id, family.tree_id, {"dateOfDeath": "1810-01-01"}, caller_id=family.root_id
            )
        assert family.get(member_id).death_date is None

    @pytest.mark.parametrize("field", ["gender", "displayName"])
    def test_required_attribute_cannot_be_cleared(self, family, store, field):
        member_id = family.add("Fred")
        version = store.get_member(member_id).version

        with pytest.raises(ValidationError) as exc:
            family.engine.members.update_member(member_id, family.tree_id, {field: None}, caller_id=family.root_id)

        assert exc.value.violations[0].code == "invalid_input"
        member = family.get(member_id)
        assert member.display_name == "Fred"
        assert member.gender.value == "other"
        assert store.get_member(member_id).version == version

    def test_unchanged_attributes_write_nothing(self, family, store):
        member_id = family.add("Fred")
        version = store.get_member(member_id).version
        family.engine.members.update_member(member_id, family.tree_id, {"firstName": "Fred"}, caller_id=member_id)
        assert store.get_member(member_id).version == version

    def test_get_missing_member(self, engine):
        with pytest.raises(NotFoundError):
            engine.members.get_member("no-such-member")


def test_record_counts(family, store):
    family.add("Fred", "child", family.root_id)
    assert len(store) == 3
    assert store.get(RecordKind.TREE, family.tree_id) is not None
