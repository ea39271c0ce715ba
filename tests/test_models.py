"""Tests for the pydantic records."""

from datetime import date, timedelta

import pydantic
import pytest

from family_graph.models import (
    CreateMemberOptions,
    EdgeKind,
    FamilyTree,
    Invitation,
    InviteeContact,
    Member,
    MemberAttributes,
    MemberAttributesUpdate,
    ProposedRelation,
    RelationshipUpdates,
    RelationType,
    RelType,
    new_id,
    utcnow,
)


class TestMemberAttributes:
    """Tests for attribute parsing."""

    def test_display_name_from_first_and_last(self):
        attrs = MemberAttributes(firstName="Ada", lastName="Byron")
        assert attrs.display_name == "Ada Byron"

    def test_explicit_display_name_kept(self):
        attrs = MemberAttributes(displayName="Countess Lovelace", firstName="Ada")
        assert attrs.display_name == "Countess Lovelace"

    def test_name_required(self):
        with pytest.raises(pydantic.ValidationError):
            MemberAttributes(bio="no name at all")

    def test_death_before_birth_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            MemberAttributes(firstName="Ada", dateOfBirth="1815-12-10", dateOfDeath="1800-01-01")

    def test_camel_case_dates(self):
        attrs = MemberAttributes(firstName="Ada", dateOfBirth="1815-12-10")
        assert attrs.birth_date == date(1815, 12, 10)


class TestMember:
    """Tests for adjacency helpers on Member."""

    def test_new_copies_attributes(self):
        member = Member.new("tree-1", MemberAttributes(firstName="Ada", email="ada@example.com"))
        assert member.tree_id == "tree-1"
        assert member.display_name == "Ada"
        assert member.email == "ada@example.com"
        assert member.version == 0

    def test_set_edge_replaces_type(self):
        member = Member(tree_id="t", display_name="A")
        member.set_edge(EdgeKind.SPOUSE, "b", RelType.MARRIED)
        member.set_edge(EdgeKind.SPOUSE, "b", RelType.DIVORCED)
        assert len(member.spouses) == 1
        assert member.edge_to(EdgeKind.SPOUSE, "b").type == RelType.DIVORCED

    def test_remove_edge_reports_change(self):
        member = Member(tree_id="t", display_name="A")
        member.set_edge(EdgeKind.PARENT, "p", RelType.BLOOD)
        assert member.remove_edge(EdgeKind.PARENT, "p") is True
        assert member.remove_edge(EdgeKind.PARENT, "p") is False

    def test_kinds_linking_and_related_ids(self):
        member = Member(tree_id="t", display_name="A")
        member.set_edge(EdgeKind.PARENT, "p", RelType.BLOOD)
        member.set_edge(EdgeKind.SIBLING, "s", RelType.HALF)
        assert member.kinds_linking("p") == [EdgeKind.PARENT]
        assert member.related_ids() == {"p", "s"}

    def test_apply_attributes_only_explicit_fields(self):
        member = Member(tree_id="t", display_name="A", bio="old")
        changed = member.apply_attributes(MemberAttributesUpdate(bio="new"))
        assert changed == ["bio"]
        assert member.display_name == "A"

    def test_update_cannot_null_required_fields(self):
        with pytest.raises(pydantic.ValidationError):
            MemberAttributesUpdate(gender=None)
        assert MemberAttributesUpdate(bio=None).model_dump(exclude_unset=True) == {"bio": None}

    def test_assignment_is_validated(self):
        member = Member(tree_id="t", display_name="A")
        with pytest.raises(pydantic.ValidationError):
            member.gender = None

    def test_ids_are_unique(self):
        assert new_id() != new_id()


class TestFamilyTree:
    """Tests for tree membership helpers."""

    def test_admin_is_member(self):
        tree = FamilyTree(name="Hale Family", created_by="m1")
        tree.add_member("m1", admin=True)
        assert tree.is_member("m1")
        assert tree.is_admin("m1")

    def test_remove_member_drops_admin(self):
        tree = FamilyTree(name="Hale Family", created_by="m1", member_ids=["m1", "m2"], admin_ids=["m1", "m2"])
        tree.remove_member("m2")
        assert tree.member_ids == ["m1"]
        assert tree.admin_ids == ["m1"]

    def test_name_length_enforced(self):
        with pytest.raises(pydantic.ValidationError):
            FamilyTree(name="", created_by="m1")


class TestRequests:
    """Tests for request models."""

    def test_relationship_updates_aliases(self):
        updates = RelationshipUpdates.model_validate(
            {"addParents": ["p"], "removeSpouses": ["s"], "relationshipTypes": {"p": "adopted"}}
        )
        assert updates.add_parents == ["p"]
        assert updates.remove_spouses == ["s"]
        assert updates.relationship_types == {"p": RelType.ADOPTED}
        assert updates.referenced_ids() == {"p", "s"}

    def test_relationship_updates_rejects_unknown_keys(self):
        with pytest.raises(pydantic.ValidationError):
            RelationshipUpdates.model_validate({"addCousins": ["c"]})

    def test_empty_updates(self):
        assert RelationshipUpdates().is_empty

    def test_create_member_options_defaults(self):
        options = CreateMemberOptions.model_validate({"connectToSpouse": True})
        assert options.connect_to_spouse is True
        assert options.connect_to_children is False
        assert options.edge_type is None


class TestInvitation:
    """Tests for invitation expiry."""

    def _invitation(self, days):
        return Invitation.expiring_in(
            days,
            tree_id="t",
            inviter_id="m1",
            invitee=InviteeContact(email="jo@example.com"),
            proposed_relation=ProposedRelation(relationType="child", targetMemberId="m1"),
        )

    def test_pending_until_expiry(self):
        invitation = self._invitation(7)
        assert not invitation.is_resolved
        assert not invitation.is_expired()
        assert invitation.is_expired(utcnow() + timedelta(days=8))
        assert invitation.proposed_relation.relation_type == RelationType.CHILD

    def test_invalid_email(self):
        with pytest.raises(pydantic.ValidationError):
            InviteeContact(email="not-an-email")
