"""Trees, invitations and admin roles.

Invitation states only move forward::

    pending --accept--> accepted
    pending --reject--> rejected

Calling accept or reject on a resolved invitation returns the stored outcome
(``replayed=True``) and writes nothing.
"""
from __future__ import annotations

from typing import Any

import structlog

from .config import EngineConfig
from .exceptions import ValidationError, Violation
from .guards import parse_request, require_admin, require_in_tree, verify_records
from .lifecycle import attach_new_member, plan_attachment
from .models import (
    FamilyTree,
    InvitationStatus,
    InviteeContact,
    Invitation,
    Member,
    MemberAttributes,
    MemberAttributesUpdate,
    ProposedRelation,
    TreeRole,
    new_id,
    utcnow,
)
from .results import OperationResult
from .store.unit_of_work import UnitOfWork
from .transactions import TransactionRunner

logger = structlog.get_logger(__name__)

MAX_TREE_NAME = 100
MAX_MESSAGE = 1000


def default_tree_name(attributes: MemberAttributes) -> str:
    first = attributes.first_name or attributes.display_name or "My"
    return f"{first}'s Family Tree"[:MAX_TREE_NAME]


def _clean_tree_name(name: str) -> str:
    name = (name or "").strip()
    if not name or len(name) > MAX_TREE_NAME:
        raise ValidationError(
            "Tree name must be between 1 and 100 characters",
            [Violation("invalid_input", f"tree name length {len(name)} outside 1..{MAX_TREE_NAME}")],
        )
    return name


class TreeMembershipManager:
    """Owns tree records, invitation lifecycle and the admin set."""

    def __init__(self, runner: TransactionRunner, config: EngineConfig | None = None) -> None:
        self.runner = runner
        self.config = config or runner.config

    # ------------------------------------------------------------------
    # Trees
    # ------------------------------------------------------------------

    def create_tree(
        self, root_attributes: MemberAttributes | dict[str, Any], *, name: str | None = None
    ) -> OperationResult:
        """Create a tree and its root member; the root is the sole admin."""
        attributes = parse_request(MemberAttributes, root_attributes)
        tree_name = _clean_tree_name(name) if name is not None else default_tree_name(attributes)

        def work(uow: UnitOfWork) -> OperationResult:
            tree_id = new_id()
            root = Member.new(tree_id, attributes)
            tree = FamilyTree(
                id=tree_id,
                name=tree_name,
                created_by=root.id,
                member_ids=[root.id],
                admin_ids=[root.id],
                last_updated_by=root.id,
            )
            uow.add(tree)
            uow.add(root)
            verify_records(uow)
            return OperationResult(operation="create_tree", member_id=root.id, tree=tree, updated_members=[root])

        result = self.runner.run("create_tree", work)
        logger.info("tree.created", tree_id=result.tree.id, root_id=result.member_id, name=tree_name)
        return result

    def rename_tree(self, tree_id: str, name: str, *, caller_id: str | None) -> FamilyTree:
        name = _clean_tree_name(name)

        def work(uow: UnitOfWork) -> FamilyTree:
            tree = uow.tree(tree_id)
            require_admin(tree, caller_id, "rename the tree")
            if tree.name != name:
                tree.name = name
                tree.touch(caller_id)
                uow.put(tree)
            return tree

        tree = self.runner.run("rename_tree", work, tree_id=tree_id)
        logger.info("tree.renamed", tree_id=tree_id, name=name)
        return tree

    def get_tree(self, tree_id: str) -> FamilyTree:
        return self.runner.run("get_tree", lambda uow: uow.tree(tree_id), tree_id=tree_id)

    def find_tree_for_member(self, member_id: str) -> FamilyTree:
        """The one tree a member belongs to."""

        def work(uow: UnitOfWork) -> FamilyTree:
            member = uow.member(member_id)
            tree = uow.tree(member.tree_id)
            require_in_tree(tree, member)
            return tree

        return self.runner.run("find_tree_for_member", work, member_id=member_id)

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    def create_invitation(
        self,
        tree_id: str,
        caller_id: str | None,
        invitee: InviteeContact | dict[str, Any],
        proposed_relation: ProposedRelation | dict[str, Any],
        *,
        role: TreeRole | str = TreeRole.MEMBER,
        message: str | None = None,
    ) -> OperationResult:
        """Create a pending invitation that expires after invitation_ttl_days.

        Raises:
            PermissionDeniedError: caller is not a tree admin
            NotFoundError: the tree or target member does not exist
            ValidationError: bad input, or the proposed relation cannot be wired
        """
        invitee = parse_request(InviteeContact, invitee)
        proposed_relation = parse_request(ProposedRelation, proposed_relation)
        try:
            role = TreeRole(role)
        except ValueError:
            raise ValidationError(
                f"Unknown role: {role}",
                [Violation("invalid_input", "role must be member or admin")],
            ) from None
        if message is not None and len(message) > MAX_MESSAGE:
            raise ValidationError(
                "Invitation message is too long",
                [Violation("invalid_input", f"message exceeds {MAX_MESSAGE} characters")],
            )

        def work(uow: UnitOfWork) -> OperationResult:
            tree = uow.tree(tree_id)
            require_admin(tree, caller_id, "invite members")
            target = uow.member(proposed_relation.target_member_id)
            require_in_tree(tree, target)
            # Fails now rather than at acceptance when the relation cannot be wired
            plan_attachment(new_id(), proposed_relation.relation_type, target, proposed_relation.options)

            invitation = Invitation.expiring_in(
                self.config.invitation_ttl_days,
                tree_id=tree_id,
                inviter_id=caller_id,
                invitee=invitee,
                proposed_relation=proposed_relation,
                role=role,
                message=message,
            )
            uow.add(invitation)
            return OperationResult(operation="create_invitation", tree=tree, invitation=invitation)

        result = self.runner.run("create_invitation", work, tree_id=tree_id)
        logger.info(
            "invitation.created",
            invitation_id=result.invitation.id,
            tree_id=tree_id,
            inviter_id=caller_id,
            expires_at=result.invitation.expires_at.isoformat(),
        )
        return result

    def accept_invitation(
        self,
        invitation_id: str,
        *,
        attributes: MemberAttributesUpdate | dict[str, Any] | None = None,
    ) -> OperationResult:
        """Create the invitee's member, wired per the proposed relation.

        The invitee's contact details seed the new member; attributes
        override them. Authorization happened when the invitation was made.

        Raises:
            ValidationError: the invitation has expired, or wiring is no
                longer valid (the invitation stays pending)
            NotFoundError: the invitation, tree or target member is gone
        """
        overrides = parse_request(MemberAttributesUpdate, attributes)

        def work(uow: UnitOfWork) -> OperationResult:
            invitation = uow.invitation(invitation_id)
            if invitation.is_resolved:
                return self._replay("accept_invitation", invitation, uow)
            if invitation.is_expired():
                raise ValidationError(
                    "Invitation has expired",
                    [Violation("expired", f"invitation expired at {invitation.expires_at.isoformat()}")],
                )

            tree = uow.tree(invitation.tree_id)
            relation = invitation.proposed_relation
            member = attach_new_member(
                uow,
                tree,
                _invitee_attributes(invitation.invitee, overrides),
                relation.relation_type,
                relation.target_member_id,
                relation.options,
                actor=None,
                admin=invitation.role == TreeRole.ADMIN,
                traversal_limit=self.config.traversal_limit,
            )
            tree.last_updated_by = member.id
            written = uow.written_members()

            invitation.status = InvitationStatus.ACCEPTED
            invitation.resolved_at = utcnow()
            invitation.member_id = member.id
            invitation.result_member_ids = [m.id for m in written]
            uow.put(invitation)
            return OperationResult(
                operation="accept_invitation",
                member_id=member.id,
                tree=tree,
                invitation=invitation,
                updated_members=written,
            )

        result = self.runner.run("accept_invitation", work, invitation_id=invitation_id)
        if result.replayed:
            logger.info("invitation.replayed", invitation_id=invitation_id, status=result.invitation.status.value)
        else:
            logger.info("invitation.accepted", invitation_id=invitation_id, member_id=result.member_id)
        return result

    def reject_invitation(self, invitation_id: str) -> OperationResult:
        def work(uow: UnitOfWork) -> OperationResult:
            invitation = uow.invitation(invitation_id)
            if invitation.is_resolved:
                return self._replay("reject_invitation", invitation, uow)
            invitation.status = InvitationStatus.REJECTED
            invitation.resolved_at = utcnow()
            uow.put(invitation)
            return OperationResult(
                operation="reject_invitation", tree=uow.tree(invitation.tree_id), invitation=invitation
            )

        result = self.runner.run("reject_invitation", work, invitation_id=invitation_id)
        if not result.replayed:
            logger.info("invitation.rejected", invitation_id=invitation_id)
        return result

    @staticmethod
    def _replay(operation: str, invitation: Invitation, uow: UnitOfWork) -> OperationResult:
        """Rebuild the stored outcome from current records; members deleted since are left out."""
        member_ids = invitation.result_member_ids or ([invitation.member_id] if invitation.member_id else [])
        members = [uow.find_member(member_id) for member_id in member_ids]
        return OperationResult(
            operation=operation,
            member_id=invitation.member_id,
            tree=uow.tree(invitation.tree_id),
            invitation=invitation,
            updated_members=[m for m in members if m is not None],
            replayed=True,
        )

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def promote_to_admin(self, member_id: str, tree_id: str, caller_id: str | None) -> FamilyTree:
        def work(uow: UnitOfWork) -> FamilyTree:
            tree = uow.tree(tree_id)
            require_admin(tree, caller_id, "promote members")
            require_in_tree(tree, uow.member(member_id))
            if not tree.is_admin(member_id):
                tree.add_member(member_id, admin=True)
                tree.touch(caller_id)
                uow.put(tree)
                verify_records(uow)
            return tree

        tree = self.runner.run("promote_to_admin", work, member_id=member_id, tree_id=tree_id)
        logger.info("role.promoted", member_id=member_id, tree_id=tree_id, caller_id=caller_id)
        return tree

    def demote_to_member(self, member_id: str, tree_id: str, caller_id: str | None) -> FamilyTree:
        """Remove admin rights. The last remaining admin cannot be demoted."""

        def work(uow: UnitOfWork) -> FamilyTree:
            tree = uow.tree(tree_id)
            require_admin(tree, caller_id, "demote admins")
            require_in_tree(tree, uow.member(member_id))
            if not tree.is_admin(member_id):
                return tree
            if len(tree.admin_ids) == 1:
                raise ValidationError(
                    "Cannot demote the last admin of a tree",
                    [Violation("last_admin", "a tree must keep at least one admin", (member_id,))],
                )
            tree.admin_ids = [a for a in tree.admin_ids if a != member_id]
            tree.touch(caller_id)
            uow.put(tree)
            verify_records(uow)
            return tree

        tree = self.runner.run("demote_to_member", work, member_id=member_id, tree_id=tree_id)
        logger.info("role.demoted", member_id=member_id, tree_id=tree_id, caller_id=caller_id)
        return tree


def _invitee_attributes(invitee: InviteeContact, overrides: MemberAttributesUpdate) -> MemberAttributes:
    base: dict[str, Any] = {
        "display_name": invitee.display_name or invitee.email.split("@", 1)[0],
        "email": invitee.email,
        "gender": invitee.gender,
    }
    base.update({k: v for k, v in overrides.model_dump(exclude_unset=True).items() if v is not None})
    return parse_request(MemberAttributes, base)
