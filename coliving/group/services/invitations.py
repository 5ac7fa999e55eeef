"""Invitation protocol for joining groups."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from firebase_admin import firestore
from google.api_core import exceptions

from coliving.constants import INVITATIONS_COLLECTION
from coliving.errors import (
    ForbiddenError,
    InactiveGroupError,
    MalformedError,
    NotFoundError,
    ValidationError,
)
from coliving.group.models import (
    INVITE_ACCEPTED,
    INVITE_DECISIONS,
    INVITE_MANUAL,
    INVITE_PENDING,
    INVITE_TYPES,
    JOINED_VIA_INVITATION,
    STATUS_ACTIVE,
    Invitation,
    group_id_from_invitation_id,
    invitation_from_snapshot,
    invitation_id,
)

if TYPE_CHECKING:
    from coliving.core.store import DocumentStore, Subscription
    from coliving.notifications.services import NotificationService

    from .membership import MembershipService
    from .repository import GroupRepository

logger = logging.getLogger(__name__)


class InvitationService:
    """Issues, answers and cancels group invitations.

    Invitation ids are derived from the (recipient, group) pair, so two
    clients inviting the same user at the same time collapse onto a single
    document instead of creating duplicates. Answered invitations are
    deleted rather than kept in a terminal state.
    """

    def __init__(
        self,
        store: DocumentStore,
        repository: GroupRepository,
        membership: MembershipService,
        notifications: NotificationService,
    ) -> None:
        self.store = store
        self.repository = repository
        self.membership = membership
        self.notifications = notifications

    @property
    def collection(self) -> Any:
        return self.store.collection(INVITATIONS_COLLECTION)

    def invite(  # noqa: PLR0913
        self,
        group_id: str,
        inviter_id: str,
        recipient_id: str,
        group_name: str | None = None,
        invite_type: str = INVITE_MANUAL,
    ) -> str:
        """Invite ``recipient_id`` to a group and return the invitation id.

        Inviting the same user twice is a no-op that returns the same id.
        """
        if invite_type not in INVITE_TYPES:
            raise ValidationError(f"Unknown invitation type: {invite_type}.")
        if not recipient_id:
            raise ValidationError("A recipient is required.")

        group = self.repository.get_group(group_id)
        if group.get("status") != STATUS_ACTIVE:
            raise InactiveGroupError()
        members = group.get("members", [])
        if inviter_id not in members:
            raise ForbiddenError("Only group members can invite others.")
        if recipient_id in members:
            raise ValidationError("That user is already a member of this group.")

        inv_id = invitation_id(recipient_id, group_id)
        name = group_name or group.get("name", "")
        try:
            with self.store.guarded_write("send an invitation"):
                self.collection.document(inv_id).create(
                    {
                        "groupId": group_id,
                        "groupName": name,
                        "inviterId": inviter_id,
                        "recipientId": recipient_id,
                        "status": INVITE_PENDING,
                        "type": invite_type,
                        "createdAt": firestore.SERVER_TIMESTAMP,
                    },
                    timeout=self.store.write_timeout,
                )
        except exceptions.AlreadyExists:
            logger.info("Invitation %s already pending", inv_id)
            return inv_id

        logger.info("User %s invited %s to group %s", inviter_id, recipient_id, group_id)
        self.notifications.notify_invitation(group_id, name, recipient_id)
        return inv_id

    def _delete(self, inv_id: str) -> None:
        with self.store.guarded_write("delete an invitation"):
            self.collection.document(inv_id).delete(timeout=self.store.write_timeout)

    def respond_to_invitation(self, inv_id: str, user_id: str, decision: str) -> None:
        """Accept or reject an invitation addressed to ``user_id``."""
        if decision not in INVITE_DECISIONS:
            raise ValidationError(f"Unknown decision: {decision}.")

        invitation = invitation_from_snapshot(self.collection.document(inv_id).get())
        if invitation is None:
            self._confirm_already_answered(inv_id, user_id, decision)
            return
        if invitation.get("recipientId") != user_id:
            raise ForbiddenError("This invitation was sent to someone else.")
        group_id = invitation.get("groupId", "")
        if not group_id or inv_id != invitation_id(user_id, group_id):
            raise MalformedError("Invitation id does not match its recipient and group.")

        if decision == INVITE_ACCEPTED:
            group = self.repository.find_group(group_id)
            if group is None or group.get("status") != STATUS_ACTIVE:
                # The invitation can never be honoured now.
                self._delete(inv_id)
                if group is None:
                    raise NotFoundError("Group not found.")
                raise InactiveGroupError()
            self.membership.add_member(group_id, user_id, JOINED_VIA_INVITATION)

        self._delete(inv_id)
        logger.info("User %s %s invitation %s", user_id, decision, inv_id)

    def _confirm_already_answered(self, inv_id: str, user_id: str, decision: str) -> None:
        """Treat a retried acceptance whose invitation is gone as success."""
        group_id = group_id_from_invitation_id(inv_id, user_id)
        if decision == INVITE_ACCEPTED and group_id:
            group = self.repository.find_group(group_id)
            if group is not None and user_id in group.get("members", []):
                logger.info("Invitation %s was already accepted", inv_id)
                return
        raise NotFoundError("Invitation not found.")

    def cancel_invitation(self, group_id: str, recipient_id: str) -> None:
        """Withdraw the pending invitation for (recipient, group). Idempotent."""
        self._delete(invitation_id(recipient_id, group_id))

    def _pending(self, field: str, value: str) -> list[Invitation]:
        query = self.collection.where(filter=firestore.FieldFilter(field, "==", value))
        return [
            inv
            for inv in map(invitation_from_snapshot, query.stream())
            if inv and inv.get("status", INVITE_PENDING) == INVITE_PENDING
        ]

    def list_for_user(self, user_id: str) -> list[Invitation]:
        return self._pending("recipientId", user_id)

    def list_for_group(self, group_id: str) -> list[Invitation]:
        return self._pending("groupId", group_id)

    def subscribe_for_user(
        self, user_id: str, on_change: Callable[[list[Invitation]], None]
    ) -> Subscription:
        query = self.collection.where(
            filter=firestore.FieldFilter("recipientId", "==", user_id)
        )

        def deliver(snapshots: list[Any]) -> None:
            on_change(
                [
                    inv
                    for inv in map(invitation_from_snapshot, snapshots)
                    if inv and inv.get("status", INVITE_PENDING) == INVITE_PENDING
                ]
            )

        return self.store.subscribe(query, deliver, f"invitations of {user_id}")
