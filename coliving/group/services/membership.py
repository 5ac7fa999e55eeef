"""Membership changes on group documents."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from firebase_admin import firestore
from google.api_core import exceptions

from coliving.constants import MAX_WRITE_ATTEMPTS
from coliving.errors import (
    CannotSelfRemoveAdminError,
    ConflictError,
    ForbiddenError,
    InactiveGroupError,
    NotFoundError,
)
from coliving.group.models import (
    JOINED_VIA_ADMIN,
    JOINED_VIA_LINK,
    STATUS_ACTIVE,
    Group,
)

from .repository import member_record_ref

if TYPE_CHECKING:
    from coliving.core.store import DocumentStore
    from coliving.notifications.services import NotificationService

    from .repository import GroupRepository

logger = logging.getLogger(__name__)


class MembershipService:
    """Adds and removes members with atomic array transforms.

    ``members`` is only ever changed through ``ArrayUnion``/``ArrayRemove`` so
    that concurrent joins from different clients cannot overwrite each other.
    A write that loses a contention race is retried once against a fresh read.
    """

    def __init__(
        self,
        store: DocumentStore,
        repository: GroupRepository,
        notifications: NotificationService,
    ) -> None:
        self.store = store
        self.repository = repository
        self.notifications = notifications

    def _commit(self, batch: Any, action: str) -> None:
        with self.store.guarded_write(action):
            batch.commit(timeout=self.store.write_timeout)

    def _atomic_add(self, group_id: str, user_id: str, joined_via: str) -> Group:
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            group = self.repository.get_group(group_id)
            if group.get("status") != STATUS_ACTIVE:
                raise InactiveGroupError()
            if user_id in group.get("members", []):
                return group

            group_ref = self.repository.ref(group_id)
            batch = self.store.batch()
            batch.update(
                group_ref,
                {
                    "members": firestore.ArrayUnion([user_id]),
                    f"membersJoinedAt.{user_id}": firestore.SERVER_TIMESTAMP,
                },
            )
            batch.set(
                member_record_ref(group_ref, user_id),
                {
                    "userId": user_id,
                    "joinedVia": joined_via,
                    "joinedAt": firestore.SERVER_TIMESTAMP,
                },
            )
            try:
                self._commit(batch, "add a group member")
            except exceptions.Aborted:
                logger.warning(
                    "Write conflict adding %s to group %s (attempt %s/%s)",
                    user_id,
                    group_id,
                    attempt,
                    MAX_WRITE_ATTEMPTS,
                )
                continue
            except exceptions.NotFound as e:
                raise NotFoundError("Group not found.") from e

            return self._verify_added(group_id, user_id)

        raise ConflictError()

    def _verify_added(self, group_id: str, user_id: str) -> Group:
        """Undo an add that landed after the group stopped being active."""
        group = self.repository.get_group(group_id)
        if group.get("status") == STATUS_ACTIVE:
            return group

        logger.warning(
            "Group %s became %s while %s was joining; rolling back",
            group_id,
            group.get("status"),
            user_id,
        )
        group_ref = self.repository.ref(group_id)
        batch = self.store.batch()
        batch.update(
            group_ref,
            {
                "members": firestore.ArrayRemove([user_id]),
                f"membersJoinedAt.{user_id}": firestore.DELETE_FIELD,
            },
        )
        batch.delete(member_record_ref(group_ref, user_id))
        self._commit(batch, "roll back a group join")
        raise InactiveGroupError()

    def add_member(
        self, group_id: str, user_id: str, joined_via: str = JOINED_VIA_ADMIN
    ) -> Group:
        """Add ``user_id`` to an active group and return the updated group."""
        group = self._atomic_add(group_id, user_id, joined_via)
        logger.info("User %s joined group %s via %s", user_id, group_id, joined_via)
        return group

    def join_directly(self, group_id: str, user_id: str) -> Group:
        """Self-service join, e.g. from a shareable link. Idempotent."""
        return self.add_member(group_id, user_id, JOINED_VIA_LINK)

    def remove_member(self, group_id: str, user_id: str, acting_user_id: str) -> Group:
        """Remove ``user_id`` from a group.

        Members may remove themselves and the admin may remove anyone except
        themselves; an admin has to transfer leadership or delete the group.
        """
        group = self.repository.get_group(group_id)
        admin_id = group.get("adminId")
        if user_id == admin_id and acting_user_id == admin_id:
            raise CannotSelfRemoveAdminError()
        if acting_user_id not in (user_id, admin_id):
            raise ForbiddenError("Only the group admin can remove other members.")

        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            if attempt > 1:
                group = self.repository.get_group(group_id)
            if user_id not in group.get("members", []):
                return group

            group_ref = self.repository.ref(group_id)
            batch = self.store.batch()
            batch.update(
                group_ref,
                {
                    "members": firestore.ArrayRemove([user_id]),
                    f"membersJoinedAt.{user_id}": firestore.DELETE_FIELD,
                },
            )
            batch.delete(member_record_ref(group_ref, user_id))
            try:
                self._commit(batch, "remove a group member")
            except exceptions.Aborted:
                logger.warning(
                    "Write conflict removing %s from group %s (attempt %s/%s)",
                    user_id,
                    group_id,
                    attempt,
                    MAX_WRITE_ATTEMPTS,
                )
                continue
            except exceptions.NotFound as e:
                raise NotFoundError("Group not found.") from e
            break
        else:
            raise ConflictError()

        logger.info("User %s removed from group %s by %s", user_id, group_id, acting_user_id)
        if acting_user_id != user_id:
            self.notifications.notify_removal(group_id, group.get("name", ""), user_id)
        return self.repository.get_group(group_id)
