"""Service layer for user notification inboxes."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from firebase_admin import firestore
from google.api_core import exceptions

from coliving.constants import FIRESTORE_BATCH_LIMIT, NOTIFICATIONS_COLLECTION
from coliving.errors import ForbiddenError, NotFoundError

from .models import (
    TYPE_GROUP_EXPIRED,
    TYPE_GROUP_INVITATION,
    TYPE_GROUP_REMOVED,
    Notification,
    notification_from_snapshot,
)

if TYPE_CHECKING:
    from coliving.core.store import DocumentStore, Subscription

logger = logging.getLogger(__name__)


class NotificationService:
    """Fans lifecycle events out to notification inboxes.

    Fan-out is best-effort: a failed batch is logged and dropped rather than
    retried or raised, so it never undoes the membership change that caused it.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    @property
    def collection(self) -> Any:
        return self.store.collection(NOTIFICATIONS_COLLECTION)

    def _fan_out(
        self,
        user_ids: Iterable[str],
        group_id: str,
        group_name: str,
        notification_type: str,
        message: str,
    ) -> bool:
        """Write one notification per recipient in a single atomic batch.

        A fan-out larger than one Firestore batch is refused as a whole and
        logged as an error, so no recipient is notified without the others.
        """
        recipients = list(dict.fromkeys(uid for uid in user_ids if uid))
        if not recipients:
            return True
        if len(recipients) > FIRESTORE_BATCH_LIMIT:
            logger.error(
                "Not sending %s notifications for group %s: %s recipients "
                "exceed the batch limit of %s",
                notification_type,
                group_id,
                len(recipients),
                FIRESTORE_BATCH_LIMIT,
            )
            return False

        batch = self.store.batch()
        for user_id in recipients:
            batch.set(
                self.collection.document(),
                {
                    "userId": user_id,
                    "groupId": group_id,
                    "groupName": group_name,
                    "type": notification_type,
                    "message": message,
                    "read": False,
                    "createdAt": firestore.SERVER_TIMESTAMP,
                },
            )
        try:
            batch.commit(timeout=self.store.write_timeout)
        except (exceptions.GoogleAPICallError, exceptions.RetryError) as e:
            logger.error(
                "Failed to send %s notifications for group %s: %s",
                notification_type,
                group_id,
                e,
            )
            return False
        return True

    def notify_expiration(
        self, group_id: str, group_name: str, member_ids: Iterable[str]
    ) -> bool:
        """Tell every former member that the group expired."""
        return self._fan_out(
            member_ids,
            group_id,
            group_name,
            TYPE_GROUP_EXPIRED,
            f'The group "{group_name}" expired before enough members joined.',
        )

    def notify_invitation(
        self, group_id: str, group_name: str, recipient_id: str
    ) -> bool:
        """Tell a user they were invited to a group."""
        return self._fan_out(
            [recipient_id],
            group_id,
            group_name,
            TYPE_GROUP_INVITATION,
            f'You have been invited to join the group "{group_name}".',
        )

    def notify_removal(self, group_id: str, group_name: str, user_id: str) -> bool:
        """Tell a user they were removed from a group."""
        return self._fan_out(
            [user_id],
            group_id,
            group_name,
            TYPE_GROUP_REMOVED,
            f'You have been removed from the group "{group_name}".',
        )

    def _get_owned(self, notification_id: str, user_id: str) -> Any:
        ref = self.collection.document(notification_id)
        notification = notification_from_snapshot(ref.get())
        if notification is None:
            raise NotFoundError("Notification not found.")
        if notification.get("userId") != user_id:
            raise ForbiddenError("This notification belongs to another user.")
        return ref

    def mark_read(self, notification_id: str, user_id: str) -> None:
        ref = self._get_owned(notification_id, user_id)
        with self.store.guarded_write("mark a notification as read"):
            ref.update({"read": True}, timeout=self.store.write_timeout)

    def delete(self, notification_id: str, user_id: str) -> None:
        ref = self._get_owned(notification_id, user_id)
        with self.store.guarded_write("delete a notification"):
            ref.delete(timeout=self.store.write_timeout)

    def _user_query(self, user_id: str) -> Any:
        return self.collection.where(
            filter=firestore.FieldFilter("userId", "==", user_id)
        )

    def list_for_user(self, user_id: str) -> list[Notification]:
        """Return a user's notifications, newest first."""
        notifications = [
            n
            for n in (
                notification_from_snapshot(doc)
                for doc in self._user_query(user_id).stream()
            )
            if n is not None
        ]
        return _newest_first(notifications)

    def unread_count(self, user_id: str) -> int:
        return sum(1 for n in self.list_for_user(user_id) if not n.get("read"))

    def mark_all_read(self, user_id: str) -> int:
        """Mark every unread notification of a user as read.

        Runs one batch per ``FIRESTORE_BATCH_LIMIT`` notifications, so a failure
        part way leaves the earlier batches applied.
        """
        unread = [
            doc
            for doc in self._user_query(user_id).stream()
            if not (doc.to_dict() or {}).get("read")
        ]
        if not unread:
            return 0

        updated = 0
        for chunk in _chunks(unread, FIRESTORE_BATCH_LIMIT):
            batch = self.store.batch()
            for doc in chunk:
                batch.update(doc.reference, {"read": True})
            with self.store.guarded_write("mark notifications as read"):
                batch.commit(timeout=self.store.write_timeout)
            updated += len(chunk)
        return updated

    def subscribe_for_user(
        self, user_id: str, on_change: Callable[[list[Notification]], None]
    ) -> Subscription:
        """Push the user's full notification list on every change."""

        def deliver(snapshots: list[Any]) -> None:
            notifications = [
                n for n in map(notification_from_snapshot, snapshots) if n is not None
            ]
            on_change(_newest_first(notifications))

        return self.store.subscribe(
            self._user_query(user_id), deliver, f"notifications of {user_id}"
        )


def _chunks(items: list[Any], size: int) -> Iterable[list[Any]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _newest_first(notifications: list[Notification]) -> list[Notification]:
    return sorted(
        notifications, key=lambda n: _timestamp(n.get("createdAt")), reverse=True
    )


def _timestamp(value: Any) -> float:
    try:
        return value.timestamp()
    except (AttributeError, TypeError, ValueError, OverflowError):
        return 0.0
