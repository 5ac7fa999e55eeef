"""Data models for the notifications blueprint."""

from __future__ import annotations

from typing import Any

from coliving.core.types import FirestoreDocument

TYPE_GROUP_EXPIRED = "group_expired"
TYPE_GROUP_INVITATION = "group_invitation"
TYPE_GROUP_REMOVED = "group_removed"


class Notification(FirestoreDocument, total=False):
    """A notification in a user's inbox."""

    userId: str
    groupId: str
    groupName: str
    type: str
    message: str
    read: bool


def notification_from_snapshot(snapshot: Any) -> Notification | None:
    """Convert a Firestore snapshot into a notification dict, or None if missing."""
    if snapshot is None or not snapshot.exists:
        return None
    data = snapshot.to_dict() or {}
    data["id"] = snapshot.id
    return data  # type: ignore[return-value]
