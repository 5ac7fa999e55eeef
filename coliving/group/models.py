"""Data models for the group blueprint."""

from __future__ import annotations

from typing import Any, TypedDict

from coliving.core.types import FirestoreDocument

STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"
STATUS_COMPLETED = "completed"
GROUP_STATUSES = (STATUS_ACTIVE, STATUS_EXPIRED, STATUS_COMPLETED)

INVITE_PENDING = "pending"
INVITE_ACCEPTED = "accepted"
INVITE_REJECTED = "rejected"
INVITE_DECISIONS = (INVITE_ACCEPTED, INVITE_REJECTED)

INVITE_MANUAL = "manual"
INVITE_LINK = "link"
INVITE_TYPES = (INVITE_MANUAL, INVITE_LINK)

JOINED_VIA_CREATOR = "creator"
JOINED_VIA_ADMIN = "admin"
JOINED_VIA_INVITATION = "invitation"
JOINED_VIA_LINK = "link"


class Group(FirestoreDocument, total=False):
    """A group document in Firestore."""

    name: str
    description: str
    adminId: str
    creatorName: str
    creatorEmail: str
    members: list[str]
    membersJoinedAt: dict[str, Any]
    requiredMembers: int
    thresholdPercent: int
    expirationTime: Any
    status: str
    purpose: str
    properties: list[str]
    apartmentRef: str | None


class MemberRecord(TypedDict, total=False):
    """Per-member side record stored under a group."""

    userId: str
    joinedVia: str
    joinedAt: Any


class Invitation(FirestoreDocument, total=False):
    """A pending invitation for one user to join one group."""

    groupId: str
    groupName: str
    inviterId: str
    recipientId: str
    status: str
    type: str


def invitation_id(recipient_id: str, group_id: str) -> str:
    """Return the deterministic id of the invitation for a (user, group) pair."""
    return f"{recipient_id}_{group_id}"


def group_id_from_invitation_id(inv_id: str, recipient_id: str) -> str | None:
    """Recover the group id from an invitation id addressed to ``recipient_id``."""
    prefix = f"{recipient_id}_"
    if not inv_id.startswith(prefix) or len(inv_id) == len(prefix):
        return None
    return inv_id[len(prefix) :]


def group_from_snapshot(snapshot: Any) -> Group | None:
    """Convert a Firestore snapshot into a group dict, or None if missing."""
    if snapshot is None or not snapshot.exists:
        return None
    data = snapshot.to_dict() or {}
    data["id"] = snapshot.id
    data.setdefault("members", [])
    data.setdefault("membersJoinedAt", {})
    data.setdefault("status", STATUS_ACTIVE)
    return data  # type: ignore[return-value]


def invitation_from_snapshot(snapshot: Any) -> Invitation | None:
    """Convert a Firestore snapshot into an invitation dict, or None if missing."""
    if snapshot is None or not snapshot.exists:
        return None
    data = snapshot.to_dict() or {}
    data["id"] = snapshot.id
    return data  # type: ignore[return-value]
