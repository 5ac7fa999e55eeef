"""Typed access to group documents."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from firebase_admin import firestore
from google.api_core import exceptions

from coliving.auth.services import get_profile
from coliving.constants import (
    GROUP_MEMBERS_SUBCOLLECTION,
    GROUPS_COLLECTION,
    INVITATIONS_COLLECTION,
    MIN_REQUIRED_MEMBERS,
)
from coliving.core.store import utcnow
from coliving.errors import (
    ConfigUnavailableError,
    ConflictError,
    ForbiddenError,
    InactiveGroupError,
    NotFoundError,
    ValidationError,
)
from coliving.group.models import (
    INVITE_PENDING,
    JOINED_VIA_CREATOR,
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    Group,
    group_from_snapshot,
)

if TYPE_CHECKING:
    from datetime import datetime

    from coliving.admin.services import SettingsService
    from coliving.core.store import DocumentStore, Subscription

logger = logging.getLogger(__name__)

STORE_ERRORS = (exceptions.GoogleAPICallError, exceptions.RetryError)


def validate_required_members(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("Required members must be a whole number.")
    if value < MIN_REQUIRED_MEMBERS:
        raise ValidationError(
            f"A group needs at least {MIN_REQUIRED_MEMBERS} required members."
        )
    return value


def member_record_ref(group_ref: Any, user_id: str) -> Any:
    """Return the per-member side record of ``user_id`` under a group."""
    return group_ref.collection(GROUP_MEMBERS_SUBCOLLECTION).document(user_id)


def stage_membership_clear(
    batch: Any, group_ref: Any, group: Group, status: str, option: Any = None
) -> None:
    """Stage the writes that end a group: new status, no members, no side records."""
    updates = {"status": status, "members": [], "membersJoinedAt": {}}
    if option is not None:
        batch.update(group_ref, updates, option=option)
    else:
        batch.update(group_ref, updates)
    for user_id in group.get("members", []):
        batch.delete(member_record_ref(group_ref, user_id))


class GroupRepository:
    """Creates, reads, observes and edits group documents."""

    def __init__(
        self,
        store: DocumentStore,
        settings: SettingsService,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.settings = settings
        self.clock = clock

    @property
    def collection(self) -> Any:
        return self.store.collection(GROUPS_COLLECTION)

    def ref(self, group_id: str) -> Any:
        return self.collection.document(group_id)

    # --- Creation ---------------------------------------------------------

    def _creator_details(self, creator_id: str) -> tuple[str, str]:
        try:
            profile = get_profile(self.store, creator_id)
        except STORE_ERRORS as e:
            logger.warning("Could not load profile for %s: %s", creator_id, e)
            profile = None
        if not profile:
            return "Admin", ""
        return profile.get("displayName") or "Admin", profile.get("email") or ""

    def _validate_properties(self, properties: Any) -> list[str]:
        if not properties:
            return []
        if not isinstance(properties, (list, tuple)) or not all(
            isinstance(p, str) for p in properties
        ):
            raise ValidationError("Properties must be a list of names.")
        properties = list(dict.fromkeys(p.strip() for p in properties if p.strip()))
        try:
            allowed = self.settings.get_group_properties()
        except STORE_ERRORS as e:
            logger.warning("Could not load the group property catalogue: %s", e)
            return properties
        unknown = [p for p in properties if allowed and p not in allowed]
        if unknown:
            raise ValidationError(f"Unknown group properties: {', '.join(unknown)}.")
        return properties

    def create_group(  # noqa: PLR0913
        self,
        name: str,
        required_members: int,
        creator_id: str,
        description: str = "",
        properties: list[str] | None = None,
        purpose: str = "",
        apartment_ref: str | None = None,
    ) -> str:
        """Create an active group whose only member is its creator.

        The expiration deadline and the threshold percent are taken from the
        global settings at this moment and never recomputed afterwards.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Group name is required.")
        required_members = validate_required_members(required_members)
        properties = self._validate_properties(properties)

        settings = self.settings.get_group_settings()
        created_at = self.clock()
        creator_name, creator_email = self._creator_details(creator_id)

        group_ref = self.collection.document()
        group_data = {
            "name": name,
            "description": description or "",
            "purpose": purpose or "",
            "properties": properties,
            "apartmentRef": apartment_ref,
            "adminId": creator_id,
            "creatorName": creator_name,
            "creatorEmail": creator_email,
            "members": [creator_id],
            "membersJoinedAt": {creator_id: firestore.SERVER_TIMESTAMP},
            "requiredMembers": required_members,
            "thresholdPercent": settings.threshold_percent,
            "createdAt": created_at,
            "expirationTime": created_at + timedelta(hours=settings.timeout_hours),
            "status": STATUS_ACTIVE,
        }

        batch = self.store.batch()
        batch.set(group_ref, group_data)
        batch.set(
            member_record_ref(group_ref, creator_id),
            {
                "userId": creator_id,
                "joinedVia": JOINED_VIA_CREATOR,
                "joinedAt": firestore.SERVER_TIMESTAMP,
            },
        )
        try:
            with self.store.guarded_write("create a group"):
                batch.commit(timeout=self.store.write_timeout)
        except STORE_ERRORS as e:
            logger.error("Failed to create group %r: %s", name, e)
            raise ConfigUnavailableError("Could not create the group.") from e

        logger.info("Group %s created by %s", group_ref.id, creator_id)
        return group_ref.id

    # --- Reads --------------------------------------------------------------

    def find_group(self, group_id: str) -> Group | None:
        return group_from_snapshot(self.ref(group_id).get())

    def get_group(self, group_id: str) -> Group:
        group = self.find_group(group_id)
        if group is None:
            raise NotFoundError("Group not found.")
        return group

    def load(self, group_id: str) -> tuple[Any, Any, Group]:
        """Read a group, returning its reference, raw snapshot and data."""
        ref = self.ref(group_id)
        snapshot = ref.get()
        group = group_from_snapshot(snapshot)
        if group is None:
            raise NotFoundError("Group not found.")
        return ref, snapshot, group

    def list_groups(self) -> list[Group]:
        return [g for g in map(group_from_snapshot, self.collection.stream()) if g]

    def _user_groups_query(self, user_id: str) -> Any:
        return self.collection.where(
            filter=firestore.FieldFilter("members", "array_contains", user_id)
        )

    def list_user_groups(self, user_id: str) -> list[Group]:
        return [
            g
            for g in map(group_from_snapshot, self._user_groups_query(user_id).stream())
            if g
        ]

    # --- Subscriptions ------------------------------------------------------

    def subscribe_group(
        self, group_id: str, on_change: Callable[[Group | None], None]
    ) -> Subscription:
        """Push the group (or None once deleted) on every change."""

        def deliver(snapshots: list[Any]) -> None:
            on_change(group_from_snapshot(snapshots[0]) if snapshots else None)

        return self.store.subscribe(self.ref(group_id), deliver, f"group {group_id}")

    def subscribe_all_groups(
        self, on_change: Callable[[list[Group]], None]
    ) -> Subscription:
        def deliver(snapshots: list[Any]) -> None:
            on_change([g for g in map(group_from_snapshot, snapshots) if g])

        return self.store.subscribe(self.collection, deliver, "all groups")

    def subscribe_user_groups(
        self, user_id: str, on_change: Callable[[list[Group]], None]
    ) -> Subscription:
        def deliver(snapshots: list[Any]) -> None:
            on_change([g for g in map(group_from_snapshot, snapshots) if g])

        return self.store.subscribe(
            self._user_groups_query(user_id), deliver, f"groups of {user_id}"
        )

    # --- Administrative edits -------------------------------------------------

    def _require_admin(self, group_id: str, acting_user_id: str) -> tuple[Any, Any, Group]:
        ref, snapshot, group = self.load(group_id)
        if group.get("adminId") != acting_user_id:
            raise ForbiddenError("Only the group admin can do that.")
        return ref, snapshot, group

    def _write(self, ref: Any, updates: dict[str, Any], action: str) -> None:
        with self.store.guarded_write(action):
            ref.update(updates, timeout=self.store.write_timeout)

    def update_required_members(
        self, group_id: str, required_members: int, acting_user_id: str
    ) -> None:
        ref, _, group = self._require_admin(group_id, acting_user_id)
        if group.get("status") != STATUS_ACTIVE:
            raise InactiveGroupError()
        self._write(
            ref,
            {"requiredMembers": validate_required_members(required_members)},
            "update required members",
        )

    def update_details(  # noqa: PLR0913
        self,
        group_id: str,
        acting_user_id: str,
        name: str | None = None,
        description: str | None = None,
        purpose: str | None = None,
        properties: list[str] | None = None,
        apartment_ref: str | None = None,
    ) -> None:
        ref, _, _ = self._require_admin(group_id, acting_user_id)
        updates: dict[str, Any] = {}
        if name is not None:
            if not name.strip():
                raise ValidationError("Group name is required.")
            updates["name"] = name.strip()
        if description is not None:
            updates["description"] = description
        if purpose is not None:
            updates["purpose"] = purpose
        if properties is not None:
            updates["properties"] = self._validate_properties(properties)
        if apartment_ref is not None:
            updates["apartmentRef"] = apartment_ref or None
        if not updates:
            raise ValidationError("Nothing to update.")
        self._write(ref, updates, "update group details")

    def update_admin(self, group_id: str, new_admin_id: str, acting_user_id: str) -> None:
        """Hand group leadership to another current member."""
        ref, _, group = self._require_admin(group_id, acting_user_id)
        if group.get("status") != STATUS_ACTIVE:
            raise InactiveGroupError()
        if new_admin_id not in group.get("members", []):
            raise ValidationError("The new admin must be a member of the group.")
        self._write(ref, {"adminId": new_admin_id}, "transfer group leadership")
        logger.info(
            "Group %s leadership moved from %s to %s",
            group_id,
            acting_user_id,
            new_admin_id,
        )

    def complete_group(self, group_id: str, acting_user_id: str) -> None:
        """Mark an active group as completed and release its members."""
        ref, snapshot, group = self._require_admin(group_id, acting_user_id)
        if group.get("status") != STATUS_ACTIVE:
            raise InactiveGroupError()

        batch = self.store.batch()
        stage_membership_clear(
            batch,
            ref,
            group,
            STATUS_COMPLETED,
            option=self.store.last_update_option(snapshot),
        )
        try:
            with self.store.guarded_write("complete the group"):
                batch.commit(timeout=self.store.write_timeout)
        except exceptions.FailedPrecondition as e:
            raise ConflictError() from e

    def delete_group(self, group_id: str, acting_user_id: str) -> None:
        """Delete a group with its member records and pending invitations."""
        ref, _, group = self._require_admin(group_id, acting_user_id)

        batch = self.store.batch()
        for user_id in group.get("members", []):
            batch.delete(member_record_ref(ref, user_id))
        pending = (
            self.store.collection(INVITATIONS_COLLECTION)
            .where(filter=firestore.FieldFilter("groupId", "==", group_id))
            .stream()
        )
        for invitation in pending:
            if (invitation.to_dict() or {}).get("status", INVITE_PENDING) == INVITE_PENDING:
                batch.delete(invitation.reference)
        batch.delete(ref)
        with self.store.guarded_write("delete the group"):
            batch.commit(timeout=self.store.write_timeout)
        logger.info("Group %s deleted by %s", group_id, acting_user_id)
