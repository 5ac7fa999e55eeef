"""Group services wired together over one document store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from coliving.admin.services import SettingsService
from coliving.notifications.services import NotificationService

from .expiration import ExpirationMonitor
from .invitations import InvitationService
from .membership import MembershipService
from .repository import GroupRepository

if TYPE_CHECKING:
    from coliving.core.store import DocumentStore


@dataclass
class GroupServices:
    """The group engine's components sharing one store and namespace."""

    store: DocumentStore
    settings: SettingsService
    notifications: NotificationService
    repository: GroupRepository
    membership: MembershipService
    invitations: InvitationService
    expiration: ExpirationMonitor

    @classmethod
    def build(cls, store: DocumentStore, **monitor_options) -> GroupServices:
        """Build every component for ``store``.

        ``monitor_options`` are passed to ``ExpirationMonitor`` (``clock``,
        ``tick_seconds``); ``clock`` is shared with the repository.
        """
        settings = SettingsService(store)
        notifications = NotificationService(store)
        repository_options = {}
        if "clock" in monitor_options:
            repository_options["clock"] = monitor_options["clock"]
        repository = GroupRepository(store, settings, **repository_options)
        membership = MembershipService(store, repository, notifications)
        invitations = InvitationService(store, repository, membership, notifications)
        expiration = ExpirationMonitor(
            store, repository, notifications, settings, **monitor_options
        )
        return cls(
            store=store,
            settings=settings,
            notifications=notifications,
            repository=repository,
            membership=membership,
            invitations=invitations,
            expiration=expiration,
        )


__all__ = [
    "ExpirationMonitor",
    "GroupRepository",
    "GroupServices",
    "InvitationService",
    "MembershipService",
]
