"""Time-boxed expiration of groups that fail to fill up."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import timedelta
from typing import TYPE_CHECKING

from google.api_core import exceptions

from coliving.constants import DEFAULT_THRESHOLD_PERCENT, EXPIRATION_TICK_SECONDS
from coliving.core.store import as_utc, utcnow
from coliving.group.models import STATUS_ACTIVE, STATUS_EXPIRED, Group, group_from_snapshot

from .repository import stage_membership_clear

if TYPE_CHECKING:
    from datetime import datetime

    from coliving.admin.services import SettingsService
    from coliving.core.store import DocumentStore, Subscription
    from coliving.notifications.services import NotificationService

    from .repository import GroupRepository

logger = logging.getLogger(__name__)


def member_threshold(group: Group, default_threshold_percent: int | None) -> float:
    """Return the headcount a group must reach before its deadline."""
    percent = group.get("thresholdPercent")
    if percent is None:
        percent = default_threshold_percent
    if percent is None:
        percent = DEFAULT_THRESHOLD_PERCENT
    return group.get("requiredMembers", 0) * percent / 100


def should_expire(
    group: Group,
    now: datetime,
    default_threshold_percent: int | None = DEFAULT_THRESHOLD_PERCENT,
) -> bool:
    """Decide whether an active group is past its deadline and under threshold."""
    if group.get("status", STATUS_ACTIVE) != STATUS_ACTIVE:
        return False
    deadline = as_utc(group.get("expirationTime"))
    if deadline is None:
        return False
    if now <= deadline:
        return False
    return len(group.get("members", [])) < member_threshold(
        group, default_threshold_percent
    )


def time_remaining(group: Group, now: datetime) -> timedelta | None:
    """Countdown to the group's deadline, clamped at zero. None if not running."""
    if group.get("status", STATUS_ACTIVE) != STATUS_ACTIVE:
        return None
    deadline = as_utc(group.get("expirationTime"))
    if deadline is None:
        return None
    return max(deadline - now, timedelta(0))


class ExpirationMonitor:
    """Observes groups and expires the ones that missed their deadline.

    Any number of monitors, in any number of processes, may run at once. The
    transition is written with a last-update-time precondition taken from a
    fresh read, so only the first observer to commit it wins; the others see
    either the expired status or a failed precondition and skip it, and only
    the winner fans out notifications.
    """

    def __init__(  # noqa: PLR0913
        self,
        store: DocumentStore,
        repository: GroupRepository,
        notifications: NotificationService,
        settings: SettingsService,
        clock: Callable[[], datetime] = utcnow,
        tick_seconds: float = EXPIRATION_TICK_SECONDS,
    ) -> None:
        self.store = store
        self.repository = repository
        self.notifications = notifications
        self.settings = settings
        self.clock = clock
        self.tick_seconds = tick_seconds

        self._groups: dict[str, Group] = {}
        self._groups_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._subscription: Subscription | None = None

    def _default_threshold_percent(self, group: Group) -> int | None:
        """The global default, read only for groups without their own percent."""
        if group.get("thresholdPercent") is not None:
            return None
        return self.settings.get_group_settings().threshold_percent

    def check_group(self, group: Group) -> bool:
        """Evaluate one observed group and expire it if due.

        A non-active group that still lists members (a join that landed after
        the group ended and whose rollback never committed) is cleared again.
        Returns True only when this call performed the expiration.
        """
        if group.get("status", STATUS_ACTIVE) != STATUS_ACTIVE:
            if group.get("members"):
                self._clear_stale_members(group["id"])
            return False
        if group.get("expirationTime") is None:
            return False
        now = self.clock()
        default_percent = self._default_threshold_percent(group)
        if not should_expire(group, now, default_percent):
            return False
        return self._expire(group["id"], now, default_percent)

    def _clear_stale_members(self, group_id: str) -> bool:
        group_ref = self.repository.ref(group_id)
        try:
            snapshot = group_ref.get()
            group = group_from_snapshot(snapshot)
            if group is None or group["status"] == STATUS_ACTIVE:
                return False
            if not group.get("members"):
                return False
            stale = list(group["members"])

            batch = self.store.batch()
            stage_membership_clear(
                batch,
                group_ref,
                group,
                group["status"],
                option=self.store.last_update_option(snapshot),
            )
            batch.commit(timeout=self.store.write_timeout)
        except (exceptions.FailedPrecondition, exceptions.NotFound):
            logger.debug("Group %s changed while clearing stale members", group_id)
            return False
        except (exceptions.GoogleAPICallError, exceptions.RetryError) as e:
            logger.warning(
                "Could not clear stale members of group %s, will retry: %s", group_id, e
            )
            return False

        logger.warning(
            "Removed %s from %s group %s", ", ".join(stale), group["status"], group_id
        )
        return True

    def _expire(self, group_id: str, now: datetime, default_percent: int | None) -> bool:
        group_ref = self.repository.ref(group_id)
        try:
            snapshot = group_ref.get()
            group = group_from_snapshot(snapshot)
            if group is None or not should_expire(group, now, default_percent):
                return False
            former_members = list(group.get("members", []))

            batch = self.store.batch()
            stage_membership_clear(
                batch,
                group_ref,
                group,
                STATUS_EXPIRED,
                option=self.store.last_update_option(snapshot),
            )
            batch.commit(timeout=self.store.write_timeout)
        except exceptions.FailedPrecondition:
            logger.debug("Group %s changed before it could be expired", group_id)
            return False
        except exceptions.NotFound:
            logger.debug("Group %s was deleted before it could be expired", group_id)
            return False
        except (exceptions.GoogleAPICallError, exceptions.RetryError) as e:
            logger.warning("Could not expire group %s, will retry: %s", group_id, e)
            return False

        logger.info(
            "Group %s expired with %s of %s required members",
            group_id,
            len(former_members),
            group.get("requiredMembers"),
        )
        self.notifications.notify_expiration(
            group_id, group.get("name", ""), former_members
        )
        return True

    def check_groups(self, groups: list[Group]) -> list[str]:
        """Evaluate several groups, returning the ids this call expired."""
        return [g["id"] for g in groups if self.check_group(g)]

    def run_once(self) -> list[str]:
        """Evaluate every group in the store once."""
        return self.check_groups(self.repository.list_groups())

    # --- Continuous observation ---------------------------------------------

    def _on_groups(self, groups: list[Group]) -> None:
        with self._groups_lock:
            self._groups = {g["id"]: g for g in groups}
        self.check_groups(groups)

    def sweep(self) -> list[str]:
        """Re-evaluate the most recently observed snapshots (one clock tick)."""
        with self._groups_lock:
            groups = list(self._groups.values())
        return self.check_groups(groups)

    def _tick_loop(self) -> None:
        while not self._stop_event.wait(self.tick_seconds):
            try:
                self.sweep()
            except Exception:
                # The ticker must outlive transient store failures.
                logger.exception("Expiration sweep failed")

    def start(self) -> None:
        """Subscribe to all groups and start the wall-clock ticker."""
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._subscription = self.repository.subscribe_all_groups(self._on_groups)
        self._thread = threading.Thread(
            target=self._tick_loop, name="group-expiration", daemon=True
        )
        self._thread.start()
        logger.info("Expiration monitor started (tick %ss)", self.tick_seconds)

    def stop(self) -> None:
        """Unsubscribe and stop the ticker."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=max(self.tick_seconds * 2, 1.0))
            self._thread = None
        with self._groups_lock:
            self._groups = {}
        logger.info("Expiration monitor stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None
