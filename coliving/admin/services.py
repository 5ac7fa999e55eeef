"""Service layer for admin-managed settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from firebase_admin import firestore
from google.api_core import exceptions

from coliving.constants import (
    DEFAULT_GROUP_TIMEOUT_HOURS,
    DEFAULT_THRESHOLD_PERCENT,
    GROUP_PROPERTIES_DOC,
    GROUP_SETTINGS_DOC,
    SETTINGS_COLLECTION,
)
from coliving.errors import ConfigUnavailableError, ValidationError

if TYPE_CHECKING:
    from coliving.core.store import DocumentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GroupSettings:
    """Global defaults applied to newly created groups."""

    timeout_hours: float = DEFAULT_GROUP_TIMEOUT_HOURS
    threshold_percent: int = DEFAULT_THRESHOLD_PERCENT

    def to_dict(self) -> dict[str, Any]:
        return {
            "timeoutHours": self.timeout_hours,
            "thresholdPercent": self.threshold_percent,
        }


def _validate_timeout_hours(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ValidationError("Timeout hours must be a positive number.")
    return float(value)


def _validate_threshold_percent(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
        raise ValidationError("Threshold percent must be an integer between 0 and 100.")
    return value


class SettingsService:
    """Reads and writes the global group settings and property catalogue."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def _settings_ref(self, doc_id: str) -> Any:
        return self.store.document(SETTINGS_COLLECTION, doc_id)

    def _read_group_settings(self) -> GroupSettings:
        try:
            snapshot = self._settings_ref(GROUP_SETTINGS_DOC).get()
        except (exceptions.GoogleAPICallError, exceptions.RetryError) as e:
            raise ConfigUnavailableError(f"Could not read group settings: {e}") from e
        if not snapshot.exists:
            raise ConfigUnavailableError("Group settings have not been configured.")

        data = snapshot.to_dict() or {}
        try:
            return GroupSettings(
                timeout_hours=_validate_timeout_hours(
                    data.get("timeoutHours", DEFAULT_GROUP_TIMEOUT_HOURS)
                ),
                threshold_percent=_validate_threshold_percent(
                    data.get("thresholdPercent", DEFAULT_THRESHOLD_PERCENT)
                ),
            )
        except ValidationError as e:
            raise ConfigUnavailableError(f"Invalid group settings: {e.message}") from e

    def get_group_settings(self) -> GroupSettings:
        """Return the configured group defaults, or the built-in defaults."""
        try:
            return self._read_group_settings()
        except ConfigUnavailableError as e:
            logger.warning("%s Falling back to default group settings.", e.message)
            return GroupSettings()

    def update_group_settings(
        self, timeout_hours: Any = None, threshold_percent: Any = None
    ) -> GroupSettings:
        """Update one or both group defaults.

        Existing groups keep the threshold they captured when they were created.
        """
        updates: dict[str, Any] = {}
        if timeout_hours is not None:
            updates["timeoutHours"] = _validate_timeout_hours(timeout_hours)
        if threshold_percent is not None:
            updates["thresholdPercent"] = _validate_threshold_percent(threshold_percent)
        if not updates:
            raise ValidationError("Nothing to update.")

        with self.store.guarded_write("update group settings"):
            self._settings_ref(GROUP_SETTINGS_DOC).set(
                updates, merge=True, timeout=self.store.write_timeout
            )
        return self.get_group_settings()

    def get_group_properties(self) -> list[str]:
        """Return the catalogue of properties a group may declare."""
        snapshot = self._settings_ref(GROUP_PROPERTIES_DOC).get()
        if not snapshot.exists:
            return []
        return list((snapshot.to_dict() or {}).get("values", []))

    def add_group_property(self, name: str) -> str:
        """Add a property to the catalogue; adding an existing one is a no-op."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Property name is required.")
        with self.store.guarded_write("add a group property"):
            self._settings_ref(GROUP_PROPERTIES_DOC).set(
                {"values": firestore.ArrayUnion([name])},
                merge=True,
                timeout=self.store.write_timeout,
            )
        return name

    def remove_group_property(self, name: str) -> None:
        """Remove a property from the catalogue."""
        with self.store.guarded_write("remove a group property"):
            self._settings_ref(GROUP_PROPERTIES_DOC).set(
                {"values": firestore.ArrayRemove([name])},
                merge=True,
                timeout=self.store.write_timeout,
            )
