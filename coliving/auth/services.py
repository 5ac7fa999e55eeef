"""Access to the external profile collection and the signed-in user."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from flask import session

from coliving.constants import PROFILES_COLLECTION, ROLE_ADMIN

if TYPE_CHECKING:
    from coliving.core.store import DocumentStore


def current_user_id() -> str | None:
    """Return the uid stored in the session by ``session_login``."""
    return session.get("user_id")


def get_profile(store: DocumentStore, uid: str) -> dict[str, Any] | None:
    """Fetch a user's profile (displayName, email, role)."""
    snapshot = store.document(PROFILES_COLLECTION, uid).get()
    if not snapshot.exists:
        return None
    data = snapshot.to_dict() or {}
    data["uid"] = uid
    return data


def is_admin_profile(profile: dict[str, Any] | None) -> bool:
    return bool(profile) and profile.get("role") == ROLE_ADMIN
