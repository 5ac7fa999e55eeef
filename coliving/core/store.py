"""Namespaced access to the Firestore document store."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from firebase_admin import firestore
from flask import current_app
from google.api_core import exceptions

from coliving.constants import WRITE_TIMEOUT_SECONDS
from coliving.errors import StoreTimeoutError

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client
    from google.cloud.firestore_v1.collection import CollectionReference
    from google.cloud.firestore_v1.document import DocumentReference

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Any) -> datetime | None:
    """Normalize a stored timestamp to an aware UTC datetime."""
    if value is None:
        return None
    if hasattr(value, "to_datetime"):
        value = value.to_datetime()
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Subscription:
    """Revocable handle around a Firestore watch."""

    def __init__(self, watch: Any, description: str = "") -> None:
        self._watch = watch
        self._description = description
        self._lock = threading.Lock()
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        """Stop receiving snapshots. Safe to call more than once."""
        with self._lock:
            if not self._active:
                return
            self._active = False
        self._watch.unsubscribe()
        logger.debug("Unsubscribed from %s", self._description)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.unsubscribe()


class DocumentStore:
    """Wraps a Firestore client with a collection namespace and a write timeout.

    The namespace partitions data sets (for example ``"testdata/db/"`` versus
    ``"realdata/db/"``) and is fixed for the lifetime of the store, so every
    service built on top of it reads and writes the same partition.
    """

    def __init__(
        self,
        db: Client | Any,
        namespace: str = "",
        write_timeout: float = WRITE_TIMEOUT_SECONDS,
    ) -> None:
        self.db = db
        self.namespace = namespace
        self.write_timeout = write_timeout

    def collection(self, name: str) -> CollectionReference:
        """Return the namespaced collection ``name``."""
        return self.db.collection(f"{self.namespace}{name}")

    def document(self, collection_name: str, doc_id: str) -> DocumentReference:
        """Return a document reference inside a namespaced collection."""
        return self.collection(collection_name).document(doc_id)

    def batch(self) -> Any:
        """Start an atomic write batch."""
        return self.db.batch()

    def last_update_option(self, snapshot: Any) -> Any:
        """Build a precondition that the document is unchanged since ``snapshot``."""
        return self.db.write_option(last_update_time=snapshot.update_time)

    @contextmanager
    def guarded_write(self, action: str) -> Iterator[None]:
        """Translate a write deadline into ``StoreTimeoutError``."""
        try:
            yield
        except exceptions.DeadlineExceeded as e:
            logger.warning("Timed out after %ss trying to %s", self.write_timeout, action)
            raise StoreTimeoutError(f"Timed out trying to {action}.") from e

    def subscribe(
        self,
        target: Any,
        on_snapshot: Callable[[list[Any]], None],
        description: str = "",
    ) -> Subscription:
        """Attach a listener to a document or query.

        ``on_snapshot`` receives the full list of current document snapshots
        every time the store commits a change to the target.
        """

        def callback(doc_snapshots: list[Any], changes: Any, read_time: Any) -> None:
            try:
                on_snapshot(list(doc_snapshots))
            except Exception:
                # Watch threads die silently on uncaught errors.
                logger.exception("Snapshot listener for %s failed", description)

        watch = target.on_snapshot(callback)
        return Subscription(watch, description)


def get_store() -> DocumentStore:
    """Build a store for the current Flask app from its configuration."""
    return DocumentStore(
        firestore.client(),
        namespace=current_app.config.get("DB_NAMESPACE", ""),
        write_timeout=float(
            current_app.config.get("WRITE_TIMEOUT_SECONDS", WRITE_TIMEOUT_SECONDS)
        ),
    )
