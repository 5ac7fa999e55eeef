"""Core module for the coliving application."""

from .store import DocumentStore, Subscription, get_store
from .types import FirestoreDocument

__all__ = ["DocumentStore", "FirestoreDocument", "Subscription", "get_store"]
