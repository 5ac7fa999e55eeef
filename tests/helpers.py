"""Shared fixtures for the group engine tests."""

import unittest
from datetime import datetime, timedelta, timezone

from coliving.core.store import DocumentStore
from coliving.group.services import GroupServices
from tests.mock_utils import FakeFirestore

NAMESPACE = "testdata/db/"
START = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """A wall clock that only moves when told to."""

    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class BaseServiceTestCase(unittest.TestCase):
    """Builds the group services over an in-memory store for each test."""

    def setUp(self):
        self.clock = FakeClock()
        self.db = FakeFirestore(clock=self.clock)
        self.store = DocumentStore(self.db, namespace=NAMESPACE, write_timeout=5)
        self.services = GroupServices.build(self.store, clock=self.clock)
        self.repository = self.services.repository
        self.membership = self.services.membership
        self.invitations = self.services.invitations
        self.notifications = self.services.notifications
        self.settings = self.services.settings
        self.monitor = self.services.expiration

    def tearDown(self):
        self.monitor.stop()

    def path(self, collection, doc_id=None):
        path = f"{NAMESPACE}{collection}"
        return f"{path}/{doc_id}" if doc_id else path

    def add_profile(self, uid, display_name=None, email=None, role="user"):
        self.db.document(self.path("profiles", uid)).set(
            {
                "displayName": display_name or uid.title(),
                "email": email or f"{uid}@example.com",
                "role": role,
            }
        )

    def set_group_settings(self, timeout_hours=24, threshold_percent=40):
        self.db.document(self.path("settings", "groups")).set(
            {"timeoutHours": timeout_hours, "thresholdPercent": threshold_percent}
        )

    def make_group(self, admin="alice", required_members=10, members=(), **kwargs):
        """Create a group led by ``admin`` and add ``members`` to it."""
        group_id = self.repository.create_group(
            kwargs.pop("name", "Maple Street House"),
            required_members,
            admin,
            **kwargs,
        )
        for uid in members:
            self.membership.add_member(group_id, uid)
        return group_id

    def group_data(self, group_id):
        return self.db.data(self.path("groups", group_id))

    def member_record(self, group_id, uid):
        return self.db.data(self.path("groups", group_id) + f"/members/{uid}")

    def notifications_for(self, uid):
        return [
            data
            for data in (
                self.db.data(p) for p in self.db.paths(self.path("notifications") + "/")
            )
            if data and data["userId"] == uid
        ]
