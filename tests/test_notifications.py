"""Tests for notification inboxes."""

from __future__ import annotations

import unittest
from datetime import datetime, timezone

from google.api_core import exceptions
from mockfirestore import MockFirestore

from coliving.constants import FIRESTORE_BATCH_LIMIT
from coliving.core.store import DocumentStore
from coliving.errors import ForbiddenError, NotFoundError
from coliving.notifications.services import NotificationService
from tests.conftest import patch_mockfirestore
from tests.helpers import BaseServiceTestCase


class NotificationReadTestCase(unittest.TestCase):
    def setUp(self) -> None:
        patch_mockfirestore()
        self.db = MockFirestore()
        self.service = NotificationService(DocumentStore(self.db))

        notifications = self.db.collection("notifications")
        notifications.document("n1").set(
            {
                "userId": "bob",
                "type": "group_invitation",
                "read": True,
                "createdAt": datetime(2026, 1, 1, tzinfo=timezone.utc),
            }
        )
        notifications.document("n2").set(
            {
                "userId": "bob",
                "type": "group_expired",
                "read": False,
                "createdAt": datetime(2026, 1, 3, tzinfo=timezone.utc),
            }
        )
        notifications.document("n3").set(
            {
                "userId": "carol",
                "type": "group_removed",
                "read": False,
                "createdAt": datetime(2026, 1, 2, tzinfo=timezone.utc),
            }
        )

    def tearDown(self) -> None:
        self.db.reset()

    def test_list_for_user_newest_first(self) -> None:
        notifications = self.service.list_for_user("bob")

        self.assertEqual([n["id"] for n in notifications], ["n2", "n1"])

    def test_unread_count(self) -> None:
        self.assertEqual(self.service.unread_count("bob"), 1)
        self.assertEqual(self.service.unread_count("nobody"), 0)


class NotificationServiceTestCase(BaseServiceTestCase):
    def test_fan_out_one_per_recipient(self) -> None:
        sent = self.notifications.notify_expiration(
            "g1", "Maple Street House", ["alice", "bob", "alice", ""]
        )

        self.assertTrue(sent)
        self.assertEqual(len(self.notifications_for("alice")), 1)
        notification = self.notifications_for("bob")[0]
        self.assertEqual(notification["groupName"], "Maple Street House")
        self.assertFalse(notification["read"])

    def test_fan_out_failure_is_reported_not_raised(self) -> None:
        self.db.fail_next("write", exceptions.ServiceUnavailable("down"), "notifications")

        self.assertFalse(self.notifications.notify_removal("g1", "House", "bob"))
        self.assertEqual(self.notifications_for("bob"), [])

    def test_mark_read_and_delete(self) -> None:
        self.notifications.notify_invitation("g1", "House", "bob")
        self.notifications.notify_removal("g1", "House", "bob")
        first, second = self.notifications.list_for_user("bob")

        self.notifications.mark_read(first["id"], "bob")
        self.assertEqual(self.notifications.unread_count("bob"), 1)

        with self.assertRaises(ForbiddenError):
            self.notifications.delete(second["id"], "carol")
        self.notifications.delete(second["id"], "bob")
        with self.assertRaises(NotFoundError):
            self.notifications.mark_read(second["id"], "bob")

    def test_mark_all_read(self) -> None:
        self.notifications.notify_invitation("g1", "House", "bob")
        self.notifications.notify_invitation("g2", "Other House", "bob")

        self.assertEqual(self.notifications.mark_all_read("bob"), 2)
        self.assertEqual(self.notifications.mark_all_read("bob"), 0)
        self.assertEqual(self.notifications.unread_count("bob"), 0)

    def test_full_batch_fan_out_is_one_write(self) -> None:
        recipients = [f"user{i}" for i in range(FIRESTORE_BATCH_LIMIT)]
        commits = self.db.commit_count

        self.assertTrue(self.notifications.notify_expiration("g1", "Big House", recipients))

        self.assertEqual(self.db.commit_count, commits + 1)
        self.assertEqual(
            len(self.db.paths(self.path("notifications") + "/")), len(recipients)
        )

    def test_oversized_fan_out_sends_nothing(self) -> None:
        recipients = [f"user{i}" for i in range(FIRESTORE_BATCH_LIMIT + 1)]

        with self.assertLogs("coliving.notifications.services", level="ERROR"):
            sent = self.notifications.notify_expiration("g1", "Big House", recipients)

        self.assertFalse(sent)
        self.assertEqual(self.db.paths(self.path("notifications") + "/"), [])

    def test_mark_all_read_past_batch_limit(self) -> None:
        for i in range(FIRESTORE_BATCH_LIMIT + 10):
            self.notifications.notify_invitation(f"g{i}", "House", "bob")

        self.assertEqual(
            self.notifications.mark_all_read("bob"), FIRESTORE_BATCH_LIMIT + 10
        )
        self.assertEqual(self.notifications.unread_count("bob"), 0)

    def test_subscribe_for_user(self) -> None:
        seen = []
        with self.notifications.subscribe_for_user("bob", seen.append):
            self.notifications.notify_invitation("g1", "House", "bob")
            self.notifications.notify_invitation("g1", "House", "carol")

        self.assertEqual(len(seen), 2)
        self.assertEqual(seen[-1][0]["type"], "group_invitation")
