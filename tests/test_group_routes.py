"""Tests for the group blueprint."""

import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from coliving import create_app
from coliving.group.models import invitation_id
from tests.mock_utils import FakeFirestore

NAMESPACE = "testdata/db/"
MOCK_USER_ID = "alice"


class GroupRoutesTestCase(unittest.TestCase):
    """Test case for the group blueprint."""

    def setUp(self):
        """Set up a test client over an in-memory Firestore."""
        self.db = FakeFirestore()
        self.mock_firestore_service = MagicMock()
        self.mock_firestore_service.client.return_value = self.db

        patcher = patch("coliving.core.store.firestore", new=self.mock_firestore_service)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.app = create_app(
            {"TESTING": True, "WTF_CSRF_ENABLED": False, "DB_NAMESPACE": NAMESPACE}
        )
        self.client = self.app.test_client()

        for uid in ("alice", "bob", "carol"):
            self.db.document(f"{NAMESPACE}profiles/{uid}").set(
                {"displayName": uid.title(), "email": f"{uid}@example.com"}
            )

    def _login(self, uid=MOCK_USER_ID):
        with self.client.session_transaction() as sess:
            sess["user_id"] = uid
            sess["is_admin"] = False

    def _create_group(self, **overrides):
        payload = {"name": "Maple Street House", "required_members": 5}
        payload.update(overrides)
        response = self.client.post("/groups/", json=payload)
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()["groupId"]

    def _group(self, group_id):
        return self.db.data(f"{NAMESPACE}groups/{group_id}")

    def test_requires_login(self):
        response = self.client.get("/groups/")
        self.assertEqual(response.status_code, 401)

    def test_create_and_view_group(self):
        self._login()
        group_id = self._create_group(description="Quiet house")

        response = self.client.get(f"/groups/{group_id}")

        self.assertEqual(response.status_code, 200)
        group = response.get_json()["group"]
        self.assertEqual(group["name"], "Maple Street House")
        self.assertEqual(group["members"], ["alice"])
        self.assertEqual(group["creatorName"], "Alice")
        self.assertGreater(group["secondsRemaining"], 23 * 3600)

    def test_create_group_validation(self):
        self._login()

        response = self.client.post(
            "/groups/", json={"name": "House", "required_members": 1}
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["status"], "error")

    def test_view_missing_group(self):
        self._login()
        response = self.client.get("/groups/missing")
        self.assertEqual(response.status_code, 404)

    def test_view_overdue_group_expires_it(self):
        self._login()
        self.db.document(f"{NAMESPACE}groups/old").set(
            {
                "name": "Old House",
                "adminId": "alice",
                "members": ["alice"],
                "membersJoinedAt": {},
                "requiredMembers": 10,
                "thresholdPercent": 40,
                "expirationTime": datetime.now(timezone.utc) - timedelta(minutes=1),
                "status": "active",
            }
        )

        response = self.client.get("/groups/old")

        group = response.get_json()["group"]
        self.assertEqual(group["status"], "expired")
        self.assertEqual(group["members"], [])
        self.assertIsNone(group["secondsRemaining"])

    def test_join_and_leave(self):
        self._login()
        group_id = self._create_group()

        self._login("bob")
        response = self.client.post(f"/groups/{group_id}/join")
        self.assertEqual(response.get_json()["group"]["members"], ["alice", "bob"])

        response = self.client.post(f"/groups/{group_id}/leave")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self._group(group_id)["members"], ["alice"])

    def test_admin_cannot_leave(self):
        self._login()
        group_id = self._create_group()

        response = self.client.post(f"/groups/{group_id}/leave")

        self.assertEqual(response.status_code, 409)

    def test_remove_member_requires_admin(self):
        self._login()
        group_id = self._create_group()
        for uid in ("bob", "carol"):
            self._login(uid)
            self.client.post(f"/groups/{group_id}/join")

        response = self.client.delete(f"/groups/{group_id}/members/bob")
        self.assertEqual(response.status_code, 403)

        self._login()
        response = self.client.delete(f"/groups/{group_id}/members/bob")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self._group(group_id)["members"], ["alice", "carol"])

    def test_invitation_flow(self):
        self._login()
        group_id = self._create_group()

        response = self.client.post(
            f"/groups/{group_id}/invitations", json={"recipient_id": "bob"}
        )
        self.assertEqual(response.status_code, 201)
        inv_id = response.get_json()["invitationId"]
        self.assertEqual(inv_id, invitation_id("bob", group_id))

        self._login("bob")
        response = self.client.get("/groups/invitations")
        self.assertEqual(
            [i["id"] for i in response.get_json()["invitations"]], [inv_id]
        )

        response = self.client.post(
            f"/groups/invitations/{inv_id}/respond", json={"decision": "accepted"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self._group(group_id)["members"], ["alice", "bob"])

    def test_respond_with_invalid_decision(self):
        self._login("bob")

        response = self.client.post(
            "/groups/invitations/bob_g1/respond", json={"decision": "maybe"}
        )

        self.assertEqual(response.status_code, 400)

    def test_cancel_invitation_requires_admin(self):
        self._login()
        group_id = self._create_group()
        self.client.post(f"/groups/{group_id}/join")
        self.client.post(f"/groups/{group_id}/invitations", json={"recipient_id": "carol"})

        self._login("bob")
        response = self.client.delete(f"/groups/{group_id}/invitations/carol")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()["status"], "error")

        self._login()
        response = self.client.delete(f"/groups/{group_id}/invitations/carol")
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(
            self.db.data(f"{NAMESPACE}groupInvites/{invitation_id('carol', group_id)}")
        )

    def test_group_invitations_are_for_members_only(self):
        self._login()
        group_id = self._create_group()
        self.client.post(f"/groups/{group_id}/invitations", json={"recipient_id": "bob"})

        self._login("carol")
        response = self.client.get(f"/groups/{group_id}/invitations")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(
            response.get_json(), {"status": "error", "message": "Members only."}
        )

        self._login()
        response = self.client.get(f"/groups/{group_id}/invitations")
        self.assertEqual(len(response.get_json()["invitations"]), 1)

    def test_admin_edits(self):
        self._login()
        group_id = self._create_group()
        self._login("bob")
        self.client.post(f"/groups/{group_id}/join")

        response = self.client.put(
            f"/groups/{group_id}/required_members", json={"required_members": 8}
        )
        self.assertEqual(response.status_code, 403)

        self._login()
        self.client.put(f"/groups/{group_id}/required_members", json={"required_members": 8})
        self.client.patch(f"/groups/{group_id}", json={"name": "Renamed"})
        self.client.put(f"/groups/{group_id}/admin", json={"new_admin_id": "bob"})

        group = self._group(group_id)
        self.assertEqual(group["requiredMembers"], 8)
        self.assertEqual(group["name"], "Renamed")
        self.assertEqual(group["adminId"], "bob")

    def test_complete_and_delete(self):
        self._login()
        group_id = self._create_group()

        response = self.client.post(f"/groups/{group_id}/complete")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self._group(group_id)["status"], "completed")

        response = self.client.post(f"/groups/{group_id}/join")
        self.assertEqual(response.status_code, 409)

        response = self.client.delete(f"/groups/{group_id}")
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(self._group(group_id))

    def test_list_my_groups(self):
        self._login()
        mine = self._create_group()
        self._login("bob")
        self._create_group(name="Bob's House")

        self._login()
        response = self.client.get("/groups/?mine=1")

        self.assertEqual([g["id"] for g in response.get_json()["groups"]], [mine])


if __name__ == "__main__":
    unittest.main()
