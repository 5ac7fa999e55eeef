"""Tests for the admin-managed group settings."""

from __future__ import annotations

import unittest

from google.api_core import exceptions
from mockfirestore import MockFirestore

from coliving.admin.services import GroupSettings, SettingsService
from coliving.core.store import DocumentStore
from coliving.errors import StoreTimeoutError, ValidationError
from tests.conftest import patch_mockfirestore
from tests.helpers import BaseServiceTestCase


class SettingsReadTestCase(unittest.TestCase):
    def setUp(self) -> None:
        patch_mockfirestore()
        self.db = MockFirestore()
        self.service = SettingsService(DocumentStore(self.db))

    def tearDown(self) -> None:
        self.db.reset()

    def test_configured_settings(self) -> None:
        self.db.collection("settings").document("groups").set(
            {"timeoutHours": 72, "thresholdPercent": 60}
        )

        self.assertEqual(
            self.service.get_group_settings(),
            GroupSettings(timeout_hours=72.0, threshold_percent=60),
        )

    def test_missing_settings_fall_back_to_defaults(self) -> None:
        self.assertEqual(self.service.get_group_settings(), GroupSettings(24, 40))

    def test_invalid_settings_fall_back_to_defaults(self) -> None:
        self.db.collection("settings").document("groups").set(
            {"timeoutHours": "soon", "thresholdPercent": 140}
        )

        self.assertEqual(self.service.get_group_settings(), GroupSettings())

    def test_property_catalogue(self) -> None:
        self.assertEqual(self.service.get_group_properties(), [])

        self.db.collection("settings").document("groupProperties").set(
            {"values": ["pets allowed", "smoke free"]}
        )

        self.assertEqual(
            self.service.get_group_properties(), ["pets allowed", "smoke free"]
        )


class SettingsWriteTestCase(BaseServiceTestCase):
    def test_update_group_settings(self) -> None:
        self.set_group_settings(timeout_hours=24, threshold_percent=40)

        settings = self.settings.update_group_settings(threshold_percent=25)

        self.assertEqual(settings, GroupSettings(timeout_hours=24, threshold_percent=25))
        self.assertEqual(
            self.db.data(self.path("settings", "groups")),
            {"timeoutHours": 24, "thresholdPercent": 25},
        )

    def test_update_group_settings_validates(self) -> None:
        for kwargs in (
            {},
            {"timeout_hours": 0},
            {"timeout_hours": True},
            {"threshold_percent": 101},
            {"threshold_percent": 12.5},
        ):
            with self.subTest(kwargs=kwargs), self.assertRaises(ValidationError):
                self.settings.update_group_settings(**kwargs)

    def test_update_group_settings_timeout(self) -> None:
        self.db.fail_next("write", exceptions.DeadlineExceeded("slow"), "settings")

        with self.assertRaises(StoreTimeoutError):
            self.settings.update_group_settings(timeout_hours=12)

    def test_add_and_remove_property(self) -> None:
        self.settings.add_group_property(" pets allowed ")
        self.settings.add_group_property("pets allowed")
        self.settings.add_group_property("smoke free")
        self.settings.remove_group_property("pets allowed")

        self.assertEqual(self.settings.get_group_properties(), ["smoke free"])
        with self.assertRaises(ValidationError):
            self.settings.add_group_property("  ")
