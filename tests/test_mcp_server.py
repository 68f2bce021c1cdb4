import importlib
import os
import sys
import tempfile
import unittest
from datetime import date, datetime, time
from pathlib import Path
from unittest import mock

from slot_booking import InvalidBookingError

EVENT_DAY = date(2026, 10, 31)


class TestMcpTools(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls._temp_dir = tempfile.TemporaryDirectory()
        env = {
            "BOOKING_BACKEND": "yaml",
            "BOOKING_DATA_DIR": str(Path(cls._temp_dir.name) / "data"),
            "BOOKING_DATE": EVENT_DAY.isoformat(),
        }
        # settings are read at import time
        with mock.patch.dict(os.environ, env):
            sys.modules.pop("booking_mcp_server", None)
            cls.server = importlib.import_module("booking_mcp_server")

    @classmethod
    def tearDownClass(cls) -> None:
        sys.modules.pop("booking_mcp_server", None)
        cls._temp_dir.cleanup()

    def setUp(self) -> None:
        self.server.REPOSITORY.seed_day(EVENT_DAY, time(10, 0), time(11, 0), now=datetime(2026, 10, 1, 9, 0))

    def test_uses_configured_data_dir(self) -> None:
        self.assertEqual(self.server.SETTINGS.data_dir, str(Path(self._temp_dir.name) / "data"))
        self.assertTrue((Path(self._temp_dir.name) / "data" / "slots.yaml").exists())

    def test_list_and_reserve_slot(self) -> None:
        slots = self.server.list_slots()
        self.assertIn("2026-10-31_10:00", [slot["slot_id"] for slot in slots])

        booked = self.server.reserve_slot("2026-10-31_10:30", "Ana", "ana@example.com", note="catrina")

        self.assertFalse(booked["available"])
        self.assertEqual(booked["booked_by"]["email"], "ana@example.com")
        available = [slot["slot_id"] for slot in self.server.list_slots(only_available=True)]
        self.assertNotIn("2026-10-31_10:30", available)

    def test_reserve_range_rejects_zero_and_negative_duration(self) -> None:
        for duration in (0, -30):
            with self.subTest(duration=duration):
                with self.assertRaises(InvalidBookingError):
                    self.server.reserve_range("2026-10-31T15:00", "Ana", "ana@example.com", duration=duration)

        self.assertNotIn("15:00", [slot["time"] for slot in self.server.list_slots()])

    def test_reserve_range_defaults_duration_when_omitted(self) -> None:
        created = self.server.reserve_range("2026-10-31T17:00", "Luis", "luis@example.com", note="zombie")

        self.assertEqual(created["duration"], self.server.SETTINGS.default_duration)
        self.assertFalse(created["available"])


if __name__ == "__main__":
    unittest.main()
