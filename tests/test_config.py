import os
import tempfile
import unittest
from datetime import date
from pathlib import Path
from unittest import mock

from slot_booking import Settings, SlotYamlRepository, load_settings, open_repository


class TestLoadSettings(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.dotenv_path = Path(self._temp_dir.name) / ".env"
        self.dotenv_path.write_text("", encoding="utf-8")

    def tearDown(self) -> None:
        self._temp_dir.cleanup()

    def test_defaults(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = load_settings(dotenv_path=str(self.dotenv_path))

        self.assertEqual(settings, Settings())

    def test_reads_environment(self) -> None:
        env = {
            "BOOKING_BACKEND": "Firestore",
            "BOOKING_COLLECTION": "halloween_slots",
            "BOOKING_DATE": "2026-10-31",
            "BOOKING_TICK_MINUTES": "15",
            "BOOKING_DEFAULT_DURATION": "45",
            "FIRESTORE_PROJECT_ID": "booking-demo",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            settings = load_settings(dotenv_path=str(self.dotenv_path))

        self.assertEqual(settings.backend, "firestore")
        self.assertEqual(settings.collection, "halloween_slots")
        self.assertEqual(settings.booking_date, date(2026, 10, 31))
        self.assertEqual(settings.tick_minutes, 15)
        self.assertEqual(settings.default_duration, 45)
        self.assertEqual(settings.firestore_project_id, "booking-demo")

    def test_dotenv_file_fills_missing_values(self) -> None:
        self.dotenv_path.write_text("BOOKING_DATE=2026-10-31\n", encoding="utf-8")
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = load_settings(dotenv_path=str(self.dotenv_path))

        self.assertEqual(settings.booking_date, date(2026, 10, 31))

    def test_rejects_invalid_values(self) -> None:
        cases = [
            ({"BOOKING_BACKEND": "sqlite"}, "Invalid BOOKING_BACKEND"),
            ({"BOOKING_TICK_MINUTES": "abc"}, "Invalid BOOKING_TICK_MINUTES"),
            ({"BOOKING_TICK_MINUTES": "7"}, "BOOKING_TICK_MINUTES must divide 60"),
            ({"BOOKING_DEFAULT_DURATION": "0"}, "BOOKING_DEFAULT_DURATION must be >= 1"),
            ({"BOOKING_DATE": "31/10/2026"}, "Invalid BOOKING_DATE"),
        ]
        for env, message in cases:
            with self.subTest(env=env):
                with mock.patch.dict(os.environ, env, clear=True):
                    with self.assertRaisesRegex(RuntimeError, message):
                        load_settings(dotenv_path=str(self.dotenv_path))


class TestOpenRepository(unittest.TestCase):
    def test_yaml_backend(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repository = open_repository(Settings(data_dir=str(Path(temp_dir) / "data"), tick_minutes=15))

            self.assertIsInstance(repository, SlotYamlRepository)
            self.assertEqual(repository.tick_minutes, 15)

    def test_firestore_backend_uses_configured_project(self) -> None:
        with mock.patch("slot_booking.firestore_store.firestore.Client") as client_cls:
            repository = open_repository(Settings(backend="firestore", collection="slots", firestore_project_id="demo"))

        client_cls.assert_called_once_with(project="demo")
        self.assertEqual(repository.collection_name, "slots")


if __name__ == "__main__":
    unittest.main()
