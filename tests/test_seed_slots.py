import importlib.util
import os
import tempfile
import unittest
from datetime import date
from pathlib import Path
from unittest import mock

from slot_booking import SlotYamlRepository

SCRIPT_PATH = Path(__file__).resolve().parent.parent / "scripts" / "seed_slots.py"


def _load_script():
    spec = importlib.util.spec_from_file_location("seed_slots", SCRIPT_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestSeedSlotsScript(unittest.TestCase):
    def test_seeds_configured_store(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir) / "data"
            env = {"BOOKING_BACKEND": "yaml", "BOOKING_DATA_DIR": str(data_dir)}
            with mock.patch.dict(os.environ, env):
                exit_code = _load_script().main(["--date", "2026-10-31", "--first", "10:00", "--last", "11:00"])

            self.assertEqual(exit_code, 0)
            slots = SlotYamlRepository(data_dir).list_slots(date(2026, 10, 31))
            self.assertEqual([record.slot_id for record in slots], ["2026-10-31_10:00", "2026-10-31_10:30"])


if __name__ == "__main__":
    unittest.main()
