from __future__ import annotations

from datetime import date, datetime, time
from pathlib import Path
import tempfile
import threading
import traceback

from slot_booking import Booker, SlotUnavailableError, SlotYamlRepository


def main() -> int:
    print("[INFO] Slot Booking Quick Check")

    with tempfile.TemporaryDirectory() as temp_dir:
        data_dir = Path(temp_dir) / "data"
        repo = SlotYamlRepository(data_dir, tick_minutes=30)
        now = datetime(2026, 10, 1, 9, 0)
        day = date(2026, 10, 31)

        created = repo.seed_day(day, time(10, 0), time(14, 0), now=now)
        print(f"[OK] Seeded slots: {len(created)}")

        target = created[0].slot_id
        outcomes: list[str] = []
        barrier = threading.Barrier(2)

        def attempt(name: str) -> None:
            barrier.wait()
            try:
                repo.reserve_slot(target, Booker(name=name, email=f"{name}@example.com", note="catrina"), now=now)
                outcomes.append("committed")
            except SlotUnavailableError:
                outcomes.append("rejected")

        workers = [threading.Thread(target=attempt, args=(name,)) for name in ("ana", "luis")]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        print(f"[OK] Concurrent attempts on {target}: {sorted(outcomes)}")
        if sorted(outcomes) != ["committed", "rejected"]:
            raise RuntimeError("expected exactly one committed reservation")

        ranged = repo.reserve_range(datetime(2026, 10, 31, 12, 0), 45, Booker("Marta", "marta@example.com", "zombie"), now=now)
        print(f"[OK] Duration reservation: {ranged.start.isoformat(timespec='minutes')} ({ranged.duration} min)")

        booked = [record for record in repo.list_slots(day) if not record.available]
        print(f"[OK] Confirmed reservations: {len(booked)}")
        print(f"[OK] Event Log YAML: {repo.log_file}")

    print("[DONE] Quick check completed successfully.")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception:
        print("[ERROR] Quick check failed.")
        traceback.print_exc()
        raise SystemExit(1)
