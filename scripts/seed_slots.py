from __future__ import annotations

import argparse
from datetime import date, datetime
import logging

from slot_booking import load_settings, open_repository


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def _parse_time(value: str):
    return datetime.strptime(value, "%H:%M").time()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create a day of available appointment slots")
    parser.add_argument("--date", help="Event date (YYYY-MM-DD); defaults to BOOKING_DATE")
    parser.add_argument("--first", default="10:00", help="Start of the first slot (HH:MM)")
    parser.add_argument("--last", default="20:00", help="End of the last slot (HH:MM)")
    parser.add_argument("--duration", type=int, help="Slot length in minutes; defaults to BOOKING_TICK_MINUTES")
    args = parser.parse_args(argv)

    _setup_logging()
    settings = load_settings()
    day = date.fromisoformat(args.date) if args.date else settings.booking_date
    if day is None:
        parser.error("--date is required when BOOKING_DATE is not set")

    repository = open_repository(settings)
    created = repository.seed_day(day, _parse_time(args.first), _parse_time(args.last), duration=args.duration)
    logging.getLogger(__name__).info("Seeded %d slots for %s (%s backend)", len(created), day.isoformat(), settings.backend)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
