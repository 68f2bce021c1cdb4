from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable

from .booking import (
    DEFAULT_TICK_MINUTES,
    InvalidBookingError,
    Reservation,
    check_reservation,
    validate_duration,
    validate_tick_minutes,
)


class ReservationStorageError(RuntimeError):
    pass


@dataclass(frozen=True)
class Booker:
    name: str
    email: str
    note: str = ""

    def normalized(self) -> "Booker":
        name = (self.name or "").strip()
        email = (self.email or "").strip()
        if not name or not email:
            raise InvalidBookingError("Name and email are required.")
        if "@" not in email:
            raise InvalidBookingError("Email address is not valid.")
        return Booker(name=name, email=email, note=(self.note or "").strip())


@dataclass(frozen=True)
class BookedBy:
    name: str
    email: str
    note: str
    at: datetime | None = None

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "email": self.email,
            "note": self.note,
            "at": self.at.isoformat(timespec="seconds") if self.at else None,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "BookedBy":
        return BookedBy(
            name=str(data.get("name", "")),
            email=str(data.get("email", "")),
            note=str(data.get("note") or ""),
            at=_parse_datetime(data["at"]) if data.get("at") else None,
        )


@dataclass(frozen=True)
class SlotRecord:
    slot_id: str
    date: date
    time: time
    duration: int
    available: bool
    created_at: datetime | None = None
    booked_by: BookedBy | None = None

    @property
    def start(self) -> datetime:
        return datetime.combine(self.date, self.time)

    @property
    def confirmed(self) -> bool:
        return not self.available

    def to_reservation(self) -> Reservation:
        return Reservation(
            start=self.start,
            duration=self.duration,
            email=self.booked_by.email if self.booked_by else None,
            note=self.booked_by.note if self.booked_by else None,
        )

    def book(self, booker: Booker, at: datetime) -> "SlotRecord":
        return SlotRecord(
            slot_id=self.slot_id,
            date=self.date,
            time=self.time,
            duration=self.duration,
            available=False,
            created_at=self.created_at,
            booked_by=BookedBy(name=booker.name, email=booker.email, note=booker.note, at=at),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "slot_id": self.slot_id,
            "date": self.date.isoformat(),
            "time": self.time.strftime("%H:%M"),
            "duration": self.duration,
            "available": self.available,
            "booked_by": self.booked_by.to_dict() if self.booked_by else None,
            "created_at": self.created_at.isoformat(timespec="seconds") if self.created_at else None,
        }

    @staticmethod
    def from_dict(data: dict[str, Any], slot_id: str | None = None) -> "SlotRecord":
        # documents written by the browser client use bookedBy and carry no created_at
        booked_by = data.get("booked_by") or data.get("bookedBy")
        created_at = data.get("created_at")
        return SlotRecord(
            slot_id=str(slot_id if slot_id is not None else data["slot_id"]),
            date=_parse_date(data["date"]),
            time=_parse_time(data["time"]),
            duration=int(data.get("duration") or DEFAULT_TICK_MINUTES),
            available=bool(data.get("available", True)),
            created_at=_parse_datetime(created_at) if created_at else None,
            booked_by=BookedBy.from_dict(booked_by) if isinstance(booked_by, dict) else None,
        )


class SlotRepository(ABC):
    """Storage for slot documents with an atomic check-and-set for reservations.

    Implementations run every reservation inside one atomic unit: the
    confirmed reservations for the target date are read, the candidate is
    checked against them with :func:`check_reservation`, and only then is the
    write applied. Two concurrent submissions for the same slot cannot both
    succeed.
    """

    def __init__(self, tick_minutes: int = DEFAULT_TICK_MINUTES) -> None:
        validate_tick_minutes(tick_minutes)
        self.tick_minutes = tick_minutes

    @abstractmethod
    def list_slots(self, day: date | None = None) -> list[SlotRecord]:
        """Return slots ordered by date then time, optionally for a single date."""

    @abstractmethod
    def get_slot(self, slot_id: str) -> SlotRecord | None:
        ...

    @abstractmethod
    def add_slots(self, records: Iterable[SlotRecord], now: datetime | None = None) -> list[SlotRecord]:
        ...

    @abstractmethod
    def reserve_slot(self, slot_id: str, booker: Booker, now: datetime | None = None) -> SlotRecord:
        """Flip a pre-existing available slot to booked."""

    @abstractmethod
    def reserve_range(
        self,
        start: datetime,
        duration: int,
        booker: Booker,
        now: datetime | None = None,
    ) -> SlotRecord:
        """Create a confirmed reservation for a free-form start time and duration."""

    def seed_day(
        self,
        day: date,
        first: time,
        last: time,
        duration: int | None = None,
        now: datetime | None = None,
    ) -> list[SlotRecord]:
        records = build_day_slots(day, first, last, duration or self.tick_minutes, now=now)
        return self.add_slots(records, now=now)

    def _check_candidate(self, candidate: Reservation, records: Iterable[SlotRecord], exclude_id: str | None = None) -> None:
        confirmed = [
            record.to_reservation()
            for record in records
            if record.confirmed and record.slot_id != exclude_id and record.date == candidate.start.date()
        ]
        check_reservation(candidate, confirmed, self.tick_minutes)


def slot_id_for(day: date, start: time) -> str:
    return f"{day.isoformat()}_{start.strftime('%H:%M')}"


def build_day_slots(
    day: date,
    first: time,
    last: time,
    duration: int,
    now: datetime | None = None,
) -> list[SlotRecord]:
    """Build available slots of ``duration`` minutes from ``first`` up to ``last``.

    ``last`` is exclusive: the final slot ends at or before it.
    """
    validate_duration(duration)
    effective_now = now or datetime.now()

    cursor = datetime.combine(day, first)
    limit = datetime.combine(day, last)
    if cursor >= limit:
        raise ValueError("first slot time must be earlier than last slot time")

    records: list[SlotRecord] = []
    step = timedelta(minutes=duration)
    while cursor + step <= limit:
        records.append(
            SlotRecord(
                slot_id=slot_id_for(day, cursor.time()),
                date=day,
                time=cursor.time(),
                duration=duration,
                available=True,
                created_at=effective_now,
            )
        )
        cursor += step
    return records


def sort_slots(records: Iterable[SlotRecord]) -> list[SlotRecord]:
    return sorted(records, key=lambda record: (record.date, record.time, record.slot_id))


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _parse_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    # unquoted HH:MM in hand-edited YAML loads as a base-60 integer
    if isinstance(value, int):
        return time(value // 60, value % 60)
    return datetime.strptime(str(value), "%H:%M").time()


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    text = str(value)
    # JavaScript toISOString() ends in Z, which fromisoformat rejects before 3.11
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)
