from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

DEFAULT_TICK_MINUTES = 30
MINUTES_PER_DAY = 24 * 60


class BookingError(ValueError):
    pass


class InvalidBookingError(BookingError):
    pass


class SlotNotFoundError(BookingError):
    pass


class SlotUnavailableError(BookingError):
    pass


class DuplicateReservationError(BookingError):
    pass


@dataclass(frozen=True)
class Reservation:
    start: datetime
    duration: int
    email: str | None = None
    note: str | None = None

    def __post_init__(self) -> None:
        validate_duration(self.duration)
        # minute arithmetic keeps huge durations away from datetime overflow
        if self.start.hour * 60 + self.start.minute + self.duration > MINUTES_PER_DAY:
            raise InvalidBookingError("Reservation must start and end on the same day.")

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration)


def validate_duration(duration: int) -> None:
    if duration <= 0:
        raise InvalidBookingError("Duration must be greater than zero minutes.")


def validate_tick_minutes(tick_minutes: int) -> None:
    if tick_minutes <= 0 or 60 % tick_minutes != 0:
        raise ValueError("tick_minutes must be a positive divisor of 60.")


def occupied_ticks(start: datetime, duration: int, tick_minutes: int = DEFAULT_TICK_MINUTES) -> frozenset[int]:
    """Return the tick indices of the day covered by ``[start, start + duration)``.

    A tick index is ``minute_of_day // tick_minutes``. The duration is divided into
    ticks and rounded up, so a 40 minute booking at 10:00 with 30 minute ticks
    holds both the 10:00 and the 10:30 tick. A start that is not aligned to a
    tick claims the tick it falls in.
    """
    validate_duration(duration)
    validate_tick_minutes(tick_minutes)

    start_minute = start.hour * 60 + start.minute
    end_minute = start_minute + duration
    if end_minute > MINUTES_PER_DAY:
        raise InvalidBookingError("Reservation must start and end on the same day.")

    first = start_minute // tick_minutes
    last = -(-end_minute // tick_minutes)
    return frozenset(range(first, last))


def has_tick_overlap(
    candidate: Reservation,
    existing: Reservation,
    tick_minutes: int = DEFAULT_TICK_MINUTES,
) -> bool:
    """Return True when both reservations share at least one tick on the same date."""
    if candidate.start.date() != existing.start.date():
        return False
    return not occupied_ticks(candidate.start, candidate.duration, tick_minutes).isdisjoint(
        occupied_ticks(existing.start, existing.duration, tick_minutes)
    )


def find_conflicts(
    candidate: Reservation,
    existing_reservations: Iterable[Reservation],
    tick_minutes: int = DEFAULT_TICK_MINUTES,
) -> list[Reservation]:
    return [row for row in existing_reservations if has_tick_overlap(candidate, row, tick_minutes)]


def can_reserve(
    candidate: Reservation,
    existing_reservations: Iterable[Reservation],
    tick_minutes: int = DEFAULT_TICK_MINUTES,
) -> bool:
    """Return True if the candidate does not overlap any existing confirmed reservation."""
    for reservation in existing_reservations:
        if has_tick_overlap(candidate, reservation, tick_minutes):
            return False
    return True


def is_duplicate_booking(candidate: Reservation, existing_reservations: Iterable[Reservation]) -> bool:
    """Return True when the same person already holds a booking of the same type that day."""
    if not candidate.email:
        return False

    email = _normalize_key(candidate.email)
    note = _normalize_key(candidate.note)
    for reservation in existing_reservations:
        if reservation.start.date() != candidate.start.date() or not reservation.email:
            continue
        if _normalize_key(reservation.email) == email and _normalize_key(reservation.note) == note:
            return True
    return False


def check_reservation(
    candidate: Reservation,
    existing_reservations: Iterable[Reservation],
    tick_minutes: int = DEFAULT_TICK_MINUTES,
) -> None:
    existing = list(existing_reservations)
    if is_duplicate_booking(candidate, existing):
        raise DuplicateReservationError("You already hold a reservation of this type on this date.")
    if not can_reserve(candidate, existing, tick_minutes):
        raise SlotUnavailableError("Reservation overlaps with an existing confirmed reservation.")


def _normalize_key(value: str | None) -> str:
    return (value or "").strip().lower()
