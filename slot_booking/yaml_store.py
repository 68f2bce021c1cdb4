from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable, Iterator
import logging
import shutil
import threading
from uuid import uuid4

import yaml

from .booking import DEFAULT_TICK_MINUTES, BookingError, Reservation, SlotNotFoundError, SlotUnavailableError
from .repository import Booker, ReservationStorageError, SlotRecord, SlotRepository, sort_slots

logger = logging.getLogger(__name__)

_DIRECTORY_LOCKS: dict[Path, threading.RLock] = {}
_DIRECTORY_LOCKS_GUARD = threading.Lock()


def _lock_for(base_dir: Path) -> threading.RLock:
    key = base_dir.resolve()
    with _DIRECTORY_LOCKS_GUARD:
        if key not in _DIRECTORY_LOCKS:
            _DIRECTORY_LOCKS[key] = threading.RLock()
        return _DIRECTORY_LOCKS[key]


class SlotYamlRepository(SlotRepository):
    """Slot documents kept in a YAML list, one file per data directory.

    Every repository opened on the same directory in this process shares one
    lock, so the read-check-write of a reservation is atomic across threads.
    """

    def __init__(self, base_dir: str | Path = "data", tick_minutes: int = DEFAULT_TICK_MINUTES) -> None:
        super().__init__(tick_minutes)
        self.base_dir = Path(base_dir)
        self.slots_file = self.base_dir / "slots.yaml"
        self.log_file = self.base_dir / "booking_events.yaml"
        self._ensure_files()
        self._lock = _lock_for(self.base_dir)

    def _ensure_files(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        for path in (self.slots_file, self.log_file):
            if not path.exists():
                path.write_text("[]\n", encoding="utf-8")

    @contextmanager
    def _transaction(self) -> Iterator[list[dict[str, Any]]]:
        with self._lock:
            yield self._read_yaml_list(self.slots_file)

    def _read_yaml_list(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            path.write_text("[]\n", encoding="utf-8")
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(path, error)
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._recover_corrupted_yaml(path, ValueError("top-level YAML is not a list"))
            return []

        sanitized: list[dict[str, Any]] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict):
                sanitized.append(row)
            else:
                self._log_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": str(path.name),
                        "index": index,
                        "reason": "row is not a mapping",
                    },
                )
        return sanitized

    def _write_yaml_list(self, path: Path, rows: list[dict[str, Any]]) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise ReservationStorageError(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> None:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError:
            logger.warning("Could not back up corrupted YAML file %s", path, exc_info=True)

        logger.warning("Recovered corrupted YAML file %s: %s", path, error)
        path.write_text("[]\n", encoding="utf-8")
        if path != self.log_file:
            self._log_event(
                "YAML_RECOVERED",
                {
                    "file": str(path.name),
                    "backup": str(backup_path.name),
                    "reason": str(error),
                },
            )

    def _log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        timestamp = (event_time or datetime.now()).isoformat(timespec="seconds")
        events = self._read_yaml_list(self.log_file)
        events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
        self._write_yaml_list(self.log_file, events)

    def _log_committed_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        # the slot write has already committed; a lost audit entry must not fail the booking
        try:
            self._log_event(event_type, payload, event_time)
        except ReservationStorageError:
            logger.exception("Could not record %s event for slot %s", event_type, payload.get("slot_id"))

    def _records(self, rows: list[dict[str, Any]]) -> list[SlotRecord]:
        records: list[SlotRecord] = []
        for index, row in enumerate(rows):
            try:
                records.append(SlotRecord.from_dict(row))
            except (KeyError, TypeError, ValueError) as error:
                self._log_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": str(self.slots_file.name),
                        "index": index,
                        "reason": f"undecodable slot: {error}",
                    },
                )
        return records

    def list_slots(self, day: date | None = None) -> list[SlotRecord]:
        with self._transaction() as rows:
            records = self._records(rows)
        if day is not None:
            records = [record for record in records if record.date == day]
        return sort_slots(records)

    def get_slot(self, slot_id: str) -> SlotRecord | None:
        with self._transaction() as rows:
            for row in rows:
                if str(row.get("slot_id")) == slot_id:
                    return SlotRecord.from_dict(row)
        return None

    def add_slots(self, records: Iterable[SlotRecord], now: datetime | None = None) -> list[SlotRecord]:
        incoming = list(records)
        with self._transaction() as rows:
            known = {str(row.get("slot_id")) for row in rows}
            created = [record for record in incoming if record.slot_id not in known]
            rows.extend(record.to_dict() for record in created)
            self._write_yaml_list(self.slots_file, rows)

            for record in created:
                self._log_committed_event(
                    "SLOT_CREATED",
                    {
                        "slot_id": record.slot_id,
                        "date": record.date.isoformat(),
                        "time": record.time.strftime("%H:%M"),
                        "duration": record.duration,
                    },
                    now,
                )
        return created

    def reserve_slot(self, slot_id: str, booker: Booker, now: datetime | None = None) -> SlotRecord:
        effective_now = now or datetime.now()
        booker = booker.normalized()

        with self._transaction() as rows:
            found_index = -1
            for index, row in enumerate(rows):
                if str(row.get("slot_id")) == slot_id:
                    found_index = index
                    break

            try:
                if found_index < 0:
                    raise SlotNotFoundError("Slot does not exist.")

                current = SlotRecord.from_dict(rows[found_index])
                if not current.available:
                    raise SlotUnavailableError("Slot already booked.")

                candidate = Reservation(current.start, current.duration, booker.email, booker.note)
                self._check_candidate(candidate, self._records(rows), exclude_id=slot_id)
            except BookingError as error:
                self._log_rejection(slot_id, booker, error, effective_now)
                raise

            booked = current.book(booker, effective_now)
            rows[found_index] = booked.to_dict()
            self._write_yaml_list(self.slots_file, rows)

            self._log_committed_event(
                "SLOT_RESERVED",
                {
                    "slot_id": slot_id,
                    "date": booked.date.isoformat(),
                    "time": booked.time.strftime("%H:%M"),
                    "email": booker.email,
                },
                effective_now,
            )
        return booked

    def reserve_range(
        self,
        start: datetime,
        duration: int,
        booker: Booker,
        now: datetime | None = None,
    ) -> SlotRecord:
        effective_now = now or datetime.now()
        booker = booker.normalized()
        start = start.replace(second=0, microsecond=0)

        with self._transaction() as rows:
            try:
                candidate = Reservation(start, duration, booker.email, booker.note)
                self._check_candidate(candidate, self._records(rows))
            except BookingError as error:
                self._log_rejection(None, booker, error, effective_now)
                raise

            record = SlotRecord(
                slot_id=str(uuid4()),
                date=start.date(),
                time=start.time(),
                duration=duration,
                available=False,
                created_at=effective_now,
            ).book(booker, effective_now)
            rows.append(record.to_dict())
            self._write_yaml_list(self.slots_file, rows)

            self._log_committed_event(
                "RESERVATION_CREATED",
                {
                    "slot_id": record.slot_id,
                    "date": record.date.isoformat(),
                    "time": record.time.strftime("%H:%M"),
                    "duration": duration,
                    "email": booker.email,
                },
                effective_now,
            )
        return record

    def _log_rejection(self, slot_id: str | None, booker: Booker, error: Exception, event_time: datetime) -> None:
        self._log_event(
            "RESERVATION_REJECTED",
            {
                "slot_id": slot_id,
                "email": booker.email,
                "reason": str(error),
            },
            event_time,
        )
