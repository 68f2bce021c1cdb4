"""
Firestore-backed slot repository.

Reservations run inside a Firestore transaction. Besides the slot document,
each transaction reads and bumps a per-date guard document
(``{collection}_days/{YYYY-MM-DD}``), so two writers for the same date always
touch a common document and one of them is retried by the client library.
That also covers free-form duration reservations, which create new documents
and would otherwise never contend on a shared one.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Iterable
import logging
from uuid import uuid4

from google.auth import exceptions as auth_exceptions
from google.cloud import exceptions as gexc
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from .booking import DEFAULT_TICK_MINUTES, Reservation, SlotNotFoundError, SlotUnavailableError
from .repository import Booker, ReservationStorageError, SlotRecord, SlotRepository, sort_slots

logger = logging.getLogger(__name__)


def create_client(project_id: str | None = None) -> firestore.Client:
    # Application Default Credentials when no project is given
    try:
        return firestore.Client(project=project_id) if project_id else firestore.Client()
    except (auth_exceptions.DefaultCredentialsError, gexc.GoogleCloudError) as err:
        raise ReservationStorageError(f"Firestore error: {err}") from err


class SlotFirestoreRepository(SlotRepository):
    def __init__(
        self,
        client: Any,
        collection: str = "slots",
        tick_minutes: int = DEFAULT_TICK_MINUTES,
    ) -> None:
        super().__init__(tick_minutes)
        self.client = client
        self.collection_name = collection
        self.slots = client.collection(collection)
        self.day_guards = client.collection(f"{collection}_days")

    def list_slots(self, day: date | None = None) -> list[SlotRecord]:
        query = self.slots.order_by("date").order_by("time")
        try:
            records = _decode_documents(query.stream())
        except gexc.GoogleCloudError as err:
            raise ReservationStorageError(f"Firestore error: {err}") from err

        if day is not None:
            records = [record for record in records if record.date == day]
        return sort_slots(records)

    def get_slot(self, slot_id: str) -> SlotRecord | None:
        try:
            snapshot = self.slots.document(slot_id).get()
        except gexc.GoogleCloudError as err:
            raise ReservationStorageError(f"Firestore error: {err}") from err
        if not snapshot.exists:
            return None
        return _decode_document(snapshot)

    def add_slots(self, records: Iterable[SlotRecord], now: datetime | None = None) -> list[SlotRecord]:
        created: list[SlotRecord] = []
        try:
            batch = self.client.batch()
            for record in records:
                ref = self.slots.document(record.slot_id)
                if ref.get().exists:
                    continue
                batch.set(ref, _document_payload(record))
                created.append(record)
            if created:
                batch.commit()
        except gexc.GoogleCloudError as err:
            raise ReservationStorageError(f"Firestore error: {err}") from err

        logger.info("Created %d slot documents in %s", len(created), self.collection_name)
        return created

    def reserve_slot(self, slot_id: str, booker: Booker, now: datetime | None = None) -> SlotRecord:
        effective_now = now or datetime.now()
        booker = booker.normalized()
        slot_ref = self.slots.document(slot_id)

        @firestore.transactional
        def _txn(transaction):
            snapshot = slot_ref.get(transaction=transaction)
            current = _decode_document(snapshot) if snapshot.exists else None
            if current is None:
                raise SlotNotFoundError("Slot does not exist.")
            if not current.available:
                raise SlotUnavailableError("Slot already booked.")

            guard_ref, version = self._read_guard(transaction, current.date)
            same_day = self._read_day(transaction, current.date)
            candidate = Reservation(current.start, current.duration, booker.email, booker.note)
            self._check_candidate(candidate, same_day, exclude_id=slot_id)

            booked = current.book(booker, effective_now)
            transaction.update(slot_ref, {"available": False, "booked_by": booked.booked_by.to_dict()})
            self._write_guard(transaction, guard_ref, version, effective_now)
            return booked

        try:
            booked = _txn(self.client.transaction())
        except gexc.GoogleCloudError as err:
            raise ReservationStorageError(f"Firestore error: {err}") from err

        logger.info("Reserved slot %s for %s", slot_id, booker.email)
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
        candidate = Reservation(start, duration, booker.email, booker.note)
        new_ref = self.slots.document(str(uuid4()))

        @firestore.transactional
        def _txn(transaction):
            guard_ref, version = self._read_guard(transaction, start.date())
            same_day = self._read_day(transaction, start.date())
            self._check_candidate(candidate, same_day)

            record = SlotRecord(
                slot_id=new_ref.id,
                date=start.date(),
                time=start.time(),
                duration=duration,
                available=False,
                created_at=effective_now,
            ).book(booker, effective_now)
            transaction.set(new_ref, _document_payload(record))
            self._write_guard(transaction, guard_ref, version, effective_now)
            return record

        try:
            record = _txn(self.client.transaction())
        except gexc.GoogleCloudError as err:
            raise ReservationStorageError(f"Firestore error: {err}") from err

        logger.info("Created reservation %s at %s for %s", record.slot_id, start.isoformat(timespec="minutes"), booker.email)
        return record

    def _read_guard(self, transaction: Any, day: date) -> tuple[Any, int]:
        guard_ref = self.day_guards.document(day.isoformat())
        snapshot = guard_ref.get(transaction=transaction)
        version = int((snapshot.to_dict() or {}).get("version", 0)) if snapshot.exists else 0
        return guard_ref, version

    def _write_guard(self, transaction: Any, guard_ref: Any, version: int, now: datetime) -> None:
        transaction.set(guard_ref, {"version": version + 1, "updated_at": now.isoformat(timespec="seconds")})

    def _read_day(self, transaction: Any, day: date) -> list[SlotRecord]:
        query = self.slots.where(filter=FieldFilter("date", "==", day.isoformat()))
        return _decode_documents(query.stream(transaction=transaction))


def _document_payload(record: SlotRecord) -> dict[str, Any]:
    # the document id carries the slot id
    payload = record.to_dict()
    payload.pop("slot_id")
    return payload


def _decode_document(snapshot: Any) -> SlotRecord | None:
    try:
        return SlotRecord.from_dict(snapshot.to_dict() or {}, slot_id=snapshot.id)
    except (KeyError, TypeError, ValueError) as error:
        logger.warning("Skipping undecodable slot document %s: %s", snapshot.id, error)
        return None


def _decode_documents(snapshots: Iterable[Any]) -> list[SlotRecord]:
    return [record for record in map(_decode_document, snapshots) if record is not None]
