from __future__ import annotations

from datetime import date, datetime
import logging
from typing import Any, Callable

from flask import Flask, jsonify, request

from .booking import (
    DuplicateReservationError,
    InvalidBookingError,
    SlotNotFoundError,
    SlotUnavailableError,
)
from .config import Settings, load_settings, open_repository
from .repository import Booker, ReservationStorageError, SlotRecord, SlotRepository

logger = logging.getLogger(__name__)

MISSING_BOOKER_MESSAGE = "Pon tu nombre y email"
STORAGE_ERROR_MESSAGE = "No se pudo reservar"


def create_app(
    repository: SlotRepository | None = None,
    settings: Settings | None = None,
    now_provider: Callable[[], datetime] | None = None,
) -> Flask:
    app = Flask(__name__)
    settings = settings or load_settings()
    repository = repository or open_repository(settings)
    clock: Callable[[], datetime] = now_provider or datetime.now

    def _current_slots(day: date | None) -> list[dict[str, Any]]:
        return [_serialize_slot(record) for record in repository.list_slots(day)]

    def _json_object() -> dict[str, Any]:
        # arrays and scalars are treated as an empty form
        payload = request.get_json(silent=True)
        return payload if isinstance(payload, dict) else {}

    def _booker_from(payload: dict[str, Any]) -> Booker | None:
        name = str(payload.get("name", "") or "").strip()
        email = str(payload.get("email", "") or "").strip()
        if not name or not email:
            return None
        return Booker(name=name, email=email, note=str(payload.get("note", "") or ""))

    def _slot_day(slot_id: str) -> date | None:
        try:
            existing = repository.get_slot(slot_id)
        except ReservationStorageError:
            logger.exception("Failed to look up slot %s", slot_id)
            return settings.booking_date
        return existing.date if existing else settings.booking_date

    def _rejected(error: Exception, day: date | None) -> Any:
        # lost race or overlap: hand back the authoritative list
        try:
            slots = _current_slots(day)
        except ReservationStorageError:
            logger.exception("Failed to re-fetch slots after a rejected reservation")
            slots = []
        return jsonify({"ok": False, "message": str(error), "slots": slots}), 409

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    @app.get("/api/slots")
    def get_slots() -> Any:
        raw_date = str(request.args.get("date", "")).strip()
        try:
            day = date.fromisoformat(raw_date) if raw_date else settings.booking_date
        except ValueError:
            return jsonify({"ok": False, "message": "date must be YYYY-MM-DD"}), 400

        try:
            slots = _current_slots(day)
        except ReservationStorageError:
            logger.exception("Failed to load slots")
            return jsonify({"ok": False, "message": "Error cargando slots"}), 500

        return jsonify({"ok": True, "date": day.isoformat() if day else None, "slots": slots})

    @app.post("/api/slots/<slot_id>/reserve")
    def reserve_slot(slot_id: str) -> Any:
        payload = _json_object()
        booker = _booker_from(payload)
        if booker is None:
            return jsonify({"ok": False, "message": MISSING_BOOKER_MESSAGE}), 400

        try:
            booked = repository.reserve_slot(slot_id, booker, now=clock())
        except InvalidBookingError as error:
            return jsonify({"ok": False, "message": str(error)}), 400
        except SlotNotFoundError as error:
            return jsonify({"ok": False, "message": str(error)}), 404
        except (SlotUnavailableError, DuplicateReservationError) as error:
            return _rejected(error, _slot_day(slot_id))
        except ReservationStorageError:
            logger.exception("Reservation of slot %s failed", slot_id)
            return jsonify({"ok": False, "message": STORAGE_ERROR_MESSAGE}), 500

        return jsonify({"ok": True, "slot": _serialize_slot(booked)})

    @app.post("/api/reservations")
    def create_reservation() -> Any:
        payload = _json_object()
        booker = _booker_from(payload)
        if booker is None:
            return jsonify({"ok": False, "message": MISSING_BOOKER_MESSAGE}), 400

        try:
            day = date.fromisoformat(str(payload.get("date") or settings.booking_date or ""))
            start = datetime.strptime(f"{day.isoformat()} {str(payload.get('time', '')).strip()}", "%Y-%m-%d %H:%M")
            duration = int(payload.get("duration", settings.default_duration))
        except (TypeError, ValueError, OverflowError):
            return jsonify({"ok": False, "message": "date (YYYY-MM-DD), time (HH:MM) and duration are required."}), 400

        try:
            created = repository.reserve_range(start, duration, booker, now=clock())
        except InvalidBookingError as error:
            return jsonify({"ok": False, "message": str(error)}), 400
        except (SlotUnavailableError, DuplicateReservationError) as error:
            return _rejected(error, day)
        except ReservationStorageError:
            logger.exception("Reservation at %s failed", start.isoformat(timespec="minutes"))
            return jsonify({"ok": False, "message": STORAGE_ERROR_MESSAGE}), 500

        return jsonify({"ok": True, "slot": _serialize_slot(created)}), 201

    return app


def _serialize_slot(record: SlotRecord) -> dict[str, Any]:
    payload = record.to_dict()
    payload["start"] = record.start.isoformat(timespec="minutes")
    # booker contact details stay private; only the name is shown on the board
    payload["booked_by"] = {"name": record.booked_by.name} if record.booked_by else None
    return payload


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    app = create_app()
    app.run(host="127.0.0.1", port=5000, debug=False)
