from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date

from dotenv import load_dotenv

from .repository import SlotRepository

BACKENDS = ("yaml", "firestore")


@dataclass(frozen=True)
class Settings:
    backend: str = "yaml"
    data_dir: str = "data"
    collection: str = "slots"

    # The event day; None lists every date in the collection.
    booking_date: date | None = None

    tick_minutes: int = 30
    default_duration: int = 30

    # Falls back to Application Default Credentials when unset.
    firestore_project_id: str | None = None


def _positive_int(name: str, default: str) -> int:
    raw = os.getenv(name, default).strip()
    try:
        value = int(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected an integer.") from e
    if value <= 0:
        raise RuntimeError(f"{name} must be >= 1")
    return value


def _optional_date(name: str) -> date | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected YYYY-MM-DD.") from e


def load_settings(dotenv_path: str | None = None) -> Settings:
    # .env in the working directory; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    backend = os.getenv("BOOKING_BACKEND", "yaml").strip().lower()
    if backend not in BACKENDS:
        raise RuntimeError(f"Invalid BOOKING_BACKEND value: {backend!r}. Expected one of {', '.join(BACKENDS)}.")

    tick_minutes = _positive_int("BOOKING_TICK_MINUTES", "30")
    if 60 % tick_minutes != 0:
        raise RuntimeError("BOOKING_TICK_MINUTES must divide 60 (e.g. 15 or 30)")

    return Settings(
        backend=backend,
        data_dir=os.getenv("BOOKING_DATA_DIR", "data"),
        collection=os.getenv("BOOKING_COLLECTION", "slots").strip() or "slots",
        booking_date=_optional_date("BOOKING_DATE"),
        tick_minutes=tick_minutes,
        default_duration=_positive_int("BOOKING_DEFAULT_DURATION", "30"),
        firestore_project_id=os.getenv("FIRESTORE_PROJECT_ID") or None,
    )


def open_repository(settings: Settings) -> SlotRepository:
    if settings.backend == "firestore":
        # google.cloud stays off the YAML code path
        from .firestore_store import SlotFirestoreRepository, create_client

        client = create_client(settings.firestore_project_id)
        return SlotFirestoreRepository(client, collection=settings.collection, tick_minutes=settings.tick_minutes)

    from .yaml_store import SlotYamlRepository

    return SlotYamlRepository(settings.data_dir, tick_minutes=settings.tick_minutes)
