from __future__ import annotations

from datetime import date, datetime

from mcp.server.fastmcp import FastMCP

from slot_booking import Booker, load_settings, open_repository

mcp = FastMCP(
    "Slot Booking MCP Server",
    instructions="Expose appointment slots and reservations from the slot_booking project.",
    json_response=True,
)

SETTINGS = load_settings()
REPOSITORY = open_repository(SETTINGS)


@mcp.resource("booking://dates")
async def list_dates() -> list[str]:
    """List the dates that have slots."""
    return sorted({record.date.isoformat() for record in REPOSITORY.list_slots()})


@mcp.tool()
def list_slots(day: str | None = None, only_available: bool = False) -> list[dict]:
    """Return slots ordered by date and time, optionally for one YYYY-MM-DD date."""
    target = date.fromisoformat(day) if day else SETTINGS.booking_date
    records = REPOSITORY.list_slots(target)
    return [record.to_dict() for record in records if record.available or not only_available]


@mcp.tool()
def reserve_slot(slot_id: str, name: str, email: str, note: str = "") -> dict:
    """Book an existing available slot."""
    booked = REPOSITORY.reserve_slot(slot_id, Booker(name=name, email=email, note=note))
    return booked.to_dict()


@mcp.tool()
def reserve_range(start_iso: str, name: str, email: str, duration: int | None = None, note: str = "") -> dict:
    """Book a free-form range starting at an ISO timestamp (YYYY-MM-DDTHH:MM)."""
    start = datetime.fromisoformat(start_iso)
    created = REPOSITORY.reserve_range(
        start,
        SETTINGS.default_duration if duration is None else duration,
        Booker(name=name, email=email, note=note),
    )
    return created.to_dict()


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
