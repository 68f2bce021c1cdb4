from .booking import (
	BookingError,
	DuplicateReservationError,
	InvalidBookingError,
	Reservation,
	SlotNotFoundError,
	SlotUnavailableError,
	can_reserve,
	find_conflicts,
	has_tick_overlap,
	occupied_ticks,
)
from .config import Settings, load_settings, open_repository
from .repository import (
	BookedBy,
	Booker,
	ReservationStorageError,
	SlotRecord,
	SlotRepository,
	build_day_slots,
)
from .yaml_store import SlotYamlRepository

__all__ = [
	"BookingError",
	"DuplicateReservationError",
	"InvalidBookingError",
	"Reservation",
	"SlotNotFoundError",
	"SlotUnavailableError",
	"can_reserve",
	"find_conflicts",
	"has_tick_overlap",
	"occupied_ticks",
	"Settings",
	"load_settings",
	"open_repository",
	"BookedBy",
	"Booker",
	"ReservationStorageError",
	"SlotRecord",
	"SlotRepository",
	"build_day_slots",
	"SlotYamlRepository",
]
