from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from ..models import Reservation
from .errors import CapacityExhaustedError
from .policies import slot_number_for


@dataclass(frozen=True)
class StationSnapshot:
    total_slots: int
    occupied_slots: int


def windows_overlap(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
) -> bool:
    """Half-open overlap: [10:00, 11:00) and [11:00, 12:00) do not overlap."""
    return start_a < end_b and end_a > start_b


def find_overlapping(
    reservations: Iterable[Reservation],
    *,
    start_time: datetime,
    end_time: datetime,
) -> Reservation | None:
    for existing in reservations:
        if not existing.is_active:
            continue
        if windows_overlap(existing.start_time, existing.end_time, start_time, end_time):
            return existing
    return None


def claim_slot(snapshot: StationSnapshot) -> int:
    """
    Pure capacity check: returns the slot number the next booking receives.
    Raises CapacityExhaustedError when every slot is occupied.
    """
    if snapshot.occupied_slots >= snapshot.total_slots:
        raise CapacityExhaustedError("no available slots at this station")
    return slot_number_for(snapshot.occupied_slots)


def released_occupancy(snapshot: StationSnapshot) -> int:
    # Clamped so a double release never drives the counter negative.
    return max(snapshot.occupied_slots - 1, 0)


def reconciled_occupancy(snapshot: StationSnapshot, *, active_count: int) -> int:
    return min(max(active_count, 0), snapshot.total_slots)
