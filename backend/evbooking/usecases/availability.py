import logging

from ..domain.repositories import ReservationRepository, StationRepository
from ..domain.services import StationSnapshot, claim_slot, reconciled_occupancy, released_occupancy
from ..models import Station

logger = logging.getLogger(__name__)


def _snapshot(station: Station) -> StationSnapshot:
    return StationSnapshot(total_slots=station.total_slots, occupied_slots=station.occupied_slots)


async def try_reserve_slot(station_repo: StationRepository, *, station_id: int) -> int:
    """Take one slot if capacity remains and return its display number."""

    def _reserve(station: Station) -> int:
        slot_number = claim_slot(_snapshot(station))
        station.occupied_slots += 1
        return slot_number

    return await station_repo.atomic_update_station(station_id, _reserve)


async def release_slot(station_repo: StationRepository, *, station_id: int) -> int:
    """Give one slot back. Returns the occupancy after the release."""

    def _release(station: Station) -> int:
        if station.occupied_slots <= 0:
            logger.warning("release on station %s with no occupied slots", station.id)
        station.occupied_slots = released_occupancy(_snapshot(station))
        return station.occupied_slots

    return await station_repo.atomic_update_station(station_id, _release)


async def reconcile_station(
    station_repo: StationRepository,
    res_repo: ReservationRepository,
    *,
    station_id: int,
) -> tuple[int, int]:
    """
    Reset occupied_slots to the number of active reservations. Returns (before, after).

    Run in its own transaction: the first update takes the station lock so bookings
    already holding it commit before the count is read.
    """
    await station_repo.atomic_update_station(station_id, lambda station: None)
    active_count = await res_repo.count_active_for_station(station_id)

    def _reconcile(station: Station) -> tuple[int, int]:
        before = station.occupied_slots
        station.occupied_slots = reconciled_occupancy(_snapshot(station), active_count=active_count)
        return before, station.occupied_slots

    before, after = await station_repo.atomic_update_station(station_id, _reconcile)
    if before != after:
        logger.warning("station %s occupancy drifted: %s -> %s", station_id, before, after)
    return before, after
