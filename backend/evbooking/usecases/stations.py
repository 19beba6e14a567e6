from ..domain.errors import StationNotFoundError
from ..domain.repositories import StationRepository
from ..models import Station


async def list_stations(station_repo: StationRepository) -> list[Station]:
    return await station_repo.list_stations(active_only=True)


async def get_station(station_repo: StationRepository, *, station_id: int) -> Station:
    station = await station_repo.get_station(station_id)
    if station is None or not station.is_active:
        raise StationNotFoundError("charging station not found")
    return station
