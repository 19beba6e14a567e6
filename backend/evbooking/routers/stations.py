from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_current_user_id, get_session
from ..domain.errors import StationNotFoundError, StoreUnavailableError
from ..infrastructure.repositories import SqlAlchemyStationRepository
from ..schemas import StationRead
from ..usecases import stations as station_usecase

router = APIRouter(prefix="/stations", tags=["stations"], dependencies=[Depends(get_current_user_id)])


@router.get("", response_model=List[StationRead])
async def list_stations(session: AsyncSession = Depends(get_session)) -> list[StationRead]:
    station_repo = SqlAlchemyStationRepository(session)
    try:
        stations = await station_usecase.list_stations(station_repo)
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [StationRead.from_db(station=station) for station in stations]


@router.get("/{station_id}", response_model=StationRead)
async def get_station(
    station_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
) -> StationRead:
    station_repo = SqlAlchemyStationRepository(session)
    try:
        station = await station_usecase.get_station(station_repo, station_id=station_id)
    except StationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="charging station not found")
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return StationRead.from_db(station=station)
