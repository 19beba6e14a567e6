import math
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_current_user_id, get_session
from ..domain.errors import (
    AlreadyTerminalError,
    CancellationWindowClosedError,
    CapacityExhaustedError,
    ConflictError,
    InvalidWindowError,
    OverlappingBookingError,
    ReservationError,
    ReservationNotFoundError,
    StationNotFoundError,
    StoreUnavailableError,
)
from ..infrastructure.repositories import SqlAlchemyReservationRepository, SqlAlchemyStationRepository
from ..models import ReservationStatus
from ..schemas import ReservationCancelled, ReservationCreate, ReservationPage, ReservationRead
from ..usecases import reservations as reservation_usecase
from ..utils.audit_log import emit_audit_log
from ..utils.time import to_utc_naive

router = APIRouter(prefix="/bookings", tags=["bookings"])

_ERROR_STATUS: dict[type[ReservationError], int] = {
    InvalidWindowError: status.HTTP_400_BAD_REQUEST,
    StationNotFoundError: status.HTTP_404_NOT_FOUND,
    ReservationNotFoundError: status.HTTP_404_NOT_FOUND,
    OverlappingBookingError: status.HTTP_409_CONFLICT,
    CapacityExhaustedError: status.HTTP_409_CONFLICT,
    AlreadyTerminalError: status.HTTP_409_CONFLICT,
    ConflictError: status.HTTP_409_CONFLICT,
    CancellationWindowClosedError: status.HTTP_403_FORBIDDEN,
    StoreUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _http_error(exc: ReservationError) -> HTTPException:
    for error_type, status_code in _ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="reservation error")


def _audit(**fields: Any) -> None:
    try:
        emit_audit_log(**fields)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc


@router.post("", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: ReservationCreate,
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> ReservationRead:
    if payload.start_time.tzinfo is None or payload.end_time.tzinfo is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start_time/end_time must have timezone")
    station_repo = SqlAlchemyStationRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    async with session.begin():
        try:
            reservation, station = await reservation_usecase.create_reservation(
                station_repo,
                res_repo,
                user_id=user_id,
                station_id=payload.station_id,
                start_time=to_utc_naive(payload.start_time),
                end_time=to_utc_naive(payload.end_time),
                requested_duration=payload.duration,
                max_conflict_retries=get_settings().max_conflict_retries,
            )
        except ReservationError as exc:
            raise _http_error(exc) from exc
        _audit(
            action="reservation.created",
            initiator="user",
            reservation_id=reservation.id,
            station_id=reservation.station_id,
            user_id=reservation.user_id,
            slot_number=reservation.slot_number,
            status_from=None,
            status_to=reservation.status,
            version=reservation.version,
            extra={"total_amount": reservation.total_amount},
        )

    return ReservationRead.from_db(reservation=reservation, station=station)


@router.get("", response_model=ReservationPage)
async def list_bookings(
    status_filter: Optional[ReservationStatus] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> ReservationPage:
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        rows, total = await reservation_usecase.list_user_reservations(
            res_repo,
            user_id=user_id,
            status=status_filter,
            page=page,
            limit=limit,
        )
    except ReservationError as exc:
        raise _http_error(exc) from exc
    bookings = [ReservationRead.from_db(reservation=res, station=station) for res, station in rows]
    return ReservationPage(
        count=len(bookings),
        total=total,
        page=page,
        pages=math.ceil(total / limit),
        bookings=bookings,
    )


@router.get("/{reservation_id}", response_model=ReservationRead)
async def get_booking(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> ReservationRead:
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        reservation, station = await reservation_usecase.get_user_reservation(
            res_repo,
            reservation_id=reservation_id,
            user_id=user_id,
        )
    except ReservationError as exc:
        raise _http_error(exc) from exc
    return ReservationRead.from_db(reservation=reservation, station=station)


@router.put("/{reservation_id}/cancel", response_model=ReservationCancelled)
async def cancel_booking(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
) -> ReservationCancelled:
    station_repo = SqlAlchemyStationRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)
    async with session.begin():
        try:
            result = await reservation_usecase.cancel_reservation(
                station_repo,
                res_repo,
                reservation_id=reservation_id,
                user_id=user_id,
                max_conflict_retries=get_settings().max_conflict_retries,
            )
        except ReservationError as exc:
            raise _http_error(exc) from exc
        cancelled = result.reservation
        _audit(
            action="reservation.cancelled",
            initiator="user",
            reservation_id=cancelled.id,
            station_id=cancelled.station_id,
            user_id=cancelled.user_id,
            slot_number=cancelled.slot_number,
            status_from=result.previous_status,
            status_to=cancelled.status,
            version=cancelled.version,
            extra={"availability_restored": result.availability_restored},
        )

    read = ReservationCancelled.from_db(reservation=cancelled, station=result.station)
    return read.model_copy(update={"availability_restored": result.availability_restored})
