import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable

from ..domain import policies
from ..domain.errors import (
    AlreadyTerminalError,
    CapacityExhaustedError,
    ConflictError,
    OverlappingBookingError,
    ReservationNotFoundError,
    StationNotFoundError,
    TransactionAbortedError,
)
from ..domain.repositories import ReservationRepository, StationRepository
from ..models import TERMINAL_STATUSES, Reservation, ReservationStatus, Station
from ..utils.time import utc_now
from .availability import release_slot, try_reserve_slot
from .conflicts import has_overlap

logger = logging.getLogger(__name__)

MAX_CONFLICT_RETRIES = 3


@dataclass(frozen=True)
class CancellationResult:
    reservation: Reservation
    station: Station | None
    previous_status: ReservationStatus
    # False means the reservation is cancelled but the station counter was not
    # decremented; reconcile_station repairs it.
    availability_restored: bool


async def create_reservation(
    station_repo: StationRepository,
    res_repo: ReservationRepository,
    *,
    user_id: int,
    station_id: int,
    start_time: datetime,
    end_time: datetime,
    requested_duration: Decimal | None = None,
    max_conflict_retries: int = MAX_CONFLICT_RETRIES,
    now: Callable[[], datetime] = utc_now,
) -> tuple[Reservation, Station]:
    hours = policies.duration_hours(start_time, end_time)
    policies.ensure_duration_matches(requested_duration, hours)

    station = await station_repo.get_station(station_id)
    if station is None or not station.is_active:
        raise StationNotFoundError("charging station not found")

    lost_race_on: str | None = None
    async with res_repo.lock_user(user_id):
        for attempt in range(1, max_conflict_retries + 1):
            stage = "overlap"
            try:
                async with res_repo.attempt():
                    if await has_overlap(res_repo, user_id=user_id, start_time=start_time, end_time=end_time):
                        raise OverlappingBookingError("you already have a booking that overlaps with this time")

                    stage = "station"
                    slot_number = await try_reserve_slot(station_repo, station_id=station_id)

                    stage = "reservation"
                    created_at = now()
                    record = Reservation(
                        user_id=user_id,
                        station_id=station_id,
                        start_time=start_time,
                        end_time=end_time,
                        duration_hours=hours,
                        slot_number=slot_number,
                        total_amount=policies.total_amount(hours, station.price_per_hour),
                        status=ReservationStatus.CONFIRMED,
                        version=1,
                        created_at=created_at,
                        updated_at=created_at,
                    )
                    reservation = await res_repo.create_reservation(record)
            except ConflictError as exc:
                if stage == "reservation" and not res_repo.atomic_attempts:
                    await _compensate_slot(station_repo, station_id=station_id)
                if isinstance(exc, TransactionAbortedError):
                    raise
                lost_race_on = stage
                logger.info("booking for user %s lost a race on %s (attempt %s/%s)", user_id, stage, attempt, max_conflict_retries)
                continue
            except Exception:
                if stage == "reservation" and not res_repo.atomic_attempts:
                    await _compensate_slot(station_repo, station_id=station_id)
                raise
            return reservation, station

    if lost_race_on == "station":
        raise CapacityExhaustedError("no available slots at this station")
    raise OverlappingBookingError("you already have a booking that overlaps with this time")


async def _compensate_slot(station_repo: StationRepository, *, station_id: int) -> None:
    # Must not mask the persistence error that triggered it.
    try:
        await release_slot(station_repo, station_id=station_id)
    except Exception:
        logger.exception("failed to release slot on station %s after aborted booking", station_id)


async def cancel_reservation(
    station_repo: StationRepository,
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    user_id: int,
    max_conflict_retries: int = MAX_CONFLICT_RETRIES,
    now: Callable[[], datetime] = utc_now,
) -> CancellationResult:
    for attempt in range(1, max_conflict_retries + 1):
        try:
            async with res_repo.attempt():
                row = await res_repo.get_reservation(reservation_id, user_id, for_update=True)
                if row is None:
                    raise ReservationNotFoundError("reservation not found")
                reservation, station = row
                if reservation.status in TERMINAL_STATUSES:
                    raise AlreadyTerminalError(f"reservation is already {reservation.status.value}")

                current = now()
                policies.ensure_cancellable(reservation.start_time, now=current)

                previous_status = reservation.status
                reservation.status = ReservationStatus.CANCELLED
                reservation.version += 1
                reservation.updated_at = current
                updated = await res_repo.update_reservation(reservation)
        except TransactionAbortedError:
            raise
        except ConflictError:
            logger.info("reservation %s changed concurrently (attempt %s/%s)", reservation_id, attempt, max_conflict_retries)
            continue
        break
    else:
        raise ConflictError("reservation was modified concurrently")

    try:
        await release_slot(station_repo, station_id=updated.station_id)
    except StationNotFoundError:
        logger.warning(
            "station %s missing while cancelling reservation %s; occupancy needs reconciliation",
            updated.station_id,
            updated.id,
        )
        return CancellationResult(
            reservation=updated,
            station=None,
            previous_status=previous_status,
            availability_restored=False,
        )
    return CancellationResult(
        reservation=updated,
        station=station,
        previous_status=previous_status,
        availability_restored=True,
    )


async def list_user_reservations(
    res_repo: ReservationRepository,
    *,
    user_id: int,
    status: ReservationStatus | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[tuple[Reservation, Station | None]], int]:
    if page < 1:
        raise ValueError("page must be >= 1")
    if limit < 1:
        raise ValueError("limit must be >= 1")
    rows = await res_repo.list_by_user(user_id, status=status, offset=(page - 1) * limit, limit=limit)
    total = await res_repo.count_by_user(user_id, status=status)
    return rows, total


async def get_user_reservation(
    res_repo: ReservationRepository,
    *,
    reservation_id: int,
    user_id: int,
) -> tuple[Reservation, Station | None]:
    row = await res_repo.get_reservation(reservation_id, user_id)
    if row is None:
        raise ReservationNotFoundError("reservation not found")
    return row


async def complete_elapsed_reservations(
    station_repo: StationRepository,
    res_repo: ReservationRepository,
    *,
    now: Callable[[], datetime] = utc_now,
    limit: int = 500,
) -> list[Reservation]:
    """Move active reservations whose window has ended to COMPLETED and free their slots."""
    current = now()
    completed: list[Reservation] = []
    for reservation in await res_repo.list_elapsed_active(current, limit=limit):
        reservation_id = reservation.id
        try:
            async with res_repo.attempt():
                reservation.status = ReservationStatus.COMPLETED
                reservation.version += 1
                reservation.updated_at = current
                updated = await res_repo.update_reservation(reservation)
                try:
                    await release_slot(station_repo, station_id=updated.station_id)
                except StationNotFoundError:
                    logger.warning("station %s missing while completing reservation %s", updated.station_id, reservation_id)
        except TransactionAbortedError:
            raise
        except ConflictError:
            logger.info("reservation %s changed during completion sweep; skipped", reservation_id)
            continue
        completed.append(updated)
    return completed
