from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, List, Optional, Tuple, TypeVar, cast

from sqlalchemy import Select, func, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import ConflictError, StationNotFoundError, StoreUnavailableError, TransactionAbortedError
from ..domain.repositories import ReservationRepository, StationRepository
from ..models import ACTIVE_STATUSES, Reservation, ReservationStatus, Station, User
from ..utils.time import utc_now

T = TypeVar("T")

# MySQL lock wait timeout; only the failed statement is rolled back.
_LOCK_WAIT_TIMEOUT = 1205
# MySQL deadlock; InnoDB rolls back the whole transaction.
_DEADLOCK = 1213


def _error_code(exc: DBAPIError) -> object:
    args = getattr(exc.orig, "args", ())
    return args[0] if args else None


@asynccontextmanager
async def _store_errors(*, integrity_as_conflict: bool = False) -> AsyncIterator[None]:
    try:
        yield
    except IntegrityError as exc:
        if integrity_as_conflict:
            raise ConflictError("constraint rejected concurrent update") from exc
        raise StoreUnavailableError("record store rejected write") from exc
    except DBAPIError as exc:
        code = _error_code(exc)
        if code == _DEADLOCK:
            raise TransactionAbortedError("transaction chosen as deadlock victim") from exc
        if code == _LOCK_WAIT_TIMEOUT:
            raise ConflictError("row lock conflict") from exc
        raise StoreUnavailableError("record store unavailable") from exc


class SqlAlchemyStationRepository(StationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_station(self, station_id: int) -> Station | None:
        async with _store_errors():
            return await self.session.get(Station, station_id)

    async def atomic_update_station(self, station_id: int, fn: Callable[[Station], T]) -> T:
        # The row lock is held until the surrounding transaction ends.
        stmt = (
            select(Station)
            .where(Station.id == station_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        async with _store_errors(integrity_as_conflict=True):
            station = await self.session.scalar(stmt)
            if station is None:
                raise StationNotFoundError("charging station not found")
            result = fn(station)
            station.updated_at = utc_now()
            await self.session.flush()
        return result

    async def list_stations(self, *, active_only: bool = True) -> list[Station]:
        stmt = select(Station).order_by(Station.id)
        if active_only:
            stmt = stmt.where(Station.is_active.is_(True))
        async with _store_errors():
            return list((await self.session.scalars(stmt)).all())


class SqlAlchemyReservationRepository(ReservationRepository):
    atomic_attempts = True

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @asynccontextmanager
    async def attempt(self) -> AsyncIterator[None]:
        # One savepoint per attempt: a failed flush discards only this attempt.
        async with _store_errors():
            savepoint = await self.session.begin_nested()
        try:
            yield
        except TransactionAbortedError:
            # The savepoint went with the transaction; the caller must roll back.
            raise
        except BaseException:
            async with _store_errors():
                await savepoint.rollback()
            raise
        async with _store_errors():
            await savepoint.commit()

    @asynccontextmanager
    async def lock_user(self, user_id: int) -> AsyncIterator[None]:
        # Locks the users row; released when the request transaction commits.
        async with _store_errors():
            await self.session.execute(select(User.id).where(User.id == user_id).with_for_update())
        yield

    async def get_user_active_reservations(self, user_id: int) -> list[Reservation]:
        stmt = select(Reservation).where(
            Reservation.user_id == user_id,
            Reservation.status.in_(list(ACTIVE_STATUSES)),
        )
        async with _store_errors():
            return list((await self.session.scalars(stmt)).all())

    async def create_reservation(self, record: Reservation) -> Reservation:
        async with _store_errors():
            self.session.add(record)
            await self.session.flush()
        return record

    async def get_reservation(
        self,
        reservation_id: int,
        user_id: int,
        *,
        for_update: bool = False,
    ) -> Optional[Tuple[Reservation, Optional[Station]]]:
        stmt: Select[Tuple[Reservation, Station]] = (
            select(Reservation, Station)
            .outerjoin(Station, Reservation.station_id == Station.id)
            .where(Reservation.id == reservation_id, Reservation.user_id == user_id)
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        async with _store_errors():
            row = (await self.session.execute(stmt)).first()
        return cast(Optional[Tuple[Reservation, Optional[Station]]], row)

    async def update_reservation(self, record: Reservation) -> Reservation:
        async with _store_errors():
            self.session.add(record)
            await self.session.flush()
        return record

    async def list_by_user(
        self,
        user_id: int,
        *,
        status: ReservationStatus | None = None,
        offset: int = 0,
        limit: int = 10,
    ) -> List[Tuple[Reservation, Optional[Station]]]:
        stmt: Select[Tuple[Reservation, Station]] = (
            select(Reservation, Station)
            .outerjoin(Station, Reservation.station_id == Station.id)
            .where(Reservation.user_id == user_id)
            .order_by(Reservation.created_at.desc(), Reservation.id.desc())
            .offset(offset)
            .limit(limit)
        )
        if status is not None:
            stmt = stmt.where(Reservation.status == status)
        async with _store_errors():
            rows = await self.session.execute(stmt)
        return [(reservation, station) for reservation, station in rows.all()]

    async def count_by_user(self, user_id: int, *, status: ReservationStatus | None = None) -> int:
        stmt = select(func.count(Reservation.id)).where(Reservation.user_id == user_id)
        if status is not None:
            stmt = stmt.where(Reservation.status == status)
        async with _store_errors():
            return int(await self.session.scalar(stmt) or 0)

    async def count_active_for_station(self, station_id: int) -> int:
        stmt = select(func.count(Reservation.id)).where(
            Reservation.station_id == station_id,
            Reservation.status.in_(list(ACTIVE_STATUSES)),
        )
        async with _store_errors():
            return int(await self.session.scalar(stmt) or 0)

    async def list_elapsed_active(self, now: datetime, *, limit: int = 500) -> list[Reservation]:
        stmt = (
            select(Reservation)
            .where(Reservation.status.in_(list(ACTIVE_STATUSES)), Reservation.end_time <= now)
            .order_by(Reservation.end_time)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        async with _store_errors():
            return list((await self.session.scalars(stmt)).all())
