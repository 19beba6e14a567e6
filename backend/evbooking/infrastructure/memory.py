from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from itertools import count
from typing import AsyncIterator, Callable, TypeVar

from ..domain.errors import ConflictError, StationNotFoundError
from ..domain.repositories import ReservationRepository, StationRepository
from ..models import ACTIVE_STATUSES, Base, Reservation, ReservationStatus, Station
from ..utils.time import utc_now

T = TypeVar("T")
M = TypeVar("M", bound=Base)


def _detached_copy(obj: M) -> M:
    columns = type(obj).__table__.columns
    return type(obj)(**{column.key: getattr(obj, column.key) for column in columns})


class MemoryStore:
    """
    Process-local record store. Every read returns a copy, so callers only see
    committed state and writes go through the repositories below.
    """

    def __init__(self) -> None:
        self.stations: dict[int, Station] = {}
        self.reservations: dict[int, Reservation] = {}
        self._ids = count(1)
        self._station_locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._user_locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    def add_station(self, station: Station) -> Station:
        if station.id is None:
            station.id = next(self._ids)
        self.stations[station.id] = _detached_copy(station)
        return station

    def next_id(self) -> int:
        return next(self._ids)

    def station_lock(self, station_id: int) -> asyncio.Lock:
        return self._station_locks[station_id]

    def user_lock(self, user_id: int) -> asyncio.Lock:
        return self._user_locks[user_id]


class InMemoryStationRepository(StationRepository):
    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    async def get_station(self, station_id: int) -> Station | None:
        await asyncio.sleep(0)
        station = self.store.stations.get(station_id)
        return _detached_copy(station) if station is not None else None

    async def atomic_update_station(self, station_id: int, fn: Callable[[Station], T]) -> T:
        async with self.store.station_lock(station_id):
            await asyncio.sleep(0)
            current = self.store.stations.get(station_id)
            if current is None:
                raise StationNotFoundError("charging station not found")
            working = _detached_copy(current)
            result = fn(working)
            working.updated_at = utc_now()
            self.store.stations[station_id] = working
            return result

    async def list_stations(self, *, active_only: bool = True) -> list[Station]:
        stations = sorted(self.store.stations.values(), key=lambda s: s.id)
        return [_detached_copy(s) for s in stations if s.is_active or not active_only]


class InMemoryReservationRepository(ReservationRepository):
    atomic_attempts = False

    def __init__(self, store: MemoryStore) -> None:
        self.store = store

    @asynccontextmanager
    async def attempt(self) -> AsyncIterator[None]:
        # Every write commits on its own; callers compensate failed attempts.
        yield

    @asynccontextmanager
    async def lock_user(self, user_id: int) -> AsyncIterator[None]:
        async with self.store.user_lock(user_id):
            yield

    async def get_user_active_reservations(self, user_id: int) -> list[Reservation]:
        await asyncio.sleep(0)
        return [
            _detached_copy(r)
            for r in self.store.reservations.values()
            if r.user_id == user_id and r.status in ACTIVE_STATUSES
        ]

    async def create_reservation(self, record: Reservation) -> Reservation:
        await asyncio.sleep(0)
        record.id = self.store.next_id()
        self.store.reservations[record.id] = _detached_copy(record)
        return record

    async def get_reservation(
        self,
        reservation_id: int,
        user_id: int,
        *,
        for_update: bool = False,
    ) -> tuple[Reservation, Station | None] | None:
        # Stale writes are caught by the version check in update_reservation.
        reservation = self.store.reservations.get(reservation_id)
        if reservation is None or reservation.user_id != user_id:
            return None
        station = self.store.stations.get(reservation.station_id)
        return _detached_copy(reservation), _detached_copy(station) if station is not None else None

    async def update_reservation(self, record: Reservation) -> Reservation:
        await asyncio.sleep(0)
        current = self.store.reservations.get(record.id)
        if current is None or current.version != record.version - 1:
            raise ConflictError("reservation version is stale")
        self.store.reservations[record.id] = _detached_copy(record)
        return record

    def _owned(self, user_id: int, status: ReservationStatus | None) -> list[Reservation]:
        return [
            r
            for r in self.store.reservations.values()
            if r.user_id == user_id and (status is None or r.status == status)
        ]

    async def list_by_user(
        self,
        user_id: int,
        *,
        status: ReservationStatus | None = None,
        offset: int = 0,
        limit: int = 10,
    ) -> list[tuple[Reservation, Station | None]]:
        owned = sorted(self._owned(user_id, status), key=lambda r: (r.created_at, r.id), reverse=True)
        rows: list[tuple[Reservation, Station | None]] = []
        for reservation in owned[offset : offset + limit]:
            station = self.store.stations.get(reservation.station_id)
            rows.append((_detached_copy(reservation), _detached_copy(station) if station is not None else None))
        return rows

    async def count_by_user(self, user_id: int, *, status: ReservationStatus | None = None) -> int:
        return len(self._owned(user_id, status))

    async def count_active_for_station(self, station_id: int) -> int:
        return sum(
            1
            for r in self.store.reservations.values()
            if r.station_id == station_id and r.status in ACTIVE_STATUSES
        )

    async def list_elapsed_active(self, now: datetime, *, limit: int = 500) -> list[Reservation]:
        elapsed = sorted(
            (r for r in self.store.reservations.values() if r.status in ACTIVE_STATUSES and r.end_time <= now),
            key=lambda r: r.end_time,
        )
        return [_detached_copy(r) for r in elapsed[:limit]]
