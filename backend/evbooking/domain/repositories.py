from __future__ import annotations

from datetime import datetime
from typing import AsyncContextManager, Callable, ClassVar, Protocol, TypeVar

from ..models import Reservation, ReservationStatus, Station

T = TypeVar("T")


class StationRepository(Protocol):
    async def get_station(self, station_id: int) -> Station | None: ...

    async def atomic_update_station(self, station_id: int, fn: Callable[[Station], T]) -> T:
        """
        Apply `fn` to the station while holding its exclusive lock and persist the result.
        Raises StationNotFoundError if the station does not exist.
        """
        ...

    async def list_stations(self, *, active_only: bool = True) -> list[Station]: ...


class ReservationRepository(Protocol):
    # True when a failed attempt discards every write made inside it.
    atomic_attempts: ClassVar[bool]

    def attempt(self) -> AsyncContextManager[None]:
        """Scope one check-then-commit attempt so a ConflictError inside it can be retried."""
        ...

    def lock_user(self, user_id: int) -> AsyncContextManager[None]:
        """Serialize overlap check through commit for one user."""
        ...

    async def get_user_active_reservations(self, user_id: int) -> list[Reservation]: ...

    async def create_reservation(self, record: Reservation) -> Reservation: ...

    async def get_reservation(
        self,
        reservation_id: int,
        user_id: int,
        *,
        for_update: bool = False,
    ) -> tuple[Reservation, Station | None] | None: ...

    async def update_reservation(self, record: Reservation) -> Reservation: ...

    async def list_by_user(
        self,
        user_id: int,
        *,
        status: ReservationStatus | None = None,
        offset: int = 0,
        limit: int = 10,
    ) -> list[tuple[Reservation, Station | None]]: ...

    async def count_by_user(self, user_id: int, *, status: ReservationStatus | None = None) -> int: ...

    async def count_active_for_station(self, station_id: int) -> int: ...

    async def list_elapsed_active(self, now: datetime, *, limit: int = 500) -> list[Reservation]: ...
