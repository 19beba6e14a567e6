from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from evbooking.domain.errors import CapacityExhaustedError, StationNotFoundError
from evbooking.infrastructure.memory import InMemoryReservationRepository, InMemoryStationRepository, MemoryStore
from evbooking.models import ChargingSpeed, Reservation, ReservationStatus, Station
from evbooking.usecases import availability as ledger

NOW = datetime(2030, 5, 1, 8, 0)


def _store(total_slots: int, occupied_slots: int) -> MemoryStore:
    store = MemoryStore()
    store.add_station(
        Station(
            id=1,
            name="GreenWheels Hub 3",
            address="MG Road",
            charging_speed=ChargingSpeed.ULTRA,
            total_slots=total_slots,
            occupied_slots=occupied_slots,
            price_per_hour=Decimal("100"),
            is_active=True,
            created_at=NOW,
            updated_at=NOW,
        )
    )
    return store


def _active_reservation(store: MemoryStore, status: ReservationStatus) -> None:
    reservation_id = store.next_id()
    store.reservations[reservation_id] = Reservation(
        id=reservation_id,
        user_id=reservation_id,
        station_id=1,
        start_time=NOW,
        end_time=NOW + timedelta(hours=1),
        duration_hours=Decimal("1"),
        slot_number=1,
        total_amount=Decimal("100.00"),
        status=status,
        version=1,
        created_at=NOW,
        updated_at=NOW,
    )


@pytest.mark.asyncio
async def test_reserve_returns_next_slot_number_and_increments() -> None:
    store = _store(total_slots=3, occupied_slots=1)
    repo = InMemoryStationRepository(store)
    assert await ledger.try_reserve_slot(repo, station_id=1) == 2
    assert await ledger.try_reserve_slot(repo, station_id=1) == 3
    assert store.stations[1].occupied_slots == 3


@pytest.mark.asyncio
async def test_reserve_on_full_station_does_not_mutate() -> None:
    store = _store(total_slots=2, occupied_slots=2)
    with pytest.raises(CapacityExhaustedError):
        await ledger.try_reserve_slot(InMemoryStationRepository(store), station_id=1)
    assert store.stations[1].occupied_slots == 2


@pytest.mark.asyncio
async def test_reserve_on_missing_station() -> None:
    with pytest.raises(StationNotFoundError):
        await ledger.try_reserve_slot(InMemoryStationRepository(MemoryStore()), station_id=42)


@pytest.mark.asyncio
async def test_release_never_goes_negative() -> None:
    store = _store(total_slots=2, occupied_slots=1)
    repo = InMemoryStationRepository(store)
    assert await ledger.release_slot(repo, station_id=1) == 0
    assert await ledger.release_slot(repo, station_id=1) == 0
    assert store.stations[1].occupied_slots == 0


@pytest.mark.asyncio
async def test_reconcile_resets_to_active_count() -> None:
    store = _store(total_slots=4, occupied_slots=3)
    _active_reservation(store, ReservationStatus.CONFIRMED)
    _active_reservation(store, ReservationStatus.PENDING)
    _active_reservation(store, ReservationStatus.CANCELLED)

    before, after = await ledger.reconcile_station(
        InMemoryStationRepository(store),
        InMemoryReservationRepository(store),
        station_id=1,
    )
    assert (before, after) == (3, 2)
    assert store.stations[1].occupied_slots == 2


@pytest.mark.asyncio
async def test_reconcile_without_drift_is_a_no_op() -> None:
    store = _store(total_slots=4, occupied_slots=1)
    _active_reservation(store, ReservationStatus.CONFIRMED)
    before, after = await ledger.reconcile_station(
        InMemoryStationRepository(store),
        InMemoryReservationRepository(store),
        station_id=1,
    )
    assert before == after == 1
