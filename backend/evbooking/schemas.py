from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_serializer

from .models import ChargingSpeed, Reservation, ReservationStatus, Station
from .utils.time import utc_naive_to_aware


class StationRead(BaseModel):
    station_id: int
    name: str
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    charging_speed: ChargingSpeed
    total_slots: int
    occupied_slots: int
    available_slots: int
    price_per_hour: Decimal

    @classmethod
    def from_db(cls, *, station: Station) -> "StationRead":
        return cls(
            station_id=station.id,
            name=station.name,
            address=station.address,
            latitude=station.latitude,
            longitude=station.longitude,
            charging_speed=station.charging_speed,
            total_slots=station.total_slots,
            occupied_slots=station.occupied_slots,
            available_slots=station.available_slots,
            price_per_hour=station.price_per_hour,
        )


class ReservationCreate(BaseModel):
    station_id: int = Field(ge=1)
    start_time: datetime
    end_time: datetime
    # Hours; optional and must match the window when supplied.
    duration: Optional[Decimal] = Field(default=None, gt=0)


class ReservationRead(BaseModel):
    reservation_id: int
    user_id: int
    station_id: int
    station_name: Optional[str] = None
    station_address: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration_hours: Decimal
    slot_number: int
    total_amount: Decimal
    status: ReservationStatus
    version: int
    created_at: datetime

    @field_serializer("start_time", "end_time", "created_at")
    def _ser_datetime(self, dt: datetime) -> str:
        return dt.astimezone(timezone.utc).isoformat()

    @classmethod
    def from_db(
        cls,
        *,
        reservation: Reservation,
        station: Optional[Station] = None,
    ) -> "ReservationRead":
        return cls(
            reservation_id=reservation.id,
            user_id=reservation.user_id,
            station_id=reservation.station_id,
            station_name=station.name if station is not None else None,
            station_address=station.address if station is not None else None,
            start_time=utc_naive_to_aware(reservation.start_time),
            end_time=utc_naive_to_aware(reservation.end_time),
            duration_hours=reservation.duration_hours,
            slot_number=reservation.slot_number,
            total_amount=reservation.total_amount,
            status=reservation.status,
            version=reservation.version,
            created_at=utc_naive_to_aware(reservation.created_at),
        )


class ReservationCancelled(ReservationRead):
    availability_restored: bool = True


class ReservationPage(BaseModel):
    count: int
    total: int
    page: int
    pages: int
    bookings: List[ReservationRead]
