"""Create tables and load sample stations plus a demo user for local development."""

import asyncio
import logging
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .database import async_session, create_schema
from .models import ChargingSpeed, Station, User
from .utils.auth import create_access_token
from .utils.time import utc_now

logger = logging.getLogger(__name__)

DEMO_USER_EMAIL = "demo@example.com"

SAMPLE_STATIONS = [
    ("ChargeMate Station 1", "123 Main Road, Salem, Tamil Nadu", 11.6643, 78.1460, 6, ChargingSpeed.MEDIUM, "120"),
    ("EV FastCharge Center 2", "456 Anna Nagar, Chennai, Tamil Nadu", 13.0827, 80.2707, 8, ChargingSpeed.FAST, "200"),
    ("GreenWheels Hub 3", "MG Road, Bengaluru, Karnataka", 12.9716, 77.5946, 10, ChargingSpeed.ULTRA, "100"),
    ("Corner Plug 4", "12 Lake View, Coimbatore, Tamil Nadu", 11.0168, 76.9558, 2, ChargingSpeed.SLOW, "80"),
]


def build_sample_stations(now: datetime) -> list[Station]:
    return [
        Station(
            name=name,
            address=address,
            latitude=lat,
            longitude=lng,
            total_slots=total_slots,
            occupied_slots=0,
            charging_speed=speed,
            price_per_hour=Decimal(price),
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        for name, address, lat, lng, total_slots, speed, price in SAMPLE_STATIONS
    ]


async def seed(session: AsyncSession) -> User:
    now = utc_now()
    async with session.begin():
        # Stations referenced by reservations are kept.
        await session.execute(delete(Station).where(~Station.reservations.any()))
        session.add_all(build_sample_stations(now))
        user = await session.scalar(select(User).where(User.email == DEMO_USER_EMAIL))
        if user is None:
            user = User(email=DEMO_USER_EMAIL, name="Demo Driver", created_at=now, updated_at=now)
            session.add(user)
        await session.flush()
    return user


async def main() -> None:
    await create_schema()
    async with async_session() as session:
        user = await seed(session)
    settings = get_settings()
    token = create_access_token(
        user_id=user.id,
        secret=settings.auth_secret,
        algorithm=settings.auth_algorithm,
        expires_delta=timedelta(minutes=settings.access_token_ttl_minutes),
    )
    logger.info("seeded %s stations; demo user %s token: %s", len(SAMPLE_STATIONS), user.id, token)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
