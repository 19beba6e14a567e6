"""
Periodic maintenance entry point (cron):

- completes reservations whose window has ended and frees their slots
- reconciles each station's occupied_slots with its active reservations,
  repairing cancellations whose availability restore failed
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..database import async_session
from ..infrastructure.repositories import SqlAlchemyReservationRepository, SqlAlchemyStationRepository
from ..usecases.availability import reconcile_station
from ..usecases.reservations import complete_elapsed_reservations
from ..utils.audit_log import emit_audit_log
from ..utils.time import utc_now

logger = logging.getLogger(__name__)


async def run_maintenance(
    session: AsyncSession,
    *,
    now: Callable[[], datetime] = utc_now,
    batch_size: int = 500,
) -> dict[str, int]:
    station_repo = SqlAlchemyStationRepository(session)
    res_repo = SqlAlchemyReservationRepository(session)

    async with session.begin():
        completed = await complete_elapsed_reservations(station_repo, res_repo, now=now, limit=batch_size)
        for reservation in completed:
            emit_audit_log(
                action="reservation.completed",
                initiator="system",
                reservation_id=reservation.id,
                station_id=reservation.station_id,
                user_id=reservation.user_id,
                slot_number=reservation.slot_number,
                status_to=reservation.status,
                version=reservation.version,
            )

    async with session.begin():
        station_ids = [station.id for station in await station_repo.list_stations(active_only=False)]

    reconciled = 0
    for station_id in station_ids:
        async with session.begin():
            before, after = await reconcile_station(station_repo, res_repo, station_id=station_id)
            if before != after:
                reconciled += 1
                emit_audit_log(
                    action="station.reconciled",
                    initiator="system",
                    reservation_id=None,
                    station_id=station_id,
                    user_id=None,
                    extra={"occupied_before": before, "occupied_after": after},
                )

    return {"completed": len(completed), "reconciled": reconciled}


async def main() -> None:
    async with async_session() as session:
        result = await run_maintenance(session, batch_size=get_settings().completion_batch_size)
    logger.info("maintenance finished: %s", result)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
