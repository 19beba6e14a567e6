from datetime import datetime

from ..domain.repositories import ReservationRepository
from ..domain.services import find_overlapping


async def has_overlap(
    res_repo: ReservationRepository,
    *,
    user_id: int,
    start_time: datetime,
    end_time: datetime,
) -> bool:
    # Callers must hold res_repo.lock_user(user_id) until the new booking commits.
    active = await res_repo.get_user_active_reservations(user_id)
    return find_overlapping(active, start_time=start_time, end_time=end_time) is not None
