from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from .errors import CancellationWindowClosedError, InvalidWindowError

CANCELLATION_LEAD_TIME = timedelta(hours=1)

_MS_PER_HOUR = Decimal(3_600_000)
_CENTS = Decimal("0.01")
# Scale of Reservation.duration_hours.
_DURATION_SCALE = Decimal("0.0001")


def _milliseconds(delta: timedelta) -> Decimal:
    # Sub-millisecond remainders are dropped.
    return Decimal(delta.days * 86_400_000 + delta.seconds * 1_000 + delta.microseconds // 1_000)


def duration_hours(start_time: datetime, end_time: datetime) -> Decimal:
    if end_time <= start_time:
        raise InvalidWindowError("end_time must be later than start_time")
    return _milliseconds(end_time - start_time) / _MS_PER_HOUR


def hours_until(start_time: datetime, now: datetime) -> Decimal:
    return _milliseconds(start_time - now) / _MS_PER_HOUR


def ensure_cancellable(start_time: datetime, *, now: datetime) -> None:
    """Raise unless the reservation starts at least one lead time from `now`."""
    lead_hours = _milliseconds(CANCELLATION_LEAD_TIME) / _MS_PER_HOUR
    if hours_until(start_time, now) < lead_hours:
        raise CancellationWindowClosedError("cannot cancel less than 1 hour before start time")


def total_amount(hours: Decimal, price_per_hour: Decimal) -> Decimal:
    return (hours * Decimal(price_per_hour)).quantize(_CENTS, rounding=ROUND_HALF_UP)


def slot_number_for(occupied_before: int) -> int:
    # Counting label, not a free-list: numbers can repeat after releases.
    return occupied_before + 1


def _at_duration_scale(hours: Decimal) -> Decimal:
    return hours.quantize(_DURATION_SCALE, rounding=ROUND_HALF_UP)


def ensure_duration_matches(requested: Decimal | None, computed: Decimal) -> None:
    """Accept a client-supplied duration that equals the window at stored precision."""
    if requested is None:
        return
    if _at_duration_scale(Decimal(requested)) != _at_duration_scale(computed):
        raise InvalidWindowError("duration does not match the booking window")
