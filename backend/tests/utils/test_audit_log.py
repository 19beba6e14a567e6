import json
from datetime import datetime
from decimal import Decimal
from typing import Any, List

import pytest
from evbooking.models import ReservationStatus
from evbooking.utils import audit_log
from evbooking.utils.request_id import set_request_id


class DummyLogger:
    def __init__(self) -> None:
        self.messages: List[str] = []

    def info(self, message: str) -> None:
        self.messages.append(message)


def test_emit_audit_log_outputs_json(monkeypatch: pytest.MonkeyPatch) -> None:
    logger = DummyLogger()
    monkeypatch.setattr(audit_log, "_audit_logger", logger)

    set_request_id("req-123")
    try:
        audit_log.emit_audit_log(
            action="reservation.created",
            initiator="user",
            reservation_id=1,
            station_id=2,
            user_id=4,
            slot_number=3,
            status_from=None,
            status_to=ReservationStatus.CONFIRMED,
            version=1,
            extra={"total_amount": Decimal("240.00")},
        )
    finally:
        set_request_id(None)

    assert len(logger.messages) == 1
    payload = json.loads(logger.messages[0])
    assert payload["action"] == "reservation.created"
    assert payload["initiator"] == "user"
    assert payload["request_id"] == "req-123"
    assert payload["station_id"] == 2
    assert payload["slot_number"] == 3
    assert payload["status_to"] == "confirmed"
    assert payload["total_amount"] == "240.00"
    assert "status_from" not in payload
    assert "timestamp" in payload


def test_system_entries_serialise_datetimes_as_utc(monkeypatch: pytest.MonkeyPatch) -> None:
    logger = DummyLogger()
    monkeypatch.setattr(audit_log, "_audit_logger", logger)
    set_request_id(None)

    audit_log.emit_audit_log(
        action="reservation.completed",
        initiator="system",
        reservation_id=9,
        station_id=2,
        user_id=4,
        status_from=ReservationStatus.CONFIRMED,
        status_to=ReservationStatus.COMPLETED,
        extra={"end_time": datetime(2030, 5, 1, 10, 0)},
    )

    payload = json.loads(logger.messages[0])
    assert payload["initiator"] == "system"
    assert payload["end_time"] == "2030-05-01T10:00:00+00:00"
    assert "request_id" not in payload


def test_emit_audit_log_raises_on_logger_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    class BrokenLogger:
        def info(self, _: Any) -> None:
            raise ValueError("fail")

    monkeypatch.setattr(audit_log, "_audit_logger", BrokenLogger())

    with pytest.raises(RuntimeError):
        audit_log.emit_audit_log(
            action="reservation.cancelled",
            initiator="user",
            reservation_id=1,
            station_id=2,
            user_id=4,
            status_from=ReservationStatus.CONFIRMED,
            status_to=ReservationStatus.CANCELLED,
            version=2,
        )
