from typing import Iterator

import pytest
from evbooking.config import Settings, get_settings
from pydantic import ValidationError


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_environment_overrides_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MAX_CONFLICT_RETRIES", "5")
    monkeypatch.setenv("COMPLETION_BATCH_SIZE", "50")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    settings = get_settings()
    assert settings.max_conflict_retries == 5
    assert settings.completion_batch_size == 50
    assert settings.log_level == "DEBUG"


def test_unknown_log_level_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(log_level="chatty")


def test_conflict_retries_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        Settings(max_conflict_retries=0)
