from datetime import timedelta
from typing import Any, Iterator

import pytest
from evbooking.config import Settings, get_settings
from evbooking.deps import get_current_user_id
from evbooking.utils.auth import create_access_token
from fastapi import HTTPException
from sqlalchemy.exc import ProgrammingError


class DummySession:
    def __init__(self, user_exists: bool | Exception) -> None:
        self.user_exists = user_exists
        self.rollbacks = 0

    async def scalar(self, *args: Any, **kwargs: Any) -> int | None:
        if isinstance(self.user_exists, Exception):
            raise self.user_exists
        return 1 if self.user_exists else None

    async def rollback(self) -> None:
        self.rollbacks += 1


@pytest.fixture(autouse=True)
def _set_auth_secret(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setenv("AUTH_SECRET", "testsecret")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _token(user_id: int, **kwargs: Any) -> str:
    settings = Settings(auth_secret="testsecret")
    return create_access_token(user_id=user_id, secret=settings.auth_secret, algorithm=settings.auth_algorithm, **kwargs)


@pytest.mark.asyncio
async def test_accepts_valid_token_and_releases_lookup_transaction() -> None:
    session = DummySession(user_exists=True)
    result = await get_current_user_id(authorization=f"Bearer {_token(123)}", session=session)  # type: ignore[arg-type]
    assert result == 123
    assert session.rollbacks == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("header", [None, "", "Token abc", "Bearer   "])
async def test_rejects_missing_or_malformed_header(header: str | None) -> None:
    with pytest.raises(HTTPException) as excinfo:
        await get_current_user_id(authorization=header, session=DummySession(user_exists=True))  # type: ignore[arg-type]
    assert excinfo.value.status_code == 401
    assert excinfo.value.headers == {"WWW-Authenticate": "Bearer"}


@pytest.mark.asyncio
async def test_rejects_expired_token() -> None:
    token = _token(1, expires_delta=timedelta(seconds=-1))
    with pytest.raises(HTTPException) as excinfo:
        await get_current_user_id(authorization=f"Bearer {token}", session=DummySession(user_exists=True))  # type: ignore[arg-type]
    assert excinfo.value.status_code == 401


@pytest.mark.asyncio
async def test_rejects_token_signed_with_other_secret() -> None:
    token = create_access_token(user_id=1, secret="someone-else")
    with pytest.raises(HTTPException) as excinfo:
        await get_current_user_id(authorization=f"Bearer {token}", session=DummySession(user_exists=True))  # type: ignore[arg-type]
    assert excinfo.value.status_code == 401


@pytest.mark.asyncio
async def test_rejects_when_user_missing() -> None:
    with pytest.raises(HTTPException) as excinfo:
        await get_current_user_id(authorization=f"Bearer {_token(99)}", session=DummySession(user_exists=False))  # type: ignore[arg-type]
    assert excinfo.value.status_code == 401


@pytest.mark.asyncio
async def test_missing_users_table_is_a_server_error() -> None:
    session = DummySession(user_exists=ProgrammingError("missing", None, Exception("cause")))
    with pytest.raises(HTTPException) as excinfo:
        await get_current_user_id(authorization=f"Bearer {_token(1)}", session=session)  # type: ignore[arg-type]
    assert excinfo.value.status_code == 500
    assert session.rollbacks == 1
