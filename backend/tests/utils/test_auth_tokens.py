from datetime import datetime, timedelta, timezone

import jwt
import pytest
from evbooking.utils.auth import TOKEN_ISSUER, create_access_token, decode_access_token


def test_token_round_trips_user_id() -> None:
    token = create_access_token(user_id=42, secret="s3cret")
    assert decode_access_token(token, secret="s3cret", algorithms=["HS256"]) == 42


def test_foreign_issuer_is_rejected() -> None:
    now = datetime.now(timezone.utc)
    token = jwt.encode({"sub": "1", "iss": "elsewhere", "exp": now + timedelta(minutes=5)}, "s3cret", algorithm="HS256")
    with pytest.raises(ValueError):
        decode_access_token(token, secret="s3cret", algorithms=["HS256"])


@pytest.mark.parametrize("sub", ["abc", "0"])
def test_non_user_subject_is_rejected(sub: str) -> None:
    now = datetime.now(timezone.utc)
    token = jwt.encode({"sub": sub, "iss": TOKEN_ISSUER, "exp": now + timedelta(minutes=5)}, "s3cret", algorithm="HS256")
    with pytest.raises(ValueError):
        decode_access_token(token, secret="s3cret", algorithms=["HS256"])


def test_token_without_expiry_is_rejected() -> None:
    token = jwt.encode({"sub": "1", "iss": TOKEN_ISSUER}, "s3cret", algorithm="HS256")
    with pytest.raises(ValueError):
        decode_access_token(token, secret="s3cret", algorithms=["HS256"])
