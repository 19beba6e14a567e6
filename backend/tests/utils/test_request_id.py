import pytest
from evbooking.main import request_id_middleware
from evbooking.utils.request_id import (
    MAX_REQUEST_ID_LENGTH,
    get_request_id,
    resolve_request_id,
    set_request_id,
)
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient


def _app() -> FastAPI:
    app = FastAPI()

    @app.get("/check")
    async def check() -> dict[str, str]:
        return {"rid": get_request_id() or ""}

    app.middleware("http")(request_id_middleware)
    return app


def test_request_id_set_and_get() -> None:
    set_request_id("req-abc")
    assert get_request_id() == "req-abc"
    set_request_id(None)
    assert get_request_id() is None


def test_resolve_keeps_reasonable_incoming_id() -> None:
    assert resolve_request_id("  req-custom-123 ") == "req-custom-123"


@pytest.mark.parametrize("incoming", [None, "", "   ", "x" * (MAX_REQUEST_ID_LENGTH + 1), "bad\nid"])
def test_resolve_generates_for_unusable_incoming_id(incoming: str | None) -> None:
    value = resolve_request_id(incoming)
    assert value
    assert value != incoming
    assert len(value) == 32


@pytest.mark.asyncio
async def test_middleware_generates_and_sets_header() -> None:
    async with AsyncClient(transport=ASGITransport(app=_app()), base_url="http://test") as client:
        resp = await client.get("/check")
    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID")
    assert resp.json()["rid"] == resp.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_middleware_uses_incoming_header() -> None:
    incoming = "req-custom-123"
    async with AsyncClient(
        transport=ASGITransport(app=_app()),
        base_url="http://test",
        headers={"X-Request-ID": incoming},
    ) as client:
        resp = await client.get("/check")
    assert resp.headers["X-Request-ID"] == incoming
    assert resp.json()["rid"] == incoming
