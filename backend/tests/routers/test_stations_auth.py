from evbooking.deps import get_current_user_id
from evbooking.routers import reservations, stations
from fastapi.routing import APIRoute


def test_stations_router_requires_bearer_token() -> None:
    assert any(dep.dependency == get_current_user_id for dep in stations.router.dependencies)

    for route in stations.router.routes:
        if not isinstance(route, APIRoute):
            continue
        assert any(dep.call == get_current_user_id for dep in route.dependant.dependencies)


def test_every_booking_route_resolves_the_caller() -> None:
    routes = [route for route in reservations.router.routes if isinstance(route, APIRoute)]
    assert {route.path for route in routes} == {"/bookings", "/bookings/{reservation_id}", "/bookings/{reservation_id}/cancel"}
    for route in routes:
        assert any(dep.call == get_current_user_id for dep in route.dependant.dependencies)
