from __future__ import annotations

from fastapi.testclient import TestClient

from services.partystream.app.main import create_app
from services.partystream.app.rate_limit import RATE_LIMIT_MESSAGE, RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_limiter_blocks_until_window_rolls_over():
    clock = FakeClock()
    limiter = RateLimiter(2, 60, clock=clock)

    assert limiter.hit("GET:/djs:ip:1") is None
    assert limiter.hit("GET:/djs:ip:1") is None
    assert limiter.hit("GET:/djs:ip:1") == 60
    assert limiter.hit("GET:/djs:ip:2") is None

    clock.now += 45
    assert limiter.hit("GET:/djs:ip:1") == 15

    clock.now += 15
    assert limiter.hit("GET:/djs:ip:1") is None


def test_middleware_returns_429_with_retry_after(settings, gateway, provider, make_user):
    limited = settings.model_copy(update={"rate_limit_max_calls": 2, "rate_limit_window_seconds": 60})
    app = create_app(limited, payment_gateway=gateway, streaming_provider=provider)
    host = make_user("host")
    other = make_user("host")

    with TestClient(app) as client:
        for _ in range(2):
            assert client.get("/bookings", headers=host.headers).status_code == 200
        blocked = client.get("/bookings", headers=host.headers)

        assert blocked.status_code == 429
        assert blocked.headers["Retry-After"]
        assert blocked.json() == {
            "status": "error",
            "error": "rate_limited",
            "message": RATE_LIMIT_MESSAGE,
        }

        assert client.get("/bookings", headers=other.headers).status_code == 200
        assert client.get("/djs").status_code == 200
        for _ in range(3):
            assert client.get("/health").status_code == 200


def test_expired_windows_are_pruned():
    clock = FakeClock()
    limiter = RateLimiter(5, 60, clock=clock)

    for index in range(10):
        limiter.hit(f"GET:/bookings/{{booking_id}}:ip:{index}")
    assert len(limiter) == 10

    clock.now += 30
    limiter.hit("GET:/djs:ip:fresh")
    assert len(limiter) == 11

    clock.now += 30
    limiter.hit("GET:/djs:ip:later")
    assert len(limiter) == 2


def test_path_parameters_share_one_budget(settings, gateway, provider, make_user):
    limited = settings.model_copy(update={"rate_limit_max_calls": 2, "rate_limit_window_seconds": 60})
    app = create_app(limited, payment_gateway=gateway, streaming_provider=provider)
    host = make_user("host")

    with TestClient(app) as client:
        assert client.get("/bookings/booking-one", headers=host.headers).status_code == 404
        assert client.get("/bookings/booking-two", headers=host.headers).status_code == 404
        blocked = client.get("/bookings/booking-three", headers=host.headers)
        assert blocked.status_code == 429

        assert client.get("/bookings", headers=host.headers).status_code == 200

    assert len(app.state.rate_limiter) == 2
