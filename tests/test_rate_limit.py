"""Sliding-window limiter and the rate_limit view decorator."""

import pytest
from flask import session

from getmeachai.core.rate_limit import RateLimiter, RateLimitRegistry, client_identifier
from conftest import make_app, PASSWORD


def test_rejects_bad_construction():
    with pytest.raises(ValueError):
        RateLimiter(0, 1000)
    with pytest.raises(ValueError):
        RateLimiter(5, -1)
    with pytest.raises(ValueError):
        RateLimiter(True, 1000)


def test_allows_up_to_limit_then_rejects():
    limiter = RateLimiter(3, 60_000)
    results = [limiter.check("ip:1", now=1_000 + i) for i in range(3)]
    assert [r.allowed for r in results] == [True, True, True]
    assert [r.remaining for r in results] == [2, 1, 0]

    blocked = limiter.check("ip:1", now=1_010)
    assert not blocked.allowed
    assert blocked.remaining == 0
    assert blocked.reset_at == 1_000 + 60_000
    assert blocked.retry_after == 60


def test_window_slides():
    limiter = RateLimiter(2, 1_000)
    assert limiter.check("k", now=0).allowed
    assert limiter.check("k", now=500).allowed
    assert not limiter.check("k", now=900).allowed
    # The first request has left the window
    assert limiter.check("k", now=1_000).allowed


def test_keys_are_independent():
    limiter = RateLimiter(1, 10_000)
    assert limiter.check("a", now=0).allowed
    assert limiter.check("b", now=0).allowed
    assert not limiter.check("a", now=1).allowed


def test_rejected_requests_are_not_recorded():
    limiter = RateLimiter(1, 1_000)
    limiter.check("k", now=0)
    for t in (100, 200, 300):
        assert not limiter.check("k", now=t).allowed
    assert limiter.check("k", now=1_000).allowed


def test_cleanup_drops_idle_keys():
    limiter = RateLimiter(5, 1_000)
    limiter.check("old", now=0)
    limiter.check("fresh", now=60 * 60 * 1000)
    removed = limiter.cleanup(now=60 * 60 * 1000 + 1)
    assert removed == 1
    assert len(limiter) == 1


def test_registry_builds_presets_from_config():
    registry = RateLimitRegistry()
    registry.configure({"RATE_LIMIT_AUTH_MAX": 2, "RATE_LIMIT_AUTH_WINDOW": 5_000})
    auth = registry.get("auth")
    assert auth.max_requests == 2
    assert auth.window_ms == 5_000
    assert registry.get("sensitive").max_requests == 3
    with pytest.raises(KeyError):
        registry.get("nope")


def test_decorator_returns_429_with_headers(tmp_db_dir):
    app = make_app(tmp_db_dir, RATE_LIMIT_ENABLED=True, RATE_LIMIT_AUTH_MAX=2)
    client = app.test_client()
    payload = {"email": "nobody@example.com", "password": PASSWORD}

    first = client.post("/api/auth/login", json=payload)
    assert first.status_code == 401
    assert first.headers["X-RateLimit-Limit"] == "2"
    assert first.headers["X-RateLimit-Remaining"] == "1"
    assert "X-RateLimit-Reset" in first.headers

    client.post("/api/auth/login", json=payload)
    blocked = client.post("/api/auth/login", json=payload)
    assert blocked.status_code == 429
    body = blocked.get_json()
    assert body["retryAfter"] >= 1
    assert blocked.headers["Retry-After"] == str(body["retryAfter"])


def test_rotating_user_header_does_not_reset_the_limit(tmp_db_dir):
    app = make_app(tmp_db_dir, RATE_LIMIT_ENABLED=True, RATE_LIMIT_AUTH_MAX=1)
    client = app.test_client()
    payload = {"email": "nobody@example.com", "password": PASSWORD}

    assert client.post("/api/auth/login", json=payload, headers={"X-User-Id": "1"}).status_code == 401
    assert client.post("/api/auth/login", json=payload, headers={"X-User-Id": "2"}).status_code == 429


def test_client_identifier_uses_session_user(app):
    with app.test_request_context("/", headers={"X-User-Id": "99"}, environ_base={"REMOTE_ADDR": "10.0.0.7"}):
        assert client_identifier() == "ip:10.0.0.7"
        session["user_id"] = 5
        assert client_identifier() == "user:5"
