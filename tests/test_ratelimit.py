from __future__ import annotations

import types

import pytest

from conftest import FakeMonotonic
from hostnotify.ratelimit import FixedWindowRateLimiter, RateLimiters


def test_fixed_window_denies_after_limit_and_resets_after_window():
    clock = FakeMonotonic()
    limiter = FixedWindowRateLimiter(limit=3, window=60, clock=clock)

    results = [limiter.allow("k") for _ in range(4)]
    assert results == [True, True, True, False]

    clock.advance(61)
    assert limiter.allow("k") is True


def test_denied_key_stays_denied_until_window_passes():
    clock = FakeMonotonic()
    limiter = FixedWindowRateLimiter(limit=1, window=60, clock=clock)
    assert limiter.allow("ip") is True
    for _ in range(10):
        assert limiter.allow("ip") is False
    clock.advance(60)
    # The window resets only once ``now`` is strictly past reset_at.
    assert limiter.allow("ip") is False
    clock.advance(0.001)
    assert limiter.allow("ip") is True


def test_keys_are_independent():
    limiter = FixedWindowRateLimiter(limit=1, window=60, clock=FakeMonotonic())
    assert limiter.allow("a") is True
    assert limiter.allow("b") is True
    assert limiter.allow("a") is False


def test_prune_drops_expired_counters():
    clock = FakeMonotonic()
    limiter = FixedWindowRateLimiter(limit=5, window=10, clock=clock)
    limiter.allow("old")
    clock.advance(5)
    limiter.allow("fresh")
    clock.advance(6)
    assert limiter.prune() == 1
    assert len(limiter) == 1


def test_max_keys_evicts_expired_entries_on_insert():
    clock = FakeMonotonic()
    limiter = FixedWindowRateLimiter(limit=10, window=300, max_keys=3, clock=clock)
    for key in ("e1", "e2", "e3"):
        limiter.allow(key)
    clock.advance(301)
    limiter.allow("e4")
    assert len(limiter) == 1


def test_per_call_limit_overrides_constructor_defaults():
    limiter = FixedWindowRateLimiter(limit=1, window=60, clock=FakeMonotonic())
    assert limiter.allow("k", 2, 60) is True
    assert limiter.allow("k", 2, 60) is True
    assert limiter.allow("k", 2, 60) is False


@pytest.mark.parametrize("limit, window", [(0, 60), (5, 0), (5, -1)])
def test_invalid_limits_are_rejected_at_construction(limit, window):
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(limit=limit, window=window)


def test_limit_and_window_are_required():
    with pytest.raises(TypeError):
        FixedWindowRateLimiter()


def test_rate_limiters_from_settings_uses_configured_limits():
    settings = types.SimpleNamespace(
        ip_rate_limit=30,
        reservation_rate_limit=5,
        rate_limit_window_seconds=60,
        event_rate_limit=10,
        event_rate_window_seconds=300,
        event_rate_max_keys=200,
    )
    limiters = RateLimiters.from_settings(settings, clock=FakeMonotonic())
    assert (limiters.per_ip.limit, limiters.per_ip.window) == (30, 60)
    assert (limiters.per_reservation.limit, limiters.per_reservation.window) == (5, 60)
    assert limiters.per_event.limit == 10
    assert limiters.per_event.window == 300
    assert limiters.per_event.max_keys == 200

    for _ in range(5):
        assert limiters.per_reservation.allow("r") is True
    assert limiters.per_reservation.allow("r") is False
    assert limiters.prune() == 0
