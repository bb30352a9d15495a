"""Fixtures shared by unit and integration tests."""

from __future__ import annotations

import typing as t

import pytest

from astro_cache.cache.bounded_cache import BoundedExpiringCache, CacheConfig


class FakeClock:
    """Manually advanced clock for TTL and rate-limit windows."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def sample_chart(sun_longitude: float = 10.0, moon_longitude: float = 100.0) -> t.Dict[str, t.Any]:
    """Minimal chart in the engine's output shape."""
    return {
        "planets": {
            "sun": {"name": "Sun", "signName": "Aries", "position": {"longitude": sun_longitude}, "retrograde": False},
            "moon": {"name": "Moon", "signName": "Cancer", "position": {"longitude": moon_longitude}},
        },
        "houses": [
            {"sign": 1, "position": {"longitude": 5.25}},
            {"sign": 2, "position": {"longitude": 35.5}},
        ],
        "axes": {"asc": {"sign": 5}},
        "aspects": {
            "sun": [
                {"name": "square", "second": {"name": "moon", "exist": True}},
                {"name": "trine", "second": {"name": "pluto", "exist": False}},
            ]
        },
    }


class FakeEngine:
    """Deterministic chart engine recording every computation."""

    def __init__(self, zone: str = "Europe/Istanbul") -> None:
        self.zone = zone
        self.calls: t.List[t.Any] = []
        self.fail_with: t.Optional[Exception] = None

    def compute_chart(self, birth):
        self.calls.append(birth)
        if self.fail_with is not None:
            raise self.fail_with
        return sample_chart(sun_longitude=float(birth.day), moon_longitude=float(birth.month * 10))

    def timezone_at(self, latitude: float, longitude: float) -> str:
        return self.zone


@pytest.fixture
def clock():
    """Fresh fake clock starting at t=1000."""
    return FakeClock()


@pytest.fixture
def cache(clock):
    """Small cache (3 entries, 60s TTL) driven by the fake clock."""
    return BoundedExpiringCache(CacheConfig(default_ttl_seconds=60, max_size=3), clock=clock)


@pytest.fixture
def fake_engine():
    """Deterministic chart engine."""
    return FakeEngine()


@pytest.fixture
def chart():
    """Sample natal chart."""
    return sample_chart()


@pytest.fixture
def birth_payload():
    """Body accepted by /api/calculate."""
    return {
        "date": "1990-05-15",
        "time": "14:30",
        "location": {
            "formatted": "Istanbul, Turkey",
            "geometry": {"lat": 41.0082, "lng": 28.9784},
            "annotations": {"timezone": {"name": "Europe/Istanbul"}},
        },
    }
