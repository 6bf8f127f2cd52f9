"""Test monitoring frequencies and per-source timers."""

import asyncio

import pytest

from api_sentinel.pipeline import MonitorRegistry, interval_for


@pytest.mark.parametrize("frequency, expected", [
    ("hourly", 3600.0),
    ("daily", 86400.0),
    ("weekly", 604800.0),
    (None, 86400.0),
    (30, 30.0),
    ("0.5", 0.5),
])
def test_interval_for(frequency, expected):
    assert interval_for(frequency) == expected


@pytest.mark.parametrize("frequency", ["monthly", 0, -5, "-1", True])
def test_invalid_frequencies(frequency):
    with pytest.raises(ValueError):
        interval_for(frequency)


async def _wait_for(predicate, attempts=200):
    for _ in range(attempts):
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return False


@pytest.mark.asyncio
async def test_rescheduling_replaces_existing_timer():
    """At most one timer per source: the old callback stops firing."""
    registry = MonitorRegistry()
    fired = {"old": 0, "new": 0}

    async def old():
        fired["old"] += 1

    async def new():
        fired["new"] += 1

    registry.schedule("spec-1", 0.01, old)
    assert await _wait_for(lambda: fired["old"] >= 1)

    registry.schedule("spec-1", 0.01, new)
    old_count = fired["old"]
    assert await _wait_for(lambda: fired["new"] >= 3)

    assert fired["old"] == old_count
    assert registry.active_sources() == ["spec-1"]
    assert registry.cancel_all() == 1


@pytest.mark.asyncio
async def test_cancel_stops_timer():
    registry = MonitorRegistry()
    calls = []

    async def callback():
        calls.append(1)

    registry.schedule("spec-1", 0.01, callback)
    registry.schedule("spec-2", "hourly", callback)
    assert registry.active_sources() == ["spec-1", "spec-2"]

    assert registry.cancel("spec-1") is True
    assert registry.cancel("spec-1") is False
    count = len(calls)
    await asyncio.sleep(0.05)

    assert len(calls) == count
    assert registry.active_sources() == ["spec-2"]
    registry.cancel_all()
    assert registry.active_sources() == []


@pytest.mark.asyncio
async def test_failing_callback_keeps_timer_alive(caplog):
    registry = MonitorRegistry()
    calls = []

    async def callback():
        calls.append(1)
        raise RuntimeError("fetch failed")

    registry.schedule("spec-1", 0.01, callback)
    try:
        assert await _wait_for(lambda: len(calls) >= 2)
    finally:
        registry.cancel_all()

    assert "Monitoring callback failed for source spec-1" in caplog.text


@pytest.mark.asyncio
async def test_invalid_frequency_keeps_existing_timer():
    registry = MonitorRegistry()

    async def callback():
        return None

    registry.schedule("spec-1", "hourly", callback)
    with pytest.raises(ValueError):
        registry.schedule("spec-1", "fortnightly", callback)

    assert registry.active_sources() == ["spec-1"]
    registry.cancel_all()
