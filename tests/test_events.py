"""Tests for event emitter and rate-limit notifier."""
import pytest

from filevault.models import RateLimitAdvisory
from filevault.utils.events import EventEmitter, RateLimitNotifier


@pytest.mark.asyncio
async def test_emit_calls_sync_and_async_listeners():
    events = EventEmitter()
    seen = []

    async def async_listener(value):
        seen.append(("async", value))

    events.on("done", lambda value: seen.append(("sync", value)))
    events.on("done", async_listener)

    await events.emit("done", 1)

    assert seen == [("sync", 1), ("async", 1)]


@pytest.mark.asyncio
async def test_listener_error_is_contained():
    events = EventEmitter()
    seen = []

    def broken(value):
        raise RuntimeError("boom")

    events.on("done", broken)
    events.on("done", seen.append)

    await events.emit("done", 1)

    assert seen == [1]


@pytest.mark.asyncio
async def test_off_and_emit_nowait():
    events = EventEmitter()
    seen = []
    events.on("tick", seen.append)

    events.emit_nowait("tick", 1)
    events.emit_nowait("tick", 2)
    await events.drain()
    events.off("tick", seen.append)
    events.emit_nowait("tick", 3)
    await events.drain()

    assert seen == [1, 2]


@pytest.mark.asyncio
async def test_notifier_keeps_latest_until_dismissed():
    notifier = RateLimitNotifier()
    received = []
    notifier.on_advisory(received.append)
    advisory = RateLimitAdvisory(retry_after=5)

    await notifier.notify(advisory)

    assert received == [advisory]
    assert notifier.latest is advisory
    notifier.dismiss()
    assert notifier.latest is None
