import asyncio
import time

from partsync.dispatcher import ActionDispatcher
from partsync.models import Part


def _parts(*ids):
    return [Part(id=i, name=i) for i in ids]


def test_batch_writes_in_order_with_spacing_between_items():
    events = []

    async def fake_sleep(delay):
        events.append(("sleep", delay))

    async def write(part):
        events.append(("write", part.id))
        return True

    dispatcher = ActionDispatcher(item_delay=0.6, sleep=fake_sleep)
    result = asyncio.run(dispatcher.dispatch_batch(_parts("1", "2", "3"), write))

    assert events == [
        ("write", "1"), ("sleep", 0.6),
        ("write", "2"), ("sleep", 0.6),
        ("write", "3"),
    ]
    assert result.attempted == ["1", "2", "3"]
    assert result.succeeded == ["1", "2", "3"]
    assert result.ok


def test_batch_spacing_is_measurable_in_real_time():
    stamps = []

    async def write(part):
        stamps.append(time.monotonic())
        return True

    delay = 0.05
    dispatcher = ActionDispatcher(item_delay=delay)
    asyncio.run(dispatcher.dispatch_batch(_parts("a", "b", "c"), write))

    assert len(stamps) == 3
    # small tolerance for event-loop timer granularity
    assert stamps[1] - stamps[0] >= delay * 0.9
    assert stamps[2] - stamps[1] >= delay * 0.9


def test_next_write_starts_after_previous_settles():
    active = []
    overlaps = []

    async def write(part):
        if active:
            overlaps.append(part.id)
        active.append(part.id)
        await asyncio.sleep(0.01)
        active.remove(part.id)
        return True

    dispatcher = ActionDispatcher(item_delay=0)
    asyncio.run(dispatcher.dispatch_batch(_parts("a", "b", "c", "d"), write))
    assert overlaps == []


def test_failures_do_not_stop_the_batch_and_are_not_retried():
    calls = []

    async def write(part):
        calls.append(part.id)
        if part.id == "3":
            raise ConnectionError("network down")
        return part.id != "2"

    dispatcher = ActionDispatcher(item_delay=0)
    result = asyncio.run(dispatcher.dispatch_batch(_parts("1", "2", "3", "4", "5"), write))

    assert calls == ["1", "2", "3", "4", "5"]
    assert result.succeeded == ["1", "4", "5"]
    assert result.failed == ["2", "3"]
    assert not result.ok


def test_empty_batch_does_nothing():
    sleeps = []

    async def fake_sleep(delay):
        sleeps.append(delay)

    async def write(part):
        raise AssertionError("should not write")

    dispatcher = ActionDispatcher(item_delay=1, sleep=fake_sleep)
    result = asyncio.run(dispatcher.dispatch_batch([], write))
    assert result.attempted == []
    assert sleeps == []


def test_dispatch_one_swallows_errors():
    async def write(part):
        raise TimeoutError("slow")

    dispatcher = ActionDispatcher()
    assert asyncio.run(dispatcher.dispatch_one(Part(id="x", name="x"), write)) is False
