"""Tests for the Idle/Running cycle guard."""

import asyncio

from fieldpoller.services.polling.guard import CycleGuard, CycleState


def test_runs_new_bucket():
    guard = CycleGuard()
    seen = []

    async def cycle(bucket):
        seen.append(bucket)

    assert asyncio.run(guard.run("14:30", cycle)) is True
    assert seen == ["14:30"]
    assert guard.state.last_bucket == "14:30"
    assert not guard.is_running


def test_same_bucket_runs_once():
    guard = CycleGuard()
    calls = []

    async def cycle(bucket):
        calls.append(bucket)

    async def go():
        first = await guard.run("14:30", cycle)
        second = await guard.run("14:30", cycle)
        third = await guard.run("14:31", cycle)
        return first, second, third

    assert asyncio.run(go()) == (True, False, True)
    assert calls == ["14:30", "14:31"]
    assert guard.skipped_duplicate == 1


def test_overlapping_tick_is_dropped():
    guard = CycleGuard()
    calls = []

    async def go():
        gate = asyncio.Event()

        async def slow(bucket):
            calls.append(bucket)
            await gate.wait()

        first = asyncio.create_task(guard.run("14:30", slow))
        await asyncio.sleep(0)
        assert guard.is_running

        rejected = await guard.run("14:31", slow)
        gate.set()
        return await first, rejected

    first, rejected = asyncio.run(go())

    assert first is True
    assert rejected is False
    assert calls == ["14:30"]
    assert guard.skipped_overlap == 1
    # Dropped tick is not queued and does not claim its bucket
    assert guard.state.last_bucket == "14:30"


def test_returns_to_idle_after_exception():
    guard = CycleGuard()

    async def broken(bucket):
        raise RuntimeError("sink exploded")

    async def ok(bucket):
        pass

    async def go():
        first = await guard.run("14:30", broken)
        second = await guard.run("14:31", ok)
        return first, second

    assert asyncio.run(go()) == (True, True)
    assert not guard.is_running


def test_failed_cycle_still_claims_bucket():
    guard = CycleGuard()

    async def broken(bucket):
        raise RuntimeError("boom")

    async def go():
        await guard.run("14:30", broken)
        return await guard.run("14:30", broken)

    assert asyncio.run(go()) is False


def test_injected_state_is_shared():
    state = CycleState()
    first = CycleGuard(state)
    second = CycleGuard(state)

    async def cycle(bucket):
        pass

    async def go():
        await first.run("14:30", cycle)
        return await second.run("14:30", cycle)

    assert asyncio.run(go()) is False
    assert state.last_bucket == "14:30"


def test_stats():
    guard = CycleGuard()

    async def cycle(bucket):
        pass

    asyncio.run(guard.run("14:30", cycle))
    stats = guard.get_stats()

    assert stats["state"] == "idle"
    assert stats["last_bucket"] == "14:30"
    assert stats["cycles_started"] == 1
