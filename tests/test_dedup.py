# tests/test_dedup.py

from __future__ import annotations

import asyncio

import pytest

from taskpix.generation.dedup import InFlightRegistry


@pytest.mark.asyncio
async def test_concurrent_calls_for_same_target_share_one_run() -> None:
    registry = InFlightRegistry()
    gate = asyncio.Event()
    runs = 0

    async def work() -> str:
        nonlocal runs
        runs += 1
        await gate.wait()
        return "image"

    first = asyncio.create_task(registry.run_exclusive(7, work))
    second = asyncio.create_task(registry.run_exclusive(7, work))
    await asyncio.sleep(0)
    assert registry.is_in_flight(7)

    gate.set()
    assert await asyncio.gather(first, second) == ["image", "image"]
    assert runs == 1
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_entry_is_removed_after_failure() -> None:
    registry = InFlightRegistry()

    async def boom() -> str:
        raise RuntimeError("failed")

    with pytest.raises(RuntimeError):
        await registry.run_exclusive(3, boom)
    assert len(registry) == 0

    async def ok() -> str:
        return "second"

    assert await registry.run_exclusive(3, ok) == "second"


@pytest.mark.asyncio
async def test_none_target_bypasses_registry() -> None:
    registry = InFlightRegistry()
    runs = 0

    async def work() -> int:
        nonlocal runs
        runs += 1
        return runs

    results = await asyncio.gather(registry.run_exclusive(None, work), registry.run_exclusive(None, work))
    assert sorted(results) == [1, 2]
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_cancelling_one_caller_keeps_shared_run_alive() -> None:
    registry = InFlightRegistry()
    gate = asyncio.Event()

    async def work() -> str:
        await gate.wait()
        return "done"

    first = asyncio.create_task(registry.run_exclusive(1, work))
    second = asyncio.create_task(registry.run_exclusive(1, work))
    await asyncio.sleep(0)

    first.cancel()
    await asyncio.sleep(0)
    gate.set()

    assert await second == "done"
    assert first.cancelled()


@pytest.mark.asyncio
async def test_stale_entries_are_swept() -> None:
    now = [0.0]
    registry = InFlightRegistry(ttl_seconds=300, clock=lambda: now[0])
    gate = asyncio.Event()
    runs = 0

    async def hang() -> str:
        nonlocal runs
        runs += 1
        await gate.wait()
        return f"run{runs}"

    stuck = asyncio.create_task(registry.run_exclusive(5, hang))
    await asyncio.sleep(0)

    now[0] = 301.0
    fresh = asyncio.create_task(registry.run_exclusive(5, hang))
    for _ in range(3):
        await asyncio.sleep(0)
    assert runs == 2

    gate.set()
    await asyncio.gather(stuck, fresh)
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_entry_records_its_target() -> None:
    registry = InFlightRegistry()
    gate = asyncio.Event()

    async def work() -> str:
        await gate.wait()
        return "image"

    task = asyncio.create_task(registry.run_exclusive(11, work))
    await asyncio.sleep(0)
    entry = registry._entries[11]
    assert entry.target_id == 11
    assert not entry.task.done()

    gate.set()
    assert await task == "image"
    assert 11 not in registry._entries
