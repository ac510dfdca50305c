from __future__ import annotations

import asyncio

import pytest

from memebot.single_flight import SingleFlight


@pytest.mark.anyio
async def test_concurrent_calls_share_one_execution() -> None:
    flight = SingleFlight()
    gate = asyncio.Event()
    calls = 0

    async def work() -> str:
        nonlocal calls
        calls += 1
        await gate.wait()
        return "done"

    tasks = [asyncio.create_task(flight.run("k", work)) for _ in range(3)]
    await asyncio.sleep(0)
    assert flight.in_flight("k")
    gate.set()
    results = await asyncio.gather(*tasks)

    assert calls == 1
    assert sorted(owner for _, owner in results) == [False, False, True]
    assert all(value == "done" for value, _ in results)
    assert not flight.in_flight("k")


@pytest.mark.anyio
async def test_different_keys_run_independently() -> None:
    flight = SingleFlight()
    calls: list[str] = []

    async def work(name: str) -> str:
        calls.append(name)
        return name

    assert await flight.do("a", lambda: work("a")) == "a"
    assert await flight.do("b", lambda: work("b")) == "b"
    assert calls == ["a", "b"]


@pytest.mark.anyio
async def test_failure_reaches_waiters_and_releases_key() -> None:
    flight = SingleFlight()
    gate = asyncio.Event()

    async def broken() -> str:
        await gate.wait()
        raise ValueError("upstream")

    tasks = [asyncio.create_task(flight.do("k", broken)) for _ in range(2)]
    await asyncio.sleep(0)
    gate.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)

    assert all(isinstance(result, ValueError) for result in results)
    assert not flight.in_flight("k")

    async def fine() -> str:
        return "ok"

    assert await flight.do("k", fine) == "ok"


@pytest.mark.anyio
async def test_cancelled_owner_does_not_cancel_joined_callers() -> None:
    flight = SingleFlight()
    gate = asyncio.Event()
    calls = 0

    async def work() -> str:
        nonlocal calls
        calls += 1
        await gate.wait()
        return "catalog"

    owner = asyncio.create_task(flight.do("k", work))
    await asyncio.sleep(0)
    waiter = asyncio.create_task(flight.do("k", work))
    await asyncio.sleep(0)

    owner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await owner
    assert flight.in_flight("k")

    gate.set()
    assert await waiter == "catalog"
    assert calls == 1
    assert not flight.in_flight("k")


@pytest.mark.anyio
async def test_cancelled_waiter_leaves_owner_running() -> None:
    flight = SingleFlight()
    gate = asyncio.Event()

    async def work() -> int:
        await gate.wait()
        return 42

    owner = asyncio.create_task(flight.run("k", work))
    await asyncio.sleep(0)
    waiter = asyncio.create_task(flight.run("k", work))
    await asyncio.sleep(0)

    waiter.cancel()
    gate.set()

    assert await owner == (42, True)
    with pytest.raises(asyncio.CancelledError):
        await waiter
