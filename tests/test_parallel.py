from __future__ import annotations

import asyncio

import pytest

from cvscan.errors import FanOutError
from cvscan.parallel import par_map, par_map_do, par_map_range


def test_par_map_range_keeps_input_order_regardless_of_completion_order() -> None:
    async def square(i: int) -> int:
        # Later indices finish first.
        await asyncio.sleep(0.001 * (10 - i))
        return i * i

    assert asyncio.run(par_map_range(10, square)) == [0, 1, 4, 9, 16, 25, 36, 49, 64, 81]


def test_par_map_joins_every_failure_and_returns_no_partial_results() -> None:
    finished = []

    async def work(i: int) -> int:
        await asyncio.sleep(0.001)
        if i == 2:
            raise ValueError("bad input two")
        if i == 5:
            raise KeyError("missing five")
        finished.append(i)
        return i

    with pytest.raises(FanOutError) as exc_info:
        asyncio.run(par_map(range(10), work))

    err = exc_info.value
    assert set(err.errors) == {2, 5}
    assert isinstance(err.errors[2], ValueError)
    assert isinstance(err.errors[5], KeyError)
    assert "bad input two" in str(err)
    assert "missing five" in str(err)
    assert len(err.exceptions) == 2
    # Siblings of the failing tasks still ran to completion.
    assert sorted(finished) == [0, 1, 3, 4, 6, 7, 8, 9]


def test_par_map_on_empty_input_calls_nothing() -> None:
    calls = []

    async def work(i):
        calls.append(i)
        return i

    assert asyncio.run(par_map([], work)) == []
    assert asyncio.run(par_map_range(0, work)) == []
    assert calls == []


def test_par_map_runs_tasks_concurrently() -> None:
    running = 0
    peak = 0

    async def work(i):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1

    asyncio.run(par_map_do(range(5), work))
    assert peak == 5


def test_par_map_do_raises_fan_out_error() -> None:
    async def work(name: str):
        if name == "b":
            raise RuntimeError("view b failed")

    with pytest.raises(FanOutError, match="view b failed"):
        asyncio.run(par_map_do(["a", "b", "c"], work))
