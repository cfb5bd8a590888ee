"""
Fan-out / full-join helpers.

Every helper starts all tasks at once, waits for every one of them and only
then decides the outcome: either the full, input-ordered result list or a
FanOutError carrying every individual failure. A failing task never cancels
its siblings.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterable, TypeVar

from .errors import FanOutError

T = TypeVar("T")
U = TypeVar("U")


async def par_map(inputs: Iterable[T], fn: Callable[[T], Awaitable[U]]) -> list[U]:
    items = list(inputs)
    if not items:
        return []
    outcomes = await asyncio.gather(*(fn(item) for item in items), return_exceptions=True)

    errors: dict[int, BaseException] = {}
    for i, outcome in enumerate(outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            errors[i] = outcome
    if errors:
        raise FanOutError(errors)
    return list(outcomes)


async def par_map_range(up_to: int, fn: Callable[[int], Awaitable[U]]) -> list[U]:
    return await par_map(range(up_to), fn)


async def par_map_do(inputs: Iterable[T], fn: Callable[[T], Awaitable[object]]) -> None:
    await par_map(inputs, fn)
