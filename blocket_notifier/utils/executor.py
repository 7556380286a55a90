"""Blocket Notifier — Bounded Concurrency Executor.

Runs independent async tasks in fixed-size waves. Every wave settles
completely (success or failure for each member) before the next one
starts, which caps the number of in-flight requests at the wave size.

Results come back in input order as Outcome values; a failing task
never aborts its siblings.

Usage:
    outcomes = await run_in_waves([lambda: fetch(u) for u in urls], 50)
    pages = [o.value for o in outcomes if o.ok]
"""

from __future__ import annotations

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, Sequence, TypeVar

from blocket_notifier.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Task = Callable[[], Awaitable[T]]


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """The settled result of one task: a value or the captured error.

    Attributes:
        value: The task's return value (None when it failed).
        error: The exception the task raised, or None on success.
    """

    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        """Whether the task completed without raising."""
        return self.error is None


def _effective_wave_size(wave_size: Any, total: int) -> int:
    """Clamp a requested wave size to something usable.

    Anything that is not a positive finite number means one wave.
    """
    if wave_size is None or isinstance(wave_size, bool):
        return total
    try:
        size = float(wave_size)
    except (TypeError, ValueError):
        return total
    if math.isnan(size) or math.isinf(size) or size < 1:
        return total
    return min(int(size), total)


async def _run_wave(tasks: Sequence[Task[T]]) -> list[Outcome[T]]:
    """Start every task of one wave together and wait for all to settle."""
    awaitables = []
    for task in tasks:
        try:
            awaitables.append(task())
        except Exception as e:
            # The callable itself blew up before producing an awaitable
            awaitables.append(_raise(e))

    results = await asyncio.gather(*awaitables, return_exceptions=True)

    outcomes: list[Outcome[T]] = []
    for result in results:
        if isinstance(result, BaseException):
            if not isinstance(result, (Exception, asyncio.CancelledError)):
                raise result
            outcomes.append(Outcome(error=result))
        else:
            outcomes.append(Outcome(value=result))
    return outcomes


async def _raise(error: BaseException) -> Any:
    raise error


async def run_in_waves(
    tasks: Sequence[Task[T]],
    wave_size: int | float | None,
    label: str = "tasks",
) -> list[Outcome[T]]:
    """Execute tasks in waves of at most ``wave_size``.

    Args:
        tasks: Zero-argument callables, each returning an awaitable.
        wave_size: Maximum concurrently running tasks. None, a
            non-positive or a non-finite value runs everything as one wave.
        label: Name used in progress logs.

    Returns:
        One Outcome per task, in the same order as ``tasks``.
    """
    total = len(tasks)
    if total == 0:
        return []

    size = _effective_wave_size(wave_size, total)
    outcomes: list[Outcome[T]] = []
    start = time.monotonic()

    for offset in range(0, total, size):
        wave = tasks[offset:offset + size]
        outcomes.extend(await _run_wave(wave))
        logger.debug(
            "%s: wave %d done (%d/%d settled)",
            label, offset // size + 1, len(outcomes), total,
        )

    failed = sum(1 for o in outcomes if not o.ok)
    logger.info(
        "%s: %d settled in %.1fs (%d failed)",
        label.capitalize(), total, time.monotonic() - start, failed,
    )
    return outcomes
