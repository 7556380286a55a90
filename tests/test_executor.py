"""Tests for the wave executor: ordering, gating, and failure capture."""

from __future__ import annotations

import asyncio
import math

import pytest

from blocket_notifier.utils.executor import Outcome, run_in_waves


class ConcurrencyTracker:
    """Records how many tasks run at once and the order events happen."""

    def __init__(self) -> None:
        self.running = 0
        self.peak = 0
        self.events: list[tuple[str, int]] = []

    def task(self, idx: int, delay: float = 0.0, fail: bool = False):
        async def _run():
            self.running += 1
            self.peak = max(self.peak, self.running)
            self.events.append(("start", idx))
            await asyncio.sleep(delay)
            self.running -= 1
            self.events.append(("end", idx))
            if fail:
                raise ValueError(f"task {idx} failed")
            return idx * 10

        return _run


async def test_empty_input_returns_empty_list():
    assert await run_in_waves([], 5) == []


async def test_results_keep_input_order_despite_finish_order():
    tracker = ConcurrencyTracker()
    delays = [0.03, 0.0, 0.02, 0.01]
    tasks = [tracker.task(i, d) for i, d in enumerate(delays)]

    outcomes = await run_in_waves(tasks, 10)

    assert [o.value for o in outcomes] == [0, 10, 20, 30]
    assert all(o.ok for o in outcomes)


async def test_waves_cap_concurrency_and_gate_each_other():
    tracker = ConcurrencyTracker()
    tasks = [tracker.task(i, 0.01 * (i % 2)) for i in range(5)]

    await run_in_waves(tasks, 2)

    assert tracker.peak == 2
    # Each wave fully ends before the next one starts
    for first, second in [((0, 1), 2), ((2, 3), 4)]:
        last_end = max(tracker.events.index(("end", i)) for i in first)
        assert tracker.events.index(("start", second)) > last_end


async def test_failure_is_captured_without_aborting_siblings():
    tracker = ConcurrencyTracker()
    tasks = [tracker.task(0), tracker.task(1, fail=True), tracker.task(2)]

    outcomes = await run_in_waves(tasks, 3)

    assert [o.ok for o in outcomes] == [True, False, True]
    assert isinstance(outcomes[1].error, ValueError)
    assert outcomes[0].value == 0 and outcomes[2].value == 20


async def test_failure_in_early_wave_does_not_stop_later_waves():
    tracker = ConcurrencyTracker()
    tasks = [tracker.task(0, fail=True), tracker.task(1), tracker.task(2)]

    outcomes = await run_in_waves(tasks, 1)

    assert [o.ok for o in outcomes] == [False, True, True]


async def test_callable_raising_before_awaiting_is_captured():
    def broken():
        raise RuntimeError("no coroutine for you")

    async def fine():
        return "ok"

    outcomes = await run_in_waves([broken, fine], 2)

    assert isinstance(outcomes[0].error, RuntimeError)
    assert outcomes[1].value == "ok"


@pytest.mark.parametrize("wave_size", [None, 0, -3, math.inf, math.nan, 100])
async def test_degenerate_wave_sizes_run_a_single_wave(wave_size):
    tracker = ConcurrencyTracker()
    tasks = [tracker.task(i, 0.01) for i in range(4)]

    outcomes = await run_in_waves(tasks, wave_size)

    assert tracker.peak == 4
    assert len(outcomes) == 4


def test_outcome_ok_tracks_error():
    assert Outcome(value=3).ok
    assert Outcome(value=None).ok
    assert not Outcome(error=KeyError("x")).ok
