"""Unit tests for RepeatableExecutor.

A recording sleeper stands in for asyncio.sleep so the schedule can be
inspected without waiting.
"""

from __future__ import annotations

import pytest

from hassbridge.core.exceptions import ExecutionFailure, ProviderFetchError
from hassbridge.orchestrator.executor import RepeatableExecutor
from hassbridge.orchestrator.policy import ExponentialBackoff, FixedInterval


class RecordingSleeper:
    """Async sleeper that records each requested delay and returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ScriptedOperation:
    """Fails on the call numbers listed in *failing*, succeeds otherwise."""

    def __init__(self, failing: set[int]) -> None:
        self.failing = failing
        self.calls = 0

    async def __call__(self) -> int:
        call = self.calls
        self.calls += 1
        if call in self.failing:
            raise ProviderFetchError("rika", f"call {call} failed")
        return call


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


async def test_alternates_between_repeat_and_backoff_delays() -> None:
    failing = set(range(10, 20)) | set(range(30, 70))
    operation = ScriptedOperation(failing)
    sleeper = RecordingSleeper()
    executor = RepeatableExecutor(
        operation,
        repeat_policy=FixedInterval.between(9.0, 11.0),
        backoff_policy=ExponentialBackoff(0.1, 3600.0),
        sleep=sleeper,
    )

    outcomes: list[bool] = []
    for _ in range(100):
        try:
            await executor.next()
            outcomes.append(True)
        except ExecutionFailure:
            outcomes.append(False)

    assert outcomes == [call not in failing for call in range(100)]
    delays = sleeper.delays
    assert len(delays) == 100
    assert delays[0] == 0.0

    # The delay before call n was chosen by the outcome of call n - 1.
    for call in range(1, 100):
        if outcomes[call - 1]:
            assert 9.0 <= delays[call] <= 11.0, call

    first_run = delays[11:21]
    assert first_run[0] == pytest.approx(0.1)
    assert all(a < b for a, b in zip(first_run, first_run[1:]))

    second_run = delays[31:71]
    assert second_run[0] == pytest.approx(0.1)
    assert second_run[-1] == 3600.0
    plateau_start = second_run.index(3600.0)
    growth = second_run[: plateau_start + 1]
    assert all(a < b for a, b in zip(growth, growth[1:]))
    assert all(d == 3600.0 for d in second_run[plateau_start:])

    # Back to the repeat cadence right after the next success.
    assert 9.0 <= delays[71] <= 11.0


async def test_first_call_runs_immediately() -> None:
    sleeper = RecordingSleeper()
    executor = RepeatableExecutor(
        ScriptedOperation(set()),
        repeat_policy=FixedInterval.every(10.0),
        sleep=sleeper,
    )

    assert await executor.next() == 0
    assert sleeper.delays == [0.0]
    assert executor.next_interval == 10.0


async def test_failure_carries_cause_and_next_delay() -> None:
    sleeper = RecordingSleeper()
    executor = RepeatableExecutor(
        ScriptedOperation({0}),
        backoff_policy=ExponentialBackoff(2.0, 60.0),
        sleep=sleeper,
    )

    with pytest.raises(ExecutionFailure) as excinfo:
        await executor.next()

    failure = excinfo.value
    assert isinstance(failure.error, ProviderFetchError)
    assert failure.__cause__ is failure.error
    assert failure.next_delay == 2.0
    assert "postponing next retry in 2s" in str(failure)


async def test_success_resets_backoff() -> None:
    sleeper = RecordingSleeper()
    executor = RepeatableExecutor(
        ScriptedOperation({0, 1, 3}),
        repeat_policy=FixedInterval.every(10.0),
        backoff_policy=ExponentialBackoff(1.0, 60.0),
        sleep=sleeper,
    )

    for _ in range(4):
        try:
            await executor.next()
        except ExecutionFailure:
            pass

    # call 0 fails (1s), call 1 fails (grows), call 2 succeeds (10s),
    # call 3 fails and starts over from the initial delay.
    assert executor.next_interval == 1.0
    assert sleeper.delays[2] > 1.0
    assert sleeper.delays[3] == 10.0


def test_describe_names_both_policies() -> None:
    executor = RepeatableExecutor(
        ScriptedOperation(set()),
        repeat_policy=FixedInterval.every(10.0),
        backoff_policy=ExponentialBackoff(0.1, 3600.0),
    )
    assert executor.describe() == (
        "repeat every 10s, on failure exponential backoff from 100ms up to 1h"
    )
