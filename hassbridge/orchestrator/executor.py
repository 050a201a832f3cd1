"""Repeatable executor: run one fallible async operation on a schedule.

The executor alternates between two delay policies:

* after a **success**, the next delay comes from the *repeat* policy and the
  backoff policy is reset, so the next failure run starts from its initial
  delay again;
* after a **failure**, the next delay comes from the *backoff* policy and the
  repeat policy is reset.

Whichever branch fired last decides the next sleep.  The operation never runs
again before that full delay has elapsed; the first call runs immediately.

Failures are never retried internally nor swallowed: each one is raised to
the caller as :class:`~hassbridge.core.exceptions.ExecutionFailure`, carrying
the delay chosen for the next attempt.  The caller decides whether to keep
calling :meth:`RepeatableExecutor.next` or to abandon the schedule.

Typical usage::

    executor = RepeatableExecutor(
        lambda: provider.status(stove_id),
        repeat_policy=FixedInterval.between(9.0, 11.0),
        backoff_policy=ExponentialBackoff(0.1, 3600.0),
    )
    while True:
        try:
            status = await executor.next()
        except ExecutionFailure as failure:
            logger.warning("Stove poll failed, %s", failure)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from hassbridge.core.exceptions import ExecutionFailure
from hassbridge.orchestrator.policy import ExponentialBackoff, FixedInterval, RepeatPolicy

__all__ = ["RepeatableExecutor", "Sleeper"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

#: Coroutine function used to wait; :func:`asyncio.sleep` unless overridden.
Sleeper = Callable[[float], Awaitable[None]]


class RepeatableExecutor(Generic[T]):
    """Drive *operation* forever with repeat and backoff policies.

    Args:
        operation: Zero-argument coroutine function performing one attempt.
        repeat_policy: Delay source after a success.  Defaults to no delay.
        backoff_policy: Delay source after a failure.  Defaults to
            :class:`ExponentialBackoff` with its default bounds.
        sleep: Coroutine function used to wait.  Override in tests to record
            requested delays without actually sleeping.
    """

    def __init__(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        repeat_policy: RepeatPolicy | None = None,
        backoff_policy: RepeatPolicy | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._operation = operation
        self.repeat_policy = repeat_policy or FixedInterval.every(0.0)
        self.backoff_policy = backoff_policy or ExponentialBackoff()
        self._sleep = sleep
        self.next_interval = 0.0

    async def next(self) -> T:
        """Sleep the pending delay, then run the operation once.

        Returns:
            The operation's result.

        Raises:
            ExecutionFailure: When the operation raised; chained from that
                error and carrying the delay before the next attempt.
        """
        await self._sleep(self.next_interval)
        try:
            result = await self._operation()
        except Exception as exc:
            self.next_interval = self.backoff_policy.next()
            self.repeat_policy.reset()
            raise ExecutionFailure(exc, self.next_interval) from exc

        self.next_interval = self.repeat_policy.next()
        self.backoff_policy.reset()
        return result

    def describe(self) -> str:
        """Log-friendly summary of both policies."""
        return f"repeat {self.repeat_policy.display()}, on failure {self.backoff_policy.display()}"
