"""Reconnecting event stream.

Turns a fallible ``poll()`` coroutine (connect if needed, then wait for the
next event) into an infinite async iterator.  A failed poll never ends the
stream: the error is logged together with the delay drawn from the stream's
own backoff policy, the stream sleeps, and polls again.

The backoff policy is reset after every event that was produced, so a
connection that drops after running fine for hours reconnects quickly.

Typical usage::

    stream = ReconnectingStream(bridge.poll, ExponentialBackoff(0.05, 300.0), label="MQTT")
    async for message in stream:
        dispatcher.dispatch(message)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Generic, TypeVar

from hassbridge.core import events
from hassbridge.core.durations import humanize
from hassbridge.orchestrator.executor import Sleeper
from hassbridge.orchestrator.policy import RepeatPolicy

__all__ = ["ReconnectingStream"]

logger = logging.getLogger(__name__)

E = TypeVar("E")


class ReconnectingStream(Generic[E]):
    """Infinite sequence of events from a connection that may fail.

    Args:
        poll: Zero-argument coroutine function returning the next event.
        backoff_policy: Dedicated delay source between failed polls.  Must
            not be shared with any executor.
        sleep: Coroutine function used to wait between failed polls.
        label: Name of the connection in log lines.
        event: Value of the ``event`` log field on backoff lines.
        retry_on: Exception types that trigger a backoff.  Anything else
            propagates and ends the stream.
    """

    def __init__(
        self,
        poll: Callable[[], Awaitable[E]],
        backoff_policy: RepeatPolicy,
        *,
        sleep: Sleeper = asyncio.sleep,
        label: str = "connection",
        event: str = events.STREAM_BACKOFF,
        retry_on: tuple[type[Exception], ...] = (Exception,),
    ) -> None:
        self._poll = poll
        self.backoff_policy = backoff_policy
        self._sleep = sleep
        self.label = label
        self.event = event
        self._retry_on = retry_on

    def __aiter__(self) -> AsyncIterator[E]:
        return self.produce()

    async def produce(self) -> AsyncIterator[E]:
        """Yield events forever, backing off between failed polls."""
        while True:
            try:
                item = await self._poll()
            except self._retry_on as exc:
                delay = self.backoff_policy.next()
                logger.error(
                    "%s: backing off for %s: %s",
                    self.label,
                    humanize(delay),
                    exc,
                    extra={"event": self.event},
                )
                await self._sleep(delay)
                continue

            self.backoff_policy.reset()
            yield item
