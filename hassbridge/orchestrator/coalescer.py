"""Per-device command coalescer (debounce, then one read-merge-write).

Users adjusting a control in Home Assistant often emit a burst of commands
(a slider sends every intermediate value).  Writing each one to the remote
API would be slow and hammer it, so commands are queued per target key and
applied together once the key has been quiet for a grace period.

Protocol
~~~~~~~~
1. :meth:`CommandCoalescer.submit` appends the command to the key's pending
   list and (re)arms the key's grace timer, cancelling the previous one.
2. When a timer fires it compares the pending list it captured when it was
   armed with the current one.  Only if they are equal (nothing arrived in the
   meantime) does it take the whole list and flush it; otherwise the newer
   timer owns the flush.
3. A flush calls ``apply(key, commands)`` — the provider fetches the current
   remote state, applies the commands in insertion order (last write per
   attribute wins), writes it back and returns the fresh status — then hands
   that status to ``on_applied`` (the reconciliation path).

Invariants
~~~~~~~~~~
* At most one armed timer per key.
* Compare-and-take runs without an ``await`` in between, so it is atomic on
  the event loop; flushes of one key are additionally serialised by a per-key
  lock, so two flushes of the same key never overlap.  The lock can be shared
  with other flows on the key (``lock_for``).
* Once a timer has fired it is detached from the key, so a later
  :meth:`submit` never cancels a flush that is already writing.
* Keys are independent: one key's timer or flush never delays another's.

Failure semantics
~~~~~~~~~~~~~~~~~
A failing flush is logged and its commands are dropped (at-most-once).
There is no automatic retry; the next poll shows the real remote state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Generic, TypeVar

from hassbridge.core import events
from hassbridge.core.logging_config import DEVICE_ID_CTX
from hassbridge.core.models import CommandValue, PendingCommand, StoveAttribute

__all__ = ["CommandCoalescer", "merge_commands"]

logger = logging.getLogger(__name__)

S = TypeVar("S")


def merge_commands(commands: Iterable[PendingCommand]) -> dict[StoveAttribute, CommandValue]:
    """Fold *commands* in order into one value per attribute.

    Later commands for an attribute override earlier ones.
    """
    merged: dict[StoveAttribute, CommandValue] = {}
    for command in commands:
        merged[command.attribute] = command.value
    return merged


class CommandCoalescer(Generic[S]):
    """Debounce commands per target key and flush them as one remote update.

    Args:
        apply: ``apply(key, commands) -> status``: fetch-merge-write on the
            remote device, returning the status read back afterwards.
        on_applied: Called with ``(key, status)`` after a successful apply.
        grace_period: Quiet period in seconds before a key is flushed.
        lock_for: ``lock_for(key)`` returns the lock held around apply and
            on_applied.  Pass the lock other flows on that key also hold
            (e.g. :meth:`~hassbridge.orchestrator.reconcile.Reconciler.lock`);
            defaults to a private lock per key.
    """

    def __init__(
        self,
        apply: Callable[[str, list[PendingCommand]], Awaitable[S]],
        on_applied: Callable[[str, S], Awaitable[None]],
        *,
        grace_period: float = 5.0,
        lock_for: Callable[[str], asyncio.Lock] | None = None,
    ) -> None:
        self._apply = apply
        self._on_applied = on_applied
        self.grace_period = grace_period
        self._pending: dict[str, list[PendingCommand]] = {}
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_for = lock_for or self._private_lock
        self._tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(self, command: PendingCommand) -> None:
        """Queue *command* and restart its key's grace timer.

        Must be called from within the running event loop.
        """
        key = command.target_key
        pending = self._pending.setdefault(key, [])
        pending.append(command)

        previous = self._timers.pop(key, None)
        if previous is not None:
            previous.cancel()

        captured = tuple(pending)
        task = asyncio.create_task(
            self._flush_after_grace(key, captured),
            name=f"hassbridge-flush-{key}",
        )
        self._timers[key] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.debug(
            "Queued %s=%r for %s (%d pending).",
            command.attribute,
            command.value,
            key,
            len(pending),
            extra={"event": events.COMMAND_QUEUED},
        )

    def pending(self, key: str) -> list[PendingCommand]:
        """Return a copy of the commands waiting for *key*."""
        return list(self._pending.get(key, ()))

    async def aclose(self) -> None:
        """Cancel armed timers and in-flight flushes, dropping pending commands."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self._pending:
            logger.info(
                "Dropping pending commands for %d device(s) on shutdown.",
                len(self._pending),
            )
        self._pending.clear()
        self._timers.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _private_lock(self, key: str) -> asyncio.Lock:
        return self._locks.setdefault(key, asyncio.Lock())

    async def _flush_after_grace(self, key: str, captured: tuple[PendingCommand, ...]) -> None:
        await asyncio.sleep(self.grace_period)

        # Fired: detach from the key so a new submit cannot cancel the flush.
        if self._timers.get(key) is asyncio.current_task():
            del self._timers[key]

        if tuple(self._pending.get(key, ())) != captured:
            logger.debug("Newer command for %s re-armed the grace timer; skipping flush.", key)
            return
        commands = self._pending.pop(key)

        async with self._lock_for(key):
            await self._flush(key, commands)

    async def _flush(self, key: str, commands: list[PendingCommand]) -> None:
        token = DEVICE_ID_CTX.set(key)
        try:
            logger.info(
                "Applying %d coalesced command(s) to %s: %s",
                len(commands),
                key,
                {str(attr): value for attr, value in merge_commands(commands).items()},
                extra={"event": events.FLUSH_START},
            )
            try:
                status = await self._apply(key, commands)
                await self._on_applied(key, status)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Unable to apply commands to %s, %d command(s) dropped: %s",
                    key,
                    len(commands),
                    exc,
                    exc_info=True,
                    extra={"event": events.FLUSH_ERROR},
                )
                return
            logger.info("Commands applied to %s.", key, extra={"event": events.FLUSH_OK})
        finally:
            DEVICE_ID_CTX.reset(token)
