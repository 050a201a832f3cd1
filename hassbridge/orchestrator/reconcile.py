"""Change-driven reconciliation of device status against published config.

Every fresh status (from a poll or from a command flush) goes through
:meth:`Reconciler.reconcile`:

1. derive the configuration snapshot from the status;
2. compare it with the snapshot cached for that device;
3. publish the discovery configuration only when there was no snapshot yet
   or it differs (structural equality, never serialised text);
4. cache the new snapshot;
5. publish the state data unconditionally.

Each device has one lock (:meth:`Reconciler.lock`).  Every flow that fetches
a status and reconciles it (the device's poll, a command flush) holds it
around both steps, so an older fetch is never published after a newer one.

Configuration publication is a burst of retained discovery messages, so it
must not repeat on every poll; state data changes every poll and is cheap.

If publishing the configuration fails the cached snapshot is forgotten, so
the next status for that device retries it.  The error is re-raised to the
caller (the device's poll executor, which backs off).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar

from hassbridge.core import events

__all__ = ["PublishSink", "ReconcileOutcome", "Reconciler"]

logger = logging.getLogger(__name__)

S = TypeVar("S")
N = TypeVar("N")
S_contra = TypeVar("S_contra", contravariant=True)
N_contra = TypeVar("N_contra", contravariant=True)


class PublishSink(Protocol[S_contra, N_contra]):
    """Where reconciled configuration and data go."""

    async def publish_config(self, device_id: str, snapshot: N_contra) -> None: ...

    async def publish_data(self, device_id: str, status: S_contra) -> None: ...


@dataclass(frozen=True)
class ReconcileOutcome(Generic[N]):
    """Result of one reconciliation.

    Attributes:
        should_publish_config: ``True`` when configuration was (re-)published.
        snapshot: The snapshot derived from the new status, now cached.
    """

    should_publish_config: bool
    snapshot: N


class Reconciler(Generic[S, N]):
    """Holds the last published snapshot per device and drives the sink.

    Args:
        derive: Deterministic ``status -> snapshot`` mapping.
        sink: Publisher for configuration and data.
    """

    def __init__(self, derive: Callable[[S], N], sink: PublishSink[S, N]) -> None:
        self._derive = derive
        self._sink = sink
        self._cache: dict[str, N] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, device_id: str) -> asyncio.Lock:
        """Return the lock owning *device_id*'s fetch-and-reconcile cycle."""
        return self._locks.setdefault(device_id, asyncio.Lock())

    def diff(self, device_id: str, status: S) -> ReconcileOutcome[N]:
        """Derive the snapshot and decide whether configuration must be published.

        Pure with respect to the sink; does not update the cache.
        """
        snapshot = self._derive(status)
        previous = self._cache.get(device_id)
        return ReconcileOutcome(
            should_publish_config=previous is None or previous != snapshot,
            snapshot=snapshot,
        )

    async def reconcile(self, device_id: str, status: S) -> ReconcileOutcome[N]:
        """Publish what *status* requires and cache its snapshot.

        Raises:
            Exception: Whatever the sink raised; the cache entry is dropped
                first when configuration publication failed.
        """
        outcome = self.diff(device_id, status)
        self._cache[device_id] = outcome.snapshot

        if outcome.should_publish_config:
            logger.debug(
                "Publishing configuration for %s",
                outcome.snapshot,
                extra={"event": events.CONFIG_PUBLISHED},
            )
            try:
                await self._sink.publish_config(device_id, outcome.snapshot)
            except Exception:
                self._cache.pop(device_id, None)
                raise

        logger.debug(
            "Publishing data for %s",
            outcome.snapshot,
            extra={"event": events.DATA_PUBLISHED},
        )
        await self._sink.publish_data(device_id, status)
        return outcome

    def snapshot(self, device_id: str) -> N | None:
        """Return the cached snapshot for *device_id*, if any."""
        return self._cache.get(device_id)

    def forget(self, device_id: str) -> None:
        """Drop one device's snapshot; its next status republishes configuration."""
        self._cache.pop(device_id, None)

    def invalidate(self) -> None:
        """Drop every snapshot (e.g. Home Assistant restarted and lost its config)."""
        if self._cache:
            logger.info(
                "Configuration of %d device(s) will be republished on their next status.",
                len(self._cache),
                extra={"event": events.SNAPSHOTS_INVALIDATED},
            )
        self._cache.clear()
