"""Scheduling engine: delay policies, executor, coalescer, reconciliation.

Public API
----------
* :class:`~hassbridge.orchestrator.policy.FixedInterval` /
  :class:`~hassbridge.orchestrator.policy.ExponentialBackoff` — delay
  generators.
* :class:`~hassbridge.orchestrator.executor.RepeatableExecutor` — runs one
  fallible operation forever on a repeat / backoff schedule.
* :class:`~hassbridge.orchestrator.coalescer.CommandCoalescer` — debounces
  commands per device and flushes them as one remote write.
* :class:`~hassbridge.orchestrator.reconcile.Reconciler` — republishes
  configuration only when the derived snapshot changed.
* :class:`~hassbridge.orchestrator.stream.ReconnectingStream` — infinite
  event stream over a connection that may fail.
* :class:`~hassbridge.orchestrator.pool.DevicePool` — one task per device.

The process entry-point, :func:`hassbridge.orchestrator.scheduler.run_continuous`,
is imported from its module directly.
"""

from hassbridge.orchestrator.coalescer import CommandCoalescer, merge_commands
from hassbridge.orchestrator.executor import RepeatableExecutor, Sleeper
from hassbridge.orchestrator.policy import ExponentialBackoff, FixedInterval, RepeatPolicy
from hassbridge.orchestrator.pool import DevicePool
from hassbridge.orchestrator.reconcile import PublishSink, ReconcileOutcome, Reconciler
from hassbridge.orchestrator.stream import ReconnectingStream

__all__ = [
    # Policies
    "RepeatPolicy",
    "FixedInterval",
    "ExponentialBackoff",
    # Executor
    "RepeatableExecutor",
    "Sleeper",
    # Commands
    "CommandCoalescer",
    "merge_commands",
    # Reconciliation
    "PublishSink",
    "ReconcileOutcome",
    "Reconciler",
    # Streams and tasks
    "ReconnectingStream",
    "DevicePool",
]
