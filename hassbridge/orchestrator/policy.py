"""Delay policies driving the repeatable executor.

A policy is a small stateful generator of sleep durations (seconds):

* :class:`FixedInterval` — the steady-state cadence.  Either a constant
  (``FixedInterval.every(10)``) or a uniformly random value in a closed range
  (``FixedInterval.between(9, 11)``).  Random jitter keeps many pollers from
  hitting the remote API in lock-step.
* :class:`ExponentialBackoff` — the failure cadence.  Starts at ``initial``,
  roughly doubles on every call (with ±30 % jitter that never breaks the
  monotonic growth), and saturates at ``ceiling``.

Growth
~~~~~~
::

    call    0        1           2            n
    delay   initial  ~2×initial  ~4×initial … min(initial × 2^n × jitter, ceiling)

Once a term reaches ``ceiling`` the sequence is exhausted and every further
call returns exactly ``ceiling`` until :meth:`ExponentialBackoff.reset`.

Typical usage::

    from hassbridge.orchestrator.policy import ExponentialBackoff, FixedInterval

    repeat = FixedInterval.between(9.0, 11.0)
    backoff = ExponentialBackoff(initial=0.1, ceiling=3600.0)
    delay = backoff.next()
"""

from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from typing import Final

from hassbridge.core.durations import humanize

__all__ = [
    "ExponentialBackoff",
    "FixedInterval",
    "RepeatPolicy",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Growth factor between two consecutive backoff terms.
_BACKOFF_FACTOR: Final[float] = 2.0

#: Relative jitter applied to every backoff term after the first.  Must stay
#: below 1/3 for a factor of 2 so that jittered terms remain strictly
#: increasing: (1 - j) × 2 > (1 + j).
_BACKOFF_JITTER: Final[float] = 0.3

#: Exponent cap; only reachable when ``initial`` is zero.
_MAX_EXPONENT: Final[int] = 64


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class RepeatPolicy(ABC):
    """Stateful generator of delays.

    Each instance is owned by exactly one executor and must not be shared.
    """

    @abstractmethod
    def next(self) -> float:
        """Return the next delay in seconds."""

    def reset(self) -> None:  # noqa: B027
        """Restart the sequence.  No-op by default."""

    @abstractmethod
    def display(self) -> str:
        """Human-readable description for log lines."""

    def __str__(self) -> str:
        return self.display()


# ---------------------------------------------------------------------------
# Fixed interval
# ---------------------------------------------------------------------------


class FixedInterval(RepeatPolicy):
    """Constant delay, or uniformly random delay in ``[low, high]``.

    Args:
        low: Lower bound in seconds.
        high: Upper bound in seconds.

    Raises:
        ValueError: If ``low > high`` or ``low`` is negative.
    """

    def __init__(self, low: float, high: float) -> None:
        if low < 0:
            raise ValueError(f"interval bounds must be ≥ 0, got {low!r}.")
        if low > high:
            raise ValueError(f"interval lower bound {low!r} > upper bound {high!r}.")
        self.low = float(low)
        self.high = float(high)

    @classmethod
    def every(cls, delay: float) -> FixedInterval:
        return cls(delay, delay)

    @classmethod
    def between(cls, low: float, high: float) -> FixedInterval:
        return cls(low, high)

    def next(self) -> float:
        if self.low == self.high:
            return self.low
        return random.uniform(self.low, self.high)

    def display(self) -> str:
        if self.low == self.high:
            return f"every {humanize(self.low)}"
        return f"between {humanize(self.low)} and {humanize(self.high)}"

    def __repr__(self) -> str:
        return f"FixedInterval(low={self.low!r}, high={self.high!r})"


# ---------------------------------------------------------------------------
# Exponential backoff
# ---------------------------------------------------------------------------


class ExponentialBackoff(RepeatPolicy):
    """Jittered exponential delays from ``initial`` up to ``ceiling``.

    A ``ceiling`` lower than ``initial`` is a configuration anomaly, not an
    error: it is clamped to ``initial`` and a warning is logged.

    Args:
        initial: First delay in seconds.
        ceiling: Largest delay ever returned, in seconds.
    """

    def __init__(self, initial: float = 1.0, ceiling: float = 3600.0) -> None:
        if initial < 0:
            raise ValueError(f"backoff initial delay must be ≥ 0, got {initial!r}.")
        if initial > ceiling:
            logger.warning(
                'Inconsistent backoff policy configuration: the "ceiling" value (%s) '
                'should be higher than the "initial" delay (%s); using %s for both.',
                humanize(ceiling),
                humanize(initial),
                humanize(initial),
            )
        self.initial = float(initial)
        self.ceiling = float(max(initial, ceiling))
        self._attempt = 0
        self._exhausted = False

    def next(self) -> float:
        if self._exhausted:
            return self.ceiling

        exponent = min(self._attempt, _MAX_EXPONENT)
        delay = self.initial * _BACKOFF_FACTOR**exponent
        if exponent:
            delay *= random.uniform(1.0 - _BACKOFF_JITTER, 1.0 + _BACKOFF_JITTER)
        self._attempt += 1

        if delay >= self.ceiling:
            self._exhausted = True
            return self.ceiling
        return delay

    def reset(self) -> None:
        self._attempt = 0
        self._exhausted = False

    def display(self) -> str:
        return f"exponential backoff from {humanize(self.initial)} up to {humanize(self.ceiling)}"

    def __repr__(self) -> str:
        return f"ExponentialBackoff(initial={self.initial!r}, ceiling={self.ceiling!r})"
