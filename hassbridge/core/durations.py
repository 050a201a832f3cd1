"""Duration parsing and formatting.

Durations travel through hassbridge as plain ``float`` seconds, the unit
:func:`asyncio.sleep` expects.  Operators write them with a compact grammar:

* a single duration: ``<amount><unit>`` where unit is one of
  ``ms``, ``s``, ``m``, ``h``, ``d`` (``"10s"``, ``"250ms"``, ``"7d"``);
* a range: ``<duration>..<duration>`` (``"9s..11s"``), with no whitespace
  around the ``..`` separator.

Typical usage::

    from hassbridge.core.durations import humanize, parse_interval

    low, high = parse_interval("9s..11s")   # (9.0, 11.0)
    humanize(3723.5)                        # "1h 2m 3s 500ms"
"""

from __future__ import annotations

import re
from typing import Final

__all__ = [
    "humanize",
    "parse_interval",
    "parse_time_delta",
    "parse_time_delta_range",
]

_DURATION_RE: Final[re.Pattern[str]] = re.compile(r"^(\d+)(ms|s|m|h|d)$")
_RANGE_RE: Final[re.Pattern[str]] = re.compile(r"^([^.]*\S)[.]{2}(\S[^.]*)$")

_UNIT_SECONDS: Final[dict[str, float]] = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
    "d": 86400.0,
}

# Largest unit first; used by humanize().
_HUMAN_UNITS: Final[tuple[tuple[str, int], ...]] = (
    ("d", 86_400_000),
    ("h", 3_600_000),
    ("m", 60_000),
    ("s", 1_000),
    ("ms", 1),
)


def parse_time_delta(arg: str) -> float:
    """Parse a single duration such as ``"53s"`` into seconds.

    Leading and trailing whitespace is ignored; whitespace between the amount
    and the unit is not.

    Raises:
        ValueError: ``invalid duration: <arg>`` on any grammar violation.
    """
    arg = arg.strip()
    match = _DURATION_RE.match(arg)
    if match is None:
        raise ValueError(f"invalid duration: {arg}")
    amount, unit = match.groups()
    return int(amount) * _UNIT_SECONDS[unit]


def parse_time_delta_range(arg: str) -> tuple[float, float]:
    """Parse ``"<start>..<end>"`` into a ``(start, end)`` tuple of seconds.

    The bounds are returned as written; callers decide whether
    ``start > end`` is acceptable.

    Raises:
        ValueError: naming which part of *arg* is invalid.
    """
    arg = arg.strip()
    match = _RANGE_RE.match(arg)
    if match is None:
        raise ValueError(f"invalid range syntax: {arg}")
    start_text, end_text = match.groups()

    try:
        start = parse_time_delta(start_text)
    except ValueError:
        start = None
    try:
        end = parse_time_delta(end_text)
    except ValueError:
        end = None

    if start is None and end is None:
        raise ValueError(f"invalid start and end durations: {arg}")
    if start is None:
        raise ValueError(f"invalid start duration: {arg}")
    if end is None:
        raise ValueError(f"invalid end duration: {arg}")
    return start, end


def parse_interval(arg: str) -> tuple[float, float]:
    """Parse either a single duration or a range into ``(low, high)``.

    ``"10s"`` yields ``(10.0, 10.0)``; ``"9s..11s"`` yields ``(9.0, 11.0)``.
    """
    if ".." in arg:
        return parse_time_delta_range(arg)
    value = parse_time_delta(arg)
    return value, value


def humanize(seconds: float) -> str:
    """Render *seconds* for log lines, e.g. ``"1h 2m 3s"`` or ``"250ms"``.

    Precision is one millisecond; zero and negative values render as ``"0s"``.
    """
    remaining = round(seconds * 1000)
    if remaining <= 0:
        return "0s"
    parts: list[str] = []
    for unit, size in _HUMAN_UNITS:
        amount, remaining = divmod(remaining, size)
        if amount:
            parts.append(f"{amount}{unit}")
    return " ".join(parts)
