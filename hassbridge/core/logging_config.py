"""hassbridge logging configuration.

Call ``configure_logging()`` once at process startup (``__main__`` does).
Every other module declares its own logger at module scope::

    import logging
    logger = logging.getLogger(__name__)

Two output formats share one handler pipeline:

* ``text``: ``2026-02-28 12:34:56 INFO     [12345] hassbridge.orchestrator.pool: ...``
  where the bracketed field is the device the emitting task works on;
* ``json``: one object per line, see :class:`JsonFormatter`.

Environment variables (read at call time, arguments win):
    LOG_LEVEL   DEBUG | INFO | WARNING | ERROR | CRITICAL   (default: INFO)
    LOG_FORMAT  text | json                                 (default: text)
"""

from __future__ import annotations

import json
import logging
import os
import sys
import traceback
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any, Final

__all__ = ["configure_logging", "JsonFormatter", "DEVICE_ID_CTX", "DeviceContextFilter"]

logger = logging.getLogger(__name__)

#: Device the current task works on.  :class:`~hassbridge.orchestrator.pool.DevicePool`
#: sets it for each poll task and the coalescer sets it around each flush;
#: tasks spawned from there inherit it.  ``"-"`` everywhere else.
DEVICE_ID_CTX: ContextVar[str] = ContextVar("device_id", default="-")

_LEVELS: Final[frozenset[str]] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
_FORMATS: Final[frozenset[str]] = frozenset({"text", "json"})

_TEXT_FORMAT: Final[str] = "%(asctime)s %(levelname)-8s [%(device_id)s] %(name)s: %(message)s"
_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

#: Transport libraries that log every request or packet at INFO/DEBUG.
_CHATTY_LOGGERS: Final[tuple[str, ...]] = ("httpx", "httpcore", "aiomqtt", "asyncio")


class DeviceContextFilter(logging.Filter):
    """Copy :data:`DEVICE_ID_CTX` onto each record as ``record.device_id``."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.device_id = DEVICE_ID_CTX.get("-")
        return True


def _resolve(value: str | None, env_var: str, default: str, allowed: frozenset[str]) -> str:
    resolved = value or os.environ.get(env_var, default)
    resolved = resolved.lower() if env_var == "LOG_FORMAT" else resolved.upper()
    if resolved not in allowed:
        raise ValueError(
            f"Unknown {env_var} {resolved!r}. Must be one of: {', '.join(sorted(allowed))}"
        )
    return resolved


def _build_handler(level: str, fmt: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(DeviceContextFilter())
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(fmt=_TEXT_FORMAT, datefmt=_DATE_FORMAT))
    return handler


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    force: bool = False,
) -> None:
    """Install the hassbridge handler on the root logger.

    Args:
        level: DEBUG/INFO/WARNING/ERROR/CRITICAL; falls back to ``$LOG_LEVEL``.
        fmt: ``"text"`` or ``"json"``; falls back to ``$LOG_FORMAT``.
        force: Replace existing root handlers.  Without it, an already
            configured root logger only has its level updated.

    Raises:
        ValueError: Unknown level or format.
    """
    resolved_level = _resolve(level, "LOG_LEVEL", "INFO", _LEVELS)
    resolved_fmt = _resolve(fmt, "LOG_FORMAT", "text", _FORMATS)

    root = logging.getLogger()
    root.setLevel(resolved_level)
    if root.handlers and not force:
        return

    root.handlers.clear()
    root.addHandler(_build_handler(resolved_level, resolved_fmt))

    if resolved_level != "DEBUG":
        for name in _CHATTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    ::

        {
            "ts":      "2026-02-28T12:34:56.789Z",
            "level":   "INFO",
            "logger":  "hassbridge.orchestrator.reconcile",
            "message": "Publishing configuration for stove Living room (id=12345)",
            "extra":   {"device_id": "12345", "event": "CONFIG_PUBLISHED"}
        }

    ``extra`` holds every attribute a caller or filter attached to the record.
    ``exc_info`` and ``stack_info`` are added only when present.  Values JSON
    cannot encode are rendered with ``str()``.
    """

    #: Attributes every LogRecord carries, plus the ones formatting adds.
    _STANDARD_ATTRS: Final[frozenset[str]] = frozenset(
        vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
    ) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        record.message = record.getMessage()
        created = datetime.fromtimestamp(record.created, tz=UTC)

        payload: dict[str, Any] = {
            "ts": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
            "extra": {
                key: value
                for key, value in vars(record).items()
                if key not in self._STANDARD_ATTRS
            },
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        elif record.exc_text:
            payload["exc_info"] = record.exc_text
        if record.stack_info:
            payload["stack_info"] = self.formatStack(record.stack_info)

        try:
            return json.dumps(payload, default=str)
        except (TypeError, ValueError):  # pragma: no cover
            return json.dumps(
                {
                    "ts": payload["ts"],
                    "level": "ERROR",
                    "logger": __name__,
                    "message": "JsonFormatter serialisation error",
                    "exc_info": traceback.format_exc(),
                    "extra": {},
                }
            )
