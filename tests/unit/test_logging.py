"""Unit tests for logging configuration and the JSON formatter."""

from __future__ import annotations

import json
import logging

import pytest

from hassbridge.core import events
from hassbridge.core.logging_config import (
    DEVICE_ID_CTX,
    DeviceContextFilter,
    JsonFormatter,
    configure_logging,
)


def _record(message: str = "Stove discovered", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="hassbridge.orchestrator.pool",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_device_filter_reads_context() -> None:
    record = _record()
    token = DEVICE_ID_CTX.set("12345")
    try:
        DeviceContextFilter().filter(record)
    finally:
        DEVICE_ID_CTX.reset(token)

    assert record.device_id == "12345"


def test_device_filter_default() -> None:
    record = _record()
    DeviceContextFilter().filter(record)
    assert record.device_id == "-"


def test_json_formatter_shape() -> None:
    record = _record(event=events.DEVICE_DISCOVERED, device_id="12345")

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "hassbridge.orchestrator.pool"
    assert payload["message"] == "Stove discovered"
    assert payload["ts"].endswith("Z")
    assert payload["extra"] == {"event": "DEVICE_DISCOVERED", "device_id": "12345"}
    assert "exc_info" not in payload


def test_json_formatter_includes_traceback() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        import sys

        record = _record()
        record.exc_info = sys.exc_info()

    payload = json.loads(JsonFormatter().format(record))

    assert "RuntimeError: boom" in payload["exc_info"]


def test_json_formatter_serialises_unknown_types() -> None:
    record = _record(snapshot=object())
    payload = json.loads(JsonFormatter().format(record))
    assert payload["extra"]["snapshot"].startswith("<object object")


@pytest.mark.parametrize(("level", "fmt"), [("chatty", "text"), ("INFO", "xml")])
def test_configure_logging_rejects_unknown_values(level: str, fmt: str) -> None:
    with pytest.raises(ValueError, match="Unknown LOG_"):
        configure_logging(level=level, fmt=fmt, force=True)


def test_configure_logging_json_handler() -> None:
    configure_logging(level="WARNING", fmt="json", force=True)

    root = logging.getLogger()
    assert root.level == logging.WARNING
    assert isinstance(root.handlers[0].formatter, JsonFormatter)
    assert logging.getLogger("aiomqtt").level == logging.WARNING
