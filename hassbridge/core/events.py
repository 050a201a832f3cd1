"""Structured log event name constants for the bridge.

Every key transition emits a log record with an ``event`` field (passed via
``extra={"event": events.X}``).  Using named constants instead of raw strings
keeps them greppable and documented in one place.  In ``LOG_FORMAT=json`` mode
the value surfaces as ``extra.event``.

Usage example::

    import logging
    from hassbridge.core import events

    logger = logging.getLogger(__name__)

    logger.info("Stove discovered", extra={"event": events.DEVICE_DISCOVERED})
"""

from __future__ import annotations

__all__ = [
    # Discovery / polling
    "DEVICE_DISCOVERED",
    "DEVICE_REMOVED",
    "DISCOVERY_ERROR",
    "STATUS_POLL_OK",
    "STATUS_POLL_ERROR",
    # Reconciliation
    "CONFIG_PUBLISHED",
    "DATA_PUBLISHED",
    "SNAPSHOTS_INVALIDATED",
    # Commands
    "COMMAND_QUEUED",
    "COMMAND_REJECTED",
    "FLUSH_START",
    "FLUSH_OK",
    "FLUSH_ERROR",
    # MQTT connection
    "MQTT_CONNECTED",
    # Reconnecting streams
    "STREAM_BACKOFF",
]

# ---------------------------------------------------------------------------
# Discovery / polling
# ---------------------------------------------------------------------------

#: A device id was seen for the first time; a poll task was started for it.
DEVICE_DISCOVERED: str = "DEVICE_DISCOVERED"

#: A device poll task was explicitly removed from the pool.
DEVICE_REMOVED: str = "DEVICE_REMOVED"

#: Listing devices failed; discovery backs off.
DISCOVERY_ERROR: str = "DISCOVERY_ERROR"

#: A device status was fetched and reconciled.
STATUS_POLL_OK: str = "STATUS_POLL_OK"

#: Fetching or reconciling a device status failed; the poll backs off.
STATUS_POLL_ERROR: str = "STATUS_POLL_ERROR"

# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

#: Discovery configuration was (re-)published for a device.
CONFIG_PUBLISHED: str = "CONFIG_PUBLISHED"

#: State payload was published for a device.
DATA_PUBLISHED: str = "DATA_PUBLISHED"

#: The snapshot cache was cleared (Home Assistant came back online).
SNAPSHOTS_INVALIDATED: str = "SNAPSHOTS_INVALIDATED"

# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

#: A decoded command was queued in the coalescer.
COMMAND_QUEUED: str = "COMMAND_QUEUED"

#: An inbound command could not be decoded and was dropped.
COMMAND_REJECTED: str = "COMMAND_REJECTED"

#: The grace window elapsed; pending commands are being applied.
FLUSH_START: str = "FLUSH_START"

#: Pending commands were applied remotely.
FLUSH_OK: str = "FLUSH_OK"

#: Applying pending commands failed; they are dropped.
FLUSH_ERROR: str = "FLUSH_ERROR"

# ---------------------------------------------------------------------------
# MQTT connection
# ---------------------------------------------------------------------------

#: The broker connection was (re-)established.
MQTT_CONNECTED: str = "MQTT_CONNECTED"

# ---------------------------------------------------------------------------
# Reconnecting streams
# ---------------------------------------------------------------------------

#: A stream poll failed; the stream backs off before polling again.
STREAM_BACKOFF: str = "STREAM_BACKOFF"
