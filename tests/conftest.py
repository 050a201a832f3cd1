"""Shared pytest fixtures and configuration for the hassbridge test suite.

This file is loaded automatically by pytest before any test module.
It provides project-wide fixtures used across the unit tests.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import pytest
from pydantic_settings import SettingsConfigDict

from hassbridge.core import configure_logging
from hassbridge.core.settings import Settings

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test.

    ``force=True`` applies the configuration even when pytest's own
    ``log_cli`` handler is already present.
    """
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove every variable :class:`Settings` reads for the duration of a test.

    Also disables pydantic-settings ``.env`` file loading so that values
    present in a local ``.env`` file do not leak into Settings isolation tests.
    """
    prefixes = ("MQTT_", "RIKA_", "COMMAND_", "LOG_LEVEL", "LOG_FORMAT")
    for key in list(os.environ):
        if key.startswith(prefixes):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            extra="ignore",
        ),
    )


# ---------------------------------------------------------------------------
# Sample payloads
# ---------------------------------------------------------------------------


@pytest.fixture()
def stove_payload() -> dict[str, Any]:
    """A Rika Firenet status document, trimmed to the fields the bridge uses."""
    return {
        "name": "Living room",
        "stoveID": "12345",
        "lastSeenMinutes": 0,
        "lastConfirmedRevision": 1700000000,
        "oem": "RIKA",
        "stoveType": "DOMO",
        "controls": {
            "revision": 1700000000,
            "onOff": True,
            "operatingMode": 2,
            "heatingPower": 70,
            "targetTemperature": 21,
            "setBackTemperature": 16,
            "heatingTimesActiveForComfort": True,
            "frostProtectionActive": False,
            "frostProtectionTemperature": 5,
            "ecoMode": False,
        },
        "sensors": {
            "inputRoomTemperature": 20.4,
            "inputFlameTemperature": 412,
            "inputBakeTemperature": 0,
            "statusMainState": 4,
            "statusSubState": 0,
            "statusFrostStarted": False,
            "statusWifiStrength": -61,
            "parameterFeedRateTotal": 1843,
            "parameterRuntimePellets": 2211,
            "parameterIgnitionCount": 912,
            "parameterOnOffCycleCount": 433,
            "parameterVersionMainBoard": 227,
            "parameterErrorCount0": 0,
        },
    }


# ---------------------------------------------------------------------------
# Misc helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def logger() -> logging.Logger:
    """Return a ``logging.Logger`` scoped to the test suite."""
    return logging.getLogger("tests")
