"""Core domain models shared by the provider, MQTT and scheduling layers.

* :class:`StoveStatus` — the status document returned by the remote stove
  API.  Fields the bridge reasons about are typed; everything else the API
  sends is preserved untouched (``extra="allow"``) so it reaches the MQTT
  state payload and the controls write-back verbatim.
* :class:`StoveAttribute` / :class:`PendingCommand` — a user command queued
  in the coalescer, before it is merged into :class:`StoveControls`.

Typical usage::

    from hassbridge.core.models import PendingCommand, StoveAttribute, StoveStatus

    status = StoveStatus.model_validate(response.json())
    command = PendingCommand(status.stove_id, StoveAttribute.TARGET_TEMPERATURE, 22)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "CommandValue",
    "OperatingMode",
    "PendingCommand",
    "StatusDetail",
    "StoveAttribute",
    "StoveControls",
    "StoveSensors",
    "StoveStatus",
]

logger = logging.getLogger(__name__)

#: A decoded command value: booleans for switches, integers otherwise.
CommandValue = bool | int

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class StoveAttribute(StrEnum):
    """Controllable stove attributes.

    The value doubles as the command topic segment
    (``rika-firenet/<unique-id>/<value>/set``).
    """

    ON_OFF = "on_off"
    OPERATING_MODE = "operating_mode"
    TARGET_TEMPERATURE = "target_temperature"
    IDLE_TEMPERATURE = "idle_temperature"
    HEATING_POWER = "heating_power"
    SCHEDULE_ENABLED = "schedule_enabled"
    FROST_PROTECTION_ENABLED = "frost_protection_enabled"
    FROST_PROTECTION_TEMPERATURE = "frost_protection_temperature"

    @property
    def control_field(self) -> str:
        """Name of the :class:`StoveControls` field this attribute drives."""
        return _CONTROL_FIELDS[self]

    @property
    def value_range(self) -> tuple[int, int] | None:
        """Inclusive bounds accepted for numeric attributes, ``None`` otherwise."""
        return _VALUE_RANGES.get(self)


_CONTROL_FIELDS: Final[dict[StoveAttribute, str]] = {
    StoveAttribute.ON_OFF: "on_off",
    StoveAttribute.OPERATING_MODE: "operating_mode",
    StoveAttribute.TARGET_TEMPERATURE: "target_temperature",
    StoveAttribute.IDLE_TEMPERATURE: "set_back_temperature",
    StoveAttribute.HEATING_POWER: "heating_power",
    StoveAttribute.SCHEDULE_ENABLED: "heating_times_active_for_comfort",
    StoveAttribute.FROST_PROTECTION_ENABLED: "frost_protection_active",
    StoveAttribute.FROST_PROTECTION_TEMPERATURE: "frost_protection_temperature",
}

_VALUE_RANGES: Final[dict[StoveAttribute, tuple[int, int]]] = {
    StoveAttribute.TARGET_TEMPERATURE: (14, 28),
    StoveAttribute.IDLE_TEMPERATURE: (12, 20),
    StoveAttribute.HEATING_POWER: (30, 100),
    StoveAttribute.FROST_PROTECTION_TEMPERATURE: (4, 10),
}


class OperatingMode(StrEnum):
    """Stove operating modes, by the label Home Assistant shows.

    :attr:`code` is the integer the remote API stores in ``operatingMode``.
    """

    MANUAL = "manual"
    AUTOMATIC = "automatic"
    COMFORT = "comfort"

    @property
    def code(self) -> int:
        return list(OperatingMode).index(self)

    @classmethod
    def from_code(cls, code: int) -> OperatingMode:
        modes = list(cls)
        if not 0 <= code < len(modes):
            raise ValueError(f"unknown operating mode code {code!r}")
        return modes[code]


class StatusDetail(StrEnum):
    """Human-readable stove activity, derived from the main/sub state codes."""

    OFF = "Off"
    STANDBY = "Standby"
    EXTERNAL_REQUEST = "External Request"
    IGNITION = "Ignition"
    STARTUP = "Startup"
    CONTROL = "Control"
    CLEANING = "Cleaning"
    DEEP_CLEANING = "Deep Cleaning"
    BURNOUT = "Burnout"
    WOOD_PRESENCE_CONTROL = "Wood Presence Control"
    WOOD = "Wood"
    FROST_PROTECTION = "Frost Protection"
    UNKNOWN = "Unknown"


# ---------------------------------------------------------------------------
# Remote status document
# ---------------------------------------------------------------------------


class StoveControls(BaseModel):
    """The writable half of a stove status.

    The API expects the *complete* controls document on every write, including
    ``revision``; unknown keys are therefore kept and sent back unchanged.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    revision: int = 0
    on_off: bool = Field(default=False, alias="onOff")
    operating_mode: int = Field(default=0, alias="operatingMode")
    target_temperature: int = Field(default=20, alias="targetTemperature")
    set_back_temperature: int = Field(default=16, alias="setBackTemperature")
    heating_power: int = Field(default=100, alias="heatingPower")
    heating_times_active_for_comfort: bool = Field(
        default=False, alias="heatingTimesActiveForComfort"
    )
    frost_protection_active: bool = Field(default=False, alias="frostProtectionActive")
    frost_protection_temperature: int = Field(default=4, alias="frostProtectionTemperature")

    def with_values(self, values: dict[StoveAttribute, CommandValue]) -> StoveControls:
        """Return a copy with *values* applied on top of the current controls."""
        return self.model_copy(
            update={attribute.control_field: value for attribute, value in values.items()}
        )


class StoveSensors(BaseModel):
    """Read-only measurements and counters.

    Only the state codes and the firmware version are typed; the bridge
    forwards every other sensor value untouched.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    status_main_state: int | None = Field(default=None, alias="statusMainState")
    status_sub_state: int | None = Field(default=None, alias="statusSubState")
    status_frost_started: bool = Field(default=False, alias="statusFrostStarted")
    parameter_version_main_board: int | str | None = Field(
        default=None, alias="parameterVersionMainBoard"
    )


class StoveStatus(BaseModel):
    """One status document for one stove."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    stove_id: str = Field(alias="stoveID")
    name: str = ""
    oem: str = "RIKA"
    stove_type: str = Field(default="", alias="stoveType")
    last_seen_minutes: int | None = Field(default=None, alias="lastSeenMinutes")
    controls: StoveControls = Field(default_factory=StoveControls)
    sensors: StoveSensors = Field(default_factory=StoveSensors)

    @property
    def status_detail(self) -> StatusDetail:
        """Map ``statusMainState`` / ``statusSubState`` to a :class:`StatusDetail`."""
        if self.sensors.status_frost_started:
            return StatusDetail.FROST_PROTECTION

        main = self.sensors.status_main_state
        sub = self.sensors.status_sub_state
        if main == 1:
            if sub == 0:
                return StatusDetail.OFF
            if sub in (1, 3):
                return StatusDetail.STANDBY
            if sub == 2:
                return StatusDetail.EXTERNAL_REQUEST
            return StatusDetail.UNKNOWN
        if main == 5:
            return StatusDetail.DEEP_CLEANING if sub in (3, 4) else StatusDetail.CLEANING
        return _MAIN_STATE_DETAILS.get(main, StatusDetail.UNKNOWN)

    def state_payload(self) -> dict[str, Any]:
        """The JSON document published on the stove's state topic."""
        payload = self.model_dump(by_alias=True, mode="json")
        payload["status"] = str(self.status_detail)
        return payload


_MAIN_STATE_DETAILS: Final[dict[int | None, StatusDetail]] = {
    2: StatusDetail.IGNITION,
    3: StatusDetail.STARTUP,
    4: StatusDetail.CONTROL,
    6: StatusDetail.BURNOUT,
    11: StatusDetail.WOOD_PRESENCE_CONTROL,
    13: StatusDetail.WOOD_PRESENCE_CONTROL,
    14: StatusDetail.WOOD_PRESENCE_CONTROL,
    16: StatusDetail.WOOD_PRESENCE_CONTROL,
    17: StatusDetail.WOOD_PRESENCE_CONTROL,
    50: StatusDetail.WOOD_PRESENCE_CONTROL,
    20: StatusDetail.WOOD,
    21: StatusDetail.WOOD,
}


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PendingCommand:
    """A decoded user command waiting in the coalescer.

    Equality is structural: two commands are equal when they target the same
    device, the same attribute and carry the same value.

    Attributes:
        target_key: Device identity the command addresses (the stove id).
        attribute: Which control to change.
        value: New value, already validated by the decoder.
    """

    target_key: str
    attribute: StoveAttribute
    value: CommandValue
