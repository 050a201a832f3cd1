"""Map a Rika stove status onto its Home Assistant discovery snapshot.

:func:`derive_entities` is the deterministic ``status -> snapshot`` function
the reconciler compares.  It reads only identity and configuration fields
(OEM, stove type, name, id, main board firmware) so live readings never
trigger a configuration republish.

Every entity shares:

* the device block (identifiers, manufacturer, model, ``sw_version``);
* ``~`` = ``rika-firenet/<unique-id>`` as topic prefix;
* availability from ``lastSeenMinutes``: the stove is available while the
  cloud saw it during the current minute.
"""

from __future__ import annotations

import logging
from typing import Any, Final, NamedTuple

from hassbridge.core.ids import origin, slug
from hassbridge.core.models import OperatingMode, StoveAttribute, StoveStatus
from hassbridge.mqtt.discovery import EntityConfig, StoveEntities

__all__ = [
    "TOPIC_ROOT",
    "command_topic",
    "derive_entities",
    "state_topic",
    "topic_prefix",
    "unique_id",
]

logger = logging.getLogger(__name__)

#: First segment of every stove data and command topic.
TOPIC_ROOT: Final[str] = "rika-firenet"

_DEFAULT_BASE_URL: Final[str] = "https://www.rika-firenet.com"

#: Seconds after which Home Assistant marks a sensor value stale.
_EXPIRE_AFTER: Final[int] = 60

_PARAMETER_ERROR_COUNTERS: Final[int] = 20


# ---------------------------------------------------------------------------
# Topics and ids
# ---------------------------------------------------------------------------


def unique_id(status: StoveStatus) -> str:
    """``slug("<oem>_<type>-<name>-<id>")``, stable across polls."""
    return slug(f"{status.oem}_{status.stove_type}-{status.name}-{status.stove_id}")


def topic_prefix(status: StoveStatus) -> str:
    return f"{TOPIC_ROOT}/{unique_id(status)}"


def state_topic(status: StoveStatus) -> str:
    """Topic the enriched status JSON is published on."""
    return f"{topic_prefix(status)}/state"


def command_topic(prefix: str, attribute: StoveAttribute) -> str:
    return f"{prefix}/{attribute}/set"


# ---------------------------------------------------------------------------
# Entity tables
# ---------------------------------------------------------------------------


class _SensorSpec(NamedTuple):
    object_id: str
    name: str
    template: str
    device_class: str | None = None
    unit: str | None = None
    state_class: str | None = "measurement"
    diagnostic: bool = True
    enabled: bool = True


_SENSORS: Final[tuple[_SensorSpec, ...]] = (
    _SensorSpec(
        "status", "Status", "{{ value_json.status }}",
        device_class="enum", state_class=None, diagnostic=False,
    ),
    _SensorSpec(
        "temp", "Room temperature", "{{ value_json.sensors.inputRoomTemperature }}",
        device_class="temperature", unit="°C", diagnostic=False,
    ),
    _SensorSpec(
        "flame-temp", "Flame temperature", "{{ value_json.sensors.inputFlameTemperature }}",
        device_class="temperature", unit="°C",
    ),
    _SensorSpec(
        "bake-temp", "Bake temperature", "{{ value_json.sensors.inputBakeTemperature }}",
        device_class="temperature", unit="°C", enabled=False,
    ),
    _SensorSpec(
        "wifi-strength", "Wifi strength", "{{ value_json.sensors.statusWifiStrength }}",
        device_class="signal_strength", unit="dBm",
    ),
    _SensorSpec(
        "feed-rate-total", "Total Consumption", "{{ value_json.sensors.parameterFeedRateTotal }}",
        device_class="weight", unit="kg",
    ),
    _SensorSpec(
        "runtime", "Total runtime", "{{ value_json.sensors.parameterRuntimePellets }}",
        device_class="duration", unit="h",
    ),
    _SensorSpec(
        "ignition-count", "Ignition count", "{{ value_json.sensors.parameterIgnitionCount }}",
    ),
    _SensorSpec(
        "onoff-count", "On/Off cycle count", "{{ value_json.sensors.parameterOnOffCycleCount }}",
    ),
) + tuple(
    _SensorSpec(
        f"p-err-count-{number}",
        f"Parameter error count {number}",
        f"{{{{ value_json.sensors.parameterErrorCount{number} }}}}",
    )
    for number in range(_PARAMETER_ERROR_COUNTERS)
)

_SWITCHES: Final[tuple[tuple[StoveAttribute, str, str], ...]] = (
    (StoveAttribute.ON_OFF, "Power", "onOff"),
    (StoveAttribute.SCHEDULE_ENABLED, "Heating schedule", "heatingTimesActiveForComfort"),
    (StoveAttribute.FROST_PROTECTION_ENABLED, "Frost protection", "frostProtectionActive"),
)

_NUMBERS: Final[tuple[tuple[StoveAttribute, str, str, str], ...]] = (
    (StoveAttribute.TARGET_TEMPERATURE, "Target temperature", "targetTemperature", "°C"),
    (StoveAttribute.IDLE_TEMPERATURE, "Idle temperature", "setBackTemperature", "°C"),
    (StoveAttribute.HEATING_POWER, "Heating power", "heatingPower", "%"),
    (
        StoveAttribute.FROST_PROTECTION_TEMPERATURE,
        "Frost protection temperature",
        "frostProtectionTemperature",
        "°C",
    ),
)


# ---------------------------------------------------------------------------
# Derivation
# ---------------------------------------------------------------------------


def derive_entities(status: StoveStatus, *, base_url: str = _DEFAULT_BASE_URL) -> StoveEntities:
    """Build the discovery snapshot of *status*'s stove.

    Args:
        status: A freshly fetched stove status.
        base_url: Rika Firenet base URL, for the device configuration link.
    """
    uid = unique_id(status)
    prefix = topic_prefix(status)
    common = _common_config(status, uid, prefix, base_url)

    entities: list[EntityConfig] = [_sensor(common, uid, spec) for spec in _SENSORS]
    entities.extend(_switch(common, uid, *row) for row in _SWITCHES)
    entities.append(_mode_select(common, uid))
    entities.extend(_number(common, uid, *row) for row in _NUMBERS)

    return StoveEntities(
        display_name=f"{status.name} (id={status.stove_id})",
        unique_id=uid,
        topic_prefix=prefix,
        state_topic=f"{prefix}/state",
        entities=tuple(entities),
    )


def _common_config(status: StoveStatus, uid: str, prefix: str, base_url: str) -> dict[str, Any]:
    firmware = status.sensors.parameter_version_main_board
    return {
        "~": prefix,
        "origin": origin(),
        "device": {
            "name": f"Stove {status.name}",
            "identifiers": [uid],
            "configuration_url": f"{base_url}/web/stove/{status.stove_id}",
            "manufacturer": status.oem,
            "model": status.stove_type,
            "sw_version": "" if firmware is None else str(firmware),
        },
        "availability": [
            {
                "topic": "~/state",
                "value_template": "{{ value_json.lastSeenMinutes }}",
                "payload_available": "0",
            }
        ],
        "enabled_by_default": True,
    }


def _entity_ids(uid: str, object_id: str) -> dict[str, str]:
    return {"object_id": f"{uid}-{object_id}", "unique_id": f"{uid}-{object_id}"}


def _sensor(common: dict[str, Any], uid: str, spec: _SensorSpec) -> EntityConfig:
    config: dict[str, Any] = {
        **common,
        **_entity_ids(uid, spec.object_id),
        "name": spec.name,
        "state_topic": "~/state",
        "value_template": spec.template,
        "expire_after": _EXPIRE_AFTER,
        "enabled_by_default": spec.enabled,
    }
    if spec.device_class:
        config["device_class"] = spec.device_class
    if spec.unit:
        config["unit_of_measurement"] = spec.unit
    if spec.state_class:
        config["state_class"] = spec.state_class
    if spec.diagnostic:
        config["entity_category"] = "diagnostic"
    return EntityConfig(component="sensor", object_id=spec.object_id, config=config)


def _switch(
    common: dict[str, Any], uid: str, attribute: StoveAttribute, name: str, field: str
) -> EntityConfig:
    config = {
        **common,
        **_entity_ids(uid, str(attribute)),
        "name": name,
        "state_topic": "~/state",
        "value_template": f"{{{{ 'ON' if value_json.controls.{field} else 'OFF' }}}}",
        "command_topic": command_topic("~", attribute),
        "payload_on": "ON",
        "payload_off": "OFF",
    }
    return EntityConfig(component="switch", object_id=str(attribute), config=config)


def _mode_select(common: dict[str, Any], uid: str) -> EntityConfig:
    attribute = StoveAttribute.OPERATING_MODE
    options = [str(mode) for mode in OperatingMode]
    config = {
        **common,
        **_entity_ids(uid, str(attribute)),
        "name": "Operating mode",
        "state_topic": "~/state",
        "value_template": f"{{{{ {options}[value_json.controls.operatingMode] }}}}",
        "command_topic": command_topic("~", attribute),
        "options": options,
    }
    return EntityConfig(component="select", object_id=str(attribute), config=config)


def _number(
    common: dict[str, Any], uid: str, attribute: StoveAttribute, name: str, field: str, unit: str
) -> EntityConfig:
    low, high = attribute.value_range or (0, 100)
    config = {
        **common,
        **_entity_ids(uid, str(attribute)),
        "name": name,
        "state_topic": "~/state",
        "value_template": f"{{{{ value_json.controls.{field} }}}}",
        "command_topic": command_topic("~", attribute),
        "min": low,
        "max": high,
        "step": 1,
        "mode": "slider" if unit == "%" else "box",
        "unit_of_measurement": unit,
    }
    return EntityConfig(component="number", object_id=str(attribute), config=config)
