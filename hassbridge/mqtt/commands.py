"""Inbound MQTT messages: command decoding and dispatch.

Home Assistant writes user commands to
``rika-firenet/<unique-id>/<attribute>/set``.  The :class:`CommandRouter`
knows which device each of those topics belongs to (topics are registered
when a device's configuration is published) and turns a raw message into a
:class:`~hassbridge.core.models.PendingCommand`.

Payload grammar per attribute
-----------------------------
=====================================  =========================================
Switches (power, schedule, frost)      ``ON``/``OFF``, ``true``/``false``, ``1``/``0``
Operating mode                         ``manual``/``automatic``/``comfort`` or ``0..2``
Numbers                                integer within the attribute's range
=====================================  =========================================

Anything else raises :class:`~hassbridge.core.exceptions.CommandDecodeError`.
:class:`MessageDispatcher` logs and drops those; they never reach the
coalescer.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Final

from hassbridge.core import events
from hassbridge.core.exceptions import CommandDecodeError
from hassbridge.core.models import CommandValue, OperatingMode, PendingCommand, StoveAttribute

__all__ = [
    "CommandRouter",
    "MessageDispatcher",
    "decode_value",
]

logger = logging.getLogger(__name__)

_TRUE: Final[frozenset[str]] = frozenset({"on", "true", "1"})
_FALSE: Final[frozenset[str]] = frozenset({"off", "false", "0"})

_BOOLEAN_ATTRIBUTES: Final[frozenset[StoveAttribute]] = frozenset(
    {
        StoveAttribute.ON_OFF,
        StoveAttribute.SCHEDULE_ENABLED,
        StoveAttribute.FROST_PROTECTION_ENABLED,
    }
)

#: Payload Home Assistant sends on its status topic once it (re)started.
HOME_ASSISTANT_ONLINE: Final[str] = "online"


def decode_value(attribute: StoveAttribute, raw: str) -> CommandValue:
    """Decode the text payload of a command for *attribute*.

    Raises:
        ValueError: When *raw* is not a valid value for *attribute*.
    """
    text = raw.strip().lower()

    if attribute in _BOOLEAN_ATTRIBUTES:
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError(f"expected ON or OFF, got {raw!r}")

    if attribute is StoveAttribute.OPERATING_MODE:
        try:
            return OperatingMode(text).code
        except ValueError:
            pass
        try:
            return OperatingMode.from_code(int(text)).code
        except ValueError:
            choices = ", ".join(str(mode) for mode in OperatingMode)
            raise ValueError(f"expected one of {choices} or 0..2, got {raw!r}") from None

    # HA number entities may send "21.0".
    try:
        number = float(text)
    except ValueError:
        raise ValueError(f"expected an integer, got {raw!r}") from None
    if not number.is_integer():
        raise ValueError(f"expected an integer, got {raw!r}")
    value = int(number)
    bounds = attribute.value_range
    if bounds is not None and not bounds[0] <= value <= bounds[1]:
        raise ValueError(f"{value} is outside {bounds[0]}..{bounds[1]}")
    return value


class CommandRouter:
    """Map command topics to ``(device id, attribute)``."""

    def __init__(self) -> None:
        self._routes: dict[str, tuple[str, StoveAttribute]] = {}

    def register(self, device_id: str, topic_prefix: str) -> list[str]:
        """Route every attribute's command topic under *topic_prefix* to *device_id*.

        Returns:
            The command topics of that device.
        """
        topics = []
        for attribute in StoveAttribute:
            topic = f"{topic_prefix}/{attribute}/set"
            self._routes[topic] = (device_id, attribute)
            topics.append(topic)
        return topics

    def topics(self) -> list[str]:
        return list(self._routes)

    def __contains__(self, topic: object) -> bool:
        return topic in self._routes

    def decode(self, topic: str, payload: str) -> PendingCommand:
        """Decode one command message.

        Raises:
            CommandDecodeError: Unknown topic or invalid payload.
        """
        route = self._routes.get(topic)
        if route is None:
            raise CommandDecodeError(topic, "no device listens on this topic")
        device_id, attribute = route
        try:
            value = decode_value(attribute, payload)
        except ValueError as exc:
            raise CommandDecodeError(topic, str(exc)) from exc
        return PendingCommand(device_id, attribute, value)


class MessageDispatcher:
    """Route inbound messages to the coalescer or the reconciler.

    Args:
        router: Command topic registry.
        submit: Receives every decoded command (the coalescer's ``submit``).
        on_home_assistant_online: Called when Home Assistant announces it
            is online again, so configuration gets republished.
        status_topic: Home Assistant birth / last-will topic.
    """

    def __init__(
        self,
        router: CommandRouter,
        submit: Callable[[PendingCommand], None],
        on_home_assistant_online: Callable[[], None],
        *,
        status_topic: str = "homeassistant/status",
    ) -> None:
        self._router = router
        self._submit = submit
        self._on_online = on_home_assistant_online
        self.status_topic = status_topic

    def dispatch(self, topic: str, payload: str) -> None:
        if topic == self.status_topic:
            logger.info("Home Assistant is %s.", payload.strip() or "(empty)")
            if payload.strip().lower() == HOME_ASSISTANT_ONLINE:
                self._on_online()
            return

        try:
            command = self._router.decode(topic, payload)
        except CommandDecodeError as exc:
            logger.warning("%s", exc, extra={"event": events.COMMAND_REJECTED})
            return
        self._submit(command)
