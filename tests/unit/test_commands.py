"""Unit tests for command decoding, routing and message dispatch."""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest

from hassbridge.core.exceptions import CommandDecodeError
from hassbridge.core.models import OperatingMode, PendingCommand, StoveAttribute
from hassbridge.mqtt.commands import CommandRouter, MessageDispatcher, decode_value

PREFIX = "rika-firenet/RIKA_DOMO-Living_room-12345"

# ---------------------------------------------------------------------------
# decode_value
# ---------------------------------------------------------------------------


class TestDecodeValue:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("ON", True), ("on", True), ("true", True), ("1", True),
         ("OFF", False), ("false", False), (" 0 ", False)],
    )
    def test_switch(self, raw: str, expected: bool) -> None:
        assert decode_value(StoveAttribute.ON_OFF, raw) is expected

    def test_switch_rejects_other_text(self) -> None:
        with pytest.raises(ValueError, match="expected ON or OFF"):
            decode_value(StoveAttribute.SCHEDULE_ENABLED, "maybe")

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("manual", 0), ("Automatic", 1), ("comfort", 2), ("2", 2)],
    )
    def test_operating_mode(self, raw: str, expected: int) -> None:
        assert decode_value(StoveAttribute.OPERATING_MODE, raw) == expected

    @pytest.mark.parametrize("raw", ["eco", "3", "-1", ""])
    def test_operating_mode_rejects_unknown(self, raw: str) -> None:
        with pytest.raises(ValueError, match="expected one of manual, automatic, comfort"):
            decode_value(StoveAttribute.OPERATING_MODE, raw)

    def test_number_accepts_integral_float_text(self) -> None:
        assert decode_value(StoveAttribute.TARGET_TEMPERATURE, "21.0") == 21
        assert decode_value(StoveAttribute.HEATING_POWER, "100") == 100

    @pytest.mark.parametrize("raw", ["21.5", "warm", "nan"])
    def test_number_rejects_non_integers(self, raw: str) -> None:
        with pytest.raises(ValueError, match="expected an integer"):
            decode_value(StoveAttribute.TARGET_TEMPERATURE, raw)

    @pytest.mark.parametrize(
        ("attribute", "raw"),
        [
            (StoveAttribute.TARGET_TEMPERATURE, "29"),
            (StoveAttribute.IDLE_TEMPERATURE, "11"),
            (StoveAttribute.HEATING_POWER, "20"),
            (StoveAttribute.FROST_PROTECTION_TEMPERATURE, "11"),
        ],
    )
    def test_number_rejects_out_of_range(self, attribute: StoveAttribute, raw: str) -> None:
        with pytest.raises(ValueError, match="is outside"):
            decode_value(attribute, raw)


def test_operating_mode_codes() -> None:
    assert [mode.code for mode in OperatingMode] == [0, 1, 2]
    assert OperatingMode.from_code(1) is OperatingMode.AUTOMATIC
    with pytest.raises(ValueError):
        OperatingMode.from_code(-1)


# ---------------------------------------------------------------------------
# CommandRouter
# ---------------------------------------------------------------------------


class TestCommandRouter:
    def test_register_returns_every_command_topic(self) -> None:
        router = CommandRouter()
        topics = router.register("12345", PREFIX)

        assert len(topics) == len(StoveAttribute)
        assert f"{PREFIX}/target_temperature/set" in topics
        assert f"{PREFIX}/on_off/set" in router
        assert router.topics() == topics

    def test_register_is_idempotent(self) -> None:
        router = CommandRouter()
        router.register("12345", PREFIX)
        router.register("12345", PREFIX)
        assert len(router.topics()) == len(StoveAttribute)

    def test_decode(self) -> None:
        router = CommandRouter()
        router.register("12345", PREFIX)

        command = router.decode(f"{PREFIX}/heating_power/set", "80")

        assert command == PendingCommand("12345", StoveAttribute.HEATING_POWER, 80)

    def test_unknown_topic(self) -> None:
        with pytest.raises(CommandDecodeError, match="no device listens"):
            CommandRouter().decode("rika-firenet/other/on_off/set", "ON")

    def test_invalid_payload_keeps_topic(self) -> None:
        router = CommandRouter()
        router.register("12345", PREFIX)
        topic = f"{PREFIX}/on_off/set"

        with pytest.raises(CommandDecodeError) as excinfo:
            router.decode(topic, "sideways")

        assert excinfo.value.topic == topic
        assert isinstance(excinfo.value.__cause__, ValueError)


# ---------------------------------------------------------------------------
# MessageDispatcher
# ---------------------------------------------------------------------------


@pytest.fixture()
def dispatcher_parts() -> tuple[MessageDispatcher, MagicMock, MagicMock]:
    router = CommandRouter()
    router.register("12345", PREFIX)
    submit = MagicMock()
    on_online = MagicMock()
    return MessageDispatcher(router, submit, on_online), submit, on_online


class TestMessageDispatcher:
    def test_command_is_submitted(self, dispatcher_parts) -> None:
        dispatcher, submit, on_online = dispatcher_parts

        dispatcher.dispatch(f"{PREFIX}/on_off/set", "OFF")

        submit.assert_called_once_with(PendingCommand("12345", StoveAttribute.ON_OFF, False))
        on_online.assert_not_called()

    def test_invalid_command_is_dropped(
        self, dispatcher_parts, caplog: pytest.LogCaptureFixture
    ) -> None:
        dispatcher, submit, _ = dispatcher_parts

        with caplog.at_level(logging.WARNING, logger="hassbridge.mqtt.commands"):
            dispatcher.dispatch(f"{PREFIX}/heating_power/set", "250")

        submit.assert_not_called()
        assert "Rejected command" in caplog.text

    def test_home_assistant_online(self, dispatcher_parts) -> None:
        dispatcher, submit, on_online = dispatcher_parts

        dispatcher.dispatch("homeassistant/status", "online")

        on_online.assert_called_once_with()
        submit.assert_not_called()

    def test_home_assistant_offline(self, dispatcher_parts) -> None:
        dispatcher, submit, on_online = dispatcher_parts

        dispatcher.dispatch("homeassistant/status", "offline")

        on_online.assert_not_called()
        submit.assert_not_called()
