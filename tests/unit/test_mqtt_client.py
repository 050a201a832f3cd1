"""Unit tests for MqttBridge and HomeAssistantPublisher.

A FakeBroker hands out FakeClient instances in place of ``aiomqtt.Client``;
they record subscriptions and publishes and replay scripted inbound traffic.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from types import SimpleNamespace
from typing import Any

import aiomqtt
import pytest

from hassbridge.core.exceptions import PublishError
from hassbridge.core.models import StoveStatus
from hassbridge.mqtt.client import InboundMessage, MqttBridge
from hassbridge.mqtt.commands import CommandRouter
from hassbridge.mqtt.publisher import HomeAssistantPublisher
from hassbridge.orchestrator.policy import ExponentialBackoff
from hassbridge.providers.rika_entities import derive_entities


class FakeBroker:
    def __init__(self) -> None:
        self.refuse_connections = 0
        self.clients: list[FakeClient] = []
        self.inbound: asyncio.Queue[Any] = asyncio.Queue()

    def factory(self, host: str, **kwargs: Any) -> FakeClient:
        client = FakeClient(self, host, **kwargs)
        self.clients.append(client)
        return client

    def send(self, topic: str, payload: bytes | str) -> None:
        self.inbound.put_nowait(SimpleNamespace(topic=SimpleNamespace(value=topic), payload=payload))

    def drop(self) -> None:
        self.inbound.put_nowait(aiomqtt.MqttError("Disconnected during message iteration"))


class FakeClient:
    def __init__(self, broker: FakeBroker, host: str, **kwargs: Any) -> None:
        self.broker = broker
        self.host = host
        self.kwargs = kwargs
        self.subscriptions: list[str] = []
        self.published: list[tuple[str, Any, int, bool]] = []
        self.closed = False
        self.messages = self._messages()

    async def __aenter__(self) -> FakeClient:
        if self.broker.refuse_connections:
            self.broker.refuse_connections -= 1
            raise aiomqtt.MqttError("Connection refused")
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.closed = True

    async def subscribe(self, topic: str, qos: int = 0) -> None:
        self.subscriptions.append(topic)

    async def publish(self, topic: str, payload: Any = None, qos: int = 0, retain: bool = False) -> None:
        self.published.append((topic, payload, qos, retain))

    async def _messages(self) -> AsyncIterator[Any]:
        while True:
            item = await self.broker.inbound.get()
            if isinstance(item, Exception):
                raise item
            yield item


@pytest.fixture()
def broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture()
def bridge(broker: FakeBroker) -> MqttBridge:
    return MqttBridge(
        "broker.lan",
        1884,
        username="ha",
        password="pw",
        identifier="hassbridge@test",
        client_factory=broker.factory,
    )


async def _no_sleep(delay: float) -> None:
    return None


# ---------------------------------------------------------------------------
# Connection and inbound messages
# ---------------------------------------------------------------------------


async def test_poll_connects_and_subscribes(broker: FakeBroker, bridge: MqttBridge) -> None:
    await bridge.subscribe("rika-firenet/x/on_off/set")
    broker.send("rika-firenet/x/on_off/set", b"ON")

    message = await bridge.poll()

    assert message == InboundMessage("rika-firenet/x/on_off/set", "ON")
    client = broker.clients[0]
    assert client.host == "broker.lan"
    assert client.kwargs == {
        "port": 1884,
        "username": "ha",
        "password": "pw",
        "identifier": "hassbridge@test",
    }
    assert client.subscriptions == ["homeassistant/status", "rika-firenet/x/on_off/set"]
    assert bridge.connected
    await bridge.aclose()
    assert client.closed


async def test_subscribe_while_connected(broker: FakeBroker, bridge: MqttBridge) -> None:
    broker.send("homeassistant/status", b"online")
    await bridge.poll()

    await bridge.subscribe("a/set", "a/set", "b/set")

    assert broker.clients[0].subscriptions == ["homeassistant/status", "a/set", "b/set"]
    await bridge.aclose()


async def test_stream_reconnects_and_resubscribes(broker: FakeBroker, bridge: MqttBridge) -> None:
    await bridge.subscribe("a/set")
    broker.refuse_connections = 2
    broker.send("a/set", b"1")
    broker.drop()
    broker.send("a/set", "2")

    received = []
    async for message in bridge.messages(ExponentialBackoff(0.01, 1.0), sleep=_no_sleep):
        received.append(message.payload)
        if len(received) == 2:
            break

    assert received == ["1", "2"]
    # Two refused attempts, one session that dropped, one live session.
    assert len(broker.clients) == 4
    assert broker.clients[2].closed
    assert broker.clients[3].subscriptions == ["homeassistant/status", "a/set"]
    await bridge.aclose()


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------


async def test_publish_without_connection_fails(bridge: MqttBridge) -> None:
    with pytest.raises(PublishError, match="MQTT client not available"):
        await bridge.publish("t", "x")


async def test_publish_uses_qos_1(broker: FakeBroker, bridge: MqttBridge) -> None:
    broker.send("homeassistant/status", b"online")
    await bridge.poll()

    await bridge.publish("t", "x", retain=True)

    assert broker.clients[0].published == [("t", "x", 1, True)]
    await bridge.aclose()


async def test_publisher_sends_config_and_data(
    broker: FakeBroker, bridge: MqttBridge, stove_payload: dict[str, Any]
) -> None:
    broker.send("homeassistant/status", b"online")
    await bridge.poll()
    router = CommandRouter()
    publisher = HomeAssistantPublisher(bridge, router, "homeassistant")
    status = StoveStatus.model_validate(stove_payload)
    snapshot = derive_entities(status)

    await publisher.publish_config("12345", snapshot)
    await publisher.publish_data("12345", status)

    client = broker.clients[0]
    *configs, data = client.published
    assert len(configs) == len(snapshot.entities)
    assert all(retain for _, _, _, retain in configs)
    topic, payload, _, _ = configs[0]
    assert topic == "homeassistant/sensor/RIKA_DOMO-Living_room-12345/status/config"
    assert json.loads(payload) == snapshot.entities[0].config

    assert data[0] == "rika-firenet/RIKA_DOMO-Living_room-12345/state"
    assert data[3] is False
    assert json.loads(data[1])["status"] == "Control"

    assert "rika-firenet/RIKA_DOMO-Living_room-12345/on_off/set" in router
    assert "rika-firenet/RIKA_DOMO-Living_room-12345/on_off/set" in client.subscriptions
    await bridge.aclose()
