"""MQTT connection shared by the publisher and the inbound dispatcher.

:class:`MqttBridge` wraps one :class:`aiomqtt.Client`.  The connection is
opened lazily by :meth:`MqttBridge.poll`, which the reconnecting stream calls
in a loop: a failed connect or a dropped connection raises, the stream backs
off, and the next poll reconnects.  Every (re)connect subscribes again to the
Home Assistant status topic and to every command topic registered so far.

Publishing while disconnected raises
:class:`~hassbridge.core.exceptions.PublishError` immediately; nothing is
queued.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Any

import aiomqtt

from hassbridge.core import events
from hassbridge.core.exceptions import PublishError
from hassbridge.core.ids import client_identifier
from hassbridge.orchestrator.executor import Sleeper
from hassbridge.orchestrator.policy import RepeatPolicy
from hassbridge.orchestrator.stream import ReconnectingStream

__all__ = ["InboundMessage", "MqttBridge"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InboundMessage:
    """A message received on a subscribed topic, payload decoded as text."""

    topic: str
    payload: str


class MqttBridge:
    """Lazily connected MQTT client with re-subscription on reconnect.

    Args:
        host: Broker host name.
        port: Broker port.
        username: Broker user, or ``None`` for anonymous access.
        password: Broker password.
        identifier: MQTT client id.  Defaults to ``hassbridge@<hostname>``.
        status_topic: Home Assistant birth / last-will topic, always
            subscribed.
        client_factory: Builds the :class:`aiomqtt.Client`; tests pass a fake.
    """

    def __init__(
        self,
        host: str,
        port: int = 1883,
        *,
        username: str | None = None,
        password: str | None = None,
        identifier: str | None = None,
        status_topic: str = "homeassistant/status",
        client_factory: Callable[..., Any] = aiomqtt.Client,
    ) -> None:
        self.host = host
        self.port = port
        self._username = username or None
        self._password = password or None
        self._identifier = identifier or client_identifier()
        self.status_topic = status_topic
        self._client_factory = client_factory
        # dict as an ordered set
        self._subscriptions: dict[str, None] = {status_topic: None}
        self._client: Any = None
        self._stack: AsyncExitStack | None = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def publish(self, topic: str, payload: str | bytes, *, retain: bool = False) -> None:
        """Publish one message with QoS 1.

        Raises:
            PublishError: When not connected or the broker call fails.
        """
        client = self._client
        if client is None:
            raise PublishError(topic, "MQTT client not available")
        try:
            await client.publish(topic, payload=payload, qos=1, retain=retain)
        except aiomqtt.MqttError as exc:
            raise PublishError(topic, str(exc)) from exc

    async def subscribe(self, *topics: str) -> None:
        """Subscribe to *topics* now if connected, and after every reconnect."""
        new = [topic for topic in dict.fromkeys(topics) if topic not in self._subscriptions]
        for topic in new:
            self._subscriptions[topic] = None
        client = self._client
        if client is None:
            return
        for topic in new:
            try:
                await client.subscribe(topic, qos=1)
            except aiomqtt.MqttError as exc:
                # Kept in the subscription set; retried on the next connect.
                logger.warning("Unable to subscribe to %s: %s", topic, exc)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def poll(self) -> InboundMessage:
        """Connect if needed, then wait for the next inbound message.

        Raises:
            aiomqtt.MqttError: When connecting fails or the connection drops;
                the bridge is disconnected and the next poll reconnects.
        """
        if self._client is None:
            await self._connect()
        client = self._client
        try:
            message = await anext(client.messages)
        except aiomqtt.MqttError:
            await self._disconnect()
            raise
        return InboundMessage(topic=message.topic.value, payload=_payload_text(message.payload))

    def messages(
        self,
        backoff_policy: RepeatPolicy,
        *,
        sleep: Sleeper = asyncio.sleep,
    ) -> ReconnectingStream[InboundMessage]:
        """Infinite stream of inbound messages surviving broker outages."""
        return ReconnectingStream(
            self.poll,
            backoff_policy,
            sleep=sleep,
            label=f"MQTT broker {self.host}:{self.port}",
            retry_on=(aiomqtt.MqttError,),
        )

    async def aclose(self) -> None:
        await self._disconnect()

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def _connect(self) -> None:
        stack = AsyncExitStack()
        try:
            client = await stack.enter_async_context(
                self._client_factory(
                    self.host,
                    port=self.port,
                    username=self._username,
                    password=self._password,
                    identifier=self._identifier,
                )
            )
            # Topics registered while subscribing are picked up by the next pass.
            done: set[str] = set()
            while pending := [topic for topic in self._subscriptions if topic not in done]:
                for topic in pending:
                    await client.subscribe(topic, qos=1)
                    done.add(topic)
        except BaseException:
            with contextlib.suppress(aiomqtt.MqttError):
                await stack.aclose()
            raise

        self._stack = stack
        self._client = client
        logger.info(
            "Connected to MQTT broker %s:%d as %s (%d subscription(s)).",
            self.host,
            self.port,
            self._identifier,
            len(self._subscriptions),
            extra={"event": events.MQTT_CONNECTED},
        )

    async def _disconnect(self) -> None:
        stack, self._stack, self._client = self._stack, None, None
        if stack is not None:
            with contextlib.suppress(aiomqtt.MqttError):
                await stack.aclose()


def _payload_text(payload: Any) -> str:
    if payload is None:
        return ""
    if isinstance(payload, bytes | bytearray):
        return bytes(payload).decode("utf-8", errors="replace")
    return str(payload)
