"""Home Assistant publish sink used by the reconciler.

* :meth:`HomeAssistantPublisher.publish_config` sends one retained discovery
  message per entity of a snapshot and starts listening on the device's
  command topics.
* :meth:`HomeAssistantPublisher.publish_data` sends the enriched status JSON
  on the device's state topic.

Both raise :class:`~hassbridge.core.exceptions.PublishError` when the broker
is unavailable; the reconciler forgets the snapshot on a failed configuration
publish so the next status retries it.
"""

from __future__ import annotations

import json
import logging

from hassbridge.core.models import StoveStatus
from hassbridge.mqtt.client import MqttBridge
from hassbridge.mqtt.commands import CommandRouter
from hassbridge.mqtt.discovery import StoveEntities, config_topic
from hassbridge.providers.rika_entities import state_topic

__all__ = ["HomeAssistantPublisher"]

logger = logging.getLogger(__name__)


class HomeAssistantPublisher:
    """Publish discovery configuration and state data for stoves.

    Args:
        bridge: Connected (or connecting) MQTT bridge.
        router: Registry the device's command topics are added to.
        discovery_prefix: Home Assistant discovery prefix.
    """

    def __init__(
        self,
        bridge: MqttBridge,
        router: CommandRouter,
        discovery_prefix: str = "homeassistant",
    ) -> None:
        self._bridge = bridge
        self._router = router
        self.discovery_prefix = discovery_prefix

    async def publish_config(self, device_id: str, snapshot: StoveEntities) -> None:
        topics = self._router.register(device_id, snapshot.topic_prefix)
        await self._bridge.subscribe(*topics)

        for entity in snapshot.entities:
            await self._bridge.publish(
                config_topic(self.discovery_prefix, snapshot, entity),
                json.dumps(entity.config),
                retain=True,
            )
        logger.info(
            "Published %d entity configuration(s) for %s.",
            len(snapshot.entities),
            snapshot,
        )

    async def publish_data(self, device_id: str, status: StoveStatus) -> None:
        await self._bridge.publish(state_topic(status), json.dumps(status.state_payload()))
