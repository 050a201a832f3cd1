"""Home Assistant MQTT discovery snapshot.

A :class:`StoveEntities` snapshot is everything Home Assistant needs to know
about one device's entities: their components, ids, names, units, device
block and topics.  It deliberately excludes every live reading, so two polls
of an unchanged device derive equal snapshots and the reconciler publishes
nothing but the state data.

Both models are frozen and compare field by field, never by serialised text.

Topics::

    <prefix>/<component>/<unique-id>/<object-id>/config     (retained)
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict

__all__ = ["EntityConfig", "StoveEntities", "config_topic"]

logger = logging.getLogger(__name__)


class EntityConfig(BaseModel):
    """Discovery configuration of one entity.

    Attributes:
        component: Home Assistant platform (``sensor``, ``switch``, ...).
        object_id: Entity suffix, unique within its device.
        config: The discovery payload, published as JSON.
    """

    model_config = ConfigDict(frozen=True)

    component: str
    object_id: str
    config: dict[str, Any]


class StoveEntities(BaseModel):
    """Snapshot of one stove's discovery configuration."""

    model_config = ConfigDict(frozen=True)

    display_name: str
    unique_id: str
    topic_prefix: str
    state_topic: str
    entities: tuple[EntityConfig, ...]

    def __str__(self) -> str:
        return f"stove {self.display_name}"


def config_topic(prefix: str, snapshot: StoveEntities, entity: EntityConfig) -> str:
    """Retained discovery topic of *entity*."""
    return f"{prefix}/{entity.component}/{snapshot.unique_id}/{entity.object_id}/config"
