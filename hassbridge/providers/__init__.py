"""Remote device API clients."""

from hassbridge.providers.base import DeviceProvider
from hassbridge.providers.rika import RikaFirenetProvider

__all__ = ["DeviceProvider", "RikaFirenetProvider"]
