"""Provider interface contract for remote device APIs.

A provider is the bridge's only way to talk to a vendor's cloud.  It exposes
the three fallible operations the scheduling engine drives:

* :meth:`DeviceProvider.list_devices`: discovery, run by the discovery
  executor;
* :meth:`DeviceProvider.status`: one poll, run by each device's executor;
* :meth:`DeviceProvider.apply_commands`: one coalesced write, run by the
  command coalescer when a grace window closes.

Providers never retry on their own beyond re-establishing an expired
session; every other failure is raised as a
:class:`~hassbridge.core.exceptions.ProviderError` so the calling executor
can back off.

Typical usage::

    async with RikaFirenetProvider(base_url, username, password) as provider:
        for stove_id in await provider.list_devices():
            status = await provider.status(stove_id)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from types import TracebackType
from typing import ClassVar, Generic, TypeVar

from hassbridge.core.models import PendingCommand

__all__ = ["DeviceProvider"]

logger = logging.getLogger(__name__)

S = TypeVar("S")


class DeviceProvider(ABC, Generic[S]):
    """Abstract base for remote device APIs.

    Subclasses declare :attr:`name` at class level and implement the three
    operations below.  The async context manager protocol is provided for
    free; override :meth:`close` to release resources.

    Attributes:
        name: Short label used in errors and log lines (e.g. ``"rika"``).
    """

    name: ClassVar[str]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:  # noqa: B027
        """Release any resources held by this provider.  No-op by default."""

    async def __aenter__(self) -> DeviceProvider[S]:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Core contract
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_devices(self) -> list[str]:
        """Return the ids of every device reachable with this account.

        Raises:
            ProviderError: When the device list cannot be fetched.
        """

    @abstractmethod
    async def status(self, device_id: str) -> S:
        """Fetch the current status of one device.

        Raises:
            ProviderError: When the status cannot be fetched or parsed.
        """

    @abstractmethod
    async def apply_commands(self, device_id: str, commands: Sequence[PendingCommand]) -> S:
        """Fetch, merge *commands* in order, write back, and re-fetch.

        Later commands for the same attribute override earlier ones.

        Returns:
            The status read back after the write.

        Raises:
            ProviderError: When any of the round-trips fails.  Nothing is
                retried; the commands are lost.
        """
