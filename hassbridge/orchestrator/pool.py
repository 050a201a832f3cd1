"""Supervised pool of per-device tasks.

Discovery calls :meth:`DevicePool.ensure` for every device id it sees; the
first call starts one long-running task for that device, later calls are
no-ops.  Tasks are only torn down by :meth:`DevicePool.remove` or
:meth:`DevicePool.close`.  A device missing from a later discovery keeps its
task: its polls fail and back off until it comes back or is removed.

Every task runs with :data:`~hassbridge.core.logging_config.DEVICE_ID_CTX`
set to its device id, so all log lines it emits carry that id.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from hassbridge.core import events
from hassbridge.core.logging_config import DEVICE_ID_CTX

__all__ = ["DevicePool"]

logger = logging.getLogger(__name__)


class DevicePool:
    """One task per device id, keyed by that id.

    Args:
        runner: ``runner(device_id)`` coroutine function run as the device's
            task.  It is expected to loop until cancelled.
    """

    def __init__(self, runner: Callable[[str], Awaitable[None]]) -> None:
        self._runner = runner
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def device_ids(self) -> list[str]:
        return list(self._tasks)

    def ensure(self, device_id: str) -> bool:
        """Start the task for *device_id* unless it is already running.

        A task that ended (its runner returned or crashed) is restarted.

        Returns:
            ``True`` if a task was started.
        """
        task = self._tasks.get(device_id)
        if task is not None and not task.done():
            return False

        if task is None:
            logger.info(
                "Discovered device %s.",
                device_id,
                extra={"event": events.DEVICE_DISCOVERED},
            )
        else:
            logger.warning("Task for device %s had stopped; restarting it.", device_id)

        self._tasks[device_id] = asyncio.create_task(
            self._run(device_id),
            name=f"hassbridge-device-{device_id}",
        )
        return True

    async def remove(self, device_id: str) -> bool:
        """Cancel and forget the task of *device_id*.

        Returns:
            ``True`` if the device was known.
        """
        task = self._tasks.pop(device_id, None)
        if task is None:
            return False
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info("Removed device %s.", device_id, extra={"event": events.DEVICE_REMOVED})
        return True

    async def close(self) -> None:
        """Cancel every task and wait for them to finish."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.debug("Device pool closed (%d task(s) cancelled).", len(tasks))

    async def _run(self, device_id: str) -> None:
        token = DEVICE_ID_CTX.set(device_id)
        try:
            await self._runner(device_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Task for device %s crashed.", device_id)
            raise
        finally:
            DEVICE_ID_CTX.reset(token)
