"""Continuous runtime: wires the provider, MQTT and the scheduling engine.

Tasks
~~~~~
* **MQTT loop**: iterates the bridge's reconnecting message stream and hands
  every message to the :class:`~hassbridge.mqtt.commands.MessageDispatcher`.
* **Discovery loop**: a :class:`~hassbridge.orchestrator.executor.RepeatableExecutor`
  over ``provider.list_devices``; every id found gets a task in the
  :class:`~hassbridge.orchestrator.pool.DevicePool`.
* **Status loops**, one per stove: an executor over "fetch status, then
  reconcile".  Reconciliation republishes configuration only when the
  derived snapshot changed and always publishes the state data.
* **Flushes**: the :class:`~hassbridge.orchestrator.coalescer.CommandCoalescer`
  applies debounced commands and feeds the status read back into the same
  reconciler.  A poll and a flush of one stove never overlap: both hold
  that stove's reconciler lock from fetch to publish.

Every delay comes from policies built from :class:`~hassbridge.core.settings.Settings`
and handed to each executor; nothing is process-wide.

Typical usage::

    import asyncio
    from hassbridge.orchestrator.scheduler import run_continuous

    asyncio.run(run_continuous())
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import signal
from contextlib import AsyncExitStack
from typing import NoReturn

from hassbridge.core import events
from hassbridge.core.exceptions import ExecutionFailure
from hassbridge.core.models import PendingCommand, StoveStatus
from hassbridge.core.settings import Settings, load_settings
from hassbridge.mqtt.client import MqttBridge
from hassbridge.mqtt.commands import CommandRouter, MessageDispatcher
from hassbridge.mqtt.discovery import StoveEntities
from hassbridge.mqtt.publisher import HomeAssistantPublisher
from hassbridge.orchestrator.coalescer import CommandCoalescer
from hassbridge.orchestrator.executor import RepeatableExecutor
from hassbridge.orchestrator.pool import DevicePool
from hassbridge.orchestrator.reconcile import Reconciler
from hassbridge.providers.base import DeviceProvider
from hassbridge.providers.rika import RikaFirenetProvider
from hassbridge.providers.rika_entities import derive_entities

__all__ = [
    "build_bridge",
    "discovery_loop",
    "mqtt_loop",
    "run_continuous",
    "status_loop",
]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Loops
# ---------------------------------------------------------------------------


async def mqtt_loop(
    bridge: MqttBridge,
    dispatcher: MessageDispatcher,
    settings: Settings,
) -> NoReturn:
    """Dispatch inbound MQTT messages forever, reconnecting as needed."""
    backoff = settings.mqtt_backoff_policy()
    logger.info("MQTT loop started, reconnecting with %s.", backoff.display())
    async for message in bridge.messages(backoff):
        dispatcher.dispatch(message.topic, message.payload)
    raise RuntimeError("MQTT message stream ended unexpectedly")


async def discovery_loop(
    provider: DeviceProvider[StoveStatus],
    pool: DevicePool,
    settings: Settings,
) -> NoReturn:
    """List devices on the discovery schedule and start a task for each new one."""
    executor = RepeatableExecutor(
        provider.list_devices,
        repeat_policy=settings.rika_discovery_policy(),
        backoff_policy=settings.rika_backoff_policy(),
    )
    logger.info("Scheduling stove discovery: %s.", executor.describe())

    while True:
        try:
            device_ids = await executor.next()
        except ExecutionFailure as failure:
            logger.error(
                "Unable to list stoves, %s",
                failure,
                extra={"event": events.DISCOVERY_ERROR},
            )
            continue

        for device_id in device_ids:
            pool.ensure(device_id)
        logger.debug(
            "Discovery found %d stove(s); next run in %.0f s.",
            len(device_ids),
            executor.next_interval,
        )


async def status_loop(
    provider: DeviceProvider[StoveStatus],
    reconciler: Reconciler[StoveStatus, StoveEntities],
    settings: Settings,
    device_id: str,
) -> NoReturn:
    """Poll and reconcile one device on its status schedule."""

    async def refresh() -> StoveStatus:
        async with reconciler.lock(device_id):
            status = await provider.status(device_id)
            await reconciler.reconcile(device_id, status)
        return status

    executor = RepeatableExecutor(
        refresh,
        repeat_policy=settings.rika_status_policy(),
        backoff_policy=settings.rika_backoff_policy(),
    )
    logger.info("Scheduling status updates of stove %s: %s.", device_id, executor.describe())

    while True:
        try:
            status = await executor.next()
        except ExecutionFailure as failure:
            logger.error(
                "Unable to refresh stove %s, %s",
                device_id,
                failure,
                extra={"event": events.STATUS_POLL_ERROR},
            )
            continue
        logger.debug(
            "Stove %s is %s.",
            device_id,
            status.status_detail,
            extra={"event": events.STATUS_POLL_OK},
        )


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_bridge(settings: Settings) -> MqttBridge:
    return MqttBridge(
        settings.mqtt_host,
        settings.mqtt_port,
        username=settings.mqtt_username,
        password=settings.mqtt_password,
        status_topic=f"{settings.mqtt_discovery_prefix}/status",
    )


def _reject_command(command: PendingCommand) -> None:
    logger.warning(
        "No provider configured; dropping command for %s.",
        command.target_key,
        extra={"event": events.COMMAND_REJECTED},
    )


async def _run_tasks(tasks: list[asyncio.Task[NoReturn]]) -> NoReturn:
    """Await *tasks* with a SIGTERM handler cancelling them."""
    loop = asyncio.get_running_loop()
    # One-element mutable cell so the inner closure can write to it.
    _shutdown_signal: list[str] = []

    def _request_graceful_shutdown(signame: str) -> None:
        if not _shutdown_signal:
            _shutdown_signal.append(signame)
            logger.info("Received %s, graceful shutdown requested; cancelling tasks.", signame)
        for task in tasks:
            task.cancel()

    loop.add_signal_handler(signal.SIGTERM, lambda: _request_graceful_shutdown("SIGTERM"))

    try:
        # All loops are infinite; gather propagates the first exception
        # (including CancelledError on shutdown).
        await asyncio.gather(*tasks)
    except (asyncio.CancelledError, KeyboardInterrupt):
        if _shutdown_signal:
            logger.info("Graceful shutdown complete (signal: %s).", _shutdown_signal[0])
        else:
            logger.info("Continuous loop cancelled, stopping tasks.")
        raise
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        with contextlib.suppress(Exception):
            loop.remove_signal_handler(signal.SIGTERM)

    raise RuntimeError("run_continuous exited unexpectedly")


async def run_continuous(settings: Settings | None = None) -> NoReturn:
    """Run the bridge until cancelled.

    Opens the MQTT bridge and, when Rika credentials are configured, the
    Rika provider; starts the MQTT loop and the discovery loop; on exit
    (``SIGTERM``, Ctrl+C or a crash) cancels every task, drops pending
    commands and closes both connections.

    Args:
        settings: Application settings.  Loaded from environment if ``None``.

    Raises:
        ConfigError: Settings could not be loaded.
        asyncio.CancelledError: Normal shutdown path.
    """
    if settings is None:
        settings = load_settings()

    async with AsyncExitStack() as stack:
        bridge = build_bridge(settings)
        stack.push_async_callback(bridge.aclose)

        router = CommandRouter()
        publisher = HomeAssistantPublisher(bridge, router, settings.mqtt_discovery_prefix)
        reconciler: Reconciler[StoveStatus, StoveEntities] = Reconciler(
            functools.partial(derive_entities, base_url=settings.rika_baseurl),
            publisher,
        )

        tasks: list[asyncio.Task[NoReturn]] = []
        submit = _reject_command

        if settings.rika_configured:
            assert settings.rika_username is not None and settings.rika_password is not None
            provider = await stack.enter_async_context(
                RikaFirenetProvider(
                    settings.rika_baseurl,
                    settings.rika_username,
                    settings.rika_password,
                )
            )
            coalescer: CommandCoalescer[StoveStatus] = CommandCoalescer(
                provider.apply_commands,
                reconciler.reconcile,
                grace_period=settings.command_grace_period,
                lock_for=reconciler.lock,
            )
            stack.push_async_callback(coalescer.aclose)
            submit = coalescer.submit

            pool = DevicePool(functools.partial(status_loop, provider, reconciler, settings))
            stack.push_async_callback(pool.close)

            tasks.append(
                asyncio.create_task(
                    discovery_loop(provider, pool, settings),
                    name="hassbridge-discovery",
                )
            )
        else:
            logger.warning(
                "RIKA_USERNAME / RIKA_PASSWORD not set; stove integration disabled."
            )

        dispatcher = MessageDispatcher(
            router,
            submit,
            reconciler.invalidate,
            status_topic=bridge.status_topic,
        )
        tasks.append(
            asyncio.create_task(mqtt_loop(bridge, dispatcher, settings), name="hassbridge-mqtt")
        )

        logger.info(
            "hassbridge running: broker %s:%d, %d task(s).",
            settings.mqtt_host,
            settings.mqtt_port,
            len(tasks),
        )
        await _run_tasks(tasks)
