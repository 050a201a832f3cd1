"""Unit tests for CommandCoalescer and merge_commands.

Grace periods are kept to a few tens of milliseconds so the debounce runs on
the real event loop clock.
"""

from __future__ import annotations

import asyncio
import logging

import pytest

from hassbridge.core.exceptions import ProviderFetchError
from hassbridge.core.models import PendingCommand, StoveAttribute
from hassbridge.orchestrator.coalescer import CommandCoalescer, merge_commands

GRACE = 0.05


class FakeDevice:
    """Records every apply call and answers with the merged values."""

    def __init__(self, *, fail: bool = False, delay: float = 0.0) -> None:
        self.fail = fail
        self.delay = delay
        self.applied: list[tuple[str, list[PendingCommand]]] = []
        self.reconciled: list[tuple[str, dict]] = []
        self.active = 0
        self.max_active = 0

    async def apply(self, key: str, commands: list[PendingCommand]) -> dict:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            self.applied.append((key, list(commands)))
            if self.fail:
                raise ProviderFetchError("rika", "HTTP 502")
            return {str(attr): value for attr, value in merge_commands(commands).items()}
        finally:
            self.active -= 1

    async def on_applied(self, key: str, status: dict) -> None:
        self.reconciled.append((key, status))


def _cmd(key: str, attribute: StoveAttribute, value: bool | int) -> PendingCommand:
    return PendingCommand(key, attribute, value)


# ---------------------------------------------------------------------------
# merge_commands
# ---------------------------------------------------------------------------


def test_merge_commands_last_write_wins() -> None:
    merged = merge_commands(
        [
            _cmd("s1", StoveAttribute.TARGET_TEMPERATURE, 20),
            _cmd("s1", StoveAttribute.ON_OFF, True),
            _cmd("s1", StoveAttribute.TARGET_TEMPERATURE, 22),
        ]
    )
    assert merged == {
        StoveAttribute.TARGET_TEMPERATURE: 22,
        StoveAttribute.ON_OFF: True,
    }


def test_merge_commands_empty() -> None:
    assert merge_commands([]) == {}


# ---------------------------------------------------------------------------
# Debounce
# ---------------------------------------------------------------------------


async def test_burst_is_flushed_once_in_order() -> None:
    device = FakeDevice()
    coalescer = CommandCoalescer(device.apply, device.on_applied, grace_period=GRACE)
    burst = [
        _cmd("s1", StoveAttribute.TARGET_TEMPERATURE, value) for value in (19, 20, 21, 22)
    ]

    for command in burst:
        coalescer.submit(command)
        await asyncio.sleep(GRACE / 5)

    assert device.applied == []
    await asyncio.sleep(GRACE * 3)

    assert device.applied == [("s1", burst)]
    assert device.reconciled == [("s1", {"target_temperature": 22})]
    assert coalescer.pending("s1") == []
    await coalescer.aclose()


async def test_flush_happens_one_grace_period_after_last_command() -> None:
    loop = asyncio.get_running_loop()
    flushed_at: list[float] = []
    device = FakeDevice()

    async def apply(key: str, commands: list[PendingCommand]) -> dict:
        flushed_at.append(loop.time())
        return await device.apply(key, commands)

    coalescer = CommandCoalescer(apply, device.on_applied, grace_period=GRACE)
    start = loop.time()
    coalescer.submit(_cmd("s1", StoveAttribute.ON_OFF, True))
    await asyncio.sleep(GRACE / 5)
    coalescer.submit(_cmd("s1", StoveAttribute.HEATING_POWER, 60))
    await asyncio.sleep(GRACE / 5)
    last = loop.time()
    coalescer.submit(_cmd("s1", StoveAttribute.ON_OFF, False))
    await asyncio.sleep(GRACE * 3)

    assert len(flushed_at) == 1
    assert flushed_at[0] - last >= GRACE * 0.9
    assert flushed_at[0] - start >= (GRACE + 2 * GRACE / 5) * 0.9
    assert device.reconciled == [("s1", {"on_off": False, "heating_power": 60})]
    await coalescer.aclose()


async def test_keys_are_flushed_independently() -> None:
    device = FakeDevice()
    coalescer = CommandCoalescer(device.apply, device.on_applied, grace_period=GRACE)

    coalescer.submit(_cmd("s1", StoveAttribute.ON_OFF, True))
    coalescer.submit(_cmd("s2", StoveAttribute.ON_OFF, False))
    await asyncio.sleep(GRACE * 3)

    assert sorted(key for key, _ in device.applied) == ["s1", "s2"]
    await coalescer.aclose()


async def test_busy_key_does_not_delay_another() -> None:
    device = FakeDevice()
    coalescer = CommandCoalescer(device.apply, device.on_applied, grace_period=GRACE)

    coalescer.submit(_cmd("s2", StoveAttribute.ON_OFF, True))
    # Keep s1 busy past the point where s2 must have flushed.
    for value in range(20, 26):
        coalescer.submit(_cmd("s1", StoveAttribute.TARGET_TEMPERATURE, value))
        await asyncio.sleep(GRACE / 2)

    assert [key for key, _ in device.applied] == ["s2"]
    await asyncio.sleep(GRACE * 3)
    assert [key for key, _ in device.applied] == ["s2", "s1"]
    await coalescer.aclose()


async def test_command_during_flush_starts_a_new_batch() -> None:
    device = FakeDevice(delay=GRACE * 2)
    coalescer = CommandCoalescer(device.apply, device.on_applied, grace_period=GRACE)

    first = _cmd("s1", StoveAttribute.ON_OFF, True)
    second = _cmd("s1", StoveAttribute.HEATING_POWER, 80)

    coalescer.submit(first)
    await asyncio.sleep(GRACE * 1.5)  # first flush is now writing
    coalescer.submit(second)
    await asyncio.sleep(GRACE * 6)

    assert device.applied == [("s1", [first]), ("s1", [second])]
    assert device.max_active == 1
    await coalescer.aclose()


async def test_flush_waits_for_a_shared_key_lock() -> None:
    device = FakeDevice()
    shared = asyncio.Lock()
    coalescer = CommandCoalescer(
        device.apply, device.on_applied, grace_period=GRACE, lock_for=lambda key: shared
    )

    async with shared:
        coalescer.submit(_cmd("s1", StoveAttribute.ON_OFF, True))
        await asyncio.sleep(GRACE * 3)
        assert device.applied == []

    await asyncio.sleep(GRACE)
    assert [key for key, _ in device.applied] == ["s1"]
    await coalescer.aclose()


# ---------------------------------------------------------------------------
# Failures and shutdown
# ---------------------------------------------------------------------------


async def test_failed_flush_drops_commands(caplog: pytest.LogCaptureFixture) -> None:
    device = FakeDevice(fail=True)
    coalescer = CommandCoalescer(device.apply, device.on_applied, grace_period=GRACE)

    with caplog.at_level(logging.ERROR, logger="hassbridge.orchestrator.coalescer"):
        coalescer.submit(_cmd("s1", StoveAttribute.ON_OFF, True))
        await asyncio.sleep(GRACE * 3)

    assert len(device.applied) == 1
    assert device.reconciled == []
    assert coalescer.pending("s1") == []
    assert "1 command(s) dropped" in caplog.text

    # A later command is applied on its own, the dropped one is not replayed.
    device.fail = False
    later = _cmd("s1", StoveAttribute.HEATING_POWER, 50)
    coalescer.submit(later)
    await asyncio.sleep(GRACE * 3)
    assert device.applied[-1] == ("s1", [later])
    await coalescer.aclose()


async def test_aclose_drops_pending_commands() -> None:
    device = FakeDevice()
    coalescer = CommandCoalescer(device.apply, device.on_applied, grace_period=10.0)

    coalescer.submit(_cmd("s1", StoveAttribute.ON_OFF, True))
    assert len(coalescer.pending("s1")) == 1

    await coalescer.aclose()

    assert coalescer.pending("s1") == []
    assert device.applied == []
