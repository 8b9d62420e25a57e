import asyncio

import pytest

from renderer.timeout_guard import TimeoutGuard


@pytest.mark.asyncio
async def test_fires_once_after_delay():
    fired = []
    guard = TimeoutGuard()
    guard.arm(0.05, lambda: fired.append("x"))
    assert guard.armed

    await asyncio.sleep(0.15)

    assert fired == ["x"]
    assert not guard.armed


@pytest.mark.asyncio
async def test_disarm_prevents_callback():
    fired = []
    guard = TimeoutGuard()
    guard.arm(0.05, lambda: fired.append("x"))
    guard.disarm()

    await asyncio.sleep(0.1)

    assert fired == []
    assert not guard.armed


@pytest.mark.asyncio
async def test_rearm_replaces_previous_timer():
    fired = []
    guard = TimeoutGuard(asyncio.get_running_loop())
    guard.arm(0.05, lambda: fired.append("old"))
    guard.arm(0.1, lambda: fired.append("new"))

    await asyncio.sleep(0.2)

    assert fired == ["new"]


@pytest.mark.asyncio
async def test_disarm_without_arm_is_noop():
    guard = TimeoutGuard()
    guard.disarm()
    assert not guard.armed
