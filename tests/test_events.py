from __future__ import annotations

import asyncio

import pytest

from cpenctl.core.events import NO_DATA, EventBridge


@pytest.mark.asyncio
async def test_recv_returns_first_push(hardware) -> None:
    bridge = EventBridge(hardware, timeout_s=1.0)
    loop = asyncio.get_running_loop()
    loop.call_later(0.01, hardware.push, b"hello")
    loop.call_later(0.02, hardware.push, b"ignored")

    assert await bridge.recv() == "hello"
    assert hardware.subscriber_count == 0


@pytest.mark.asyncio
async def test_recv_returns_sentinel_after_timeout(hardware) -> None:
    bridge = EventBridge(hardware)
    loop = asyncio.get_running_loop()

    started = loop.time()
    data = await bridge.recv(timeout_s=0.05)
    elapsed = loop.time() - started

    assert data == NO_DATA == ""
    assert 0.04 <= elapsed < 0.5
    assert hardware.subscriber_count == 0


@pytest.mark.asyncio
async def test_recv_decodes_invalid_utf8_lossily(hardware) -> None:
    bridge = EventBridge(hardware, timeout_s=1.0)
    asyncio.get_running_loop().call_soon(hardware.push, b"ok\xff")

    assert await bridge.recv() == "ok\ufffd"


@pytest.mark.asyncio
async def test_cancelled_recv_unsubscribes(hardware) -> None:
    bridge = EventBridge(hardware, timeout_s=5.0)
    task = asyncio.ensure_future(bridge.recv())
    await asyncio.sleep(0)
    assert hardware.subscriber_count == 1

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert hardware.subscriber_count == 0
