from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from cpenctl.core.model import DeviceProfile, TimingSpec, TransportSpec

TARGET_LINE = "CpenA1 - 00:11:22:33:44:55"
OTHER_LINE = "Other - AA:BB:CC:DD:EE:FF"


class FakeHardware:
    """In-memory hardware access that answers commands by name."""

    def __init__(
        self,
        devices: list[str] | None = None,
        replies: dict[str, str | Callable[[], str] | None] | None = None,
        *,
        reply_via: str = "push",
        reply_delay: float = 0.0,
    ) -> None:
        self.devices = list(devices) if devices is not None else [TARGET_LINE, OTHER_LINE]
        self.replies = (
            dict(replies)
            if replies is not None
            else {"setTime": "OK", "getTotp": "123456", "getId": "cpen-0001"}
        )
        self.reply_via = reply_via
        self.reply_delay = reply_delay
        self.connect_delay = 0.0
        self.scan_error: Exception | None = None
        self.connect_error: Exception | None = None
        self.scan_calls = 0
        self.connected_to: list[str] = []
        self.disconnect_calls = 0
        self.connected = False
        self.writes: list[str] = []
        self.events: list[tuple[str, str]] = []
        self.link_lost: Callable[[], None] | None = None
        self._subscribers: list[Callable[[bytes], None]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def writes_of(self, name: str) -> list[str]:
        return [w for w in self.writes if w.split(":", 1)[0] == name]

    async def scan(self) -> list[str]:
        self.scan_calls += 1
        await asyncio.sleep(0)
        if self.scan_error is not None:
            raise self.scan_error
        return list(self.devices)

    async def connect(self, address: str, *, on_link_lost=None) -> None:
        self.connected_to.append(address)
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True
        self.link_lost = on_link_lost

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False

    async def write(self, payload: bytes) -> bytes | None:
        command = payload.decode("utf-8")
        self.writes.append(command)
        self.events.append(("write", command))
        reply = self.replies.get(command.split(":", 1)[0])
        if callable(reply):
            reply = reply()
        if reply is None:
            return None
        if self.reply_via == "return":
            if self.reply_delay:
                await asyncio.sleep(self.reply_delay)
            self.events.append(("reply", command))
            return reply.encode("utf-8")
        asyncio.get_running_loop().call_later(self.reply_delay, self._reply, command, reply.encode("utf-8"))
        return None

    def on_push(self, callback: Callable[[bytes], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            self._subscribers = [c for c in self._subscribers if c is not callback]

        return _unsubscribe

    def push(self, data: bytes) -> None:
        for callback in list(self._subscribers):
            callback(data)

    def drop_link(self) -> None:
        self.connected = False
        if self.link_lost is not None:
            self.link_lost()

    def _reply(self, command: str, data: bytes) -> None:
        self.events.append(("reply", command))
        self.push(data)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_profile(*, drain_pushes: bool = False, **timing: float) -> DeviceProfile:
    values = {
        "command_timeout_s": 0.05,
        "value_ttl_s": 30.0,
        "recv_timeout_s": 0.1,
        "connect_budget_s": 1.0,
        "connect_settle_s": 0.0,
    }
    values.update(timing)
    return DeviceProfile(
        id="test",
        name="Test profile",
        transport=TransportSpec(
            service_uuid="d816e4c6-1b99-4da7-bcd5-7c37cc2642c4",
            char_uuid="d816e4c7-1b99-4da7-bcd5-7c37cc2642c4",
        ),
        timing=TimingSpec(**values),
        drain_pushes=drain_pushes,
    )


@pytest.fixture
def hardware() -> FakeHardware:
    return FakeHardware()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def profile() -> DeviceProfile:
    return make_profile()


@pytest.fixture
def profile_factory() -> Callable[..., DeviceProfile]:
    return make_profile


@pytest.fixture
def hardware_factory() -> Callable[..., FakeHardware]:
    return FakeHardware
