from __future__ import annotations

import asyncio

import pytest

from keywatch.core.connector import DEFAULT_LOADING_FAILED_MESSAGE, Connector
from keywatch.core.device import Device
from keywatch.core.errors import DeviceInitializationError, TransportAcquireError
from keywatch.core.hooks import HookChain, abort_hook
from keywatch.core.model import DeviceDescriptor
from keywatch.core.registry import DeviceRegistry
from keywatch.core.store import MemoryStore


class FakeSession:
    def __init__(self, features: dict | None = None, error: Exception | None = None) -> None:
        self.features = features if features is not None else {"bootloader_mode": False}
        self.error = error

    async def initialize(self) -> dict:
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.features


class FakeTransport:
    def __init__(self, session: FakeSession | None = None, acquire_error: Exception | None = None) -> None:
        self.session = session or FakeSession()
        self.acquire_error = acquire_error
        self.acquired: list[str] = []

    async def enumerate(self, can_wait: bool) -> list:
        return []

    async def acquire(self, desc: DeviceDescriptor) -> FakeSession:
        self.acquired.append(desc.id)
        await asyncio.sleep(0)
        if self.acquire_error is not None:
            raise self.acquire_error
        return self.session


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[str] = []

    def error(self, message: str) -> None:
        self.messages.append(message)


class FullDiskStore(MemoryStore):
    """Accepts the initial record, then refuses writes once features are known."""

    def save(self, records) -> None:
        if any(record.features for record in records):
            raise OSError("disk full")
        super().save(records)


class Harness:
    def __init__(self, transport: FakeTransport | None = None, store: MemoryStore | None = None) -> None:
        self.store = store or MemoryStore(version="1")
        self.registry = DeviceRegistry(self.store)
        self.transport = transport or FakeTransport()
        self.notifier = RecordingNotifier()
        self.before_init = HookChain("before-init")
        self.after_init = HookChain("after-init")
        self.disconnect = HookChain("disconnect")
        self.connector = Connector(
            self.registry,
            self.transport,
            before_init=self.before_init,
            after_init=self.after_init,
            disconnect=self.disconnect,
            notifier=self.notifier,
        )


@pytest.mark.asyncio
async def test_connect_new_device_runs_hooks_and_initializes() -> None:
    harness = Harness()
    events: list[tuple[str, str, bool]] = []

    harness.before_init.register(lambda dev: events.append(("before", dev.id, dev.features is None)))
    harness.after_init.register(lambda dev: events.append(("after", dev.id, dev.loading)))

    device = await harness.connector.connect(DeviceDescriptor(id="A", path="/dev/hid0"))

    assert harness.registry.get("A") is device
    assert harness.transport.acquired == ["A"]
    assert events == [("before", "A", True), ("after", "A", True)]
    assert device.features is not None and device.features.bootloader_mode is False
    assert device.connected
    assert device.loading is False
    assert harness.notifier.messages == []
    assert harness.store.records[0].features == {"bootloader_mode": False}


@pytest.mark.asyncio
async def test_connect_reuses_known_device() -> None:
    harness = Harness()
    known = Device("A")
    harness.registry.add(known)

    device = await harness.connector.connect(DeviceDescriptor(id="A"))

    assert device is known
    assert harness.registry.count(include_bootloader=True) == 1


@pytest.mark.asyncio
async def test_abort_in_hook_is_silent() -> None:
    harness = Harness()
    after: list[str] = []

    def refuse(dev):
        abort_hook()

    harness.before_init.register(refuse)
    harness.after_init.register(lambda dev: after.append(dev.id))

    device = await harness.connector.connect(DeviceDescriptor(id="A"))

    assert after == []
    assert harness.notifier.messages == []
    assert device.features is None
    assert device.loading is False
    assert not device.connected


@pytest.mark.asyncio
async def test_hook_error_notifies_once() -> None:
    harness = Harness()
    calls: list[str] = []

    def first(dev):
        calls.append("first")

    def second(dev):
        calls.append("second")
        raise ValueError("Wrong passphrase")

    def third(dev):
        calls.append("third")

    harness.after_init.register(first, priority=1)
    harness.after_init.register(second, priority=2)
    harness.after_init.register(third, priority=3)

    device = await harness.connector.connect(DeviceDescriptor(id="A"))

    assert calls == ["first", "second"]
    assert harness.notifier.messages == ["Wrong passphrase"]
    assert device.loading is False


@pytest.mark.asyncio
async def test_error_without_message_uses_default() -> None:
    harness = Harness()

    def fail(dev):
        raise RuntimeError()

    harness.before_init.register(fail)
    device = await harness.connector.connect(DeviceDescriptor(id="A"))
    assert harness.notifier.messages == [DEFAULT_LOADING_FAILED_MESSAGE]
    assert not device.connected


@pytest.mark.asyncio
async def test_initialization_failure_disconnects_and_skips_after_hooks() -> None:
    transport = FakeTransport(session=FakeSession(error=OSError("USB stall")))
    harness = Harness(transport)
    after: list[str] = []
    harness.after_init.register(lambda dev: after.append(dev.id))

    device = await harness.connector.connect(DeviceDescriptor(id="A"))

    assert after == []
    assert not device.connected
    assert device.features is None
    assert len(harness.notifier.messages) == 1
    assert "USB stall" in harness.notifier.messages[0]


@pytest.mark.asyncio
async def test_initialization_failure_is_domain_error() -> None:
    device = Device("A")
    device.connect(FakeSession(error=OSError("USB stall")))
    with pytest.raises(DeviceInitializationError):
        await device.initialize_device()


@pytest.mark.asyncio
async def test_acquire_failure_is_reported() -> None:
    transport = FakeTransport(acquire_error=TransportAcquireError("Device is used by another application"))
    harness = Harness(transport)
    before: list[str] = []
    harness.before_init.register(lambda dev: before.append(dev.id))

    device = await harness.connector.connect(DeviceDescriptor(id="A"))

    assert before == []
    assert not device.connected
    assert harness.notifier.messages == ["Device is used by another application"]


@pytest.mark.asyncio
async def test_same_device_connects_are_serialized() -> None:
    harness = Harness()
    active = 0
    peak = 0

    async def slow(dev):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1

    harness.before_init.register(slow)
    desc = DeviceDescriptor(id="A")
    await asyncio.gather(harness.connector.connect(desc), harness.connector.connect(desc))

    assert peak == 1
    assert harness.transport.acquired == ["A", "A"]
    assert harness.registry.count(include_bootloader=True) == 1


@pytest.mark.asyncio
async def test_different_devices_connect_concurrently() -> None:
    harness = Harness()
    active = 0
    peak = 0

    async def slow(dev):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1

    harness.before_init.register(slow)
    await asyncio.gather(
        harness.connector.connect(DeviceDescriptor(id="A")),
        harness.connector.connect(DeviceDescriptor(id="B")),
    )
    assert peak == 2


@pytest.mark.asyncio
async def test_disconnect_marks_device_then_runs_hooks() -> None:
    harness = Harness()
    device = await harness.connector.connect(DeviceDescriptor(id="A"))
    seen: list[bool] = []
    harness.disconnect.register(lambda dev: seen.append(dev.connected))

    result = await harness.connector.disconnect(DeviceDescriptor(id="A"))

    assert result is device
    assert seen == [False]
    assert device.features is not None
    assert harness.registry.get("A") is device


@pytest.mark.asyncio
async def test_disconnect_hook_failure_keeps_device_disconnected() -> None:
    harness = Harness()
    device = await harness.connector.connect(DeviceDescriptor(id="A"))

    def fail(dev):
        raise RuntimeError("boom")

    harness.disconnect.register(fail)
    await harness.connector.disconnect(DeviceDescriptor(id="A"))

    assert not device.connected
    assert harness.notifier.messages == []


@pytest.mark.asyncio
async def test_disconnect_unknown_descriptor_is_noop() -> None:
    harness = Harness()
    calls: list[str] = []
    harness.disconnect.register(lambda dev: calls.append(dev.id))
    assert await harness.connector.disconnect(DeviceDescriptor(id="ghost")) is None
    assert calls == []


@pytest.mark.asyncio
async def test_store_failure_after_initialize_is_reported() -> None:
    harness = Harness(store=FullDiskStore(version="1"))
    after: list[str] = []
    harness.after_init.register(lambda dev: after.append(dev.id))

    device = await harness.connector.connect(DeviceDescriptor(id="A"))

    assert harness.notifier.messages == ["disk full"]
    assert after == []
    assert device.loading is False


@pytest.mark.asyncio
async def test_disconnect_waits_for_connect_in_progress() -> None:
    harness = Harness()
    release = asyncio.Event()
    events: list[str] = []

    async def hold(dev):
        events.append("before-init")
        await release.wait()

    harness.before_init.register(hold)
    harness.after_init.register(lambda dev: events.append("after-init"))
    harness.disconnect.register(lambda dev: events.append("disconnect"))
    desc = DeviceDescriptor(id="A")

    connecting = asyncio.create_task(harness.connector.connect(desc))
    for _ in range(5):
        await asyncio.sleep(0)
    disconnecting = asyncio.create_task(harness.connector.disconnect(desc))
    for _ in range(5):
        await asyncio.sleep(0)

    device = harness.registry.get("A")
    assert events == ["before-init"]
    assert device.loading
    assert device.connected

    release.set()
    await asyncio.gather(connecting, disconnecting)

    assert events == ["before-init", "after-init", "disconnect"]
    assert not device.connected
    assert harness.notifier.messages == []
