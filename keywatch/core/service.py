"""Device manager used by the CLI and embedding applications."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from keywatch.core.config import WatchConfig
from keywatch.core.connector import Connector
from keywatch.core.device import Device
from keywatch.core.hooks import HookChain, abort_hook
from keywatch.core.model import DeviceDescriptor, DeviceRecord, ForgetRequest, HookEntry, HookFn
from keywatch.core.registry import DeviceRegistry
from keywatch.core.sinks import LoggingNotifier, MemoryRouter, Notifier, Router
from keywatch.core.store import DeviceStore, MemoryStore
from keywatch.core.watcher import DeltaStream, Watcher
from keywatch.transports.base import Transport

LOGGER = logging.getLogger(__name__)


class DeviceManager:
    """Manage connecting and disconnecting of devices.

    Use :meth:`all` to list known devices (connected and disconnected) and
    :meth:`get` to look one up by id. Register hooks to run code around
    lifecycle transitions; a hook stops its chain quietly by calling
    :meth:`abort_hook`.
    """

    abort_hook = staticmethod(abort_hook)

    def __init__(
        self,
        transport: Transport,
        *,
        store: DeviceStore | None = None,
        notifier: Notifier | None = None,
        router: Router | None = None,
        config: WatchConfig | None = None,
        device_factory: Callable[[DeviceRecord], Device] = Device.from_record,
    ) -> None:
        self.config = config or WatchConfig()
        self.transport = transport
        self.store = store or MemoryStore(version=self.config.storage_version)
        self.notifier = notifier or LoggingNotifier()
        self.router = router or MemoryRouter()
        self.registry = DeviceRegistry(self.store, device_factory=device_factory)

        self.before_init_hooks = HookChain("before-init")
        self.after_init_hooks = HookChain("after-init")
        self.disconnect_hooks = HookChain("disconnect")
        self.forget_hooks = HookChain("forget")
        self.after_forget_hooks = HookChain("after-forget")

        self.connector = Connector(
            self.registry,
            transport,
            before_init=self.before_init_hooks,
            after_init=self.after_init_hooks,
            disconnect=self.disconnect_hooks,
            notifier=self.notifier,
            loading_failed_message=self.config.loading_failed_message,
            create_device=lambda desc: device_factory(DeviceRecord(id=desc.id)),
        )
        self.watcher = Watcher(transport, enumerate_timeout_s=self.config.enumerate_timeout_s)
        self._dispatcher: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[Any]] = set()

    def get(self, desc: DeviceDescriptor | str) -> Device | None:
        return self.registry.find(desc)

    def all(self, include_bootloader: bool = False) -> list[Device]:
        return self.registry.all(include_bootloader)

    def count(self, include_bootloader: bool = False) -> int:
        return self.registry.count(include_bootloader)

    def default(self) -> Device | None:
        return self.registry.default()

    def register_before_init_hook(self, fn: HookFn, priority: int | None = None, name: str | None = None) -> HookEntry:
        """Run ``fn(device)`` every time a device connects, right before it is initialized."""
        return self.before_init_hooks.register(fn, priority, name)

    def register_after_init_hook(self, fn: HookFn, priority: int | None = None, name: str | None = None) -> HookEntry:
        """Run ``fn(device)`` every time a device connects, right after it was initialized."""
        return self.after_init_hooks.register(fn, priority, name)

    def register_disconnect_hook(self, fn: HookFn, priority: int | None = None, name: str | None = None) -> HookEntry:
        """Run ``fn(device)`` every time a device is disconnected."""
        return self.disconnect_hooks.register(fn, priority, name)

    def register_forget_hook(self, fn: HookFn, priority: int | None = None, name: str | None = None) -> HookEntry:
        """Run ``fn(request)`` before a device is forgotten; failing or aborting keeps the device."""
        return self.forget_hooks.register(fn, priority, name)

    def register_after_forget_hook(
        self, fn: HookFn, priority: int | None = None, name: str | None = None
    ) -> HookEntry:
        """Run ``fn(request)`` after a device was forgotten."""
        return self.after_forget_hooks.register(fn, priority, name)

    def watch(self, period_s: float | None = None) -> Watcher:
        """Start polling for connected devices and dispatch what changes.

        Returns the watcher; callers may :meth:`Watcher.subscribe` to follow
        the deltas themselves and should ``await manager.stop()`` when done.
        """
        if self.watcher.running:
            return self.watcher
        self.watcher.start(period_s if period_s is not None else self.config.polling_period_s)
        stream = self.watcher.subscribe()
        self._dispatcher = asyncio.get_running_loop().create_task(
            self._dispatch(stream), name="keywatch-dispatch"
        )
        return self.watcher

    def pause_watch(self) -> None:
        self.watcher.pause()

    def resume_watch(self) -> None:
        self.watcher.resume()

    async def stop(self) -> None:
        await self.watcher.stop()
        dispatcher, self._dispatcher = self._dispatcher, None
        if dispatcher is not None:
            await dispatcher

    async def run(self, period_s: float | None = None, duration_s: float | None = None) -> None:
        """Watch until ``duration_s`` elapses, or until cancelled."""
        self.watch(period_s)
        try:
            if duration_s is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(duration_s)
        finally:
            await self.stop()
            await self.drain()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait until every dispatched connect/disconnect sequence finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _dispatch(self, stream: DeltaStream) -> None:
        async for delta in stream:
            for desc in delta.added:
                self._spawn(self.connector.connect(desc), f"keywatch-connect-{desc.id}")
            for desc in delta.removed:
                self._spawn(self.connector.disconnect(desc), f"keywatch-disconnect-{desc.id}")

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> None:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._pending.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Task %s failed", task.get_name(), exc_info=exc)

    async def forget(self, device: Device, require_disconnect: bool = False) -> ForgetRequest:
        """Forget ``device`` unless a forget hook fails or aborts.

        Hook failures propagate to the caller and leave the device in place.
        """
        request = ForgetRequest(device=device, require_disconnect=require_disconnect)
        await self.forget_hooks.execute(request)
        self.registry.remove(device)
        LOGGER.info("Forgot device %s", device.id)
        await self.after_forget_hooks.execute(request)
        return request

    def navigate_to(self, device: Device, force: bool = False) -> bool:
        """Point the router at the device page unless it is already there."""
        path = f"/device/{device.id}"
        if force or not self.router.path.startswith(path):
            self.router.navigate(path)
            return True
        return False
