"""Per-device connect and disconnect sequences."""

from __future__ import annotations

import logging
from collections.abc import Callable

from keywatch.core.device import Device
from keywatch.core.errors import HookAbort, KeywatchError, TransportAcquireError
from keywatch.core.hooks import HookChain
from keywatch.core.model import DeviceDescriptor
from keywatch.core.registry import DeviceRegistry
from keywatch.core.sinks import Notifier
from keywatch.transports.base import Session, Transport

LOGGER = logging.getLogger(__name__)

DEFAULT_LOADING_FAILED_MESSAGE = "Loading the device failed."


class Connector:
    def __init__(
        self,
        registry: DeviceRegistry,
        transport: Transport,
        *,
        before_init: HookChain,
        after_init: HookChain,
        disconnect: HookChain,
        notifier: Notifier,
        loading_failed_message: str = DEFAULT_LOADING_FAILED_MESSAGE,
        create_device: Callable[[DeviceDescriptor], Device] = Device.from_descriptor,
    ) -> None:
        self._registry = registry
        self._transport = transport
        self._before_init = before_init
        self._after_init = after_init
        self._disconnect = disconnect
        self._notifier = notifier
        self._loading_failed_message = loading_failed_message
        self._create_device = create_device

    async def connect(self, desc: DeviceDescriptor) -> Device:
        """Bring the described device to the ready state.

        Failures are reported through the notifier, except for hook aborts,
        which end the sequence quietly. Nothing is raised to the caller.
        """
        device = self._registry.find(desc)
        if device is None:
            device = self._create_device(desc)
            self._registry.add(device)
            LOGGER.info("New device %s", device.id)

        try:
            await device.with_loading(lambda: self._initialize(device, desc))
        except HookAbort:
            LOGGER.debug("Connecting device %s aborted by a hook", device.id)
        except KeywatchError as exc:
            LOGGER.warning("Connecting device %s failed: %s", device.id, exc)
            self._notifier.error(str(exc) or self._loading_failed_message)
        except Exception as exc:
            LOGGER.exception("Connecting device %s failed unexpectedly", device.id)
            self._notifier.error(str(exc) or self._loading_failed_message)
        return device

    async def _initialize(self, device: Device, desc: DeviceDescriptor) -> None:
        device.connect(await self._acquire(desc))

        try:
            await self._before_init.execute(device)
            await device.initialize_device()
        except Exception:
            device.disconnect()
            raise

        self._registry.persist()
        await self._after_init.execute(device)
        LOGGER.info("Device %s ready", device.id)

    async def _acquire(self, desc: DeviceDescriptor) -> Session:
        try:
            return await self._transport.acquire(desc)
        except KeywatchError:
            raise
        except Exception as exc:
            raise TransportAcquireError(f"Acquiring device {desc.id} failed: {exc}") from exc

    async def disconnect(self, desc: DeviceDescriptor) -> Device | None:
        """Mark the described device disconnected, then run the disconnect hooks.

        Unknown descriptors are ignored. Hook failures are logged and leave
        the device disconnected.
        """
        device = self._registry.find(desc)
        if device is None:
            return None

        async with device.lock:
            device.disconnect()
            LOGGER.info("Device %s disconnected", device.id)
            try:
                await self._disconnect.execute(device)
            except HookAbort:
                LOGGER.debug("Disconnect hooks for device %s aborted", device.id)
            except KeywatchError as exc:
                LOGGER.warning("Disconnect hooks for device %s failed: %s", device.id, exc)
        return device
