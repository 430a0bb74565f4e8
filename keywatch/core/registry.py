"""In-memory collection of known devices backed by a persistent store."""

from __future__ import annotations

import logging
from collections.abc import Callable

from keywatch.core.device import Device
from keywatch.core.model import DeviceDescriptor, DeviceRecord
from keywatch.core.store import DeviceStore

LOGGER = logging.getLogger(__name__)

DeviceFactory = Callable[[DeviceRecord], Device]


class DeviceRegistry:
    def __init__(self, store: DeviceStore, *, device_factory: DeviceFactory = Device.from_record) -> None:
        self._store = store
        self._devices: list[Device] = []
        for record in store.load():
            device = device_factory(record)
            device.init()
            self._devices.append(device)
        LOGGER.debug("Restored %d device(s) from store", len(self._devices))

    def find(self, desc: DeviceDescriptor | str | None) -> Device | None:
        """Resolve a device by descriptor id, then path, then raw identity."""
        if not desc:
            return None
        if isinstance(desc, DeviceDescriptor):
            found = self.get(desc.id)
            if found is None and desc.path:
                found = self.get(desc.path)
            return found
        return self.get(desc)

    def get(self, device_id: str) -> Device | None:
        for device in self._devices:
            if device.id == device_id:
                return device
        return None

    def add(self, device: Device) -> None:
        self._devices.append(device)
        self.persist()

    def remove(self, device: Device) -> None:
        device.destroy()
        self._devices = [d for d in self._devices if d.id != device.id]
        self.persist()

    def all(self, include_bootloader: bool = False) -> list[Device]:
        if include_bootloader:
            return list(self._devices)
        return [d for d in self._devices if not d.in_bootloader]

    def count(self, include_bootloader: bool = False) -> int:
        return len(self.all(include_bootloader))

    def default(self) -> Device | None:
        devices = self.all()
        return devices[0] if devices else None

    def persist(self) -> None:
        """Write the current device list to the store."""
        self._store.save([d.to_record() for d in self._devices])
