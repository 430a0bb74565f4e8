"""Stateful representation of a known hardware device."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from keywatch.core.errors import DeviceInitializationError, KeywatchError
from keywatch.core.model import DeviceDescriptor, DeviceRecord, Features
from keywatch.transports.base import Session

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class Device:
    """A device known to the application, connected or not.

    ``features`` survive a disconnect so a known device keeps its place in
    listings; ``session`` and ``loading`` are transient and reset by
    :meth:`init`.
    """

    def __init__(
        self,
        device_id: str,
        *,
        label: str | None = None,
        features: Features | None = None,
    ) -> None:
        self.id = device_id
        self.label = label
        self.features = features
        self.destroyed = False
        self.init()

    @classmethod
    def from_descriptor(cls, desc: DeviceDescriptor) -> Device:
        return cls(desc.id)

    @classmethod
    def from_record(cls, record: DeviceRecord) -> Device:
        features = Features.from_mapping(record.features) if record.features is not None else None
        return cls(record.id, label=record.label, features=features)

    def to_record(self) -> DeviceRecord:
        features = dict(self.features.raw) if self.features is not None else None
        return DeviceRecord(id=self.id, label=self.label, features=features)

    def init(self) -> None:
        self.session: Session | None = None
        self.loading = False
        self._lock = asyncio.Lock()

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    @property
    def connected(self) -> bool:
        return self.session is not None

    @property
    def in_bootloader(self) -> bool:
        return self.features is None or self.features.bootloader_mode

    def connect(self, session: Session) -> None:
        self.session = session

    def disconnect(self) -> None:
        if self.session is not None:
            LOGGER.debug("Dropping session for device %s", self.id)
        self.session = None

    def destroy(self) -> None:
        self.disconnect()
        self.destroyed = True

    async def initialize_device(self) -> Features:
        if self.session is None:
            raise DeviceInitializationError(f"Device {self.id} has no session to initialize")
        try:
            raw = await self.session.initialize()
        except KeywatchError:
            raise
        except Exception as exc:
            raise DeviceInitializationError(f"Initializing device {self.id} failed: {exc}") from exc
        self.features = Features.from_mapping(raw)
        return self.features

    async def with_loading(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` with the busy flag set, one transition per device at a time."""
        async with self._lock:
            self.loading = True
            try:
                return await fn()
            finally:
                self.loading = False

    def __repr__(self) -> str:
        state = "connected" if self.connected else "disconnected"
        return f"Device(id={self.id!r}, {state})"
