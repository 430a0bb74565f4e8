"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from keywatch.core.model import DeviceDescriptor


class Session(Protocol):
    async def initialize(self) -> Mapping[str, Any]:
        """Run the low-level initialize call and return the device features."""


class Transport(Protocol):
    async def enumerate(self, can_wait: bool) -> Sequence[Any]:
        """List raw descriptors of connected devices.

        ``can_wait`` hints that the transport may block until the device list
        changes instead of answering immediately.
        """

    async def acquire(self, desc: DeviceDescriptor) -> Session:
        """Open a session for the described device."""
