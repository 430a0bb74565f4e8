"""Core data models used across registry, watcher, hooks, and CLI."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from keywatch.core.errors import DescriptorError

if TYPE_CHECKING:
    from keywatch.core.device import Device

DEFAULT_HOOK_PRIORITY = 50
DEFAULT_HOOK_NAME = "anonymous"

HookFn = Callable[[Any], Any]


def _raw_field(raw: Any, *names: str) -> str | None:
    for name in names:
        if isinstance(raw, Mapping):
            value = raw.get(name)
        else:
            value = getattr(raw, name, None)
        if value:
            return str(value)
    return None


@dataclass(frozen=True)
class DeviceDescriptor:
    id: str
    path: str | None = field(default=None, compare=False)
    serial_number: str | None = field(default=None, compare=False)

    @classmethod
    def from_raw(cls, raw: Any) -> DeviceDescriptor:
        """Normalize a transport enumeration result into a descriptor.

        Identity is taken from ``id``, then the hardware serial number, then
        the path. A bare string is used as both identity and path.
        """
        if isinstance(raw, DeviceDescriptor):
            return raw
        if isinstance(raw, str):
            if not raw:
                raise DescriptorError("Device descriptor must not be empty")
            return cls(id=raw, path=raw)

        path = _raw_field(raw, "path")
        serial_number = _raw_field(raw, "serial_number", "serialNumber")
        identity = _raw_field(raw, "id") or serial_number or path
        if identity is None:
            raise DescriptorError(f"Device descriptor {raw!r} has no id, serial number, or path")
        return cls(id=identity, path=path, serial_number=serial_number)


@dataclass(frozen=True)
class Features:
    bootloader_mode: bool
    raw: Mapping[str, Any]

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> Features:
        return cls(bootloader_mode=bool(raw.get("bootloader_mode", False)), raw=dict(raw))


@dataclass(frozen=True)
class DeviceRecord:
    id: str
    label: str | None = None
    features: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class HookEntry:
    fn: HookFn
    priority: int = DEFAULT_HOOK_PRIORITY
    name: str = DEFAULT_HOOK_NAME


@dataclass(frozen=True)
class ForgetRequest:
    device: Device
    require_disconnect: bool
