"""Stable public API for building applications on top of keywatch.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from pathlib import Path

from keywatch.core.config import WatchConfig, load_config
from keywatch.core.delta import DescriptorDelta, diff
from keywatch.core.device import Device
from keywatch.core.errors import (
    ConfigLoadError,
    ConfigValidationError,
    DescriptorError,
    DeviceInitializationError,
    HookAbort,
    HookError,
    KeywatchError,
    TransportAcquireError,
    TransportEnumerateError,
    TransportError,
    TransportLoadError,
)
from keywatch.core.hooks import HookChain, abort_hook
from keywatch.core.model import DeviceDescriptor, DeviceRecord, Features, ForgetRequest, HookEntry
from keywatch.core.service import DeviceManager
from keywatch.core.sinks import LoggingNotifier, MemoryRouter, Notifier, Router
from keywatch.core.store import DeviceStore, MemoryStore
from keywatch.core.watcher import DeltaStream, Watcher
from keywatch.transports.base import Session, Transport
from keywatch.transports.loader import load_transport

__all__ = [
    "KeywatchError",
    "ConfigLoadError",
    "ConfigValidationError",
    "DescriptorError",
    "DeviceInitializationError",
    "HookAbort",
    "HookError",
    "TransportError",
    "TransportAcquireError",
    "TransportEnumerateError",
    "TransportLoadError",
    "DescriptorDelta",
    "DeltaStream",
    "Device",
    "DeviceDescriptor",
    "DeviceManager",
    "DeviceRecord",
    "DeviceStore",
    "Features",
    "ForgetRequest",
    "HookChain",
    "HookEntry",
    "LoggingNotifier",
    "MemoryRouter",
    "MemoryStore",
    "Notifier",
    "Router",
    "Session",
    "Transport",
    "WatchConfig",
    "Watcher",
    "abort_hook",
    "build_manager",
    "diff",
]


def build_manager(
    *,
    transport: Transport | None = None,
    store: DeviceStore | None = None,
    notifier: Notifier | None = None,
    router: Router | None = None,
    config: WatchConfig | None = None,
    config_path: Path | None = None,
) -> DeviceManager:
    """Wire a :class:`DeviceManager` from configuration and collaborators.

    Without an explicit ``config`` the configuration file is loaded. Without an
    explicit ``transport`` the configured ``module:factory`` reference is
    imported and called.
    """
    if config is None:
        config = load_config(config_path)
    if transport is None:
        if not config.transport:
            raise TransportLoadError("No transport given and none configured")
        transport = load_transport(config.transport)
    return DeviceManager(
        transport,
        store=store,
        notifier=notifier,
        router=router,
        config=config,
    )
