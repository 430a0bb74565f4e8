"""Persistent store contract for known devices."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Protocol

from keywatch.core.model import DeviceRecord

LOGGER = logging.getLogger(__name__)


class DeviceStore(Protocol):
    version: str

    def load(self) -> list[DeviceRecord]: ...

    def save(self, records: Sequence[DeviceRecord]) -> None: ...


class MemoryStore:
    """Process-local store; records written under another version are discarded."""

    def __init__(
        self,
        version: str,
        records: Iterable[DeviceRecord] | None = None,
        stored_version: str | None = None,
    ) -> None:
        self.version = version
        self.stored_version = stored_version if stored_version is not None else version
        self.records: list[DeviceRecord] = list(records or ())

    def load(self) -> list[DeviceRecord]:
        if self.stored_version != self.version:
            LOGGER.info(
                "Discarding %d stored device(s) from version %s (current %s)",
                len(self.records),
                self.stored_version,
                self.version,
            )
            self.records = []
            self.stored_version = self.version
        return list(self.records)

    def save(self, records: Sequence[DeviceRecord]) -> None:
        self.records = list(records)
        self.stored_version = self.version
