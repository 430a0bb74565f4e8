"""Added/removed computation between two enumeration snapshots."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from keywatch.core.model import DeviceDescriptor


@dataclass(frozen=True)
class DescriptorDelta:
    added: tuple[DeviceDescriptor, ...]
    removed: tuple[DeviceDescriptor, ...]

    def __bool__(self) -> bool:
        return bool(self.added or self.removed)


def diff(prev: Sequence[DeviceDescriptor], curr: Sequence[DeviceDescriptor]) -> DescriptorDelta:
    prev_ids = {d.id for d in prev}
    curr_ids = {d.id for d in curr}
    return DescriptorDelta(
        added=tuple(d for d in curr if d.id not in prev_ids),
        removed=tuple(d for d in prev if d.id not in curr_ids),
    )
