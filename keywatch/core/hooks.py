"""Priority-ordered asynchronous hook chains."""

from __future__ import annotations

import inspect
import logging
from typing import Any, NoReturn, TypeVar

from keywatch.core.errors import HookAbort, HookError, KeywatchError
from keywatch.core.model import DEFAULT_HOOK_NAME, DEFAULT_HOOK_PRIORITY, HookEntry, HookFn

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def abort_hook() -> NoReturn:
    """Stop the running chain without surfacing an error to the user."""
    raise HookAbort()


class HookChain:
    """Hooks run one after another, lowest priority first.

    Every hook receives the value the chain was executed with; whatever a hook
    returns is awaited when awaitable and otherwise ignored. The chain resolves
    with the original value.
    """

    def __init__(self, name: str, entries: list[HookEntry] | None = None) -> None:
        self.name = name
        self._entries: list[HookEntry] = list(entries or ())

    def register(self, fn: HookFn, priority: int | None = None, name: str | None = None) -> HookEntry:
        entry = HookEntry(
            fn=fn,
            priority=DEFAULT_HOOK_PRIORITY if priority is None else priority,
            name=name or getattr(fn, "__name__", None) or DEFAULT_HOOK_NAME,
        )
        self._entries.append(entry)
        LOGGER.debug("Registered %s hook %r with priority %d", self.name, entry.name, entry.priority)
        return entry

    def unregister(self, name: str) -> int:
        before = len(self._entries)
        self._entries = [e for e in self._entries if e.name != name]
        return before - len(self._entries)

    @property
    def entries(self) -> list[HookEntry]:
        """Entries in execution order."""
        return sorted(self._entries, key=lambda e: e.priority)

    def __len__(self) -> int:
        return len(self._entries)

    async def execute(self, value: T) -> T:
        for entry in self.entries:
            LOGGER.debug("Running %s hook %r", self.name, entry.name)
            try:
                result: Any = entry.fn(value)
                if inspect.isawaitable(result):
                    await result
            except HookAbort:
                LOGGER.debug("%s chain aborted by hook %r", self.name, entry.name)
                raise
            except KeywatchError:
                raise
            except Exception as exc:
                raise HookError(entry.name, str(exc)) from exc
        return value
