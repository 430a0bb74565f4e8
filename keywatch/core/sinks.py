"""Notification and routing collaborators."""

from __future__ import annotations

import logging
from typing import Protocol

LOGGER = logging.getLogger(__name__)


class Notifier(Protocol):
    def error(self, message: str) -> None:
        """Show a user-visible error message."""


class Router(Protocol):
    @property
    def path(self) -> str: ...

    def navigate(self, path: str) -> None: ...


class LoggingNotifier:
    def error(self, message: str) -> None:
        LOGGER.error(message)


class MemoryRouter:
    def __init__(self, path: str = "/") -> None:
        self._path = path
        self.history: list[str] = []

    @property
    def path(self) -> str:
        return self._path

    def navigate(self, path: str) -> None:
        self.history.append(path)
        self._path = path
