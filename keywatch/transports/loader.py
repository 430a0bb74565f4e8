"""Resolve ``module:attr`` transport factory references."""

from __future__ import annotations

import importlib
import logging

from keywatch.core.errors import TransportLoadError
from keywatch.transports.base import Transport

LOGGER = logging.getLogger(__name__)


def load_transport(reference: str) -> Transport:
    """Import ``module:attr`` and call it to build a transport.

    ``attr`` may be a dotted path inside the module; it must be callable with
    no arguments (a class or a factory function).
    """
    module_name, sep, attr_path = reference.partition(":")
    if not sep or not module_name or not attr_path:
        raise TransportLoadError(f"Transport reference '{reference}' must look like 'module:factory'")

    try:
        target = importlib.import_module(module_name)
    except ImportError as exc:
        raise TransportLoadError(f"Could not import transport module '{module_name}': {exc}") from exc

    for part in attr_path.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            raise TransportLoadError(f"Transport factory '{reference}' not found") from exc

    if not callable(target):
        raise TransportLoadError(f"Transport factory '{reference}' is not callable")

    try:
        transport = target()
    except Exception as exc:
        raise TransportLoadError(f"Building transport '{reference}' failed: {exc}") from exc

    for method in ("enumerate", "acquire"):
        if not callable(getattr(transport, method, None)):
            raise TransportLoadError(f"Transport '{reference}' does not provide '{method}'")
    LOGGER.debug("Loaded transport %s", reference)
    return transport
