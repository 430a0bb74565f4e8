"""Configuration loading and validation for keywatch."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from keywatch.core.connector import DEFAULT_LOADING_FAILED_MESSAGE
from keywatch.core.errors import ConfigLoadError, ConfigValidationError

LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class WatchConfig:
    polling_period_s: float = 1.0
    enumerate_timeout_s: float | None = None
    storage_version: str = "1"
    loading_failed_message: str = DEFAULT_LOADING_FAILED_MESSAGE
    transport: str | None = None
    source: Path | None = None


def _load_schema_validator() -> Any:
    schema_text = resources.files("keywatch.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def default_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "keywatch/config.yaml"


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def _build_config(doc: dict[str, Any], source: Path) -> WatchConfig:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    defaults = WatchConfig()
    timeout = doc.get("enumerate_timeout_s", defaults.enumerate_timeout_s)
    return WatchConfig(
        polling_period_s=float(doc.get("polling_period_s", defaults.polling_period_s)),
        enumerate_timeout_s=float(timeout) if timeout is not None else None,
        storage_version=str(doc.get("storage_version", defaults.storage_version)),
        loading_failed_message=doc.get("loading_failed_message", defaults.loading_failed_message),
        transport=doc.get("transport", defaults.transport),
        source=source,
    )


def load_config(path: Path | None = None) -> WatchConfig:
    """Load the configuration file, falling back to defaults when it is absent.

    An explicitly given ``path`` must exist.
    """
    if path is None:
        path = default_config_path()
        if not path.is_file():
            LOGGER.debug("No config file at %s, using defaults", path)
            return WatchConfig()
    return _build_config(_read_yaml(path), path)
