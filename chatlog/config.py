"""Configuration stored as a JSON file in a per-application directory."""

from __future__ import annotations

import copy
import dataclasses
import json
import logging
import os
import stat
import tempfile
import typing
from pathlib import Path
from typing import Any, Dict

from chatlog.defaults import _hints as _type_hints
from chatlog.defaults import set_default

__all__ = [
    "DEFAULT_CONFIG_TYPE",
    "ConfigError",
    "InvalidDirectoryError",
    "MissingConfigNameError",
    "Config",
    "prepare_dir",
]

DEFAULT_CONFIG_TYPE = "json"
_SUPPORTED_TYPES = frozenset({"json"})
_UNION_ORIGINS = (typing.Union, type(int | None))

_log = logging.getLogger(__name__)


class ConfigError(Exception):
    """A configuration could not be set up, read or written."""


class InvalidDirectoryError(ConfigError):
    """The configuration path exists but is not a directory."""


class MissingConfigNameError(ConfigError, ValueError):
    """No configuration name was given."""


def prepare_dir(path: str) -> None:
    """Make sure ``path`` exists as a directory, creating it when missing."""
    try:
        info = os.stat(path)
    except FileNotFoundError:
        os.makedirs(path, mode=0o755, exist_ok=True)
        return
    if not stat.S_ISDIR(info.st_mode):
        _log.debug("%s is not a directory", path)
        raise InvalidDirectoryError("invalid directory path")


def _lower_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key).lower(): _lower_keys(item) for key, item in value.items()}
    return value


def _read_settings(file: str, config_type: str) -> Dict[str, Any]:
    if config_type not in _SUPPORTED_TYPES:
        raise ConfigError(f"unsupported config type {config_type!r}")
    with open(file, "r", encoding="utf-8") as handle:
        try:
            data = json.load(handle)
        except ValueError as exc:
            raise ConfigError(f"invalid config file {file}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config file {file} does not hold an object")
    return _lower_keys(data)


def _optional_inner(hint: Any) -> Any:
    if typing.get_origin(hint) in _UNION_ORIGINS:
        args = typing.get_args(hint)
        rest = [arg for arg in args if arg is not type(None)]
        if len(rest) == 1 and len(args) > 1:
            return rest[0]
    return None


def _is_dataclass_type(hint: Any) -> bool:
    return isinstance(hint, type) and dataclasses.is_dataclass(hint)


def _zero(hint: Any) -> Any:
    if _optional_inner(hint) is not None:
        return None
    if _is_dataclass_type(hint):
        return _build(hint, {})
    origin = typing.get_origin(hint) or hint
    if origin is list:
        return []
    if origin is dict:
        return {}
    if hint in (str, int, float, bool):
        return hint()
    return None


def _decode_value(value: Any, hint: Any) -> Any:
    inner = _optional_inner(hint)
    if inner is not None:
        return None if value is None else _decode_value(value, inner)
    if _is_dataclass_type(hint) and isinstance(value, dict):
        return _build(hint, value)
    if (typing.get_origin(hint) or hint) is list and isinstance(value, list):
        args = typing.get_args(hint)
        elem = args[0] if args else Any
        return [_decode_value(item, elem) for item in value]
    return value


def _build(cls: type, data: Dict[str, Any]) -> Any:
    hints = _type_hints(cls)
    lowered = {str(key).lower(): item for key, item in data.items()}
    kwargs = {}
    for f in dataclasses.fields(cls):
        if not f.init:
            continue
        key = str(f.metadata.get("mapstructure", f.name)).lower()
        hint = hints.get(f.name, Any)
        if key in lowered:
            kwargs[f.name] = _decode_value(lowered[key], hint)
        elif f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
            kwargs[f.name] = _zero(hint)
    return cls(**kwargs)


def _home_dir() -> str:
    try:
        return str(Path.home())
    except (RuntimeError, KeyError):
        return tempfile.gettempdir()


class Config:
    """A named configuration kept as one file in its own directory."""

    def __init__(self, name: str, config_type: str = "", path: str = "") -> None:
        if not name:
            raise MissingConfigNameError("config name not specified")
        config_type = config_type or DEFAULT_CONFIG_TYPE
        if not path:
            path = _home_dir() + os.sep + "." + name
        prepare_dir(path)

        self.name = name
        self.config_type = config_type
        self.path = path
        self.config_file = self._default_file()
        self._file_type = config_type
        self._settings: Dict[str, Any] = {}

    def _default_file(self) -> str:
        return os.path.join(self.path, f"{self.name}.{self.config_type}")

    def _write(self) -> None:
        if self._file_type not in _SUPPORTED_TYPES:
            raise ConfigError(f"unsupported config type {self._file_type!r}")
        with open(self.config_file, "w", encoding="utf-8") as handle:
            json.dump(self._settings, handle, indent=2)
            handle.write("\n")

    def _unmarshal(self, conf_type: type) -> Any:
        if not _is_dataclass_type(conf_type):
            raise TypeError("conf_type must be a dataclass type")
        return set_default(_build(conf_type, self._settings))

    def load(self, conf_type: type) -> Any:
        """Read the configuration file, creating it when missing, into a ``conf_type``."""
        try:
            self._settings = _read_settings(self.config_file, self._file_type)
        except (OSError, ConfigError) as exc:
            if os.path.exists(self.config_file):
                raise ConfigError(f"cannot read config file {self.config_file}: {exc}") from exc
            self._write()
        return self._unmarshal(conf_type)

    def load_file(self, file: str, conf_type: type) -> Any:
        """Read the configuration from ``file`` into a ``conf_type`` and use that file from now on."""
        file_type = os.path.splitext(file)[1].lstrip(".").lower()
        settings = _read_settings(file, file_type)
        self.config_file = file
        self._file_type = file_type
        self._settings = settings
        return self._unmarshal(conf_type)

    def set(self, key: str, value: Any) -> None:
        """Set ``key`` (dotted for nesting, case-insensitive) and write the file."""
        parts = key.lower().split(".")
        node = self._settings
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = _lower_keys(value)
        self._write()

    def reset(self) -> None:
        """Empty the configuration and write it to the default file."""
        self._settings = {}
        self.config_file = self._default_file()
        self._file_type = self.config_type
        self._write()

    def as_dict(self) -> Dict[str, Any]:
        """Return a copy of every setting."""
        return copy.deepcopy(self._settings)