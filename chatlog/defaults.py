"""Filling unset dataclass fields from defaults declared in field metadata.

A field declares its default as a string under a metadata key, ``"default"``
unless changed with :func:`set_default_tag`. Simple fields (str, int, float,
bool) take the string parsed for their type. Dataclass, optional, list and
dict fields take it as JSON. A default is applied only where the field still
holds its zero value.
"""

from __future__ import annotations

import dataclasses
import json
import re
import types
import typing
from typing import Any, Dict, List

__all__ = ["DEFAULT_TAG", "set_default_tag", "set_default"]

DEFAULT_TAG = "default"

_INT_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})
_UNION_ORIGINS = (typing.Union, types.UnionType)
_SIMPLE_TYPES = (str, int, float, bool)
_NAMED_HINTS = {
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "Any": Any,
    "None": type(None),
    "NoneType": type(None),
}


@dataclasses.dataclass
class _TagSettings:
    """The metadata key currently used to look up defaults."""

    tag: str = DEFAULT_TAG


_settings = _TagSettings()


class _DecodeError(ValueError):
    """A default's JSON does not fit the field's type."""


def set_default_tag(tag: str) -> None:
    """Change the metadata key under which defaults are looked up."""
    _settings.tag = str(tag)


def set_default(obj: Any) -> Any:
    """Fill the zero-valued fields of the dataclass instance ``obj`` in place and return it."""
    if obj is None:
        return None
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        _fill_fields(obj)
    return obj


def _known_dataclasses(cls: type) -> Dict[str, type]:
    """Dataclass types reachable from ``cls`` by name, for resolving string annotations."""
    known: Dict[str, type] = {cls.__name__: cls}
    for f in dataclasses.fields(cls):
        for candidate in (f.default_factory, f.default):
            if _is_dataclass_type(candidate):
                known.setdefault(candidate.__name__, candidate)
            elif dataclasses.is_dataclass(candidate):
                known.setdefault(type(candidate).__name__, type(candidate))
    return known


def _split_top(text: str, sep: str) -> List[str]:
    parts: List[str] = []
    depth = 0
    start = 0
    for pos, ch in enumerate(text):
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
        elif ch == sep and depth == 0:
            parts.append(text[start:pos].strip())
            start = pos + 1
    parts.append(text[start:].strip())
    return parts


def _parse_hint(text: str, known: Dict[str, type]) -> Any:
    text = text.strip().strip("'\"")
    alternatives = _split_top(text, "|")
    if len(alternatives) > 1:
        return typing.Union[tuple(_parse_hint(alt, known) for alt in alternatives)]
    if text.endswith("]") and "[" in text:
        head, _, body = text[:-1].partition("[")
        head = head.strip().rpartition(".")[2]
        args = [_parse_hint(arg, known) for arg in _split_top(body, ",")]
        if head == "Optional" and len(args) == 1:
            return typing.Optional[args[0]]
        if head == "Union":
            return typing.Union[tuple(args)]
        if head in ("List", "list") and len(args) == 1:
            return List[args[0]]
        if head in ("Dict", "dict") and len(args) == 2:
            return Dict[args[0], args[1]]
        return Any
    name = text.rpartition(".")[2]
    if name in _NAMED_HINTS:
        return _NAMED_HINTS[name]
    return known.get(name, Any)


def _hints(cls: type) -> Dict[str, Any]:
    fields = dataclasses.fields(cls)
    if not any(isinstance(f.type, str) for f in fields):
        return {f.name: f.type for f in fields}
    known = _known_dataclasses(cls)
    return {
        f.name: _parse_hint(f.type, known) if isinstance(f.type, str) else f.type
        for f in fields
    }


def _optional_inner(hint: Any) -> Any:
    if typing.get_origin(hint) in _UNION_ORIGINS:
        args = typing.get_args(hint)
        rest = [arg for arg in args if arg is not type(None)]
        if len(rest) == 1 and len(args) > 1:
            return rest[0]
    return None


def _is_dataclass_type(hint: Any) -> bool:
    return isinstance(hint, type) and dataclasses.is_dataclass(hint)


def _elem(hint: Any) -> Any:
    args = typing.get_args(hint)
    return args[0] if args else Any


def _is_frozen(obj: Any) -> bool:
    return bool(type(obj).__dataclass_params__.frozen)


def _is_zero(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (bool, int, float, str, list, dict, tuple)):
        return not value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return all(_is_zero(getattr(value, f.name)) for f in dataclasses.fields(value))
    return False


def _fill_fields(obj: Any) -> None:
    if _is_frozen(obj):
        return
    hints = _hints(type(obj))
    for f in dataclasses.fields(obj):
        if f.name.startswith("_"):
            continue
        tag = f.metadata.get(_settings.tag, "")
        if not isinstance(tag, str):
            tag = ""
        current = getattr(obj, f.name)
        updated = _apply(current, hints.get(f.name, Any), tag)
        if updated is not current:
            setattr(obj, f.name, updated)


def _apply(value: Any, hint: Any, tag: str) -> Any:
    inner = _optional_inner(hint)
    if inner is not None:
        return _apply_pointer(value, inner, tag)
    if _is_dataclass_type(hint):
        return _apply_struct(value, hint, tag)
    origin = typing.get_origin(hint) or hint
    if origin is list:
        return _apply_list(value, _elem(hint), tag)
    if origin is dict:
        return _apply_dict(value, hint, tag)
    if hint in _SIMPLE_TYPES:
        return _apply_simple(value, hint, tag)
    if dataclasses.is_dataclass(value) and not isinstance(value, type) and not _is_frozen(value):
        return _apply_struct(value, type(value), tag)
    return value


def _apply_struct(value: Any, cls: type, tag: str) -> Any:
    if value is not None and (not tag or not _is_zero(value)):
        _fill_fields(value)
        return value
    if not tag:
        return value
    try:
        decoded = _decode(tag, cls)
    except _DecodeError:
        return value
    _fill_fields(decoded)
    return decoded


def _apply_pointer(value: Any, inner: Any, tag: str) -> Any:
    if value is not None or not tag:
        return value
    try:
        return _decode(tag, typing.Optional[inner])
    except _DecodeError:
        return value


def _apply_list(value: Any, elem: Any, tag: str) -> Any:
    if not _is_zero(value) or not tag:
        if isinstance(value, list):
            for index, item in enumerate(value):
                value[index] = _apply(item, elem, "")
        return value
    try:
        decoded = _decode(tag, List[elem])
    except _DecodeError:
        return value
    return [_apply(item, elem, "") for item in decoded]


def _apply_dict(value: Any, hint: Any, tag: str) -> Any:
    if not _is_zero(value) or not tag:
        return value
    try:
        return _decode(tag, hint)
    except _DecodeError:
        return value


def _apply_simple(value: Any, hint: type, tag: str) -> Any:
    if not tag or not _is_zero(value):
        return value
    if hint is str:
        return tag
    if hint is bool:
        if tag in _TRUE_WORDS:
            return True
        if tag in _FALSE_WORDS:
            return False
        return value
    if hint is int:
        if _INT_RE.fullmatch(tag) and _INT64_MIN <= int(tag) <= _INT64_MAX:
            return int(tag)
        return value
    if tag != tag.strip():
        return value
    try:
        return float(tag)
    except ValueError:
        return value


def _decode(tag: str, hint: Any) -> Any:
    try:
        data = json.loads(tag)
    except ValueError as exc:
        raise _DecodeError(str(exc)) from exc
    return _convert(data, hint)


def _convert(data: Any, hint: Any) -> Any:
    inner = _optional_inner(hint)
    if inner is not None:
        return None if data is None else _convert(data, inner)
    if _is_dataclass_type(hint):
        if data is None:
            return _zero(hint)
        if not isinstance(data, dict):
            raise _DecodeError(f"cannot decode {type(data).__name__} into {hint.__name__}")
        return _build(hint, data)
    origin = typing.get_origin(hint) or hint
    if origin is list:
        if data is None:
            return []
        if not isinstance(data, list):
            raise _DecodeError("expected a JSON array")
        elem = _elem(hint)
        return [_convert(item, elem) for item in data]
    if origin is dict:
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise _DecodeError("expected a JSON object")
        args = typing.get_args(hint)
        key_type, value_type = args if len(args) == 2 else (Any, Any)
        return {_convert_key(key, key_type): _convert(item, value_type)
                for key, item in data.items()}
    if hint is bool:
        if data is None:
            return False
        if isinstance(data, bool):
            return data
        raise _DecodeError("expected a JSON boolean")
    if hint is int:
        if data is None:
            return 0
        if isinstance(data, int) and not isinstance(data, bool):
            return data
        raise _DecodeError("expected a JSON integer")
    if hint is float:
        if data is None:
            return 0.0
        if isinstance(data, (int, float)) and not isinstance(data, bool):
            return float(data)
        raise _DecodeError("expected a JSON number")
    if hint is str:
        if data is None:
            return ""
        if isinstance(data, str):
            return data
        raise _DecodeError("expected a JSON string")
    return data


def _convert_key(key: str, key_type: Any) -> Any:
    if key_type is int:
        if _INT_RE.fullmatch(key):
            return int(key)
        raise _DecodeError(f"invalid integer key {key!r}")
    return key


def _build(cls: type, data: Dict[str, Any]) -> Any:
    hints = _hints(cls)
    lowered = {str(key).lower(): item for key, item in data.items()}
    kwargs = {}
    for f in dataclasses.fields(cls):
        if not f.init:
            continue
        hint = hints.get(f.name, Any)
        if f.name.startswith("_"):
            kwargs[f.name] = _zero(hint)
        elif f.name in data:
            kwargs[f.name] = _convert(data[f.name], hint)
        elif f.name.lower() in lowered:
            kwargs[f.name] = _convert(lowered[f.name.lower()], hint)
        else:
            kwargs[f.name] = _zero(hint)
    return cls(**kwargs)


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
    if hint in _SIMPLE_TYPES:
        return hint()
    return None