"""Small string and number helpers."""

from __future__ import annotations

import re
from typing import Any, List, Tuple

__all__ = [
    "is_normal_string",
    "must_any_to_int",
    "is_numeric",
    "split_int64_to_two_int32",
    "str_to_list",
]

_INT_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1


def is_normal_string(data: bytes) -> bool:
    """Return True if ``data`` is valid UTF-8 made only of printable characters."""
    try:
        text = bytes(data).decode("utf-8")
    except UnicodeDecodeError:
        return False
    return text.isprintable()


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return str(value)


def must_any_to_int(value: Any) -> int:
    """Convert the textual form of ``value`` to an int, or 0 when it is not one."""
    text = _as_text(value)
    if not _INT_RE.fullmatch(text):
        return 0
    number = int(text)
    if not _INT64_MIN <= number <= _INT64_MAX:
        return 0
    return number


def is_numeric(text: str) -> bool:
    """Return True if ``text`` is non-empty and made only of decimal digits."""
    return text.isdecimal()


def split_int64_to_two_int32(value: int) -> Tuple[int, int]:
    """Split a 64-bit integer into its low 32 bits and its high part."""
    return value & 0xFFFFFFFF, value >> 32


def str_to_list(text: str, sep: str) -> List[str]:
    """Split ``text`` on ``sep``, trimming items and dropping blanks and duplicates."""
    if text == "":
        return []
    pieces = list(text) if sep == "" else text.split(sep)
    seen = set()
    result = []
    for piece in pieces:
        item = piece.strip()
        if not item or item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result