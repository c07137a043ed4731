"""File-system helpers: searching, sizing and preparing directories."""

from __future__ import annotations

import logging
import os
import re
import stat
import sys
from typing import Iterator, List

__all__ = [
    "find_files_with_patterns",
    "default_work_dir",
    "get_dir_size",
    "byte_count_si",
    "prepare_dir",
]

_log = logging.getLogger(__name__)


def _walk_matching(directory: str, regex: re.Pattern, recursive: bool) -> Iterator[str]:
    with os.scandir(directory) as scan:
        entries = sorted(scan, key=lambda entry: entry.name)
    for entry in entries:
        if entry.is_dir(follow_symlinks=False):
            if recursive:
                yield from _walk_matching(entry.path, regex, recursive)
            continue
        if regex.search(entry.name):
            yield os.path.normpath(entry.path)


def find_files_with_patterns(directory: str, pattern: str, recursive: bool) -> List[str]:
    """List files under ``directory`` whose names match the regular expression ``pattern``."""
    try:
        regex = re.compile(pattern)
    except re.error as exc:
        raise ValueError(f"invalid regular expression {pattern!r}: {exc}") from exc

    info = os.stat(directory)
    if not stat.S_ISDIR(info.st_mode):
        raise NotADirectoryError(f"{directory!r} is not a directory")

    try:
        return list(_walk_matching(directory, regex, recursive))
    except OSError as exc:
        raise OSError(f"error walking directory: {exc}") from exc


def default_work_dir(account: str) -> str:
    """Return the default working directory, optionally for one account."""
    if sys.platform == "win32":
        base = os.path.join(os.environ.get("USERPROFILE", ""), "Documents", "chatlog")
    elif sys.platform == "darwin":
        base = os.path.join(os.environ.get("HOME", ""), "Documents", "chatlog")
    else:
        base = os.path.join(os.environ.get("HOME", ""), "chatlog")
    return os.path.join(base, account) if account else base


def _sizes(path: str) -> Iterator[int]:
    try:
        info = os.lstat(path)
    except OSError:
        return
    yield info.st_size
    if stat.S_ISDIR(info.st_mode):
        try:
            names = sorted(os.listdir(path))
        except OSError:
            return
        for name in names:
            yield from _sizes(os.path.join(path, name))


def get_dir_size(directory: str) -> str:
    """Return the total size of everything under ``directory`` in SI units."""
    return byte_count_si(sum(_sizes(directory)))


def byte_count_si(size: int) -> str:
    """Format a byte count with decimal (power of 1000) units."""
    unit = 1000
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f} {'kMGTPE'[exp]}B"


def prepare_dir(path: str) -> None:
    """Make sure ``path`` exists as a directory, creating it when missing."""
    try:
        info = os.stat(path)
    except FileNotFoundError:
        os.makedirs(path, mode=0o755, exist_ok=True)
        return
    if not stat.S_ISDIR(info.st_mode):
        _log.debug("%s is not a directory", path)
        raise NotADirectoryError(f"{path} is not a directory")