"""Groups of files under one directory that share a name pattern and callbacks."""

from __future__ import annotations

import enum
import logging
import os
import re
import threading
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence, Set

__all__ = ["FileOp", "FileEvent", "FileChangeCallback", "FileGroup"]

_log = logging.getLogger(__name__)


class FileOp(enum.Flag):
    """Kinds of change a file-system event can report."""

    CREATE = 1
    WRITE = 2
    REMOVE = 4
    RENAME = 8
    CHMOD = 16


@dataclass(frozen=True)
class FileEvent:
    """A change to the file or directory at ``name``."""

    name: str
    op: FileOp


FileChangeCallback = Callable[[FileEvent], None]


def _walk_files(directory: str) -> Iterator[str]:
    try:
        with os.scandir(directory) as scan:
            entries = sorted(scan, key=lambda entry: entry.name)
    except OSError:
        return
    for entry in entries:
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
        except OSError:
            continue
        if is_dir:
            yield from _walk_files(entry.path)
        else:
            yield entry.path


class FileGroup:
    """Files below ``root_dir`` whose names match ``pattern``, minus blacklisted paths."""

    def __init__(self, group_id: str, root_dir: str, pattern: str,
                 blacklist: Optional[Sequence[str]] = None) -> None:
        try:
            self.pattern = re.compile(pattern)
        except re.error as exc:
            raise ValueError(f"invalid pattern {pattern!r}: {exc}") from exc
        self.group_id = group_id
        self.root_dir = os.path.normpath(root_dir)
        self.pattern_str = pattern
        self.blacklist: List[str] = list(blacklist or [])
        self._callbacks: List[FileChangeCallback] = []
        self._lock = threading.Lock()

    @property
    def callbacks(self) -> List[FileChangeCallback]:
        """A snapshot of the registered callbacks."""
        with self._lock:
            return list(self._callbacks)

    def add_callback(self, callback: FileChangeCallback) -> None:
        """Register ``callback`` to be called for matching events."""
        with self._lock:
            self._callbacks.append(callback)

    def remove_callback(self, callback: FileChangeCallback) -> bool:
        """Unregister ``callback``; return whether it was registered."""
        with self._lock:
            for index, registered in enumerate(self._callbacks):
                if registered == callback:
                    del self._callbacks[index]
                    return True
        return False

    def match(self, path: str) -> bool:
        """Return True if ``path`` lies under the root, matches the pattern and is not blacklisted."""
        path = os.path.normpath(path)
        root = os.path.normpath(self.root_dir)
        if os.path.isabs(path) != os.path.isabs(root):
            return False
        try:
            rel_path = os.path.relpath(path, root)
        except ValueError:
            return False
        if rel_path.startswith(".."):
            return False
        if not self.pattern.search(os.path.basename(path)):
            return False
        return not any(item in rel_path for item in self.blacklist)

    def list_files(self) -> List[str]:
        """Scan the root directory now and return the paths of matching files."""
        return [
            path for path in (os.path.normpath(p) for p in _walk_files(self.root_dir))
            if self.match(path)
        ]

    def list_matching_directories(self) -> Set[str]:
        """Return the directories that hold at least one matching file."""
        return {os.path.dirname(path) for path in self.list_files()}

    def handle_event(self, event: FileEvent) -> List[threading.Thread]:
        """Run every callback in its own thread if ``event`` concerns this group.

        Returns the threads started, one per callback.
        """
        if not self.match(event.name):
            return []
        threads = [
            threading.Thread(target=self._run_callback, args=(callback, event), daemon=True)
            for callback in self.callbacks
        ]
        for thread in threads:
            thread.start()
        return threads

    @staticmethod
    def _run_callback(callback: FileChangeCallback, event: FileEvent) -> None:
        try:
            callback(event)
        except Exception:
            _log.exception("Callback error: file=%s op=%s", event.name, event.op)