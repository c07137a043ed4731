"""Cached temporary copies of files that other processes may hold open or rewrite."""

from __future__ import annotations

import json
import os
import queue
import re
import shutil
import sys
import tempfile
import threading
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

__all__ = [
    "DEFAULT_DELETION_DELAY",
    "TempCopyManager",
    "hash_string",
    "get_temp_copy",
    "cleanup_temp_files",
]

DEFAULT_DELETION_DELAY = 30.0
MAPPING_FILE_NAME = "file_mappings.json"

_CLEANUP_INTERVAL = 30.0
_DELETION_QUEUE_SIZE = 1000
_DELETION_WORKERS = 2
_COPY_RETRIES = 3
_COPY_BUFFER = 256 * 1024
_HASH_PREFIX_LEN = 8
_LEADING_INT_RE = re.compile(r"[+-]?[0-9]+")
_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9_-]")


def hash_string(text: str) -> str:
    """Return the 32-bit FNV-1a hash of ``text`` as lower-case hex without padding."""
    value = 0x811C9DC5
    for byte in text.encode("utf-8"):
        value = ((value ^ byte) * 0x01000193) & 0xFFFFFFFF
    return f"{value:x}"


def _ext(path: str) -> str:
    """Extension of the last path element, dot included, as a plain suffix."""
    name = os.path.basename(path)
    dot = name.rfind(".")
    return name[dot:] if dot >= 0 else ""


def _strip_ext(path: str) -> str:
    ext = _ext(path)
    return path[: len(path) - len(ext)] if ext else path


def _base_and_ext(path: str) -> Tuple[str, str]:
    name = os.path.basename(path)
    ext = _ext(name)
    base = name[: len(name) - len(ext)]
    return base or "file", ext


def _process_name() -> str:
    program = sys.argv[0] if sys.argv and sys.argv[0] else ""
    if not program:
        return "unknown"
    base = os.path.basename(program)
    base = _strip_ext(base)
    return _UNSAFE_NAME_RE.sub("_", base)


def _default_temp_dir() -> str:
    root = tempfile.gettempdir()
    for candidate in (os.path.join(root, "filecopy_" + _process_name()),
                      os.path.join(root, "filecopy")):
        try:
            os.makedirs(candidate, mode=0o755, exist_ok=True)
            return candidate
        except OSError:
            continue
    return root


def _remove_now(path: str) -> None:
    if not path:
        return
    try:
        os.remove(path)
    except OSError:
        pass


def _copy_file(src: str, dst: str) -> None:
    with open(src, "rb") as source, open(dst, "wb") as target:
        shutil.copyfileobj(source, target, _COPY_BUFFER)
        target.flush()
        os.fsync(target.fileno())


@dataclass(frozen=True)
class _FileMeta:
    mod_time_ns: int
    size: int

    @classmethod
    def of(cls, info: os.stat_result) -> "_FileMeta":
        return cls(info.st_mtime_ns, info.st_size)


class TempCopyManager:
    """Keeps one up-to-date temporary copy per original file and removes stale ones."""

    def __init__(self, temp_dir: Optional[str] = None,
                 deletion_delay: float = DEFAULT_DELETION_DELAY) -> None:
        if temp_dir is None:
            self.temp_dir = _default_temp_dir()
        else:
            os.makedirs(temp_dir, mode=0o755, exist_ok=True)
            self.temp_dir = temp_dir
        self.deletion_delay = deletion_delay
        self.mapping_file_path = os.path.join(self.temp_dir, MAPPING_FILE_NAME)

        self._path_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()
        self._map_lock = threading.RLock()
        self._temp_for: Dict[str, str] = {}
        self._meta_for: Dict[str, _FileMeta] = {}
        self._old_versions: Dict[str, str] = {}
        self._deletions: "queue.Queue[Tuple[str, float]]" = queue.Queue(_DELETION_QUEUE_SIZE)
        self._stop = threading.Event()

        self._load_mappings()
        self._cleanup_existing()

        self._threads = [
            threading.Thread(target=self._deletion_worker, daemon=True)
            for _ in range(_DELETION_WORKERS)
        ]
        self._threads.append(threading.Thread(target=self._periodic_worker, daemon=True))
        for thread in self._threads:
            thread.start()

    def __enter__(self) -> "TempCopyManager":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Stop the background workers and persist the mappings."""
        if self._stop.is_set():
            return
        self._stop.set()
        for thread in self._threads:
            thread.join()
        self.save_mappings()

    def _lock_for(self, path: str) -> threading.Lock:
        with self._locks_guard:
            return self._path_locks[path]

    def _load_mappings(self) -> None:
        try:
            with open(self.mapping_file_path, "r", encoding="utf-8") as handle:
                entries = json.load(handle)
        except (OSError, ValueError):
            return
        if not isinstance(entries, list):
            return
        with self._map_lock:
            for entry in entries:
                try:
                    original = entry["original_path"]
                    temp = entry["temp_path"]
                    meta = _FileMeta(int(entry["metadata"]["mod_time"]),
                                     int(entry["metadata"]["size"]))
                    current = _FileMeta.of(os.stat(original))
                    os.stat(temp)
                except (OSError, KeyError, TypeError, ValueError):
                    continue
                if current == meta:
                    self._temp_for[original] = temp
                    self._meta_for[original] = meta

    def save_mappings(self) -> None:
        """Write the current mappings to the mapping file; failures are ignored."""
        with self._map_lock:
            entries = [
                {
                    "original_path": original,
                    "temp_path": temp,
                    "metadata": {"mod_time": meta.mod_time_ns, "size": meta.size},
                }
                for original, temp in self._temp_for.items()
                if (meta := self._meta_for.get(original)) is not None
            ]
        try:
            with open(self.mapping_file_path, "w", encoding="utf-8") as handle:
                json.dump(entries, handle, indent=2)
                handle.write("\n")
        except OSError:
            pass

    def _data_files(self) -> List[str]:
        try:
            with os.scandir(self.temp_dir) as scan:
                return [entry.name for entry in scan
                        if not entry.is_dir() and entry.name != MAPPING_FILE_NAME]
        except OSError:
            return []

    def _cleanup_existing(self) -> None:
        with self._map_lock:
            known = set(self._temp_for.values())
        groups: Dict[str, List[Tuple[str, int]]] = defaultdict(list)
        for name in self._data_files():
            path = os.path.join(self.temp_dir, name)
            parts = name.split("_")
            if len(parts) < 3:
                _remove_now(path)
                continue
            stamp = _LEADING_INT_RE.match(parts[2].split(".")[0])
            if stamp is None:
                _remove_now(path)
                continue
            groups[parts[0] + "_" + parts[1]].append((path, int(stamp.group())))

        for files in groups.values():
            newest_path, newest_stamp = "", 0
            for path, stamp in files:
                if stamp > newest_stamp:
                    newest_path, newest_stamp = path, stamp
            for path, _ in files:
                if path != newest_path and path not in known:
                    _remove_now(path)

    def get_temp_copy(self, original_path: str) -> str:
        """Return the path of a current temporary copy of ``original_path``."""
        with self._lock_for(original_path):
            try:
                current = _FileMeta.of(os.stat(original_path))
            except OSError as exc:
                raise FileNotFoundError(f"original file does not exist: {exc}") from exc

            with self._map_lock:
                cached_path = self._temp_for.get(original_path)
                cached_meta = self._meta_for.get(original_path)

            if cached_path is not None and cached_meta is not None:
                changed = (current.mod_time_ns > cached_meta.mod_time_ns
                           or current.size != cached_meta.size)
                if not changed:
                    try:
                        with open(cached_path, "rb"):
                            return cached_path
                    except OSError:
                        pass

            base, ext = _base_and_ext(original_path)
            prefix = hash_string(original_path)[:_HASH_PREFIX_LEN]
            temp_path = os.path.join(self.temp_dir,
                                     f"{base}_{prefix}_{time.time_ns()}{ext}")
            self._copy_with_retry(original_path, temp_path)

            with self._map_lock:
                old_path = self._temp_for.get(original_path, "")
                if old_path and old_path != temp_path:
                    older = self._old_versions.get(original_path)
                    if older is not None and older != old_path:
                        _remove_now(older)
                    self._old_versions[original_path] = old_path
                    self._schedule_deletion(old_path)
                self._temp_for[original_path] = temp_path
                self._meta_for[original_path] = current

            self.save_mappings()
            self._cleanup_related(original_path, temp_path, old_path)
            return temp_path

    @staticmethod
    def _copy_with_retry(src: str, dst: str) -> None:
        last_error: Optional[OSError] = None
        for attempt in range(_COPY_RETRIES):
            try:
                _copy_file(src, dst)
                return
            except OSError as exc:
                last_error = exc
                time.sleep(0.1 * (attempt + 1))
        raise OSError(
            f"failed to copy file after {_COPY_RETRIES} attempts: {last_error}"
        ) from last_error

    def _cleanup_related(self, original_path: str, current_path: str, old_path: str) -> None:
        base, _ = _base_and_ext(original_path)
        prefix = base + "_" + hash_string(original_path)[:_HASH_PREFIX_LEN]
        keep = {_strip_ext(current_path), _strip_ext(old_path)}
        for name in self._data_files():
            path = os.path.join(self.temp_dir, name)
            if _strip_ext(path) in keep:
                continue
            if name.startswith(prefix):
                _remove_now(path)

    def _schedule_deletion(self, path: str) -> None:
        if not path or not os.path.exists(path):
            return
        try:
            self._deletions.put_nowait((path, time.monotonic() + self.deletion_delay))
        except queue.Full:
            _remove_now(path)

    def _deletion_worker(self) -> None:
        while not self._stop.is_set():
            try:
                path, due = self._deletions.get(timeout=0.1)
            except queue.Empty:
                continue
            remaining = due - time.monotonic()
            if remaining > 0 and self._stop.wait(remaining):
                return
            with self._map_lock:
                active = path in self._temp_for.values()
            if not active:
                _remove_now(path)

    def _periodic_worker(self) -> None:
        while not self._stop.wait(_CLEANUP_INTERVAL):
            self.cleanup_temp_files()
            self.save_mappings()

    def cleanup_temp_files(self) -> None:
        """Schedule removal of files in the temp directory that no mapping refers to."""
        with self._map_lock:
            active = {_strip_ext(path) for path in self._temp_for.values()}
            active.update(_strip_ext(path) for path in self._old_versions.values())
        for name in self._data_files():
            path = os.path.join(self.temp_dir, name)
            if _strip_ext(path) not in active:
                self._schedule_deletion(path)


_default_manager: Optional[TempCopyManager] = None
_default_guard = threading.Lock()


def _manager() -> TempCopyManager:
    global _default_manager
    with _default_guard:
        if _default_manager is None:
            _default_manager = TempCopyManager()
        return _default_manager


def get_temp_copy(original_path: str) -> str:
    """Return a temporary copy of ``original_path`` using the shared manager."""
    return _manager().get_temp_copy(original_path)


def cleanup_temp_files() -> None:
    """Schedule removal of unused temporary copies held by the shared manager."""
    _manager().cleanup_temp_files()