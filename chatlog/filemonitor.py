"""Watching directories for changes and dispatching them to file groups."""

from __future__ import annotations

import logging
import os
import queue
import threading
from typing import Dict, List, Optional, Sequence

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from chatlog.filegroup import FileEvent, FileGroup, FileOp

__all__ = ["FileMonitor"]

_log = logging.getLogger(__name__)


def _translate(event: FileSystemEvent) -> List[FileEvent]:
    kind = event.event_type
    src = os.fsdecode(event.src_path)
    if kind == "created":
        return [FileEvent(src, FileOp.CREATE)]
    if kind == "modified":
        return [] if event.is_directory else [FileEvent(src, FileOp.WRITE)]
    if kind == "deleted":
        return [FileEvent(src, FileOp.REMOVE)]
    if kind == "moved":
        dest = os.fsdecode(event.dest_path)
        return [FileEvent(src, FileOp.RENAME), FileEvent(dest, FileOp.CREATE)]
    return []


class _EventBridge(FileSystemEventHandler):
    def __init__(self, sink) -> None:
        super().__init__()
        self._sink = sink

    def on_any_event(self, event: FileSystemEvent) -> None:
        for translated in _translate(event):
            self._sink(translated)


class FileMonitor:
    """Watches the directories of several file groups and forwards their events."""

    def __init__(self) -> None:
        self._groups: Dict[str, FileGroup] = {}
        self._watches: Dict[str, object] = {}
        self._blacklist: List[str] = []
        self._lock = threading.RLock()
        self._state_lock = threading.RLock()
        self._running = False
        self._observer: Optional[Observer] = None
        self._events: Optional[queue.Queue] = None
        self._stop: Optional[threading.Event] = None
        self._worker: Optional[threading.Thread] = None
        self._handler = _EventBridge(self._enqueue)

    def _enqueue(self, event: FileEvent) -> None:
        events = self._events
        if events is not None:
            events.put(event)

    def set_blacklist(self, blacklist: Sequence[str]) -> None:
        """Set substrings that exclude a directory from being watched."""
        with self._lock:
            self._blacklist = list(blacklist)

    def add_group(self, group: FileGroup) -> None:
        """Add ``group``, watching its directories at once if the monitor runs."""
        if group is None:
            raise ValueError("group cannot be None")
        running = self.is_running()
        with self._lock:
            if group.group_id in self._groups:
                raise ValueError(f"group with ID {group.group_id!r} already exists")
            self._groups[group.group_id] = group
        if running:
            try:
                self._setup_watch_for_group(group)
            except (OSError, RuntimeError):
                with self._lock:
                    self._groups.pop(group.group_id, None)
                raise

    def create_group(self, group_id: str, root_dir: str, pattern: str,
                     blacklist: Optional[Sequence[str]] = None) -> FileGroup:
        """Create a file group, add it and return it."""
        group = FileGroup(group_id, root_dir, pattern, blacklist)
        self.add_group(group)
        return group

    def remove_group(self, group_id: str) -> None:
        """Remove the group with ``group_id``."""
        with self._lock:
            if group_id not in self._groups:
                raise KeyError(f"group with ID {group_id!r} does not exist")
            del self._groups[group_id]

    def get_groups(self) -> List[FileGroup]:
        """Return all file groups."""
        with self._lock:
            return list(self._groups.values())

    def get_group(self, group_id: str) -> Optional[FileGroup]:
        """Return the group with ``group_id``, or None."""
        with self._lock:
            return self._groups.get(group_id)

    def start(self) -> None:
        """Start watching the directories of every group."""
        with self._state_lock:
            if self._running:
                raise RuntimeError("file monitor is already running")
            observer = Observer()
            try:
                observer.start()
            except OSError as exc:
                raise OSError(f"failed to create watcher: {exc}") from exc
            self._observer = observer
            self._events = queue.Queue()
            self._stop = threading.Event()
            with self._lock:
                groups = list(self._groups.values())
                self._watches = {}
            self._running = True

        for group in groups:
            try:
                self._setup_watch_for_group(group)
            except (OSError, RuntimeError) as exc:
                self._shutdown_observer(observer)
                with self._state_lock:
                    self._observer = None
                    self._running = False
                raise OSError(
                    f"failed to setup watch for group {group.group_id!r}: {exc}"
                ) from exc

        worker = threading.Thread(target=self._watch_loop,
                                  args=(self._events, self._stop), daemon=True)
        self._worker = worker
        worker.start()

    def stop(self) -> None:
        """Stop watching and wait for the event loop to finish."""
        with self._state_lock:
            if not self._running:
                raise RuntimeError("file monitor is not running")
            observer, stop, worker = self._observer, self._stop, self._worker
            if stop is not None:
                stop.set()
            self._running = False
        if worker is not None:
            worker.join()
        if observer is not None:
            self._shutdown_observer(observer)
            with self._state_lock:
                self._observer = None
                self._worker = None

    @staticmethod
    def _shutdown_observer(observer: Observer) -> None:
        observer.stop()
        observer.join()

    def is_running(self) -> bool:
        """Return whether the monitor is running."""
        with self._state_lock:
            return self._running

    def _add_watch_dir(self, dir_path: str) -> None:
        with self._lock:
            if any(pattern in dir_path for pattern in self._blacklist):
                _log.debug("Skipping blacklisted directory %s", dir_path)
                return
            if dir_path in self._watches:
                return
            observer = self._observer
            if observer is None:
                raise RuntimeError("file monitor is not running")
            if not os.path.exists(dir_path):
                raise FileNotFoundError(
                    f"failed to watch directory {dir_path!r}: no such file or directory")
            try:
                watch = observer.schedule(self._handler, dir_path, recursive=False)
            except OSError as exc:
                raise OSError(f"failed to watch directory {dir_path!r}: {exc}") from exc
            self._watches[dir_path] = watch

    def _setup_watch_for_group(self, group: FileGroup) -> None:
        if not self.is_running():
            raise RuntimeError("file monitor is not running")
        directories = group.list_matching_directories()
        self._add_watch_dir(os.path.normpath(group.root_dir))
        for directory in sorted(directories):
            self._add_watch_dir(directory)

    def refresh_watches(self) -> None:
        """Re-scan every group and watch exactly the directories now needed."""
        if not self.is_running():
            raise RuntimeError("file monitor is not running")
        with self._lock:
            groups = list(self._groups.values())
            old_watches = self._watches
            self._watches = {}

        for group in groups:
            try:
                self._setup_watch_for_group(group)
            except (OSError, RuntimeError) as exc:
                raise OSError(
                    f"failed to refresh watches for group {group.group_id!r}: {exc}"
                ) from exc

        observer = self._observer
        for directory, watch in old_watches.items():
            with self._lock:
                still_watched = directory in self._watches
            if not still_watched and observer is not None:
                try:
                    observer.unschedule(watch)
                except (KeyError, OSError):
                    pass
                _log.debug("Removed watch for directory %s", directory)

    def _watch_loop(self, events: queue.Queue, stop: threading.Event) -> None:
        while not stop.is_set():
            try:
                event = events.get(timeout=0.1)
            except queue.Empty:
                continue
            self._process(event)

    def _process(self, event: FileEvent) -> None:
        if event.op & (FileOp.CREATE | FileOp.RENAME) and os.path.isdir(event.name):
            try:
                self._add_watch_dir(event.name)
            except (OSError, RuntimeError):
                _log.exception("Error watching new directory %s", event.name)
            return

        if event.op & (FileOp.CREATE | FileOp.WRITE):
            with self._lock:
                should_watch = any(group.match(event.name) for group in self._groups.values())
            if should_watch:
                directory = os.path.dirname(event.name)
                try:
                    self._add_watch_dir(directory)
                except (OSError, RuntimeError):
                    _log.exception("Error watching directory of matching file %s", directory)

        self._forward_event_to_groups(event)

    def _forward_event_to_groups(self, event: FileEvent) -> None:
        for group in self.get_groups():
            group.handle_event(event)