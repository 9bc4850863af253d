"""File-system access and change notification for indexes."""

from __future__ import annotations

import logging
import os
import threading
from typing import Iterable, Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from svindex.db.markers import Marker, MarkerKind, MarkerType
from svindex.db.items import Location
from svindex.index.paths import expand_workspace, normalize_path

logger = logging.getLogger(__name__)


class FileSystemListener(Protocol):
    def file_added(self, path: str) -> None: ...
    def file_removed(self, path: str) -> None: ...
    def file_changed(self, path: str) -> None: ...


class FileSystemProvider(Protocol):
    """What an index needs from the file system."""

    def exists(self, path: str) -> bool: ...
    def is_dir(self, path: str) -> bool: ...
    def last_modified(self, path: str) -> int: ...
    def open_stream(self, path: str) -> bytes | None: ...
    def list_dir(self, path: str) -> list[str]: ...
    def add_marker(self, path: str, marker_type: MarkerType, line: int, message: str) -> None: ...
    def clear_markers(self, path: str) -> None: ...
    def add_listener(self, listener: FileSystemListener) -> None: ...
    def remove_listener(self, listener: FileSystemListener) -> None: ...


class LocalFileSystemProvider:
    """``FileSystemProvider`` over the local disk.

    Markers pushed by an index are kept in memory (``get_markers``) so a
    front-end can display them.  Change notifications are delivered either
    by calling ``fire_*`` directly or by ``start_watching``, which runs a
    watchdog observer over the given directories.
    """

    def __init__(self, workspace_root: str | None = None) -> None:
        self._workspace_root = workspace_root
        self._listeners: list[FileSystemListener] = []
        self._markers: dict[str, list[Marker]] = {}
        self._lock = threading.Lock()
        self._observer: Observer | None = None

    def _real(self, path: str) -> str:
        return expand_workspace(path, self._workspace_root)

    # ── Queries ───────────────────────────────────────────────────────────────

    def exists(self, path: str) -> bool:
        return os.path.isfile(self._real(path))

    def is_dir(self, path: str) -> bool:
        return os.path.isdir(self._real(path))

    def last_modified(self, path: str) -> int:
        try:
            return os.stat(self._real(path)).st_mtime_ns
        except OSError:
            return -1

    def open_stream(self, path: str) -> bytes | None:
        try:
            with open(self._real(path), "rb") as f:
                return f.read()
        except OSError as exc:
            logger.warning("Cannot read %s: %s", path, exc)
            return None

    def list_dir(self, path: str) -> list[str]:
        try:
            return sorted(os.listdir(self._real(path)))
        except OSError as exc:
            logger.warning("Cannot list %s: %s", path, exc)
            return []

    # ── Markers ───────────────────────────────────────────────────────────────

    def add_marker(self, path: str, marker_type: MarkerType, line: int, message: str) -> None:
        marker = Marker(marker_type, MarkerKind.GENERIC, message, Location(line=line))
        with self._lock:
            self._markers.setdefault(path, []).append(marker)

    def clear_markers(self, path: str) -> None:
        with self._lock:
            self._markers.pop(path, None)

    def get_markers(self, path: str) -> list[Marker]:
        with self._lock:
            return list(self._markers.get(path, []))

    # ── Listeners ─────────────────────────────────────────────────────────────

    def add_listener(self, listener: FileSystemListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: FileSystemListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _snapshot(self) -> list[FileSystemListener]:
        with self._lock:
            return list(self._listeners)

    def fire_added(self, path: str) -> None:
        for listener in self._snapshot():
            listener.file_added(path)

    def fire_removed(self, path: str) -> None:
        for listener in self._snapshot():
            listener.file_removed(path)

    def fire_changed(self, path: str) -> None:
        for listener in self._snapshot():
            listener.file_changed(path)

    # ── Watching ──────────────────────────────────────────────────────────────

    def start_watching(self, directories: Iterable[str]) -> None:
        """Start a watchdog observer that forwards events to listeners."""
        if self._observer is not None:
            return
        handler = _ForwardingEventHandler(self)
        observer = Observer()
        for directory in directories:
            real = self._real(directory)
            if os.path.isdir(real):
                observer.schedule(handler, real, recursive=True)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info("Watching for file changes")

    def stop_watching(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None


class _ForwardingEventHandler(FileSystemEventHandler):
    """Translate watchdog events into listener callbacks."""

    def __init__(self, provider: LocalFileSystemProvider) -> None:
        super().__init__()
        self._provider = provider

    @staticmethod
    def _path(raw: str | bytes) -> str:
        if isinstance(raw, bytes):
            raw = os.fsdecode(raw)
        return normalize_path(raw)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._provider.fire_added(self._path(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._provider.fire_removed(self._path(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._provider.fire_changed(self._path(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._provider.fire_removed(self._path(event.src_path))
            self._provider.fire_added(self._path(event.dest_path))
