"""Per-path symbol cache.

Each tracked path owns one immutable ``CacheEntry``.  Setters replace the
whole entry under the cache lock, so a reader never observes a path whose
fields come from two different updates.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from dataclasses import dataclass
from typing import Any, Protocol

from svindex.db.items import SVDBFile
from svindex.db.markers import Marker
from svindex.index.file_tree import FileTreeNode
from svindex.index.schema import CacheData

logger = logging.getLogger(__name__)

NO_TIMESTAMP = -1


@dataclass(frozen=True)
class CacheEntry:
    preproc: SVDBFile | None = None
    parsed: SVDBFile | None = None
    file_tree: FileTreeNode | None = None
    markers: tuple[Marker, ...] = ()
    last_modified: int = NO_TIMESTAMP


class IndexCache(Protocol):
    """Storage contract the index engine depends on."""

    @property
    def lock(self) -> threading.RLock: ...

    def init(self, cache_data: CacheData) -> bool: ...
    def get_file_list(self) -> set[str]: ...
    def has_file(self, path: str) -> bool: ...
    def add_file(self, path: str) -> None: ...
    def remove_file(self, path: str) -> None: ...
    def get_entry(self, path: str) -> CacheEntry | None: ...
    def update(self, path: str, **fields: Any) -> CacheEntry: ...
    def get_preproc_file(self, path: str) -> SVDBFile | None: ...
    def set_preproc_file(self, path: str, svdb_file: SVDBFile | None) -> None: ...
    def get_file(self, path: str) -> SVDBFile | None: ...
    def set_file(self, path: str, svdb_file: SVDBFile | None) -> None: ...
    def get_file_tree(self, path: str) -> FileTreeNode | None: ...
    def set_file_tree(self, path: str, node: FileTreeNode | None) -> None: ...
    def get_markers(self, path: str) -> list[Marker]: ...
    def set_markers(self, path: str, markers: list[Marker]) -> None: ...
    def get_last_modified(self, path: str) -> int: ...
    def set_last_modified(self, path: str, timestamp: int) -> None: ...
    def sync(self) -> None: ...
    def clear(self) -> None: ...
    def dispose(self) -> None: ...


class InMemoryIndexCache:
    """Dictionary-backed ``IndexCache``; the default backend."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: dict[str, CacheEntry] = {}
        self._cache_data: CacheData | None = None

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def init(self, cache_data: CacheData) -> bool:
        """Bind the index's cache data.  Returns True if persisted state was loaded."""
        with self._lock:
            self._cache_data = cache_data
        return False

    def sync(self) -> None:
        """Flush to backing storage (nothing to do in memory)."""

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def dispose(self) -> None:
        self.sync()

    # ── Paths ─────────────────────────────────────────────────────────────────

    def get_file_list(self) -> set[str]:
        with self._lock:
            return set(self._entries)

    def has_file(self, path: str) -> bool:
        with self._lock:
            return path in self._entries

    def add_file(self, path: str) -> None:
        with self._lock:
            self._entries.setdefault(path, CacheEntry())

    def remove_file(self, path: str) -> None:
        with self._lock:
            self._entries.pop(path, None)

    def entries(self) -> dict[str, CacheEntry]:
        """Snapshot of every entry, keyed by path."""
        with self._lock:
            return dict(self._entries)

    # ── Entries ───────────────────────────────────────────────────────────────

    def get_entry(self, path: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(path)

    def update(self, path: str, **fields: Any) -> CacheEntry:
        """Replace several fields of *path*'s entry in one step."""
        with self._lock:
            current = self._entries.get(path, CacheEntry())
            if "markers" in fields:
                fields["markers"] = tuple(fields["markers"])
            entry = dataclasses.replace(current, **fields)
            self._entries[path] = entry
            return entry

    def get_preproc_file(self, path: str) -> SVDBFile | None:
        entry = self.get_entry(path)
        return entry.preproc if entry else None

    def set_preproc_file(self, path: str, svdb_file: SVDBFile | None) -> None:
        self.update(path, preproc=svdb_file)

    def get_file(self, path: str) -> SVDBFile | None:
        entry = self.get_entry(path)
        return entry.parsed if entry else None

    def set_file(self, path: str, svdb_file: SVDBFile | None) -> None:
        self.update(path, parsed=svdb_file)

    def get_file_tree(self, path: str) -> FileTreeNode | None:
        entry = self.get_entry(path)
        return entry.file_tree if entry else None

    def set_file_tree(self, path: str, node: FileTreeNode | None) -> None:
        self.update(path, file_tree=node)

    def get_markers(self, path: str) -> list[Marker]:
        entry = self.get_entry(path)
        return list(entry.markers) if entry else []

    def set_markers(self, path: str, markers: list[Marker]) -> None:
        self.update(path, markers=markers)

    def get_last_modified(self, path: str) -> int:
        entry = self.get_entry(path)
        return entry.last_modified if entry else NO_TIMESTAMP

    def set_last_modified(self, path: str, timestamp: int) -> None:
        self.update(path, last_modified=timestamp)
