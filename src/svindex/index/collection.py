"""A group of indexes that resolve includes across each other."""

from __future__ import annotations

import logging
import threading

from svindex.core.progress import ProgressMonitor
from svindex.db.items import SVDBFile
from svindex.index.base import AbstractIndex
from svindex.index.matchers import NameMatcher, exact_match
from svindex.index.schema import DeclCacheEntry

logger = logging.getLogger(__name__)


class IndexCollection:
    """Holds several indexes and acts as their global include provider.

    Usage::

        collection = IndexCollection()
        collection.add(SourceCollectionIndex("/proj/rtl", fs))
        collection.add(ArgFileIndex("/proj/tb/tb.f", fs))
        decls = collection.find_global_scope_decl("my_pkg")
    """

    def __init__(self) -> None:
        self._indexes: list[AbstractIndex] = []
        self._lock = threading.Lock()

    def add(self, index: AbstractIndex) -> None:
        with self._lock:
            if index in self._indexes:
                return
            self._indexes = [*self._indexes, index]
        index.include_provider = self

    def remove(self, index: AbstractIndex) -> bool:
        with self._lock:
            if index not in self._indexes:
                return False
            self._indexes = [i for i in self._indexes if i is not index]
        if index.include_provider is self:
            index.include_provider = None
        return True

    @property
    def indexes(self) -> list[AbstractIndex]:
        return list(self._indexes)

    # ── IncludeFileProvider ───────────────────────────────────────────────────

    def find_included_file(
        self, leaf: str, exclude: AbstractIndex | None = None,
    ) -> tuple[str, AbstractIndex] | None:
        """Ask each index's local resolver, in registration order."""
        for index in self._indexes:
            if index is exclude:
                continue
            path = index.resolver.find_included_file(leaf)
            if path is not None:
                logger.debug("Found include %r in index %s", leaf, index.base_location)
                return path, index
        return None

    # ── Fan-out queries ───────────────────────────────────────────────────────

    def find_global_scope_decl(
        self,
        name: str,
        matcher: str | NameMatcher = exact_match,
        monitor: ProgressMonitor | None = None,
    ) -> list[DeclCacheEntry]:
        results: list[DeclCacheEntry] = []
        for index in self._indexes:
            results.extend(index.find_global_scope_decl(name, matcher, monitor))
        return results

    def find_file(self, path: str, monitor: ProgressMonitor | None = None) -> SVDBFile | None:
        for index in self._indexes:
            svdb_file = index.find_file(path, monitor)
            if svdb_file is not None:
                return svdb_file
        return None

    def get_file_list(self, monitor: ProgressMonitor | None = None) -> set[str]:
        files: set[str] = set()
        for index in self._indexes:
            files |= index.get_file_list(monitor)
        return files

    def load_all(self, monitor: ProgressMonitor | None = None) -> bool:
        return all([index.load_index(monitor) for index in self._indexes])

    def dispose(self) -> None:
        for index in self._indexes:
            try:
                index.dispose()
            except Exception:
                logger.exception("Error disposing index %s", index.base_location)
