"""Global declaration and reference caches.

Both caches are keyed by file path and live inside ``CacheData``.  A file's
list is always replaced as a whole after that file is parsed; entries are
never patched one at a time.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Any

from svindex.db.items import ClassDecl, Item, ItemType, ScopeItem, SVDBFile
from svindex.index.matchers import NameMatcher
from svindex.index.schema import CacheData, DeclCacheEntry, RefCacheEntry

logger = logging.getLogger(__name__)

# Registered without looking inside their bodies.
LEAF_DECL_TYPES = frozenset({
    ItemType.FUNCTION,
    ItemType.TASK,
    ItemType.CLASS_DECL,
    ItemType.MODULE_DECL,
    ItemType.INTERFACE_DECL,
    ItemType.PROGRAM_DECL,
    ItemType.TYPEDEF,
    ItemType.MACRO_DEF,
})


def collect_decls(
    filename: str,
    scope: ScopeItem,
    is_file_tree: bool = True,
    index: Any = None,
) -> list[DeclCacheEntry]:
    """Collect global-scope declarations from a parsed file, in source order."""
    out: list[DeclCacheEntry] = []
    _collect(filename, scope, is_file_tree, index, "", out)
    return out


def _collect(
    filename: str,
    scope: ScopeItem,
    is_file_tree: bool,
    index: Any,
    package: str,
    out: list[DeclCacheEntry],
) -> None:
    for item in scope.children:
        if item.type == ItemType.PACKAGE_DECL:
            out.append(_entry(filename, item, is_file_tree, index, package))
            if isinstance(item, ScopeItem):
                _collect(filename, item, is_file_tree, index, item.name, out)
        elif item.type in LEAF_DECL_TYPES:
            if item.name:
                out.append(_entry(filename, item, is_file_tree, index, package))
        elif item.type == ItemType.PREPROC_COND and isinstance(item, ScopeItem):
            _collect(filename, item, is_file_tree, index, package, out)


def _entry(filename: str, item: Item, is_file_tree: bool, index: Any, package: str) -> DeclCacheEntry:
    return DeclCacheEntry(
        filename=filename,
        name=item.name,
        type=item.type,
        is_file_tree=is_file_tree,
        scope=package,
        line=item.location.line if item.location else 0,
        index=index,
    )


def collect_refs(filename: str, svdb_file: SVDBFile) -> list[RefCacheEntry]:
    """Collect package imports and class extensions anywhere in the file."""
    refs: list[RefCacheEntry] = []
    for item in svdb_file.walk():
        line = item.location.line if item.location else 0
        if item.type == ItemType.IMPORT:
            pkg = item.name.split("::", 1)[0]
            refs.append(RefCacheEntry(filename=filename, name=pkg, kind="import", line=line))
        elif isinstance(item, ClassDecl) and item.super_class:
            refs.append(
                RefCacheEntry(filename=filename, name=item.super_class, kind="extends", line=line)
            )
    return refs


class DeclarationCache:
    """Thread-safe view over the declaration/reference maps of a ``CacheData``."""

    def __init__(self, cache_data: CacheData, lock: threading.RLock | None = None) -> None:
        self._data = cache_data
        self._lock = lock or threading.RLock()

    def set_file(
        self,
        path: str,
        decls: list[DeclCacheEntry],
        refs: list[RefCacheEntry],
    ) -> None:
        """Replace everything recorded for *path*."""
        with self._lock:
            self._data.decl_cache[path] = list(decls)
            self._data.ref_cache[path] = list(refs)

    def remove_file(self, path: str) -> None:
        with self._lock:
            self._data.decl_cache.pop(path, None)
            self._data.ref_cache.pop(path, None)

    def get_file_decls(self, path: str) -> list[DeclCacheEntry]:
        with self._lock:
            return list(self._data.decl_cache.get(path, []))

    def find_decls(self, name: str, matcher: NameMatcher) -> list[DeclCacheEntry]:
        """Linear scan over every file's declarations."""
        with self._lock:
            snapshot = [list(entries) for entries in self._data.decl_cache.values()]
        return [e for entries in snapshot for e in entries if matcher(e.name, name)]

    def find_refs(self, name: str, matcher: NameMatcher) -> list[RefCacheEntry]:
        with self._lock:
            snapshot = [list(entries) for entries in self._data.ref_cache.values()]
        return [e for entries in snapshot for e in entries if matcher(e.name, name)]

    def rebind(self, index: Any) -> None:
        """Attach *index* to entries that were loaded without one."""
        with self._lock:
            for path, entries in self._data.decl_cache.items():
                self._data.decl_cache[path] = [
                    e if e.index is index else dataclasses.replace(e, index=index)
                    for e in entries
                ]

    def count(self) -> int:
        with self._lock:
            return sum(len(v) for v in self._data.decl_cache.values())
