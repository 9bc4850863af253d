"""Include resolution and file-tree construction.

Resolution order for an ``include "leaf"``:

1. a preprocessed file already in the cache at the resolved literal path
2. each include-search directory, in configured order
3. the literal path resolved against the base directory on disk
4. the global cross-index provider, if one is set

The first hit wins.  A miss is recorded in the index's missing-include set
and as a MISSING_INCLUDE marker on the including file; the build goes on.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Iterator, Protocol

from svindex.db.items import Include, Item, MacroDef, PreProcCond, ScopeItem, SVDBFile
from svindex.db.markers import Marker, MarkerKind, MarkerType
from svindex.index.file_tree import FileTreeNode
from svindex.index.paths import (
    WORKSPACE_TOKEN,
    join_path,
    normalize_path,
    to_workspace_relative,
)

if TYPE_CHECKING:
    from svindex.index.base import AbstractIndex

logger = logging.getLogger(__name__)


class IncludeFileProvider(Protocol):
    """Cross-index include lookup (see ``IndexCollection``)."""

    def find_included_file(
        self, leaf: str, exclude: AbstractIndex | None = None,
    ) -> tuple[str, AbstractIndex] | None: ...


def missing_include_marker(include: Include) -> Marker:
    return Marker(
        MarkerType.ERROR,
        MarkerKind.MISSING_INCLUDE,
        f'Failed to find include file "{include.name}"',
        include.location,
    )


class IncludeResolver:
    """Resolves include strings to paths and builds file-tree nodes for an index."""

    def __init__(self, index: AbstractIndex) -> None:
        self._index = index
        self._missing: set[str] = set()
        self._missing_lock = threading.Lock()

    # ── Path resolution ───────────────────────────────────────────────────────

    def resolve_path(self, path: str) -> str:
        """Resolve *path* against the base directory and include directories.

        Handles ``../x`` (base dir, then each include dir), ``./x`` (base
        dir) and bare names (as given if the file exists, else relative to
        the base dir).  The result is normalised and, when a workspace root
        is configured and the rewritten form exists, expressed relative to
        ``${workspace_loc}``.
        """
        fs = self._index.fs
        base_dir = self._index.get_resolved_base_location_dir()
        norm: str | None = None

        if path.startswith(".."):
            norm = self._resolve_relative(base_dir, path)
            if norm is None:
                for inc_dir in self._index.cache_data.include_paths:
                    norm = self._resolve_relative(inc_dir, path)
                    if norm is not None:
                        break
        else:
            if path == ".":
                path = base_dir
            elif path.startswith("./"):
                path = join_path(base_dir, path[2:])
            elif not fs.exists(path):
                implicit = join_path(base_dir, path)
                if fs.exists(implicit):
                    path = implicit
            norm = normalize_path(path)

        if norm is not None and not norm.startswith(WORKSPACE_TOKEN):
            ws = to_workspace_relative(norm, self._index.config.workspace_root)
            if ws is not None and fs.exists(ws):
                norm = ws

        return norm if norm is not None else path

    def _resolve_relative(self, base: str, path: str) -> str | None:
        norm = normalize_path(join_path(base, path))
        return norm if self._index.fs.exists(norm) else None

    # ── Include lookup ────────────────────────────────────────────────────────

    def find_included_file(self, leaf: str) -> str | None:
        """Find *leaf* in this index, preprocessing it on first sight."""
        logger.debug("find_included_file: %s", leaf)
        index = self._index
        cache = index.cache

        literal = self.resolve_path(leaf)
        if cache.get_preproc_file(literal) is not None:
            return literal

        for inc_dir in index.cache_data.include_paths:
            inc_path = self.resolve_path(join_path(inc_dir, leaf))
            if cache.get_preproc_file(inc_path) is not None:
                logger.debug("find_included_file: %s already in cache", inc_path)
                return inc_path
            if index.fs.exists(inc_path) and index.preprocess_file(inc_path):
                return inc_path

        if index.fs.exists(literal) and index.preprocess_file(literal):
            return literal
        return None

    def find_included_file_global(self, leaf: str) -> tuple[str, AbstractIndex] | None:
        path = self.find_included_file(leaf)
        if path is not None:
            return path, self._index
        provider = self._index.include_provider
        if provider is not None:
            return provider.find_included_file(leaf, exclude=self._index)
        return None

    def can_resolve(self, leaf: str) -> bool:
        """True if *leaf* can now be found, without touching the cache."""
        index = self._index
        for inc_dir in index.cache_data.include_paths:
            if index.fs.exists(self.resolve_path(join_path(inc_dir, leaf))):
                return True
        if index.fs.exists(self.resolve_path(leaf)):
            return True
        provider = index.include_provider
        return provider is not None and provider.find_included_file(leaf, exclude=index) is not None

    # ── Missing includes ──────────────────────────────────────────────────────

    def reset_missing(self) -> None:
        with self._missing_lock:
            self._missing.clear()

    def take_missing(self) -> set[str]:
        with self._missing_lock:
            missing, self._missing = self._missing, set()
        return missing

    def _record_missing(self, leaf: str) -> None:
        with self._missing_lock:
            self._missing.add(leaf)

    # ── File tree ─────────────────────────────────────────────────────────────

    def build_file_tree(self, root_path: str) -> bool:
        """Job body for the file-tree stage: build the tree rooted at *root_path*."""
        cache = self._index.cache
        with cache.lock:
            if cache.get_file_tree(root_path) is not None:
                return True
            pp_file = cache.get_preproc_file(root_path)
        if pp_file is None:
            logger.error("Failed to get preprocessed file %s from cache", root_path)
            return False
        in_progress: set[str] = set()
        self._build(None, root_path, pp_file, in_progress, self._index.base_defines())
        return True

    def _build(
        self,
        parent: str | None,
        path: str,
        pp_file: SVDBFile,
        in_progress: set[str],
        defines: dict[str, str],
    ) -> bool:
        """Build the node for *path*.  False if it already existed."""
        cache = self._index.cache
        with cache.lock:
            existing = cache.get_file_tree(path)
            if existing is not None:
                # Reached again through another includer: one node per path.
                if parent is not None:
                    existing.add_included_by(parent)
                return False
            node = FileTreeNode(file_path=path, svdb_file=pp_file.duplicate())
            if parent is not None:
                node.add_included_by(parent)
            cache.set_file_tree(path, node)

        logger.debug("Building file tree for %s", path)
        in_progress.add(path)
        markers: list[Marker] = []
        self._add_include_files(node, node.svdb_file, markers, in_progress, defines)
        in_progress.discard(path)

        with cache.lock:
            kept = [m for m in cache.get_markers(path) if m.kind != MarkerKind.MISSING_INCLUDE]
            cache.update(path, markers=kept + markers)
        return True

    def _active_directives(self, scope: ScopeItem, defines: dict[str, str]) -> Iterator[Item]:
        """Yield the macro definitions and includes in *scope*'s taken branches.

        Conditions are evaluated lazily, so a define applied by the caller
        is visible to every conditional that follows it.
        """
        taken = False
        for item in scope.children:
            if isinstance(item, PreProcCond):
                if item.name in ("ifdef", "ifndef"):
                    taken = False
                if item.name == "ifdef":
                    active = item.conditional in defines
                elif item.name == "ifndef":
                    active = item.conditional not in defines
                elif item.name == "elsif":
                    active = not taken and item.conditional in defines
                else:
                    active = not taken
                taken = taken or active
                if active:
                    yield from self._active_directives(item, defines)
            elif isinstance(item, (MacroDef, Include)):
                yield item
            elif isinstance(item, ScopeItem):
                yield from self._active_directives(item, defines)

    def _add_include_files(
        self,
        node: FileTreeNode,
        scope: ScopeItem,
        markers: list[Marker],
        in_progress: set[str],
        defines: dict[str, str],
    ) -> None:
        for item in self._active_directives(scope, defines):
            if isinstance(item, MacroDef):
                defines[item.name] = item.value
            else:
                self._add_include(node, item, markers, in_progress, defines)

    def _add_include(
        self,
        node: FileTreeNode,
        include: Include,
        markers: list[Marker],
        in_progress: set[str],
        defines: dict[str, str],
    ) -> None:
        if not include.name:
            return
        found = self.find_included_file_global(include.name)
        if found is None:
            logger.debug(
                "Failed to find include file %r (from file %s)", include.name, node.file_path
            )
            self._record_missing(include.name)
            with self._index.cache.lock:
                node.add_included(include.name)
            markers.append(missing_include_marker(include))
            return

        inc_path, owner = found
        with self._index.cache.lock:
            node.add_included(inc_path)
        if inc_path in in_progress:
            # Include cycle: record the back-edge and stop.
            with self._index.cache.lock:
                target = self._index.cache.get_file_tree(inc_path)
                if target is not None:
                    target.add_included_by(node.file_path)
            return

        pp_file = self._index.cache.get_preproc_file(inc_path)
        if pp_file is None and owner is not self._index:
            foreign = owner.cache.get_preproc_file(inc_path)
            if foreign is not None:
                pp_file = foreign.duplicate()
                self._index.adopt_preproc_file(inc_path, pp_file, owner.fs.last_modified(inc_path))
        if pp_file is None:
            logger.error("Included file %s vanished from the cache", inc_path)
            self._index.mark_dirty()
            return

        if not self._build(node.file_path, inc_path, pp_file, in_progress, defines):
            self._merge_macros(inc_path, owner, defines, in_progress)

    def _merge_macros(
        self, path: str, owner: AbstractIndex, defines: dict[str, str], in_progress: set[str],
    ) -> None:
        """Apply the defines an already-built *path* contributes to *defines*.

        Walks the preprocessed trees the same way the build does instead of
        reading the node's edges, which another job may still be adding.
        """
        pp_file = self._index.cache.get_preproc_file(path)
        if pp_file is None and owner is not self._index:
            pp_file = owner.cache.get_preproc_file(path)
        if pp_file is None:
            return
        in_progress.add(path)
        for item in self._active_directives(pp_file, defines):
            if isinstance(item, MacroDef):
                defines[item.name] = item.value
                continue
            if not item.name:
                continue
            found = self.find_included_file_global(item.name)
            if found is not None and found[0] not in in_progress:
                self._merge_macros(found[0], found[1], defines, in_progress)
        in_progress.discard(path)
