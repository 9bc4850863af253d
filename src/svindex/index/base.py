"""Index state machine and query surface.

``AbstractIndex.ensure_state`` is the only place the pipeline advances::

    ALL_INVALID -> ROOT_FILES_DISCOVERED -> FILES_PREPROCESSED
                -> FILE_TREE_VALID -> ALL_FILES_PARSED

Each stage dispatches one job per path through the scheduler and joins
before the next stage starts.  Invalidations that arrive while a stage is
running only bump a generation counter; the running ``ensure_state`` sees
the change at the next stage barrier, resets and starts over.

Subclasses supply root-file discovery (``discover``).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

import svindex
from svindex.core.config import IndexConfig
from svindex.core.progress import ProgressMonitor
from svindex.db.items import SVDBFile
from svindex.db.markers import PARSE_PHASE_KINDS, Marker
from svindex.index.cache import IndexCache, InMemoryIndexCache
from svindex.index.decl_cache import DeclarationCache, collect_decls, collect_refs
from svindex.index.file_tree import FileTreeNode
from svindex.index.fs import FileSystemProvider
from svindex.index.invalidation import InvalidationController
from svindex.index.jobs import Job, JobScheduler, make_scheduler, run_batch
from svindex.index.macros import build_macro_map
from svindex.index.matchers import NameMatcher, exact_match, get_matcher
from svindex.index.paths import (
    WORKSPACE_TOKEN,
    dirname,
    expand_workspace,
    normalize_path,
    to_workspace_relative,
)
from svindex.index.resolver import IncludeFileProvider, IncludeResolver
from svindex.index.schema import CacheData, DeclCacheEntry, RefCacheEntry
from svindex.index.state import IndexState
from svindex.parser.factory import FileFactory, LexicalFileFactory
from svindex.parser.preproc import PreProcScanner
from svindex.plugins.manager import ListenerManager

logger = logging.getLogger(__name__)


@dataclass
class Discovery:
    """What a concrete index finds at its base location."""

    root_files: list[str] = field(default_factory=list)
    include_paths: list[str] = field(default_factory=list)
    defines: dict[str, str] = field(default_factory=dict)
    # Files that configure the index (e.g. an argument file) rather than being indexed.
    control_files: list[str] = field(default_factory=list)


class AbstractIndex:
    """Incrementally maintained symbol index over one base location."""

    def __init__(
        self,
        base_location: str,
        fs: FileSystemProvider,
        cache: IndexCache | None = None,
        config: IndexConfig | None = None,
        factory: FileFactory | None = None,
        scheduler: JobScheduler | None = None,
    ) -> None:
        self.base_location = base_location
        self.fs = fs
        self.cache: IndexCache = cache if cache is not None else InMemoryIndexCache()
        self.config = config or IndexConfig()
        self.factory: FileFactory = factory or LexicalFileFactory()
        self.include_provider: IncludeFileProvider | None = None

        self._owns_scheduler = scheduler is None
        self._scheduler = scheduler or make_scheduler(self.config)
        self._scanner = PreProcScanner()

        self.cache_data = self.create_cache_data()
        self.decl_cache = DeclarationCache(self.cache_data, self.cache.lock)
        self.resolver = IncludeResolver(self)
        self.invalidation = InvalidationController(self)
        self.listeners = ListenerManager()

        self._lock = threading.RLock()        # held for a whole ensure_state call
        self._flag_lock = threading.Lock()    # guards the fields below
        self._state = IndexState.ALL_INVALID
        self._generation = 0
        self._pending_reset = False
        self._in_pipeline = False
        self._dirty = False
        self._dirty_generation = 0    # bumped by every mark_dirty
        self._auto_rebuild = self.config.auto_rebuild
        self._global_defines: dict[str, str] = dict(self.config.global_defines)

        self._root_files: list[str] = []
        self._control_files: set[str] = set()
        self.file_dirs: set[str] = set()
        self._retry: set[str] = set()
        self._changed: set[str] = set()

        self.fs.add_listener(self.invalidation)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.base_location!r})"

    # ── Subclass contract ─────────────────────────────────────────────────────

    def discover(self) -> Discovery:
        raise NotImplementedError

    def get_resolved_base_location_dir(self) -> str:
        return dirname(self.get_resolved_base_location())

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def create_cache_data(self) -> CacheData:
        return CacheData(version=svindex.__version__, base_location=self.base_location)

    def init(self, monitor: ProgressMonitor | None = None) -> bool:
        """Load persisted state and decide whether it can be reused.

        Returns True when the index starts out fully parsed from the cache.
        """
        with self._lock:
            loaded = self.cache.init(self.cache_data)
            if loaded and self.invalidation.check_cache_valid():
                self.decl_cache.rebind(self)
                files = sorted(self.cache.get_file_list())
                self._root_files = files
                self.file_dirs = {dirname(p) for p in files} | set(self.cache_data.include_paths)
                self._control_files = set(self.discover().control_files)
                self._state = IndexState.ALL_FILES_PARSED
                logger.info("Index %s restored from cache (%d files)", self.base_location, len(files))
                return True

            if loaded:
                logger.info("Discarding stale cache for %s", self.base_location)
            self.cache_data.assign(self.create_cache_data())
            self.cache.clear()
            self._state = IndexState.ALL_INVALID
            return False

    def dispose(self) -> None:
        self.fs.remove_listener(self.invalidation)
        with self._lock:
            self.cache.dispose()
        if self._owns_scheduler:
            self._scheduler.shutdown()

    # ── State machine ─────────────────────────────────────────────────────────

    @property
    def state(self) -> IndexState:
        return self._state

    def ensure_state(self, target: IndexState, monitor: ProgressMonitor | None = None) -> bool:
        """Advance the pipeline to at least *target*.

        Returns False if *monitor* was canceled before *target* was reached;
        the next call resumes where this one stopped.
        """
        monitor = monitor or ProgressMonitor()
        with self._lock:
            outer, self._in_pipeline = self._in_pipeline, True
            try:
                return self._ensure_state(target, monitor)
            finally:
                self._in_pipeline = outer

    def _ensure_state(self, target: IndexState, monitor: ProgressMonitor) -> bool:
        while True:
            self._apply_pending_reset()
            generation = self._generation
            while self._state < target and generation == self._generation:
                if monitor.is_canceled():
                    return False
                stage = IndexState(self._state + 1)
                with self._flag_lock:
                    dirty_generation = self._dirty_generation
                completed = self._run_stage(stage, monitor)
                if generation != self._generation:
                    logger.info("Index %s invalidated during %s; restarting", self, stage.name)
                    break
                if not completed:
                    return False
                self._enter_state(stage, dirty_generation)
            if generation != self._generation:
                continue

            self._retry_failed(monitor)
            self._refresh_changed()
            if generation == self._generation:
                return not monitor.is_canceled()

    def _run_stage(self, stage: IndexState, monitor: ProgressMonitor) -> bool:
        """Run one stage's batch.  Returns False if the batch was canceled."""
        logger.debug("Index %s: running stage %s", self, stage.name)
        if stage == IndexState.ROOT_FILES_DISCOVERED:
            self._discover()
            return True

        if stage == IndexState.FILES_PREPROCESSED:
            paths = [p for p in self._root_files if self.cache.get_preproc_file(p) is None]
            fn = self.preprocess_file
        elif stage == IndexState.FILE_TREE_VALID:
            paths = list(self._root_files)
            fn = self.resolver.build_file_tree
        else:
            paths = self._unparsed_paths()
            fn = self.parse_file

        monitor.begin_task(stage.name, len(paths))
        result = run_batch(self._scheduler, paths, fn, monitor)
        if result.failed:
            logger.warning(
                "%d path(s) failed during %s; will retry", len(result.failed), stage.name
            )
            with self._flag_lock:
                self._retry.update(result.failed)
        return not result.canceled

    def _enter_state(self, stage: IndexState, dirty_generation: int) -> None:
        self._state = stage
        with self._flag_lock:
            # Only a fresh discovery reflects changes deferred before it, and
            # only if nothing was marked dirty while it ran.
            if stage == IndexState.ROOT_FILES_DISCOVERED and dirty_generation == self._dirty_generation:
                self._dirty = False

        if stage == IndexState.FILE_TREE_VALID:
            with self.cache.lock:
                self.cache_data.missing_includes.update(self.resolver.take_missing())
            self._propagate_all_markers()
            self.listeners.hooks.run_index_rebuilt(self)
        elif stage == IndexState.ALL_FILES_PARSED:
            self.cache.sync()
            logger.info(
                "Index %s: %d file(s) parsed, %d declaration(s)",
                self.base_location, len(self.cache.get_file_list()), self.decl_cache.count(),
            )

    def _discover(self) -> None:
        discovery = self.discover()
        roots: list[str] = []
        for path in discovery.root_files:
            path = self.canonical_path(path)
            if path not in roots:
                roots.append(path)

        include_paths: list[str] = []
        for inc in [*self.config.include_paths, *discovery.include_paths]:
            inc = normalize_path(inc)
            if inc not in include_paths:
                include_paths.append(inc)

        with self.cache.lock:
            self.cache_data.version = svindex.__version__
            self.cache_data.base_location = self.base_location
            self.cache_data.include_paths = include_paths
            self.cache_data.defines = dict(discovery.defines)
            self.cache_data.global_defines = dict(self._global_defines)
            for path in roots:
                self.cache.add_file(path)
                self.file_dirs.add(dirname(path))
            self.file_dirs.update(include_paths)
        self._root_files = roots
        self._control_files = {normalize_path(p) for p in discovery.control_files}
        self.cache.sync()
        logger.info("Index %s: discovered %d root file(s)", self.base_location, len(roots))

    def _unparsed_paths(self) -> list[str]:
        with self.cache.lock:
            return sorted(
                path for path in self.cache.get_file_list()
                if self.cache.get_file(path) is None
            )

    # ── Per-path jobs ─────────────────────────────────────────────────────────

    def preprocess_file(self, path: str, replace: bool = False) -> bool:
        """Scan *path*'s directives into the cache.  False if it cannot be read."""
        data = self.fs.open_stream(path)
        if data is None:
            logger.warning("Failed to open %s for preprocessing", path)
            return False
        markers: list[Marker] = []
        pp_file = self._scanner.scan(data, path, markers)
        timestamp = self.fs.last_modified(path)
        with self.cache.lock:
            entry = self.cache.get_entry(path)
            if not replace and entry is not None and entry.preproc is not None:
                return True
            kept = [m for m in (entry.markers if entry else ()) if m.kind not in PARSE_PHASE_KINDS]
            self.cache.update(path, preproc=pp_file, last_modified=timestamp, markers=kept + markers)
            self.file_dirs.add(dirname(path))
        return True

    def adopt_preproc_file(self, path: str, pp_file: SVDBFile, timestamp: int) -> None:
        """Record a preprocessed file that was found through another index."""
        with self.cache.lock:
            if self.cache.get_preproc_file(path) is None:
                self.cache.update(path, preproc=pp_file, last_modified=timestamp)
                self.file_dirs.add(dirname(path))

    def parse_file(self, path: str) -> bool:
        """Parse *path* and replace its tree, parse markers and declarations."""
        data = self.fs.open_stream(path)
        if data is None:
            logger.warning("Failed to open %s for parsing", path)
            return False

        file_tree = self.cache.get_file_tree(path)
        defines = build_macro_map(self, file_tree)
        new_markers: list[Marker] = []
        parsed = self.factory.parse(data, path, new_markers, defines)
        if parsed is None:
            parsed = SVDBFile.create(path)
        decls = collect_decls(path, parsed, True, self)
        refs = collect_refs(path, parsed)
        timestamp = self.fs.last_modified(path)

        with self.cache.lock:
            if not self.cache.has_file(path):
                # Dropped by an invalidation while we were parsing.
                logger.error("Path %s disappeared from the cache during parse", path)
                self.mark_dirty()
                return False
            kept = [m for m in self.cache.get_markers(path) if m.kind not in PARSE_PHASE_KINDS]
            markers = kept + new_markers
            self.cache.update(path, parsed=parsed, markers=markers, last_modified=timestamp)
            self.decl_cache.set_file(path, decls, refs)
        self._propagate_markers(path, markers)
        return True

    def _catch_up(self, path: str) -> bool:
        """Bring one previously failed path up to the current state."""
        if self._state >= IndexState.FILES_PREPROCESSED and self.cache.get_preproc_file(path) is None:
            if not self.preprocess_file(path):
                return False
        if self._state >= IndexState.FILE_TREE_VALID and self.cache.get_file_tree(path) is None:
            if path in self._root_files and not self.resolver.build_file_tree(path):
                return False
            with self.cache.lock:
                self.cache_data.missing_includes.update(self.resolver.take_missing())
        if self._state >= IndexState.ALL_FILES_PARSED:
            for unparsed in self._unparsed_paths():
                if not self.parse_file(unparsed):
                    return False
        return True

    def _retry_failed(self, monitor: ProgressMonitor) -> None:
        with self._flag_lock:
            paths, self._retry = sorted(self._retry), set()
        if not paths:
            return
        logger.debug("Retrying %d failed path(s)", len(paths))
        for path in paths:
            if self.is_dirty() and not self.fs.exists(path):
                # Removed while a reset is deferred; the reset drops it.
                logger.debug("Not retrying removed file %s", path)
                continue
            if not Job(path, self._catch_up).run(monitor):
                with self._flag_lock:
                    self._retry.add(path)

    def note_changed(self, path: str) -> None:
        with self._flag_lock:
            self._changed.add(path)

    def _refresh_changed(self) -> None:
        """Re-read files reported as changed without resetting the index."""
        with self._flag_lock:
            changed = sorted(self._changed)
        if self._state < IndexState.FILES_PREPROCESSED:
            with self._flag_lock:
                self._changed.difference_update(changed)
            return

        for path in changed:
            old_node = self.cache.get_file_tree(path)
            old_includes = (
                [inc.name for inc in old_node.svdb_file.includes()]
                if old_node is not None and old_node.svdb_file is not None else None
            )
            if not self.preprocess_file(path, replace=True):
                continue
            pp_file = self.cache.get_preproc_file(path)
            if self._state >= IndexState.FILE_TREE_VALID and old_node is not None and pp_file is not None:
                if old_includes != [inc.name for inc in pp_file.includes()]:
                    self.invalidate_index("Include Set Changed", False)
                    if self._pending_reset:
                        return
                with self.cache.lock:
                    old_node.svdb_file = pp_file.duplicate()
            if self._state >= IndexState.ALL_FILES_PARSED and not self.parse_file(path):
                continue
            with self._flag_lock:
                self._changed.discard(path)

    # ── Invalidation ──────────────────────────────────────────────────────────

    def invalidate_index(self, reason: str, force: bool) -> None:
        """Drop the index back to ALL_INVALID, or mark it dirty.

        Without auto-rebuild and without *force* the reset is deferred: the
        index is only flagged dirty.
        """
        if not (self._auto_rebuild or force):
            logger.debug("Index %s marked dirty: %s", self.base_location, reason)
            self.mark_dirty()
            return

        logger.info("Invalidating index %s: %s", self.base_location, reason)
        with self._flag_lock:
            self._pending_reset = True
            self._generation += 1
        if not self._in_pipeline and self._lock.acquire(blocking=False):
            try:
                self._apply_pending_reset()
            finally:
                self._lock.release()
        self.listeners.hooks.run_index_invalidated(self, reason)

    def _apply_pending_reset(self) -> None:
        with self._flag_lock:
            if not self._pending_reset:
                return
            self._pending_reset = False
            self._dirty = False
            self._retry.clear()
            self._changed.clear()
        with self.cache.lock:
            self.cache_data.clear()
            self.cache.clear()
        self.resolver.take_missing()
        self.file_dirs = set()
        self._root_files = []
        self._state = IndexState.ALL_INVALID

    def mark_dirty(self) -> None:
        with self._flag_lock:
            self._dirty = True
            self._dirty_generation += 1

    def is_dirty(self) -> bool:
        with self._flag_lock:
            return self._dirty

    def rebuild(self) -> None:
        self.invalidate_index("Rebuild Index", True)

    def set_enable_auto_rebuild(self, enabled: bool) -> None:
        self._auto_rebuild = enabled
        if enabled and self.is_dirty():
            self.invalidate_index("Auto-rebuild re-enabled", True)

    def is_auto_rebuild_enabled(self) -> bool:
        return self._auto_rebuild

    def set_global_define(self, key: str, value: str = "") -> None:
        if self._global_defines.get(key) == value:
            return
        self._global_defines[key] = value
        self.invalidate_index("Global Define Changed", False)

    def clear_global_defines(self) -> None:
        if not self._global_defines:
            return
        self._global_defines = {}
        self.invalidate_index("Global Defines Cleared", False)

    # ── Paths ─────────────────────────────────────────────────────────────────

    def get_resolved_base_location(self) -> str:
        return normalize_path(expand_workspace(self.base_location, self.config.workspace_root))

    def canonical_path(self, path: str) -> str:
        norm = normalize_path(path)
        if not norm.startswith(WORKSPACE_TOKEN):
            ws = to_workspace_relative(norm, self.config.workspace_root)
            if ws is not None and self.fs.exists(ws):
                return ws
        return norm

    def is_control_file(self, path: str) -> bool:
        return path in self._control_files

    def base_defines(self) -> dict[str, str]:
        defines = dict(self.cache_data.global_defines)
        defines.update(self.cache_data.defines)
        return defines

    # ── Markers ───────────────────────────────────────────────────────────────

    def _propagate_markers(self, path: str, markers: list[Marker]) -> None:
        self.fs.clear_markers(path)
        for marker in markers:
            self.fs.add_marker(path, marker.type, marker.line, marker.message)

    def _propagate_all_markers(self) -> None:
        for path in sorted(self.cache.get_file_list()):
            self._propagate_markers(path, self.cache.get_markers(path))

    # ── Listeners ─────────────────────────────────────────────────────────────

    def add_change_listener(self, listener: object) -> None:
        self.listeners.add(listener)

    def remove_change_listener(self, listener: object) -> bool:
        return self.listeners.remove(listener)

    # ── Queries ───────────────────────────────────────────────────────────────

    def is_file_list_loaded(self) -> bool:
        return self._state >= IndexState.FILE_TREE_VALID

    def load_index(self, monitor: ProgressMonitor | None = None) -> bool:
        return self.ensure_state(IndexState.ALL_FILES_PARSED, monitor)

    def get_file_list(self, monitor: ProgressMonitor | None = None) -> set[str]:
        """Every file the index knows: root files and the files they include."""
        self.ensure_state(IndexState.FILE_TREE_VALID, monitor)
        return self.cache.get_file_list()

    def find_file(self, path: str, monitor: ProgressMonitor | None = None) -> SVDBFile | None:
        self.ensure_state(IndexState.ALL_FILES_PARSED, monitor)
        return self.cache.get_file(normalize_path(path))

    def find_preproc_file(self, path: str, monitor: ProgressMonitor | None = None) -> SVDBFile | None:
        self.ensure_state(IndexState.FILES_PREPROCESSED, monitor)
        return self.cache.get_preproc_file(normalize_path(path))

    def find_file_tree(self, path: str, monitor: ProgressMonitor | None = None) -> FileTreeNode | None:
        self.ensure_state(IndexState.FILE_TREE_VALID, monitor)
        return self.cache.get_file_tree(normalize_path(path))

    def get_markers(self, path: str, monitor: ProgressMonitor | None = None) -> list[Marker]:
        self.ensure_state(IndexState.ALL_FILES_PARSED, monitor)
        return self.cache.get_markers(normalize_path(path))

    def find_global_scope_decl(
        self,
        name: str,
        matcher: str | NameMatcher = exact_match,
        monitor: ProgressMonitor | None = None,
    ) -> list[DeclCacheEntry]:
        self.ensure_state(IndexState.ALL_FILES_PARSED, monitor)
        return self.decl_cache.find_decls(name, get_matcher(matcher))

    def find_references(
        self,
        name: str,
        matcher: str | NameMatcher = exact_match,
        monitor: ProgressMonitor | None = None,
    ) -> list[RefCacheEntry]:
        self.ensure_state(IndexState.ALL_FILES_PARSED, monitor)
        return self.decl_cache.find_refs(name, get_matcher(matcher))

    def get_decl_file(self, entry: DeclCacheEntry) -> SVDBFile | None:
        """Return the parsed file that holds *entry*."""
        return self.find_file(entry.filename)
