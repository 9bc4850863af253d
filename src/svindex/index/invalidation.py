"""Reactions to file-system changes and the startup cache-validity check."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import svindex
from svindex.index.cache import NO_TIMESTAMP
from svindex.index.paths import dirname, normalize_path

if TYPE_CHECKING:
    from svindex.index.base import AbstractIndex

logger = logging.getLogger(__name__)


class InvalidationController:
    """File-system listener that decides how much of an index to throw away.

    * changed: drop that path's parsed and preprocessed forms (the index
      state is kept; the path is refreshed on the next ``ensure_state``)
    * removed: full invalidation (deferred while auto-rebuild is off)
    * added: full invalidation if the new file sits in a tracked directory
    """

    def __init__(self, index: AbstractIndex) -> None:
        self._index = index

    # ── FileSystemListener ────────────────────────────────────────────────────

    def file_changed(self, path: str) -> None:
        index = self._index
        path = normalize_path(path)
        if index.is_control_file(path):
            index.invalidate_index("Control File Changed", False)
            return
        cache = index.cache
        with cache.lock:
            if not cache.has_file(path):
                return
            logger.debug("File changed: %s", path)
            cache.update(path, preproc=None, parsed=None, last_modified=NO_TIMESTAMP)
            index.decl_cache.remove_file(path)
        index.note_changed(path)

    def file_removed(self, path: str) -> None:
        index = self._index
        path = normalize_path(path)
        if index.is_control_file(path) or index.cache.has_file(path):
            index.invalidate_index("File Removed", False)

    def file_added(self, path: str) -> None:
        index = self._index
        path = normalize_path(path)
        if dirname(path) in index.file_dirs:
            index.invalidate_index("File Added", False)

    # ── Validity ──────────────────────────────────────────────────────────────

    def check_cache_valid(self) -> bool:
        """Return False if the cached state can no longer be trusted."""
        index = self._index
        data = index.cache_data
        if data.version != svindex.__version__:
            logger.info(
                "Cache %s is invalid: version %r != %r",
                index.base_location, data.version, svindex.__version__,
            )
            return False

        files = index.cache.get_file_list()
        if not files:
            logger.info("Cache %s is invalid: 0 entries", index.base_location)
            return False

        for path in sorted(files):
            fs_ts = index.fs.last_modified(path)
            cache_ts = index.cache.get_last_modified(path)
            if fs_ts != cache_ts:
                logger.info(
                    "Cache is invalid due to timestamp on %s: file=%s cache=%s",
                    path, fs_ts, cache_ts,
                )
                return False

        for leaf in sorted(data.missing_includes):
            if index.resolver.can_resolve(leaf):
                logger.info(
                    "Cache %s is invalid since previously-missing include file is now found: %s",
                    index.base_location, leaf,
                )
                return False

        logger.debug("Cache %s is valid", index.base_location)
        return True

    def validate(self) -> bool:
        """Run the validity check and fully invalidate the index when it fails."""
        if self.check_cache_valid():
            return True
        self._index.invalidate_index("Cache Invalid", True)
        return False
