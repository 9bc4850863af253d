"""SQLite-backed persistent index cache.

SqliteIndexCache keeps the working set in memory (it *is* an
InMemoryIndexCache) and only touches the database in ``init`` (load),
``sync`` (flush) and ``clear``.  Entries are stored as pickled
``CacheEntry`` blobs; the index's ``CacheData`` is stored as JSON in the
``index_meta`` table.
"""

from __future__ import annotations

import json
import logging
import pickle
import sqlite3
from pathlib import Path

from svindex.index.cache import InMemoryIndexCache
from svindex.index.schema import SCHEMA_SQL, CacheData

logger = logging.getLogger(__name__)

CACHE_DATA_KEY = "cache_data"


class SqliteIndexCache(InMemoryIndexCache):
    """Persistent ``IndexCache``."""

    def __init__(self, db_path: Path) -> None:
        super().__init__()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._path = db_path
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._apply_schema()

    @property
    def path(self) -> Path:
        return self._path

    # ── Schema ────────────────────────────────────────────────────────────────

    def _apply_schema(self) -> None:
        """Apply DDL statements (idempotent, uses CREATE IF NOT EXISTS)."""
        self._conn.executescript(SCHEMA_SQL)
        self._conn.commit()

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def init(self, cache_data: CacheData) -> bool:
        """Load persisted entries and cache data into memory.

        *cache_data* is updated in place when a persisted copy exists.
        """
        super().init(cache_data)
        raw = self.get_meta(CACHE_DATA_KEY)
        if raw is None:
            return False
        try:
            loaded = CacheData.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Discarding unreadable cache data in %s: %s", self._path, exc)
            return False

        entries = {}
        with self.lock:
            rows = self._conn.execute("SELECT path, entry FROM cache_entries").fetchall()
        for row in rows:
            try:
                entries[row["path"]] = pickle.loads(row["entry"])
            except Exception as exc:
                logger.warning("Discarding unreadable cache entry %s: %s", row["path"], exc)

        with self.lock:
            self._entries = entries
            cache_data.assign(loaded)
        logger.info("Loaded %d cached file(s) from %s", len(entries), self._path)
        return True

    def sync(self) -> None:
        """Write every entry and the bound cache data to disk."""
        with self.lock:
            rows = [
                (path, pickle.dumps(entry, protocol=pickle.HIGHEST_PROTOCOL))
                for path, entry in self._entries.items()
            ]
            data = json.dumps(self._cache_data.to_dict()) if self._cache_data else None
            self._conn.execute("DELETE FROM cache_entries")
            self._conn.executemany(
                "INSERT INTO cache_entries (path, entry) VALUES (?, ?)", rows
            )
            if data is not None:
                self._set_meta(CACHE_DATA_KEY, data)
            self._conn.commit()
        logger.debug("Synced %d cache entries to %s", len(rows), self._path)

    def clear(self) -> None:
        with self.lock:
            super().clear()
            self._conn.execute("DELETE FROM cache_entries")
            self._conn.execute("DELETE FROM index_meta WHERE key = ?", (CACHE_DATA_KEY,))
            self._conn.commit()

    def dispose(self) -> None:
        self.sync()
        self.close()

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # ── Meta ──────────────────────────────────────────────────────────────────

    def _set_meta(self, key: str, value: str) -> None:
        self._conn.execute(
            "INSERT INTO index_meta (key, value) VALUES (?, ?)"
            " ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )

    def set_meta(self, key: str, value: str) -> None:
        """Upsert a metadata key-value pair."""
        with self.lock:
            self._set_meta(key, value)
            self._conn.commit()

    def get_meta(self, key: str) -> str | None:
        """Return a metadata value by key, or None."""
        with self.lock:
            row = self._conn.execute(
                "SELECT value FROM index_meta WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row else None
