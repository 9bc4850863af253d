"""SQLite schema DDL and the cache-data models shared by every index."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from svindex.db.items import ItemType


# ── DDL ───────────────────────────────────────────────────────────────────────

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS index_meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS cache_entries (
    path  TEXT PRIMARY KEY,
    entry BLOB NOT NULL
);
"""

# Valid values for RefCacheEntry.kind
REF_KINDS = frozenset({
    "import",
    "extends",
})


# ── Dataclass models ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DeclCacheEntry:
    """Immutable global-scope declaration record.

    ``index`` is the owning index.  It is excluded from comparison and is
    re-bound after the entry is loaded from a persistent cache.
    """

    filename: str
    name: str
    type: ItemType
    is_file_tree: bool = True
    scope: str = ""         # enclosing package name, '' at file scope
    line: int = 0
    index: Any = field(default=None, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "name": self.name,
            "type": self.type.value,
            "is_file_tree": self.is_file_tree,
            "scope": self.scope,
            "line": self.line,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeclCacheEntry:
        return cls(
            filename=data["filename"],
            name=data["name"],
            type=ItemType(data["type"]),
            is_file_tree=bool(data.get("is_file_tree", True)),
            scope=data.get("scope", ""),
            line=int(data.get("line", 0)),
        )


@dataclass(frozen=True)
class RefCacheEntry:
    """A usage of a global name (package import or class extension)."""

    filename: str
    name: str
    kind: str           # see REF_KINDS
    line: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"filename": self.filename, "name": self.name, "kind": self.kind, "line": self.line}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RefCacheEntry:
        return cls(
            filename=data["filename"],
            name=data["name"],
            kind=data["kind"],
            line=int(data.get("line", 0)),
        )


@dataclass
class CacheData:
    """Versioned, JSON-serialisable state of one index."""

    version: str
    base_location: str = ""
    include_paths: list[str] = field(default_factory=list)
    global_defines: dict[str, str] = field(default_factory=dict)
    defines: dict[str, str] = field(default_factory=dict)
    decl_cache: dict[str, list[DeclCacheEntry]] = field(default_factory=dict)
    ref_cache: dict[str, list[RefCacheEntry]] = field(default_factory=dict)
    missing_includes: set[str] = field(default_factory=set)

    def clear(self) -> None:
        """Drop everything derived from file contents; keep configuration."""
        self.decl_cache.clear()
        self.ref_cache.clear()
        self.missing_includes.clear()

    def assign(self, other: CacheData) -> None:
        """Replace this object's contents with *other*'s."""
        self.version = other.version
        self.base_location = other.base_location
        self.include_paths = list(other.include_paths)
        self.global_defines = dict(other.global_defines)
        self.defines = dict(other.defines)
        self.decl_cache = {k: list(v) for k, v in other.decl_cache.items()}
        self.ref_cache = {k: list(v) for k, v in other.ref_cache.items()}
        self.missing_includes = set(other.missing_includes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "base_location": self.base_location,
            "include_paths": list(self.include_paths),
            "global_defines": dict(self.global_defines),
            "defines": dict(self.defines),
            "decl_cache": {
                path: [e.to_dict() for e in entries]
                for path, entries in self.decl_cache.items()
            },
            "ref_cache": {
                path: [e.to_dict() for e in entries]
                for path, entries in self.ref_cache.items()
            },
            "missing_includes": sorted(self.missing_includes),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheData:
        return cls(
            version=data.get("version", ""),
            base_location=data.get("base_location", ""),
            include_paths=list(data.get("include_paths", [])),
            global_defines=dict(data.get("global_defines", {})),
            defines=dict(data.get("defines", {})),
            decl_cache={
                path: [DeclCacheEntry.from_dict(e) for e in entries]
                for path, entries in data.get("decl_cache", {}).items()
            },
            ref_cache={
                path: [RefCacheEntry.from_dict(e) for e in entries]
                for path, entries in data.get("ref_cache", {}).items()
            },
            missing_includes=set(data.get("missing_includes", [])),
        )
