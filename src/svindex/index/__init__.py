"""Incremental index engine: state machine, include graph, caches and invalidation."""

from svindex.index.argfile import ArgFileIndex
from svindex.index.base import AbstractIndex, Discovery
from svindex.index.cache import CacheEntry, IndexCache, InMemoryIndexCache
from svindex.index.collection import IndexCollection
from svindex.index.db import SqliteIndexCache
from svindex.index.file_tree import FileTreeNode
from svindex.index.fs import FileSystemProvider, LocalFileSystemProvider
from svindex.index.jobs import InlineJobScheduler, JobScheduler, ThreadPoolJobScheduler
from svindex.index.schema import CacheData, DeclCacheEntry, RefCacheEntry
from svindex.index.source_collection import SourceCollectionIndex
from svindex.index.state import IndexState

__all__ = [
    "AbstractIndex",
    "ArgFileIndex",
    "CacheData",
    "CacheEntry",
    "DeclCacheEntry",
    "Discovery",
    "FileSystemProvider",
    "FileTreeNode",
    "IndexCache",
    "IndexCollection",
    "IndexState",
    "InlineJobScheduler",
    "InMemoryIndexCache",
    "JobScheduler",
    "LocalFileSystemProvider",
    "RefCacheEntry",
    "SourceCollectionIndex",
    "SqliteIndexCache",
    "ThreadPoolJobScheduler",
]
