"""Include-graph node."""

from __future__ import annotations

from dataclasses import dataclass, field

from svindex.db.items import SVDBFile


@dataclass
class FileTreeNode:
    """One file's position in the include graph.

    Edges are file paths, never node references: targets are looked up
    through the cache, so cycles in the include graph never become object
    cycles and a file dropped from the cache simply stops resolving.  An
    include that could not be resolved is recorded as an edge to its
    literal include string; nothing in the cache answers to that path
    until the file appears and the index is rebuilt.

    ``svdb_file`` holds a duplicate of the file's preprocessed tree.
    """

    file_path: str
    svdb_file: SVDBFile | None = None
    included_files: list[str] = field(default_factory=list)
    included_by_files: list[str] = field(default_factory=list)

    def add_included_by(self, path: str) -> None:
        if path not in self.included_by_files:
            self.included_by_files.append(path)

    def add_included(self, path: str) -> None:
        if path not in self.included_files:
            self.included_files.append(path)
