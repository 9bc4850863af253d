"""Ordered pipeline states of an index."""

from __future__ import annotations

from enum import IntEnum


class IndexState(IntEnum):
    ALL_INVALID = 0
    ROOT_FILES_DISCOVERED = 1
    FILES_PREPROCESSED = 2
    FILE_TREE_VALID = 3
    ALL_FILES_PARSED = 4

    def next(self) -> IndexState:
        return IndexState(min(self + 1, IndexState.ALL_FILES_PARSED))
