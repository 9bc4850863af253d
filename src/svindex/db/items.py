"""Symbol tree model shared by the pre-processor, the file factory and the index.

Trees are plain dataclasses without parent back-pointers, so they can be
duplicated, pickled and handed between threads without dragging the rest
of the index along.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator


class ItemType(str, Enum):
    FILE = "file"
    INCLUDE = "include"
    MACRO_DEF = "macro_def"
    PREPROC_COND = "preproc_cond"
    PACKAGE_DECL = "package_decl"
    FUNCTION = "function"
    TASK = "task"
    CLASS_DECL = "class_decl"
    MODULE_DECL = "module_decl"
    INTERFACE_DECL = "interface_decl"
    PROGRAM_DECL = "program_decl"
    TYPEDEF = "typedef"
    IMPORT = "import"
    VAR_DECL = "var_decl"

    def is_elem_of(self, *types: ItemType) -> bool:
        """Return True if this type is one of *types*."""
        return self in types


@dataclass(frozen=True)
class Location:
    """1-based line, 0-based column."""

    line: int
    pos: int = 0


# ── Items ─────────────────────────────────────────────────────────────────────

@dataclass
class Item:
    """A named element of a symbol tree."""

    type: ItemType
    name: str = ""
    location: Location | None = None

    def duplicate(self) -> Item:
        return copy.deepcopy(self)


@dataclass
class ScopeItem(Item):
    """An item that owns an ordered list of child items."""

    children: list[Item] = field(default_factory=list)
    end_location: Location | None = None

    def add_child(self, item: Item) -> None:
        self.children.append(item)

    def walk(self) -> Iterator[Item]:
        """Yield every descendant depth-first, in source order."""
        for child in self.children:
            yield child
            if isinstance(child, ScopeItem):
                yield from child.walk()


@dataclass
class ClassDecl(ScopeItem):
    super_class: str = ""


@dataclass
class MacroDef(Item):
    value: str = ""
    params: tuple[str, ...] = ()


@dataclass
class Include(Item):
    """An `include directive; *name* is the literal include string."""


@dataclass
class PreProcCond(ScopeItem):
    """Conditional-compilation wrapper (`ifdef / `ifndef / `elsif / `else)."""

    conditional: str = ""


@dataclass
class SVDBFile(ScopeItem):
    """Root of a symbol tree for one file."""

    file_path: str = ""

    @classmethod
    def create(cls, file_path: str) -> SVDBFile:
        return cls(type=ItemType.FILE, name=file_path, file_path=file_path)

    def duplicate(self) -> SVDBFile:
        return copy.deepcopy(self)

    def includes(self) -> list[Include]:
        """Return every include directive in the tree, in source order."""
        return [item for item in self.walk() if isinstance(item, Include)]

    def macro_defs(self) -> list[MacroDef]:
        return [item for item in self.walk() if isinstance(item, MacroDef)]
