"""Symbol tree and diagnostic data model."""

from svindex.db.items import (
    ClassDecl,
    Include,
    Item,
    ItemType,
    Location,
    MacroDef,
    PreProcCond,
    ScopeItem,
    SVDBFile,
)
from svindex.db.markers import PARSE_PHASE_KINDS, Marker, MarkerKind, MarkerType

__all__ = [
    "ClassDecl",
    "Include",
    "Item",
    "ItemType",
    "Location",
    "MacroDef",
    "Marker",
    "MarkerKind",
    "MarkerType",
    "PARSE_PHASE_KINDS",
    "PreProcCond",
    "ScopeItem",
    "SVDBFile",
]
