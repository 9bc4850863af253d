"""Diagnostics (markers) attached to files by the pre-processor, resolver and parser."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from svindex.db.items import Location


class MarkerType(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class MarkerKind(str, Enum):
    GENERIC = "generic"
    MISSING_INCLUDE = "missing_include"
    UNDEFINED_MACRO = "undefined_macro"
    PARSE_ERROR = "parse_error"


# Kinds regenerated every time a file is parsed; everything else survives a re-parse.
PARSE_PHASE_KINDS = frozenset({MarkerKind.UNDEFINED_MACRO, MarkerKind.PARSE_ERROR})


@dataclass(frozen=True)
class Marker:
    """Immutable located diagnostic."""

    type: MarkerType
    kind: MarkerKind
    message: str
    location: Location | None = None

    @property
    def line(self) -> int:
        return self.location.line if self.location is not None else 0

    def __str__(self) -> str:
        return f"{self.type.value}: {self.message} (line {self.line})"
