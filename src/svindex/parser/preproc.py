"""Pre-processor directive scanner.

Produces the *preprocessed* form of a file: a shallow tree holding only the
directives the index cares about (includes, macro definitions and
conditional-compilation blocks).  Macro expansion is not performed here.
"""

from __future__ import annotations

import bisect
import logging
import re

from svindex.db.items import (
    Include,
    ItemType,
    Location,
    MacroDef,
    PreProcCond,
    ScopeItem,
    SVDBFile,
)
from svindex.db.markers import Marker, MarkerKind, MarkerType
from svindex.parser.lexical import mask_comments

logger = logging.getLogger(__name__)

_DIRECTIVE_RE = re.compile(r"`(include|define|undef|ifdef|ifndef|elsif|else|endif)\b")
_INCLUDE_ARG_RE = re.compile(r"\s*(?:\"([^\"\n]*)\"|<([^>\n]*)>)")
_DEFINE_HEAD_RE = re.compile(r"\s*([A-Za-z_]\w*)(\(([^)]*)\))?")
_NAME_ARG_RE = re.compile(r"\s*([A-Za-z_]\w*)")


def decode_source(data: bytes | str) -> str:
    if isinstance(data, str):
        return data
    return data.decode("utf-8", errors="replace")


class PreProcScanner:
    """Scan a file's text for pre-processor directives.

    Usage::

        scanner = PreProcScanner()
        pp_file = scanner.scan(Path("top.sv").read_bytes(), "/abs/top.sv")
    """

    def scan(
        self,
        data: bytes | str,
        path: str,
        markers: list[Marker] | None = None,
    ) -> SVDBFile:
        text = mask_comments(decode_source(data))
        line_starts = [0] + [m.end() for m in re.finditer("\n", text)]

        def loc(offset: int) -> Location:
            line = bisect.bisect_right(line_starts, offset)
            return Location(line=line, pos=offset - line_starts[line - 1])

        root = SVDBFile.create(path)
        stack: list[ScopeItem] = [root]

        for match in _DIRECTIVE_RE.finditer(text):
            directive = match.group(1)
            end = match.end()
            location = loc(match.start())

            if directive == "include":
                arg = _INCLUDE_ARG_RE.match(text, end)
                if arg is None:
                    _add_marker(markers, "Malformed `include directive", location)
                    continue
                target = arg.group(1) if arg.group(1) is not None else arg.group(2)
                stack[-1].add_child(
                    Include(type=ItemType.INCLUDE, name=target.strip(), location=location)
                )

            elif directive == "define":
                head = _DEFINE_HEAD_RE.match(text, end)
                if head is None:
                    _add_marker(markers, "Malformed `define directive", location)
                    continue
                params = ()
                if head.group(2):
                    params = tuple(p.strip() for p in head.group(3).split(",") if p.strip())
                stack[-1].add_child(
                    MacroDef(
                        type=ItemType.MACRO_DEF,
                        name=head.group(1),
                        location=location,
                        value=read_define_body(text, head.end())[0],
                        params=params,
                    )
                )

            elif directive in ("ifdef", "ifndef"):
                name = _NAME_ARG_RE.match(text, end)
                cond = PreProcCond(
                    type=ItemType.PREPROC_COND,
                    name=directive,
                    location=location,
                    conditional=name.group(1) if name else "",
                )
                stack[-1].add_child(cond)
                stack.append(cond)

            elif directive in ("elsif", "else"):
                if len(stack) < 2:
                    _add_marker(markers, f"`{directive} without matching `ifdef", location)
                    continue
                stack.pop()
                name = _NAME_ARG_RE.match(text, end) if directive == "elsif" else None
                cond = PreProcCond(
                    type=ItemType.PREPROC_COND,
                    name=directive,
                    location=location,
                    conditional=name.group(1) if name else "",
                )
                stack[-1].add_child(cond)
                stack.append(cond)

            elif directive == "endif":
                if len(stack) < 2:
                    _add_marker(markers, "`endif without matching `ifdef", location)
                    continue
                stack.pop().end_location = location

        if len(stack) > 1:
            _add_marker(markers, "Unterminated conditional block", stack[-1].location)

        logger.debug(
            "Pre-processed %s: %d include(s), %d define(s)",
            path, len(root.includes()), len(root.macro_defs()),
        )
        return root


def read_define_body(text: str, start: int) -> tuple[str, int]:
    """Return the macro body (backslash-continued lines joined) and its end offset."""
    parts: list[str] = []
    i = start
    length = len(text)
    end = length
    while i < length:
        nl = text.find("\n", i)
        if nl == -1:
            parts.append(text[i:])
            break
        line = text[i:nl]
        if line.rstrip().endswith("\\"):
            parts.append(line.rstrip()[:-1])
            i = nl + 1
            continue
        parts.append(line)
        end = nl
        break
    return " ".join(p.strip() for p in parts if p.strip()), end


def _add_marker(markers: list[Marker] | None, message: str, location: Location | None) -> None:
    if markers is not None:
        markers.append(Marker(MarkerType.ERROR, MarkerKind.PARSE_ERROR, message, location))
