"""File factory: turns a file's bytes into a structural symbol tree.

The index only depends on the ``FileFactory`` protocol.  ``LexicalFileFactory``
is the default implementation: a token-level scanner that recognises the
declarations the index cares about (packages, classes, modules, interfaces,
programs, functions, tasks, typedefs, imports, macros and simple variable
declarations) without attempting a full grammar.

LexicalFileFactory never raises on malformed input; problems are reported
as PARSE_ERROR / UNDEFINED_MACRO markers.
"""

from __future__ import annotations

import bisect
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Protocol

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
from svindex.db.markers import Marker, MarkerKind, MarkerType
from svindex.parser.lexical import mask_comments
from svindex.parser.preproc import decode_source, read_define_body

logger = logging.getLogger(__name__)


class FileFactory(Protocol):
    """Pure ``bytes, path -> symbol tree`` function.

    Implementations append diagnostics to *markers* and return None only
    when no tree at all could be produced.
    """

    def parse(
        self,
        data: bytes,
        path: str,
        markers: list[Marker],
        defines: Mapping[str, str] | None = None,
    ) -> SVDBFile | None: ...


# ── Static keyword tables ─────────────────────────────────────────────────────

class ScopeKind(Enum):
    PACKAGE = "package"
    CLASS = "class"
    MODULE = "module"
    INTERFACE = "interface"
    PROGRAM = "program"
    FUNCTION = "function"
    TASK = "task"
    COND = "cond"


OPEN_KEYWORDS: Mapping[str, tuple[ScopeKind, ItemType]] = MappingProxyType({
    "package": (ScopeKind.PACKAGE, ItemType.PACKAGE_DECL),
    "class": (ScopeKind.CLASS, ItemType.CLASS_DECL),
    "module": (ScopeKind.MODULE, ItemType.MODULE_DECL),
    "macromodule": (ScopeKind.MODULE, ItemType.MODULE_DECL),
    "interface": (ScopeKind.INTERFACE, ItemType.INTERFACE_DECL),
    "program": (ScopeKind.PROGRAM, ItemType.PROGRAM_DECL),
    "function": (ScopeKind.FUNCTION, ItemType.FUNCTION),
    "task": (ScopeKind.TASK, ItemType.TASK),
})

END_KEYWORDS: Mapping[str, ScopeKind] = MappingProxyType({
    "endpackage": ScopeKind.PACKAGE,
    "endclass": ScopeKind.CLASS,
    "endmodule": ScopeKind.MODULE,
    "endinterface": ScopeKind.INTERFACE,
    "endprogram": ScopeKind.PROGRAM,
    "endfunction": ScopeKind.FUNCTION,
    "endtask": ScopeKind.TASK,
})

# Statement prefixes that turn a function/task/class keyword into a body-less declaration.
BODILESS_PREFIXES = frozenset({"extern", "pure", "import", "export", "typedef"})

FIELD_QUALIFIERS = frozenset({
    "local", "protected", "static", "const", "rand", "randc",
    "automatic", "var", "virtual",
})

TASK_FUNC_QUALIFIERS = frozenset({
    "automatic", "static", "virtual", "local", "protected", "extern", "pure",
})

BUILTIN_TYPES = frozenset({
    "bit", "logic", "reg", "wire", "byte", "shortint", "int", "longint",
    "integer", "time", "real", "realtime", "shortreal", "string", "chandle",
    "event", "genvar",
})

BUILTIN_DIRECTIVES = frozenset({
    "timescale", "resetall", "celldefine", "endcelldefine", "default_nettype",
    "line", "__FILE__", "__LINE__", "pragma", "begin_keywords", "end_keywords",
    "unconnected_drive", "nounconnected_drive", "undefineall", "undef",
    "include", "define", "ifdef", "ifndef", "elsif", "else", "endif",
})

_VAR_DECL_SCOPES = frozenset({
    ScopeKind.PACKAGE, ScopeKind.CLASS, ScopeKind.MODULE,
    ScopeKind.INTERFACE, ScopeKind.PROGRAM,
})

_TOKEN_RE = re.compile(
    r"(?P<dir>`[A-Za-z_]\w*)"
    r"|(?P<num>\d*'[sS]?[bBoOdDhH][0-9a-fA-FxXzZ_?]*|\d[\w.]*)"
    r"|(?P<id>[A-Za-z_][\w$]*)"
    r"|(?P<punct>::|[;:(){}\[\],=#*])"
)


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    offset: int


@dataclass
class ScopeFrame:
    kind: ScopeKind
    item: ScopeItem


@dataclass
class _CondState:
    parent_active: bool
    taken: bool
    active: bool


@dataclass
class _ParseState:
    path: str
    text: str
    tokens: list[_Token]
    line_starts: list[int]
    markers: list[Marker]
    macros: dict[str, str]
    root: SVDBFile
    frames: list[ScopeFrame] = field(default_factory=list)
    conds: list[_CondState] = field(default_factory=list)
    stmt: list[_Token] = field(default_factory=list)

    @property
    def active(self) -> bool:
        return not self.conds or self.conds[-1].active

    @property
    def scope(self) -> ScopeItem:
        return self.frames[-1].item if self.frames else self.root

    def loc(self, offset: int) -> Location:
        line = bisect.bisect_right(self.line_starts, offset)
        return Location(line=line, pos=offset - self.line_starts[line - 1])

    def error(self, message: str, offset: int, kind: MarkerKind = MarkerKind.PARSE_ERROR) -> None:
        mtype = MarkerType.WARNING if kind == MarkerKind.UNDEFINED_MACRO else MarkerType.ERROR
        self.markers.append(Marker(mtype, kind, message, self.loc(offset)))


# ── Factory ───────────────────────────────────────────────────────────────────

class LexicalFileFactory:
    """Default ``FileFactory`` implementation.

    Usage::

        markers: list[Marker] = []
        svdb_file = LexicalFileFactory().parse(data, "/abs/pkg.svh", markers)
    """

    def parse(
        self,
        data: bytes,
        path: str,
        markers: list[Marker],
        defines: Mapping[str, str] | None = None,
    ) -> SVDBFile | None:
        try:
            return self._parse(decode_source(data), path, markers, dict(defines or {}))
        except Exception:
            logger.exception("Failed to parse %s", path)
            markers.append(Marker(MarkerType.ERROR, MarkerKind.PARSE_ERROR, "Internal parser error"))
            return None

    def _parse(
        self,
        source: str,
        path: str,
        markers: list[Marker],
        macros: dict[str, str],
    ) -> SVDBFile:
        masked = mask_comments(source, mask_strings=True)
        # Include targets and macro bodies are read from text that keeps string literals.
        text = mask_comments(source)
        state = _ParseState(
            path=path,
            text=text,
            tokens=[
                _Token(m.lastgroup or "", m.group(), m.start())
                for m in _TOKEN_RE.finditer(masked)
            ],
            line_starts=[0] + [m.end() for m in re.finditer("\n", text)],
            markers=markers,
            macros=macros,
            root=SVDBFile.create(path),
        )
        i = 0
        while i < len(state.tokens):
            tok = state.tokens[i]
            if tok.kind == "dir":
                i = self._directive(state, i)
            elif not state.active:
                i += 1
            elif tok.kind == "id":
                i = self._identifier(state, i)
            elif tok.text == ";":
                self._end_statement(state)
                i += 1
            else:
                state.stmt.append(tok)
                i += 1

        for frame in reversed(state.frames):
            if frame.kind == ScopeKind.COND:
                state.error("Unterminated conditional block", _offset_of(state, frame.item))
            else:
                state.error(
                    f"Missing end{frame.kind.value} for {frame.kind.value} '{frame.item.name}'",
                    len(text),
                )
        return state.root

    # ── Identifiers and scopes ────────────────────────────────────────────────

    def _identifier(self, state: _ParseState, i: int) -> int:
        tok = state.tokens[i]
        word = tok.text

        if word in END_KEYWORDS:
            self._leave_scope(state, END_KEYWORDS[word], tok.offset)
            state.stmt = []
            return _skip_end_label(state, i + 1)

        if word == "typedef":
            return self._typedef(state, i)

        if word == "import" and _is_package_import(state, i):
            return self._import(state, i)

        if word in OPEN_KEYWORDS:
            prev = state.stmt[-1].text if state.stmt else ""
            if not (word == "interface" and prev == "virtual"):
                bodiless = any(t.text in BODILESS_PREFIXES for t in state.stmt)
                return self._open_scope(state, i, bodiless)

        if word in ("begin", "end"):
            state.stmt = []
            return i + 1

        state.stmt.append(tok)
        return i + 1

    def _open_scope(self, state: _ParseState, i: int, bodiless: bool) -> int:
        tok = state.tokens[i]
        kind, item_type = OPEN_KEYWORDS[tok.text]
        location = state.loc(tok.offset)
        state.stmt = []

        if kind in (ScopeKind.FUNCTION, ScopeKind.TASK):
            name, j = _task_func_name(state, i + 1)
            item: ScopeItem = ScopeItem(type=item_type, name=name, location=location)
        elif kind == ScopeKind.CLASS:
            name, j = _next_name(state, i + 1)
            item = ClassDecl(
                type=item_type, name=name, location=location,
                super_class=_extends_target(state, j),
            )
        else:
            name, j = _next_name(state, i + 1)
            item = ScopeItem(type=item_type, name=name, location=location)

        if not name:
            state.error(f"Expecting a name after '{tok.text}'", tok.offset)

        state.scope.add_child(item)
        if not bodiless:
            state.frames.append(ScopeFrame(kind=kind, item=item))
        return _skip_past_semicolon(state, j)

    def _leave_scope(self, state: _ParseState, kind: ScopeKind, offset: int) -> None:
        for depth in range(len(state.frames) - 1, -1, -1):
            if state.frames[depth].kind == kind:
                break
        else:
            state.error(f"Unexpected end{kind.value}", offset)
            return

        for frame in state.frames[depth + 1:]:
            if frame.kind != ScopeKind.COND:
                state.error(f"Missing end{frame.kind.value} before end{kind.value}", offset)
        closing = state.frames[depth]
        closing.item.end_location = state.loc(offset)
        # Conditional frames opened inside the closed scope stay on the stack.
        state.frames = state.frames[:depth] + [
            f for f in state.frames[depth + 1:] if f.kind == ScopeKind.COND
        ]

    def _typedef(self, state: _ParseState, i: int) -> int:
        tok = state.tokens[i]
        name = ""
        depth = 0
        j = i + 1
        while j < len(state.tokens):
            t = state.tokens[j]
            if t.text in ("(", "[", "{"):
                depth += 1
            elif t.text in (")", "]", "}"):
                depth -= 1
            elif t.text == ";" and depth <= 0:
                break
            elif t.kind == "id" and depth == 0:
                name = t.text
            j += 1
        if name:
            state.scope.add_child(Item(type=ItemType.TYPEDEF, name=name, location=state.loc(tok.offset)))
        else:
            state.error("Malformed typedef", tok.offset)
        state.stmt = []
        return j + 1

    def _import(self, state: _ParseState, i: int) -> int:
        tok = state.tokens[i]
        j = i + 1
        while j < len(state.tokens) and state.tokens[j].text != ";":
            t = state.tokens[j]
            if t.kind == "id" and j + 1 < len(state.tokens) and state.tokens[j + 1].text == "::":
                nxt = state.tokens[j + 2] if j + 2 < len(state.tokens) else None
                target = nxt.text if nxt is not None and nxt.text != ";" else "*"
                state.scope.add_child(
                    Item(
                        type=ItemType.IMPORT,
                        name=f"{t.text}::{target}",
                        location=state.loc(tok.offset),
                    )
                )
                j += 1 if nxt is None or nxt.text == ";" else 2
            j += 1
        state.stmt = []
        return j + 1

    def _end_statement(self, state: _ParseState) -> None:
        stmt, state.stmt = state.stmt, []
        if not state.frames or not stmt:
            return
        frame = next((f for f in reversed(state.frames) if f.kind != ScopeKind.COND), None)
        if frame is None or frame.kind not in _VAR_DECL_SCOPES:
            return

        words = stmt
        k = 0
        while k < len(words) and words[k].text in FIELD_QUALIFIERS:
            k += 1
        if k >= len(words) or words[k].text not in BUILTIN_TYPES:
            return

        depth = 0
        after_assign = False
        for t in words[k + 1:]:
            if t.text in ("(", "[", "{"):
                depth += 1
            elif t.text in (")", "]", "}"):
                depth -= 1
            elif depth == 0 and t.text == "=":
                after_assign = True
            elif depth == 0 and t.text == ",":
                after_assign = False
            elif depth == 0 and t.kind == "id" and not after_assign:
                if t.text in ("signed", "unsigned"):
                    continue
                state.scope.add_child(
                    Item(type=ItemType.VAR_DECL, name=t.text, location=state.loc(t.offset))
                )

    # ── Pre-processor directives ──────────────────────────────────────────────

    def _directive(self, state: _ParseState, i: int) -> int:
        tok = state.tokens[i]
        name = tok.text[1:]
        nxt = state.tokens[i + 1] if i + 1 < len(state.tokens) else None

        if name in ("ifdef", "ifndef", "elsif"):
            macro = nxt.text if nxt is not None and nxt.kind == "id" else ""
            defined = macro in state.macros
            if name == "ifndef":
                defined = not defined
            if name == "elsif":
                self._switch_branch(state, tok, name, macro, defined)
            else:
                parent_active = state.active
                state.conds.append(
                    _CondState(parent_active=parent_active, taken=defined, active=parent_active and defined)
                )
                self._push_cond(state, tok, name, macro)
            return i + 2 if macro else i + 1

        if name == "else":
            self._switch_branch(state, tok, name, "", True)
            return i + 1

        if name == "endif":
            if not state.conds:
                state.error("`endif without matching `ifdef", tok.offset)
                return i + 1
            state.conds.pop()
            self._pop_cond(state, tok.offset)
            return i + 1

        if name == "define":
            _, end = read_define_body(state.text, tok.offset + len(tok.text))
            if state.active and nxt is not None and nxt.kind == "id":
                body, _ = read_define_body(state.text, nxt.offset + len(nxt.text))
                state.macros[nxt.text] = body
                state.scope.add_child(
                    MacroDef(type=ItemType.MACRO_DEF, name=nxt.text, location=state.loc(tok.offset), value=body)
                )
            return _skip_to_offset(state, i + 1, end)

        if name == "undef":
            if state.active and nxt is not None:
                state.macros.pop(nxt.text, None)
            return i + 2

        if name == "include":
            if state.active:
                target = _include_target(state.text, tok.offset + len(tok.text))
                state.scope.add_child(
                    Include(type=ItemType.INCLUDE, name=target, location=state.loc(tok.offset))
                )
            return i + 1

        if name in BUILTIN_DIRECTIVES:
            return _skip_to_offset(state, i + 1, _line_end(state.text, tok.offset))

        # Macro use
        if state.active and name not in state.macros:
            state.error(f"Macro {name} undefined", tok.offset, MarkerKind.UNDEFINED_MACRO)
        if nxt is not None and nxt.text == "(":
            return _skip_balanced(state, i + 1)
        return i + 1

    def _push_cond(self, state: _ParseState, tok: _Token, directive: str, macro: str) -> None:
        cond = PreProcCond(
            type=ItemType.PREPROC_COND, name=directive,
            location=state.loc(tok.offset), conditional=macro,
        )
        if state.conds[-1].parent_active:
            state.scope.add_child(cond)
        state.frames.append(ScopeFrame(kind=ScopeKind.COND, item=cond))

    def _pop_cond(self, state: _ParseState, offset: int) -> None:
        for depth in range(len(state.frames) - 1, -1, -1):
            if state.frames[depth].kind == ScopeKind.COND:
                state.frames[depth].item.end_location = state.loc(offset)
                del state.frames[depth]
                return

    def _switch_branch(
        self, state: _ParseState, tok: _Token, directive: str, macro: str, defined: bool,
    ) -> None:
        if not state.conds:
            state.error(f"`{directive} without matching `ifdef", tok.offset)
            return
        cond = state.conds[-1]
        cond.active = cond.parent_active and not cond.taken and defined
        cond.taken = cond.taken or defined
        self._pop_cond(state, tok.offset)
        self._push_cond(state, tok, directive, macro)


# ── Token helpers ─────────────────────────────────────────────────────────────

def _offset_of(state: _ParseState, item: Item) -> int:
    if item.location is None:
        return 0
    return state.line_starts[item.location.line - 1] + item.location.pos


def _next_name(state: _ParseState, j: int) -> tuple[str, int]:
    while j < len(state.tokens):
        t = state.tokens[j]
        if t.kind != "id":
            return "", j
        if t.text not in ("automatic", "static"):
            return t.text, j + 1
        j += 1
    return "", j


def _task_func_name(state: _ParseState, j: int) -> tuple[str, int]:
    name = ""
    while j < len(state.tokens):
        t = state.tokens[j]
        if t.text in ("(", ";"):
            break
        if t.kind == "id" and t.text not in TASK_FUNC_QUALIFIERS:
            name = t.text
        elif t.text == "[":
            j = _skip_balanced(state, j) - 1
        j += 1
    return name, j


def _extends_target(state: _ParseState, j: int) -> str:
    while j < len(state.tokens) and state.tokens[j].text != ";":
        if state.tokens[j].text == "extends" and j + 1 < len(state.tokens):
            return state.tokens[j + 1].text
        j += 1
    return ""


def _is_package_import(state: _ParseState, i: int) -> bool:
    return (
        i + 2 < len(state.tokens)
        and state.tokens[i + 1].kind == "id"
        and state.tokens[i + 2].text == "::"
    )


def _skip_balanced(state: _ParseState, j: int) -> int:
    """Skip a bracketed group starting at token *j*; return the index after it."""
    opener = state.tokens[j].text
    closer = {"(": ")", "[": "]", "{": "}"}[opener]
    depth = 0
    while j < len(state.tokens):
        t = state.tokens[j].text
        if t == opener:
            depth += 1
        elif t == closer:
            depth -= 1
            if depth == 0:
                return j + 1
        j += 1
    return j


def _skip_past_semicolon(state: _ParseState, j: int) -> int:
    while j < len(state.tokens):
        t = state.tokens[j]
        if t.text == "(":
            j = _skip_balanced(state, j)
            continue
        if t.text == ";":
            return j + 1
        if t.kind == "dir" or t.text in END_KEYWORDS:
            return j
        j += 1
    return j


def _skip_end_label(state: _ParseState, j: int) -> int:
    # endclass : my_class
    if j + 1 < len(state.tokens) and state.tokens[j].text == ":":
        return j + 2
    return j


def _skip_to_offset(state: _ParseState, j: int, offset: int) -> int:
    while j < len(state.tokens) and state.tokens[j].offset < offset:
        j += 1
    return j


def _line_end(text: str, offset: int) -> int:
    nl = text.find("\n", offset)
    return len(text) if nl == -1 else nl


_INCLUDE_TARGET_RE = re.compile(r"\s*(?:\"([^\"\n]*)\"|<([^>\n]*)>)")


def _include_target(text: str, offset: int) -> str:
    m = _INCLUDE_TARGET_RE.match(text, offset)
    if m is None:
        return ""
    return (m.group(1) if m.group(1) is not None else m.group(2)).strip()
