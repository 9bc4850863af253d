"""Tests for LexicalFileFactory: structural declarations from source text."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from svindex.db.items import ClassDecl, ItemType, PreProcCond, ScopeItem
from svindex.db.markers import Marker, MarkerKind, MarkerType
from svindex.parser.factory import END_KEYWORDS, OPEN_KEYWORDS, LexicalFileFactory, ScopeKind


def _parse(text: str, defines: dict[str, str] | None = None):
    markers: list[Marker] = []
    svdb_file = LexicalFileFactory().parse(text.encode(), "/proj/f.sv", markers, defines)
    return svdb_file, markers


def _names(scope: ScopeItem) -> list[tuple[ItemType, str]]:
    return [(c.type, c.name) for c in scope.children]


# ── Scopes ────────────────────────────────────────────────────────────────────


class TestScopes:
    def test_package_with_function(self):
        f, markers = _parse(
            "package pkg;\n"
            "  function int f(int a);\n"
            "    return a + 1;\n"
            "  endfunction\n"
            "endpackage\n"
        )
        assert markers == []
        pkg = f.children[0]
        assert (pkg.type, pkg.name) == (ItemType.PACKAGE_DECL, "pkg")
        assert _names(pkg) == [(ItemType.FUNCTION, "f")]
        assert pkg.end_location.line == 5

    def test_module_interface_program(self):
        f, markers = _parse(
            "module m; endmodule\n"
            "interface bus_if; endinterface\n"
            "program p; endprogram\n"
        )
        assert markers == []
        assert _names(f) == [
            (ItemType.MODULE_DECL, "m"),
            (ItemType.INTERFACE_DECL, "bus_if"),
            (ItemType.PROGRAM_DECL, "p"),
        ]

    def test_class_members_and_superclass(self):
        f, markers = _parse(
            "class my_class extends base_c;\n"
            "  local int x;\n"
            "  function void build(); endfunction\n"
            "  extern task run();\n"
            "endclass : my_class\n"
        )
        assert markers == []
        cls = f.children[0]
        assert isinstance(cls, ClassDecl)
        assert cls.super_class == "base_c"
        assert _names(cls) == [
            (ItemType.VAR_DECL, "x"),
            (ItemType.FUNCTION, "build"),
            (ItemType.TASK, "run"),
        ]

    def test_pure_virtual_function_has_no_body(self):
        f, markers = _parse(
            "virtual class c;\n"
            "  pure virtual function void go();\n"
            "endclass\n"
        )
        assert markers == []
        assert _names(f.children[0]) == [(ItemType.FUNCTION, "go")]

    def test_virtual_interface_member_is_not_a_scope(self):
        f, markers = _parse(
            "class drv;\n"
            "  virtual interface bus_if vif;\n"
            "endclass\n"
        )
        assert markers == []
        assert [c.name for c in f.children] == ["drv"]

    def test_end_label_is_skipped(self):
        f, markers = _parse("module m; endmodule : m\nmodule n; endmodule\n")
        assert markers == []
        assert [c.name for c in f.children] == ["m", "n"]


class TestDeclarations:
    def test_typedef(self):
        f, _ = _parse("typedef enum {A, B} state_t;\ntypedef class fwd_c;\n")
        assert _names(f) == [(ItemType.TYPEDEF, "state_t"), (ItemType.TYPEDEF, "fwd_c")]

    def test_import(self):
        f, _ = _parse("module m;\n  import pkg::*;\n  import other::item;\nendmodule\n")
        assert _names(f.children[0]) == [
            (ItemType.IMPORT, "pkg::*"),
            (ItemType.IMPORT, "other::item"),
        ]

    def test_variable_declarations(self):
        f, _ = _parse("module m;\n  logic [7:0] a, b = 1;\n  int unsigned c;\nendmodule\n")
        assert _names(f.children[0]) == [
            (ItemType.VAR_DECL, "a"),
            (ItemType.VAR_DECL, "b"),
            (ItemType.VAR_DECL, "c"),
        ]

    def test_macro_definition_recorded(self):
        f, _ = _parse("`define WIDTH 8\n")
        assert _names(f) == [(ItemType.MACRO_DEF, "WIDTH")]
        assert f.children[0].value == "8"

    def test_include_recorded(self):
        f, _ = _parse('`include "a.svh"\n')
        assert _names(f) == [(ItemType.INCLUDE, "a.svh")]


# ── Pre-processor handling ────────────────────────────────────────────────────


class TestConditionals:
    SOURCE = (
        "`ifdef FOO\n"
        "module a; endmodule\n"
        "`else\n"
        "module b; endmodule\n"
        "`endif\n"
    )

    def test_else_branch_taken_without_define(self):
        f, markers = _parse(self.SOURCE)
        assert markers == []
        conds = [c for c in f.children if isinstance(c, PreProcCond)]
        assert [c.name for c in conds] == ["ifdef", "else"]
        assert conds[0].children == []
        assert [m.name for m in conds[1].children] == ["b"]

    def test_ifdef_branch_taken_with_define(self):
        f, _ = _parse(self.SOURCE, {"FOO": ""})
        conds = [c for c in f.children if isinstance(c, PreProcCond)]
        assert [m.name for m in conds[0].children] == ["a"]
        assert conds[1].children == []

    def test_in_file_define_controls_later_ifdef(self):
        f, _ = _parse("`define FOO\n" + self.SOURCE)
        conds = [c for c in f.children if isinstance(c, PreProcCond)]
        assert [m.name for m in conds[0].children] == ["a"]

    def test_undef_removes_define(self):
        f, _ = _parse("`undef FOO\n" + self.SOURCE, {"FOO": "1"})
        conds = [c for c in f.children if isinstance(c, PreProcCond)]
        assert [m.name for m in conds[1].children] == ["b"]

    def test_stray_endif_is_parse_error(self):
        _, markers = _parse("`endif\n")
        assert [m.kind for m in markers] == [MarkerKind.PARSE_ERROR]


class TestUndefinedMacros:
    def test_unknown_macro_warns(self):
        _, markers = _parse('module m;\n  `uvm_info("ID", "msg", UVM_LOW)\nendmodule\n')
        assert len(markers) == 1
        assert markers[0].kind == MarkerKind.UNDEFINED_MACRO
        assert markers[0].type == MarkerType.WARNING
        assert markers[0].message == "Macro uvm_info undefined"
        assert markers[0].line == 2

    def test_known_macro_is_quiet(self):
        _, markers = _parse("module m;\n  int x = `WIDTH;\nendmodule\n", {"WIDTH": "8"})
        assert markers == []

    def test_builtin_directive_is_quiet(self):
        _, markers = _parse("`timescale 1ns/1ps\nmodule m; endmodule\n")
        assert markers == []


# ── Error recovery ────────────────────────────────────────────────────────────


class TestErrorRecovery:
    def test_missing_end_reported(self):
        f, markers = _parse("module m;\n")
        assert [c.name for c in f.children] == ["m"]
        assert markers[0].kind == MarkerKind.PARSE_ERROR
        assert "endmodule" in markers[0].message

    def test_mismatched_end_reported(self):
        _, markers = _parse("module m;\nendclass\nendmodule\n")
        assert [m.message for m in markers] == ["Unexpected endclass"]

    def test_inner_scope_closed_by_outer_end(self):
        f, markers = _parse("package p;\n  function void f();\nendpackage\n")
        assert any("endfunction" in m.message for m in markers)
        assert _names(f.children[0]) == [(ItemType.FUNCTION, "f")]

    def test_internal_failure_returns_none_with_marker(self):
        factory = LexicalFileFactory()
        markers: list[Marker] = []
        with patch.object(factory, "_parse", side_effect=RuntimeError("boom")):
            assert factory.parse(b"module m; endmodule", "/x.sv", markers) is None
        assert markers[0].kind == MarkerKind.PARSE_ERROR

    def test_comment_hides_keywords(self):
        f, markers = _parse("// module hidden;\n/* class c; */\nmodule m; endmodule\n")
        assert markers == []
        assert [c.name for c in f.children] == ["m"]


class TestKeywordTables:
    def test_tables_are_immutable(self):
        with pytest.raises(TypeError):
            OPEN_KEYWORDS["foo"] = (ScopeKind.MODULE, ItemType.MODULE_DECL)  # type: ignore[index]

    def test_every_end_keyword_has_an_opener(self):
        opened = {kind for kind, _ in OPEN_KEYWORDS.values()}
        assert set(END_KEYWORDS.values()) <= opened
