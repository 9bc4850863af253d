"""Tests for argument-file parsing and ArgFileIndex."""

import pytest
from conftest import touch_later, write

from svindex.db.markers import MarkerKind
from svindex.index.argfile import ArgFileIndex, parse_arg_file
from svindex.index.state import IndexState

ARGS_F = """\
// testbench file list
+incdir+inc+../shared
+define+A=1+B
-define C=2
-incdir other
-y libdir
+libext+.v
src/top.sv
-f nested.f
"""


@pytest.fixture
def tb(tmp_path):
    tb_dir = tmp_path / "tb"
    write(tb_dir / "files.f", ARGS_F)
    write(tb_dir / "nested.f", "src/extra.sv /* trailing */\n-F files.f\n")
    write(tb_dir / "inc" / "defs.svh", "package defs; endpackage\n")
    write(tb_dir / "src" / "top.sv", '`include "defs.svh"\nmodule top; import defs::*; endmodule\n')
    write(tb_dir / "src" / "extra.sv", "module extra; endmodule\n")
    return tb_dir


class TestParseArgFile:
    def test_contents(self, tb, fs):
        contents = parse_arg_file(str(tb / "files.f"), fs)
        assert contents.source_files == [str(tb / "src" / "top.sv"), str(tb / "src" / "extra.sv")]
        assert contents.include_paths == [
            str(tb / "inc"),
            str(tb.parent / "shared"),
            str(tb / "other"),
        ]
        assert contents.defines == {"A": "1", "B": "", "C": "2"}
        assert contents.arg_files == [str(tb / "files.f"), str(tb / "nested.f")]

    def test_unreadable_file(self, tmp_path, fs):
        contents = parse_arg_file(str(tmp_path / "missing.f"), fs)
        assert contents.source_files == []
        assert contents.arg_files == [str(tmp_path / "missing.f")]

    def test_absolute_paths_kept(self, tmp_path, fs):
        other = tmp_path / "elsewhere" / "a.sv"
        path = write(tmp_path / "abs.f", f"{other}\n")
        assert parse_arg_file(path, fs).source_files == [str(other)]


class TestArgFileIndex:
    def test_load(self, tb, fs):
        index = ArgFileIndex(str(tb / "files.f"), fs)
        try:
            assert index.get_resolved_base_location_dir() == str(tb)
            assert index.load_index()
            top = str(tb / "src" / "top.sv")
            assert index.find_file_tree(top).included_files == [str(tb / "inc" / "defs.svh")]
            assert index.get_markers(top) == []
            assert [e.filename for e in index.find_global_scope_decl("defs")] == [str(tb / "inc" / "defs.svh")]
            assert index.cache_data.defines == {"A": "1", "B": "", "C": "2"}
            assert index.is_control_file(str(tb / "nested.f"))
        finally:
            index.dispose()

    def test_edit_to_argument_file_invalidates(self, tb, fs):
        index = ArgFileIndex(str(tb / "files.f"), fs)
        try:
            index.load_index()
            late = write(tb / "src" / "late.sv", "module late; endmodule\n")
            write(tb / "nested.f", "src/extra.sv\nsrc/late.sv\n")
            touch_later(tb / "nested.f")
            index.fs.fire_changed(str(tb / "nested.f"))
            assert index.state == IndexState.ALL_INVALID
            assert late in index.get_file_list()
        finally:
            index.dispose()

    def test_file_list_includes_headers_before_load(self, tb, fs):
        index = ArgFileIndex(str(tb / "files.f"), fs)
        try:
            before = index.get_file_list()
            assert before == {
                str(tb / "src" / "top.sv"),
                str(tb / "src" / "extra.sv"),
                str(tb / "inc" / "defs.svh"),
            }
            assert index.load_index()
            assert index.get_file_list() == before
        finally:
            index.dispose()

    def test_new_header_in_include_dir_repairs_missing_include(self, tmp_path, fs):
        args = write(tmp_path / "run.f", "+incdir+inc\ntop.sv\n")
        top = write(tmp_path / "top.sv", '`include "late.svh"\nmodule top; endmodule\n')
        (tmp_path / "inc").mkdir()
        index = ArgFileIndex(args, fs)
        try:
            assert [m.kind for m in index.get_markers(top)] == [MarkerKind.MISSING_INCLUDE]

            late = write(tmp_path / "inc" / "late.svh", "class late_c; endclass\n")
            index.fs.fire_added(late)
            assert index.state == IndexState.ALL_INVALID
            assert [e.filename for e in index.find_global_scope_decl("late_c")] == [late]
            assert index.get_markers(top) == []
        finally:
            index.dispose()
