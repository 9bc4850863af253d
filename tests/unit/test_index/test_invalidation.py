"""Tests for InvalidationController and deferred rebuilds."""

from unittest.mock import patch

from conftest import touch_later, write

import svindex
from svindex.index.state import IndexState
from svindex.plugins.base import IndexListener, hookimpl


class Recorder(IndexListener):
    name = "recorder"

    def __init__(self):
        self.events = []

    @hookimpl
    def index_rebuilt(self, index):
        self.events.append(("rebuilt", index))

    @hookimpl
    def index_invalidated(self, index, reason):
        self.events.append(("invalidated", reason))


class TestFileEvents:
    def test_removed_untracked_file_ignored(self, pkg_project, make_index):
        index = make_index(pkg_project)
        index.load_index()
        index.fs.fire_removed(str(pkg_project / "other.txt"))
        assert index.state == IndexState.ALL_FILES_PARSED

    def test_added_file_outside_tracked_dirs_ignored(self, pkg_project, tmp_path_factory, make_index):
        index = make_index(pkg_project)
        index.load_index()
        elsewhere = tmp_path_factory.mktemp("elsewhere")
        index.fs.fire_added(write(elsewhere / "x.sv", ""))
        assert index.state == IndexState.ALL_FILES_PARSED

    def test_added_file_in_tracked_dir_invalidates(self, pkg_project, make_index):
        index = make_index(pkg_project)
        index.load_index()
        new = write(pkg_project / "new.sv", "module n; endmodule\n")
        index.fs.fire_added(new)
        assert index.state == IndexState.ALL_INVALID
        assert [e.filename for e in index.find_global_scope_decl("n")] == [new]

    def test_added_file_next_to_included_header_invalidates(self, tmp_path, make_index):
        write(tmp_path / "shared" / "a.svh", "")
        write(
            tmp_path / "rtl" / "top.sv",
            '`include "../shared/a.svh"\n`include "../shared/late.svh"\nmodule top; endmodule\n',
        )
        index = make_index(tmp_path / "rtl")
        index.load_index()
        assert str(tmp_path / "shared") in index.file_dirs
        assert index.cache_data.missing_includes == {"../shared/late.svh"}

        late = write(tmp_path / "shared" / "late.svh", "class late_c; endclass\n")
        index.fs.fire_added(late)
        assert index.state == IndexState.ALL_INVALID
        assert [e.filename for e in index.find_global_scope_decl("late_c")] == [late]

    def test_changed_file_keeps_state(self, pkg_project, make_index):
        index = make_index(pkg_project)
        index.load_index()
        path = str(pkg_project / "top.sv")
        index.fs.fire_changed(path)
        assert index.state == IndexState.ALL_FILES_PARSED
        entry = index.cache.get_entry(path)
        assert entry.parsed is None and entry.preproc is None
        assert index.cache_data.decl_cache.get(path) is None
        assert index.find_file(path) is not None


class TestDeferredRebuild:
    def test_dirty_without_auto_rebuild(self, pkg_project, make_index):
        index = make_index(pkg_project, auto_rebuild=False)
        index.load_index()
        path = pkg_project / "pkg.svh"
        path.unlink()
        index.fs.fire_removed(str(path))

        assert index.is_dirty()
        assert index.state == IndexState.ALL_FILES_PARSED
        assert str(path) in index.get_file_list()

        index.set_enable_auto_rebuild(True)
        assert not index.is_dirty()
        assert str(path) not in index.get_file_list()
        assert index.find_global_scope_decl("f") == []

    def test_deferred_removal_survives_later_stages(self, pkg_project, make_index):
        index = make_index(pkg_project, auto_rebuild=False)
        index.find_file_tree(str(pkg_project / "top.sv"))
        path = pkg_project / "pkg.svh"
        path.unlink()
        index.fs.fire_removed(str(path))
        assert index.is_dirty()

        index.find_global_scope_decl("f")
        assert index.state == IndexState.ALL_FILES_PARSED
        assert index.is_dirty()

        index.set_enable_auto_rebuild(True)
        assert not index.is_dirty()
        assert index.get_file_list() == {str(pkg_project / "top.sv")}
        assert index.find_global_scope_decl("f") == []

    def test_fresh_discovery_clears_dirty(self, pkg_project, make_index):
        index = make_index(pkg_project, auto_rebuild=False)
        index.set_global_define("SIM")
        assert index.is_dirty()
        index.load_index()
        assert not index.is_dirty()
        assert index.cache_data.global_defines == {"SIM": ""}

    def test_removed_file_not_retried_while_dirty(self, pkg_project, make_index):
        index = make_index(pkg_project, auto_rebuild=False)
        top = str(pkg_project / "top.sv")
        index.find_file_tree(top)
        (pkg_project / "pkg.svh").unlink()
        index.fs.fire_removed(str(pkg_project / "pkg.svh"))
        index.load_index()

        with patch.object(index.fs, "open_stream", wraps=index.fs.open_stream) as opened:
            index.find_global_scope_decl("f")
            index.get_markers(top)
        assert opened.call_count == 0

    def test_explicit_rebuild_forces_reset(self, pkg_project, make_index):
        index = make_index(pkg_project, auto_rebuild=False)
        index.load_index()
        index.rebuild()
        assert index.state == IndexState.ALL_INVALID
        assert index.is_auto_rebuild_enabled() is False

    def test_global_define_change_deferred(self, pkg_project, make_index):
        index = make_index(pkg_project, auto_rebuild=False)
        index.load_index()
        index.set_global_define("SIM")
        assert index.is_dirty()
        assert index.state == IndexState.ALL_FILES_PARSED

    def test_same_global_define_is_noop(self, pkg_project, make_index):
        index = make_index(pkg_project, global_defines={"SIM": "1"})
        index.load_index()
        index.set_global_define("SIM", "1")
        assert index.state == IndexState.ALL_FILES_PARSED
        index.clear_global_defines()
        assert index.state == IndexState.ALL_INVALID
        index.load_index()
        assert index.cache_data.global_defines == {}


class TestCacheValidity:
    def test_valid_after_load(self, pkg_project, make_index):
        index = make_index(pkg_project)
        index.load_index()
        assert index.invalidation.check_cache_valid()

    def test_empty_cache_invalid(self, pkg_project, make_index):
        assert not make_index(pkg_project).invalidation.check_cache_valid()

    def test_version_mismatch_invalid(self, pkg_project, make_index):
        index = make_index(pkg_project)
        index.load_index()
        index.cache_data.version = svindex.__version__ + ".old"
        assert not index.invalidation.check_cache_valid()

    def test_timestamp_mismatch_invalid(self, pkg_project, make_index):
        index = make_index(pkg_project)
        index.load_index()
        touch_later(pkg_project / "top.sv")
        assert not index.invalidation.check_cache_valid()


class TestListeners:
    def test_rebuilt_and_invalidated_hooks(self, pkg_project, make_index):
        index = make_index(pkg_project)
        recorder = Recorder()
        index.add_change_listener(recorder)
        index.load_index()
        assert recorder.events == [("rebuilt", index)]

        (pkg_project / "pkg.svh").unlink()
        index.fs.fire_removed(str(pkg_project / "pkg.svh"))
        assert recorder.events[-1] == ("invalidated", "File Removed")

        assert index.remove_change_listener(recorder)
        index.rebuild()
        assert recorder.events[-1] == ("invalidated", "File Removed")

    def test_invalidation_from_listener_restarts_pipeline(self, pkg_project, make_index):
        index = make_index(pkg_project)

        class InvalidateOnce(IndexListener):
            def __init__(self):
                self.rebuilds = 0

            @hookimpl
            def index_rebuilt(self, index):
                self.rebuilds += 1
                if self.rebuilds == 1:
                    index.invalidate_index("Listener", True)

        listener = InvalidateOnce()
        index.add_change_listener(listener)
        assert index.load_index()
        assert listener.rebuilds == 2
        assert index.state == IndexState.ALL_FILES_PARSED
        assert len(index.find_global_scope_decl("f")) == 1

    def test_broken_listener_does_not_break_index(self, pkg_project, make_index):
        class Broken(IndexListener):
            @hookimpl
            def index_rebuilt(self, index):
                raise RuntimeError("boom")

        index = make_index(pkg_project)
        index.add_change_listener(Broken())
        assert index.load_index()
