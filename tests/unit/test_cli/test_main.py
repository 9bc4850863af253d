"""Tests for svindex.__main__: CLI entry point dispatch."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import write


@pytest.fixture(autouse=True)
def _no_user_config(tmp_path_factory, monkeypatch):
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setattr(Path, "home", lambda: home)


# ── main() dispatch ───────────────────────────────────────────────────────────


class TestMainDispatch:
    @pytest.mark.parametrize("command", ["index", "files", "find", "markers"])
    def test_dispatch(self, command) -> None:
        with patch(f"svindex.__main__._run_{command}") as mock_run:
            with patch("sys.argv", ["svindex", command, "--dir", "x"]):
                from svindex.__main__ import main
                main()
            mock_run.assert_called_once_with(["--dir", "x"])

    def test_no_args_prints_help(self, capsys) -> None:
        with patch("sys.argv", ["svindex"]):
            from svindex.__main__ import main
            with pytest.raises(SystemExit) as exc_info:
                main()
        assert exc_info.value.code == 0
        assert "Usage: svindex index" in capsys.readouterr().out

    def test_unknown_command_exits_with_error(self) -> None:
        with patch("sys.argv", ["svindex", "serve"]):
            from svindex.__main__ import main
            with pytest.raises(SystemExit) as exc_info:
                main()
            assert exc_info.value.code == 1


# ── _parse_flags ──────────────────────────────────────────────────────────────


class TestParseFlags:
    def test_defaults(self) -> None:
        from svindex.__main__ import _parse_flags
        f = _parse_flags([])
        assert f.project_dir == Path.cwd()
        assert f.argfile is None
        assert f.threads is False
        assert f.sqlite is False
        assert f.matcher == "exact"

    def test_all_flags(self) -> None:
        from svindex.__main__ import _parse_flags
        f = _parse_flags(["--dir", "/p", "--argfile", "tb.f", "--threads", "--sqlite", "--prefix"])
        assert f.project_dir == Path("/p")
        assert f.argfile == Path("tb.f")
        assert f.threads and f.sqlite
        assert f.matcher == "prefix"

    def test_name_only_when_allowed(self) -> None:
        from svindex.__main__ import _parse_flags
        assert _parse_flags(["my_pkg", "--icase"], allow_name=True).name == "my_pkg"
        with pytest.raises(SystemExit):
            _parse_flags(["my_pkg"])

    def test_unknown_flag_exits(self) -> None:
        from svindex.__main__ import _parse_flags
        with pytest.raises(SystemExit) as exc_info:
            _parse_flags(["--bogus"])
        assert exc_info.value.code == 1


# ── Commands against a real project ───────────────────────────────────────────


class TestCommands:
    def test_index_summary(self, pkg_project, capsys) -> None:
        from svindex.__main__ import _run_index
        _run_index(["--dir", str(pkg_project)])
        out = capsys.readouterr().out
        assert "Total: 2 files · 4 declarations · 0 markers" in out

    def test_files(self, pkg_project, capsys) -> None:
        from svindex.__main__ import _run_files
        _run_files(["--dir", str(pkg_project)])
        lines = capsys.readouterr().out.splitlines()
        assert lines == [str(pkg_project / "pkg.svh"), str(pkg_project / "top.sv")]

    def test_find_table(self, pkg_project, capsys) -> None:
        from svindex.__main__ import _run_find
        _run_find(["f", "--dir", str(pkg_project)])
        out = capsys.readouterr().out
        assert "function" in out
        assert "svindex find f" in out

    def test_find_no_match(self, pkg_project, capsys) -> None:
        from svindex.__main__ import _run_find
        _run_find(["nothing", "--dir", str(pkg_project)])
        assert "No declarations match 'nothing'" in capsys.readouterr().out

    def test_find_requires_name(self, pkg_project) -> None:
        from svindex.__main__ import _run_find
        with pytest.raises(SystemExit):
            _run_find(["--dir", str(pkg_project)])

    def test_markers(self, tmp_path, capsys) -> None:
        from svindex.__main__ import _run_markers
        write(tmp_path / "top.sv", '`include "gone.svh"\nmodule top; endmodule\n')
        _run_markers(["--dir", str(tmp_path)])
        out = capsys.readouterr().out
        assert 'Failed to find include file "gone.svh"' in out
        assert "1 marker(s)" in out

    def test_sqlite_cache_reused(self, pkg_project, capsys) -> None:
        from svindex.__main__ import _run_index
        _run_index(["--dir", str(pkg_project), "--sqlite"])
        assert (pkg_project / ".svindex" / "index_cache.db").exists()
        _run_index(["--dir", str(pkg_project), "--sqlite", "--threads"])
        out = capsys.readouterr().out
        assert out.count("Total: 2 files · 4 declarations · 0 markers") == 2

    def test_missing_dir(self, tmp_path) -> None:
        from svindex.__main__ import _run_files
        with pytest.raises(FileNotFoundError):
            _run_files(["--dir", str(tmp_path / "nope")])

    def test_argfile(self, pkg_project, capsys) -> None:
        from svindex.__main__ import _run_files
        argfile = write(pkg_project / "tb.f", "+incdir+.\ntop.sv\n")
        _run_files(["--dir", str(pkg_project), "--argfile", argfile])
        lines = capsys.readouterr().out.splitlines()
        assert lines == [str(pkg_project / "pkg.svh"), str(pkg_project / "top.sv")]
