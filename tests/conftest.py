"""Shared test fixtures for svindex."""

import os
from pathlib import Path

import pytest

from svindex.core.config import IndexConfig
from svindex.index.fs import LocalFileSystemProvider
from svindex.index.source_collection import SourceCollectionIndex


PKG_SVH = """\
`ifndef PKG_SVH
`define PKG_SVH
package pkg;
  function int f(int a);
    return a + 1;
  endfunction
endpackage
`endif
"""

TOP_SV = """\
`include "pkg.svh"
module top;
  import pkg::*;
endmodule
"""


def write(path: Path, text: str) -> str:
    """Write *text* to *path* (creating parents) and return the path as str."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return str(path)


def touch_later(path: Path, seconds: int = 10) -> None:
    """Move *path*'s mtime forward so a change is visible regardless of clock resolution."""
    st = path.stat()
    os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + seconds * 1_000_000_000))


@pytest.fixture
def fs():
    return LocalFileSystemProvider()


@pytest.fixture
def pkg_project(tmp_path):
    """top.sv including pkg.svh, which defines package pkg with function f."""
    write(tmp_path / "pkg.svh", PKG_SVH)
    write(tmp_path / "top.sv", TOP_SV)
    return tmp_path


@pytest.fixture
def make_index(fs):
    """Factory for SourceCollectionIndex instances; disposed after the test."""
    created = []

    def _make(base: Path, **config_fields) -> SourceCollectionIndex:
        index = SourceCollectionIndex(str(base), fs, config=IndexConfig(**config_fields))
        created.append(index)
        return index

    yield _make
    for index in created:
        index.dispose()
