"""Macro definitions visible to a file."""

from __future__ import annotations

from typing import TYPE_CHECKING

from svindex.index.file_tree import FileTreeNode

if TYPE_CHECKING:
    from svindex.index.base import AbstractIndex


def build_macro_map(index: AbstractIndex, file_tree: FileTreeNode | None) -> dict[str, str]:
    """Return the defines in effect when *file_tree*'s file is parsed.

    Global defines come first, then index-local defines, then ``define``
    directives from included files in include order.  Included files are
    found through the cache by path; each is visited at most once.
    """
    defines: dict[str, str] = dict(index.cache_data.global_defines)
    defines.update(index.cache_data.defines)
    if file_tree is None:
        return defines

    seen: set[str] = {file_tree.file_path}

    def visit(node: FileTreeNode) -> None:
        for inc_path in node.included_files:
            if inc_path in seen:
                continue
            seen.add(inc_path)
            child = index.cache.get_file_tree(inc_path)
            if child is not None:
                # Nested includes are expanded before the including file's own defines.
                visit(child)
            pp = index.cache.get_preproc_file(inc_path)
            if pp is not None:
                for macro in pp.macro_defs():
                    defines[macro.name] = macro.value

    visit(file_tree)
    return defines
