"""Tests for the symbol tree model."""

import pickle

from svindex.db.items import ClassDecl, Include, Item, ItemType, Location, MacroDef, PreProcCond, SVDBFile


def _tree() -> SVDBFile:
    root = SVDBFile.create("/proj/a.sv")
    root.add_child(Include(type=ItemType.INCLUDE, name="a.svh", location=Location(1)))
    cond = PreProcCond(type=ItemType.PREPROC_COND, name="ifdef", conditional="X")
    cond.add_child(MacroDef(type=ItemType.MACRO_DEF, name="M", value="1"))
    cond.add_child(Include(type=ItemType.INCLUDE, name="b.svh"))
    root.add_child(cond)
    cls = ClassDecl(type=ItemType.CLASS_DECL, name="c", super_class="base")
    cls.add_child(Item(type=ItemType.FUNCTION, name="f"))
    root.add_child(cls)
    return root


class TestSVDBFile:
    def test_create_sets_path_and_type(self):
        f = SVDBFile.create("/proj/a.sv")
        assert f.type == ItemType.FILE
        assert f.name == f.file_path == "/proj/a.sv"
        assert f.children == []

    def test_walk_is_depth_first_source_order(self):
        names = [i.name for i in _tree().walk()]
        assert names == ["a.svh", "ifdef", "M", "b.svh", "c", "f"]

    def test_includes_and_macro_defs_look_inside_conditionals(self):
        tree = _tree()
        assert [i.name for i in tree.includes()] == ["a.svh", "b.svh"]
        assert [m.name for m in tree.macro_defs()] == ["M"]

    def test_duplicate_is_deep(self):
        tree = _tree()
        copy = tree.duplicate()
        copy.children[1].children.clear()
        assert len(tree.children[1].children) == 2
        assert copy is not tree

    def test_trees_pickle(self):
        tree = _tree()
        assert pickle.loads(pickle.dumps(tree)) == tree


class TestItemType:
    def test_is_elem_of(self):
        assert ItemType.TASK.is_elem_of(ItemType.FUNCTION, ItemType.TASK)
        assert not ItemType.TYPEDEF.is_elem_of(ItemType.FUNCTION)

    def test_string_values(self):
        assert ItemType("function") is ItemType.FUNCTION
