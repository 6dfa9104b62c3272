#!/usr/bin/env python3
"""
Unit tests for mod_node.py
Tests tree structure, checked state rules and the mod forest index.
"""

import unittest
from pathlib import Path

# Add parent directory to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from errors import DuplicateKeyError
from mod_node import (
    CheckState,
    ModInfo,
    ModNode,
    ModTree,
    NodeType,
    desired_state,
    parse_date,
)


def make_mod(key="mod.zip", name="Mod", product_id="", site=""):
    """Mod with GameData/Foo/{a.cfg,b.dll} and an unplaced readme."""
    mod = ModNode(key=key, name=name, product_id=product_id, site_handler_name=site)
    game_data = mod.add_child(ModNode(key="GameData", name="GameData", destination="GameData"))
    foo = game_data.add_child(ModNode(key="GameData/Foo", name="Foo", destination="GameData/Foo"))
    foo.add_child(ModNode(key="GameData/Foo/a.cfg", name="a.cfg", node_type=NodeType.FILE,
                          destination="GameData/Foo/a.cfg"))
    foo.add_child(ModNode(key="GameData/Foo/b.dll", name="b.dll", node_type=NodeType.FILE,
                          destination="GameData/Foo/b.dll"))
    mod.add_child(ModNode(key="readme.txt", name="readme.txt", node_type=NodeType.FILE))
    return mod


class TestModNodeStructure(unittest.TestCase):
    """Tests for parent/child handling."""

    def test_add_child_sets_parent(self):
        parent = ModNode(key="p")
        child = parent.add_child(ModNode(key="c"))
        self.assertIs(child.parent, parent)
        self.assertEqual(parent.children, [child])

    def test_duplicate_sibling_key_rejected(self):
        parent = ModNode(key="p")
        parent.add_child(ModNode(key="c"))
        with self.assertRaises(DuplicateKeyError):
            parent.add_child(ModNode(key="c"))
        self.assertEqual(len(parent.children), 1)

    def test_node_without_key_rejected(self):
        with self.assertRaises(ValueError):
            ModNode(key="p").add_child(ModNode())

    def test_add_child_detaches_from_old_parent(self):
        old = ModNode(key="old")
        new = ModNode(key="new")
        child = old.add_child(ModNode(key="c"))
        new.add_child(child)
        self.assertEqual(old.children, [])
        self.assertIs(child.parent, new)

    def test_remove_non_member_is_noop(self):
        parent = ModNode(key="p")
        self.assertFalse(parent.remove_child(ModNode(key="x")))

    def test_initial_children_are_adopted(self):
        child = ModNode(key="c")
        parent = ModNode(key="p", children=[child])
        self.assertIs(child.parent, parent)

    def test_zip_root(self):
        mod = make_mod()
        tree = ModTree()
        tree.add_mod(mod)
        leaf = ModTree.search_node("a.cfg", mod)
        self.assertIs(leaf.zip_root, mod)
        self.assertIs(mod.zip_root, mod)

    def test_walk_is_preorder(self):
        mod = make_mod()
        keys = [n.key for n in mod.walk()]
        self.assertEqual(keys[0], "mod.zip")
        self.assertLess(keys.index("GameData"), keys.index("GameData/Foo"))
        self.assertLess(keys.index("GameData/Foo"), keys.index("GameData/Foo/a.cfg"))

    def test_path_from(self):
        mod = make_mod()
        leaf = ModTree.search_node("GameData/Foo/b.dll", mod)
        self.assertEqual(leaf.path_from(mod), ["GameData", "Foo", "b.dll"])

    def test_relations(self):
        mod = make_mod()
        self.assertTrue(mod.has_destination_for_children)
        self.assertTrue(mod.has_children_without_destination)
        self.assertFalse(mod.has_installed_children)
        ModTree.search_node("a.cfg", mod).is_installed = True
        self.assertTrue(mod.has_installed_children)


class TestCheckedState(unittest.TestCase):
    """Tests for set_checked and desired_state."""

    def test_uncheck_cascades(self):
        mod = make_mod()
        for node in mod.walk():
            node.checked = True
        mod.set_checked(False)
        self.assertTrue(all(not n.checked for n in mod.walk()))

    def test_check_refused_without_destination(self):
        mod = make_mod()
        readme = ModTree.search_node("readme.txt", mod)
        self.assertFalse(readme.set_checked(True))
        self.assertFalse(readme.checked)

    def test_check_file_marks_ancestors(self):
        mod = make_mod()
        leaf = ModTree.search_node("a.cfg", mod)
        self.assertTrue(leaf.set_checked(True))
        self.assertTrue(leaf.parent.checked)
        self.assertTrue(mod.checked)
        self.assertFalse(ModTree.search_node("b.dll", mod).checked)

    def test_folder_with_placed_content_can_be_checked(self):
        mod = make_mod()
        self.assertTrue(mod.can_check())

    def test_check_all_children_skips_unplaced(self):
        mod = make_mod()
        accepted = mod.check_all_children(True)
        self.assertEqual(accepted, 5)
        self.assertFalse(ModTree.search_node("readme.txt", mod).checked)

    def test_desired_state(self):
        mod = make_mod()
        self.assertEqual(desired_state(mod), CheckState.UNCHECKED)
        ModTree.search_node("a.cfg", mod).set_checked(True)
        self.assertEqual(desired_state(mod), CheckState.MIXED)
        foo = ModTree.search_node("Foo", mod)
        foo.check_all_children(True)
        self.assertEqual(desired_state(foo), CheckState.CHECKED)
        mod.uncheck_all()
        self.assertEqual(desired_state(mod), CheckState.UNCHECKED)


class TestModTree(unittest.TestCase):
    """Tests for the mod forest."""

    def setUp(self):
        self.tree = ModTree()

    def test_add_and_get(self):
        mod = self.tree.add_mod(make_mod())
        self.assertEqual(len(self.tree), 1)
        self.assertIs(self.tree.get_mod("mod.zip"), mod)
        self.assertIn(mod, self.tree)

    def test_duplicate_mod_key(self):
        self.tree.add_mod(make_mod())
        with self.assertRaises(DuplicateKeyError):
            self.tree.add_mod(make_mod())

    def test_product_index(self):
        mod = self.tree.add_mod(make_mod(product_id="123", site="CurseForge"))
        self.assertIs(self.tree.get_by_product("123", "curseforge"), mod)
        self.assertIsNone(self.tree.get_by_product("123", "KSPForum"))
        self.tree.remove_mod(mod)
        self.assertIsNone(self.tree.get_by_product("123", "CurseForge"))

    def test_set_mod_identity_reindexes(self):
        mod = self.tree.add_mod(make_mod(product_id="1", site="A"))
        self.tree.set_mod_identity(mod, "2", "B")
        self.assertIsNone(self.tree.get_by_product("1", "A"))
        self.assertIs(self.tree.get_by_product("2", "B"), mod)

    def test_index_falls_back_to_other_mod(self):
        first = self.tree.add_mod(make_mod(key="a.zip", product_id="1", site="A"))
        second = self.tree.add_mod(make_mod(key="b.zip", product_id="1", site="A"))
        self.tree.remove_mod(first)
        self.assertIs(self.tree.get_by_product("1", "A"), second)

    def test_replace_mod_keeps_position(self):
        a = self.tree.add_mod(make_mod(key="a.zip"))
        b = self.tree.add_mod(make_mod(key="b.zip"))
        c = self.tree.add_mod(make_mod(key="c.zip"))
        new = make_mod(key="b2.zip")
        self.tree.replace_mod(b, new)
        self.assertEqual(self.tree.mods, [a, new, c])
        self.assertIsNone(b.parent)

    def test_replace_mod_with_same_key(self):
        old = self.tree.add_mod(make_mod(key="a.zip"))
        new = make_mod(key="a.zip")
        self.tree.replace_mod(old, new)
        self.assertEqual(self.tree.mods, [new])

    def test_replace_mod_key_clash_keeps_forest(self):
        a = self.tree.add_mod(make_mod(key="a.zip", product_id="1"))
        b = self.tree.add_mod(make_mod(key="b.zip"))
        with self.assertRaises(DuplicateKeyError):
            self.tree.replace_mod(a, make_mod(key="b.zip"))
        self.assertEqual(self.tree.mods, [a, b])
        self.assertIs(self.tree.get_by_product("1"), a)

    def test_contains_local_path(self):
        self.tree.add_mod(make_mod(key=str(Path("downloads") / "mod.zip")))
        self.assertTrue(self.tree.contains_local_path(str(Path("downloads") / "mod.zip")))
        self.assertFalse(self.tree.contains_local_path("other.zip"))

    def test_iter_nodes_is_restartable(self):
        self.tree.add_mod(make_mod(key="a.zip"))
        self.tree.add_mod(make_mod(key="b.zip"))
        first = [n.key for n in self.tree.iter_nodes()]
        second = [n.key for n in self.tree.iter_nodes()]
        self.assertEqual(first, second)
        self.assertEqual(len(first), ModTree.full_node_count(self.tree.mods))
        self.assertEqual(len(first), 12)

    def test_clear(self):
        self.tree.add_mod(make_mod(product_id="1"))
        self.tree.clear()
        self.assertEqual(len(self.tree), 0)
        self.assertIsNone(self.tree.get_by_product("1"))

    def test_zip_root_below_forest_root(self):
        mod = self.tree.add_mod(make_mod())
        self.assertIs(mod.zip_root, mod)
        self.assertEqual(list(mod.ancestors()), [])


class TestModInfo(unittest.TestCase):
    """Tests for mod info handling."""

    def test_mod_info_from_node(self):
        mod = make_mod(product_id="42", site="KSPForum")
        mod.version = "1.2"
        leaf = ModTree.search_node("a.cfg", mod)
        info = leaf.mod_info
        self.assertEqual(info.local_path, "mod.zip")
        self.assertEqual(info.product_id, "42")
        self.assertEqual(info.version, "1.2")

    def test_apply_mod_info(self):
        node = ModNode(key="x.zip", name="x")
        node.apply_mod_info(ModInfo(name="Better Name", author="Jeb", version="2.0"))
        self.assertEqual(node.name, "Better Name")
        self.assertEqual(node.author, "Jeb")
        self.assertEqual(node.version, "2.0")

    def test_parse_date(self):
        self.assertEqual(parse_date("2015-03-01 10:20:30").day, 1)
        self.assertEqual(parse_date("01.03.2015 10:20:30").month, 3)
        self.assertIsNone(parse_date("yesterday"))
        self.assertIsNone(parse_date(""))


if __name__ == "__main__":
    unittest.main()
