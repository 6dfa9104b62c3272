#!/usr/bin/env python3
"""
Unit tests for collision_detector.py
"""

import unittest
from pathlib import Path

# Add parent directory to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from collision_detector import CollisionDetector, collides_with, collision_key
from mod_node import ModNode, ModTree, NodeType


def make_mod(key, destination="GameData/Foo", checked=True, file_name="Foo.dll"):
    """Mod with a single file placed at destination."""
    mod = ModNode(key=key, name=key)
    mod.add_child(ModNode(key=file_name, name=file_name, node_type=NodeType.FILE,
                          destination=destination, checked=checked))
    return mod


def leaf(mod):
    return mod.children[0]


class TestCollisionDetector(unittest.TestCase):
    """Tests for CollisionDetector class."""

    def setUp(self):
        self.tree = ModTree()

    def test_two_mods_same_destination_collide(self):
        self.tree.add_mod(make_mod("a.zip"))
        self.tree.add_mod(make_mod("b.zip"))
        self.assertTrue(CollisionDetector.has_child_collision(self.tree.root))

    def test_unchecked_nodes_do_not_collide(self):
        self.tree.add_mod(make_mod("a.zip"))
        self.tree.add_mod(make_mod("b.zip", checked=False))
        self.assertFalse(CollisionDetector.has_child_collision(self.tree.root))
        self.assertTrue(CollisionDetector.has_child_collision(self.tree.root, require_checked=False))

    def test_same_mod_merge_is_no_collision(self):
        mod = ModNode(key="a.zip", name="a")
        one = mod.add_child(ModNode(key="one", name="one"))
        two = mod.add_child(ModNode(key="two", name="two"))
        one.add_child(ModNode(key="one/x.cfg", name="x.cfg", node_type=NodeType.FILE,
                              destination="GameData/x.cfg", checked=True))
        two.add_child(ModNode(key="two/x.cfg", name="x.cfg", node_type=NodeType.FILE,
                              destination="GameData/x.cfg", checked=True))
        self.tree.add_mod(mod)
        self.assertFalse(CollisionDetector.has_child_collision(self.tree.root))

    def test_case_and_separator_insensitive(self):
        self.tree.add_mod(make_mod("a.zip", destination="GameData\\foo"))
        self.tree.add_mod(make_mod("b.zip", destination="gamedata/FOO/"))
        self.assertTrue(CollisionDetector.has_child_collision(self.tree.root))

    def test_empty_destination_never_collides(self):
        self.tree.add_mod(make_mod("a.zip", destination=""))
        self.tree.add_mod(make_mod("b.zip", destination=""))
        self.assertFalse(CollisionDetector.has_child_collision(self.tree.root))
        self.assertIsNone(collision_key(leaf(self.tree.get_mod("a.zip"))))

    def test_folders_do_not_collide(self):
        a = ModNode(key="a.zip", name="a")
        a.add_child(ModNode(key="GameData", name="GameData", destination="GameData", checked=True))
        b = ModNode(key="b.zip", name="b")
        b.add_child(ModNode(key="GameData", name="GameData", destination="GameData", checked=True))
        self.tree.add_mod(a)
        self.tree.add_mod(b)
        self.assertFalse(CollisionDetector.has_child_collision(self.tree.root))

    def test_collision_is_symmetric(self):
        a = self.tree.add_mod(make_mod("a.zip"))
        b = self.tree.add_mod(make_mod("b.zip"))
        self.assertTrue(collides_with(leaf(a), leaf(b)))
        self.assertTrue(collides_with(leaf(b), leaf(a)))
        self.assertEqual(len(CollisionDetector.find_collisions(a, self.tree.mods)),
                         len(CollisionDetector.find_collisions(b, self.tree.mods)))

    def test_find_collisions(self):
        a = self.tree.add_mod(make_mod("a.zip"))
        b = self.tree.add_mod(make_mod("b.zip"))
        self.tree.add_mod(make_mod("c.zip", destination="GameData/Other"))

        warnings = CollisionDetector.find_collisions(a, self.tree.mods)

        self.assertEqual(len(warnings), 1)
        self.assertIs(warnings[0].node, leaf(a))
        self.assertIs(warnings[0].other, leaf(b))
        self.assertIs(warnings[0].other_mod, b)
        self.assertEqual(warnings[0].destination, "GameData/Foo")
        self.assertIn("b.zip", str(warnings[0]))

    def test_new_unchecked_mod_against_installed(self):
        installed = self.tree.add_mod(make_mod("a.zip"))
        new = self.tree.add_mod(make_mod("b.zip", checked=False))
        warnings = CollisionDetector.find_collisions(new, self.tree.mods, require_checked=False)
        self.assertEqual([w.other for w in warnings], [leaf(installed)])
        self.assertEqual(CollisionDetector.get_colliding_nodes(installed, self.tree.mods), [])


if __name__ == "__main__":
    unittest.main()
