#!/usr/bin/env python3
"""
Unit tests for path_resolver.py
Tests destination resolution, directory classification and destination
assignment.
"""

import unittest
import tempfile
import shutil
from pathlib import Path

# Add parent directory to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from mod_node import DestinationSource, ModNode, NodeType
from path_resolver import (
    DirectoryKind,
    PathResolver,
    join_destination,
    reset_destination,
    same_path,
    set_destination_recursive,
)


def make_archive_tree():
    """mod.zip -> MyMod-1.0/GameData/MyMod/{Parts/part.cfg, plugin.dll}"""
    mod = ModNode(key="mod.zip", name="MyMod")
    wrapper = mod.add_child(ModNode(key="MyMod-1.0", name="MyMod-1.0"))
    game_data = wrapper.add_child(ModNode(key="MyMod-1.0/GameData", name="GameData"))
    my_mod = game_data.add_child(ModNode(key="MyMod-1.0/GameData/MyMod", name="MyMod"))
    parts = my_mod.add_child(ModNode(key="MyMod-1.0/GameData/MyMod/Parts", name="Parts"))
    parts.add_child(ModNode(key="MyMod-1.0/GameData/MyMod/Parts/part.cfg", name="part.cfg",
                            node_type=NodeType.FILE))
    my_mod.add_child(ModNode(key="MyMod-1.0/GameData/MyMod/plugin.dll", name="plugin.dll",
                             node_type=NodeType.FILE))
    return mod


def find(mod, name):
    return next(n for n in mod.walk() if n.name == name and n is not mod)


class TestPathHelpers(unittest.TestCase):
    """Tests for the module level helpers."""

    def test_join_destination(self):
        self.assertEqual(join_destination("GameData", "Foo", "a.cfg"), "GameData/Foo/a.cfg")
        self.assertEqual(join_destination("", "GameData\\Foo/"), "GameData/Foo")

    def test_same_path(self):
        self.assertTrue(same_path("GameData\\Foo", "gamedata/foo/"))
        self.assertFalse(same_path("GameData/Foo", "GameData/Bar"))


class TestPathResolver(unittest.TestCase):
    """Tests for PathResolver class."""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.resolver = PathResolver(self.temp_dir)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_resolve_own_destination(self):
        node = ModNode(key="a", name="a", destination="GameData\\Foo")
        self.assertEqual(PathResolver.resolve_destination(node), "GameData/Foo")

    def test_resolve_from_ancestor(self):
        mod = make_archive_tree()
        find(mod, "GameData").destination = "GameData"
        part = find(mod, "part.cfg")
        self.assertEqual(PathResolver.resolve_destination(part), "GameData/MyMod/Parts/part.cfg")

    def test_resolve_unplaced(self):
        mod = make_archive_tree()
        self.assertEqual(PathResolver.resolve_destination(find(mod, "plugin.dll")), "")
        self.assertIsNone(self.resolver.get_absolute_path(find(mod, "plugin.dll")))

    def test_get_absolute_path(self):
        node = ModNode(key="a", name="a", destination="GameData/Foo")
        self.assertEqual(self.resolver.get_absolute_path(node), self.temp_dir / "GameData" / "Foo")

    def test_get_relative_path(self):
        self.assertEqual(self.resolver.get_relative_path(self.temp_dir / "Ships" / "VAB"), "Ships/VAB")
        with self.assertRaises(ValueError):
            self.resolver.get_relative_path(Path("/somewhere/else"))

    def test_classify_directory(self):
        self.assertEqual(self.resolver.classify_directory(self.temp_dir / "GameData"),
                         DirectoryKind.RECOGNIZED_GAME_DIR)
        self.assertEqual(self.resolver.classify_directory(self.temp_dir / "gamedata"),
                         DirectoryKind.RECOGNIZED_GAME_DIR)
        self.assertEqual(self.resolver.classify_directory(self.temp_dir / "Ships" / "VAB"),
                         DirectoryKind.RECOGNIZED_GAME_DIR)
        self.assertEqual(self.resolver.classify_directory(self.temp_dir / "GameData" / "Foo"),
                         DirectoryKind.ARBITRARY_DIR)
        self.assertEqual(self.resolver.classify_directory(Path("/elsewhere/GameData")),
                         DirectoryKind.ARBITRARY_DIR)

    def test_custom_recognized_dirs(self):
        resolver = PathResolver(self.temp_dir, ["GameData", "Missions"])
        self.assertTrue(resolver.is_recognized_dir(self.temp_dir / "Missions"))
        self.assertFalse(resolver.is_recognized_dir(self.temp_dir / "Ships"))

    def test_recognized_destination(self):
        self.assertEqual(self.resolver.recognized_destination("gamedata"), "GameData")
        self.assertEqual(self.resolver.recognized_destination("VAB"), "Ships/VAB")
        self.assertIsNone(self.resolver.recognized_destination("MyMod"))

    def test_default_destination_paths(self):
        paths = self.resolver.default_destination_paths()
        self.assertIn(self.temp_dir / "GameData", paths)
        self.assertIn(self.temp_dir / "Ships" / "SPH", paths)


class TestSetDestination(unittest.TestCase):
    """Tests for destination assignment."""

    def test_copy_content_only(self):
        mod = make_archive_tree()
        game_data = find(mod, "GameData")
        set_destination_recursive(game_data, "GameData", copy_content_only=True)
        self.assertEqual(game_data.destination, "GameData")
        self.assertEqual(game_data.destination_source, DestinationSource.EXPLICIT)
        self.assertEqual(find(mod, "part.cfg").destination, "GameData/MyMod/Parts/part.cfg")
        self.assertEqual(find(mod, "part.cfg").destination_source, DestinationSource.DERIVED)

    def test_copy_folder_itself(self):
        mod = make_archive_tree()
        my_mod = find(mod, "MyMod")
        set_destination_recursive(my_mod, "GameData")
        self.assertEqual(my_mod.destination, "GameData/MyMod")
        self.assertEqual(find(mod, "plugin.dll").destination, "GameData/MyMod/plugin.dll")

    def test_explicit_child_destination_is_kept(self):
        mod = make_archive_tree()
        parts = find(mod, "Parts")
        set_destination_recursive(parts, "GameData/Elsewhere", copy_content_only=True)
        set_destination_recursive(find(mod, "GameData"), "GameData", copy_content_only=True)
        self.assertEqual(parts.destination, "GameData/Elsewhere")
        self.assertEqual(find(mod, "part.cfg").destination, "GameData/Elsewhere/part.cfg")
        self.assertEqual(find(mod, "plugin.dll").destination, "GameData/MyMod/plugin.dll")

    def test_empty_destination_resets(self):
        mod = make_archive_tree()
        game_data = find(mod, "GameData")
        set_destination_recursive(game_data, "GameData", copy_content_only=True)
        set_destination_recursive(game_data, "", copy_content_only=True)
        self.assertTrue(all(not n.has_destination for n in mod.walk()))

    def test_reset_destination(self):
        mod = make_archive_tree()
        set_destination_recursive(find(mod, "GameData"), "GameData", copy_content_only=True)
        reset_destination(mod)
        for node in mod.walk():
            self.assertEqual(node.destination, "")
            self.assertEqual(node.destination_source, DestinationSource.DERIVED)


if __name__ == "__main__":
    unittest.main()
