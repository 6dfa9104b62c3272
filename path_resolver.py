"""
Path resolution for KSPModManager.
Converts between archive nodes, install-root-relative destinations and
absolute paths, and knows which directories belong to the game itself.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

from file_system import normalize_rel_path
from mod_node import DestinationSource, ModNode

log = logging.getLogger("kspmodmanager.path_resolver")


# Top-level game directories, relative to the install root
DEFAULT_RECOGNIZED_DIRS = (
    "GameData",
    "Ships",
    "Ships/VAB",
    "Ships/SPH",
    "Internals",
    "Parts",
    "Plugins",
    "PluginData",
    "Resources",
    "saves",
    "Screenshots",
    "Sounds",
)


class DirectoryKind(Enum):
    """Classification of a directory below the install root."""
    RECOGNIZED_GAME_DIR = "Recognized"
    ARBITRARY_DIR = "Arbitrary"


def join_destination(*parts: str) -> str:
    """Join destination segments with forward slashes, skipping empty ones."""
    return "/".join(p for p in (normalize_rel_path(part) for part in parts) if p)


def same_path(a: str, b: str) -> bool:
    """Case-insensitive comparison of two relative paths."""
    return normalize_rel_path(a).casefold() == normalize_rel_path(b).casefold()


class PathResolver:
    """
    Resolves node destinations against a game install root.
    """

    def __init__(self, ksp_root, recognized_dirs: Iterable[str] = DEFAULT_RECOGNIZED_DIRS):
        self.ksp_root = Path(ksp_root)
        self.recognized_dirs = [normalize_rel_path(d) for d in recognized_dirs if d]
        self._recognized = {d.casefold() for d in self.recognized_dirs}

    @staticmethod
    def resolve_destination(node: ModNode) -> str:
        """
        Install-root-relative destination of node.
        Uses the node's own destination, otherwise the destination of the
        nearest ancestor that has one plus the names on the way down.
        Returns "" if no ancestor is placed.
        """
        if node.has_destination:
            return normalize_rel_path(node.destination)
        for ancestor in node.ancestors():
            if ancestor.has_destination:
                return join_destination(ancestor.destination, *node.path_from(ancestor))
        return ""

    def get_absolute_path(self, node: ModNode) -> Optional[Path]:
        destination = self.resolve_destination(node)
        if not destination:
            return None
        return self.ksp_root.joinpath(*destination.split("/"))

    def get_relative_path(self, absolute_path) -> str:
        """Install-root-relative form of an absolute path.
        Raises ValueError if the path is outside the install root."""
        return Path(absolute_path).relative_to(self.ksp_root).as_posix()

    def classify_directory(self, absolute_path) -> DirectoryKind:
        try:
            relative = self.get_relative_path(absolute_path)
        except ValueError:
            return DirectoryKind.ARBITRARY_DIR
        if normalize_rel_path(relative).casefold() in self._recognized:
            return DirectoryKind.RECOGNIZED_GAME_DIR
        return DirectoryKind.ARBITRARY_DIR

    def is_recognized_dir(self, absolute_path) -> bool:
        return self.classify_directory(absolute_path) is DirectoryKind.RECOGNIZED_GAME_DIR

    def recognized_destination(self, folder_name: str) -> Optional[str]:
        """Recognised directory whose last segment matches folder_name."""
        wanted = folder_name.casefold()
        for directory in self.recognized_dirs:
            if directory.rsplit("/", 1)[-1].casefold() == wanted:
                return directory
        return None

    def default_destination_paths(self) -> list[Path]:
        """Absolute paths of all recognised game directories."""
        return [self.ksp_root.joinpath(*d.split("/")) for d in self.recognized_dirs]


def set_destination_recursive(node: ModNode, destination: str, copy_content_only: bool = False,
                              source: DestinationSource = DestinationSource.EXPLICIT) -> None:
    """
    Place node into the directory destination.
    With copy_content_only the node maps onto destination itself (its
    content merges into it), otherwise it becomes destination/<node name>.
    Descendants get <parent destination>/<name>, except subtrees whose
    destination was set explicitly on their own.
    """
    destination = normalize_rel_path(destination)
    if not destination and copy_content_only:
        reset_destination(node)
        return

    node.destination = destination if copy_content_only else join_destination(destination, node.name)
    node.destination_source = source
    _derive_child_destinations(node)
    log.debug(f"Destination of '{node}' set to {node.destination}")


def _derive_child_destinations(node: ModNode) -> None:
    for child in node.children:
        if child.destination_source is DestinationSource.EXPLICIT and child.has_destination:
            continue
        child.destination = join_destination(node.destination, child.name)
        child.destination_source = DestinationSource.DERIVED
        _derive_child_destinations(child)


def reset_destination(node: ModNode) -> None:
    """Clear the destination of node and its whole subtree."""
    for item in node.walk():
        item.destination = ""
        item.destination_source = DestinationSource.DERIVED
