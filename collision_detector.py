"""
Collision detection for KSPModManager.
A collision is a file of one mod that would overwrite a file of another
mod because both resolve to the same destination.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Optional

from file_system import normalize_rel_path
from mod_node import ModNode
from path_resolver import PathResolver

log = logging.getLogger("kspmodmanager.collision_detector")


@dataclass
class CollisionWarning:
    """Advisory: node and other would be installed to the same destination."""
    destination: str
    node: ModNode
    other: ModNode

    @property
    def mod(self) -> ModNode:
        return self.node.zip_root

    @property
    def other_mod(self) -> ModNode:
        return self.other.zip_root

    def __str__(self) -> str:
        return (f"'{self.node}' of mod '{self.mod}' collides with "
                f"'{self.other}' of mod '{self.other_mod}' at {self.destination}")


def collision_key(node: ModNode, require_checked: bool = True) -> Optional[str]:
    """Normalised destination used to compare nodes, None if node can't collide."""
    if not node.is_file:
        return None
    if require_checked and not node.checked:
        return None
    destination = normalize_rel_path(PathResolver.resolve_destination(node))
    return destination.casefold() or None


def collides_with(a: ModNode, b: ModNode, require_checked: bool = True) -> bool:
    """Symmetric collision test of two nodes."""
    if a is b or a.zip_root is b.zip_root:
        return False
    key = collision_key(a, require_checked)
    return key is not None and key == collision_key(b, require_checked)


class CollisionDetector:
    """Finds nodes of different mods sharing a destination."""

    @staticmethod
    def _group(nodes: Iterable[ModNode], require_checked: bool) -> dict[str, list[ModNode]]:
        groups: dict[str, list[ModNode]] = defaultdict(list)
        for node in nodes:
            key = collision_key(node, require_checked)
            if key is not None:
                groups[key].append(node)
        return groups

    @classmethod
    def has_child_collision(cls, node: ModNode, require_checked: bool = True) -> bool:
        """True if two checked nodes of different mods below node share a destination."""
        for members in cls._group(node.descendants(), require_checked).values():
            if len({id(member.zip_root) for member in members}) > 1:
                return True
        return False

    @classmethod
    def find_collisions(cls, node: ModNode, scope: Iterable[ModNode],
                        require_checked: bool = True) -> list[CollisionWarning]:
        """
        Collisions of node's subtree against every mod in scope.
        The other side of a collision always has to be checked.
        """
        others = cls._group((n for mod in scope for n in mod.walk()), True)
        warnings = []
        for item in node.walk():
            key = collision_key(item, require_checked)
            if key is None:
                continue
            for other in others.get(key, ()):
                if other.zip_root is not item.zip_root:
                    warnings.append(CollisionWarning(PathResolver.resolve_destination(other), item, other))
        return warnings

    @classmethod
    def get_colliding_nodes(cls, node: ModNode, scope: Iterable[ModNode]) -> list[ModNode]:
        return [warning.other for warning in cls.find_collisions(node, scope)]
