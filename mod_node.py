"""
Mod tree model for KSPModManager.
A forest of ModNodes: one root node per mod archive and one node per
file or folder entry of that archive, held below a virtual forest root.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum, IntEnum
from typing import Iterable, Iterator, Optional

from errors import DuplicateKeyError

# Module logger
log = logging.getLogger("kspmodmanager.mod_node")

ROOT_KEY = "ROOT"


class NodeType(IntEnum):
    """Kind of a node. The integer values are persisted in the catalog."""
    FILE = 0
    FOLDER = 1
    KSP_FILE = 2
    KSP_FOLDER = 3
    UNKNOWN_FILE = 4
    UNKNOWN_FOLDER = 5
    UNKNOWN_FILE_INSTALLED = 6
    UNKNOWN_FOLDER_INSTALLED = 7
    KSP_FOLDER_INSTALLED = 8

    @property
    def is_file(self) -> bool:
        return self in FILE_TYPES

    @property
    def is_installed_variant(self) -> bool:
        return self in INSTALLED_TYPES


FILE_TYPES = frozenset({
    NodeType.FILE,
    NodeType.KSP_FILE,
    NodeType.UNKNOWN_FILE,
    NodeType.UNKNOWN_FILE_INSTALLED,
})

INSTALLED_TYPES = frozenset({
    NodeType.UNKNOWN_FILE_INSTALLED,
    NodeType.UNKNOWN_FOLDER_INSTALLED,
    NodeType.KSP_FOLDER_INSTALLED,
})


class DestinationSource(Enum):
    """Where a node's destination came from."""
    DERIVED = "Derived"
    EXPLICIT = "Explicit"


class CheckState(Enum):
    """Desired install state of a node including its subtree."""
    CHECKED = "Checked"
    UNCHECKED = "Unchecked"
    MIXED = "Mixed"


_DATE_FORMATS = (
    "%d.%m.%Y %H:%M:%S",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
)


def parse_date(value: str) -> Optional[datetime]:
    """Parse a stored date string, returns None if it can't be read."""
    if not value:
        return None
    value = value.strip()
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


@dataclass
class ModInfo:
    """Provenance information of a mod archive, used to add or update mods."""
    local_path: str = ""
    name: str = ""
    product_id: str = ""
    site_handler_name: str = ""
    version: str = ""
    game_version: str = ""
    author: str = ""
    creation_date: str = ""
    change_date: str = ""
    mod_url: str = ""
    additional_url: str = ""
    rating: str = ""
    downloads: str = ""
    note: str = ""

    @property
    def creation_datetime(self) -> Optional[datetime]:
        return parse_date(self.creation_date)


# Metadata fields shared by ModInfo and ModNode
META_FIELDS = (
    "version", "game_version", "author", "creation_date", "change_date",
    "note", "product_id", "mod_url", "additional_url", "site_handler_name",
    "rating", "downloads",
)


@dataclass(eq=False)
class ModNode:
    """
    A node of the mod tree.
    A root level node represents a mod archive (its key is the local
    archive path), every other node an entry of that archive.
    """
    key: str = ""
    name: str = ""
    node_type: NodeType = NodeType.FOLDER

    # Install state
    destination: str = ""
    destination_source: DestinationSource = DestinationSource.DERIVED
    checked: bool = False
    is_installed: bool = False
    is_outdated: bool = False

    # Metadata, opaque to the tree
    version: str = ""
    game_version: str = ""
    author: str = ""
    creation_date: str = ""
    change_date: str = ""
    add_date: str = ""
    note: str = ""
    product_id: str = ""
    mod_url: str = ""
    additional_url: str = ""
    site_handler_name: str = ""
    rating: str = ""
    downloads: str = ""

    children: list["ModNode"] = field(default_factory=list, repr=False)
    parent: Optional["ModNode"] = field(default=None, repr=False)

    is_forest_root = False

    def __post_init__(self):
        initial = self.children
        self.children = []
        for child in initial:
            self.add_child(child)

    def __str__(self) -> str:
        return self.name or self.key

    # ==================== STRUCTURE ====================

    def get_child(self, key: str) -> Optional["ModNode"]:
        """Get a direct child by key."""
        for child in self.children:
            if child.key == key:
                return child
        return None

    def add_child(self, child: "ModNode") -> "ModNode":
        """
        Append child to this node.
        A child that belongs to another parent is detached from it first.
        Raises DuplicateKeyError if a sibling already uses the child's key.
        """
        if not child.key:
            raise ValueError("Cannot add a node without key")
        if child.parent is self:
            return child
        if self.get_child(child.key) is not None:
            raise DuplicateKeyError(child.key, self.key)
        if child.parent is not None:
            child.parent.remove_child(child)
        self.children.append(child)
        child.parent = self
        return child

    def remove_child(self, child: "ModNode") -> bool:
        """Remove child from this node. Non members are ignored."""
        if child.parent is not self:
            return False
        self.children.remove(child)
        child.parent = None
        return True

    def walk(self) -> Iterator["ModNode"]:
        """Depth-first pre-order traversal including this node."""
        yield self
        for child in list(self.children):
            yield from child.walk()

    def descendants(self) -> Iterator["ModNode"]:
        """Depth-first traversal of the subtree without this node."""
        for child in list(self.children):
            yield from child.walk()

    def ancestors(self) -> Iterator["ModNode"]:
        """Parents up to (excluding) the forest root."""
        parent = self.parent
        while parent is not None and not parent.is_forest_root:
            yield parent
            parent = parent.parent

    def path_from(self, ancestor: "ModNode") -> list[str]:
        """Names from ancestor (exclusive) down to this node (inclusive)."""
        names = []
        node = self
        while node is not None and node is not ancestor:
            names.append(node.name)
            node = node.parent
        if node is None:
            raise ValueError(f"{ancestor.key!r} is not an ancestor of {self.key!r}")
        names.reverse()
        return names

    # ==================== DERIVED RELATIONS ====================

    @property
    def is_file(self) -> bool:
        return self.node_type.is_file

    @property
    def has_destination(self) -> bool:
        return bool(self.destination)

    @property
    def zip_root(self) -> "ModNode":
        """The topmost ancestor representing the mod archive."""
        node = self
        while node.parent is not None and not node.parent.is_forest_root:
            node = node.parent
        return node

    @property
    def has_installed_children(self) -> bool:
        return any(node.is_installed for node in self.descendants())

    @property
    def has_destination_for_children(self) -> bool:
        return any(node.has_destination for node in self.descendants())

    @property
    def has_children_without_destination(self) -> bool:
        return any(not node.has_destination for node in self.descendants())

    # ==================== CHECKED STATE ====================

    def can_check(self) -> bool:
        """A node may only be checked if it (or its content) can be placed."""
        if self.has_destination and not self.has_children_without_destination:
            return True
        if self.is_file:
            return False
        return self.has_destination_for_children

    def set_checked(self, value: bool) -> bool:
        """
        Set the desired install state.
        Unchecking cascades to all descendants. Checking does not cascade
        but marks the ancestors as checked so the folders get created.
        Returns False if checking was refused for lack of a destination.
        """
        if not value:
            for node in self.walk():
                node.checked = False
            return True

        if not self.can_check():
            log.info(f"'{self}' has no destination, not checked")
            return False

        self.checked = True
        for parent in self.ancestors():
            parent.checked = True
        return True

    def check_all_children(self, value: bool) -> int:
        """Apply set_checked to this node and every descendant.
        Returns the number of nodes that accepted the new state."""
        if not value:
            self.set_checked(False)
            return sum(1 for _ in self.walk())
        accepted = 0
        for node in self.walk():
            if node.set_checked(True):
                accepted += 1
        return accepted

    def uncheck_all(self) -> None:
        self.set_checked(False)

    # ==================== MOD INFO ====================

    @property
    def mod_info(self) -> ModInfo:
        """ModInfo of the mod this node belongs to."""
        root = self.zip_root
        info = ModInfo(local_path=root.key, name=root.name)
        for name in META_FIELDS:
            setattr(info, name, getattr(root, name))
        return info

    def apply_mod_info(self, info: ModInfo) -> None:
        """Copy the metadata of info onto this node."""
        for name in META_FIELDS:
            setattr(self, name, getattr(info, name))
        if info.name:
            self.name = info.name


def desired_state(node: ModNode) -> CheckState:
    """Tri-state of node computed from its subtree."""
    if not node.children:
        return CheckState.CHECKED if node.checked else CheckState.UNCHECKED

    states = {desired_state(child) for child in node.children}
    if states == {CheckState.CHECKED}:
        return CheckState.CHECKED
    if states == {CheckState.UNCHECKED}:
        return CheckState.UNCHECKED
    return CheckState.MIXED


class _ForestRoot(ModNode):
    """Virtual root that keeps the owning tree's index in sync."""

    is_forest_root = True

    def __init__(self, tree: "ModTree"):
        super().__init__(key=ROOT_KEY, name=ROOT_KEY)
        self._tree = tree

    def add_child(self, child: ModNode) -> ModNode:
        super().add_child(child)
        self._tree._index(child)
        return child

    def remove_child(self, child: ModNode) -> bool:
        removed = super().remove_child(child)
        if removed:
            self._tree._unindex(child)
        return removed


def _normalize_local_path(path: str) -> str:
    return os.path.normcase(os.path.abspath(path)) if path else ""


class ModTree:
    """
    The forest of known mods.
    Keeps a (product id, site handler) -> mod index for duplicate detection.
    """

    def __init__(self):
        self._product_index: dict[tuple[str, str], ModNode] = {}
        self.root = _ForestRoot(self)

    def __len__(self) -> int:
        return len(self.root.children)

    def __iter__(self) -> Iterator[ModNode]:
        return iter(list(self.root.children))

    def __contains__(self, node: ModNode) -> bool:
        return node.parent is self.root

    @property
    def mods(self) -> list[ModNode]:
        return list(self.root.children)

    # ==================== INDEX ====================

    @staticmethod
    def _identity(product_id: str, site_handler_name: str) -> tuple[str, str]:
        return product_id.strip(), site_handler_name.strip().lower()

    def _index(self, node: ModNode) -> None:
        if not node.product_id:
            return
        ident = self._identity(node.product_id, node.site_handler_name)
        self._product_index.setdefault(ident, node)

    def _unindex(self, node: ModNode) -> None:
        for ident, indexed in list(self._product_index.items()):
            if indexed is node:
                del self._product_index[ident]
                # Another mod may share the identity
                for mod in self.root.children:
                    if mod.product_id and self._identity(mod.product_id, mod.site_handler_name) == ident:
                        self._product_index[ident] = mod
                        break

    # ==================== MUTATION ====================

    def add_mod(self, node: ModNode) -> ModNode:
        """Add a mod at root level. Raises DuplicateKeyError on key clash."""
        self.root.add_child(node)
        log.debug(f"Mod added: {node.key}")
        return node

    def remove_mod(self, node: ModNode) -> bool:
        """Remove a root level mod, returns False if it is not a member."""
        removed = self.root.remove_child(node)
        if removed:
            log.debug(f"Mod removed: {node.key}")
        return removed

    def replace_mod(self, old: ModNode, new: ModNode) -> ModNode:
        """
        Detach old and attach new at the same forest position.
        Raises DuplicateKeyError, leaving the forest untouched, if new
        clashes with a mod other than old.
        """
        if old not in self:
            return self.add_mod(new)
        clash = self.get_mod(new.key)
        if clash is not None and clash is not old:
            raise DuplicateKeyError(new.key, self.root.key)
        position = self.root.children.index(old)
        self.remove_mod(old)
        self.add_mod(new)
        self.root.children.remove(new)
        self.root.children.insert(position, new)
        return new

    def set_mod_identity(self, node: ModNode, product_id: str, site_handler_name: str) -> None:
        """Change the secondary identity of a mod and re-index it."""
        member = node in self
        if member:
            self._unindex(node)
        node.product_id = product_id
        node.site_handler_name = site_handler_name
        if member:
            self._index(node)

    def clear(self) -> None:
        for mod in self.mods:
            self.remove_mod(mod)
        self._product_index.clear()

    # ==================== LOOKUP ====================

    def get_mod(self, key: str) -> Optional[ModNode]:
        return self.root.get_child(key)

    def get_by_product(self, product_id: str, site_handler_name: str = "") -> Optional[ModNode]:
        if not product_id:
            return None
        return self._product_index.get(self._identity(product_id, site_handler_name))

    def contains_local_path(self, path: str) -> bool:
        return self.get_by_local_path(path) is not None

    def get_by_local_path(self, path: str) -> Optional[ModNode]:
        wanted = _normalize_local_path(path)
        if not wanted:
            return None
        for mod in self.root.children:
            if _normalize_local_path(mod.key) == wanted:
                return mod
        return None

    def iter_nodes(self) -> Iterator[ModNode]:
        """Lazy depth-first traversal of all nodes of all mods.
        Every call returns a fresh iterator."""
        for mod in self.mods:
            yield from mod.walk()

    @staticmethod
    def full_node_count(nodes: Iterable[ModNode]) -> int:
        return sum(1 for node in nodes for _ in node.walk())

    @staticmethod
    def search_node(text: str, start: ModNode) -> Optional[ModNode]:
        """Find the first node below start whose key or name equals text."""
        lowered = text.lower()
        for node in start.walk():
            if node.key == text or node.name.lower() == lowered:
                return node
        return None


NODE_FIELD_NAMES = tuple(f.name for f in fields(ModNode) if f.name not in ("children", "parent"))
