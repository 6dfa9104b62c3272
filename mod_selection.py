"""
Mod selection for KSPModManager.
ModSelection owns the mod forest of one game install root and runs all
mod operations on it: adding, updating and removing mods, installing the
checked nodes, refreshing the checked state and scanning GameData.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional

from archive_reader import ArchiveReader
from catalog_store import CatalogLoadResult, CatalogStore
from checked_state import CheckedStateReconciler, ReconcileResult
from collision_detector import CollisionDetector, CollisionWarning
from config_handler import AppConfig, UPDATE_MANUAL, UPDATE_REMOVE_AND_ADD
from errors import FilesystemError, ModAdminError
from file_system import LocalFileSystem, normalize_rel_path
from install_executor import InstallExecutor, ProcessResult
from logger import OperationLog
from mod_node import META_FIELDS, ModInfo, ModNode, ModTree, NodeType
from path_resolver import PathResolver, reset_destination, set_destination_recursive
from site_handler import get_site_handler

log = logging.getLogger("kspmodmanager.mod_selection")

GAME_DATA = "GameData"


def _now() -> str:
    return datetime.now().isoformat(sep=" ", timespec="seconds")


def create_mod_node(mod_info: ModInfo, reader: ArchiveReader, resolver: PathResolver) -> ModNode:
    """
    Build the tree of a mod archive.
    Folders named like a game directory (GameData, Ships, VAB, ...) get that
    directory as destination, so their content is merged into it. Anything
    else is left for the user to place.
    Raises FilesystemError if the archive can't be read.
    """
    local_path = str(mod_info.local_path)
    root = ModNode(key=local_path, name=mod_info.name or Path(local_path).stem,
                   node_type=NodeType.FOLDER, add_date=_now())
    root.apply_mod_info(mod_info)
    if not root.name:
        root.name = Path(local_path).stem

    nodes: dict[str, ModNode] = {"": root}
    for entry in reader.list_entries(local_path):
        node = ModNode(key=entry.path, name=entry.name,
                       node_type=NodeType.FOLDER if entry.is_dir else NodeType.FILE)
        nodes[entry.parent_path].add_child(node)
        nodes[entry.path] = node

    _assign_default_destinations(root, resolver)
    log.debug(f"Mod node created: {root.key} ({ModTree.full_node_count([root])} nodes)")
    return root


def _assign_default_destinations(node: ModNode, resolver: PathResolver) -> None:
    for child in node.children:
        if child.is_file:
            continue
        destination = resolver.recognized_destination(child.name)
        if destination is not None:
            child.node_type = NodeType.KSP_FOLDER
            set_destination_recursive(child, destination, copy_content_only=True)
        else:
            _assign_default_destinations(child, resolver)


def _relative_key(node: ModNode) -> str:
    """Archive path of node without its top level folder."""
    parts = normalize_rel_path(node.key).split("/", 1)
    return parts[1] if len(parts) > 1 else parts[0]


def try_copy_destinations(source: ModNode, target: ModNode) -> bool:
    """
    Copy destination and checked state from the nodes of source onto the
    nodes of target with the same archive path. A renamed top level folder
    (e.g. a version number in it) still matches.
    Returns True if at least one placed node was matched.
    """
    by_key = {}
    by_relative_key = {}
    for node in target.descendants():
        by_key[node.key] = node
        by_relative_key.setdefault(_relative_key(node), node)

    matched = False
    for old in source.descendants():
        if not old.has_destination:
            continue
        new = by_key.get(old.key) or by_relative_key.get(_relative_key(old))
        if new is None or new.node_type.is_file != old.node_type.is_file:
            continue
        new.destination = old.destination
        new.destination_source = old.destination_source
        new.checked = old.checked
        matched = True
    return matched


class ModSelection:
    """
    The mod forest of one game install root plus all operations on it.
    Not thread safe: background workers only compute, results are applied
    on the thread that owns the selection.
    """

    def __init__(self, ksp_root, config: Optional[AppConfig] = None,
                 archive_reader: Optional[ArchiveReader] = None,
                 catalog_store: Optional[CatalogStore] = None):
        self.config = config or AppConfig()
        self.tree = ModTree()
        self.archive_reader = archive_reader or ArchiveReader()
        self.catalog_store = catalog_store or CatalogStore()
        self.download_path = self.config.download_path
        self.operation_log = OperationLog().attach()
        self.set_ksp_root(ksp_root)

    def set_ksp_root(self, ksp_root) -> None:
        self.ksp_root = Path(ksp_root)
        self.file_system = LocalFileSystem(self.ksp_root)
        self.resolver = PathResolver(self.ksp_root, self.config.recognized_dirs)
        self.reconciler = CheckedStateReconciler(self.file_system, self.resolver)
        self.executor = InstallExecutor(self.file_system, self.resolver, self.archive_reader)

    def close(self) -> None:
        self.operation_log.detach()

    @property
    def mods(self) -> list[ModNode]:
        return self.tree.mods

    @property
    def catalog_path(self) -> Path:
        return self.ksp_root / self.config.catalog_file_name

    @property
    def download_dir(self) -> Path:
        if self.download_path:
            return Path(self.download_path)
        return self.ksp_root / "Downloads"

    # ==================== CATALOG ====================

    def load_catalog(self, path: Optional[Path] = None) -> CatalogLoadResult:
        """Replace the forest with the content of the catalog."""
        result = self.catalog_store.load(path or self.catalog_path)
        self.tree.clear()
        for mod in result.mods:
            self.tree.add_mod(mod)
        if result.download_path:
            self.download_path = result.download_path
        return result

    def save_catalog(self, path: Optional[Path] = None) -> bool:
        return self.catalog_store.save(self.mods, path or self.catalog_path, self.download_path)

    # ==================== ADD / UPDATE / REMOVE ====================

    def add_mods(self, mod_infos: Iterable[ModInfo], install_after_add: bool = False,
                 confirm_replace: Optional[Callable[[ModInfo], bool]] = None) -> list[ModNode]:
        """
        Add mod archives to the selection.
        Known mods (same product id and site, or same local path) get updated
        if they are outdated, otherwise confirm_replace decides whether the
        known mod is replaced.
        Returns the added or updated mods.
        """
        added = []
        for mod_info in mod_infos:
            log.info(f"Adding mod '{mod_info.name or mod_info.local_path}'")
            try:
                mod = self._add_mod(mod_info, confirm_replace)
            except FilesystemError as e:
                log.error(f"Error while reading archive {mod_info.local_path}: {e}")
                continue
            if mod is None:
                continue
            added.append(mod)

        if install_after_add and added:
            for mod in added:
                mod.check_all_children(True)
            self.process_mods(added)
        return added

    def _add_mod(self, mod_info: ModInfo,
                 confirm_replace: Optional[Callable[[ModInfo], bool]]) -> Optional[ModNode]:
        if not self.archive_reader.is_supported(mod_info.local_path):
            log.warning(f"Unsupported archive: {mod_info.local_path}")
            return None

        existing = (self.tree.get_by_product(mod_info.product_id, mod_info.site_handler_name)
                    or self.tree.get_by_local_path(mod_info.local_path))
        if existing is None:
            mod = self.tree.add_mod(create_mod_node(mod_info, self.archive_reader, self.resolver))
            log.info(f"Mod added: {mod}")
            self._report_collisions(mod)
            return mod

        if self._is_newer(mod_info, existing) and self.config.mod_update_behavior != UPDATE_MANUAL:
            return self.update_mod(mod_info, existing)

        if confirm_replace is None or not confirm_replace(mod_info):
            log.info(f"Mod '{existing}' already added, skipped")
            return None

        log.info(f"Replacing mod '{existing}'")
        mod = create_mod_node(mod_info, self.archive_reader, self.resolver)
        if not self._can_replace(existing, mod):
            return None
        self._remove_outdated_and_add(existing, mod)
        mod.uncheck_all()
        self._report_collisions(mod)
        return mod

    @staticmethod
    def _is_newer(mod_info: ModInfo, existing: ModNode) -> bool:
        if existing.is_outdated:
            return True
        new_date = mod_info.creation_datetime
        old_date = existing.mod_info.creation_datetime
        return new_date is not None and old_date is not None and new_date > old_date

    def update_mod(self, new_info: ModInfo, outdated: ModNode) -> Optional[ModNode]:
        """
        Replace outdated with the archive of new_info.
        Depending on the update behavior the new mod is added unchecked, or
        takes over destinations and checked state of the outdated one and is
        installed right away.
        Returns the new mod, None if it could not take the outdated one's place.
        """
        log.info(f"Updating mod '{outdated}'")
        try:
            new_mod = create_mod_node(new_info, self.archive_reader, self.resolver)
        except FilesystemError as e:
            log.error(f"Error while updating mod '{outdated}': {e}")
            return None
        if not self._can_replace(outdated, new_mod):
            return None

        installed = outdated.is_installed or outdated.has_installed_children
        if self.config.mod_update_behavior == UPDATE_REMOVE_AND_ADD or not installed:
            self._remove_outdated_and_add(outdated, new_mod)
            new_mod.uncheck_all()
        elif try_copy_destinations(outdated, new_mod):
            new_mod.mod_url = outdated.mod_url
            new_mod.additional_url = outdated.additional_url
            new_mod.note = outdated.note
            self._remove_outdated_and_add(outdated, new_mod)
            self.process_mods([new_mod])
        else:
            log.warning(f"Update of mod '{outdated}' failed: no matching files, update it manually")
            return None

        self._report_collisions(new_mod)
        log.info(f"Mod '{new_mod}' updated")
        return new_mod

    def _can_replace(self, outdated: ModNode, new_mod: ModNode) -> bool:
        """False if new_mod's key belongs to another mod of the forest."""
        other = self.tree.get_mod(new_mod.key)
        if other is not None and other is not outdated:
            log.warning(f"Can't replace mod '{outdated}': {new_mod.key} is already used by mod '{other}'")
            return False
        return True

    def _remove_outdated_and_add(self, outdated: ModNode, new_mod: ModNode) -> None:
        log.info(f"Removing outdated mod '{outdated}'")
        outdated.uncheck_all()
        self.process_mods([outdated])
        self.tree.replace_mod(outdated, new_mod)
        log.info(f"Adding updated mod '{new_mod}'")

    def remove_mods(self, mods: Iterable[ModNode]) -> list[ModNode]:
        """Uninstall the mods and remove them from the selection."""
        removed = []
        for mod in mods:
            mod = mod.zip_root
            if mod not in self.tree:
                continue
            log.info(f"Removing mod '{mod}'")
            mod.uncheck_all()
            result = self.process_mods([mod])
            if result.failed:
                log.warning(f"Mod '{mod}' removed, {result.failed} files could not be uninstalled")
            self.tree.remove_mod(mod)
            removed.append(mod)
        return removed

    def check_for_updates(self, mods: Optional[Iterable[ModNode]] = None) -> list[ModNode]:
        """Ask the site handler of each mod for updates, returns the outdated mods."""
        outdated = []
        for mod in (self.mods if mods is None else mods):
            handler = get_site_handler(mod.site_handler_name)
            if handler is None:
                log.info(f"No site handler for mod '{mod}'")
                continue
            log.info(f"Update check for mod '{mod}' via {handler.name}")
            try:
                is_outdated, _ = handler.check_for_updates(mod.mod_info)
            except (ModAdminError, OSError, ValueError) as e:
                log.error(f"Error during update check of '{mod}': {e}")
                continue
            mod.is_outdated = is_outdated
            if is_outdated:
                log.info(f"Mod '{mod}' is outdated")
                outdated.append(mod)
            else:
                log.info(f"Mod '{mod}' is up to date")
        return outdated

    def update_outdated_mods(self, mods: Optional[Iterable[ModNode]] = None) -> list[ModNode]:
        """Check for updates, then download and update every outdated mod."""
        updated = []
        for mod in self.check_for_updates(mods):
            handler = get_site_handler(mod.site_handler_name)
            try:
                new_info = handler.get_mod_info(mod.mod_url) or handler.check_for_updates(mod.mod_info)[1]
                log.info(f"Downloading mod '{mod}'")
                new_info.local_path = str(handler.download_mod(new_info, self.download_dir))
            except (ModAdminError, OSError, ValueError) as e:
                log.error(f"Error during update of '{mod}': {e}")
                continue
            new_mod = self.update_mod(new_info, mod)
            if new_mod is not None:
                updated.append(new_mod)
        return updated

    def _report_collisions(self, mod: ModNode) -> None:
        if not self.config.show_conflict_solver:
            return
        others = [m for m in self.mods if m is not mod]
        for warning in CollisionDetector.find_collisions(mod, others, require_checked=False):
            log.warning(f"Collision: {warning}")

    # ==================== INSTALL STATE ====================

    def refresh_checked_state(self, mods: Optional[Iterable[ModNode]] = None,
                              progress: Optional[Callable[[int], None]] = None,
                              is_cancelled: Optional[Callable[[], bool]] = None) -> ReconcileResult:
        """Derive installed and checked state of the mods from the filesystem."""
        mods = self.mods if mods is None else list(mods)
        result = self.reconciler.refresh(mods, progress, is_cancelled)
        for error in result.errors:
            log.warning(error)
        return result

    def process_mods(self, mods: Optional[Iterable[ModNode]] = None,
                     override_existing: Optional[bool] = None,
                     progress: Optional[Callable[[int], None]] = None,
                     is_cancelled: Optional[Callable[[], bool]] = None,
                     start_count: int = 0) -> ProcessResult:
        """Install checked and uninstall unchecked nodes, then refresh their state."""
        mods = self.mods if mods is None else list(mods)
        if override_existing is None:
            override_existing = self.config.override_mod_files
        result = self.executor.process_mods(mods, override_existing, progress, is_cancelled, start_count)
        self.executor.apply(result)
        self.reconciler.refresh(mods)
        return result

    def check_all_mods(self) -> int:
        log.debug("Checking all mods")
        return sum(mod.check_all_children(True) for mod in self.mods)

    def uncheck_all_mods(self) -> None:
        log.debug("Unchecking all mods")
        for mod in self.mods:
            mod.uncheck_all()

    # ==================== DESTINATIONS ====================

    def change_destination(self, node: ModNode, destination: str, copy_content_only: bool = False) -> bool:
        """Place node into destination. Refused while node or its content is installed."""
        if node.is_installed or node.has_installed_children:
            log.warning(f"'{node}' is installed, uninstall it to change the destination")
            return False
        set_destination_recursive(node, destination, copy_content_only)
        self._report_collisions(node.zip_root)
        return True

    def reset_destination(self, node: ModNode) -> bool:
        """Clear the destinations of node's subtree and uncheck it."""
        if node.is_installed or node.has_installed_children:
            log.warning(f"'{node}' is installed, uninstall it to change the destination")
            return False
        reset_destination(node)
        node.uncheck_all()
        return True

    def default_destinations(self) -> list[str]:
        return list(self.resolver.recognized_dirs)

    # ==================== GAMEDATA SCAN ====================

    def scan_game_data(self) -> list[ModNode]:
        """
        Add GameData folders that no known mod accounts for as installed
        mods of their own. Returns the added mods.
        """
        log.debug("Scanning GameData")
        found = self.find_unknown_game_data()
        self.reconciler.refresh(found)
        return self.add_scanned_mods(found)

    def add_scanned_mods(self, nodes: list[ModNode]) -> list[ModNode]:
        """Add refreshed scan results to the forest."""
        for node in nodes:
            self.tree.add_mod(node)
            log.info(f"Mod added: {node}")
        if not nodes:
            log.info("Scan found no new mods")
        return nodes

    def find_unknown_game_data(self) -> list[ModNode]:
        """Build nodes for unknown GameData folders without touching the forest."""
        if not self.file_system.is_dir(GAME_DATA):
            log.warning(f"No {GAME_DATA} folder in {self.ksp_root}")
            return []

        ignore = {name.lower() for name in self.config.scan_ignore_dirs}
        known = {node.name for node in self.tree.iter_nodes()}
        found = []
        for name, is_dir in self.file_system.list_entries(GAME_DATA):
            if not is_dir or name.lower() in ignore:
                continue
            if name in known:
                log.debug(f"Skipping known folder {name}")
                continue
            log.debug(f"Directory found: {name}")
            destination = f"{GAME_DATA}/{name}"
            node = self._scan_node(destination, name, True)
            set_destination_recursive(node, destination, copy_content_only=True)
            found.append(node)
        return found

    def _scan_node(self, rel_path: str, name: str, is_dir: bool) -> ModNode:
        node = ModNode(key=str(self.file_system.absolute(rel_path)), name=name, add_date=_now(),
                       node_type=NodeType.UNKNOWN_FOLDER_INSTALLED if is_dir else NodeType.UNKNOWN_FILE_INSTALLED)
        if is_dir:
            for child_name, child_is_dir in self.file_system.list_entries(rel_path):
                node.add_child(self._scan_node(f"{rel_path}/{child_name}", child_name, child_is_dir))
        return node

    # ==================== COLLISIONS / INFO ====================

    def get_collisions(self, node: Optional[ModNode] = None) -> list[CollisionWarning]:
        """Collisions of node (default: every mod) with the other mods."""
        if node is not None:
            return CollisionDetector.find_collisions(node, self.mods)
        warnings = []
        for mod in self.mods:
            warnings.extend(CollisionDetector.find_collisions(mod, self.mods))
        return warnings

    def edit_mod_info(self, node: ModNode, **values) -> ModNode:
        """Update metadata of the mod node belongs to."""
        mod = node.zip_root
        unknown = set(values) - set(META_FIELDS) - {"name"}
        if unknown:
            raise ValueError(f"Unknown mod info fields: {', '.join(sorted(unknown))}")

        product_id = values.pop("product_id", mod.product_id)
        site_handler_name = values.pop("site_handler_name", mod.site_handler_name)
        if (product_id, site_handler_name) != (mod.product_id, mod.site_handler_name):
            self.tree.set_mod_identity(mod, product_id, site_handler_name)
        for name, value in values.items():
            setattr(mod, name, value)
        return mod
