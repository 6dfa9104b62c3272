"""
Install/uninstall execution for KSPModManager.
Brings the game install root in line with the checked state of the mod
trees: checked nodes get extracted from their archive, unchecked installed
nodes get removed.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional

from archive_reader import ArchiveReader
from errors import FilesystemError
from file_system import LocalFileSystem
from mod_node import ModNode
from path_resolver import PathResolver

log = logging.getLogger("kspmodmanager.install_executor")


class Outcome(Enum):
    """What happened to a node during processing."""
    INSTALLED = "Installed"
    REMOVED = "Removed"
    SKIPPED_EXISTING = "Skipped (exists)"
    SKIPPED = "Skipped"
    UNCHANGED = "Unchanged"
    FAILED = "Failed"


@dataclass
class NodeOutcome:
    node: ModNode
    outcome: Outcome
    reason: str = ""


@dataclass
class ProcessResult:
    """Per-node outcomes of a processing run."""
    outcomes: list[NodeOutcome] = field(default_factory=list)
    processed: int = 0  # running total, includes the start count
    cancelled: bool = False

    @property
    def attempted(self) -> int:
        return sum(1 for o in self.outcomes if o.outcome is not Outcome.UNCHANGED)

    @property
    def failures(self) -> list[NodeOutcome]:
        return [o for o in self.outcomes if o.outcome is Outcome.FAILED]

    @property
    def failed(self) -> int:
        return len(self.failures)

    def count(self, outcome: Outcome) -> int:
        return sum(1 for o in self.outcomes if o.outcome is outcome)

    def summary(self) -> str:
        return (f"{self.count(Outcome.INSTALLED)} installed, {self.count(Outcome.REMOVED)} removed, "
                f"{self.count(Outcome.SKIPPED_EXISTING) + self.count(Outcome.SKIPPED)} skipped, "
                f"{self.failed} of {self.attempted} failed")


class InstallExecutor:
    """
    Processes mod trees depth-first.
    Installs happen before a node's children are visited, removals after,
    so folders exist before files are copied into them and are emptied
    before their own removal is attempted.
    """

    def __init__(self, file_system: LocalFileSystem, resolver: PathResolver,
                 archive_reader: Optional[ArchiveReader] = None):
        self.fs = file_system
        self.resolver = resolver
        self.archive_reader = archive_reader or ArchiveReader()

    def process_mods(self, nodes: Iterable[ModNode], override_existing: bool = False,
                     progress: Optional[Callable[[int], None]] = None,
                     is_cancelled: Optional[Callable[[], bool]] = None,
                     start_count: int = 0) -> ProcessResult:
        """
        Install/remove all nodes of the passed trees.
        start_count lets several batches share one running progress counter.
        """
        result = ProcessResult(processed=start_count)
        for mod in nodes:
            if is_cancelled is not None and is_cancelled():
                log.info("Processing cancelled")
                result.cancelled = True
                break
            log.info(f"Processing mod '{mod}'")
            self._process_node(mod, override_existing, result, progress)

        if result.failed:
            log.warning(f"Processing finished: {result.summary()}")
        else:
            log.info(f"Processing finished: {result.summary()}")
        return result

    @staticmethod
    def apply(result: ProcessResult) -> None:
        """Write the installed state of processed nodes back to the tree."""
        for item in result.outcomes:
            if item.outcome is Outcome.INSTALLED:
                item.node.is_installed = True
            elif item.outcome is Outcome.REMOVED:
                item.node.is_installed = False

    def _process_node(self, node: ModNode, override_existing: bool, result: ProcessResult,
                      progress: Optional[Callable[[int], None]]) -> None:
        install = node.checked and not node.is_installed and node.has_destination
        remove = not node.checked and node.is_installed

        if install:
            result.outcomes.append(self._install(node, override_existing))

        for child in list(node.children):
            self._process_node(child, override_existing, result, progress)

        if remove:
            result.outcomes.append(self._remove(node))
        elif not install:
            result.outcomes.append(NodeOutcome(node, Outcome.UNCHANGED))

        result.processed += 1
        if progress is not None:
            progress(result.processed)

    def _install(self, node: ModNode, override_existing: bool) -> NodeOutcome:
        destination = self.resolver.resolve_destination(node)
        try:
            if not node.is_file:
                self.fs.create_directory(destination)
                log.debug(f"Directory created: {destination}")
                return NodeOutcome(node, Outcome.INSTALLED)

            if self.fs.exists(destination) and not override_existing:
                log.info(f"File exists, skipped: {destination}")
                return NodeOutcome(node, Outcome.SKIPPED_EXISTING, "destination exists")

            source = Path(node.zip_root.key)
            if source.is_dir():
                # Unpacked mod folder
                entry = Path(node.key)
                self.fs.copy_file(entry if entry.is_absolute() else source / node.key, destination)
            elif source.is_file():
                self.archive_reader.extract(source, node.key, self.fs.absolute(destination))
            else:
                raise FilesystemError(f"Mod source not found: {source}", str(source))
            log.debug(f"File installed: {destination}")
            return NodeOutcome(node, Outcome.INSTALLED)
        except FilesystemError as e:
            log.error(f"Install of '{node}' failed: {e}")
            return NodeOutcome(node, Outcome.FAILED, str(e))

    def _remove(self, node: ModNode) -> NodeOutcome:
        destination = self.resolver.resolve_destination(node)
        if not destination:
            log.error(f"Can't uninstall '{node}': no destination")
            return NodeOutcome(node, Outcome.FAILED, "no destination")
        try:
            if node.is_file:
                self.fs.delete_file(destination)
                log.debug(f"File removed: {destination}")
                return NodeOutcome(node, Outcome.REMOVED)

            if self.resolver.is_recognized_dir(self.fs.absolute(destination)):
                return NodeOutcome(node, Outcome.SKIPPED, "game directory is kept")
            if not self.fs.exists(destination):
                return NodeOutcome(node, Outcome.REMOVED)
            if not self.fs.is_tree_empty(destination):
                log.info(f"Directory not empty, kept: {destination}")
                return NodeOutcome(node, Outcome.SKIPPED, "directory not empty")

            self.fs.delete_empty_tree(destination)
            log.debug(f"Directory removed: {destination}")
            return NodeOutcome(node, Outcome.REMOVED)
        except FilesystemError as e:
            log.error(f"Uninstall of '{node}' failed: {e}")
            return NodeOutcome(node, Outcome.FAILED, str(e))
