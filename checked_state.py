"""
Checked state reconciliation for KSPModManager.
Derives the installed state, checked state and node type of every node
from what is actually present below the game install root.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from errors import FilesystemError
from file_system import LocalFileSystem
from mod_node import ModNode, NodeType
from path_resolver import PathResolver

log = logging.getLogger("kspmodmanager.checked_state")

ProgressCallback = Callable[[int], None]
CancelCheck = Callable[[], bool]


@dataclass
class NodeState:
    """Computed state of a single node."""
    node: ModNode
    is_installed: bool
    node_type: NodeType


@dataclass
class ReconcileResult:
    """Outcome of a reconciliation walk."""
    states: list[NodeState] = field(default_factory=list)
    processed: int = 0
    errors: list[str] = field(default_factory=list)
    cancelled: bool = False


class CheckedStateReconciler:
    """
    Walks mod trees children-first and computes each node's state from
    the filesystem. compute() only reads; apply() writes the results to
    the nodes and must run on the thread that owns the tree.
    """

    def __init__(self, file_system: LocalFileSystem, resolver: PathResolver):
        self.fs = file_system
        self.resolver = resolver

    def compute(self, mods: Iterable[ModNode], progress: Optional[ProgressCallback] = None,
                is_cancelled: Optional[CancelCheck] = None, start_count: int = 0) -> ReconcileResult:
        result = ReconcileResult(processed=start_count)
        for mod in mods:
            log.debug(f"Refreshing checked state of '{mod}'")
            if self._compute_node(mod, result, progress, is_cancelled) is None:
                log.info("Checked state refresh cancelled")
                break
        return result

    @staticmethod
    def apply(result: ReconcileResult) -> None:
        for state in result.states:
            state.node.is_installed = state.is_installed
            state.node.node_type = state.node_type
            state.node.checked = state.is_installed

    def refresh(self, mods: Iterable[ModNode], progress: Optional[ProgressCallback] = None,
                is_cancelled: Optional[CancelCheck] = None) -> ReconcileResult:
        """compute() and apply() in one go, for callers owning the tree."""
        result = self.compute(mods, progress, is_cancelled)
        self.apply(result)
        return result

    def _compute_node(self, node: ModNode, result: ReconcileResult,
                      progress: Optional[ProgressCallback],
                      is_cancelled: Optional[CancelCheck]) -> Optional[bool]:
        """Returns the installed state of node, None if cancelled."""
        has_installed_children = False
        for child in node.children:
            child_installed = self._compute_node(child, result, progress, is_cancelled)
            if child_installed is None:
                return None
            has_installed_children = has_installed_children or child_installed

        if is_cancelled is not None and is_cancelled():
            result.cancelled = True
            return None

        try:
            is_installed, node_type = self._evaluate(node, has_installed_children)
        except (FilesystemError, OSError) as e:
            msg = f"Error during checked state refresh of '{node}': {e}"
            log.error(msg)
            result.errors.append(msg)
            is_installed = False
            node_type = NodeType.UNKNOWN_FILE if node.is_file else NodeType.UNKNOWN_FOLDER

        result.states.append(NodeState(node, is_installed, node_type))
        result.processed += 1
        if progress is not None:
            progress(result.processed)
        return is_installed

    def _evaluate(self, node: ModNode, has_installed_children: bool) -> tuple[bool, NodeType]:
        if not node.has_destination:
            return False, NodeType.UNKNOWN_FILE if node.is_file else NodeType.UNKNOWN_FOLDER

        exists = self.fs.exists(self.resolver.resolve_destination(node))

        if node.is_file:
            return exists, NodeType.UNKNOWN_FILE_INSTALLED if exists else NodeType.UNKNOWN_FILE

        if self.resolver.is_recognized_dir(self.resolver.get_absolute_path(node)):
            # A game folder always exists, it only counts with content of ours
            installed = exists and has_installed_children
            return installed, NodeType.KSP_FOLDER_INSTALLED if installed else NodeType.KSP_FOLDER

        installed = exists or has_installed_children
        return installed, NodeType.UNKNOWN_FOLDER_INSTALLED if installed else NodeType.UNKNOWN_FOLDER
