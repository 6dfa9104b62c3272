"""
Background workers for KSPModManager.
Workers only compute: they read the mod trees and the filesystem and hand
their result to the owning thread via the finished signal. The slot
connected to finished applies the result to the trees.
"""

import logging
from typing import Callable, Optional

from PyQt6.QtCore import QObject, QThread, pyqtSignal

from checked_state import CheckedStateReconciler
from errors import ModAdminError
from install_executor import InstallExecutor
from mod_node import ModNode, ModTree

log = logging.getLogger("kspmodmanager.workers")


class RefreshCheckedStateWorker(QThread):
    """Computes installed/checked state of mods from the filesystem."""
    progress = pyqtSignal(int, int)  # processed nodes, total nodes
    finished = pyqtSignal(object)  # ReconcileResult
    error = pyqtSignal(str)

    def __init__(self, reconciler: CheckedStateReconciler, mods: list[ModNode]):
        super().__init__()
        self.reconciler = reconciler
        self.mods = list(mods)
        self._cancelled = False

    def cancel(self):
        """Stop after the current node."""
        self._cancelled = True

    def is_cancelled(self) -> bool:
        return self._cancelled

    def run(self):
        total = ModTree.full_node_count(self.mods)
        try:
            result = self.reconciler.compute(
                self.mods,
                progress=lambda count: self.progress.emit(count, total),
                is_cancelled=self.is_cancelled,
            )
            self.finished.emit(result)
        except (ModAdminError, OSError, ValueError) as e:
            log.error(f"Checked state refresh failed: {e}")
            self.error.emit(str(e))


class ProcessModsWorker(QThread):
    """Installs checked and uninstalls unchecked nodes of mods."""
    progress = pyqtSignal(int, int)
    finished = pyqtSignal(object)  # ProcessResult
    error = pyqtSignal(str)

    def __init__(self, executor: InstallExecutor, mods: list[ModNode],
                 override_existing: bool = False, start_count: int = 0):
        super().__init__()
        self.executor = executor
        self.mods = list(mods)
        self.override_existing = override_existing
        self.start_count = start_count
        self._cancelled = False

    def cancel(self):
        """Stop before the next mod. Files already copied stay in place."""
        self._cancelled = True

    def is_cancelled(self) -> bool:
        return self._cancelled

    def run(self):
        total = self.start_count + ModTree.full_node_count(self.mods)
        try:
            result = self.executor.process_mods(
                self.mods,
                self.override_existing,
                progress=lambda count: self.progress.emit(count, total),
                is_cancelled=self.is_cancelled,
                start_count=self.start_count,
            )
            self.finished.emit(result)
        except (ModAdminError, OSError, ValueError) as e:
            log.error(f"Processing mods failed: {e}")
            self.error.emit(str(e))


class ScanGameDataWorker(QThread):
    """
    Builds mods for unknown GameData folders.
    The new nodes are not part of the forest yet, so their state is
    refreshed here; the owner adds them with ModSelection.add_scanned_mods().
    """
    progress = pyqtSignal(int, int)
    finished = pyqtSignal(object)  # list of ModNode
    error = pyqtSignal(str)

    def __init__(self, selection):
        super().__init__()
        self.selection = selection
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    def is_cancelled(self) -> bool:
        return self._cancelled

    def run(self):
        try:
            nodes = self.selection.find_unknown_game_data()
            total = ModTree.full_node_count(nodes)
            self.selection.reconciler.refresh(
                nodes,
                progress=lambda count: self.progress.emit(count, total),
                is_cancelled=self.is_cancelled,
            )
            self.finished.emit([] if self._cancelled else nodes)
        except (ModAdminError, OSError, ValueError) as e:
            log.error(f"GameData scan failed: {e}")
            self.error.emit(str(e))


class OperationRunner(QObject):
    """
    Runs one worker at a time.
    While a worker runs every further start() is refused.
    """
    busy_changed = pyqtSignal(bool)

    def __init__(self, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._worker: Optional[QThread] = None

    @property
    def is_busy(self) -> bool:
        return self._worker is not None

    @property
    def current_worker(self) -> Optional[QThread]:
        return self._worker

    def start(self, worker: QThread, on_finished: Optional[Callable] = None,
              on_error: Optional[Callable[[str], None]] = None) -> bool:
        """Start worker. Returns False if another operation is running."""
        if self._worker is not None:
            log.warning("An operation is already running")
            return False

        self._worker = worker
        if on_finished is not None:
            worker.finished.connect(on_finished)
        if on_error is not None:
            worker.error.connect(on_error)
        worker.finished.connect(self._on_done)
        worker.error.connect(self._on_done)

        self.busy_changed.emit(True)
        worker.start()
        return True

    def cancel(self) -> None:
        if self._worker is not None:
            self._worker.cancel()

    def _on_done(self, *args):
        if self._worker is None:
            return
        self._worker = None
        self.busy_changed.emit(False)
