"""
UI Package for KSPModManager
"""

from .workers import (
    RefreshCheckedStateWorker,
    ProcessModsWorker,
    ScanGameDataWorker,
    OperationRunner
)

__all__ = [
    'RefreshCheckedStateWorker',
    'ProcessModsWorker',
    'ScanGameDataWorker',
    'OperationRunner',
]
