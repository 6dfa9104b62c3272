"""
Filesystem access for KSPModManager.
All paths handed to LocalFileSystem are relative to the game install root.
"""

import logging
import shutil
from pathlib import Path
from typing import Union

from errors import FilesystemError

log = logging.getLogger("kspmodmanager.file_system")

PathLike = Union[str, Path]


def normalize_rel_path(path: str) -> str:
    """Use forward slashes and strip leading/trailing separators."""
    return path.replace("\\", "/").strip("/") if path else ""


class LocalFileSystem:
    """
    Filesystem below a game install root.
    Every failing operation raises FilesystemError.
    """

    def __init__(self, root: PathLike):
        self.root = Path(root)

    def absolute(self, rel_path: PathLike) -> Path:
        """Absolute path of an install-root-relative path."""
        rel = normalize_rel_path(str(rel_path))
        if not rel:
            return self.root
        return self.root.joinpath(*rel.split("/"))

    def exists(self, rel_path: PathLike) -> bool:
        try:
            return self.absolute(rel_path).exists()
        except OSError as e:
            raise FilesystemError(f"Can't probe {rel_path}: {e}", str(rel_path)) from e

    def is_dir(self, rel_path: PathLike) -> bool:
        try:
            return self.absolute(rel_path).is_dir()
        except OSError as e:
            raise FilesystemError(f"Can't probe {rel_path}: {e}", str(rel_path)) from e

    def list_entries(self, rel_path: PathLike) -> list[tuple[str, bool]]:
        """List (name, is_directory) pairs of a directory, sorted by name."""
        directory = self.absolute(rel_path)
        try:
            return sorted((item.name, item.is_dir()) for item in directory.iterdir())
        except OSError as e:
            raise FilesystemError(f"Can't list {rel_path}: {e}", str(rel_path)) from e

    def create_directory(self, rel_path: PathLike) -> None:
        try:
            self.absolute(rel_path).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Can't create directory {rel_path}: {e}", str(rel_path)) from e

    def copy_file(self, src: PathLike, dst_rel_path: PathLike) -> None:
        """Copy an absolute source file to an install-root-relative destination."""
        dst = self.absolute(dst_rel_path)
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dst)
        except OSError as e:
            raise FilesystemError(f"Can't copy {src} to {dst_rel_path}: {e}", str(dst_rel_path)) from e

    def delete_file(self, rel_path: PathLike) -> None:
        try:
            self.absolute(rel_path).unlink()
        except FileNotFoundError:
            log.debug(f"File already gone: {rel_path}")
        except OSError as e:
            raise FilesystemError(f"Can't delete {rel_path}: {e}", str(rel_path)) from e

    def delete_empty_directory(self, rel_path: PathLike) -> None:
        """Remove a directory that must be empty."""
        try:
            self.absolute(rel_path).rmdir()
        except FileNotFoundError:
            log.debug(f"Directory already gone: {rel_path}")
        except OSError as e:
            raise FilesystemError(f"Can't delete directory {rel_path}: {e}", str(rel_path)) from e

    def is_tree_empty(self, rel_path: PathLike) -> bool:
        """True if the directory holds no files at any depth."""
        directory = self.absolute(rel_path)
        try:
            return not any(item.is_file() or item.is_symlink() for item in directory.rglob("*"))
        except OSError as e:
            raise FilesystemError(f"Can't scan {rel_path}: {e}", str(rel_path)) from e

    def delete_empty_tree(self, rel_path: PathLike) -> None:
        """Remove a directory made only of empty directories, deepest first."""
        directory = self.absolute(rel_path)
        if not self.is_tree_empty(rel_path):
            raise FilesystemError(f"Directory not empty: {rel_path}", str(rel_path))
        try:
            subdirs = sorted(directory.rglob("*"), key=lambda p: len(p.parts), reverse=True)
        except OSError as e:
            raise FilesystemError(f"Can't scan {rel_path}: {e}", str(rel_path)) from e
        for subdir in subdirs:
            self.delete_empty_directory(subdir.relative_to(self.root).as_posix())
        self.delete_empty_directory(rel_path)
