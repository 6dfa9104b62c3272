"""
Archive access for KSPModManager.
Lists and extracts entries of .zip (zipfile) and .7z (py7zr) mod archives.
"""

import logging
import shutil
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path

import py7zr

from errors import FilesystemError
from file_system import normalize_rel_path

log = logging.getLogger("kspmodmanager.archive_reader")


@dataclass
class ArchiveEntry:
    """A file or folder inside a mod archive."""
    path: str  # archive-relative, forward slashes, no trailing slash
    is_dir: bool

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def parent_path(self) -> str:
        return self.path.rsplit("/", 1)[0] if "/" in self.path else ""


class ArchiveReader:
    """Reads mod archives."""

    SUPPORTED_EXTENSIONS = (".zip", ".7z")

    def is_supported(self, archive_path) -> bool:
        return str(archive_path).lower().endswith(self.SUPPORTED_EXTENSIONS)

    def list_entries(self, archive_path) -> list[ArchiveEntry]:
        """
        List all entries of the archive sorted by path.
        Folders that only exist implicitly (as part of a file path) are added.
        """
        entries: dict[str, bool] = {}
        for raw_name, is_dir in self._read_index(archive_path):
            path = normalize_rel_path(raw_name)
            if not path:
                continue
            if ".." in path.split("/"):
                log.warning(f"Skipping entry outside the archive root: {raw_name}")
                continue
            entries[path] = entries.get(path, False) or is_dir
            parts = path.split("/")
            for i in range(1, len(parts)):
                entries[("/".join(parts[:i]))] = True

        return [ArchiveEntry(path, is_dir) for path, is_dir in sorted(entries.items())]

    def extract(self, archive_path, entry_path: str, dest: Path) -> None:
        """Write the bytes of a file entry to dest (parents are created)."""
        wanted = normalize_rel_path(entry_path)
        dest = Path(dest)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            if str(archive_path).lower().endswith(".7z"):
                self._extract_7z(archive_path, wanted, dest)
            else:
                self._extract_zip(archive_path, wanted, dest)
        except FilesystemError:
            raise
        except (OSError, zipfile.BadZipFile, py7zr.Bad7zFile, KeyError) as e:
            raise FilesystemError(f"Can't extract {entry_path} from {archive_path}: {e}", str(dest)) from e

    def _read_index(self, archive_path) -> list[tuple[str, bool]]:
        try:
            if str(archive_path).lower().endswith(".7z"):
                with py7zr.SevenZipFile(archive_path, "r") as z:
                    return [(info.filename, info.is_directory) for info in z.list()]
            with zipfile.ZipFile(archive_path, "r") as z:
                return [(info.filename, info.is_dir()) for info in z.infolist()]
        except (OSError, zipfile.BadZipFile, py7zr.Bad7zFile) as e:
            raise FilesystemError(f"Can't read archive {archive_path}: {e}", str(archive_path)) from e

    def _extract_zip(self, archive_path, wanted: str, dest: Path) -> None:
        with zipfile.ZipFile(archive_path, "r") as z:
            for info in z.infolist():
                if normalize_rel_path(info.filename) == wanted and not info.is_dir():
                    with z.open(info) as src, open(dest, "wb") as dst:
                        shutil.copyfileobj(src, dst)
                    return
        raise KeyError(wanted)

    def _extract_7z(self, archive_path, wanted: str, dest: Path) -> None:
        with py7zr.SevenZipFile(archive_path, "r") as z:
            names = [n for n in z.getnames() if normalize_rel_path(n) == wanted]
            if not names:
                raise KeyError(wanted)
            tmp_dir = tempfile.mkdtemp(prefix="kspmm_")
            try:
                z.extract(path=tmp_dir, targets=names)
                shutil.move(str(Path(tmp_dir) / names[0]), str(dest))
            finally:
                shutil.rmtree(tmp_dir, ignore_errors=True)
