"""
Configuration Handler for KSPModManager
Cross-platform configuration storage.
- Windows: %APPDATA%/KSPModManager/
- macOS: ~/Library/Application Support/KSPModManager/
- Linux: ~/.config/kspmodmanager/
"""

import json
import logging
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional
from dataclasses import dataclass, field, asdict

from path_resolver import DEFAULT_RECOGNIZED_DIRS

log = logging.getLogger("kspmodmanager.config_handler")


def get_platform() -> str:
    """Get current platform: 'windows', 'macos', or 'linux'."""
    system = platform.system().lower()
    if system == 'darwin':
        return 'macos'
    elif system == 'windows':
        return 'windows'
    else:
        return 'linux'


PLATFORM = get_platform()

# How an outdated mod is replaced by its update
UPDATE_COPY_DESTINATION = "CopyDestination"
UPDATE_REMOVE_AND_ADD = "RemoveAndAdd"
UPDATE_MANUAL = "Manual"
UPDATE_BEHAVIORS = (UPDATE_COPY_DESTINATION, UPDATE_REMOVE_AND_ADD, UPDATE_MANUAL)


@dataclass
class AppConfig:
    """Application configuration data class."""
    # Selected game install root
    ksp_root: str = ""

    # All game install roots the user added
    known_ksp_roots: list[str] = field(default_factory=list)

    # Where downloaded mod archives go
    download_path: str = ""

    # Overwrite files of other mods on install
    override_mod_files: bool = False

    # One of UPDATE_BEHAVIORS
    mod_update_behavior: str = UPDATE_COPY_DESTINATION

    # Report collisions when mods get added
    show_conflict_solver: bool = True

    # Game directories, relative to the install root
    recognized_dirs: list[str] = field(default_factory=lambda: list(DEFAULT_RECOGNIZED_DIRS))

    # GameData folders that belong to the game itself
    scan_ignore_dirs: list[str] = field(default_factory=lambda: ["squad", "myflags", "nasamission"])

    # Catalog file, stored in the install root
    catalog_file_name: str = "KSPModManager.cfg"


# Fields that must keep their type when loaded
_LIST_FIELDS = ("known_ksp_roots", "recognized_dirs", "scan_ignore_dirs")
_BOOL_FIELDS = ("override_mod_files", "show_conflict_solver")


class ConfigHandler:
    """
    Handles loading, saving, and accessing application configuration.
    Cross-platform config directory support.
    """

    CONFIG_DIR_NAME = "KSPModManager" if PLATFORM in ('windows', 'macos') else "kspmodmanager"
    CONFIG_FILE_NAME = "config.json"

    def __init__(self):
        self._config_dir = self._get_config_dir()
        self._config_file = self._config_dir / self.CONFIG_FILE_NAME
        self._config: AppConfig = AppConfig()

        # Ensure directories exist
        self._ensure_directories()

        # Load existing config
        self.load()

    def _get_config_dir(self) -> Path:
        """Get platform-specific config directory."""
        if PLATFORM == 'windows':
            appdata = os.environ.get('APPDATA')
            if appdata:
                return Path(appdata) / self.CONFIG_DIR_NAME
            return Path.home() / 'AppData' / 'Roaming' / self.CONFIG_DIR_NAME

        elif PLATFORM == 'macos':
            return Path.home() / 'Library' / 'Application Support' / self.CONFIG_DIR_NAME

        else:
            # Linux: XDG config directory
            xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
            if xdg_config_home:
                base = Path(xdg_config_home)
            else:
                base = Path.home() / ".config"
            return base / self.CONFIG_DIR_NAME

    def _ensure_directories(self) -> None:
        """Create config directory if it doesn't exist."""
        self._config_dir.mkdir(parents=True, exist_ok=True)

    @property
    def config_dir(self) -> Path:
        """Return the configuration directory path."""
        return self._config_dir

    @property
    def config(self) -> AppConfig:
        """Return the current configuration."""
        return self._config

    def load(self) -> bool:
        """
        Load configuration from file.
        Returns True if loaded successfully, False otherwise.
        """
        if not self._config_file.exists():
            return False

        try:
            with open(self._config_file, 'r', encoding='utf-8') as f:
                data = json.load(f)

            if not isinstance(data, dict):
                log.warning("Config file is not a valid JSON object")
                return False

            # Update config with loaded values, keeping defaults for missing keys
            for key, value in data.items():
                if not hasattr(self._config, key):
                    continue
                if key in _LIST_FIELDS and not isinstance(value, list):
                    continue
                if key in _BOOL_FIELDS and not isinstance(value, bool):
                    continue
                if key == 'mod_update_behavior' and value not in UPDATE_BEHAVIORS:
                    log.warning(f"Unknown update behavior '{value}', using default")
                    continue
                setattr(self._config, key, value)

            return True
        except (json.JSONDecodeError, IOError, PermissionError, TypeError) as e:
            log.warning(f"Failed to load config: {e}")
            return False

    def save(self) -> bool:
        """
        Save configuration to file using atomic write.
        Returns True if saved successfully, False otherwise.
        """
        try:
            # Write to temp file first, then atomic rename
            fd, temp_path = tempfile.mkstemp(
                suffix='.json',
                prefix='config_',
                dir=self._config_dir
            )
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(asdict(self._config), f, indent=2)

                Path(temp_path).replace(self._config_file)
                return True
            except Exception:
                # Clean up temp file on error
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
                raise
        except (IOError, PermissionError, OSError) as e:
            log.error(f"Failed to save config: {e}")
            return False

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by key."""
        return getattr(self._config, key, default)

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value and save."""
        if hasattr(self._config, key):
            setattr(self._config, key, value)
            self.save()

    def add_ksp_root(self, path: str) -> bool:
        """Add a game install root if not already present."""
        if path and path not in self._config.known_ksp_roots:
            self._config.known_ksp_roots.append(path)
            self.save()
            return True
        return False

    def remove_ksp_root(self, path: str) -> bool:
        """Remove a game install root, deselecting it if it was selected."""
        if path not in self._config.known_ksp_roots:
            return False
        self._config.known_ksp_roots.remove(path)
        if self._config.ksp_root == path:
            self._config.ksp_root = ""
        self.save()
        return True

    def get_catalog_path(self, ksp_root: Optional[str] = None) -> Optional[Path]:
        """Catalog file of the given (default: selected) install root."""
        root = ksp_root or self._config.ksp_root
        if not root:
            return None
        return Path(root) / self._config.catalog_file_name

    def get_default_download_path(self) -> Path:
        """Get path for downloaded mod archives."""
        if self._config.download_path:
            return Path(self._config.download_path)
        if self._config.ksp_root:
            return Path(self._config.ksp_root) / "Downloads"
        return Path.home() / "KSP_Mod_Downloads"
