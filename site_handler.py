"""
Site handlers for KSPModManager.
A site handler knows how to check a mod's home page for updates and how
to download a new archive. Only the contract and the registry live here,
concrete handlers are registered by the application.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from mod_node import ModInfo

log = logging.getLogger("kspmodmanager.site_handler")


class SiteHandler(ABC):
    """Update client for one mod site."""

    name: str = ""

    @abstractmethod
    def check_for_updates(self, mod_info: ModInfo) -> tuple[bool, ModInfo]:
        """
        Compare mod_info against the site.
        Returns (is_outdated, newest ModInfo).
        """

    @abstractmethod
    def download_mod(self, mod_info: ModInfo, download_path: Path) -> Path:
        """Download the archive of mod_info, returns its local path."""

    def get_mod_info(self, url: str) -> Optional[ModInfo]:
        """Mod info read from a mod page. Handlers without support return None."""
        return None

    def is_valid_url(self, url: str) -> bool:
        return False


_handlers: dict[str, SiteHandler] = {}


def register_site_handler(handler: SiteHandler) -> None:
    if not handler.name:
        raise ValueError("Site handler without name")
    _handlers[handler.name.lower()] = handler
    log.debug(f"Site handler registered: {handler.name}")


def unregister_site_handler(name: str) -> None:
    _handlers.pop(name.lower(), None)


def get_site_handler(name: str) -> Optional[SiteHandler]:
    if not name:
        return None
    return _handlers.get(name.lower())


def get_site_handler_for_url(url: str) -> Optional[SiteHandler]:
    for handler in _handlers.values():
        if handler.is_valid_url(url):
            return handler
    return None


def site_handler_names() -> list[str]:
    return sorted(h.name for h in _handlers.values())
