"""
Catalog persistence for KSPModManager.
Reads and writes the versioned XML catalog (KSPModManager.cfg) that
stores the known mods, their tree layout and install settings.

Layout:
    <KSPModManager>
        <Version>v1.0</Version>
        <General><DownloadPath Name="..."/></General>
        <Mods>
            <Mod Key="..." Name="..." ...>
                <ModEntry Key="..." .../>
            </Mod>
        </Mods>
    </KSPModManager>
"""

import logging
import os
import re
import tempfile
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable

from errors import ParseError, UnsupportedVersionError
from mod_node import DestinationSource, ModNode, NodeType

log = logging.getLogger("kspmodmanager.catalog_store")

CATALOG_VERSION = "v1.0"
XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>\n'

# Element names
ROOT_ELEMENT = "KSPModManager"
VERSION_ELEMENT = "Version"
GENERAL_ELEMENT = "General"
DOWNLOAD_PATH_ELEMENT = "DownloadPath"
MODS_ELEMENT = "Mods"
MOD_ELEMENT = "Mod"
MOD_ENTRY_ELEMENT = "ModEntry"

# Legacy attributes written by old versions
LEGACY_FORUM_URL = "ForumURL"
LEGACY_CURSEFORGE_URL = "CurseForgeURL"

# Characters XML 1.0 can't hold, not even escaped
_ILLEGAL_XML_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


def _xml_value(attribute: str, value: str) -> str:
    """Raises ValueError if value can't be stored in the catalog."""
    if _ILLEGAL_XML_CHARS.search(value):
        raise ValueError(f"{attribute} contains a control character: {value!r}")
    return value


def _to_bool(value: str) -> bool:
    return value.strip().lower() == "true"


def _to_node_type(value: str) -> NodeType:
    try:
        return NodeType(int(value))
    except ValueError:
        log.warning(f"Unknown node type '{value}', using Folder")
        return NodeType.FOLDER


def _to_destination_source(value: str) -> DestinationSource:
    if value.strip().lower() == DestinationSource.EXPLICIT.value.lower():
        return DestinationSource.EXPLICIT
    return DestinationSource.DERIVED


@dataclass(frozen=True)
class CatalogField:
    """
    Maps a catalog attribute onto a ModNode attribute.
    required fields are always written, optional ones only if the
    value differs from default.
    """
    attribute: str
    node_attr: str
    parse: Callable[[str], Any] = str
    format: Callable[[Any], str] = str
    default: Any = ""
    required: bool = False

    def read(self, node: ModNode, value: str) -> None:
        setattr(node, self.node_attr, self.parse(value))

    def write(self, node: ModNode, element: ET.Element) -> None:
        value = getattr(node, self.node_attr)
        if self.required or value != self.default:
            element.set(self.attribute, _xml_value(self.attribute, self.format(value)))


FIELDS: tuple[CatalogField, ...] = (
    CatalogField("Key", "key", required=True),
    CatalogField("Name", "name", required=True),
    CatalogField("NodeType", "node_type", _to_node_type, lambda v: str(int(v)), required=True),
    CatalogField("Checked", "checked", _to_bool, str, default=False, required=True),
    CatalogField("AddDate", "add_date"),
    CatalogField("Version", "version"),
    CatalogField("GameVersion", "game_version"),
    CatalogField("Note", "note"),
    CatalogField("ProductID", "product_id"),
    CatalogField("CreationDate", "creation_date"),
    CatalogField("ChangeDate", "change_date"),
    CatalogField("Author", "author"),
    CatalogField("Rating", "rating"),
    CatalogField("Downloads", "downloads"),
    CatalogField("ModURL", "mod_url"),
    CatalogField("AdditionalURL", "additional_url"),
    CatalogField("SiteHandlerName", "site_handler_name"),
    CatalogField("Destination", "destination"),
    CatalogField("DestinationSource", "destination_source", _to_destination_source,
                 lambda v: v.value, default=DestinationSource.DERIVED),
)

_FIELDS_BY_ATTRIBUTE = {f.attribute: f for f in FIELDS}

# Legacy URL attribute -> site handler it belonged to
_LEGACY_URLS = {
    LEGACY_FORUM_URL: "KSPForum",
    LEGACY_CURSEFORGE_URL: "CurseForge",
}


@dataclass
class CatalogLoadResult:
    """Content of a loaded catalog."""
    mods: list[ModNode] = field(default_factory=list)
    download_path: str = ""
    version: str = ""
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class CatalogStore:
    """
    Loads and saves the mod catalog.
    Parsers are selected by the catalog's version tag.
    """

    def __init__(self):
        self._parsers: dict[str, Callable[[ET.Element, CatalogLoadResult], None]] = {
            CATALOG_VERSION.lower(): self._parse_v1,
        }

    @property
    def supported_versions(self) -> list[str]:
        return list(self._parsers)

    # ==================== LOAD ====================

    def load(self, path: Path) -> CatalogLoadResult:
        """
        Load the catalog at path.
        Never raises for bad content: a malformed document or an unknown
        version yields an empty result with the error recorded.
        """
        result = CatalogLoadResult()
        path = Path(path)
        if not path.exists():
            log.info(f"No catalog at {path}, starting empty")
            return result

        try:
            root = ET.parse(path).getroot()
            result.version = self._read_version(root)
            parser = self._parsers.get(result.version.lower())
            if parser is None:
                raise UnsupportedVersionError(result.version)
            parser(root, result)
        except (ET.ParseError, ParseError) as e:
            msg = f"Failed to load catalog {path}: {e}"
            log.error(msg)
            return CatalogLoadResult(version=result.version, errors=[msg])
        except (OSError, UnicodeDecodeError) as e:
            msg = f"Failed to read catalog {path}: {e}"
            log.error(msg)
            return CatalogLoadResult(errors=[msg])

        log.info(f"Catalog loaded: {len(result.mods)} mods from {path}")
        return result

    @staticmethod
    def _read_version(root: ET.Element) -> str:
        if root.tag == VERSION_ELEMENT:
            return (root.text or "").strip()
        element = root.find(f".//{VERSION_ELEMENT}")
        if element is None:
            raise ParseError("Catalog has no version tag")
        return (element.text or "").strip()

    def _parse_v1(self, root: ET.Element, result: CatalogLoadResult) -> None:
        download_path = root.find(f".//{GENERAL_ELEMENT}/{DOWNLOAD_PATH_ELEMENT}")
        if download_path is not None:
            result.download_path = download_path.get("Name", "")

        mods = root.find(MODS_ELEMENT)
        if mods is None:
            return
        keys = set()
        for element in mods.findall(MOD_ELEMENT):
            mod = self._parse_node(element)
            if not mod.key:
                log.warning("Skipping catalog mod without key")
                continue
            if mod.key in keys:
                log.warning(f"Skipping duplicate catalog mod '{mod.key}'")
                continue
            keys.add(mod.key)
            result.mods.append(mod)

    def _parse_node(self, element: ET.Element) -> ModNode:
        node = ModNode()
        legacy_urls = {}
        for attribute, value in element.attrib.items():
            catalog_field = _FIELDS_BY_ATTRIBUTE.get(attribute)
            if catalog_field is not None:
                catalog_field.read(node, value)
            elif attribute in _LEGACY_URLS:
                legacy_urls[attribute] = value
            # Anything else comes from a newer version and is ignored

        for attribute, value in legacy_urls.items():
            self._migrate_legacy_url(node, attribute, value)

        for child_element in element.findall(MOD_ENTRY_ELEMENT):
            child = self._parse_node(child_element)
            if not child.key or node.get_child(child.key) is not None:
                log.warning(f"Skipping invalid or duplicate entry '{child.key}' of '{node.key}'")
                continue
            node.add_child(child)
        return node

    @staticmethod
    def _migrate_legacy_url(node: ModNode, attribute: str, value: str) -> None:
        """Old catalogs stored one URL per site, map it onto ModURL/AdditionalURL."""
        if not value:
            return
        if node.site_handler_name == _LEGACY_URLS[attribute]:
            if not node.mod_url:
                node.mod_url = value
        elif not node.additional_url:
            node.additional_url = value

    # ==================== SAVE ====================

    def save(self, mods: Iterable[ModNode], path: Path, download_path: str = "") -> bool:
        """
        Save the catalog to path using atomic write.
        Returns True if saved successfully, False otherwise.
        """
        path = Path(path)
        try:
            content = self.to_xml(mods, download_path)
        except ValueError as e:
            log.error(f"Failed to save catalog {path}: {e}")
            return False

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(suffix=".cfg", prefix="catalog_", dir=path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                Path(temp_path).replace(path)
            except OSError:
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
                raise
        except OSError as e:
            log.error(f"Failed to save catalog {path}: {e}")
            return False

        log.info(f"Catalog saved to {path}")
        return True

    def to_xml(self, mods: Iterable[ModNode], download_path: str = "") -> str:
        """
        Pretty printed catalog document.
        Raises ValueError if a field holds a character XML can't store.
        """
        root = ET.Element(ROOT_ELEMENT)
        ET.SubElement(root, VERSION_ELEMENT).text = CATALOG_VERSION

        general = ET.SubElement(root, GENERAL_ELEMENT)
        download = ET.SubElement(general, DOWNLOAD_PATH_ELEMENT)
        download.set("Name", _xml_value(DOWNLOAD_PATH_ELEMENT, download_path or ""))

        mods_element = ET.SubElement(root, MODS_ELEMENT)
        for mod in mods:
            mods_element.append(self._build_element(MOD_ELEMENT, mod))

        ET.indent(root, space="  ")
        return XML_DECLARATION + ET.tostring(root, encoding="unicode") + "\n"

    def _build_element(self, tag: str, node: ModNode) -> ET.Element:
        element = ET.Element(tag)
        for catalog_field in FIELDS:
            catalog_field.write(node, element)
        for child in node.children:
            element.append(self._build_element(MOD_ENTRY_ELEMENT, child))
        return element

