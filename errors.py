"""
Error types for KSPModManager.
"""


class ModAdminError(Exception):
    """Base class for all mod manager errors."""


class ParseError(ModAdminError):
    """A catalog document could not be parsed."""


class UnsupportedVersionError(ParseError):
    """A catalog document carries a version tag we cannot read."""

    def __init__(self, version: str):
        super().__init__(f"Unsupported catalog version: {version!r}")
        self.version = version


class DuplicateKeyError(ModAdminError):
    """A node with the same key already exists among the siblings."""

    def __init__(self, key: str, parent_key: str = ""):
        msg = f"A node with key {key!r} already exists"
        if parent_key:
            msg += f" below {parent_key!r}"
        super().__init__(msg)
        self.key = key
        self.parent_key = parent_key


class FilesystemError(ModAdminError):
    """Copy, delete or probe of a path failed."""

    def __init__(self, message: str, path: str = ""):
        super().__init__(message)
        self.path = path
