"""Exceptions raised by ollie."""

from __future__ import annotations

__all__ = [
    "ArchiveReadError",
    "ArchiveWriteError",
    "ExtractWriteError",
    "InvalidReference",
    "ManifestParseError",
    "ManifestReadError",
    "ModelsPathError",
    "OllieError",
    "RefusedTerminalOutput",
    "UnsupportedFormat",
]


class OllieError(Exception):
    """Base exception for save and load operations."""


class InvalidReference(OllieError, ValueError):
    """Raised when a model name matches none of the accepted shapes."""


class ManifestReadError(OllieError):
    """Raised when a manifest file cannot be read."""


class ManifestParseError(OllieError):
    """Raised when a manifest is not valid JSON of the expected shape."""


class ArchiveWriteError(OllieError):
    """Raised when a file cannot be added to the output archive."""


class RefusedTerminalOutput(OllieError):
    """Raised instead of writing a binary archive to a terminal."""


class UnsupportedFormat(OllieError):
    """Raised for archive names without a recognised suffix."""


class ArchiveReadError(OllieError):
    """Raised when an archive cannot be read or decompressed."""


class ExtractWriteError(OllieError):
    """Raised when an extracted entry cannot be written or chowned."""


class ModelsPathError(OllieError):
    """Raised when the model storage root cannot be determined."""
