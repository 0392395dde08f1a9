"""Exception hierarchy shared across catalog discovery, decoding, and export.

The exporter spans a catalog lookup, one HTTP download per version, archive
inspection, tiny-format decoding, and a file write.  This module groups the
failure modes so the coordinator can tell fatal catalog problems apart from
per-version failures that are logged and skipped, while callers that need more
detail can still catch the specialised subclasses.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "IntermediaryFetchError",
    "CatalogError",
    "CatalogFetchError",
    "CatalogParseError",
    "VersionError",
    "FetchError",
    "MissingMappingEntry",
    "MalformedMappingFile",
    "WriteError",
    "UserConfigError",
    "ConfigError",
]


class IntermediaryFetchError(RuntimeError):
    """Base exception for catalog, download, decode, or export failures."""


class CatalogError(IntermediaryFetchError):
    """Raised when the version catalog cannot be obtained; aborts the batch."""


class CatalogFetchError(CatalogError):
    """Raised when the repository metadata document is unreachable."""


class CatalogParseError(CatalogError):
    """Raised when the metadata document lacks the ``versioning`` block."""


class VersionError(IntermediaryFetchError):
    """Base class for failures scoped to a single artifact version."""

    def __init__(self, message: str, *, version: Optional[str] = None) -> None:
        super().__init__(message)
        self.version = version


class FetchError(VersionError):
    """Raised when an HTTP download attempt fails."""

    def __init__(
        self,
        message: str,
        *,
        version: Optional[str] = None,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, version=version)
        self.url = url
        self.status_code = status_code


class MissingMappingEntry(VersionError):
    """Raised when an archive does not contain the expected mapping entry."""


class MalformedMappingFile(VersionError):
    """Raised when a tiny mapping file has an unusable header or grammar."""

    def __init__(
        self,
        message: str,
        *,
        version: Optional[str] = None,
        line: Optional[int] = None,
    ) -> None:
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message, version=version)
        self.line = line


class WriteError(VersionError):
    """Raised when the JSON output cannot be written to disk."""


class UserConfigError(RuntimeError):
    """Raised when CLI arguments or YAML configuration inputs are invalid."""


# Shorter name for callers that catch configuration problems.
ConfigError = UserConfigError
