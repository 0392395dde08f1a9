"""Version discovery from a Maven ``maven-metadata.xml`` document.

The metadata is scanned line by line with a small state machine instead of a
full XML parser; unrelated markup outside ``<versioning><versions>`` is
tolerated and ignored::

    OUTSIDE --<versioning>--> IN_VERSIONING --<versions>--> IN_VERSIONS
       ^                         |    ^                          |
       +------</versioning>------+    +--------</versions>-------+
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .errors import CatalogFetchError, CatalogParseError, FetchError

__all__ = [
    "CatalogState",
    "VersionCatalog",
    "parse_catalog",
    "resolve_versions",
    "fetch_catalog",
]

LOGGER = logging.getLogger("MappingsToJSON.IntermediaryDownload.catalog")

_MARKER = re.compile(r"<(/?)(versioning|versions|version|latest|release)>")


class CatalogState(enum.Enum):
    """Position of the scanner relative to the tracked blocks."""

    OUTSIDE = "outside"
    IN_VERSIONING = "in_versioning"
    IN_VERSIONS = "in_versions"


_TRANSITIONS = {
    (CatalogState.OUTSIDE, "versioning"): CatalogState.IN_VERSIONING,
    (CatalogState.IN_VERSIONING, "/versioning"): CatalogState.OUTSIDE,
    (CatalogState.IN_VERSIONS, "/versioning"): CatalogState.OUTSIDE,
    (CatalogState.IN_VERSIONING, "versions"): CatalogState.IN_VERSIONS,
    (CatalogState.IN_VERSIONS, "/versions"): CatalogState.IN_VERSIONING,
}


@dataclass(slots=True)
class VersionCatalog:
    """Versions listed in the metadata plus the ``latest``/``release`` hints."""

    versions: List[str] = field(default_factory=list)
    latest: Optional[str] = None
    release: Optional[str] = None


def _element_text(line: str, tag: str, start: int) -> Optional[str]:
    """Return the stripped text between ``start`` and ``</tag>`` on ``line``."""

    end = line.find(f"</{tag}>", start)
    if end < 0:
        return None
    text = line[start:end].strip()
    return text or None


def parse_catalog(metadata_text: str) -> VersionCatalog:
    """Scan ``metadata_text`` and collect the catalog contents.

    Raises:
        CatalogParseError: If the document has no ``<versioning>`` block.
    """

    catalog = VersionCatalog()
    state = CatalogState.OUTSIDE
    saw_versioning = False

    for line in metadata_text.splitlines():
        for match in _MARKER.finditer(line):
            closing, tag = match.groups()
            token = f"{closing}{tag}"
            if tag == "versioning" and not closing:
                saw_versioning = True
            next_state = _TRANSITIONS.get((state, token))
            if next_state is not None:
                state = next_state
                continue
            if closing:
                continue
            if tag == "version" and state is CatalogState.IN_VERSIONS:
                value = _element_text(line, tag, match.end())
                if value is not None:
                    catalog.versions.append(value)
            elif tag in ("latest", "release") and state is CatalogState.IN_VERSIONING:
                setattr(catalog, tag, _element_text(line, tag, match.end()))

    if not saw_versioning:
        raise CatalogParseError("metadata document has no <versioning> block")
    return catalog


def resolve_versions(metadata_text: str) -> List[str]:
    """Return every version listed inside ``<versioning><versions>``, in document order."""

    return parse_catalog(metadata_text).versions


def fetch_catalog(fetch: Callable[[str], bytes], url: str) -> VersionCatalog:
    """Download and parse the metadata document at ``url``.

    Raises:
        CatalogFetchError: If the document cannot be downloaded or decoded.
        CatalogParseError: If the document has no ``<versioning>`` block.
    """

    LOGGER.debug("fetching catalog", extra={"stage": "catalog", "url": url})
    try:
        payload = fetch(url)
    except FetchError as exc:
        raise CatalogFetchError(f"cannot fetch catalog {url}: {exc}") from exc
    try:
        text = payload.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise CatalogFetchError(f"catalog {url} is not valid UTF-8") from exc
    catalog = parse_catalog(text)
    LOGGER.debug(
        "catalog parsed",
        extra={"stage": "catalog", "versions": len(catalog.versions)},
    )
    return catalog
