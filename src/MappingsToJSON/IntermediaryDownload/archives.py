"""Archive access for downloaded artifacts.

Jars are plain ZIP files, so the default entry lister reads them with
:mod:`zipfile` straight from memory.  The pipeline only depends on the
``list_entries(archive_bytes) -> iterable of (name, bytes)`` shape, which lets
tests substitute canned entries.
"""

from __future__ import annotations

import io
import stat
import zipfile
import zlib
from typing import Callable, Iterable, Iterator, Tuple

from .errors import MissingMappingEntry

__all__ = ["ArchiveEntries", "list_entries", "find_entry"]

ArchiveEntries = Callable[[bytes], Iterable[Tuple[str, bytes]]]


def list_entries(archive: bytes) -> Iterator[Tuple[str, bytes]]:
    """Yield ``(name, content)`` for every regular file in a ZIP/JAR archive.

    Directories and symbolic links are skipped. Content is read lazily, one
    entry at a time.

    Raises:
        MissingMappingEntry: If ``archive`` is not a readable ZIP archive.
    """

    try:
        handle = zipfile.ZipFile(io.BytesIO(archive))
    except zipfile.BadZipFile as exc:
        raise MissingMappingEntry(f"artifact is not a readable archive: {exc}") from exc
    with handle:
        for member in handle.infolist():
            if member.is_dir():
                continue
            mode = (member.external_attr >> 16) & 0xFFFF
            if stat.S_IFMT(mode) == stat.S_IFLNK:
                continue
            try:
                content = handle.read(member)
            except (zipfile.BadZipFile, zlib.error) as exc:
                raise MissingMappingEntry(
                    f"archive entry {member.filename!r} is unreadable: {exc}"
                ) from exc
            yield member.filename, content


def find_entry(entries: Iterable[Tuple[str, bytes]], path: str) -> bytes:
    """Return the content of the entry whose name equals ``path`` exactly.

    Iteration stops at the first match, so entries after it are never read.

    Raises:
        MissingMappingEntry: If no entry has that name.
    """

    try:
        for name, content in entries:
            if name == path:
                return content
    finally:
        close = getattr(entries, "close", None)
        if callable(close):
            close()
    raise MissingMappingEntry(f"archive has no entry {path!r}")
