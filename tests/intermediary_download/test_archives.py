"""Tests for jar entry listing and exact-path lookup."""

from __future__ import annotations

import io
import zipfile

import pytest

from MappingsToJSON.IntermediaryDownload.archives import find_entry, list_entries
from MappingsToJSON.IntermediaryDownload.errors import MissingMappingEntry
from tests.intermediary_download.builders import make_jar


def test_list_entries_skips_directories():
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("mappings/", "")
        archive.writestr("mappings/mappings.tiny", "v1\tofficial\tintermediary\n")

    names = [name for name, _ in list_entries(buffer.getvalue())]

    assert names == ["mappings/mappings.tiny"]


def test_find_entry_returns_content(mapping_jar, tiny_v1_bytes):
    assert find_entry(list_entries(mapping_jar), "mappings/mappings.tiny") == tiny_v1_bytes


def test_find_entry_requires_exact_path():
    jar = make_jar({"nested/mappings/mappings.tiny": "x", "mappings/mappings.tiny.bak": "y"})

    with pytest.raises(MissingMappingEntry):
        find_entry(list_entries(jar), "mappings/mappings.tiny")


def test_find_entry_stops_at_first_match():
    seen = []

    def entries():
        for name in ("a", "target", "b"):
            seen.append(name)
            yield name, name.encode()

    assert find_entry(entries(), "target") == b"target"
    assert seen == ["a", "target"]


def test_find_entry_accepts_plain_sequences():
    assert find_entry([("x", b"1"), ("y", b"2")], "y") == b"2"


def test_non_zip_payload_is_missing_entry():
    with pytest.raises(MissingMappingEntry):
        list(list_entries(b"<html>404</html>"))
