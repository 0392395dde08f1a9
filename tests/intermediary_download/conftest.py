"""Fixtures shared by the intermediary exporter tests."""

from __future__ import annotations

import pytest

from tests.intermediary_download.builders import TINY_V1, TINY_V2, make_jar


@pytest.fixture
def tiny_v1_bytes() -> bytes:
    return TINY_V1.encode("utf-8")


@pytest.fixture
def tiny_v2_bytes() -> bytes:
    return TINY_V2.encode("utf-8")


@pytest.fixture
def mapping_jar(tiny_v1_bytes: bytes) -> bytes:
    return make_jar({"mappings/mappings.tiny": tiny_v1_bytes})
