# === NAVMAP v1 ===
# {
#   "module": "tests.conftest",
#   "purpose": "Shared pytest configuration for the suite",
#   "sections": [
#     {"id": "globals", "name": "Globals", "anchor": "GLB", "kind": "constants"},
#     {"id": "fixtures", "name": "Fixtures", "anchor": "FIX", "kind": "fixtures"}
#   ]
# }
# === /NAVMAP ===

"""
Pytest Configuration

Puts ``src`` on ``sys.path`` so the suite runs against a plain checkout, and
resets the exporter logger between tests so handlers installed by one test
(for example through the CLI) never leak into the next.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

# --- Globals ---

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

# --- Fixtures ---


@pytest.fixture(autouse=True)
def _reset_exporter_logger():
    yield
    logger = logging.getLogger("MappingsToJSON.IntermediaryDownload")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        if isinstance(handler, logging.FileHandler):
            handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture(autouse=True)
def _clear_exporter_env(monkeypatch):
    for name in (
        "INTERMEDIARY_FETCH_WORKERS",
        "INTERMEDIARY_FETCH_TIMEOUT_SEC",
        "INTERMEDIARY_FETCH_OUTPUT_DIR",
        "INTERMEDIARY_FETCH_LOG_LEVEL",
        "INTERMEDIARY_FETCH_LOG_DIR",
        "INTERMEDIARY_FETCH_BASE_URL",
        "INTERMEDIARY_FETCH_METADATA_URL",
        "INTERMEDIARY_FETCH_CONFIG",
    ):
        monkeypatch.delenv(name, raising=False)
