"""Public API for the intermediary mapping exporter.

Fetches the Maven catalog of ``net.fabricmc:intermediary``, downloads each
version's jar, decodes the embedded tiny mapping file, and writes one JSON
document per version.  The pieces are usable on their own: catalog parsing,
tiny decoding, JSON emission, and the bounded-concurrency batch runner.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .catalog import VersionCatalog, fetch_catalog, parse_catalog, resolve_versions
from .emitter import emit, escape_json, write_json
from .errors import (
    CatalogError,
    CatalogFetchError,
    CatalogParseError,
    ConfigError,
    FetchError,
    IntermediaryFetchError,
    MalformedMappingFile,
    MissingMappingEntry,
    UserConfigError,
    VersionError,
    WriteError,
)
from .formats.tiny import decode
from .model import FieldMapping, MappingModel, MethodMapping
from .pipeline import (
    BatchSummary,
    PipelineContext,
    VersionOutcome,
    process_version,
    run_batch,
    run_pipeline,
    run_version,
)
from .settings import FetcherConfig, load_config

__all__ = [
    "__version__",
    "BatchSummary",
    "CatalogError",
    "CatalogFetchError",
    "CatalogParseError",
    "ConfigError",
    "FetchError",
    "FetcherConfig",
    "FieldMapping",
    "IntermediaryFetchError",
    "MalformedMappingFile",
    "MappingModel",
    "MethodMapping",
    "MissingMappingEntry",
    "PipelineContext",
    "UserConfigError",
    "VersionCatalog",
    "VersionError",
    "VersionOutcome",
    "WriteError",
    "decode",
    "emit",
    "escape_json",
    "fetch_catalog",
    "load_config",
    "parse_catalog",
    "process_version",
    "resolve_versions",
    "run_batch",
    "run_pipeline",
    "run_version",
    "write_json",
]
