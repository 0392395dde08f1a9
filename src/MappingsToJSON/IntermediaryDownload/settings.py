# === NAVMAP v1 ===
# {
#   "module": "MappingsToJSON.IntermediaryDownload.settings",
#   "purpose": "Configuration models, YAML loading, and environment overrides for the exporter",
#   "sections": [
#     {"id": "constants", "name": "Defaults", "anchor": "CONST", "kind": "constants"},
#     {"id": "models", "name": "Configuration models", "anchor": "MOD", "kind": "api"},
#     {"id": "env", "name": "Environment overrides", "anchor": "ENV", "kind": "helpers"},
#     {"id": "loading", "name": "Loading", "anchor": "LOAD", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models for the intermediary mapping exporter.

Settings are grouped by concern (repository coordinates, namespace columns,
HTTP client, worker pool, logging) and aggregated into :class:`FetcherConfig`.
A YAML file may supply any subset of the sections; environment variables
prefixed with ``INTERMEDIARY_FETCH_`` are applied last.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import UserConfigError

__all__ = [
    "DEFAULT_METADATA_URL",
    "DEFAULT_BASE_URL",
    "DEFAULT_MAPPING_ENTRY",
    "RepositoryConfiguration",
    "NamespaceConfiguration",
    "HttpConfiguration",
    "PipelineConfiguration",
    "LoggingConfiguration",
    "FetcherConfig",
    "EnvironmentOverrides",
    "build_config",
    "load_raw_yaml",
    "load_config",
]

# --- Defaults -------------------------------------------------------------------

DEFAULT_BASE_URL = "https://maven.fabricmc.net/net/fabricmc/intermediary/"
DEFAULT_METADATA_URL = DEFAULT_BASE_URL + "maven-metadata.xml"
DEFAULT_ARTIFACT_ID = "intermediary"
DEFAULT_MAPPING_ENTRY = "mappings/mappings.tiny"
DEFAULT_OUTPUT_DIR = Path("intermediary_mappings")
DEFAULT_WORKERS = 5
DEFAULT_BATCH_TIMEOUT_SEC = 3600.0

# --- Configuration models -------------------------------------------------------


class RepositoryConfiguration(BaseModel):
    """Maven coordinates of the mapping artifact and its embedded entry."""

    metadata_url: str = Field(default=DEFAULT_METADATA_URL)
    base_url: str = Field(default=DEFAULT_BASE_URL)
    artifact_id: str = Field(default=DEFAULT_ARTIFACT_ID, min_length=1)
    mapping_entry: str = Field(
        default=DEFAULT_MAPPING_ENTRY,
        min_length=1,
        description="Exact archive path of the tiny mapping file",
    )

    @field_validator("metadata_url", "base_url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        """Require an absolute HTTP(S) URL."""

        if not value.startswith(("http://", "https://")):
            raise ValueError("must be an http(s) URL")
        return value

    def artifact_url(self, version: str) -> str:
        """Return the jar URL for ``version`` under :attr:`base_url`."""

        base = self.base_url.rstrip("/")
        return f"{base}/{version}/{self.artifact_id}-{version}.jar"

    model_config = {"validate_assignment": True}


class NamespaceConfiguration(BaseModel):
    """Names of the two tiny-format columns exported as source and target."""

    source: str = Field(default="official", min_length=1)
    target: str = Field(default="intermediary", min_length=1)

    model_config = {"validate_assignment": True}


class HttpConfiguration(BaseModel):
    """HTTPX client settings used for catalog and artifact downloads."""

    timeout_sec: float = Field(default=60.0, gt=0.0, le=3600.0)
    connect_timeout_sec: float = Field(default=10.0, gt=0.0, le=300.0)
    user_agent: str = Field(default="MappingsToJSON-IntermediaryDownload/0.1")
    # Requires h2, installed through the httpx[http2] extra.
    http2_enabled: bool = Field(default=False)
    follow_redirects: bool = Field(default=True)
    max_connections: int = Field(default=16, ge=1, le=256)

    def polite_headers(self) -> Dict[str, str]:
        """Return headers attached to every outgoing request."""

        return {"User-Agent": self.user_agent, "Accept": "*/*"}

    model_config = {"validate_assignment": True}


class PipelineConfiguration(BaseModel):
    """Worker pool size, batch deadline, and output location."""

    workers: int = Field(default=DEFAULT_WORKERS, ge=1, le=64)
    timeout_sec: float = Field(
        default=DEFAULT_BATCH_TIMEOUT_SEC,
        gt=0.0,
        description="Seconds to wait for the whole batch before abandoning running work",
    )
    output_dir: Path = Field(default=DEFAULT_OUTPUT_DIR)

    model_config = {"validate_assignment": True}


class LoggingConfiguration(BaseModel):
    """Logging-related configuration for exporter runs."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    max_log_size_mb: int = Field(default=100, gt=0, description="Maximum size of rotated log files")
    retention_days: int = Field(default=30, ge=1, description="Retention period for log files")
    log_dir: Optional[Path] = Field(
        default=None,
        description="Directory for JSONL log files; console-only logging when unset",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Normalise logging levels and ensure they match the supported set."""

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {sorted(valid_levels)}")
        return upper

    model_config = {"validate_assignment": True}


class FetcherConfig(BaseModel):
    """Top-level configuration consumed by the CLI and the pipeline."""

    repository: RepositoryConfiguration = Field(default_factory=RepositoryConfiguration)
    namespaces: NamespaceConfiguration = Field(default_factory=NamespaceConfiguration)
    http: HttpConfiguration = Field(default_factory=HttpConfiguration)
    pipeline: PipelineConfiguration = Field(default_factory=PipelineConfiguration)
    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @classmethod
    def from_defaults(cls) -> "FetcherConfig":
        """Return a configuration built from defaults plus environment overrides."""

        return build_config({})


# --- Environment overrides ------------------------------------------------------


class EnvironmentOverrides(BaseSettings):
    """Pydantic settings model exposing environment-derived overrides."""

    workers: Optional[int] = Field(default=None, alias="INTERMEDIARY_FETCH_WORKERS")
    timeout_sec: Optional[float] = Field(default=None, alias="INTERMEDIARY_FETCH_TIMEOUT_SEC")
    output_dir: Optional[Path] = Field(default=None, alias="INTERMEDIARY_FETCH_OUTPUT_DIR")
    log_level: Optional[str] = Field(default=None, alias="INTERMEDIARY_FETCH_LOG_LEVEL")
    log_dir: Optional[Path] = Field(default=None, alias="INTERMEDIARY_FETCH_LOG_DIR")
    base_url: Optional[str] = Field(default=None, alias="INTERMEDIARY_FETCH_BASE_URL")
    metadata_url: Optional[str] = Field(default=None, alias="INTERMEDIARY_FETCH_METADATA_URL")

    model_config = SettingsConfigDict(
        env_prefix="INTERMEDIARY_FETCH_", case_sensitive=False, extra="ignore"
    )


_ENV_TARGETS = {
    "workers": ("pipeline", "workers"),
    "timeout_sec": ("pipeline", "timeout_sec"),
    "output_dir": ("pipeline", "output_dir"),
    "log_level": ("logging", "level"),
    "log_dir": ("logging", "log_dir"),
    "base_url": ("repository", "base_url"),
    "metadata_url": ("repository", "metadata_url"),
}


def _apply_env_overrides(config: FetcherConfig) -> None:
    """Mutate ``config`` in-place using values from :class:`EnvironmentOverrides`."""

    env = EnvironmentOverrides()
    logger = logging.getLogger("MappingsToJSON.IntermediaryDownload")
    for key, value in env.model_dump(exclude_none=True).items():
        section_name, attribute = _ENV_TARGETS[key]
        setattr(getattr(config, section_name), attribute, value)
        logger.info("Config overridden: %s=%s", key, value, extra={"stage": "config"})


# --- Loading --------------------------------------------------------------------


def _format_validation_error(exc: PydanticValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = " -> ".join(str(part) for part in error["loc"])
        messages.append(f"{location}: {error['msg']}")
    return "Configuration validation failed:\n  " + "\n  ".join(messages)


def build_config(raw_config: Mapping[str, Any]) -> FetcherConfig:
    """Materialise a :class:`FetcherConfig` from a raw mapping, then apply env overrides."""

    try:
        config = FetcherConfig.model_validate(dict(raw_config))
        _apply_env_overrides(config)
    except PydanticValidationError as exc:
        raise UserConfigError(_format_validation_error(exc)) from exc
    return config


def load_raw_yaml(config_path: Path) -> Mapping[str, Any]:
    """Read a YAML configuration file and return its top-level mapping."""

    path = Path(config_path).expanduser()
    if not path.exists():
        raise UserConfigError(f"Configuration file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise UserConfigError(f"Configuration file '{path}' contains invalid YAML") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise UserConfigError("Configuration file must contain a mapping at the root")
    return data


def load_config(config_path: Optional[Path] = None) -> FetcherConfig:
    """Load, validate, and resolve configuration suitable for execution."""

    if config_path is None:
        return FetcherConfig.from_defaults()
    return build_config(load_raw_yaml(config_path))
