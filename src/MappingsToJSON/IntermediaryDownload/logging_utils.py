"""Structured logging helpers shared across exporter components."""

from __future__ import annotations

import gzip
import json
import logging
import shutil
import sys
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

__all__ = ["LOGGER_NAME", "JSONFormatter", "setup_logging"]

LOGGER_NAME = "MappingsToJSON.IntermediaryDownload"

_MANAGED_ATTR = "_intermediary_managed"
_LOG_PREFIX = "intermediary-fetch-"


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as a JSON string with exporter-specific fields."""

        now = datetime.now(timezone.utc)
        payload = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "version": getattr(record, "version", None),
            "stage": getattr(record, "stage", None),
        }
        if hasattr(record, "extra_fields") and isinstance(record.extra_fields, dict):
            payload.update(record.extra_fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class _MaxLevelFilter(logging.Filter):
    """Pass records strictly below ``level``."""

    def __init__(self, level: int) -> None:
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


def _is_expired(path: Path, cutoff: datetime) -> bool:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc) < cutoff


def _gzip_in_place(path: Path) -> Path:
    """Replace ``path`` by ``<path>.gz`` and return the archive path."""

    archive = path.with_name(path.name + ".gz")
    with path.open("rb") as source, gzip.open(archive, "wb") as target:
        shutil.copyfileobj(source, target)
    path.unlink(missing_ok=True)
    return archive


def _cleanup_logs(log_dir: Path, retention_days: int) -> List[str]:
    """Apply the retention window to exporter logs in ``log_dir``.

    Expired ``.jsonl`` files are gzipped; expired ``.jsonl.gz`` archives are
    deleted.  Returns one human-readable line per action taken.
    """

    cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
    actions: List[str] = []
    for path in sorted(log_dir.glob(f"{_LOG_PREFIX}*.jsonl*")):
        if not _is_expired(path, cutoff):
            continue
        if path.name.endswith(".jsonl"):
            actions.append(f"compressed {path.name} -> {_gzip_in_place(path).name}")
        elif path.name.endswith(".jsonl.gz"):
            path.unlink(missing_ok=True)
            actions.append(f"deleted {path.name}")
    return actions


def _remove_managed_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if getattr(handler, _MANAGED_ATTR, False):
            logger.removeHandler(handler)
            if isinstance(handler, logging.StreamHandler) and not isinstance(
                handler, logging.FileHandler
            ):
                # Never close the interpreter's own stdout/stderr.
                continue
            handler.close()


def setup_logging(
    *,
    level: str = "INFO",
    retention_days: int = 30,
    max_log_size_mb: int = 100,
    log_dir: Optional[Path] = None,
    propagate: bool = False,
) -> logging.Logger:
    """Configure exporter logging.

    Progress lines (below ``WARNING``) go to stdout and failures to stderr, so
    per-version error summaries stay on a separate stream.  When ``log_dir`` is
    given, every record is also appended as JSON to a size-rotated daily file.
    Calling this again replaces the handlers installed by a previous call.
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    _remove_managed_handlers(logger)

    console_formatter = logging.Formatter("%(levelname)s: %(message)s")

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(console_formatter)
    stdout_handler.addFilter(_MaxLevelFilter(logging.WARNING))
    setattr(stdout_handler, _MANAGED_ATTR, True)
    logger.addHandler(stdout_handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(console_formatter)
    stderr_handler.setLevel(logging.WARNING)
    setattr(stderr_handler, _MANAGED_ATTR, True)
    logger.addHandler(stderr_handler)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        retention_actions = _cleanup_logs(log_dir, retention_days)
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        file_handler = RotatingFileHandler(
            log_dir / f"{_LOG_PREFIX}{today}.jsonl",
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(JSONFormatter())
        setattr(file_handler, _MANAGED_ATTR, True)
        logger.addHandler(file_handler)
        for action in retention_actions:
            logger.debug("log retention: %s", action, extra={"stage": "logging"})

    logger.propagate = propagate
    return logger
