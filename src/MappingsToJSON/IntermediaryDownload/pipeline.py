# === NAVMAP v1 ===
# {
#   "module": "MappingsToJSON.IntermediaryDownload.pipeline",
#   "purpose": "Per-version fetch/decode/emit worker and the bounded-concurrency batch coordinator",
#   "sections": [
#     {"id": "naming", "name": "Version naming helpers", "anchor": "NAME", "kind": "helpers"},
#     {"id": "context", "name": "PipelineContext", "anchor": "CTX", "kind": "class"},
#     {"id": "worker", "name": "Version worker", "anchor": "WRK", "kind": "api"},
#     {"id": "coordinator", "name": "Batch coordinator", "anchor": "BAT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Export pipeline: one independent unit of work per artifact version.

``process_version`` performs the fetch → locate → decode → emit → write steps
for a single version and raises a :class:`VersionError` subclass on failure.
``run_version`` is the worker boundary: it converts any failure into a logged
:class:`VersionOutcome` and always advances the shared
:class:`~MappingsToJSON.concurrency.CompletionCounter`.  ``run_batch`` fans the
versions out over a fixed-size thread pool and waits for them within a
deadline; work still running when the deadline passes is abandoned, not
interrupted.
"""

from __future__ import annotations

import enum
import logging
import os
import re
import tempfile
from collections import defaultdict
from concurrent.futures import Future, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from MappingsToJSON.concurrency import CompletionCounter, create_executor

from . import archives
from .archives import ArchiveEntries, find_entry
from .catalog import fetch_catalog
from .emitter import emit
from .errors import MalformedMappingFile, VersionError, WriteError
from .formats.tiny import decode
from .logging_utils import LOGGER_NAME
from .net import Fetch, HttpFetcher
from .settings import FetcherConfig, NamespaceConfiguration, RepositoryConfiguration

__all__ = [
    "base_version",
    "sanitize_filename",
    "output_filename",
    "atomic_write_bytes",
    "PipelineContext",
    "OutcomeStatus",
    "VersionOutcome",
    "BatchSummary",
    "process_version",
    "run_version",
    "find_collisions",
    "run_batch",
    "run_pipeline",
]

LOGGER = logging.getLogger(LOGGER_NAME)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9.-]")

# --- Version naming helpers ---------------------------------------------------


def base_version(version: str) -> str:
    """Return the part of ``version`` before the first ``+``."""

    return version.split("+", 1)[0]


def sanitize_filename(name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9.-]`` with ``_``."""

    return _UNSAFE_FILENAME_CHARS.sub("_", name)


def output_filename(version: str) -> str:
    """Return the JSON file name written for ``version``."""

    return f"{sanitize_filename(base_version(version))}.json"


def atomic_write_bytes(path: Path, payload: bytes) -> None:
    """Atomically replace ``path`` with ``payload`` to avoid partial writes.

    Concurrent writers targeting the same path each rename a complete temporary
    file into place, so the last rename wins and readers never observe
    interleaved content.

    Raises:
        WriteError: If the directory or file cannot be written.
    """

    temp_name: Optional[str] = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "wb",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".part",
            delete=False,
        ) as handle:
            temp_name = handle.name
            handle.write(payload)
            handle.flush()
            try:
                os.fsync(handle.fileno())
            except OSError:
                # Some filesystems do not support fsync.
                pass
        os.replace(temp_name, path)
    except OSError as exc:
        if temp_name is not None:
            Path(temp_name).unlink(missing_ok=True)
        raise WriteError(f"cannot write {path}: {exc}") from exc


# --- PipelineContext ----------------------------------------------------------


@dataclass(frozen=True)
class PipelineContext:
    """Collaborators and settings shared read-only by every worker task."""

    fetch: Fetch
    output_dir: Path
    repository: RepositoryConfiguration = field(default_factory=RepositoryConfiguration)
    namespaces: NamespaceConfiguration = field(default_factory=NamespaceConfiguration)
    list_entries: ArchiveEntries = archives.list_entries

    @classmethod
    def from_config(
        cls,
        config: FetcherConfig,
        fetch: Fetch,
        *,
        list_entries: ArchiveEntries = archives.list_entries,
    ) -> "PipelineContext":
        return cls(
            fetch=fetch,
            output_dir=Path(config.pipeline.output_dir),
            repository=config.repository,
            namespaces=config.namespaces,
            list_entries=list_entries,
        )

    def output_path(self, version: str) -> Path:
        return self.output_dir / output_filename(version)


# --- Version worker -----------------------------------------------------------


class OutcomeStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class VersionOutcome:
    """Result of one version's unit of work."""

    version: str
    status: OutcomeStatus
    output_path: Optional[Path] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS


def process_version(version: str, context: PipelineContext) -> Path:
    """Fetch, decode, and export one version; return the written path.

    Raises:
        FetchError: If the artifact cannot be downloaded.
        MissingMappingEntry: If the archive lacks the mapping entry.
        MalformedMappingFile: If the mapping file cannot be decoded.
        WriteError: If the JSON document cannot be written.
    """

    url = context.repository.artifact_url(version)
    extra = {"stage": "fetch", "version": version, "url": url}
    LOGGER.debug("downloading artifact", extra=extra)
    payload = context.fetch(url)

    entry = find_entry(context.list_entries(payload), context.repository.mapping_entry)
    try:
        model = decode(
            entry,
            source_namespace=context.namespaces.source,
            target_namespace=context.namespaces.target,
        )
    except (ValueError, UnicodeError) as exc:
        raise MalformedMappingFile(str(exc), version=version) from exc
    LOGGER.debug(
        "mappings decoded",
        extra={
            "stage": "decode",
            "version": version,
            "classes": len(model.classes),
            "methods": model.method_count,
            "fields": model.field_count,
        },
    )

    path = context.output_path(version)
    atomic_write_bytes(path, emit(model))
    return path


def run_version(
    version: str,
    context: PipelineContext,
    counter: CompletionCounter,
) -> VersionOutcome:
    """Run :func:`process_version` and convert any failure into an outcome.

    Failures never propagate: per-version errors are logged on the error
    stream and the batch carries on.  The shared counter advances for both
    successes and failures.
    """

    unexpected: Optional[BaseException] = None
    try:
        path = process_version(version, context)
    except VersionError as exc:
        if exc.version is None:
            exc.version = version
        outcome = VersionOutcome(
            version=version,
            status=OutcomeStatus.FAILED,
            error=str(exc),
            error_type=type(exc).__name__,
        )
    except Exception as exc:  # pylint: disable=broad-except
        unexpected = exc
        outcome = VersionOutcome(
            version=version,
            status=OutcomeStatus.FAILED,
            error=f"{type(exc).__name__}: {exc}",
            error_type=type(exc).__name__,
        )
    else:
        outcome = VersionOutcome(version=version, status=OutcomeStatus.SUCCESS, output_path=path)

    completed = counter.increment()
    extra = {"stage": "export", "version": version, "completed": completed}
    if outcome.ok:
        LOGGER.info(
            "Process: %d/%d - Version %s", completed, counter.total, version, extra=extra
        )
    else:
        LOGGER.error(
            "Process: %d/%d - Version %s Error!!: %s",
            completed,
            counter.total,
            version,
            outcome.error,
            exc_info=unexpected,
            extra=extra,
        )
    return outcome


# --- Batch coordinator --------------------------------------------------------


@dataclass
class BatchSummary:
    """Aggregate of a batch run."""

    total: int
    outcomes: List[VersionOutcome] = field(default_factory=list)
    unfinished: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.ok)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.ok)

    @property
    def timed_out(self) -> bool:
        return bool(self.unfinished)


def find_collisions(versions: Iterable[str]) -> Dict[str, List[str]]:
    """Return output file names shared by more than one version."""

    by_name: Dict[str, List[str]] = defaultdict(list)
    for version in versions:
        by_name[output_filename(version)].append(version)
    return {name: members for name, members in by_name.items() if len(members) > 1}


def run_batch(
    versions: Sequence[str],
    context: PipelineContext,
    *,
    workers: int,
    timeout: Optional[float],
) -> BatchSummary:
    """Process ``versions`` on a pool of ``workers`` threads.

    Blocks until every version completes or ``timeout`` seconds elapse.  On
    timeout, queued versions are cancelled and running ones are left to
    finish in the background; both are reported in
    :attr:`BatchSummary.unfinished`.
    """

    versions = list(versions)
    summary = BatchSummary(total=len(versions))
    if not versions:
        return summary

    for name, members in find_collisions(versions).items():
        LOGGER.warning(
            "versions %s share output file %s; the last one to finish wins",
            ", ".join(members),
            name,
            extra={"stage": "plan"},
        )

    counter = CompletionCounter(len(versions))
    executor = create_executor(workers)
    LOGGER.debug("dispatching batch", extra={"stage": "plan", "workers": workers})
    submitted: List[Tuple[Future[VersionOutcome], str]] = [
        (executor.submit(run_version, version, context, counter), version)
        for version in versions
    ]
    _, pending = wait([future for future, _ in submitted], timeout=timeout)
    # Running tasks are not interrupted; only queued ones are cancelled.
    executor.shutdown(wait=not pending, cancel_futures=True)

    for future, version in submitted:
        if future in pending:
            summary.unfinished.append(version)
            continue
        exc = future.exception()
        if exc is not None:
            summary.outcomes.append(
                VersionOutcome(
                    version=version,
                    status=OutcomeStatus.FAILED,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
            )
        else:
            summary.outcomes.append(future.result())

    if summary.unfinished:
        LOGGER.warning(
            "batch deadline reached with %d version(s) unfinished",
            len(summary.unfinished),
            extra={"stage": "wait", "timeout_sec": timeout},
        )
    return summary


def run_pipeline(
    config: FetcherConfig,
    *,
    fetch: Optional[Fetch] = None,
    list_entries: ArchiveEntries = archives.list_entries,
    only: Optional[Iterable[str]] = None,
) -> BatchSummary:
    """Resolve the catalog and export every listed version.

    ``only`` restricts the batch to the given version identifiers (in catalog
    order).  Catalog errors propagate before any work is dispatched.
    """

    owned: Optional[HttpFetcher] = None
    summary: Optional[BatchSummary] = None
    if fetch is None:
        owned = HttpFetcher(config.http)
        fetch = owned
    try:
        catalog = fetch_catalog(fetch, config.repository.metadata_url)
        versions = catalog.versions
        if only is not None:
            wanted = set(only)
            versions = [version for version in versions if version in wanted]
        LOGGER.info(
            "Found %d intermediary versions",
            len(versions),
            extra={"stage": "catalog"},
        )
        context = PipelineContext.from_config(config, fetch, list_entries=list_entries)
        summary = run_batch(
            versions,
            context,
            workers=config.pipeline.workers,
            timeout=config.pipeline.timeout_sec,
        )
        LOGGER.info(
            "Build Successful",
            extra={
                "stage": "done",
                "extra_fields": {
                    "succeeded": summary.succeeded,
                    "failed": summary.failed,
                    "unfinished": len(summary.unfinished),
                },
            },
        )
        return summary
    finally:
        # Abandoned workers may still be using the client after a timeout.
        if owned is not None and (summary is None or not summary.timed_out):
            owned.close()
