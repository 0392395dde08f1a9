# === NAVMAP v1 ===
# {
#   "module": "tests.intermediary_download.test_pipeline",
#   "purpose": "Covers output naming, the per-version worker, and the bounded batch coordinator.",
#   "sections": [
#     {"id": "fixtures", "name": "Fixtures", "anchor": "FIX", "kind": "fixtures"},
#     {"id": "naming", "name": "Naming", "anchor": "NAME", "kind": "tests"},
#     {"id": "worker", "name": "Worker", "anchor": "WRK", "kind": "tests"},
#     {"id": "batch", "name": "Batch", "anchor": "BAT", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Covers output naming, the per-version worker, and the bounded batch coordinator.

Every test drives the pipeline through an in-memory ``fetch`` double, so no
network access is required.
"""

from __future__ import annotations

import json
import logging
import threading

import pytest

from MappingsToJSON.concurrency import CompletionCounter
from MappingsToJSON.IntermediaryDownload.emitter import emit
from MappingsToJSON.IntermediaryDownload.errors import (
    CatalogFetchError,
    FetchError,
    MalformedMappingFile,
    MissingMappingEntry,
    WriteError,
)
from MappingsToJSON.IntermediaryDownload.formats.tiny import decode
from MappingsToJSON.IntermediaryDownload.pipeline import (
    OutcomeStatus,
    PipelineContext,
    atomic_write_bytes,
    base_version,
    find_collisions,
    output_filename,
    process_version,
    run_batch,
    run_pipeline,
    run_version,
    sanitize_filename,
)
from MappingsToJSON.IntermediaryDownload.settings import (
    FetcherConfig,
    PipelineConfiguration,
    RepositoryConfiguration,
)
from tests.intermediary_download.builders import (
    BASE_URL,
    METADATA_URL,
    TINY_V1,
    FakeRepository,
    artifact_url,
    make_jar,
    metadata_xml,
)

# --- Fixtures ---


@pytest.fixture
def repository() -> RepositoryConfiguration:
    return RepositoryConfiguration(base_url=BASE_URL, metadata_url=METADATA_URL)


def _jar_for(tiny: str = TINY_V1) -> bytes:
    return make_jar({"mappings/mappings.tiny": tiny})


def _context(fetch, tmp_path, repository) -> PipelineContext:
    return PipelineContext(fetch=fetch, output_dir=tmp_path / "out", repository=repository)


def _config(tmp_path, **pipeline) -> FetcherConfig:
    return FetcherConfig(
        repository=RepositoryConfiguration(base_url=BASE_URL, metadata_url=METADATA_URL),
        pipeline=PipelineConfiguration(output_dir=tmp_path / "out", **pipeline),
    )


# --- Naming ---


@pytest.mark.parametrize(
    "version,expected",
    [
        ("1.20+build.1", "1.20.json"),
        ("1.14 Pre-Release 1", "1.14_Pre-Release_1.json"),
        ("20w14a", "20w14a.json"),
        ("1.16-rc1+build.1+extra", "1.16-rc1.json"),
        ("3D Shareware v1.34", "3D_Shareware_v1.34.json"),
    ],
)
def test_output_filename(version, expected):
    assert output_filename(version) == expected


def test_base_version_and_sanitize():
    assert base_version("1.19.4+build.7") == "1.19.4"
    assert base_version("1.19.4") == "1.19.4"
    assert sanitize_filename("a/b\\c:d") == "a_b_c_d"


def test_find_collisions():
    collisions = find_collisions(["1.20+build.1", "1.20+build.2", "1.19", "1.18"])

    assert collisions == {"1.20.json": ["1.20+build.1", "1.20+build.2"]}


def test_atomic_write_replaces_existing_file(tmp_path):
    target = tmp_path / "nested" / "1.20.json"
    atomic_write_bytes(target, b"old")

    atomic_write_bytes(target, b"new")

    assert target.read_bytes() == b"new"
    assert [p.name for p in target.parent.iterdir()] == ["1.20.json"]


def test_atomic_write_failure_raises_write_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    with pytest.raises(WriteError):
        atomic_write_bytes(blocker / "1.20.json", b"{}")


# --- Worker ---


def test_process_version_writes_json(tmp_path, repository):
    fetch = FakeRepository({artifact_url("1.20+build.1"): _jar_for()})
    context = _context(fetch, tmp_path, repository)

    path = process_version("1.20+build.1", context)

    assert path == tmp_path / "out" / "1.20.json"
    document = json.loads(path.read_bytes())
    assert document["classes"]["a"] == "net/minecraft/class_1"
    assert fetch.calls == [artifact_url("1.20+build.1")]


def test_process_version_missing_entry(tmp_path, repository):
    fetch = FakeRepository({artifact_url("1.20"): make_jar({"other.txt": "x"})})

    with pytest.raises(MissingMappingEntry):
        process_version("1.20", _context(fetch, tmp_path, repository))

    assert not (tmp_path / "out" / "1.20.json").exists()


def test_process_version_malformed_mapping(tmp_path, repository):
    fetch = FakeRepository({artifact_url("1.20"): _jar_for("not a tiny file\n")})

    with pytest.raises(MalformedMappingFile):
        process_version("1.20", _context(fetch, tmp_path, repository))


def test_process_version_uses_injected_entry_lister(tmp_path, repository):
    fetch = FakeRepository({artifact_url("1.20"): b"opaque"})
    context = PipelineContext(
        fetch=fetch,
        output_dir=tmp_path / "out",
        repository=repository,
        list_entries=lambda payload: [("mappings/mappings.tiny", TINY_V1.encode("utf-8"))],
    )

    path = process_version("1.20", context)

    assert json.loads(path.read_bytes())["fields"]["a"][0]["dstName"] == "field_1"


def test_run_version_success_increments_counter(tmp_path, repository, caplog):
    fetch = FakeRepository({artifact_url("1.20"): _jar_for()})
    counter = CompletionCounter(1)

    with caplog.at_level(logging.INFO, logger="MappingsToJSON.IntermediaryDownload"):
        outcome = run_version("1.20", _context(fetch, tmp_path, repository), counter)

    assert outcome.ok
    assert outcome.output_path == tmp_path / "out" / "1.20.json"
    assert counter.value == 1
    assert "Process: 1/1 - Version 1.20" in caplog.messages


def test_run_version_failure_is_contained(tmp_path, repository, caplog):
    counter = CompletionCounter(1)

    with caplog.at_level(logging.INFO, logger="MappingsToJSON.IntermediaryDownload"):
        outcome = run_version("1.20", _context(FakeRepository({}), tmp_path, repository), counter)

    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.error_type == "FetchError"
    assert counter.value == 1
    errors = [record for record in caplog.records if record.levelno == logging.ERROR]
    assert len(errors) == 1
    assert errors[0].getMessage().startswith("Process: 1/1 - Version 1.20 Error!!:")


def test_run_version_contains_unexpected_exceptions(tmp_path, repository, caplog):
    fetch = FakeRepository({artifact_url("1.20"): RuntimeError("boom")})
    counter = CompletionCounter(1)

    with caplog.at_level(logging.INFO, logger="MappingsToJSON.IntermediaryDownload"):
        outcome = run_version("1.20", _context(fetch, tmp_path, repository), counter)

    assert not outcome.ok
    assert outcome.error == "RuntimeError: boom"
    assert counter.value == 1
    (failure,) = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert failure.exc_info is not None
    assert failure.exc_info[0] is RuntimeError
    assert "Traceback" in caplog.text


def test_run_version_records_version_on_error(tmp_path, repository):
    error = FetchError("HTTP 500", status_code=500)
    fetch = FakeRepository({artifact_url("1.20"): error})

    run_version("1.20", _context(fetch, tmp_path, repository), CompletionCounter(1))

    assert error.version == "1.20"


# --- Batch ---


def test_run_batch_isolates_failures(tmp_path, repository):
    fetch = FakeRepository(
        {
            artifact_url("1.18"): _jar_for(),
            artifact_url("1.20"): _jar_for(),
        }
    )

    summary = run_batch(
        ["1.18", "1.19", "1.20"], _context(fetch, tmp_path, repository), workers=2, timeout=30
    )

    assert summary.total == 3
    assert summary.succeeded == 2
    assert summary.failed == 1
    assert not summary.timed_out
    assert [outcome.version for outcome in summary.outcomes] == ["1.18", "1.19", "1.20"]
    assert sorted(p.name for p in (tmp_path / "out").iterdir()) == ["1.18.json", "1.20.json"]


def test_failed_last_version_still_reports_full_count(tmp_path, repository, caplog):
    fetch = FakeRepository({artifact_url("1.18"): _jar_for()})

    with caplog.at_level(logging.INFO, logger="MappingsToJSON.IntermediaryDownload"):
        summary = run_batch(
            ["1.18", "1.19"], _context(fetch, tmp_path, repository), workers=1, timeout=30
        )

    assert summary.failed == 1
    progress = [m for m in caplog.messages if m.startswith("Process: ")]
    assert progress[0] == "Process: 1/2 - Version 1.18"
    assert progress[1].startswith("Process: 2/2 - Version 1.19 Error!!: HTTP 404")
    failure = next(r for r in caplog.records if r.levelno == logging.ERROR)
    assert failure.exc_info is None


def test_run_batch_with_fewer_workers_than_versions(tmp_path, repository, caplog):
    versions = [f"1.{minor}" for minor in range(7)]
    fetch = FakeRepository({artifact_url(version): _jar_for() for version in versions})

    with caplog.at_level(logging.INFO, logger="MappingsToJSON.IntermediaryDownload"):
        summary = run_batch(versions, _context(fetch, tmp_path, repository), workers=3, timeout=30)

    assert summary.succeeded == 7
    completed = sorted(
        record.completed for record in caplog.records if hasattr(record, "completed")
    )
    assert completed == list(range(1, 8))
    assert sorted(fetch.calls) == sorted(artifact_url(version) for version in versions)


def test_run_batch_empty_catalog(tmp_path, repository):
    summary = run_batch([], _context(FakeRepository({}), tmp_path, repository), workers=2, timeout=1)

    assert summary.total == 0
    assert summary.outcomes == []
    assert not (tmp_path / "out").exists()


def test_run_batch_collision_keeps_one_complete_document(tmp_path, repository, caplog):
    other_tiny = "tiny\t2\t0\tofficial\tintermediary\nc\tzz\tnet/minecraft/class_99\n"
    expected = [
        json.loads(emit(decode(TINY_V1.encode("utf-8")))),
        json.loads(emit(decode(other_tiny.encode("utf-8")))),
    ]
    both_fetching = threading.Barrier(2)

    class SynchronizedRepository(FakeRepository):
        def __call__(self, url: str) -> bytes:
            payload = super().__call__(url)
            both_fetching.wait(10)
            return payload

    fetch = SynchronizedRepository(
        {
            artifact_url("1.20+build.1"): _jar_for(),
            artifact_url("1.20+build.2"): _jar_for(other_tiny),
        }
    )

    with caplog.at_level(logging.WARNING, logger="MappingsToJSON.IntermediaryDownload"):
        summary = run_batch(
            ["1.20+build.1", "1.20+build.2"],
            _context(fetch, tmp_path, repository),
            workers=2,
            timeout=30,
        )

    assert summary.succeeded == 2
    assert any("share output file 1.20.json" in message for message in caplog.messages)
    out = tmp_path / "out"
    assert json.loads((out / "1.20.json").read_bytes()) in expected
    assert list(out.glob(".1.20.json.*.part")) == []
    assert [p.name for p in out.iterdir()] == ["1.20.json"]


def test_run_batch_deadline_abandons_unfinished_work(tmp_path, repository):
    release = threading.Event()
    started = threading.Event()

    class BlockingRepository(FakeRepository):
        def __call__(self, url: str) -> bytes:
            if url == artifact_url("slow"):
                started.set()
                release.wait(10)
            return super().__call__(url)

    fetch = BlockingRepository({artifact_url("slow"): _jar_for(), artifact_url("queued"): _jar_for()})
    try:
        summary = run_batch(
            ["slow", "queued"], _context(fetch, tmp_path, repository), workers=1, timeout=0.2
        )
    finally:
        release.set()

    assert started.is_set()
    assert summary.timed_out
    assert summary.unfinished == ["slow", "queued"]
    assert summary.outcomes == []
    assert artifact_url("queued") not in fetch.calls


def test_run_pipeline_end_to_end(tmp_path, caplog):
    fetch = FakeRepository(
        {
            METADATA_URL: metadata_xml("1.19", "1.20+build.1").encode("utf-8"),
            artifact_url("1.19"): _jar_for(),
            artifact_url("1.20+build.1"): _jar_for(),
        }
    )

    with caplog.at_level(logging.INFO, logger="MappingsToJSON.IntermediaryDownload"):
        summary = run_pipeline(_config(tmp_path, workers=2), fetch=fetch)

    assert summary.succeeded == 2
    assert fetch.calls[0] == METADATA_URL
    assert "Found 2 intermediary versions" in caplog.messages
    assert "Build Successful" in caplog.messages
    assert sorted(p.name for p in (tmp_path / "out").iterdir()) == ["1.19.json", "1.20.json"]


def test_run_pipeline_only_filters_versions(tmp_path):
    fetch = FakeRepository(
        {
            METADATA_URL: metadata_xml("1.18", "1.19").encode("utf-8"),
            artifact_url("1.19"): _jar_for(),
        }
    )

    summary = run_pipeline(_config(tmp_path), fetch=fetch, only=["1.19", "9.9"])

    assert summary.total == 1
    assert summary.succeeded == 1
    assert artifact_url("1.18") not in fetch.calls


def test_run_pipeline_catalog_failure_dispatches_nothing(tmp_path):
    fetch = FakeRepository({})

    with pytest.raises(CatalogFetchError):
        run_pipeline(_config(tmp_path), fetch=fetch)

    assert fetch.calls == [METADATA_URL]
    assert not (tmp_path / "out").exists()
