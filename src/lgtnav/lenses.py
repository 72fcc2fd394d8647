"""Code lenses rendered from the cached metrics and test-result artifacts.

Cached artifacts are read as they are, never consumed: they are rendered on
every code lens request until a fresh run replaces them.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from lsprotocol.types import CodeLens, Command, Position, Range

from lgtnav.artifacts import ARTIFACT_NAMES, ArtifactKind, remove_quietly, resolve_cached
from lgtnav.hierarchy import path_to_uri
from lgtnav.records import (
    FileStatusRecord,
    MetricRecord,
    Record,
    TestRecord,
    TestSummaryRecord,
    dedup_latest,
    filter_for_file,
    normalize_path,
    parse,
    paths_equal,
)
from lgtnav.staleness import ResultKind, StalenessTracker

logger = logging.getLogger(__name__)

COMPUTE_METRICS_COMMAND = "lgtnav.computeMetrics"
RUN_TESTS_COMMAND = "lgtnav.runTests"
METRICS_TITLE = "Cyclomatic complexity: {score}"


def _read_cached(root: Path | None, doc_path: Path, kind: ArtifactKind) -> str | None:
    artifact = resolve_cached(root, doc_path.parent, kind)
    if artifact is None:
        return None
    try:
        return artifact.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.warning("Cannot read %s: %s", artifact, exc)
        return None


def _lens(line: int, title: str, command: str, uri: str, tooltip: str | None = None) -> CodeLens:
    start = Position(line=max(line - 1, 0), character=0)
    return CodeLens(
        range=Range(start=start, end=start),
        command=Command(title=title, command=command, arguments=[uri]),
        data={"tooltip": tooltip} if tooltip else None,
    )


def metrics_lenses(
    doc_path: Path,
    root: Path | None,
    tracker: StalenessTracker,
    uri: str | None = None,
) -> list[CodeLens]:
    """One lens per entity score recorded for ``doc_path``, in artifact order."""
    text = _read_cached(root, doc_path, ArtifactKind.METRICS)
    if text is None:
        return []
    uri = uri or path_to_uri(doc_path)
    file = doc_path.as_posix()
    lenses: list[CodeLens] = []
    for record in filter_for_file(parse(text, ArtifactKind.METRICS), file):
        assert isinstance(record, MetricRecord)
        title = tracker.annotate(
            METRICS_TITLE.format(score=record.score), ResultKind.METRICS, uri
        )
        lenses.append(
            _lens(record.line, title, COMPUTE_METRICS_COMMAND, uri, "Re-compute metrics")
        )
    return lenses


def _test_key(record: Record) -> tuple[object, ...]:
    if isinstance(record, TestRecord):
        return ("test", record.object, record.test)
    if isinstance(record, TestSummaryRecord):
        return ("summary", record.object)
    return ("file", record.line)


def _test_title(record: TestRecord | TestSummaryRecord | FileStatusRecord) -> str:
    if isinstance(record, TestRecord) and record.reason:
        return f"{record.status} ({record.reason})"
    return record.status


def unit_test_lenses(
    doc_path: Path,
    root: Path | None,
    tracker: StalenessTracker,
    uri: str | None = None,
) -> list[CodeLens]:
    text = _read_cached(root, doc_path, ArtifactKind.TESTS)
    if text is None:
        return []
    uri = uri or path_to_uri(doc_path)
    records = dedup_latest(
        filter_for_file(parse(text, ArtifactKind.TESTS), doc_path.as_posix()), _test_key
    )
    lenses: list[CodeLens] = []
    for record in records:
        assert isinstance(record, (TestRecord, TestSummaryRecord, FileStatusRecord))
        title = tracker.annotate(_test_title(record), ResultKind.TESTS, uri)
        lenses.append(_lens(record.line, title, RUN_TESTS_COMMAND, uri, "Re-run tests"))
    return lenses


def _belongs_to(line: str, file: str) -> bool:
    head, sep, _ = line.partition(";")
    if not sep or head[:5].lower() != "file:":
        return False
    return paths_equal(head[5:], file)


def prune_file_records(artifact: Path, file: Path | str) -> bool:
    """Drop every line recorded for ``file``; delete the artifact once empty.

    Returns whether the artifact changed.
    """
    try:
        lines = artifact.read_text(encoding="utf-8", errors="replace").splitlines()
    except FileNotFoundError:
        return False
    target = normalize_path(Path(file).as_posix())
    kept = [line for line in lines if not _belongs_to(line, target)]
    if len(kept) == len(lines):
        return False
    if any(line.strip() for line in kept):
        artifact.write_text("\n".join(kept) + "\n", encoding="utf-8")
    else:
        remove_quietly(artifact)
    logger.debug("pruned %d record(s) for %s from %s", len(lines) - len(kept), target, artifact)
    return True


def prune_metrics(doc_path: Path, roots: Iterable[Path | None]) -> list[Path]:
    """Prune ``doc_path`` from every metrics artifact that may hold its scores."""
    name = ARTIFACT_NAMES[ArtifactKind.METRICS].result
    candidates: list[Path] = [doc_path.parent / name]
    for root in roots:
        if root is not None:
            candidates.append(Path(root) / name)
    changed: list[Path] = []
    for artifact in dict.fromkeys(candidates):
        if prune_file_records(artifact, doc_path):
            changed.append(artifact)
    return changed
