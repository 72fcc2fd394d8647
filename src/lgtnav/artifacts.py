"""Artifact files exchanged with the analysis engine.

The engine writes each result to a well-known file under the workspace root
and then touches a ``_done`` sentinel. Results are one-shot messages: the
server claims a result file by renaming it to a private name, reads it, and
deletes it, so at most one consumer ever sees a given artifact.
"""

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Literal

from lgtnav.exceptions import CleanupFailure, NoWorkspaceError

logger = logging.getLogger(__name__)

RESERVED_PREFIX = ".vscode_"


class ArtifactKind(str, Enum):
    CALLERS = "callers"
    CALLEES = "callees"
    ANCESTORS = "ancestors"
    DESCENDANTS = "descendants"
    REFERENCES = "references"
    TYPE_DEFINITION = "type_definition"
    TESTS = "tests"
    METRICS = "metrics"


@dataclass(frozen=True)
class ArtifactNames:
    result: str
    sentinel: str
    one_shot: bool = True


ARTIFACT_NAMES: dict[ArtifactKind, ArtifactNames] = {
    ArtifactKind.CALLERS: ArtifactNames(".vscode_callers", ".vscode_callers_done"),
    ArtifactKind.CALLEES: ArtifactNames(".vscode_callees", ".vscode_callees_done"),
    ArtifactKind.ANCESTORS: ArtifactNames(".vscode_ancestors", ".vscode_ancestors_done"),
    ArtifactKind.DESCENDANTS: ArtifactNames(
        ".vscode_descendants", ".vscode_descendants_done"
    ),
    ArtifactKind.REFERENCES: ArtifactNames(".vscode_references", ".vscode_references_done"),
    ArtifactKind.TYPE_DEFINITION: ArtifactNames(
        ".vscode_type_definition", ".vscode_type_definition_done"
    ),
    # Cached results are rendered repeatedly and never consumed.
    ArtifactKind.TESTS: ArtifactNames(".vscode_test_results", ".vscode_tests_done", False),
    ArtifactKind.METRICS: ArtifactNames(
        ".vscode_metrics_results", ".vscode_metrics_done", False
    ),
}

# Engine scratch files that are never results but can be left behind.
_SCRATCH_NAMES = (
    ".vscode_loading_done",
    ".vscode_make_done",
    ".vscode_tester_output",
    ".vscode_doclet_output",
)


def _reserved_names() -> tuple[str, ...]:
    names: list[str] = []
    for entry in ARTIFACT_NAMES.values():
        names.append(entry.sentinel)
        if entry.one_shot:
            names.append(entry.result)
    names.extend(_SCRATCH_NAMES)
    return tuple(names)


RESERVED_NAMES: tuple[str, ...] = _reserved_names()


class _Missing(Enum):
    NOT_FOUND = "not-found"

    def __bool__(self) -> bool:
        return False


NOT_FOUND: Literal[_Missing.NOT_FOUND] = _Missing.NOT_FOUND


def resolve(root: Path | str | None, name: str) -> Path:
    if root is None or str(root) == "":
        raise NoWorkspaceError(f"cannot resolve {name}")
    return Path(root) / name


def artifact_paths(root: Path | str | None, kind: ArtifactKind) -> tuple[Path, Path]:
    names = ARTIFACT_NAMES[kind]
    return resolve(root, names.result), resolve(root, names.sentinel)


def resolve_cached(
    root: Path | str | None, source_dir: Path, kind: ArtifactKind
) -> Path | None:
    """Find a cached result, root-level first, then next to the source file."""
    name = ARTIFACT_NAMES[kind].result
    candidates: list[Path] = []
    if root is not None and str(root) != "":
        candidates.append(Path(root) / name)
    candidates.append(source_dir / name)
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def remove_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        failure = CleanupFailure(path, str(exc))
        logger.error("%s", failure)


def cleanup_all(root: Path | str | None, names: Iterable[str] = RESERVED_NAMES) -> list[Path]:
    """Delete every file called one of ``names`` below ``root``.

    Housekeeping only: failures are logged and skipped.
    """
    if root is None or str(root) == "":
        return []
    base = Path(root)
    if not base.is_dir():
        logger.debug("Skipping cleanup of missing directory %s", base)
        return []
    wanted = set(names)
    removed: list[Path] = []
    for name in sorted(wanted):
        for path in sorted(base.rglob(name)):
            if not path.is_file():
                continue
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.error("%s", CleanupFailure(path, str(exc)))
                continue
            logger.debug("Deleted old temporary file: %s", path)
            removed.append(path)
    return removed


def consume_once(path: Path) -> bytes | Literal[_Missing.NOT_FOUND]:
    """Read and delete ``path`` in one step.

    Renaming the file to a unique private name claims it: a concurrent or
    later consumer sees ``NOT_FOUND``, never partial content.
    """
    claimed = path.with_name(f"{path.name}.{os.getpid()}.{uuid.uuid4().hex}.claimed")
    try:
        os.replace(path, claimed)
    except FileNotFoundError:
        return NOT_FOUND
    except OSError as exc:
        # Some filesystems refuse the rename on a file still held open.
        logger.warning("Cannot claim %s (%s), reading in place", path, exc)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return NOT_FOUND
        remove_quietly(path)
        return data
    try:
        return claimed.read_bytes()
    finally:
        remove_quietly(claimed)
