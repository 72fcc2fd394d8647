"""Decoding of the engine's ``Tag:value;Tag:value`` artifact lines.

Each artifact kind has its own record type and its own compiled pattern. The
``File`` tag is matched case-insensitively because some Prolog backends
down-case paths on case-insensitive filesystems; every other tag is
case-sensitive. Lines that do not match are dropped.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Hashable, Iterable, Iterator, TypeAlias, TypeVar

from lgtnav.artifacts import ArtifactKind
from lgtnav.exceptions import MalformedRecord
from lgtnav.invariants import never

logger = logging.getLogger(__name__)

ENTITY_TYPES = ("object", "protocol", "category")

_FILE = r"(?i:File):"

CALL_PATTERN = re.compile(
    rf"^Name:(?P<name>.+?);{_FILE}(?P<file>.+);Line:(?P<line>\d+)\s*$"
)
ENTITY_PATTERN = re.compile(
    rf"^Type:(?P<type>{'|'.join(ENTITY_TYPES)});Name:(?P<name>.+?);"
    rf"{_FILE}(?P<file>.+);Line:(?P<line>\d+)\s*$"
)
LOCATION_PATTERN = re.compile(rf"^{_FILE}(?P<file>.+);Line:(?P<line>\d+)\s*$")
TEST_PATTERN = re.compile(
    rf"^{_FILE}(?P<file>.+?);Line:(?P<line>\d+);Object:(?P<object>.+?);"
    r"Test:(?P<test>.+?);Status:(?P<status>.*?)(?:;Reason:(?P<reason>.*?))?\s*$"
)
TEST_SUMMARY_PATTERN = re.compile(
    rf"^{_FILE}(?P<file>.+?);Line:(?P<line>\d+);Object:(?P<object>.+?);"
    r"Status:(?P<status>.*?)\s*$"
)
FILE_STATUS_PATTERN = re.compile(
    rf"^{_FILE}(?P<file>.+?);Line:(?P<line>\d+);Status:(?P<status>.*?)\s*$"
)
METRIC_PATTERN = re.compile(
    rf"^{_FILE}(?P<file>.+);Line:(?P<line>\d+);Score:(?P<score>\d+)\s*$"
)

_SLASH_RUN = re.compile(r"/{2,}")


@dataclass(frozen=True)
class CallRecord:
    name: str
    file: str
    line: int


@dataclass(frozen=True)
class EntityRecord:
    entity_type: str
    name: str
    file: str
    line: int


@dataclass(frozen=True)
class LocationRecord:
    file: str
    line: int


@dataclass(frozen=True)
class TestRecord:
    __test__ = False

    file: str
    line: int
    object: str
    test: str
    status: str
    reason: str | None = None


@dataclass(frozen=True)
class TestSummaryRecord:
    __test__ = False

    file: str
    line: int
    object: str
    status: str


@dataclass(frozen=True)
class FileStatusRecord:
    file: str
    line: int
    status: str


@dataclass(frozen=True)
class MetricRecord:
    file: str
    line: int
    score: int


Record: TypeAlias = (
    CallRecord
    | EntityRecord
    | LocationRecord
    | TestRecord
    | TestSummaryRecord
    | FileStatusRecord
    | MetricRecord
)
R = TypeVar("R")


def normalize_path(path: str) -> str:
    """Collapse the doubled slashes some backends emit (``//c/...``)."""
    return _SLASH_RUN.sub("/", path.strip().replace("\\", "/"))


def paths_equal(left: str, right: str) -> bool:
    return normalize_path(left).casefold() == normalize_path(right).casefold()


def _line_number(raw: str, kind: ArtifactKind, text: str) -> int:
    value = int(raw)
    if value < 1:
        raise MalformedRecord(kind.value, text)
    return value


def _decode_line(kind: ArtifactKind, text: str) -> Record:
    if kind in (ArtifactKind.CALLERS, ArtifactKind.CALLEES):
        match = CALL_PATTERN.match(text)
        if match:
            return CallRecord(
                name=match["name"],
                file=normalize_path(match["file"]),
                line=_line_number(match["line"], kind, text),
            )
    elif kind in (ArtifactKind.ANCESTORS, ArtifactKind.DESCENDANTS):
        match = ENTITY_PATTERN.match(text)
        if match:
            return EntityRecord(
                entity_type=match["type"],
                name=match["name"],
                file=normalize_path(match["file"]),
                line=_line_number(match["line"], kind, text),
            )
    elif kind in (ArtifactKind.REFERENCES, ArtifactKind.TYPE_DEFINITION):
        match = LOCATION_PATTERN.match(text)
        if match:
            return LocationRecord(
                file=normalize_path(match["file"]),
                line=_line_number(match["line"], kind, text),
            )
    elif kind is ArtifactKind.TESTS:
        match = TEST_PATTERN.match(text)
        if match:
            return TestRecord(
                file=normalize_path(match["file"]),
                line=_line_number(match["line"], kind, text),
                object=match["object"],
                test=match["test"],
                status=match["status"],
                reason=match["reason"],
            )
        match = TEST_SUMMARY_PATTERN.match(text)
        if match:
            return TestSummaryRecord(
                file=normalize_path(match["file"]),
                line=_line_number(match["line"], kind, text),
                object=match["object"],
                status=match["status"],
            )
        match = FILE_STATUS_PATTERN.match(text)
        if match:
            return FileStatusRecord(
                file=normalize_path(match["file"]),
                line=_line_number(match["line"], kind, text),
                status=match["status"],
            )
    elif kind is ArtifactKind.METRICS:
        match = METRIC_PATTERN.match(text)
        if match:
            return MetricRecord(
                file=normalize_path(match["file"]),
                line=_line_number(match["line"], kind, text),
                score=int(match["score"]),
            )
    else:
        never("unknown artifact kind", kind=kind)
    raise MalformedRecord(kind.value, text)


def parse(text: str | bytes, kind: ArtifactKind) -> Iterator[Record]:
    """Lazily decode every well-formed line of an artifact."""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    for raw_line in text.splitlines():
        if not raw_line.strip():
            continue
        try:
            yield _decode_line(kind, raw_line)
        except MalformedRecord as exc:
            logger.debug("%s", exc)


def filter_for_file(records: Iterable[R], file: str) -> Iterator[R]:
    for record in records:
        if paths_equal(getattr(record, "file"), file):
            yield record


def dedup_latest(records: Iterable[R], key: Callable[[R], Hashable]) -> list[R]:
    """Keep one record per key; a later duplicate replaces the earlier one in place."""
    latest: dict[Hashable, R] = {}
    for record in records:
        latest[key(record)] = record
    return list(latest.values())
