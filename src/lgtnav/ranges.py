"""Re-derive exact column spans from "line N, symbol S" facts.

The engine only reports a 1-based line and a symbol, never a column. Columns
are recovered by re-reading the live file when the response is built, so a
file edited since the analysis ran can drift; that is accepted in exchange
for not persisting offsets across processes. Every function here degrades to
a zero-width range at the start of the line instead of raising.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from lsprotocol.types import Position, Range

from lgtnav.exceptions import RangeReconstructionFailure

logger = logging.getLogger(__name__)

_LINE_BREAK = re.compile(r"\r?\n")
_ARITY_SUFFIX = re.compile(r"//?\d+$")
_ENTITY_DIRECTIVE = r"\b(?:object|protocol|category)\(\s*"


@dataclass(frozen=True)
class LocatedRange:
    range: Range
    selection_range: Range


@dataclass
class SourceLines:
    """Per-response memo of source files, so one artifact reads each file once."""

    _lines: dict[Path, list[str] | None] = field(default_factory=dict)

    def get(self, path: Path) -> list[str] | None:
        if path not in self._lines:
            self._lines[path] = read_source_lines(path)
        return self._lines[path]


def read_source_lines(path: Path) -> list[str] | None:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.debug("Cannot read %s: %s", path, exc)
        return None
    return _LINE_BREAK.split(text)


def bare_name(symbol: str) -> str:
    """``list::append/3`` -> ``append``; ``phrase//2`` -> ``phrase``."""
    name = _ARITY_SUFFIX.sub("", symbol.strip())
    if "::" in name:
        name = name.rsplit("::", 1)[1]
    if name.startswith("^^"):
        name = name[2:]
    return name.strip()


def zero_width(index: int) -> LocatedRange:
    point = Position(line=max(index, 0), character=0)
    empty = Range(start=point, end=point)
    return LocatedRange(range=empty, selection_range=empty)


def _line_text(path: Path, index: int, sources: SourceLines | None) -> str | None:
    lines = sources.get(path) if sources is not None else read_source_lines(path)
    if lines is None:
        logger.debug("%s", RangeReconstructionFailure(path, index + 1, "unreadable file"))
        return None
    if not 0 <= index < len(lines):
        logger.debug("%s", RangeReconstructionFailure(path, index + 1, "line out of range"))
        return None
    return lines[index]


def _span(index: int, text: str, start: int, end: int) -> LocatedRange:
    return LocatedRange(
        range=Range(
            start=Position(line=index, character=0),
            end=Position(line=index, character=len(text)),
        ),
        selection_range=Range(
            start=Position(line=index, character=start),
            end=Position(line=index, character=end),
        ),
    )


def locate(
    path: Path,
    line: int,
    symbol: str,
    *,
    sources: SourceLines | None = None,
) -> LocatedRange:
    index = line - 1
    text = _line_text(path, index, sources)
    if text is None:
        return zero_width(index)
    name = bare_name(symbol)
    column = text.find(name) if name else -1
    if column < 0:
        logger.debug("%s", RangeReconstructionFailure(path, line, f"{name!r} not on line"))
        return zero_width(index)
    return _span(index, text, column, column + len(name))


def locate_entity(
    path: Path,
    line: int,
    entity: str,
    *,
    sources: SourceLines | None = None,
) -> LocatedRange:
    """Locate an entity name inside its opening directive argument."""
    index = line - 1
    text = _line_text(path, index, sources)
    if text is None:
        return zero_width(index)
    name = entity.split("(", 1)[0].strip()
    if name:
        match = re.search(_ENTITY_DIRECTIVE + f"({re.escape(name)})(?=[\\s(,)]|$)", text)
        if match:
            return _span(index, text, match.start(1), match.end(1))
    return locate(path, line, name or entity, sources=sources)


def call_site_ranges(
    path: Path,
    line: int,
    symbol: str,
    *,
    sources: SourceLines | None = None,
) -> list[Range]:
    """Every textual occurrence of ``symbol``'s bare name on one line."""
    index = line - 1
    text = _line_text(path, index, sources)
    name = bare_name(symbol)
    if text is None or not name:
        return []
    ranges: list[Range] = []
    start = text.find(name)
    while start >= 0:
        ranges.append(
            Range(
                start=Position(line=index, character=start),
                end=Position(line=index, character=start + len(name)),
            )
        )
        start = text.find(name, start + len(name))
    return ranges
