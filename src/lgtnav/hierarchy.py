from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from lsprotocol.types import (
    CallHierarchyIncomingCall,
    CallHierarchyItem,
    CallHierarchyOutgoingCall,
    Location,
    Position,
    Range,
    SymbolKind,
    TypeHierarchyItem,
)

from lgtnav.ranges import SourceLines, call_site_ranges, locate, locate_entity
from lgtnav.records import (
    CallRecord,
    EntityRecord,
    LocationRecord,
    dedup_latest,
    normalize_path,
)

logger = logging.getLogger(__name__)

ENTITY_SYMBOL_KINDS: dict[str, SymbolKind] = {
    "object": SymbolKind.Class,
    "protocol": SymbolKind.Interface,
    "category": SymbolKind.Struct,
}


def path_to_uri(path: str | Path) -> str:
    resolved = Path(path)
    if not resolved.is_absolute():
        resolved = resolved.resolve()
    return resolved.as_uri()


def _identity(record: CallRecord | EntityRecord) -> tuple[str, str, int]:
    return (record.name, normalize_path(record.file).casefold(), record.line)


def _point_range(line: int, character: int = 0) -> Range:
    point = Position(line=line, character=character)
    return Range(start=point, end=point)


def prepare_call_item(path: Path, position: Position, symbol: str) -> CallHierarchyItem:
    """The focal item sits at the cursor; its range is only a position anchor."""
    anchor = _point_range(position.line, position.character)
    return CallHierarchyItem(
        name=symbol,
        kind=SymbolKind.Function,
        uri=path_to_uri(path),
        range=anchor,
        selection_range=anchor,
    )


def prepare_type_item(path: Path, position: Position, entity: str) -> TypeHierarchyItem:
    anchor = _point_range(position.line, position.character)
    return TypeHierarchyItem(
        name=entity,
        kind=SymbolKind.Class,
        uri=path_to_uri(path),
        range=anchor,
        selection_range=anchor,
    )


def call_item(record: CallRecord, sources: SourceLines | None = None) -> CallHierarchyItem:
    located = locate(Path(record.file), record.line, record.name, sources=sources)
    return CallHierarchyItem(
        name=record.name,
        kind=SymbolKind.Function,
        uri=path_to_uri(record.file),
        range=located.range,
        selection_range=located.selection_range,
    )


def incoming_calls(
    records: Iterable[CallRecord], focal_symbol: str
) -> list[CallHierarchyIncomingCall]:
    """Callers of ``focal_symbol``; call sites are searched on each caller's line."""
    sources = SourceLines()
    calls: list[CallHierarchyIncomingCall] = []
    for record in dedup_latest(records, key=_identity):
        calls.append(
            CallHierarchyIncomingCall(
                from_=call_item(record, sources),
                from_ranges=call_site_ranges(
                    Path(record.file), record.line, focal_symbol, sources=sources
                ),
            )
        )
    return calls


def outgoing_calls(
    records: Iterable[CallRecord], focal_file: Path, focal_line: int
) -> list[CallHierarchyOutgoingCall]:
    """Callees; call sites are searched on the focal item's own line (1-based)."""
    sources = SourceLines()
    calls: list[CallHierarchyOutgoingCall] = []
    for record in dedup_latest(records, key=_identity):
        calls.append(
            CallHierarchyOutgoingCall(
                to=call_item(record, sources),
                from_ranges=call_site_ranges(
                    focal_file, focal_line, record.name, sources=sources
                ),
            )
        )
    return calls


def entity_item(record: EntityRecord, sources: SourceLines | None = None) -> TypeHierarchyItem:
    located = locate_entity(Path(record.file), record.line, record.name, sources=sources)
    return TypeHierarchyItem(
        name=record.name,
        kind=ENTITY_SYMBOL_KINDS[record.entity_type],
        uri=path_to_uri(record.file),
        range=located.range,
        selection_range=located.selection_range,
        detail=record.entity_type,
    )


def type_hierarchy_items(records: Iterable[EntityRecord]) -> list[TypeHierarchyItem]:
    sources = SourceLines()
    return [entity_item(record, sources) for record in dedup_latest(records, key=_identity)]


def reference_locations(records: Iterable[LocationRecord]) -> list[Location]:
    # Column 0 only: the protocol carries no column and references are not refined.
    return [
        Location(uri=path_to_uri(record.file), range=_point_range(record.line - 1))
        for record in records
    ]


def type_definition_location(records: Iterable[LocationRecord]) -> Location | None:
    for record in records:
        return Location(uri=path_to_uri(record.file), range=_point_range(record.line - 1))
    logger.info("type definition not found")
    return None
