"""Entry points the language server calls, one per navigation feature.

Each entry point runs the engine, consumes the artifact it produced and hands
the parsed records to the tree builder. Requests that share an artifact file
under the same root are serialized, since the file name is the only
rendezvous between the server and the engine. Nothing raised below this layer
escapes it: every failure becomes an empty answer plus a log line. Task
cancellation is the one exception that propagates; a request cancelled while
queued never reaches the engine, and one cancelled after dispatch has its
artifact discarded.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Protocol, TypeVar
from urllib.parse import unquote, urlparse

from lsprotocol.types import (
    CallHierarchyIncomingCall,
    CallHierarchyItem,
    CallHierarchyOutgoingCall,
    Location,
    Position,
    TypeHierarchyItem,
)

from lgtnav import cursor, hierarchy
from lgtnav.artifacts import (
    NOT_FOUND,
    ArtifactKind,
    artifact_paths,
    consume_once,
    remove_quietly,
)
from lgtnav.exceptions import ArtifactMissing, EngineError, LgtnavError
from lgtnav.invariants import require_not_none
from lgtnav.records import parse
from lgtnav.request import AnalysisRequest, RequestKind
from lgtnav.staleness import ResultKind, StalenessTracker

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Engine(Protocol):
    async def execute(self, request: AnalysisRequest) -> None: ...

    async def compute_metrics(self, directory: Path, *, recursive: bool = False) -> None: ...

    async def run_tests(self, directory: Path) -> None: ...


def uri_to_path(uri: str) -> Path:
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return Path(uri)


class Dispatcher:
    def __init__(
        self,
        engine_for: Callable[[Path], Engine],
        tracker: StalenessTracker | None = None,
    ) -> None:
        self._engine_for = engine_for
        self.tracker = tracker if tracker is not None else StalenessTracker()
        self._locks: dict[tuple[Path, ArtifactKind], asyncio.Lock] = {}

    def _lock(self, root: Path, kind: ArtifactKind) -> asyncio.Lock:
        key = (root, kind)
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def _fetch(self, request: AnalysisRequest, root: Path | None) -> bytes | None:
        artifact, _ = artifact_paths(root, request.artifact_kind)
        engine_root = Path(require_not_none(root, reason="artifact root"))
        async with self._lock(engine_root, request.artifact_kind):
            if consume_once(artifact) is not NOT_FOUND:
                logger.warning("discarded stale %s before %s", artifact, request.kind.value)
            try:
                await self._engine_for(engine_root).execute(request)
            except (EngineError, asyncio.CancelledError):
                # The abandoned goal's output must never reach the next request.
                remove_quietly(artifact)
                logger.debug("%s abandoned, %s discarded", request.kind.value, artifact)
                raise
            data = consume_once(artifact)
        if data is NOT_FOUND:
            logger.info("%s", ArtifactMissing(artifact))
            return None
        return data

    async def _guarded(self, work: Awaitable[T], empty: T, feature: str) -> T:
        try:
            return await work
        except (LgtnavError, EngineError, OSError) as exc:
            logger.error("%s failed: %s", feature, exc)
            return empty

    def prepare_call_hierarchy(
        self, path: Path, text: str, position: Position
    ) -> list[CallHierarchyItem] | None:
        symbol = cursor.call_under_cursor(text, position.line, position.character)
        if symbol is None:
            return None
        return [hierarchy.prepare_call_item(path, position, symbol)]

    def prepare_type_hierarchy(
        self, path: Path, text: str, position: Position
    ) -> list[TypeHierarchyItem] | None:
        entity = cursor.entity_under_cursor(text, position.line, position.character)
        if entity is None:
            return None
        return [hierarchy.prepare_type_item(path, position, entity)]

    def _item_request(
        self, kind: RequestKind, item: CallHierarchyItem | TypeHierarchyItem
    ) -> AnalysisRequest:
        return AnalysisRequest(
            kind=kind,
            file=uri_to_path(item.uri),
            line=item.range.start.line,
            character=item.range.start.character,
            symbol=item.name,
        )

    async def incoming_calls(
        self,
        item: CallHierarchyItem,
        root: Path | None,
    ) -> list[CallHierarchyIncomingCall]:
        async def work() -> list[CallHierarchyIncomingCall]:
            request = self._item_request(RequestKind.INCOMING_CALLS, item)
            data = await self._fetch(request, root)
            if data is None:
                return []
            return hierarchy.incoming_calls(parse(data, ArtifactKind.CALLERS), item.name)

        return await self._guarded(work(), [], "incoming calls")

    async def outgoing_calls(
        self,
        item: CallHierarchyItem,
        root: Path | None,
    ) -> list[CallHierarchyOutgoingCall]:
        async def work() -> list[CallHierarchyOutgoingCall]:
            request = self._item_request(RequestKind.OUTGOING_CALLS, item)
            data = await self._fetch(request, root)
            if data is None:
                return []
            return hierarchy.outgoing_calls(
                parse(data, ArtifactKind.CALLEES), request.file, request.line + 1
            )

        return await self._guarded(work(), [], "outgoing calls")

    async def _entities(
        self,
        kind: RequestKind,
        item: TypeHierarchyItem,
        root: Path | None,
    ) -> list[TypeHierarchyItem]:
        async def work() -> list[TypeHierarchyItem]:
            request = self._item_request(kind, item)
            data = await self._fetch(request, root)
            if data is None:
                return []
            return hierarchy.type_hierarchy_items(parse(data, request.artifact_kind))

        return await self._guarded(work(), [], kind.value)

    async def supertypes(
        self,
        item: TypeHierarchyItem,
        root: Path | None,
    ) -> list[TypeHierarchyItem]:
        return await self._entities(RequestKind.SUPERTYPES, item, root)

    async def subtypes(
        self,
        item: TypeHierarchyItem,
        root: Path | None,
    ) -> list[TypeHierarchyItem]:
        return await self._entities(RequestKind.SUBTYPES, item, root)

    async def references(
        self,
        path: Path,
        text: str,
        position: Position,
        root: Path | None,
    ) -> list[Location]:
        call = cursor.call_under_cursor(text, position.line, position.character)
        if call is None:
            return []

        async def work() -> list[Location]:
            request = AnalysisRequest(
                RequestKind.REFERENCES, path, position.line, position.character, call
            )
            data = await self._fetch(request, root)
            if data is None:
                return []
            return hierarchy.reference_locations(parse(data, ArtifactKind.REFERENCES))

        return await self._guarded(work(), [], "references")

    async def type_definition(
        self,
        path: Path,
        text: str,
        position: Position,
        root: Path | None,
    ) -> Location | None:
        entity = cursor.entity_under_cursor(text, position.line, position.character)
        if entity is None:
            return None

        async def work() -> Location | None:
            request = AnalysisRequest(
                RequestKind.TYPE_DEFINITION, path, position.line, position.character, entity
            )
            data = await self._fetch(request, root)
            if data is None:
                return None
            return hierarchy.type_definition_location(
                parse(data, ArtifactKind.TYPE_DEFINITION)
            )

        return await self._guarded(work(), None, "type definition")

    async def compute_metrics(
        self, directory: Path, root: Path | None, *, recursive: bool = False
    ) -> bool:
        """Refresh the metrics artifact; a successful run clears its staleness."""
        engine_root = Path(root) if root is not None else directory

        async def work() -> bool:
            async with self._lock(engine_root, ArtifactKind.METRICS):
                await self._engine_for(engine_root).compute_metrics(
                    directory, recursive=recursive
                )
            self.tracker.on_analysis_succeeded(ResultKind.METRICS)
            return True

        return await self._guarded(work(), False, "metrics")

    async def run_tests(self, directory: Path, root: Path | None) -> bool:
        engine_root = Path(root) if root is not None else directory

        async def work() -> bool:
            async with self._lock(engine_root, ArtifactKind.TESTS):
                await self._engine_for(engine_root).run_tests(directory)
            self.tracker.on_analysis_succeeded(ResultKind.TESTS)
            return True

        return await self._guarded(work(), False, "tests")
