from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable

from pydantic import ValidationError
from pygls.lsp.server import LanguageServer
from lsprotocol.types import (
    CALL_HIERARCHY_INCOMING_CALLS,
    CALL_HIERARCHY_OUTGOING_CALLS,
    INITIALIZED,
    TEXT_DOCUMENT_CODE_LENS,
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_CLOSE,
    TEXT_DOCUMENT_DID_SAVE,
    TEXT_DOCUMENT_PREPARE_CALL_HIERARCHY,
    TEXT_DOCUMENT_PREPARE_TYPE_HIERARCHY,
    TEXT_DOCUMENT_REFERENCES,
    TEXT_DOCUMENT_TYPE_DEFINITION,
    TEXT_DOCUMENT_WILL_SAVE,
    TYPE_HIERARCHY_SUBTYPES,
    TYPE_HIERARCHY_SUPERTYPES,
    WORKSPACE_DID_CHANGE_CONFIGURATION,
    WORKSPACE_DID_CHANGE_WORKSPACE_FOLDERS,
    CallHierarchyIncomingCall,
    CallHierarchyIncomingCallsParams,
    CallHierarchyItem,
    CallHierarchyOutgoingCall,
    CallHierarchyOutgoingCallsParams,
    CallHierarchyPrepareParams,
    CodeLens,
    CodeLensParams,
    Location,
    ReferenceParams,
    TypeDefinitionParams,
    TypeHierarchyItem,
    TypeHierarchyPrepareParams,
    TypeHierarchySubtypesParams,
    TypeHierarchySupertypesParams,
)

from lgtnav import __version__
from lgtnav.artifacts import cleanup_all
from lgtnav.config import load_server_settings
from lgtnav.dispatch import Dispatcher, Engine, uri_to_path
from lgtnav.engine import EngineSession
from lgtnav.lenses import (
    COMPUTE_METRICS_COMMAND,
    RUN_TESTS_COMMAND,
    metrics_lenses,
    prune_metrics,
    unit_test_lenses,
)
from lgtnav.log import configure_logging
from lgtnav.schema import ServerSettings
from lgtnav.staleness import StalenessTracker

logger = logging.getLogger(__name__)

server = LanguageServer("lgtnav", __version__)


class ServerState:
    """Everything the handlers share: settings, staleness flags, engines."""

    def __init__(
        self,
        settings: ServerSettings | None = None,
        engine_factory: Callable[[Path, ServerSettings], Engine] | None = None,
    ) -> None:
        self.settings = settings if settings is not None else ServerSettings()
        self.tracker = StalenessTracker()
        self._engine_factory = engine_factory or _session_factory
        self.engines: dict[Path, Engine] = {}
        self.dispatcher = Dispatcher(self.engine_for, self.tracker)

    def engine_for(self, root: Path) -> Engine:
        if root not in self.engines:
            self.engines[root] = self._engine_factory(root, self.settings)
        return self.engines[root]

    def reload(self, root: Path | None, client_settings: object = None) -> None:
        try:
            self.settings = load_server_settings(root=root, client_settings=client_settings)
        except ValidationError as exc:
            logger.warning("invalid settings ignored: %s", exc)
            return
        configure_logging(self.settings.logging.level)
        # Engines keep the settings they were started with.
        self.close()

    def close(self) -> None:
        engines, self.engines = self.engines, {}
        for engine in engines.values():
            close = getattr(engine, "close", None)
            if close is not None:
                close()


def _session_factory(root: Path, settings: ServerSettings) -> Engine:
    return EngineSession(root, settings.engine)


state = ServerState()


def _workspace_roots(ls: LanguageServer) -> list[Path]:
    roots: list[Path] = []
    folders = getattr(ls.workspace, "folders", None) or {}
    for folder in folders.values():
        roots.append(uri_to_path(folder.uri))
    if not roots and ls.workspace.root_path:
        roots.append(Path(ls.workspace.root_path))
    return roots


def _root_for(ls: LanguageServer, path: Path | None = None) -> Path | None:
    """The workspace folder holding ``path``; the first folder otherwise."""
    roots = _workspace_roots(ls)
    if not roots:
        return None
    if path is not None:
        owners = [root for root in roots if path == root or root in path.parents]
        if owners:
            return max(owners, key=lambda root: len(root.parts))
    return roots[0]


def _cleanup(roots: Iterable[Path]) -> None:
    for root in roots:
        removed = cleanup_all(root)
        if removed:
            logger.info("removed %d leftover artifact(s) under %s", len(removed), root)


@server.feature(INITIALIZED)
def initialized(ls: LanguageServer, params) -> None:
    roots = _workspace_roots(ls)
    state.reload(roots[0] if roots else None)
    _cleanup(roots)


@server.feature(WORKSPACE_DID_CHANGE_WORKSPACE_FOLDERS)
def did_change_workspace_folders(ls: LanguageServer, params) -> None:
    _cleanup(uri_to_path(folder.uri) for folder in params.event.added)


@server.feature(WORKSPACE_DID_CHANGE_CONFIGURATION)
def did_change_configuration(ls: LanguageServer, params) -> None:
    state.tracker.on_configuration_changed()
    state.reload(_root_for(ls), client_settings=params.settings)


@server.feature(TEXT_DOCUMENT_DID_CHANGE)
def did_change(ls: LanguageServer, params) -> None:
    uri = params.text_document.uri
    doc = ls.workspace.get_text_document(uri)
    state.tracker.on_document_changed(uri, doc.language_id)


@server.feature(TEXT_DOCUMENT_WILL_SAVE)
def will_save(ls: LanguageServer, params) -> None:
    uri = params.text_document.uri
    doc = ls.workspace.get_text_document(uri)
    if state.tracker.on_will_save(uri, doc.language_id):
        path = Path(doc.path)
        prune_metrics(path, [_root_for(ls, path)])


@server.feature(TEXT_DOCUMENT_DID_SAVE)
def did_save(ls: LanguageServer, params) -> None:
    state.tracker.on_saved(params.text_document.uri)


@server.feature(TEXT_DOCUMENT_DID_CLOSE)
def did_close(ls: LanguageServer, params) -> None:
    state.tracker.on_closed(params.text_document.uri)


@server.feature(TEXT_DOCUMENT_PREPARE_CALL_HIERARCHY)
def prepare_call_hierarchy(
    ls: LanguageServer, params: CallHierarchyPrepareParams
) -> list[CallHierarchyItem] | None:
    doc = ls.workspace.get_text_document(params.text_document.uri)
    return state.dispatcher.prepare_call_hierarchy(Path(doc.path), doc.source, params.position)


@server.feature(CALL_HIERARCHY_INCOMING_CALLS)
async def incoming_calls(
    ls: LanguageServer, params: CallHierarchyIncomingCallsParams
) -> list[CallHierarchyIncomingCall]:
    root = _root_for(ls, uri_to_path(params.item.uri))
    return await state.dispatcher.incoming_calls(params.item, root)


@server.feature(CALL_HIERARCHY_OUTGOING_CALLS)
async def outgoing_calls(
    ls: LanguageServer, params: CallHierarchyOutgoingCallsParams
) -> list[CallHierarchyOutgoingCall]:
    root = _root_for(ls, uri_to_path(params.item.uri))
    return await state.dispatcher.outgoing_calls(params.item, root)


@server.feature(TEXT_DOCUMENT_PREPARE_TYPE_HIERARCHY)
def prepare_type_hierarchy(
    ls: LanguageServer, params: TypeHierarchyPrepareParams
) -> list[TypeHierarchyItem] | None:
    doc = ls.workspace.get_text_document(params.text_document.uri)
    return state.dispatcher.prepare_type_hierarchy(Path(doc.path), doc.source, params.position)


@server.feature(TYPE_HIERARCHY_SUPERTYPES)
async def supertypes(
    ls: LanguageServer, params: TypeHierarchySupertypesParams
) -> list[TypeHierarchyItem]:
    root = _root_for(ls, uri_to_path(params.item.uri))
    return await state.dispatcher.supertypes(params.item, root)


@server.feature(TYPE_HIERARCHY_SUBTYPES)
async def subtypes(
    ls: LanguageServer, params: TypeHierarchySubtypesParams
) -> list[TypeHierarchyItem]:
    root = _root_for(ls, uri_to_path(params.item.uri))
    return await state.dispatcher.subtypes(params.item, root)


@server.feature(TEXT_DOCUMENT_REFERENCES)
async def references(ls: LanguageServer, params: ReferenceParams) -> list[Location]:
    doc = ls.workspace.get_text_document(params.text_document.uri)
    path = Path(doc.path)
    return await state.dispatcher.references(
        path, doc.source, params.position, _root_for(ls, path)
    )


@server.feature(TEXT_DOCUMENT_TYPE_DEFINITION)
async def type_definition(
    ls: LanguageServer, params: TypeDefinitionParams
) -> Location | None:
    doc = ls.workspace.get_text_document(params.text_document.uri)
    path = Path(doc.path)
    return await state.dispatcher.type_definition(
        path, doc.source, params.position, _root_for(ls, path)
    )


@server.feature(TEXT_DOCUMENT_CODE_LENS)
def code_lens(ls: LanguageServer, params: CodeLensParams) -> list[CodeLens]:
    if not state.settings.code_lens_enabled:
        return []
    uri = params.text_document.uri
    path = uri_to_path(uri)
    root = _root_for(ls, path)
    return [
        *metrics_lenses(path, root, state.tracker, uri),
        *unit_test_lenses(path, root, state.tracker, uri),
    ]


def _command_directory(ls: LanguageServer, uri: str | None) -> tuple[Path, Path | None]:
    if uri:
        path = uri_to_path(uri)
        directory = path if path.is_dir() else path.parent
        return directory, _root_for(ls, path)
    root = _root_for(ls)
    return (root if root is not None else Path.cwd()), root


@server.command(COMPUTE_METRICS_COMMAND)
async def compute_metrics(
    ls: LanguageServer, uri: str | None = None, recursive: bool = False
) -> bool:
    directory, root = _command_directory(ls, uri)
    return await state.dispatcher.compute_metrics(directory, root, recursive=bool(recursive))


@server.command(RUN_TESTS_COMMAND)
async def run_tests(ls: LanguageServer, uri: str | None = None) -> bool:
    directory, root = _command_directory(ls, uri)
    return await state.dispatcher.run_tests(directory, root)


def start(start_fn: Callable[[], None] | None = None) -> None:
    """Serve on stdio until the client disconnects."""
    try:
        (start_fn or server.start_io)()
    finally:
        state.close()


if __name__ == "__main__":  # pragma: no cover
    start()  # pragma: no cover
