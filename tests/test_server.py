from __future__ import annotations

import asyncio
from pathlib import Path
from types import SimpleNamespace

import pytest

pytest.importorskip("pygls")
from lsprotocol.types import (
    CallHierarchyIncomingCallsParams,
    CodeLensParams,
    DidChangeConfigurationParams,
    Position,
    TextDocumentIdentifier,
)

from lgtnav import server
from lgtnav.hierarchy import prepare_call_item
from lgtnav.staleness import ResultKind


class _Engine:
    def __init__(self, root: Path) -> None:
        self.root = root
        self.closed = False
        self.metrics: list[Path] = []

    async def execute(self, request) -> None:
        (self.root / ".vscode_callers").write_text(
            f"Name:bar/0;File:{(self.root / 'y.lgt').as_posix()};Line:1\n"
        )
        if request.symbol == "slow/0":
            await asyncio.sleep(10)

    async def compute_metrics(self, directory: Path, *, recursive: bool = False) -> None:
        self.metrics.append(directory)

    async def run_tests(self, directory: Path) -> None:
        return None

    def close(self) -> None:
        self.closed = True


def _ls(root: Path, doc_path: Path, text: str = "") -> SimpleNamespace:
    doc = SimpleNamespace(path=str(doc_path), source=text, language_id="logtalk")
    workspace = SimpleNamespace(
        folders={"ws": SimpleNamespace(uri=root.as_uri())},
        root_path=str(root),
        get_text_document=lambda uri: doc,
    )
    return SimpleNamespace(workspace=workspace)


@pytest.fixture
def state(monkeypatch: pytest.MonkeyPatch) -> server.ServerState:
    fresh = server.ServerState(engine_factory=lambda root, settings: _Engine(root))
    monkeypatch.setattr(server, "state", fresh)
    return fresh


def _doc_params(path: Path) -> SimpleNamespace:
    return SimpleNamespace(text_document=TextDocumentIdentifier(uri=path.as_uri()))


def test_initialized_cleans_leftover_artifacts(state, workspace: Path) -> None:
    (workspace / ".vscode_callers_done").write_text("")
    (workspace / "sub").mkdir()
    (workspace / "sub" / ".vscode_references").write_text("")
    (workspace / "keep.lgt").write_text("")

    server.initialized(_ls(workspace, workspace / "keep.lgt"), None)

    assert sorted(path.name for path in workspace.rglob("*")) == ["keep.lgt", "sub"]


def test_root_for_prefers_deepest_folder(tmp_path: Path) -> None:
    outer = tmp_path / "outer"
    inner = outer / "inner"
    ls = SimpleNamespace(
        workspace=SimpleNamespace(
            folders={
                "outer": SimpleNamespace(uri=outer.as_uri()),
                "inner": SimpleNamespace(uri=inner.as_uri()),
            },
            root_path=str(outer),
        )
    )
    assert server._root_for(ls, inner / "a.lgt") == inner
    assert server._root_for(ls, tmp_path / "elsewhere.lgt") == outer
    assert server._root_for(SimpleNamespace(workspace=SimpleNamespace(folders={}, root_path=None))) is None


def test_will_save_prunes_metrics_of_modified_document(state, workspace: Path) -> None:
    doc = workspace / "a.lgt"
    other = workspace / "b.lgt"
    artifact = workspace / ".vscode_metrics_results"
    artifact.write_text(
        f"File:{doc.as_posix()};Line:1;Score:2\nFile:{other.as_posix()};Line:1;Score:4\n"
    )
    ls = _ls(workspace, doc)

    server.will_save(ls, _doc_params(doc))
    assert artifact.read_text().count("Score") == 2

    server.did_change(ls, _doc_params(doc))
    server.will_save(ls, _doc_params(doc))
    server.did_save(ls, _doc_params(doc))

    assert artifact.read_text() == f"File:{other.as_posix()};Line:1;Score:4\n"
    assert state.tracker.is_stale(ResultKind.METRICS)
    assert not state.tracker.is_modified(doc.as_uri())


def test_code_lens_renders_cached_metrics(state, workspace: Path) -> None:
    doc = workspace / "a.lgt"
    (workspace / ".vscode_metrics_results").write_text(f"File:{doc.as_posix()};Line:3;Score:5\n")
    params = CodeLensParams(text_document=TextDocumentIdentifier(uri=doc.as_uri()))

    rendered = server.code_lens(_ls(workspace, doc), params)
    assert [lens.command.title for lens in rendered] == ["Cyclomatic complexity: 5"]

    state.settings = state.settings.model_copy(update={"code_lens_enabled": False})
    assert server.code_lens(_ls(workspace, doc), params) == []


def test_configuration_change_marks_results_stale(state, workspace: Path) -> None:
    (workspace / "lgtnav.toml").write_text('[engine]\ncommand = "swilgt"\n')
    engine = state.engine_for(workspace)
    params = DidChangeConfigurationParams(settings={"lgtnav": {"logging": {"level": "error"}}})

    server.did_change_configuration(_ls(workspace, workspace / "a.lgt"), params)

    assert state.tracker.is_stale(ResultKind.TESTS)
    assert state.settings.engine.command == "swilgt"
    assert state.settings.logging.level == "error"
    assert engine.closed


@pytest.mark.asyncio
async def test_incoming_calls_handler(state, workspace: Path) -> None:
    (workspace / "y.lgt").write_text("bar :- foo.\n")
    item = prepare_call_item(workspace / "a.lgt", Position(line=0, character=0), "foo/0")
    params = CallHierarchyIncomingCallsParams(item=item)

    calls = await server.incoming_calls(_ls(workspace, workspace / "a.lgt"), params)

    assert [call.from_.name for call in calls] == ["bar/0"]
    assert calls[0].from_ranges[0].start.character == 7


@pytest.mark.asyncio
async def test_cancelled_incoming_calls_discards_its_artifact(state, workspace: Path) -> None:
    (workspace / "y.lgt").write_text("bar :- foo.\n")
    ls = _ls(workspace, workspace / "a.lgt")
    slow = prepare_call_item(workspace / "a.lgt", Position(line=0, character=0), "slow/0")
    fast = prepare_call_item(workspace / "a.lgt", Position(line=0, character=0), "foo/0")

    request = asyncio.create_task(
        server.incoming_calls(ls, CallHierarchyIncomingCallsParams(item=slow))
    )
    await asyncio.sleep(0.05)
    request.cancel()
    with pytest.raises(asyncio.CancelledError):
        await request

    assert not (workspace / ".vscode_callers").exists()
    calls = await server.incoming_calls(ls, CallHierarchyIncomingCallsParams(item=fast))
    assert [call.from_.name for call in calls] == ["bar/0"]


@pytest.mark.asyncio
async def test_compute_metrics_command_clears_flag(state, workspace: Path) -> None:
    doc = workspace / "lib" / "a.lgt"
    doc.parent.mkdir()
    doc.write_text("")
    state.tracker.on_configuration_changed()

    assert await server.compute_metrics(_ls(workspace, doc), doc.as_uri()) is True

    assert not state.tracker.is_stale(ResultKind.METRICS)
    assert state.engines[workspace].metrics == [doc.parent]


def test_start_closes_engines(state, workspace: Path) -> None:
    engine = state.engine_for(workspace)
    calls: list[str] = []
    server.start(lambda: calls.append("started"))
    assert calls == ["started"]
    assert engine.closed
    assert state.engines == {}
