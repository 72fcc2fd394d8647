"""Driving the external Logtalk analysis engine.

The engine is a Logtalk REPL kept alive per workspace root. Goals are written
to its stdin; each goal ends by writing its result artifact and then a
``_done`` sentinel. ``run`` returns only once the sentinel exists, which is
the single guarantee the rest of the server relies on: when it returns, the
artifact (if the query had any result) is complete on disk.
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
import time
from pathlib import Path
from typing import Awaitable, Callable

from lgtnav.artifacts import ARTIFACT_NAMES, ArtifactKind, remove_quietly, resolve
from lgtnav.exceptions import EngineError, EngineTimeout
from lgtnav.invariants import never
from lgtnav.request import AnalysisRequest, RequestKind
from lgtnav.schema import EngineSettings

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[object]]

_POSITIONAL_GOALS: dict[RequestKind, str] = {
    RequestKind.INCOMING_CALLS: "find_callers",
    RequestKind.OUTGOING_CALLS: "find_callees",
    RequestKind.REFERENCES: "find_references",
    RequestKind.TYPE_DEFINITION: "find_type_definition",
}
_ENTITY_GOALS: dict[RequestKind, str] = {
    RequestKind.SUPERTYPES: "find_ancestors",
    RequestKind.SUBTYPES: "find_descendants",
}


def quote_atom(text: str) -> str:
    return "'" + text.replace("\\", "\\\\").replace("'", "''") + "'"


def engine_path(path: Path | str) -> str:
    return Path(path).as_posix()


def goal_for(request: AnalysisRequest, root: Path) -> str:
    wdir = quote_atom(engine_path(root))
    if request.kind in _POSITIONAL_GOALS:
        name = _POSITIONAL_GOALS[request.kind]
        file = quote_atom(engine_path(request.file))
        return f"vscode::{name}({wdir}, {request.symbol}, {file}, {request.line + 1})."
    if request.kind in _ENTITY_GOALS:
        return f"vscode::{_ENTITY_GOALS[request.kind]}({wdir}, {request.symbol})."
    never("no goal for request kind", kind=request.kind)


def metrics_goal(directory: Path, *, recursive: bool = False) -> str:
    name = "metrics_recursive" if recursive else "metrics"
    return f"vscode::{name}({quote_atom(engine_path(directory))})."


def tests_goal(directory: Path, tester: str) -> str:
    tester_path = engine_path(directory / Path(tester).stem)
    return f"vscode::tests({quote_atom(engine_path(directory))}, {quote_atom(tester_path)})."


async def wait_for_file(
    path: Path,
    *,
    timeout_ms: int,
    poll_interval_ms: int,
    sleep: Sleep = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    deadline = clock() + timeout_ms / 1000
    while True:
        if path.exists():
            return
        if clock() >= deadline:
            raise EngineTimeout(path, timeout_ms)
        await sleep(poll_interval_ms / 1000)


class EngineSession:
    """One engine process bound to one workspace root."""

    def __init__(
        self,
        root: Path,
        settings: EngineSettings,
        *,
        process_factory: Callable[..., subprocess.Popen] = subprocess.Popen,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.root = root
        self.settings = settings
        self._process_factory = process_factory
        self._sleep = sleep
        self._proc: subprocess.Popen | None = None

    def _ensure_process(self) -> subprocess.Popen:
        if self._proc is not None and self._proc.poll() is None:
            return self._proc
        argv = [self.settings.command, *self.settings.args]
        logger.info("starting engine: %s (cwd=%s)", " ".join(argv), self.root)
        try:
            self._proc = self._process_factory(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                cwd=str(self.root),
                bufsize=0,
            )
        except OSError as exc:
            raise EngineError(f"Cannot start engine {argv[0]!r}: {exc}") from exc
        return self._proc

    def send(self, goal: str) -> None:
        proc = self._ensure_process()
        if proc.stdin is None:
            never("engine started without stdin pipe")
        logger.debug("goal: %s", goal)
        try:
            proc.stdin.write((goal + "\n").encode("utf-8"))
            proc.stdin.flush()
        except OSError as exc:
            self._proc = None
            raise EngineError(f"Engine stdin closed: {exc}") from exc

    async def run(self, goal: str, sentinel: Path) -> None:
        """Send ``goal`` and suspend until the engine writes ``sentinel``."""
        remove_quietly(sentinel)
        self.send(goal)
        try:
            await wait_for_file(
                sentinel,
                timeout_ms=self.settings.timeout_ms,
                poll_interval_ms=self.settings.poll_interval_ms,
                sleep=self._sleep,
            )
        except (EngineTimeout, asyncio.CancelledError):
            # The REPL would still write this goal's artifact later.
            self.abort()
            raise
        finally:
            remove_quietly(sentinel)

    async def execute(self, request: AnalysisRequest) -> None:
        names = ARTIFACT_NAMES[request.artifact_kind]
        await self.run(goal_for(request, self.root), resolve(self.root, names.sentinel))

    async def compute_metrics(self, directory: Path, *, recursive: bool = False) -> None:
        sentinel = resolve(directory, ARTIFACT_NAMES[ArtifactKind.METRICS].sentinel)
        await self.run(metrics_goal(directory, recursive=recursive), sentinel)

    async def run_tests(self, directory: Path) -> None:
        sentinel = resolve(directory, ARTIFACT_NAMES[ArtifactKind.TESTS].sentinel)
        await self.run(tests_goal(directory, self.settings.tester), sentinel)

    def abort(self) -> None:
        """Kill the process mid-goal; the next goal starts a fresh one."""
        proc, self._proc = self._proc, None
        if proc is None or proc.poll() is not None:
            return
        logger.warning("abandoning engine goal, restarting %s", self.settings.command)
        proc.kill()
        try:
            proc.wait(timeout=2.0)
        except subprocess.TimeoutExpired:
            logger.error("engine process %s did not exit after kill", self.settings.command)

    def close(self) -> None:
        proc, self._proc = self._proc, None
        if proc is None or proc.poll() is not None:
            return
        try:
            if proc.stdin is not None:
                proc.stdin.write(b"halt.\n")
                proc.stdin.flush()
        except OSError as exc:
            logger.debug("engine stdin already closed: %s", exc)
        try:
            proc.wait(timeout=2.0)
        except subprocess.TimeoutExpired:
            proc.kill()
