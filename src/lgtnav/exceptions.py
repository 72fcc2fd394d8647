"""Error taxonomy for the analysis-result protocol."""

from __future__ import annotations

from pathlib import Path


class LgtnavError(Exception):
    """Base class for every error raised by lgtnav."""


class NoWorkspaceError(LgtnavError):
    """No workspace root is open, so no artifact path can be resolved."""

    def __init__(self, detail: str = "") -> None:
        message = "No workspace folder open"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ArtifactMissing(LgtnavError):
    """The engine returned but the expected artifact is not on disk."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Artifact not found: {path}")


class MalformedRecord(LgtnavError):
    """A line in an artifact does not match the pattern for its kind."""

    def __init__(self, kind: str, line: str) -> None:
        self.kind = kind
        self.line = line
        super().__init__(f"Malformed {kind} record: {line!r}")


class RangeReconstructionFailure(LgtnavError):
    """A source range could not be re-derived from the live file."""

    def __init__(self, path: Path, line: int, reason: str) -> None:
        self.path = path
        self.line = line
        self.reason = reason
        super().__init__(f"Cannot locate range at {path}:{line} ({reason})")


class CleanupFailure(LgtnavError):
    """Deleting a consumed or stale artifact failed."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot delete {path}: {reason}")


class EngineError(LgtnavError, RuntimeError):
    pass


class EngineTimeout(EngineError):
    """The completion sentinel did not appear within the configured timeout."""

    def __init__(self, sentinel: Path, timeout_ms: int) -> None:
        self.sentinel = sentinel
        self.timeout_ms = timeout_ms
        super().__init__(f"Timeout of {timeout_ms} ms exceeded waiting for {sentinel}")


class NeverThrown(RuntimeError):
    """Raised by ``never()`` when a path assumed unreachable is reached.

    The keyword environment passed to ``never()`` is kept on the exception so
    the log line carries the offending values.
    """

    def __init__(self, message: str, *, env: dict[str, object] | None = None) -> None:
        super().__init__(message)
        self.env = dict(env or {})
