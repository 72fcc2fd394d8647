from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from lgtnav.artifacts import ArtifactKind


class RequestKind(str, Enum):
    INCOMING_CALLS = "incoming-calls"
    OUTGOING_CALLS = "outgoing-calls"
    SUPERTYPES = "supertypes"
    SUBTYPES = "subtypes"
    REFERENCES = "references"
    TYPE_DEFINITION = "type-definition"


ARTIFACT_FOR_REQUEST: dict[RequestKind, ArtifactKind] = {
    RequestKind.INCOMING_CALLS: ArtifactKind.CALLERS,
    RequestKind.OUTGOING_CALLS: ArtifactKind.CALLEES,
    RequestKind.SUPERTYPES: ArtifactKind.ANCESTORS,
    RequestKind.SUBTYPES: ArtifactKind.DESCENDANTS,
    RequestKind.REFERENCES: ArtifactKind.REFERENCES,
    RequestKind.TYPE_DEFINITION: ArtifactKind.TYPE_DEFINITION,
}


@dataclass(frozen=True)
class AnalysisRequest:
    """One user query; ``line`` and ``character`` are 0-based."""

    kind: RequestKind
    file: Path
    line: int
    character: int
    symbol: str

    @property
    def artifact_kind(self) -> ArtifactKind:
        return ARTIFACT_FOR_REQUEST[self.kind]
