from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class EngineSettings(BaseModel):
    command: str = "logtalk"
    args: List[str] = []
    timeout_ms: int = Field(default=60_000, gt=0)
    poll_interval_ms: int = Field(default=200, gt=0)
    tester: str = "tester.lgt"


class LoggingSettings(BaseModel):
    level: str = "warning"


class ServerSettings(BaseModel):
    engine: EngineSettings = EngineSettings()
    logging: LoggingSettings = LoggingSettings()
    code_lens_enabled: bool = True


class RecordDTO(BaseModel):
    kind: str
    file: str
    line: int
    name: Optional[str] = None
    entity_type: Optional[str] = None
    object: Optional[str] = None
    test: Optional[str] = None
    status: Optional[str] = None
    reason: Optional[str] = None
    score: Optional[int] = None
