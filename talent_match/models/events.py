"""
Progress events written onto the streaming endpoints.

Every event is a JSON object framed as one `data:` line followed by a blank line.
Consumers tell the kinds apart by their keys: `level` (log), `current`/`total`
(progress), `matches` or `success` (terminal success), or a bare `message`
(terminal error).
"""
from typing import Any, ClassVar, Dict, List, Literal, Optional

from pydantic import BaseModel

LogLevel = Literal["info", "error", "success"]


class ProgressEvent(BaseModel):
    terminal: ClassVar[bool] = False

    def payload(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json", by_alias=True)
        return {key: value for key, value in data.items() if value is not None}


class LogEvent(ProgressEvent):
    level: LogLevel
    message: str


class ProgressCounter(ProgressEvent):
    current: int
    total: int
    step: Optional[str] = None


class MatchComplete(ProgressEvent):
    terminal: ClassVar[bool] = True

    matches: List[Dict[str, Any]]
    total: int
    message: str
    search_id: Optional[str] = None


class ExtractionComplete(ProgressEvent):
    terminal: ClassVar[bool] = True

    success: Literal[True] = True
    profile_id: str
    message: str


class ErrorEvent(ProgressEvent):
    terminal: ClassVar[bool] = True

    message: str
