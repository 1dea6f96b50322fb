"""
Client-side reader for the `data:`-framed event streams served by
/api/match-candidates and /api/parse-resume.

The server never imports this module. Python consumers of the API (and the
test suite) use SSELineParser to split a response body into events and
StreamConsumer to turn those events into a single result or error.
"""
import codecs
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from talent_match.utils.exceptions import ProcessingError


class SSELineParser:
    """
    Incremental line splitter owned by one connection.

    Bytes may arrive split anywhere, including inside a multi-byte character
    or a JSON payload; only complete lines are parsed and the remainder is
    kept until the next feed().
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""

    def feed(self, chunk: Union[bytes, str]) -> List[Dict[str, Any]]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return self._parse_lines(lines)

    def close(self) -> List[Dict[str, Any]]:
        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer, ""
        return self._parse_lines([remainder])

    @staticmethod
    def _parse_lines(lines: Iterable[str]) -> List[Dict[str, Any]]:
        events = []
        for line in lines:
            line = line.rstrip("\r")
            if not line.strip() or line.startswith(":"):
                continue
            if line.startswith("data:"):
                events.append(json.loads(line[5:].strip()))
        return events


@dataclass
class StreamResult:
    logs: List[Tuple[str, str]] = field(default_factory=list)
    progress: List[Tuple[int, int]] = field(default_factory=list)
    final: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    events: List[Dict[str, Any]] = field(default_factory=list)

    def raise_for_error(self) -> None:
        if self.error:
            raise ProcessingError(self.error)


class StreamConsumer:
    """Classifies parsed events the same way the web client does."""

    def __init__(self):
        self.parser = SSELineParser()
        self.result = StreamResult()

    def feed(self, chunk: Union[bytes, str]) -> None:
        for event in self.parser.feed(chunk):
            self._handle(event)

    def finish(self) -> StreamResult:
        for event in self.parser.close():
            self._handle(event)
        return self.result

    def consume(self, chunks: Iterable[Union[bytes, str]]) -> StreamResult:
        for chunk in chunks:
            self.feed(chunk)
        return self.finish()

    def _handle(self, event: Dict[str, Any]) -> None:
        self.result.events.append(event)
        if event.get("level") and event.get("message"):
            self.result.logs.append((event["level"], event["message"]))
        if "current" in event and "total" in event:
            self.result.progress.append((event["current"], event["total"]))
        if "matches" in event or event.get("success"):
            self.result.final = event
        message = event.get("message")
        if message and "level" not in event and ("error" in message or "failed" in message):
            self.result.error = message
