import asyncio
import json
import re
from typing import Any, Awaitable, Iterable, List, Tuple

_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json / ``` fence and a trailing ``` fence from model output."""
    text = (text or "").strip()
    text = _FENCE_OPEN.sub("", text)
    text = _FENCE_CLOSE.sub("", text)
    return text.strip()


def safe_json(s: str, fallback: Any = None) -> Any:
    """
    Parse model output as JSON after fence stripping.

    When that fails, tries the outermost {...} span, else returns fallback.
    """
    try:
        return json.loads(strip_code_fences(s))
    except (json.JSONDecodeError, TypeError):
        pass
    s = s or ""
    start = s.find("{")
    end = s.rfind("}")
    if start >= 0 and end > start:
        try:
            return json.loads(s[start:end + 1])
        except json.JSONDecodeError:
            return fallback
    return fallback


async def settle_all(aws: Iterable[Awaitable[Any]]) -> Tuple[List[Any], List[BaseException]]:
    """
    Await every awaitable, never raising.

    Returns (results, failures). Failed awaitables contribute their exception
    to failures and nothing to results.
    """
    outcomes = await asyncio.gather(*aws, return_exceptions=True)
    results, failures = [], []
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            failures.append(outcome)
        else:
            results.append(outcome)
    return results, failures
