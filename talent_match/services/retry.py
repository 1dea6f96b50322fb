"""
Retry with exponential backoff, shared by the match and extraction flows.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from talent_match.services.progress import ProgressEmitter
from talent_match.utils.exceptions import RateLimitError, is_transient
from talent_match.utils.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryOutcome(Generic[T]):
    value: Optional[T] = None
    attempts: int = 0
    last_error: Optional[BaseException] = None
    exhausted: bool = False

    @property
    def succeeded(self) -> bool:
        return not self.exhausted


def describe_failure(exc: BaseException) -> str:
    if isinstance(exc, RateLimitError):
        return "rate limited"
    if is_transient(exc):
        return "transient failure"
    return "failed"


class RetryPolicy:
    """
    Runs an async operation up to max_attempts times.

    After failed attempt k (1-based) the policy sleeps base_delay_ms * 2**k,
    or the failure's retry_after hint (seconds) when it carries one, never
    more than max_delay_ms when that is set. Every Exception is retried;
    the last failure is reported through
    RetryOutcome.exhausted instead of being raised so the caller can pick
    its own fallback. One log event is emitted per attempt.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay_ms: int = 1000,
        emitter: Optional[ProgressEmitter] = None,
        label: str = "operation",
        max_delay_ms: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.emitter = emitter
        self.label = label
        self.max_delay_ms = max_delay_ms
        self._sleep = sleep

    def delay_for(self, attempt: int, error: Optional[BaseException] = None) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None and retry_after >= 0:
            delay_ms = float(retry_after) * 1000
        else:
            delay_ms = self.base_delay_ms * (2 ** attempt)
        if self.max_delay_ms is not None:
            delay_ms = min(delay_ms, self.max_delay_ms)
        return delay_ms / 1000

    async def run(self, operation: Callable[[], Awaitable[T]]) -> RetryOutcome[T]:
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                value = await operation()
            except Exception as exc:
                last_error = exc
                self._log(
                    "error",
                    f"{self.label} attempt {attempt}/{self.max_attempts} {describe_failure(exc)}: {exc}",
                )
                if attempt < self.max_attempts:
                    await self._sleep(self.delay_for(attempt, exc))
                continue
            self._log("success", f"{self.label} succeeded on attempt {attempt}/{self.max_attempts}")
            return RetryOutcome(value=value, attempts=attempt)

        logger.warning(f"{self.label} exhausted {self.max_attempts} attempts: {last_error}")
        return RetryOutcome(attempts=self.max_attempts, last_error=last_error, exhausted=True)

    def _log(self, level: str, message: str) -> None:
        if self.emitter is not None:
            self.emitter.log(level, message)
        elif level == "error":
            logger.warning(message)
        else:
            logger.debug(message)
