import asyncio

import pytest

from conftest import RecordingSleep, drain
from talent_match.services.progress import ProgressEmitter
from talent_match.services.retry import RetryPolicy, describe_failure
from talent_match.utils.exceptions import AIResponseError, ExternalServiceError, RateLimitError


def flaky(failures):
    """Operation that raises each failure in turn, then returns "ok"."""
    pending = list(failures)
    calls = {"n": 0}

    async def operation():
        calls["n"] += 1
        if pending:
            raise pending.pop(0)
        return "ok"

    return operation, calls


class TestRetryPolicy:
    """Exponential backoff retry"""

    def test_success_first_try(self):
        sleep = RecordingSleep()
        operation, calls = flaky([])
        outcome = asyncio.run(RetryPolicy(max_attempts=3, sleep=sleep).run(operation))

        assert outcome.succeeded
        assert outcome.value == "ok"
        assert outcome.attempts == 1
        assert calls["n"] == 1
        assert sleep.delays == []

    def test_backoff_doubles_and_no_sleep_after_last_attempt(self):
        sleep = RecordingSleep()
        operation, calls = flaky([ValueError("a"), ValueError("b"), ValueError("c")])
        outcome = asyncio.run(RetryPolicy(max_attempts=3, base_delay_ms=1000, sleep=sleep).run(operation))

        assert outcome.exhausted
        assert outcome.value is None
        assert isinstance(outcome.last_error, ValueError)
        assert str(outcome.last_error) == "c"
        assert calls["n"] == 3
        assert sleep.delays == [2.0, 4.0]

    def test_retry_after_hint_overrides_backoff(self):
        sleep = RecordingSleep()
        operation, _ = flaky([RateLimitError("Rate limited - will retry", retry_after=7)])
        outcome = asyncio.run(RetryPolicy(max_attempts=3, sleep=sleep).run(operation))

        assert outcome.succeeded
        assert outcome.attempts == 2
        assert sleep.delays == [7.0]

    def test_max_delay_caps_wait(self):
        policy = RetryPolicy(max_attempts=5, base_delay_ms=1000, max_delay_ms=3000)
        assert policy.delay_for(1) == 2.0
        assert policy.delay_for(3) == 3.0

    def test_retry_after_hint_respects_max_delay(self):
        policy = RetryPolicy(max_attempts=3, base_delay_ms=1000, max_delay_ms=30000)
        assert policy.delay_for(1, RateLimitError("Rate limited - will retry", retry_after=86400)) == 30.0
        assert policy.delay_for(1, RateLimitError("Rate limited - will retry", retry_after=12)) == 12.0

    def test_one_log_event_per_attempt(self):
        async def scenario():
            emitter = ProgressEmitter()
            operation, _ = flaky([ExternalServiceError("API error: 503", retryable=True)])
            policy = RetryPolicy(max_attempts=3, emitter=emitter, label="Batch 1/2", sleep=RecordingSleep())
            await policy.run(operation)
            emitter.fail("done failed")
            return await drain(emitter)

        events = asyncio.run(scenario())
        logs = [e for e in events if "level" in e]
        assert [e["level"] for e in logs] == ["error", "success"]
        assert logs[0]["message"].startswith("Batch 1/2 attempt 1/3 transient failure")
        assert logs[1]["message"] == "Batch 1/2 succeeded on attempt 2/3"

    def test_invalid_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


def test_describe_failure():
    assert describe_failure(RateLimitError("slow down")) == "rate limited"
    assert describe_failure(ExternalServiceError("down", retryable=True)) == "transient failure"
    assert describe_failure(AIResponseError("bad json")) == "failed"
