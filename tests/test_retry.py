"""Tests for the wait-and-retry policy"""
import pytest

from anomaly_pipeline.retry import BackoffSchedule, retry_async


class Flaky(Exception):
    pass


class Fatal(Exception):
    pass


def _op(outcomes):
    """Coroutine factory that raises or returns the next scripted outcome."""
    calls = []

    async def op():
        calls.append(1)
        item = outcomes[len(calls) - 1]
        if isinstance(item, Exception):
            raise item
        return item

    return op, calls


def test_delay_after_clamps_to_last_entry():
    s = BackoffSchedule(delays_s=(0.05, 0.1), max_attempts=5)

    assert s.delay_after(1) == 0.05
    assert s.delay_after(2) == 0.1
    assert s.delay_after(4) == 0.1
    assert BackoffSchedule(delays_s=(), max_attempts=3).delay_after(1) == 0.0


@pytest.mark.asyncio
async def test_succeeds_on_fourth_attempt(sleeps):
    schedule = BackoffSchedule(delays_s=(0.05, 0.1, 0.5, 1.0), max_attempts=4)
    op, calls = _op([Flaky(), Flaky(), Flaky(), "ok"])

    result = await retry_async(op, schedule, retry_on=lambda e: isinstance(e, Flaky), sleep=sleeps)

    assert result == "ok"
    assert len(calls) == 4
    assert sleeps.calls == [0.05, 0.1, 0.5]


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(sleeps):
    schedule = BackoffSchedule(delays_s=(0.05, 0.1, 0.5, 1.0), max_attempts=4)
    op, calls = _op([Flaky("1"), Flaky("2"), Flaky("3"), Flaky("4"), "never"])

    with pytest.raises(Flaky, match="4"):
        await retry_async(op, schedule, retry_on=lambda e: isinstance(e, Flaky), sleep=sleeps)

    assert len(calls) == 4
    assert len(sleeps.calls) == 3


@pytest.mark.asyncio
async def test_non_retryable_error_is_raised_immediately(sleeps):
    schedule = BackoffSchedule(delays_s=(0.05,), max_attempts=4)
    op, calls = _op([Fatal(), "never"])

    with pytest.raises(Fatal):
        await retry_async(op, schedule, retry_on=lambda e: isinstance(e, Flaky), sleep=sleeps)

    assert len(calls) == 1
    assert sleeps.calls == []
