"""Tests for the provider retry decorator."""
import pytest

from docent.resilience import async_retry
from docent.resilience.retry import backoff_delays


class FlakyProvider:
    """Fails ``failures`` times with ``error`` before answering."""

    def __init__(self, failures, error=ConnectionError("connection reset")):
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self, prompt):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return f"answer to {prompt}"


@pytest.fixture
def recorded_sleeps(monkeypatch):
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr("docent.resilience.retry.asyncio.sleep", fake_sleep)
    return delays


@pytest.mark.asyncio
async def test_first_attempt_answer_is_returned(recorded_sleeps):
    provider = FlakyProvider(failures=0)

    assert await async_retry(max_retries=3)(provider)("hi") == "answer to hi"
    assert provider.calls == 1
    assert recorded_sleeps == []


@pytest.mark.asyncio
async def test_recovers_within_budget(recorded_sleeps):
    provider = FlakyProvider(failures=2)
    call = async_retry(max_retries=3, initial_delay=0.5, jitter=False)(provider)

    assert await call("hi") == "answer to hi"
    assert provider.calls == 3
    assert recorded_sleeps == [0.5, 1.0]


@pytest.mark.asyncio
async def test_budget_is_retries_plus_one(recorded_sleeps):
    """The last transient failure is re-raised once retries run out."""
    provider = FlakyProvider(failures=10)
    call = async_retry(max_retries=2, initial_delay=0.01, jitter=False)(provider)

    with pytest.raises(ConnectionError, match="connection reset"):
        await call("hi")

    assert provider.calls == 3


@pytest.mark.asyncio
async def test_non_transient_errors_are_not_retried(recorded_sleeps):
    provider = FlakyProvider(failures=1, error=KeyError("missing"))
    call = async_retry(max_retries=5, exceptions=(ConnectionError,))(provider)

    with pytest.raises(KeyError):
        await call("hi")

    assert provider.calls == 1
    assert recorded_sleeps == []


@pytest.mark.asyncio
async def test_waits_are_capped(recorded_sleeps):
    provider = FlakyProvider(failures=10)
    call = async_retry(max_retries=4, initial_delay=1.0, max_delay=3.0, backoff_factor=2.0, jitter=False)(provider)

    with pytest.raises(ConnectionError):
        await call("hi")

    assert recorded_sleeps == [1.0, 2.0, 3.0, 3.0]


@pytest.mark.asyncio
async def test_jitter_stays_within_half_to_one_and_a_half(recorded_sleeps):
    provider = FlakyProvider(failures=3)
    call = async_retry(max_retries=3, initial_delay=2.0, backoff_factor=1.0)(provider)

    await call("hi")

    assert len(recorded_sleeps) == 3
    assert all(1.0 <= delay < 3.0 for delay in recorded_sleeps)


def test_backoff_delays_sequence():
    delays = backoff_delays(initial_delay=0.25, max_delay=1.0, backoff_factor=3.0)
    assert [next(delays) for _ in range(4)] == [0.25, 0.75, 1.0, 1.0]
