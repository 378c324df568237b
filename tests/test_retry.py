"""Tests for the shared retry/backoff policy."""

import asyncio

import httpx
import pytest

from conftest import response
from errors import NotFound, ProviderUnavailable
from retry import backoff_delay, execute


class _Sleeper:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _operation(sequence):
    """Zero-arg coroutine function replaying `sequence` (status codes or exceptions)."""
    items = list(sequence)
    calls = []

    async def op():
        calls.append(1)
        item = items.pop(0)
        if isinstance(item, Exception):
            raise item
        resp = response(item, json_data={"ok": True})
        resp.raise_for_status()
        return resp

    op.calls = calls
    return op


@pytest.mark.parametrize(
    "attempt, expected",
    [(1, 1.0), (2, 2.0), (3, 4.0), (5, 16.0), (6, 30.0), (20, 30.0)],
)
def test_backoff_doubles_and_is_capped(attempt: int, expected: float) -> None:
    assert backoff_delay(attempt, 1.0) == expected


def test_transient_failures_are_retried_then_succeed() -> None:
    sleep = _Sleeper()
    op = _operation([500, 503, 200])

    resp = asyncio.run(execute(op, 3, 1.0, label="GET /search", provider="animesama", sleep=sleep))

    assert resp.status_code == 200
    assert len(op.calls) == 3
    assert sleep.delays == [1.0, 2.0]


def test_exhausted_attempts_raise_provider_unavailable() -> None:
    sleep = _Sleeper()
    op = _operation([500, 502, 503])

    with pytest.raises(ProviderUnavailable) as info:
        asyncio.run(execute(op, 3, 1.0, label="GET /search", provider="animesama", sleep=sleep))

    assert info.value.attempts == 3
    assert info.value.provider == "animesama"
    assert isinstance(info.value.cause, httpx.HTTPStatusError)
    assert sleep.delays == [1.0, 2.0]  # no sleep after the last attempt


def test_transport_errors_are_transient() -> None:
    sleep = _Sleeper()
    op = _operation([httpx.ConnectTimeout("timed out"), httpx.ReadError("reset"), 200])

    resp = asyncio.run(execute(op, 3, 0.5, sleep=sleep))

    assert resp.status_code == 200
    assert sleep.delays == [0.5, 1.0]


@pytest.mark.parametrize("status", [404, 410])
def test_not_found_is_never_retried(status: int) -> None:
    sleep = _Sleeper()
    op = _operation([status, 200])

    with pytest.raises(NotFound):
        asyncio.run(execute(op, 3, 1.0, sleep=sleep))

    assert len(op.calls) == 1
    assert sleep.delays == []


@pytest.mark.parametrize("status", [400, 403, 429])
def test_client_errors_fail_without_retry(status: int) -> None:
    sleep = _Sleeper()
    op = _operation([status, 200])

    with pytest.raises(ProviderUnavailable) as info:
        asyncio.run(execute(op, 3, 1.0, sleep=sleep))

    assert info.value.attempts == 1
    assert len(op.calls) == 1
    assert sleep.delays == []


def test_single_attempt_does_not_sleep() -> None:
    sleep = _Sleeper()
    with pytest.raises(ProviderUnavailable):
        asyncio.run(execute(_operation([500]), 1, 1.0, sleep=sleep))
    assert sleep.delays == []


def test_cancellation_stops_retrying() -> None:
    calls = []

    async def op():
        calls.append(1)
        raise httpx.ConnectError("refused")

    async def main():
        task = asyncio.ensure_future(execute(op, 5, 10.0))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(main())
    assert calls == [1]
