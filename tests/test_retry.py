from __future__ import annotations

import pytest

from stratus.core.exceptions import (
    AuthenticationError,
    ProviderError,
    RateLimitError,
    TransientNetworkError,
    ValidationError,
    error_for_status,
    is_retryable,
)
from stratus.retry import RetryPolicy, any_of, on_status_code, retry

pytestmark = [pytest.mark.unit]


class Flaky:
    def __init__(self, failures: list[BaseException], result: str = "ok") -> None:
        self.failures = failures
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


@pytest.mark.asyncio
async def test_retries_until_success():
    fn = Flaky([RateLimitError("429"), TransientNetworkError("503")])
    assert await RetryPolicy(max_attempts=3, delay=0).call(fn) == "ok"
    assert fn.calls == 3


@pytest.mark.asyncio
async def test_exhaustion_reraises_last_error():
    fn = Flaky([TransientNetworkError(f"503 #{i}") for i in range(5)])
    with pytest.raises(TransientNetworkError, match="#2"):
        await RetryPolicy(max_attempts=3, delay=0).call(fn)
    assert fn.calls == 3


@pytest.mark.asyncio
async def test_terminal_errors_are_not_retried():
    fn = Flaky([AuthenticationError("401"), TransientNetworkError("503")])
    with pytest.raises(AuthenticationError):
        await RetryPolicy(max_attempts=3, delay=0).call(fn)
    assert fn.calls == 1


@pytest.mark.asyncio
async def test_decorator_form():
    fn = Flaky([RateLimitError("429")])

    @retry(RetryPolicy(max_attempts=2, delay=0))
    async def call() -> str:
        return await fn()

    assert await call() == "ok"
    assert fn.calls == 2


@pytest.mark.asyncio
async def test_custom_predicate():
    fn = Flaky([ProviderError("409", status=409)])
    policy = RetryPolicy(max_attempts=2, delay=0, on=any_of(is_retryable, on_status_code(409)))
    assert await policy.call(fn) == "ok"


def test_policy_rejects_invalid_values():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(delay=-1)


def test_is_retryable_classification():
    assert is_retryable(RateLimitError("x"))
    assert is_retryable(TransientNetworkError("x"))
    assert not is_retryable(AuthenticationError("x"))
    assert not is_retryable(ValidationError("x"))
    assert not is_retryable(ProviderError("x", status=400))


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (401, AuthenticationError),
        (403, AuthenticationError),
        (429, RateLimitError),
        (500, TransientNetworkError),
        (504, TransientNetworkError),
        (501, ProviderError),
        (422, ProviderError),
    ],
)
def test_error_for_status(status: int, expected: type[ProviderError]):
    err = error_for_status(status, "body", context="GET /servers")
    assert type(err) is expected
    assert err.status == status
    assert str(err).startswith("GET /servers: HTTP")
