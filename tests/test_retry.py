"""Retry policy: validation, backoff schedule and the fail-fast contract."""

from __future__ import annotations

import asyncio

import pytest

from chatrelay.errors import (
    AllCredentialsExhausted,
    Cancelled,
    ConfigurationError,
    ConversationError,
    FileReadError,
    RateLimitError,
    TransportError,
)
from chatrelay.retry import (
    RetryPolicy,
    compute_backoff_delay,
    retry_after_hint,
    retry_delay,
    should_retry_traversal,
)

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_retries": -1},
        {"initial_delay_s": -0.1},
        {"backoff_multiplier": 0},
        {"max_delay_s": -1},
    ],
)
def test_policy_rejects_invalid_values(kwargs: dict[str, float]) -> None:
    with pytest.raises(ValueError, match="RetryPolicy"):
        RetryPolicy(**kwargs)  # type: ignore[arg-type]


def test_default_budget_allows_four_traversals() -> None:
    assert RetryPolicy().max_retries == 3
    assert RetryPolicy().max_traversals == 4


def test_backoff_grows_exponentially_and_caps() -> None:
    policy = RetryPolicy(initial_delay_s=0.5, max_delay_s=3.0, jitter=False)

    delays = [compute_backoff_delay(policy, retry_index=i) for i in range(1, 6)]

    assert delays == [0.5, 1.0, 2.0, 3.0, 3.0]


def test_full_jitter_stays_within_base() -> None:
    policy = RetryPolicy(initial_delay_s=1.0, jitter=True)
    for _ in range(50):
        assert 0.0 <= compute_backoff_delay(policy, retry_index=2) <= 2.0


@pytest.mark.parametrize(
    "exc",
    [
        asyncio.CancelledError(),
        Cancelled("stop"),
        ConfigurationError("no key"),
        ConversationError("empty"),
    ],
    ids=["task-cancel", "caller-cancel", "config", "conversation"],
)
def test_fail_fast_errors_are_not_retried(exc: BaseException) -> None:
    assert should_retry_traversal(exc) is False


@pytest.mark.parametrize(
    "exc",
    [
        AllCredentialsExhausted("all failed", provider="gemini"),
        TransportError("boom", retryable=False),
        FileReadError("gone", path="x"),
        RuntimeError("unexpected"),
    ],
    ids=["exhausted", "transport", "file", "other"],
)
def test_other_failures_are_retried(exc: BaseException) -> None:
    assert should_retry_traversal(exc) is True


def test_retry_after_hint_looks_inside_credential_failures() -> None:
    exc = AllCredentialsExhausted(
        "all failed",
        provider="openai",
        failures=(
            TransportError("a", retry_after_s=1.0),
            RateLimitError("b", retry_after_s=4.0),
            RuntimeError("c"),
        ),
    )

    assert retry_after_hint(exc) == 4.0
    assert retry_after_hint(RuntimeError("plain")) is None


def test_retry_delay_honors_retry_after_up_to_cap() -> None:
    policy = RetryPolicy(initial_delay_s=0.5, max_delay_s=5.0, jitter=False)

    short = RateLimitError("x", retry_after_s=2.0)
    long = RateLimitError("x", retry_after_s=60)

    assert retry_delay(policy, short, retry_index=1) == 2.0
    assert retry_delay(policy, long, retry_index=1) == 5.0
    assert retry_delay(policy, RuntimeError("x"), retry_index=1) == 0.5


def test_zero_initial_delay_disables_waiting() -> None:
    policy = RetryPolicy(initial_delay_s=0)
    exc = RateLimitError("slow down", retry_after_s=30)

    assert retry_delay(policy, exc, retry_index=3) == 0.0


def test_permanent_credential_failures_skip_backoff() -> None:
    policy = RetryPolicy(initial_delay_s=1.0, jitter=False)
    exc = AllCredentialsExhausted(
        "all failed",
        provider="openai",
        failures=(
            TransportError("bad key", retryable=False, status_code=401),
            TransportError("bad key", retryable=False, status_code=403),
        ),
    )

    assert retry_delay(policy, exc, retry_index=1) == 0.0


def test_one_transient_credential_failure_keeps_backoff() -> None:
    policy = RetryPolicy(initial_delay_s=1.0, jitter=False)
    exc = AllCredentialsExhausted(
        "all failed",
        provider="openai",
        failures=(
            TransportError("bad key", retryable=False, status_code=401),
            TransportError("overloaded", retryable=True, status_code=503),
        ),
    )

    assert retry_delay(policy, exc, retry_index=1) == 1.0


def test_unclassified_failures_keep_backoff() -> None:
    policy = RetryPolicy(initial_delay_s=1.0, jitter=False)
    exc = AllCredentialsExhausted(
        "all failed", provider="gemini", failures=(RuntimeError("odd"),)
    )

    assert retry_delay(policy, exc, retry_index=1) == 1.0
