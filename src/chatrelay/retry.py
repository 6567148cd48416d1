"""Whole-traversal retry policy with explicit error contracts.

Design goals:
- Small API surface
- Explicit state (policy + traversal counters)
- No brittle substring matching for retry decisions
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import random

from chatrelay.errors import (
    AllCredentialsExhausted,
    Cancelled,
    ConfigurationError,
    ConversationError,
    TransportError,
    _walk_exception_chain,
)

DEFAULT_MAX_RETRIES = 3


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry budget with optional exponential backoff and jitter.

    ``max_retries`` counts *extra* traversals: the default budget of 3 means
    up to 4 full passes over the credential list.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    initial_delay_s: float = 0.5
    backoff_multiplier: float = 2.0
    max_delay_s: float = 5.0
    jitter: bool = True  # "full jitter" when enabled

    def __post_init__(self) -> None:
        """Validate invariants to keep retry behavior predictable."""
        if self.max_retries < 0:
            raise ValueError("RetryPolicy.max_retries must be >= 0")
        if self.initial_delay_s < 0:
            raise ValueError("RetryPolicy.initial_delay_s must be >= 0")
        if self.backoff_multiplier <= 0:
            raise ValueError("RetryPolicy.backoff_multiplier must be > 0")
        if self.max_delay_s < 0:
            raise ValueError("RetryPolicy.max_delay_s must be >= 0")

    @property
    def max_traversals(self) -> int:
        """Initial traversal plus every retry."""
        return self.max_retries + 1


def should_retry_traversal(exc: BaseException) -> bool:
    """Return True when a failed credential-loop traversal should be retried.

    Contract:
    - Cancellation (task or caller signal) is never retried.
    - Configuration and conversation errors fail fast; repeating the same
      inputs cannot fix them.
    - Everything else, including exhausted credentials, is retried.
    """
    if isinstance(exc, (asyncio.CancelledError, Cancelled)):
        return False
    return not isinstance(exc, (ConfigurationError, ConversationError))


def retry_after_hint(exc: BaseException) -> float | None:
    """Return the largest provider Retry-After seen in *exc*, if any."""
    candidates: list[BaseException] = list(_walk_exception_chain(exc))
    if isinstance(exc, AllCredentialsExhausted):
        for failure in exc.failures:
            candidates.extend(_walk_exception_chain(failure))

    hints = [
        e.retry_after_s
        for e in candidates
        if isinstance(e, TransportError)
        and isinstance(e.retry_after_s, (int, float))
        and e.retry_after_s >= 0
    ]
    return float(max(hints)) if hints else None


def compute_backoff_delay(policy: RetryPolicy, *, retry_index: int) -> float:
    """Return the sleep before retry number *retry_index* (1-based)."""
    base = policy.initial_delay_s * (
        policy.backoff_multiplier ** max(0, retry_index - 1)
    )
    base = min(policy.max_delay_s, base)
    if base <= 0:
        return 0.0
    if not policy.jitter:
        return base
    # Full jitter: random in [0, base] to avoid thundering herd.
    return random.random() * base  # noqa: S311


def _failures_are_permanent(exc: BaseException) -> bool:
    """True when every credential failure was classified as non-retryable."""
    failures = exc.failures if isinstance(exc, AllCredentialsExhausted) else (exc,)
    return bool(failures) and all(
        isinstance(f, TransportError) and f.retryable is False for f in failures
    )


def retry_delay(
    policy: RetryPolicy, exc: BaseException, *, retry_index: int
) -> float:
    """Backoff delay for *retry_index*, stretched to honor provider Retry-After.

    Zero when ``initial_delay_s`` is 0 or when every failure was classified
    as non-retryable (auth errors, bad requests). The result never exceeds
    ``max_delay_s``.
    """
    if policy.initial_delay_s <= 0 or _failures_are_permanent(exc):
        return 0.0
    delay = compute_backoff_delay(policy, retry_index=retry_index)
    hint = retry_after_hint(exc)
    if hint is not None:
        delay = max(delay, hint)
    return min(delay, policy.max_delay_s)
