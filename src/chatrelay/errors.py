"""Exception hierarchy for chatrelay."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class ChatRelayError(Exception):
    """Base exception for all chatrelay errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(ChatRelayError):
    """Configuration validation or resolution failed."""


class ConversationError(ChatRelayError):
    """The conversation passed to a call is malformed."""


class FileReadError(ChatRelayError):
    """A file attached to a turn could not be read."""

    def __init__(self, message: str, *, path: str, hint: str | None = None) -> None:
        super().__init__(message, hint=hint)
        self.path = path


class TransportError(ChatRelayError):
    """A backend call failed for one credential.

    Providers attach retry metadata so the dispatch layer can make bounded
    retry decisions without brittle substring matching.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        provider: str | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.provider = provider
        self.phase = phase


class RateLimitError(TransportError):
    """Rate limit exceeded (HTTP 429)."""


class AllCredentialsExhausted(ChatRelayError):
    """Every credential of the selected provider failed in one traversal."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        failures: tuple[BaseException, ...] = (),
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.provider = provider
        self.failures = failures


class AllProvidersExhausted(ChatRelayError):
    """The retry budget ran out; this is the final failure seen by callers."""

    def __init__(
        self,
        message: str,
        *,
        selection: str,
        attempts: int,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.selection = selection
        self.attempts = attempts


class Cancelled(ChatRelayError):
    """The caller requested cancellation through the cancel signal."""


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
