"""Map SDK exceptions from any backend onto ``TransportError``.

The status code, Retry-After delay and transient/permanent classification
are read once here, so the retry controller only looks at typed attributes.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any

import httpx

from chatrelay.errors import RateLimitError, TransportError, _walk_exception_chain

# Statuses worth waiting out before the next traversal.
TRANSIENT_STATUS_CODES: frozenset[int] = frozenset(
    {408, 409, 429, 500, 502, 503, 504}
)

_KEY_ENV_VARS = {
    "gemini": "GEMINI_API_KEYS",
    "openai": "OPENAI_API_KEYS",
    "deepinfra": "DEEPINFRA_API_KEYS",
    "anthropic": "ANTHROPIC_API_KEYS",
}

_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)s$")


def _as_status(value: Any) -> int | None:
    if isinstance(value, int) and 100 <= value <= 599:
        return value
    return None


def extract_status_code(exc: BaseException) -> int | None:
    """Return the first HTTP status found along the exception chain.

    SDKs disagree on the attribute: openai/anthropic use ``status_code``,
    google-genai uses ``code``, and httpx errors carry it on ``response``.
    """
    for e in _walk_exception_chain(exc):
        candidates = (
            getattr(e, "status_code", None),
            getattr(e, "status", None),
            getattr(e, "code", None),
            getattr(getattr(e, "response", None), "status_code", None),
        )
        for value in candidates:
            status = _as_status(value)
            if status is not None:
                return status
    return None


def _header_seconds(e: BaseException) -> float | None:
    headers: Any = getattr(getattr(e, "response", None), "headers", None)
    if headers is None:
        return None
    try:
        raw = headers.get("Retry-After")
    except (AttributeError, TypeError):
        return None
    if not isinstance(raw, str):
        return None
    try:
        seconds = float(raw.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def _retry_info_seconds(e: BaseException) -> float | None:
    """Read a ``google.rpc.RetryInfo`` delay from a google-genai error body.

    The body is exposed as ``.details``, shaped like
    ``{"error": {"details": [{"@type": "...RetryInfo", "retryDelay": "8s"}]}}``.
    """
    details: Any = getattr(e, "details", None)
    error: Any = details.get("error") if isinstance(details, dict) else None
    entries: Any = error.get("details") if isinstance(error, dict) else None
    if not isinstance(entries, list):
        return None
    for entry in entries:
        if not isinstance(entry, dict) or "RetryInfo" not in str(
            entry.get("@type", "")
        ):
            continue
        match = _DURATION_RE.match(str(entry.get("retryDelay", "")))
        if match:
            return float(match.group(1))
    return None


def extract_retry_after_s(exc: BaseException) -> float | None:
    """Return the provider-requested wait in seconds, if any error carries one."""
    for e in _walk_exception_chain(exc):
        direct = getattr(e, "retry_after", None)
        if isinstance(direct, (int, float)) and direct >= 0:
            return float(direct)
        for reader in (_header_seconds, _retry_info_seconds):
            seconds = reader(e)
            if seconds is not None:
                return seconds
    return None


def _is_transient(
    exc: BaseException, status_code: int | None, retry_after_s: float | None
) -> bool:
    """Whether waiting before another attempt could change the outcome."""
    if retry_after_s is not None or status_code in TRANSIENT_STATUS_CODES:
        return True
    return any(
        isinstance(e, (httpx.TimeoutException, httpx.RequestError))
        for e in _walk_exception_chain(exc)
    )


def _auth_hint(provider: str, status_code: int | None, detail: str) -> str | None:
    lowered = detail.lower()
    key_problem = status_code in {401, 403} or (
        status_code == 400 and ("api key" in lowered or "api_key" in lowered)
    )
    if not key_problem:
        return None
    env_var = _KEY_ENV_VARS.get(provider, "the provider's API key")
    return f"Check credentials/permissions (try setting {env_var})."


def wrap_provider_error(
    exc: BaseException,
    *,
    provider: str,
    phase: str,
    message: str | None = None,
    hint: str | None = None,
) -> TransportError:
    """Return *exc* as a ``TransportError`` tagged with *provider* and *phase*.

    An exception that already is a ``TransportError`` is returned as is, with
    only its missing context filled in. HTTP 429 becomes ``RateLimitError``.
    """
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    if isinstance(exc, TransportError):
        exc.provider = exc.provider or provider
        exc.phase = exc.phase or phase
        if exc.hint is None:
            exc.hint = hint
        return exc

    status_code = extract_status_code(exc)
    retry_after_s = extract_retry_after_s(exc)
    detail = str(exc)

    summary = message or f"{provider} {phase} failed"
    if status_code is not None:
        summary = f"{summary} (status={status_code})"
    err_cls = RateLimitError if status_code == 429 else TransportError
    return err_cls(
        f"{summary}: {detail}" if detail else summary,
        hint=hint if hint is not None else _auth_hint(provider, status_code, detail),
        retryable=_is_transient(exc, status_code, retry_after_s),
        status_code=status_code,
        retry_after_s=retry_after_s,
        provider=provider,
        phase=phase,
    )
