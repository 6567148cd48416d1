"""Dispatch: credential rotation per traversal and bounded traversal retries.

One *traversal* tries every configured credential of the selected provider in
order, stopping at the first success. A traversal where every credential
fails raises ``AllCredentialsExhausted``; the controller then retries the whole
traversal (fresh rotation, fresh formatting, fresh uploads) until the retry
budget is spent.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING

from chatrelay._cancel import check_cancelled, run_cancellable, sleep_cancellable
from chatrelay.credentials import CredentialRotator, parse_credentials
from chatrelay.errors import (
    AllCredentialsExhausted,
    AllProvidersExhausted,
    Cancelled,
    ConfigurationError,
)
from chatrelay.providers.models import ProviderRequest
from chatrelay.retry import RetryPolicy, retry_delay, should_retry_traversal
from chatrelay.streaming import CumulativeStream

if TYPE_CHECKING:
    import asyncio

    from chatrelay.conversation import Conversation
    from chatrelay.credentials import Credential
    from chatrelay.options import CallOptions
    from chatrelay.providers.base import Provider
    from chatrelay.streaming import StreamSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchTarget:
    """Everything the dispatcher needs to call one resolved selection."""

    provider: Provider
    selection: str
    model: str
    #: Raw comma-separated credential string; parsed on every traversal.
    credentials: str | None
    requires_credential: bool
    max_output_tokens: int
    supports_streaming: bool = True

    def streams_to(self, sink: StreamSink | None) -> bool:
        """Whether a call with *sink* should use the streaming path."""
        return (
            sink is not None
            and self.supports_streaming
            and self.provider.capabilities.streaming
        )


async def run_attempt(
    target: DispatchTarget,
    conversation: Conversation,
    options: CallOptions,
    *,
    credential: Credential,
    sink: StreamSink | None = None,
) -> str | None:
    """Run one credential attempt: format, build the request, call the backend.

    Returns the full text, or None after streaming it through *sink*.
    """
    formatted = await target.provider.formatter.format(conversation)
    request = ProviderRequest(
        model=target.model,
        history=formatted.history,
        query=formatted.query,
        max_output_tokens=target.max_output_tokens,
        temperature=options.temperature,
    )

    if sink is not None and target.streams_to(sink):
        stream = CumulativeStream(sink)
        text = await stream.drain(
            target.provider.stream(request, credential=credential)
        )
        logger.debug(
            "%s streamed %d chunk(s), %d chars",
            target.selection,
            stream.chunk_count,
            len(text),
        )
        return None

    return await target.provider.generate(request, credential=credential)


async def run_credential_loop(
    target: DispatchTarget,
    conversation: Conversation,
    options: CallOptions,
    *,
    sink: StreamSink | None = None,
    cancel: asyncio.Event | None = None,
) -> str | None:
    """Try each credential in order and return the first successful result.

    A failing credential is logged and skipped; text already streamed by it is
    not retracted. ``ConfigurationError`` and cancellation end the loop
    immediately.
    """
    credentials = parse_credentials(
        target.credentials,
        required=target.requires_credential,
        provider=target.provider.name,
    )
    rotator = CredentialRotator(credentials)
    failures: list[BaseException] = []

    for credential in rotator:
        check_cancelled(cancel)
        logger.debug(
            "%s: trying credential %d/%d",
            target.selection,
            rotator.position,
            len(rotator),
        )
        try:
            return await run_cancellable(
                run_attempt(
                    target,
                    conversation,
                    options,
                    credential=credential,
                    sink=sink,
                ),
                cancel,
            )
        except (Cancelled, ConfigurationError):
            raise
        except Exception as exc:
            failures.append(exc)
            logger.warning(
                "%s credential %d/%d failed: %s",
                target.provider.name,
                rotator.position,
                len(rotator),
                exc,
            )

    raise AllCredentialsExhausted(
        f"All {len(rotator)} credential(s) for {target.provider.name} failed",
        provider=target.provider.name,
        failures=tuple(failures),
        hint="Check the configured API keys or try another provider.",
    )


async def dispatch(
    target: DispatchTarget,
    conversation: Conversation,
    options: CallOptions,
    *,
    sink: StreamSink | None = None,
    policy: RetryPolicy | None = None,
    cancel: asyncio.Event | None = None,
) -> str | None:
    """Run credential-loop traversals until one succeeds or the budget is spent.

    Every failed traversal consumes one retry; with the default budget of 3 a
    permanently failing provider is traversed 4 times before
    ``AllProvidersExhausted`` is raised. Configuration errors, conversation
    errors and cancellation are raised immediately.
    """
    policy = policy or RetryPolicy()
    last_exc: BaseException | None = None

    for traversal in range(1, policy.max_traversals + 1):
        try:
            return await run_credential_loop(
                target, conversation, options, sink=sink, cancel=cancel
            )
        except Exception as exc:
            if not should_retry_traversal(exc):
                raise
            last_exc = exc

        if traversal >= policy.max_traversals:
            break
        delay = retry_delay(policy, last_exc, retry_index=traversal)
        logger.warning(
            "%s traversal %d/%d failed (%s); retrying in %.2fs",
            target.selection,
            traversal,
            policy.max_traversals,
            last_exc,
            delay,
        )
        await sleep_cancellable(delay, cancel)

    raise AllProvidersExhausted(
        f"{target.selection} failed after {policy.max_traversals} attempt(s)",
        selection=target.selection,
        attempts=policy.max_traversals,
        hint="All credentials failed on every attempt; see the chained cause.",
    ) from last_exc
