"""chatrelay: route chat conversations across interchangeable LLM backends.

Public API:
    - generate(): Answer the last turn of a conversation, optionally streaming
    - Turn: One role-tagged message, optionally with file attachments
    - Settings / UserConfig: Process configuration and per-call preferences
    - ProviderRegistry: Selection keys, capability flags and option derivation
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from chatrelay.config import Settings, UserConfig
from chatrelay.conversation import Turn, coerce_conversation, has_attachments
from chatrelay.dispatch import DispatchTarget, dispatch
from chatrelay.errors import (
    AllCredentialsExhausted,
    AllProvidersExhausted,
    Cancelled,
    ChatRelayError,
    ConfigurationError,
    ConversationError,
    FileReadError,
    RateLimitError,
    TransportError,
)
from chatrelay.options import CallOptions
from chatrelay.registry import (
    CHAT_PROVIDERS,
    PROVIDERS,
    ProviderDescriptor,
    ProviderRegistry,
)
from chatrelay.retry import RetryPolicy

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Mapping, Sequence

    from chatrelay.providers.base import Provider
    from chatrelay.streaming import StreamSink

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("chatrelay")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("chatrelay").addHandler(logging.NullHandler())

logger = logging.getLogger(__name__)


async def generate(
    conversation: Sequence[Turn | Mapping[str, Any]],
    selection: str | None = None,
    user_config: UserConfig | Mapping[str, Any] | None = None,
    stream_sink: StreamSink | None = None,
    *,
    settings: Settings | None = None,
    cancel: asyncio.Event | None = None,
) -> str | None:
    """Answer the last turn of *conversation* with the selected provider.

    Args:
        conversation: Ordered turns; the last one is the query.
        selection: Selection key (see ``CHAT_PROVIDERS``); unknown or missing
            keys fall back to ``settings.default_selection``.
        user_config: Per-call preferences such as ``creativity``.
        stream_sink: Called with the cumulative text after every chunk when
            the selection supports streaming. May be a coroutine function.
        settings: Process configuration; read from the environment when None.
        cancel: Setting this event aborts the call with ``Cancelled``.

    Returns:
        The complete answer, or None when it was delivered through
        *stream_sink*.

    Raises:
        AllProvidersExhausted: Every attempt failed within the retry budget.

    Example:
        text = await generate(
            [Turn(role="user", content="Fix the formatting of this text")],
            "GoogleGemini",
            {"creativity": "0.3"},
            settings=Settings(credentials={"gemini": "key-one,key-two"}),
        )
    """
    settings = settings if settings is not None else Settings.from_env()
    turns = coerce_conversation(conversation)

    registry = ProviderRegistry(settings.default_selection)
    descriptor = registry.resolve(selection)
    options = registry.options_for(selection, user_config)

    if has_attachments(turns) and not descriptor.supports_files:
        raise ConfigurationError(
            f"{descriptor.title} does not support file uploads",
            hint="Choose a selection with file upload support, or remove the files.",
        )

    target = _build_target(descriptor, settings)
    logger.debug(
        "Dispatching %d turn(s) to %s (model=%s, stream=%s)",
        len(turns),
        descriptor.key,
        target.model,
        target.streams_to(stream_sink),
    )
    return await dispatch(
        target,
        turns,
        options,
        sink=stream_sink,
        policy=settings.retry,
        cancel=cancel,
    )


def _build_target(descriptor: ProviderDescriptor, settings: Settings) -> DispatchTarget:
    provider = _get_provider(descriptor, settings)
    model = descriptor.model
    if descriptor.provider == "g4f_local":
        model = settings.g4f_model
    return DispatchTarget(
        provider=provider,
        selection=descriptor.key,
        model=model,
        credentials=settings.credential_string(descriptor.provider),
        requires_credential=descriptor.requires_credential and not settings.use_mock,
        max_output_tokens=settings.max_output_tokens,
        supports_streaming=descriptor.supports_streaming,
    )


def _get_provider(descriptor: ProviderDescriptor, settings: Settings) -> Provider:
    """Get the adapter for a resolved selection."""
    if settings.use_mock:
        from chatrelay.providers.mock import MockProvider

        return MockProvider()

    if descriptor.provider == "gemini":
        from chatrelay.providers.gemini import GeminiProvider

        return GeminiProvider()

    if descriptor.provider == "anthropic":
        from chatrelay.providers.anthropic import AnthropicProvider

        return AnthropicProvider()

    from chatrelay.providers.openai import (
        DEEPINFRA_BASE_URL,
        OpenAICompatibleProvider,
    )

    if descriptor.provider == "deepinfra":
        return OpenAICompatibleProvider("deepinfra", base_url=DEEPINFRA_BASE_URL)
    if descriptor.provider == "g4f_local":
        return OpenAICompatibleProvider("g4f_local", base_url=settings.g4f_base_url)
    return OpenAICompatibleProvider("openai")


# Re-export for convenience
__all__ = [
    "CHAT_PROVIDERS",
    "PROVIDERS",
    "AllCredentialsExhausted",
    "AllProvidersExhausted",
    "CallOptions",
    "Cancelled",
    "ChatRelayError",
    "ConfigurationError",
    "ConversationError",
    "FileReadError",
    "ProviderDescriptor",
    "ProviderRegistry",
    "RateLimitError",
    "RetryPolicy",
    "Settings",
    "TransportError",
    "Turn",
    "UserConfig",
    "generate",
]
