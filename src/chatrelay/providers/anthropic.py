"""Anthropic Messages API provider."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from chatrelay.conversation import ASSISTANT_ROLE
from chatrelay.errors import ConfigurationError
from chatrelay.formatting import ChatFormatter
from chatrelay.providers._errors import wrap_provider_error
from chatrelay.providers.base import ProviderCapabilities

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from chatrelay.providers.models import ProviderRequest

# Anthropic accepts temperatures in [0, 1] only.
_MAX_TEMPERATURE = 1.0


class AnthropicProvider:
    """Anthropic Messages API provider."""

    name = "anthropic"

    def __init__(self) -> None:
        self._formatter = ChatFormatter(model_role=ASSISTANT_ROLE)

    @property
    def formatter(self) -> ChatFormatter:
        """Formatter using ``user``/``assistant`` roles."""
        return self._formatter

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Return supported feature flags."""
        return ProviderCapabilities(streaming=True, uploads=False)

    def _create_client(self, credential: str | None) -> Any:
        """Create an async client bound to one API key."""
        try:
            from anthropic import AsyncAnthropic
        except ImportError as e:
            raise ConfigurationError(
                "anthropic package not installed",
                hint="uv pip install anthropic",
            ) from e
        return AsyncAnthropic(api_key=credential, max_retries=0)

    @staticmethod
    def _build_messages(request: ProviderRequest) -> list[dict[str, Any]]:
        """Build the messages list from history + query.

        Anthropic requires strict user/assistant alternation, so consecutive
        same-role messages are merged via ``_append_message``.
        """
        messages: list[dict[str, Any]] = []
        for message in request.messages:
            if message.uploads:
                raise ConfigurationError(
                    "anthropic does not accept file attachments",
                    hint="Choose a selection with file upload support.",
                )
            _append_message(messages, {"role": message.role, "content": message.text})
        return messages

    def _create_kwargs(self, request: ProviderRequest) -> dict[str, Any]:
        return {
            "model": request.model,
            "messages": self._build_messages(request),
            "max_tokens": request.max_output_tokens,
            "temperature": min(request.effective_temperature, _MAX_TEMPERATURE),
        }

    async def generate(
        self, request: ProviderRequest, *, credential: str | None
    ) -> str:
        """Generate a response using Anthropic's Messages API."""
        client = self._create_client(credential)
        try:
            response = await client.messages.create(**self._create_kwargs(request))
            return "".join(
                block.text
                for block in getattr(response, "content", None) or []
                if getattr(block, "type", None) == "text"
            )
        except asyncio.CancelledError:
            raise
        except ConfigurationError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider=self.name,
                phase="generate",
                message="Anthropic generate failed",
            ) from e
        finally:
            await client.close()

    async def stream(
        self, request: ProviderRequest, *, credential: str | None
    ) -> AsyncIterator[str]:
        """Yield text deltas from a streamed message."""
        client = self._create_client(credential)
        try:
            async with client.messages.stream(**self._create_kwargs(request)) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield text
        except asyncio.CancelledError:
            raise
        except ConfigurationError:
            raise
        except Exception as e:
            raise wrap_provider_error(
                e,
                provider=self.name,
                phase="stream",
                message="Anthropic stream failed",
            ) from e
        finally:
            await client.close()


def _append_message(messages: list[dict[str, Any]], msg: dict[str, Any]) -> None:
    """Append *msg*, merging into the previous message when roles match."""
    if messages and messages[-1]["role"] == msg["role"]:
        prev = messages[-1]
        prev_content = prev["content"]
        new_content = msg["content"]
        # Normalize both sides to list-of-blocks for merging.
        if isinstance(prev_content, str):
            prev_content = [{"type": "text", "text": prev_content}]
        if isinstance(new_content, str):
            new_content = [{"type": "text", "text": new_content}]
        prev["content"] = prev_content + new_content
    else:
        messages.append(msg)
