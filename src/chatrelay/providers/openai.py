"""OpenAI-compatible chat-completions provider.

Serves OpenAI itself plus any endpoint speaking the same protocol (DeepInfra,
a local GPT4Free server) by pointing the SDK at a different ``base_url``.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from chatrelay.conversation import ASSISTANT_ROLE
from chatrelay.errors import ConfigurationError, TransportError
from chatrelay.formatting import ChatFormatter
from chatrelay.providers._errors import wrap_provider_error
from chatrelay.providers.base import ProviderCapabilities

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from chatrelay.formatting import FormattedMessage
    from chatrelay.providers.models import ProviderRequest

DEEPINFRA_BASE_URL = "https://api.deepinfra.com/v1/openai"

# The SDK refuses to build a client without a key; keyless local servers ignore it.
_KEYLESS_PLACEHOLDER = "not-needed"


class OpenAICompatibleProvider:
    """Chat-completions provider for OpenAI-protocol endpoints."""

    def __init__(
        self,
        name: str = "openai",
        *,
        base_url: str | None = None,
    ) -> None:
        self.name = name
        self.base_url = base_url
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
            from openai import AsyncOpenAI
        except ImportError as e:
            raise ConfigurationError(
                "openai package not installed",
                hint="uv pip install openai",
            ) from e
        return AsyncOpenAI(
            api_key=credential or _KEYLESS_PLACEHOLDER,
            base_url=self.base_url,
            max_retries=0,
        )

    def _create_kwargs(self, request: ProviderRequest) -> dict[str, Any]:
        return {
            "model": request.model,
            "messages": [self._to_message(m) for m in request.messages],
            "temperature": request.effective_temperature,
            "max_tokens": request.max_output_tokens,
        }

    def _to_message(self, message: FormattedMessage) -> dict[str, str]:
        if message.uploads:
            raise ConfigurationError(
                f"{self.name} does not accept file attachments",
                hint="Choose a selection with file upload support.",
            )
        return {"role": message.role, "content": message.text}

    async def generate(
        self, request: ProviderRequest, *, credential: str | None
    ) -> str:
        """Return the complete chat-completion text."""
        client = self._create_client(credential)
        try:
            response = await client.chat.completions.create(
                **self._create_kwargs(request)
            )
            choices = getattr(response, "choices", None) or []
            if not choices:
                raise TransportError(f"{self.name} returned no choices")
            return choices[0].message.content or ""
        except asyncio.CancelledError:
            raise
        except (ConfigurationError, TransportError):
            raise
        except Exception as e:
            raise wrap_provider_error(
                e, provider=self.name, phase="generate"
            ) from e
        finally:
            await client.close()

    async def stream(
        self, request: ProviderRequest, *, credential: str | None
    ) -> AsyncIterator[str]:
        """Yield content deltas from a streamed chat completion."""
        client = self._create_client(credential)
        try:
            stream = await client.chat.completions.create(
                **self._create_kwargs(request), stream=True
            )
            async for chunk in stream:
                choices = getattr(chunk, "choices", None)
                if not choices:
                    continue
                delta = getattr(choices[0].delta, "content", None)
                if delta:
                    yield delta
        except asyncio.CancelledError:
            raise
        except ConfigurationError:
            raise
        except Exception as e:
            raise wrap_provider_error(e, provider=self.name, phase="stream") from e
        finally:
            await client.close()
