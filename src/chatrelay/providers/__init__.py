"""Provider implementations."""

from .anthropic import AnthropicProvider
from .base import Provider, ProviderCapabilities
from .gemini import GeminiProvider
from .models import ProviderRequest
from .openai import OpenAICompatibleProvider

__all__ = [
    "AnthropicProvider",
    "GeminiProvider",
    "OpenAICompatibleProvider",
    "Provider",
    "ProviderCapabilities",
    "ProviderRequest",
]
