"""Provider registry: selection keys → provider, model and capability flags.

The table is static and built once at import. Unknown selection keys resolve
to the configured default selection instead of failing, so stale preferences
keep working after an entry is removed.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
import logging
import math
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from chatrelay.config import DEFAULT_SELECTION, UserConfig
from chatrelay.errors import ConfigurationError
from chatrelay.options import CallOptions

if TYPE_CHECKING:
    from collections.abc import Mapping

    from chatrelay.config import ProviderName

logger = logging.getLogger(__name__)

# Providers that can run without an API key.
_KEYLESS_PROVIDERS: frozenset[str] = frozenset({"g4f_local"})


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static description of one selectable provider+model bundle."""

    key: str
    title: str
    provider: ProviderName
    model: str
    supports_streaming: bool = True
    supports_files: bool = False
    supports_function_calling: bool = False

    @property
    def requires_credential(self) -> bool:
        """Whether at least one API key must be configured."""
        return self.provider not in _KEYLESS_PROVIDERS


def _deepinfra(key: str, title: str, model: str) -> ProviderDescriptor:
    return ProviderDescriptor(
        key=key,
        title=f"DeepInfra ({title})",
        provider="deepinfra",
        model=model,
        supports_function_calling=True,
    )


_DESCRIPTORS: tuple[ProviderDescriptor, ...] = (
    ProviderDescriptor(
        key="GPT4o",
        title="OpenAI (gpt-4o)",
        provider="openai",
        model="gpt-4o",
        supports_function_calling=True,
    ),
    ProviderDescriptor(
        key="GPT4oMini",
        title="OpenAI (gpt-4o-mini)",
        provider="openai",
        model="gpt-4o-mini",
        supports_function_calling=True,
    ),
    _deepinfra(
        "DeepInfraMixtral_8x22B", "Mixtral-8x22B", "mistralai/Mixtral-8x22B-Instruct-v0.1"
    ),
    _deepinfra(
        "DeepInfraMixtral_8x7B", "Mixtral-8x7B", "mistralai/Mixtral-8x7B-Instruct-v0.1"
    ),
    _deepinfra("DeepInfraQwen2_72B", "Qwen2-72B", "Qwen/Qwen2-72B-Instruct"),
    _deepinfra(
        "DeepInfraMistral_7B", "Mistral-7B", "mistralai/Mistral-7B-Instruct-v0.3"
    ),
    _deepinfra("DeepInfraOpenChat36_8B", "openchat-3.6-8b", "openchat/openchat-3.6-8b"),
    _deepinfra(
        "DeepInfraLlama3_70B", "meta-llama-3-70b", "meta-llama/Meta-Llama-3-70B-Instruct"
    ),
    _deepinfra(
        "DeepInfraLlama3_8B", "meta-llama-3-8b", "meta-llama/Meta-Llama-3-8B-Instruct"
    ),
    _deepinfra("DeepInfraGemma2_27B", "gemma-2-27b", "google/gemma-2-27b-it"),
    _deepinfra(
        "DeepInfraWizardLM2_8x22B", "WizardLM-2-8x22B", "microsoft/WizardLM-2-8x22B"
    ),
    ProviderDescriptor(
        key="Claude",
        title="Anthropic (claude-sonnet-4-5)",
        provider="anthropic",
        model="claude-sonnet-4-5",
    ),
    ProviderDescriptor(
        key=DEFAULT_SELECTION,
        title="Google Gemini (requires API Key)",
        provider="gemini",
        model="gemini-2.5-flash",
        supports_files=True,
    ),
    ProviderDescriptor(
        key="G4FLocal",
        title="GPT4Free Local API",
        provider="g4f_local",
        # Replaced by Settings.g4f_model at call time.
        model="",
    ),
)

PROVIDERS: Mapping[str, ProviderDescriptor] = MappingProxyType(
    {d.key: d for d in _DESCRIPTORS}
)

#: (user-facing title, selection key) pairs, in display order.
CHAT_PROVIDERS: tuple[tuple[str, str], ...] = tuple(
    (d.title, d.key) for d in _DESCRIPTORS
)


class ProviderRegistry:
    """Resolve selection keys against the static table with a default fallback."""

    def __init__(
        self,
        default_key: str = DEFAULT_SELECTION,
        providers: Mapping[str, ProviderDescriptor] = PROVIDERS,
    ) -> None:
        if default_key not in providers:
            raise ConfigurationError(
                f"Default selection {default_key!r} is not a known provider",
                hint=f"Choose one of: {', '.join(providers)}",
            )
        self.default_key = default_key
        self._providers = providers

    def selection_key(self, key: str | None) -> str:
        """Return *key* when known, otherwise the default selection key."""
        if key and key in self._providers:
            return key
        if key:
            logger.debug(
                "Unknown selection %r; using default %r", key, self.default_key
            )
        return self.default_key

    def resolve(self, key: str | None) -> ProviderDescriptor:
        """Return the descriptor for *key*, falling back to the default."""
        return self._providers[self.selection_key(key)]

    def options_for(
        self,
        key: str | None,
        user_config: UserConfig | Mapping[str, Any] | None,
    ) -> CallOptions:
        """Derive per-call options for *key* from user preferences.

        ``creativity`` becomes the temperature, clamped at 0.0 and rounded to
        one decimal place with ties rounding up. A missing, blank or non-numeric
        value leaves the temperature unset so the adapter default applies.
        """
        _ = key  # options do not vary by provider yet
        raw = UserConfig.coerce(user_config).creativity
        if raw is None or not raw.strip():
            return CallOptions()
        try:
            value = float(raw)
        except ValueError:
            logger.warning("Ignoring non-numeric creativity value %r", raw)
            return CallOptions()
        if not math.isfinite(value):
            logger.warning("Ignoring non-finite creativity value %r", raw)
            return CallOptions()
        return CallOptions(temperature=_one_decimal(max(0.0, value)))

    def supports_files(self, key: str | None) -> bool:
        """Whether the resolved selection accepts file attachments."""
        return self.resolve(key).supports_files

    def supports_function_calling(self, key: str | None) -> bool:
        """Whether the resolved selection supports function calling."""
        return self.resolve(key).supports_function_calling

    def supports_streaming(self, key: str | None) -> bool:
        """Whether the resolved selection can drive a stream sink."""
        return self.resolve(key).supports_streaming


def _one_decimal(value: float) -> float:
    """Round the exact binary value of *value* to one decimal, ties upward."""
    return float(Decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
