"""Configuration: frozen Settings threaded explicitly from the entry point."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import os
from types import MappingProxyType
from typing import Any, Literal

from dotenv import load_dotenv

from chatrelay.errors import ConfigurationError
from chatrelay.retry import DEFAULT_MAX_RETRIES, RetryPolicy

ProviderName = Literal["gemini", "openai", "deepinfra", "anthropic", "g4f_local"]

PROVIDER_NAMES: tuple[ProviderName, ...] = (
    "gemini",
    "openai",
    "deepinfra",
    "anthropic",
    "g4f_local",
)

# Checked in order; plural names hold comma-separated key lists.
_CREDENTIAL_ENV_VARS: dict[ProviderName, tuple[str, ...]] = {
    "gemini": ("GEMINI_API_KEYS", "GEMINI_API_KEY"),
    "openai": ("OPENAI_API_KEYS", "OPENAI_API_KEY"),
    "deepinfra": ("DEEPINFRA_API_KEYS", "DEEPINFRA_API_KEY"),
    "anthropic": ("ANTHROPIC_API_KEYS", "ANTHROPIC_API_KEY"),
    "g4f_local": ("G4F_API_KEYS",),
}

DEFAULT_SELECTION = "GoogleGemini"
DEFAULT_MAX_OUTPUT_TOKENS = 8192
DEFAULT_G4F_BASE_URL = "http://localhost:1337/v1"
DEFAULT_G4F_MODEL = "gpt-4o-mini"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Immutable process configuration for chatrelay calls.

    Credentials are kept as the raw comma-separated strings users enter; they
    are split per call by the credential rotator.

    Example:
        settings = Settings(credentials={"gemini": "key-one, key-two"})
        text = await generate(conversation, "GoogleGemini", settings=settings)
    """

    credentials: Mapping[ProviderName, str] = field(default_factory=dict)
    #: Used whenever a selection key is missing or unknown.
    default_selection: str = DEFAULT_SELECTION
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    g4f_base_url: str = DEFAULT_G4F_BASE_URL
    g4f_model: str = DEFAULT_G4F_MODEL
    #: Route every selection to the offline mock provider.
    use_mock: bool = False

    def __post_init__(self) -> None:
        """Validate and freeze configuration."""
        unknown = sorted(set(self.credentials) - set(PROVIDER_NAMES))
        if unknown:
            raise ConfigurationError(
                f"Unknown provider(s) in credentials: {', '.join(unknown)}",
                hint=f"Supported providers: {', '.join(PROVIDER_NAMES)}",
            )
        for name, value in self.credentials.items():
            if not isinstance(value, str):
                raise ConfigurationError(
                    f"Credentials for {name} must be a comma-separated string",
                    hint="Pass credentials={'gemini': 'key-one,key-two'}.",
                )
        if not isinstance(self.default_selection, str) or not self.default_selection:
            raise ConfigurationError(
                "default_selection must be a non-empty selection key",
                hint=f"For example default_selection={DEFAULT_SELECTION!r}.",
            )
        if self.max_output_tokens <= 0:
            raise ConfigurationError(
                f"max_output_tokens must be > 0, got {self.max_output_tokens}",
                hint="This caps the length of every generated answer.",
            )
        object.__setattr__(
            self, "credentials", MappingProxyType(dict(self.credentials))
        )

    def credential_string(self, provider: ProviderName) -> str | None:
        """Return the raw credential string configured for *provider*."""
        return self.credentials.get(provider)

    @classmethod
    def from_env(cls, **overrides: Any) -> Settings:
        """Build settings from the environment (and a ``.env`` file, if any).

        Explicit keyword overrides win over environment values.
        """
        load_dotenv()

        credentials: dict[ProviderName, str] = {}
        for provider, env_vars in _CREDENTIAL_ENV_VARS.items():
            for env_var in env_vars:
                value = os.environ.get(env_var)
                if value and value.strip():
                    credentials[provider] = value
                    break

        values: dict[str, Any] = {"credentials": credentials}
        default_selection = os.environ.get("CHATRELAY_DEFAULT_PROVIDER")
        if default_selection:
            values["default_selection"] = default_selection.strip()
        max_retries = os.environ.get("CHATRELAY_MAX_RETRIES")
        if max_retries:
            values["retry"] = RetryPolicy(
                max_retries=_parse_int("CHATRELAY_MAX_RETRIES", max_retries)
            )
        g4f_url = os.environ.get("CHATRELAY_G4F_URL")
        if g4f_url:
            values["g4f_base_url"] = g4f_url.strip()
        g4f_model = os.environ.get("CHATRELAY_G4F_MODEL")
        if g4f_model:
            values["g4f_model"] = g4f_model.strip()
        use_mock = os.environ.get("CHATRELAY_USE_MOCK")
        if use_mock:
            values["use_mock"] = use_mock.strip().lower() in _TRUTHY

        values.update(overrides)
        return cls(**values)

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        configured = sorted(name for name, raw in self.credentials.items() if raw)
        return (
            f"Settings(credentials={{{', '.join(f'{n!r}: [REDACTED]' for n in configured)}}}, "
            f"default_selection={self.default_selection!r}, "
            f"max_retries={self.retry.max_retries}, use_mock={self.use_mock})"
        )

    __repr__ = __str__


@dataclass(frozen=True)
class UserConfig:
    """Per-call user preferences (owned by the UI layer, read-only here)."""

    #: Free-form numeric string, e.g. ``"0.7"``; mapped to temperature.
    creativity: str | None = None

    @classmethod
    def coerce(cls, value: UserConfig | Mapping[str, Any] | None) -> UserConfig:
        """Accept a ``UserConfig``, a plain mapping, or None."""
        if value is None:
            return cls()
        if isinstance(value, UserConfig):
            return value
        if isinstance(value, Mapping):
            creativity = value.get("creativity")
            return cls(creativity=None if creativity is None else str(creativity))
        raise ConfigurationError(
            f"user_config must be a UserConfig or mapping, got {type(value).__name__}",
            hint="Pass UserConfig(creativity='0.7') or {'creativity': '0.7'}.",
        )


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError as e:
        raise ConfigurationError(
            f"{name} must be an integer, got {raw!r}",
            hint=f"Unset {name} to use the default of {DEFAULT_MAX_RETRIES}.",
        ) from e
