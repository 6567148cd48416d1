"""Domain models for the provider transport layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chatrelay.formatting import FormattedMessage

DEFAULT_TEMPERATURE = 0.7


@dataclass(frozen=True)
class ProviderRequest:
    """A unified request payload for one credential attempt."""

    model: str
    history: tuple[FormattedMessage, ...]
    query: FormattedMessage
    max_output_tokens: int
    temperature: float | None = None

    @property
    def effective_temperature(self) -> float:
        """Requested temperature, or the shared adapter default."""
        return DEFAULT_TEMPERATURE if self.temperature is None else self.temperature

    @property
    def messages(self) -> tuple[FormattedMessage, ...]:
        """History followed by the query."""
        return (*self.history, self.query)
