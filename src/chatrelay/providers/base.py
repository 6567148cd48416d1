"""Provider protocol: the contract every backend adapter implements."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from chatrelay.formatting import ChatFormatter
    from chatrelay.providers.models import ProviderRequest


@dataclass(frozen=True)
class ProviderCapabilities:
    """Feature flags exposed by providers."""

    streaming: bool
    uploads: bool


@runtime_checkable
class Provider(Protocol):
    """Minimal provider protocol: format, generate, stream.

    Each call builds a fresh session bound to the given credential; ``None``
    is passed for providers that run without a key.
    """

    name: str

    @property
    def formatter(self) -> ChatFormatter:
        """Formatter configured with this backend's role vocabulary."""
        ...

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Feature flags used to gate streaming and uploads."""
        ...

    async def generate(
        self, request: ProviderRequest, *, credential: str | None
    ) -> str:
        """Send the request and return the complete response text."""
        ...

    def stream(
        self, request: ProviderRequest, *, credential: str | None
    ) -> AsyncIterator[str]:
        """Send the request and yield text deltas as they arrive."""
        ...
