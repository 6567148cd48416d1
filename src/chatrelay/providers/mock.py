"""Mock provider for offline use and testing."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from chatrelay.conversation import ASSISTANT_ROLE
from chatrelay.formatting import ChatFormatter
from chatrelay.providers.base import ProviderCapabilities

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from chatrelay.providers.models import ProviderRequest


class MockProvider:
    """Mock provider that echoes the query without any API calls.

    Supports streaming and uploads so every selection can be exercised.
    """

    name = "mock"

    def __init__(self) -> None:
        self._formatter = ChatFormatter(model_role=ASSISTANT_ROLE)

    @property
    def formatter(self) -> ChatFormatter:
        """Formatter using ``user``/``assistant`` roles."""
        return self._formatter

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Return supported feature flags."""
        return ProviderCapabilities(streaming=True, uploads=True)

    @staticmethod
    def _answer(request: ProviderRequest) -> str:
        text = request.query.text[:100]
        attachments = request.query.uploads
        if attachments:
            names = ", ".join(u.name for u in attachments)
            return f"echo: {text} [{names}]"
        return f"echo: {text}"

    async def generate(
        self, request: ProviderRequest, *, credential: str | None
    ) -> str:
        """Return a deterministic echo of the query."""
        _ = credential
        return self._answer(request)

    async def stream(
        self, request: ProviderRequest, *, credential: str | None
    ) -> AsyncIterator[str]:
        """Yield the echo word by word."""
        _ = credential
        words = self._answer(request).split(" ")
        for idx, word in enumerate(words):
            await asyncio.sleep(0)
            yield word if idx == 0 else f" {word}"
