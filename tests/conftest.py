"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration, automatic API test
skipping and the shared provider test double. Environment fixtures are
autouse unless noted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from typing import Any

import pytest

from chatrelay.conversation import ASSISTANT_ROLE
from chatrelay.formatting import ChatFormatter
from chatrelay.providers.base import ProviderCapabilities
from chatrelay.providers.models import ProviderRequest

# =============================================================================
# Test Doubles
# =============================================================================


@dataclass
class FakeProvider:
    """Provider test double for dispatch behavior verification.

    Records the credential and request of every call and answers with
    ``ok:<query text>``. ``chunks`` controls what ``stream()`` yields.
    """

    name: str = "fake"
    model_role: str = ASSISTANT_ROLE
    chunks: tuple[str, ...] = ("Hello", ", ", "world")
    credentials_seen: list[str | None] = field(default_factory=list)
    requests: list[ProviderRequest] = field(default_factory=list)
    _capabilities: ProviderCapabilities = field(
        default_factory=lambda: ProviderCapabilities(streaming=True, uploads=True)
    )

    @property
    def formatter(self) -> ChatFormatter:
        return ChatFormatter(model_role=self.model_role)

    @property
    def capabilities(self) -> ProviderCapabilities:
        return self._capabilities

    @property
    def calls(self) -> int:
        return len(self.credentials_seen)

    def _record(self, request: ProviderRequest, credential: str | None) -> None:
        self.credentials_seen.append(credential)
        self.requests.append(request)

    async def generate(
        self, request: ProviderRequest, *, credential: str | None
    ) -> str:
        self._record(request, credential)
        return f"ok:{request.query.text}"

    async def stream(self, request: ProviderRequest, *, credential: str | None):
        self._record(request, credential)
        for chunk in self.chunks:
            yield chunk


def user_turns(*texts: str) -> list[dict[str, Any]]:
    """Build alternating user/assistant mappings ending on the last text."""
    roles = ["user", "assistant"]
    offset = (len(texts) - 1) % 2
    return [
        {"role": roles[(idx + offset) % 2], "content": text}
        for idx, text in enumerate(texts)
    ]


# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================

_PROVIDER_ENV_PREFIXES = (
    "GEMINI_",
    "OPENAI_",
    "DEEPINFRA_",
    "ANTHROPIC_",
    "G4F_",
    "CHATRELAY_",
)


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    monkeypatch.setattr(
        "chatrelay.config.load_dotenv", lambda *_args, **_kwargs: False
    )


@pytest.fixture(autouse=True)
def isolate_provider_env(request, monkeypatch):
    """Ensure a clean provider environment for each test.

    Clears provider key and CHATRELAY_* env vars to prevent test pollution.
    Opt-out: @pytest.mark.allow_env_pollution or @pytest.mark.api
    """
    if request.node.get_closest_marker("allow_env_pollution") or (
        "api" in request.node.keywords
    ):
        return

    for key in list(os.environ.keys()):
        if key.startswith(_PROVIDER_ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# =============================================================================
# Pytest Hooks
# =============================================================================

API_TESTS_REASON = "API tests require ENABLE_API_TESTS=1"


def _api_tests_enabled() -> bool:
    return bool(os.getenv("ENABLE_API_TESTS"))


def pytest_collection_modifyitems(items):
    """Automatically skip API tests when not explicitly enabled."""
    if _api_tests_enabled():
        return
    skip_api = pytest.mark.skip(reason=API_TESTS_REASON)
    for item in items:
        if "api" in item.keywords:
            item.add_marker(skip_api)


# =============================================================================
# API Test Configuration
# =============================================================================


@pytest.fixture
def gemini_api_keys():
    """Return GEMINI_API_KEYS (or GEMINI_API_KEY) or skip the test."""
    keys = os.getenv("GEMINI_API_KEYS") or os.getenv("GEMINI_API_KEY")
    if not keys:
        pytest.skip("GEMINI_API_KEYS not set")
    return keys


@pytest.fixture
def fake_provider() -> FakeProvider:
    """A fresh streaming-capable provider double."""
    return FakeProvider()
