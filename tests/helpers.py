"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: it exists to prevent test suites from
growing lots of one-off provider subclasses as coverage expands.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from chatrelay.errors import TransportError
from chatrelay.providers.models import ProviderRequest
from tests.conftest import FakeProvider


@dataclass
class ScriptedProvider(FakeProvider):
    """FakeProvider that fails for the credentials listed in ``failing``.

    ``fail_with`` is raised for a failing credential. When ``stream_before_fail``
    is set, a streamed attempt yields those chunks before failing.
    """

    failing: frozenset[str | None] = frozenset()
    fail_with: BaseException = field(
        default_factory=lambda: TransportError("backend down", retryable=True)
    )
    stream_before_fail: tuple[str, ...] = ()

    async def generate(
        self, request: ProviderRequest, *, credential: str | None
    ) -> str:
        self._record(request, credential)
        if credential in self.failing:
            raise self.fail_with
        return f"ok:{credential}"

    async def stream(self, request: ProviderRequest, *, credential: str | None):
        self._record(request, credential)
        if credential in self.failing:
            for chunk in self.stream_before_fail:
                yield chunk
            raise self.fail_with
        for chunk in self.chunks:
            yield chunk


@dataclass
class FlakyProvider(FakeProvider):
    """FakeProvider whose first ``failures`` calls raise, then succeed."""

    failures: int = 1
    fail_with: BaseException = field(
        default_factory=lambda: TransportError("transient", retryable=True)
    )

    async def generate(
        self, request: ProviderRequest, *, credential: str | None
    ) -> str:
        self._record(request, credential)
        if self.calls <= self.failures:
            raise self.fail_with
        return f"ok:{request.query.text}"


@dataclass
class GateProvider(FakeProvider):
    """FakeProvider that blocks inside the call until released.

    ``started`` is set once the call is in flight; ``finished`` records
    whether the call ran to completion (False after cancellation).
    """

    started: asyncio.Event = field(default_factory=asyncio.Event)
    release: asyncio.Event = field(default_factory=asyncio.Event)
    finished: bool = False

    async def generate(
        self, request: ProviderRequest, *, credential: str | None
    ) -> str:
        self._record(request, credential)
        self.started.set()
        await self.release.wait()
        self.finished = True
        return "released"

    async def stream(self, request: ProviderRequest, *, credential: str | None):
        self._record(request, credential)
        yield "first"
        self.started.set()
        await self.release.wait()
        self.finished = True
        yield " second"
