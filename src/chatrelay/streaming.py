"""Streaming normalization: deltas in, cumulative text out.

Every adapter yields raw text deltas; callers always receive the full text
generated so far. A new attempt starts a new buffer, so a sink may see the
text shrink when an attempt fails mid-stream and the next one begins.
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    StreamSink = Callable[[str], Awaitable[Any] | Any]


class CumulativeStream:
    """Accumulate deltas and push the running buffer to a sink."""

    def __init__(self, sink: StreamSink) -> None:
        self._sink = sink
        self._chunks: list[str] = []
        self.chunk_count = 0

    @property
    def text(self) -> str:
        """Text received so far."""
        return "".join(self._chunks)

    async def push(self, delta: str | None) -> None:
        """Append *delta* and invoke the sink with the cumulative text."""
        if not delta:
            return
        self._chunks.append(delta)
        self.chunk_count += 1
        result = self._sink(self.text)
        if inspect.isawaitable(result):
            await result

    async def drain(self, deltas: AsyncIterator[str]) -> str:
        """Consume *deltas* to completion and return the final text."""
        async for delta in deltas:
            await self.push(delta)
        return self.text
