"""Caller-driven cancellation for in-flight work.

A call may carry an ``asyncio.Event``; setting it aborts whatever is awaiting
(transport call, stream, file read, retry sleep) and surfaces ``Cancelled``.
Task cancellation (``asyncio.CancelledError``) is left untouched.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, TypeVar

from chatrelay.errors import Cancelled

if TYPE_CHECKING:
    from collections.abc import Coroutine
    from typing import Any

T = TypeVar("T")


def check_cancelled(cancel: asyncio.Event | None) -> None:
    """Raise ``Cancelled`` when the signal is already set."""
    if cancel is not None and cancel.is_set():
        raise Cancelled("Call cancelled by caller")


async def run_cancellable(
    coro: Coroutine[Any, Any, T], cancel: asyncio.Event | None
) -> T:
    """Await *coro*, aborting it as soon as *cancel* is set.

    When the work and the signal finish together, the work's outcome wins.
    """
    if cancel is None:
        return await coro
    if cancel.is_set():
        coro.close()
        raise Cancelled("Call cancelled by caller")

    work = asyncio.ensure_future(coro)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        waiter.cancel()

    if work.done():
        return work.result()

    work.cancel()
    # Let the work unwind (closing SDK streams) before reporting.
    await asyncio.gather(work, return_exceptions=True)
    raise Cancelled("Call cancelled by caller")


async def sleep_cancellable(delay: float, cancel: asyncio.Event | None) -> None:
    """Sleep for *delay* seconds unless cancelled first."""
    if delay <= 0:
        check_cancelled(cancel)
        return
    await run_cancellable(asyncio.sleep(delay), cancel)
