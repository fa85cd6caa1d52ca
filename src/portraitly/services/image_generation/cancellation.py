"""Helpers for observing a per-job cancellation event.

A job owns one asyncio.Event; setting it stops further provider attempts and
wakes any poll loop waiting between iterations.
"""

import asyncio
from typing import Awaitable, Optional, TypeVar

from portraitly.services.exceptions import GenerationCancelled

T = TypeVar("T")


def raise_if_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise GenerationCancelled("Generation cancelled by caller")


async def sleep_or_cancel(seconds: float, cancel_event: Optional[asyncio.Event]) -> None:
    """Sleep for seconds, returning early with GenerationCancelled if the event fires."""
    raise_if_cancelled(cancel_event)
    if cancel_event is None:
        await asyncio.sleep(seconds)
        return

    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass
    raise_if_cancelled(cancel_event)


async def run_cancellable(
    awaitable: Awaitable[T],
    cancel_event: Optional[asyncio.Event],
    timeout: Optional[float] = None,
) -> T:
    """Await a provider call, abandoning it on cancellation or timeout.

    Raises:
        GenerationCancelled: The cancel event fired first (the call is cancelled)
        asyncio.TimeoutError: The call did not finish within timeout
    """
    raise_if_cancelled(cancel_event)
    call = asyncio.ensure_future(awaitable)
    if cancel_event is None:
        return await asyncio.wait_for(call, timeout=timeout)

    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait(
            {call, waiter}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        call.cancel()
        raise
    finally:
        waiter.cancel()

    if call in done:
        return call.result()

    call.cancel()
    if cancel_event.is_set():
        raise GenerationCancelled("Generation cancelled by caller")
    raise asyncio.TimeoutError()
