"""Operation-versus-timer race with a single winner."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from mcphub.mcp.errors import ConnectTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def race_with_timeout(
    operation: Awaitable[T],
    timeout_seconds: float,
    *,
    timeout_message: str,
) -> T:
    """Await `operation` unless the timer fires first.

    Whichever side finishes first decides the outcome. When the timer wins the
    operation is cancelled and whatever it later produces is consumed and
    dropped, so callers observe exactly one result.
    """
    task = asyncio.ensure_future(operation)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_seconds)
    except asyncio.CancelledError:
        task.cancel()
        task.add_done_callback(_discard_outcome)
        raise
    if task in done:
        return task.result()
    task.cancel()
    task.add_done_callback(_discard_outcome)
    raise ConnectTimeout(timeout_message)


def _discard_outcome(task: asyncio.Future[object]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Discarding late failure from timed-out operation: %s", exc)
    else:
        logger.debug("Discarding late result from timed-out operation")
