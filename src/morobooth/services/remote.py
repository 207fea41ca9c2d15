"""Bounded, best-effort calls into the remote store."""

import asyncio
import logging
from collections.abc import Callable
from typing import TypeVar

from morobooth.domain.sync import SYNC_OK, SyncDegraded, SyncResult
from morobooth.errors import RemoteUnavailable

_logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_remote(
    func: Callable[..., T], *args: object, timeout: float, action: str
) -> T:
    """Run a blocking remote call in a worker thread with a timeout.

    A call that times out keeps running in its thread; callers only stop
    waiting for it.
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout)
    except TimeoutError as exc:
        raise RemoteUnavailable(f"{action} timed out after {timeout}s") from exc
    except Exception as exc:
        raise RemoteUnavailable(
            f"{action} failed: {type(exc).__name__}: {exc}"
        ) from exc


async def write_through(
    func: Callable[..., object] | None,
    *args: object,
    timeout: float,
    action: str,
) -> SyncResult:
    """Attempt a remote write and report degradation instead of raising."""
    if func is None:
        return SyncDegraded(reason="remote store not configured")
    try:
        await call_remote(func, *args, timeout=timeout, action=action)
    except RemoteUnavailable as exc:
        _logger.warning("Remote write degraded (non-fatal): %s", exc)
        return SyncDegraded(reason=str(exc))
    return SYNC_OK
