"""Serialized photo-number assignment for sessions."""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from typing import TypeVar

from morobooth.domain.sessions import SessionRecord
from morobooth.domain.sync import SyncDegraded, SyncResult
from morobooth.errors import (
    CounterTimeout,
    NoActiveSession,
    PhotoLimitReached,
    RemoteUnavailable,
    SessionNotFound,
    StorageBusy,
)
from morobooth.services.remote import call_remote, write_through
from morobooth.services.sessions import (
    LocalSessionStore,
    RemoteSessionRepository,
    merge_sessions,
)

_logger = logging.getLogger(__name__)

T = TypeVar("T")

# Queued captures that must fit inside one lock wait while the remote hangs.
_QUEUED_REMOTE_WRITES = 2


async def retry_when_busy(
    func: Callable[[], T],
    *,
    attempts: int,
    delay_seconds: float,
    action: str,
) -> T:
    """Run a local store call, retrying StorageBusy with linear backoff.

    QuotaExceeded and every other error propagate on the first failure.
    """
    attempt = 0
    while True:
        try:
            return func()
        except StorageBusy:
            attempt += 1
            if attempt >= attempts:
                _logger.error(
                    "%s: local store still busy after %s attempts", action, attempt
                )
                raise
            delay = delay_seconds * attempt
            _logger.warning(
                "%s: local store busy (attempt %s/%s), retrying in %.2fs",
                action,
                attempt,
                attempts,
                delay,
            )
            await asyncio.sleep(delay)


@dataclass(frozen=True)
class CounterIncrement:
    """New photo number plus the outcome of the remote write-through."""

    count: int
    remote: SyncResult


@dataclass
class SessionCounterService:
    """Assigns gap-free photo numbers within a session.

    The local store is authoritative for the counter. Only one session code
    should be captured on one device at a time; two devices sharing a code
    may assign the same numbers while offline.
    """

    local_store: LocalSessionStore
    remote_repository: RemoteSessionRepository | None = None
    lock_timeout_seconds: float = 5.0
    remote_timeout_seconds: float = 1.0
    remote_pause_seconds: float = 30.0
    write_retries: int = 3
    retry_delay_seconds: float = 0.2
    monotonic: Callable[[], float] = time.monotonic
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)
    _remote_paused_until: float = field(default=0.0, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.remote_timeout_seconds * _QUEUED_REMOTE_WRITES >= (
            self.lock_timeout_seconds
        ):
            raise ValueError(
                "remote_timeout_seconds must stay below half of lock_timeout_seconds"
            )

    async def increment(self, session_code: str) -> int:
        """Reserve and return the next photo number for a session."""
        result = await self.increment_with_sync(session_code)
        return result.count

    async def increment_with_sync(self, session_code: str) -> CounterIncrement:
        """Reserve the next photo number and report the remote outcome."""
        async with self._locked():
            session = self.local_store.get_session(session_code)
            if session is None:
                raise NoActiveSession(f"Session {session_code} is not on this device")
            new_count = session.photo_count + 1
            max_photos = session.settings.max_photos
            if max_photos is not None and new_count > max_photos:
                raise PhotoLimitReached(session_code, max_photos)

            remote = await self._push_count(session_code, new_count)
            await retry_when_busy(
                lambda: self.local_store.update_session(
                    session_code,
                    lambda current: replace(current, photo_count=new_count),
                ),
                attempts=self.write_retries,
                delay_seconds=self.retry_delay_seconds,
                action="increment",
            )
            _logger.info("Session %s photo count %s", session_code, new_count)
            return CounterIncrement(count=new_count, remote=remote)

    async def reconcile(self, session_code: str) -> SessionRecord:
        """Bring both stores up to the highest photo count either has seen."""
        async with self._locked():
            local = self.local_store.get_session(session_code)
            remote = None
            if self.remote_repository is not None:
                try:
                    remote = await call_remote(
                        self.remote_repository.get_session,
                        session_code,
                        timeout=self.remote_timeout_seconds,
                        action="get_session",
                    )
                except RemoteUnavailable as exc:
                    _logger.warning("Reconcile skipped remote read: %s", exc)
            merged = merge_sessions(local, remote)
            if merged is None:
                raise SessionNotFound(session_code)

            if local is None:
                merged = replace(merged, is_active=False)
                self.local_store.save_session(merged)
            elif local.photo_count < merged.photo_count:
                await retry_when_busy(
                    lambda: self.local_store.update_session(
                        session_code,
                        lambda current: replace(
                            current,
                            photo_count=max(current.photo_count, merged.photo_count),
                        ),
                    ),
                    attempts=self.write_retries,
                    delay_seconds=self.retry_delay_seconds,
                    action="reconcile",
                )
            if remote is not None and remote.photo_count < merged.photo_count:
                await write_through(
                    self.remote_repository.update_photo_count,
                    session_code,
                    merged.photo_count,
                    timeout=self.remote_timeout_seconds,
                    action="update_photo_count",
                )
            return merged

    @asynccontextmanager
    async def _locked(self) -> AsyncIterator[None]:
        try:
            async with asyncio.timeout(self.lock_timeout_seconds):
                await self._lock.acquire()
        except TimeoutError as exc:
            raise CounterTimeout(
                f"Photo counter busy for more than {self.lock_timeout_seconds}s"
            ) from exc
        try:
            yield
        finally:
            self._lock.release()

    async def _push_count(self, session_code: str, count: int) -> SyncResult:
        """Write the new count remotely unless a recent failure paused writes.

        While paused, captures skip the remote round-trip entirely; the
        remote counter catches up on the next successful write or reconcile.
        """
        if self.remote_repository is not None and (
            self.monotonic() < self._remote_paused_until
        ):
            return SyncDegraded(reason="remote counter writes paused after failure")
        remote = await write_through(
            self.remote_repository and self.remote_repository.update_photo_count,
            session_code,
            count,
            timeout=self.remote_timeout_seconds,
            action="update_photo_count",
        )
        if isinstance(remote, SyncDegraded) and self.remote_repository is not None:
            self._remote_paused_until = self.monotonic() + self.remote_pause_seconds
            _logger.warning(
                "Pausing remote counter writes for %ss", self.remote_pause_seconds
            )
        else:
            self._remote_paused_until = 0.0
        return remote
