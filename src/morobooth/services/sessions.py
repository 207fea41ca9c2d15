"""Session lifecycle across the local and remote stores."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Protocol

from morobooth.domain.sessions import (
    SessionRecord,
    SessionSettings,
    generate_session_code,
)
from morobooth.domain.sync import SyncResult
from morobooth.errors import RemoteUnavailable, SessionNotFound
from morobooth.services.remote import call_remote, write_through

_logger = logging.getLogger(__name__)


class LocalSessionStore(Protocol):
    """Device-local persistence for sessions."""

    def get_session(self, session_code: str) -> SessionRecord | None:
        """Return a session by code, if present."""

    def list_sessions(self) -> list[SessionRecord]:
        """Return every locally known session."""

    def save_session(self, session: SessionRecord) -> None:
        """Insert or replace a session."""

    def update_session(
        self, session_code: str, change: Callable[[SessionRecord], SessionRecord]
    ) -> SessionRecord:
        """Apply ``change`` to the stored session in one transaction."""

    def set_active_session(self, session_code: str) -> None:
        """Mark one session active and every other session inactive."""

    def clear(self) -> None:
        """Delete all sessions and photos."""


class RemoteSessionRepository(Protocol):
    """Remote authoritative persistence for sessions."""

    def create_session(self, session: SessionRecord) -> None:
        """Insert a session row."""

    def get_session(self, session_code: str) -> SessionRecord | None:
        """Return a session by code, if present."""

    def list_sessions(self) -> list[SessionRecord]:
        """Return all sessions, newest first."""

    def update_photo_count(self, session_code: str, photo_count: int) -> None:
        """Raise the stored photo count to ``photo_count`` if it is lower."""

    def update_settings(self, session_code: str, settings: SessionSettings) -> None:
        """Replace the session settings."""

    def activate_session(self, session_code: str) -> None:
        """Mark one session active and every other session inactive."""

    def deactivate_session(self, session_code: str) -> None:
        """Mark a session inactive."""

    def delete_all_sessions(self) -> None:
        """Delete every session row."""


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def merge_sessions(
    local: SessionRecord | None, remote: SessionRecord | None
) -> SessionRecord | None:
    """Combine two views of a session, keeping the highest photo count.

    Remote fields win, except the active flag, which is device-local state.
    """
    if local is None or remote is None:
        return local or remote
    return replace(
        remote,
        photo_count=max(local.photo_count, remote.photo_count),
        is_active=local.is_active,
    )


@dataclass
class SessionService:
    """Creates, activates, and edits sessions.

    The local store must always succeed; remote writes are best-effort.
    """

    local_store: LocalSessionStore
    remote_repository: RemoteSessionRepository | None = None
    remote_timeout_seconds: float = 5.0
    clock: Callable[[], datetime] = _utcnow

    async def create_session(self, event_name: str) -> SessionRecord:
        """Create a new session and make it the active one on this device."""
        cleaned = event_name.strip()
        if not cleaned:
            raise ValueError("Event name is required")
        session = SessionRecord(
            session_code=generate_session_code(cleaned),
            event_name=cleaned,
            created_at=self.clock(),
        )
        await write_through(
            self.remote_repository and self.remote_repository.create_session,
            session,
            timeout=self.remote_timeout_seconds,
            action="create_session",
        )
        self.local_store.save_session(session)
        self.local_store.set_active_session(session.session_code)
        _logger.info("Created session %s for %r", session.session_code, cleaned)
        return session

    def get_current_session(self) -> SessionRecord | None:
        """Return the most recently created active local session."""
        active = [s for s in self.local_store.list_sessions() if s.is_active]
        if not active:
            return None
        return max(active, key=lambda session: session.created_at)

    async def get_session_by_code(self, session_code: str) -> SessionRecord | None:
        """Return a session merged from both stores, falling back to local."""
        local = self.local_store.get_session(session_code)
        remote = await self._fetch_remote("get_session", session_code)
        return merge_sessions(local, remote)

    async def get_all_sessions(self) -> list[SessionRecord]:
        """Return all sessions known to either store, newest first."""
        local = {s.session_code: s for s in self.local_store.list_sessions()}
        remote_sessions = await self._fetch_remote("list_sessions")
        merged: dict[str, SessionRecord] = dict(local)
        for remote in remote_sessions or []:
            combined = merge_sessions(local.get(remote.session_code), remote)
            if combined is not None:
                merged[remote.session_code] = combined
        return sorted(merged.values(), key=lambda s: s.created_at, reverse=True)

    async def update_settings(
        self, session_code: str, settings: SessionSettings
    ) -> SyncResult:
        """Persist new settings locally (when known) and remotely."""
        if self.local_store.get_session(session_code) is not None:
            self.local_store.update_session(
                session_code, lambda current: replace(current, settings=settings)
            )
        elif await self.get_session_by_code(session_code) is None:
            raise SessionNotFound(session_code)
        return await write_through(
            self.remote_repository and self.remote_repository.update_settings,
            session_code,
            settings,
            timeout=self.remote_timeout_seconds,
            action="update_settings",
        )

    async def activate_session(self, session_code: str) -> SessionRecord:
        """Make ``session_code`` the single active session."""
        session = await self.get_session_by_code(session_code)
        if session is None:
            raise SessionNotFound(session_code)
        await write_through(
            self.remote_repository and self.remote_repository.activate_session,
            session_code,
            timeout=self.remote_timeout_seconds,
            action="activate_session",
        )
        if self.local_store.get_session(session_code) is None:
            self.local_store.save_session(session)
        self.local_store.set_active_session(session_code)
        _logger.info("Activated session %s", session_code)
        return replace(session, is_active=True)

    async def deactivate_current_session(self) -> SessionRecord | None:
        """Soft-deactivate the current session; records are kept."""
        current = self.get_current_session()
        if current is None:
            return None
        await write_through(
            self.remote_repository and self.remote_repository.deactivate_session,
            current.session_code,
            timeout=self.remote_timeout_seconds,
            action="deactivate_session",
        )
        updated = self.local_store.update_session(
            current.session_code, lambda session: replace(session, is_active=False)
        )
        _logger.info("Deactivated session %s", current.session_code)
        return updated

    async def wipe_all_data(self) -> SyncResult:
        """Delete every session and photo from both stores."""
        result = await write_through(
            self.remote_repository and self.remote_repository.delete_all_sessions,
            timeout=self.remote_timeout_seconds,
            action="delete_all_sessions",
        )
        self.local_store.clear()
        _logger.warning("Wiped all local session and photo data")
        return result

    async def _fetch_remote(self, action: str, *args: object) -> object | None:
        """Read from the remote store, returning None when it is unreachable."""
        if self.remote_repository is None:
            return None
        try:
            return await call_remote(
                getattr(self.remote_repository, action),
                *args,
                timeout=self.remote_timeout_seconds,
                action=action,
            )
        except RemoteUnavailable as exc:
            _logger.warning("Falling back to local sessions: %s", exc)
            return None
