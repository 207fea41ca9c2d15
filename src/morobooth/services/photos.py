"""Photo ledger: record creation and upload-state transitions."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Protocol

from morobooth.domain.photos import (
    PhotoRecord,
    format_photo_id,
    generate_access_token,
    resolve_storage_path,
)
from morobooth.errors import NoActiveSession, PhotoNotFound, RemoteUnavailable
from morobooth.services.counter import SessionCounterService, retry_when_busy
from morobooth.services.remote import call_remote, write_through
from morobooth.services.sessions import SessionService

_logger = logging.getLogger(__name__)


class LocalPhotoStore(Protocol):
    """Device-local persistence for photo records and image bytes."""

    def add_photo(self, photo: PhotoRecord, image: bytes) -> None:
        """Insert a new photo; fails if the id already exists."""

    def get_photo(self, photo_id: str) -> PhotoRecord | None:
        """Return a photo by id, if present."""

    def get_image(self, photo_id: str) -> bytes | None:
        """Return the stored image bytes for a photo, if present."""

    def update_photo(
        self, photo_id: str, change: Callable[[PhotoRecord], PhotoRecord]
    ) -> PhotoRecord:
        """Apply ``change`` to the stored photo in one transaction."""

    def list_unuploaded(self) -> list[PhotoRecord]:
        """Return photos that have not been uploaded yet."""

    def list_photos_by_session(self, session_code: str) -> list[PhotoRecord]:
        """Return all local photos of a session."""


class RemotePhotoRepository(Protocol):
    """Remote authoritative persistence for photo rows."""

    def insert_photo(self, photo: PhotoRecord) -> None:
        """Insert a photo row."""

    def mark_uploaded(self, photo_id: str, storage_path: str) -> None:
        """Flag a photo row as uploaded at ``storage_path``."""

    def get_photo(self, photo_id: str) -> PhotoRecord | None:
        """Return a photo row by id, if present."""

    def list_photos_by_session(self, session_code: str) -> list[PhotoRecord]:
        """Return all photo rows of a session."""

    def token_exists(self, access_token: str) -> bool:
        """Return True when another photo already uses the token."""


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class PhotoLedger:
    """Owns photo records from capture until upload."""

    session_service: SessionService
    counter: SessionCounterService
    local_store: LocalPhotoStore
    remote_repository: RemotePhotoRepository | None = None
    remote_timeout_seconds: float = 5.0
    write_retries: int = 3
    retry_delay_seconds: float = 0.2
    token_attempts: int = 3
    clock: Callable[[], datetime] = _utcnow

    async def create_photo(self, image: bytes) -> PhotoRecord:
        """Number, persist, and announce a freshly captured photo.

        A crash between the counter commit and the local insert leaves an
        unused photo number behind.
        """
        if not image:
            raise ValueError("Image data is required")
        session = self.session_service.get_current_session()
        if session is None:
            raise NoActiveSession("No active session. Create a session first.")

        access_token = await self._generate_unique_token()
        photo_number = await self.counter.increment(session.session_code)
        photo = PhotoRecord(
            id=format_photo_id(session.session_code, photo_number),
            session_code=session.session_code,
            photo_number=photo_number,
            timestamp=self.clock(),
            access_token=access_token,
        )
        await retry_when_busy(
            lambda: self.local_store.add_photo(photo, image),
            attempts=self.write_retries,
            delay_seconds=self.retry_delay_seconds,
            action="add_photo",
        )
        await write_through(
            self.remote_repository and self.remote_repository.insert_photo,
            photo,
            timeout=self.remote_timeout_seconds,
            action="insert_photo",
        )
        _logger.info("Saved photo %s (%s bytes)", photo.id, len(image))
        return photo

    async def mark_uploaded(self, photo_id: str, storage_path: str) -> PhotoRecord:
        """Record that a photo's image now lives at ``storage_path``.

        Repeating the call with the same path changes nothing. A different
        path replaces the stored one (last writer wins).
        """
        path = storage_path.strip()
        if not path:
            raise ValueError("Storage path is required")
        current = self.local_store.get_photo(photo_id)
        if current is None:
            raise PhotoNotFound(photo_id)
        if current.uploaded and current.storage_path == path:
            return current
        if current.uploaded:
            _logger.warning(
                "Photo %s re-uploaded: replacing %s with %s",
                photo_id,
                current.storage_path,
                path,
            )

        updated = await retry_when_busy(
            lambda: self.local_store.update_photo(
                photo_id,
                lambda photo: replace(photo, uploaded=True, storage_path=path),
            ),
            attempts=self.write_retries,
            delay_seconds=self.retry_delay_seconds,
            action="mark_uploaded",
        )
        await write_through(
            self.remote_repository and self.remote_repository.mark_uploaded,
            photo_id,
            path,
            timeout=self.remote_timeout_seconds,
            action="mark_uploaded",
        )
        return updated

    def get_unuploaded(self) -> list[PhotoRecord]:
        """Return local photos still waiting for upload."""
        return sorted(
            self.local_store.list_unuploaded(),
            key=lambda photo: (photo.session_code, photo.photo_number),
        )

    def get_photo(self, photo_id: str) -> PhotoRecord | None:
        return self.local_store.get_photo(photo_id)

    def get_image(self, photo_id: str) -> bytes | None:
        return self.local_store.get_image(photo_id)

    def storage_path_for(self, photo: PhotoRecord) -> str:
        """Return the object path to use for a photo."""
        return resolve_storage_path(photo)

    async def get_photos_by_session(self, session_code: str) -> list[PhotoRecord]:
        """Return remote and local photos of a session, ordered by number."""
        local = {p.id: p for p in self.local_store.list_photos_by_session(session_code)}
        remote: list[PhotoRecord] = []
        if self.remote_repository is not None:
            try:
                remote = await call_remote(
                    self.remote_repository.list_photos_by_session,
                    session_code,
                    timeout=self.remote_timeout_seconds,
                    action="list_photos_by_session",
                )
            except RemoteUnavailable as exc:
                _logger.warning("Listing local photos only: %s", exc)

        merged = dict(local)
        for photo in remote:
            known = local.get(photo.id)
            # The remote row lags when an upload's write-through degraded.
            if known is not None and known.uploaded and not photo.uploaded:
                continue
            merged[photo.id] = photo
        return sorted(merged.values(), key=lambda photo: photo.photo_number)

    async def _generate_unique_token(self) -> str:
        for attempt in range(1, self.token_attempts + 1):
            token = generate_access_token()
            if self.remote_repository is None:
                return token
            try:
                exists = await call_remote(
                    self.remote_repository.token_exists,
                    token,
                    timeout=self.remote_timeout_seconds,
                    action="token_exists",
                )
            except RemoteUnavailable as exc:
                _logger.warning("Token collision check skipped: %s", exc)
                return token
            if not exists:
                return token
            _logger.warning(
                "Access token collision (attempt %s/%s)", attempt, self.token_attempts
            )
        raise RuntimeError(
            "Failed to generate unique access token after "
            f"{self.token_attempts} attempts"
        )
