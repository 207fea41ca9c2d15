"""Access logging for download attempts."""

import logging
from dataclasses import dataclass
from typing import Protocol

from morobooth.domain.access import AccessLogEntry, hash_token
from morobooth.services.remote import call_remote

_logger = logging.getLogger(__name__)


class AccessLogRepository(Protocol):
    """Persistence interface for access log entries."""

    def create_entry(self, entry: AccessLogEntry) -> None:
        """Append an access log row."""


@dataclass
class AccessLogService:
    """Service for recording download attempts."""

    repository: AccessLogRepository
    remote_timeout_seconds: float = 5.0

    async def record(  # noqa: PLR0913
        self,
        photo_id: str | None,
        token: str | None,
        client_address: str,
        user_agent: str,
        granted: bool,
        failure_reason: str | None = None,
    ) -> None:
        """Persist one access attempt; failures are logged, never raised."""
        entry = AccessLogEntry(
            photo_id=photo_id or "unknown",
            token_hash=hash_token(token) if token else None,
            client_address=client_address,
            user_agent=user_agent,
            granted=granted,
            failure_reason=failure_reason,
        )
        try:
            await call_remote(
                self.repository.create_entry,
                entry,
                timeout=self.remote_timeout_seconds,
                action="create_access_log",
            )
        except Exception:
            _logger.exception("Failed to write access log for %s", entry.photo_id)
