"""Signed download URLs, cached per storage path."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol

from morobooth.errors import RemoteUnavailable, UrlUnavailable
from morobooth.services.remote import call_remote

_logger = logging.getLogger(__name__)


class ObjectStorage(Protocol):
    """Object store holding photo images."""

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        """Store ``data`` at ``path``, replacing any existing object."""

    def create_signed_url(self, path: str, expires_in_seconds: int) -> str:
        """Return a time-limited download URL for ``path``."""


class UrlResolver(Protocol):
    """Turns a storage path into a usable download URL."""

    async def resolve(self, storage_path: str) -> str:
        """Return a download URL or raise UrlUnavailable."""


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True)
class CachedUrl:
    url: str
    issued_at: datetime
    cache_expires_at: datetime
    url_expires_at: datetime


@dataclass
class SignedUrlCache(UrlResolver):
    """Caches signed URLs for less time than they stay valid.

    Entries are served until ``cache_ttl_seconds``; afterwards a fresh URL is
    requested. If that request fails, a cached URL that has not itself expired
    is still served.
    """

    storage: ObjectStorage
    url_ttl_seconds: int = 86400
    cache_ttl_seconds: int = 82800
    remote_timeout_seconds: float = 5.0
    clock: Callable[[], datetime] = _utcnow
    _entries: dict[str, CachedUrl] = field(default_factory=dict, init=False)

    def __post_init__(self) -> None:
        if not 0 < self.cache_ttl_seconds < self.url_ttl_seconds:
            raise ValueError(
                "cache_ttl_seconds must be positive and below url_ttl_seconds"
            )

    async def resolve(self, storage_path: str) -> str:
        """Return a cached or freshly signed URL for ``storage_path``."""
        now = self.clock()
        entry = self._entries.get(storage_path)
        if entry is not None and entry.cache_expires_at > now:
            return entry.url

        try:
            url = await call_remote(
                self.storage.create_signed_url,
                storage_path,
                self.url_ttl_seconds,
                timeout=self.remote_timeout_seconds,
                action="create_signed_url",
            )
        except RemoteUnavailable as exc:
            if entry is not None and entry.url_expires_at > now:
                _logger.warning(
                    "Serving stale signed URL for %s: %s", storage_path, exc
                )
                return entry.url
            self._entries.pop(storage_path, None)
            raise UrlUnavailable(f"No signed URL for {storage_path}") from exc

        self._evict_expired(now)
        self._entries[storage_path] = CachedUrl(
            url=url,
            issued_at=now,
            cache_expires_at=now + timedelta(seconds=self.cache_ttl_seconds),
            url_expires_at=now + timedelta(seconds=self.url_ttl_seconds),
        )
        return url

    def expiry_for(self, storage_path: str) -> datetime | None:
        """Return when the cached entry for ``storage_path`` stops being served."""
        entry = self._entries.get(storage_path)
        return entry.cache_expires_at if entry else None

    def _evict_expired(self, now: datetime) -> None:
        expired = [
            path for path, entry in self._entries.items() if entry.url_expires_at <= now
        ]
        for path in expired:
            del self._entries[path]


@dataclass
class StorageUrlSigner(UrlResolver):
    """Signs a fresh URL on every call; keeps no state between requests."""

    storage: ObjectStorage
    ttl_seconds: int = 3600
    remote_timeout_seconds: float = 5.0

    async def resolve(self, storage_path: str) -> str:
        try:
            return await call_remote(
                self.storage.create_signed_url,
                storage_path,
                self.ttl_seconds,
                timeout=self.remote_timeout_seconds,
                action="create_signed_url",
            )
        except RemoteUnavailable as exc:
            raise UrlUnavailable(f"No signed URL for {storage_path}") from exc
