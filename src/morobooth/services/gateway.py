"""Download validation: (photo id, access token) to a short-lived signed URL."""

import hmac
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from morobooth.domain.access import (
    Blocked,
    DownloadStage,
    RejectionReason,
    is_download_allowed,
)
from morobooth.domain.photos import PhotoRecord, resolve_storage_path
from morobooth.domain.sessions import SessionRecord, SessionSettings
from morobooth.errors import RemoteUnavailable, UrlUnavailable
from morobooth.services.access_log import AccessLogService
from morobooth.services.rate_limit import RateLimiter
from morobooth.services.remote import call_remote
from morobooth.services.signed_urls import UrlResolver

_logger = logging.getLogger(__name__)


class PhotoLookup(Protocol):
    def get_photo(self, photo_id: str) -> PhotoRecord | None:
        """Return a photo row by id, if present."""


class SessionLookup(Protocol):
    def get_session(self, session_code: str) -> SessionRecord | None:
        """Return a session row by code, if present."""


@dataclass(frozen=True)
class DownloadRequest:
    photo_id: str | None
    token: str | None
    client_address: str
    user_agent: str


@dataclass(frozen=True)
class GatewayResponse:
    """HTTP-shaped outcome of a download request."""

    status_code: int
    body: dict[str, object]
    stage: DownloadStage
    reason: RejectionReason | None = None
    headers: dict[str, str] = field(default_factory=dict)


class _Rejected(Exception):
    def __init__(self, reason: RejectionReason, retry_after: int | None = None) -> None:
        super().__init__(reason.value)
        self.reason = reason
        self.retry_after = retry_after


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class DownloadGateway:
    """Stateless validator behind ``GET /validate-download``.

    Every request ends in exactly one access log entry, granted or not.
    """

    rate_limiter: RateLimiter
    photo_repository: PhotoLookup
    session_repository: SessionLookup
    url_resolver: UrlResolver
    access_log: AccessLogService
    url_ttl_seconds: int = 3600
    remote_timeout_seconds: float = 5.0
    clock: Callable[[], datetime] = _utcnow

    async def validate(self, request: DownloadRequest) -> GatewayResponse:
        stage = DownloadStage.RECEIVED
        try:
            decision = await self.rate_limiter.check(request.client_address)
            if isinstance(decision, Blocked):
                raise _Rejected(
                    RejectionReason.RATE_LIMITED, decision.retry_after_seconds
                )
            stage = DownloadStage.RATE_CHECKED

            if not request.photo_id or not request.token:
                raise _Rejected(RejectionReason.MISSING_PARAMETERS)
            photo = await self._lookup(
                self.photo_repository.get_photo, request.photo_id, "get_photo"
            )
            if photo is None:
                raise _Rejected(RejectionReason.PHOTO_NOT_FOUND)
            if not photo.access_token or not hmac.compare_digest(
                photo.access_token.encode("utf-8"), request.token.encode("utf-8")
            ):
                raise _Rejected(RejectionReason.TOKEN_MISMATCH)
            stage = DownloadStage.TOKEN_VALIDATED

            if not photo.uploaded:
                raise _Rejected(RejectionReason.NOT_UPLOADED)
            stage = DownloadStage.UPLOAD_CHECKED

            session = await self._lookup(
                self.session_repository.get_session, photo.session_code, "get_session"
            )
            # A missing session row falls back to the default expiry window; the
            # expiry check is never skipped.
            settings = session.settings if session else SessionSettings()
            if not is_download_allowed(photo.timestamp, settings, self.clock()):
                raise _Rejected(RejectionReason.EXPIRED)
            stage = DownloadStage.EXPIRY_CHECKED

            try:
                url = await self.url_resolver.resolve(resolve_storage_path(photo))
            except UrlUnavailable as exc:
                _logger.warning("Signed URL failed for %s: %s", photo.id, exc)
                raise _Rejected(RejectionReason.URL_UNAVAILABLE) from exc
        except _Rejected as rejected:
            return await self._reject(request, rejected)
        except Exception:
            _logger.exception("Download validation failed at stage %s", stage)
            return await self._reject(
                request, _Rejected(RejectionReason.INTERNAL_ERROR)
            )

        await self.access_log.record(
            photo_id=request.photo_id,
            token=request.token,
            client_address=request.client_address,
            user_agent=request.user_agent,
            granted=True,
        )
        return GatewayResponse(
            status_code=200,
            body={"signedUrl": url, "expiresIn": self.url_ttl_seconds},
            stage=DownloadStage.URL_ISSUED,
        )

    async def _lookup(
        self, func: Callable[[str], object], key: str, action: str
    ) -> object | None:
        try:
            return await call_remote(
                func, key, timeout=self.remote_timeout_seconds, action=action
            )
        except RemoteUnavailable as exc:
            _logger.error("Download lookup failed: %s", exc)
            raise _Rejected(RejectionReason.INTERNAL_ERROR) from exc

    async def _reject(
        self, request: DownloadRequest, rejected: _Rejected
    ) -> GatewayResponse:
        reason = rejected.reason
        await self.access_log.record(
            photo_id=request.photo_id,
            token=request.token,
            client_address=request.client_address,
            user_agent=request.user_agent,
            granted=False,
            failure_reason=reason.value,
        )
        body: dict[str, object] = {"error": reason.public_message}
        headers: dict[str, str] = {}
        if rejected.retry_after is not None:
            body["retryAfter"] = rejected.retry_after
            headers["Retry-After"] = str(rejected.retry_after)
        return GatewayResponse(
            status_code=reason.status_code,
            body=body,
            stage=DownloadStage.REJECTED,
            reason=reason,
            headers=headers,
        )
