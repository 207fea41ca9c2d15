"""Domain models for download access control."""

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum

from morobooth.domain.sessions import SessionSettings


@dataclass(frozen=True)
class RateLimitRecord:
    """Request counters for one client address."""

    client_address: str
    window_start: datetime
    request_count: int
    blocked_until: datetime | None = None


@dataclass(frozen=True)
class Allowed:
    """Rate limiter verdict: the request may proceed."""


@dataclass(frozen=True)
class Blocked:
    """Rate limiter verdict: the client must wait."""

    retry_after_seconds: int


RateDecision = Allowed | Blocked


@dataclass(frozen=True)
class AccessLogEntry:
    """One download attempt, written once."""

    photo_id: str
    token_hash: str | None
    client_address: str
    user_agent: str
    granted: bool
    failure_reason: str | None = None


class DownloadStage(StrEnum):
    """Stages a download request passes through."""

    RECEIVED = "received"
    RATE_CHECKED = "rate_checked"
    TOKEN_VALIDATED = "token_validated"
    UPLOAD_CHECKED = "upload_checked"
    EXPIRY_CHECKED = "expiry_checked"
    URL_ISSUED = "url_issued"
    REJECTED = "rejected"


class RejectionReason(StrEnum):
    """Why a download request was refused."""

    MISSING_PARAMETERS = "missing_parameters"
    RATE_LIMITED = "rate_limited"
    PHOTO_NOT_FOUND = "photo_not_found"
    TOKEN_MISMATCH = "token_mismatch"
    NOT_UPLOADED = "not_uploaded"
    EXPIRED = "expired"
    URL_UNAVAILABLE = "url_unavailable"
    INTERNAL_ERROR = "internal_error"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]

    @property
    def public_message(self) -> str:
        return _PUBLIC_MESSAGES[self]


_STATUS_CODES = {
    RejectionReason.MISSING_PARAMETERS: 401,
    RejectionReason.RATE_LIMITED: 429,
    RejectionReason.PHOTO_NOT_FOUND: 401,
    RejectionReason.TOKEN_MISMATCH: 401,
    RejectionReason.NOT_UPLOADED: 404,
    RejectionReason.EXPIRED: 403,
    RejectionReason.URL_UNAVAILABLE: 500,
    RejectionReason.INTERNAL_ERROR: 500,
}

_PUBLIC_MESSAGES = {
    RejectionReason.MISSING_PARAMETERS: "Invalid download link",
    RejectionReason.RATE_LIMITED: "Too many requests. Please try again later.",
    RejectionReason.PHOTO_NOT_FOUND: "Invalid download link",
    RejectionReason.TOKEN_MISMATCH: "Invalid download link",
    RejectionReason.NOT_UPLOADED: "Photo not available yet",
    RejectionReason.EXPIRED: "Download link has expired",
    RejectionReason.URL_UNAVAILABLE: "Failed to generate download link",
    RejectionReason.INTERNAL_ERROR: "Internal server error",
}


def hash_token(token: str) -> str:
    """Return the SHA-256 hex digest used to log tokens."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def is_photo_expired(
    taken_at: datetime, settings: SessionSettings, now: datetime
) -> bool:
    """Return True when the photo is past its session's download window."""
    if not settings.enable_expired_check:
        return False
    return now - taken_at > timedelta(hours=settings.photo_expired_hours)


def is_download_allowed(
    taken_at: datetime, settings: SessionSettings, now: datetime
) -> bool:
    """Return True when the expiry rules permit a download."""
    if settings.allow_download_after_expired:
        return True
    return not is_photo_expired(taken_at, settings, now)
