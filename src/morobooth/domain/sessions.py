"""Domain models for event sessions."""

import re
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime

_CODE_ALPHABET = string.ascii_uppercase + string.digits
_PREFIX_LENGTH = 8
_SUFFIX_LENGTH = 6


@dataclass(frozen=True)
class SessionSettings:
    """Per-session download and retention settings."""

    photo_expired_hours: int = 24
    enable_expired_check: bool = True
    allow_download_after_expired: bool = False
    enable_auto_delete: bool = True
    auto_delete_days: int = 30
    storage_delete_days: int = 5
    max_photos: int | None = None


@dataclass(frozen=True)
class SessionRecord:
    """Represents one event's photo-capture context."""

    session_code: str
    event_name: str
    created_at: datetime
    photo_count: int = 0
    is_active: bool = True
    settings: SessionSettings = field(default_factory=SessionSettings)


def generate_session_code(event_name: str, suffix: str | None = None) -> str:
    """Build a session code like WEDDING-AB12CD from an event name."""
    prefix = re.sub(r"[^A-Z0-9]", "", event_name[:_PREFIX_LENGTH].upper())
    if not prefix:
        prefix = "SESSION"
    if suffix is None:
        suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"{prefix}-{suffix}"
