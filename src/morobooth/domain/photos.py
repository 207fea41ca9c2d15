"""Domain models for captured photos."""

import secrets
from dataclasses import dataclass
from datetime import datetime

ACCESS_TOKEN_BYTES = 32


@dataclass(frozen=True)
class PhotoRecord:
    """Represents a captured photo and its upload state."""

    id: str
    session_code: str
    photo_number: int
    timestamp: datetime
    uploaded: bool = False
    storage_path: str | None = None
    access_token: str | None = None

    def __post_init__(self) -> None:
        if self.uploaded and not self.storage_path:
            raise ValueError(f"Uploaded photo {self.id} must have a storage path")


def format_photo_id(session_code: str, photo_number: int) -> str:
    """Return the sequential photo id, e.g. WEDDING-AB12CD-007."""
    return f"{session_code}-{photo_number:03d}"


def canonical_storage_path(session_code: str, photo_id: str) -> str:
    """Return the canonical object path for a photo."""
    return f"{session_code}/{photo_id}.png"


def resolve_storage_path(photo: PhotoRecord) -> str:
    """Return the object path for a photo, rebuilding legacy flat paths.

    Older uploads stored the object at the bucket root without the session
    folder. Only a stored path that carries a folder prefix is trusted.
    """
    stored = (photo.storage_path or "").strip().lstrip("/")
    if "/" in stored:
        return stored
    return canonical_storage_path(photo.session_code, photo.id)


def generate_access_token() -> str:
    """Return an opaque URL-safe token (32 random bytes, no padding)."""
    return secrets.token_urlsafe(ACCESS_TOKEN_BYTES)
