"""Exceptions raised by the session/photo engine."""


class BoothError(Exception):
    """Base class for engine errors."""


class NoActiveSession(BoothError):
    """Raised when an operation needs an active session and none exists."""

    def __init__(self, message: str = "No active session") -> None:
        super().__init__(message)


class SessionNotFound(BoothError):
    """Raised when a session code is unknown to every store."""

    def __init__(self, session_code: str) -> None:
        super().__init__(f"Session {session_code} not found")
        self.session_code = session_code


class PhotoNotFound(BoothError):
    """Raised when a photo id is unknown to the local store."""

    def __init__(self, photo_id: str) -> None:
        super().__init__(f"Photo {photo_id} not found")
        self.photo_id = photo_id


class CounterTimeout(BoothError):
    """Raised when the photo counter lock cannot be acquired in time."""


class StorageBusy(BoothError):
    """Transient local storage contention; safe to retry."""


class QuotaExceeded(BoothError):
    """Local storage is full; retrying will not help."""


class DuplicatePhoto(BoothError):
    """Raised when a photo id already exists locally."""


class PhotoLimitReached(BoothError):
    """Raised when a session has reached its configured photo limit."""

    def __init__(self, session_code: str, max_photos: int) -> None:
        super().__init__(f"Session {session_code} reached its limit of {max_photos}")
        self.session_code = session_code
        self.max_photos = max_photos


class RemoteUnavailable(BoothError):
    """The remote store could not be reached or rejected the call."""


class UrlUnavailable(BoothError):
    """No usable signed URL could be produced for a storage path."""
