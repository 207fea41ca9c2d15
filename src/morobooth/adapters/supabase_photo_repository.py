"""Supabase-backed photo repository."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from morobooth.domain.photos import PhotoRecord, canonical_storage_path
from morobooth.services.photos import RemotePhotoRepository

_PHOTO_COLUMNS = (
    "photo_id, session_code, photo_number, timestamp, uploaded, "
    "storage_path, access_token"
)


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def _photo_from_row(row: dict[str, object]) -> PhotoRecord:
    uploaded = bool(row.get("uploaded"))
    storage_path = row.get("storage_path")
    if uploaded and not storage_path:
        storage_path = canonical_storage_path(row["session_code"], row["photo_id"])
    return PhotoRecord(
        id=row["photo_id"],
        session_code=row["session_code"],
        photo_number=row["photo_number"],
        timestamp=_parse_timestamp(row["timestamp"]),
        uploaded=uploaded,
        storage_path=storage_path,
        access_token=row.get("access_token"),
    )


@dataclass
class SupabasePhotoRepository(RemotePhotoRepository):
    """Supabase implementation for photo rows."""

    client: Client

    def insert_photo(self, photo: PhotoRecord) -> None:
        """Insert a photo row."""
        response = (
            self.client.table("photos")
            .insert(
                {
                    "photo_id": photo.id,
                    "session_code": photo.session_code,
                    "photo_number": photo.photo_number,
                    "timestamp": photo.timestamp.isoformat(),
                    "uploaded": photo.uploaded,
                    "storage_path": photo.storage_path,
                    "access_token": photo.access_token,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create photo row")

    def mark_uploaded(self, photo_id: str, storage_path: str) -> None:
        """Flag a photo row as uploaded."""
        self.client.table("photos").update(
            {"uploaded": True, "storage_path": storage_path}
        ).eq("photo_id", photo_id).execute()

    def get_photo(self, photo_id: str) -> PhotoRecord | None:
        """Return a photo row by id, if present."""
        response = (
            self.client.table("photos")
            .select(_PHOTO_COLUMNS)
            .eq("photo_id", photo_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _photo_from_row(response.data[0])

    def list_photos_by_session(self, session_code: str) -> list[PhotoRecord]:
        """Return all photo rows of a session ordered by number."""
        response = (
            self.client.table("photos")
            .select(_PHOTO_COLUMNS)
            .eq("session_code", session_code)
            .order("photo_number")
            .execute()
        )
        return [_photo_from_row(row) for row in response.data or []]

    def token_exists(self, access_token: str) -> bool:
        """Return True when a photo row already carries ``access_token``."""
        response = (
            self.client.table("photos")
            .select("access_token")
            .eq("access_token", access_token)
            .limit(1)
            .execute()
        )
        return bool(response.data)
