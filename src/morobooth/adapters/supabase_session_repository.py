"""Supabase-backed session repository."""

from dataclasses import asdict, dataclass
from datetime import UTC, datetime

from supabase import Client

from morobooth.domain.sessions import SessionRecord, SessionSettings
from morobooth.services.sessions import RemoteSessionRepository

_SESSION_COLUMNS = (
    "session_code, event_name, created_at, photo_count, is_active, "
    "photo_expired_hours, enable_expired_check, allow_download_after_expired, "
    "enable_auto_delete, auto_delete_days, storage_delete_days, max_photos"
)


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def _settings_from_row(row: dict[str, object]) -> SessionSettings:
    defaults = SessionSettings()
    values = {}
    for name, default in asdict(defaults).items():
        value = row.get(name)
        values[name] = default if value is None else value
    return SessionSettings(**values)


def _session_from_row(row: dict[str, object]) -> SessionRecord:
    return SessionRecord(
        session_code=row["session_code"],
        event_name=row["event_name"],
        created_at=_parse_timestamp(row["created_at"]),
        photo_count=row.get("photo_count") or 0,
        is_active=bool(row.get("is_active")),
        settings=_settings_from_row(row),
    )


@dataclass
class SupabaseSessionRepository(RemoteSessionRepository):
    """Supabase implementation for event sessions."""

    client: Client

    def create_session(self, session: SessionRecord) -> None:
        """Insert a session row."""
        response = (
            self.client.table("sessions")
            .insert(
                {
                    "session_code": session.session_code,
                    "event_name": session.event_name,
                    "created_at": session.created_at.isoformat(),
                    "photo_count": session.photo_count,
                    "is_active": session.is_active,
                    **asdict(session.settings),
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create session")

    def get_session(self, session_code: str) -> SessionRecord | None:
        """Return a session by code, if present."""
        response = (
            self.client.table("sessions")
            .select(_SESSION_COLUMNS)
            .eq("session_code", session_code)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _session_from_row(response.data[0])

    def list_sessions(self) -> list[SessionRecord]:
        """Return all sessions, newest first."""
        response = (
            self.client.table("sessions")
            .select(_SESSION_COLUMNS)
            .order("created_at", desc=True)
            .execute()
        )
        return [_session_from_row(row) for row in response.data or []]

    def update_photo_count(self, session_code: str, photo_count: int) -> None:
        """Raise the stored photo count; a higher stored value is kept."""
        self.client.table("sessions").update({"photo_count": photo_count}).eq(
            "session_code", session_code
        ).lt("photo_count", photo_count).execute()

    def update_settings(self, session_code: str, settings: SessionSettings) -> None:
        """Replace the session settings columns."""
        self.client.table("sessions").update(asdict(settings)).eq(
            "session_code", session_code
        ).execute()

    def activate_session(self, session_code: str) -> None:
        """Mark one session active and every other session inactive."""
        self.client.table("sessions").update({"is_active": False}).neq(
            "session_code", session_code
        ).execute()
        self.client.table("sessions").update({"is_active": True}).eq(
            "session_code", session_code
        ).execute()

    def deactivate_session(self, session_code: str) -> None:
        """Mark a session inactive."""
        self.client.table("sessions").update({"is_active": False}).eq(
            "session_code", session_code
        ).execute()

    def delete_all_sessions(self) -> None:
        """Delete every session row; photo rows cascade."""
        self.client.table("sessions").delete().neq("session_code", "").execute()
