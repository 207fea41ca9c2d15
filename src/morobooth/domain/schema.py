"""Versioned local payloads and their additive migrations.

Every record in the local store carries the schema version it was written
with. Reading an older payload runs each step function in order; a step only
adds fields with defaults, never renames or drops them.

Version history:
    1: sessions and photos with their core fields.
    2: sessions gain ``is_active``.
    3: sessions gain ``settings``; photos gain ``storage_path``.
    4: photos gain ``access_token``.
"""

from collections.abc import Callable
from dataclasses import asdict, fields
from datetime import datetime

from morobooth.domain.photos import PhotoRecord, canonical_storage_path
from morobooth.domain.sessions import SessionRecord, SessionSettings

CURRENT_SCHEMA_VERSION = 4

Payload = dict[str, object]
_Step = Callable[[Payload], Payload]


def _session_v1_to_v2(payload: Payload) -> Payload:
    return {**payload, "is_active": payload.get("is_active", True)}


def _session_v2_to_v3(payload: Payload) -> Payload:
    defaults = asdict(SessionSettings())
    current = payload.get("settings")
    merged = {**defaults, **current} if isinstance(current, dict) else defaults
    return {**payload, "settings": merged}


def _photo_v2_to_v3(payload: Payload) -> Payload:
    storage_path = payload.get("storage_path")
    if payload.get("uploaded") and not storage_path:
        storage_path = canonical_storage_path(
            str(payload["session_code"]), str(payload["id"])
        )
    return {**payload, "storage_path": storage_path}


def _photo_v3_to_v4(payload: Payload) -> Payload:
    return {**payload, "access_token": payload.get("access_token")}


def _unchanged(payload: Payload) -> Payload:
    return dict(payload)


_SESSION_STEPS: dict[int, _Step] = {
    1: _session_v1_to_v2,
    2: _session_v2_to_v3,
    3: _unchanged,
}

_PHOTO_STEPS: dict[int, _Step] = {
    1: _unchanged,
    2: _photo_v2_to_v3,
    3: _photo_v3_to_v4,
}


def _migrate(payload: Payload, version: int, steps: dict[int, _Step]) -> Payload:
    if version > CURRENT_SCHEMA_VERSION:
        raise ValueError(f"Unsupported schema version {version}")
    migrated = dict(payload)
    for step_version in range(version, CURRENT_SCHEMA_VERSION):
        migrated = steps[step_version](migrated)
    return migrated


def migrate_session_payload(payload: Payload, version: int) -> Payload:
    """Upgrade a stored session payload to the current version."""
    return _migrate(payload, version, _SESSION_STEPS)


def migrate_photo_payload(payload: Payload, version: int) -> Payload:
    """Upgrade a stored photo payload to the current version."""
    return _migrate(payload, version, _PHOTO_STEPS)


def session_to_payload(session: SessionRecord) -> Payload:
    """Serialize a session for the local store."""
    return {
        "session_code": session.session_code,
        "event_name": session.event_name,
        "created_at": session.created_at.isoformat(),
        "photo_count": session.photo_count,
        "is_active": session.is_active,
        "settings": asdict(session.settings),
    }


def session_from_payload(payload: Payload, version: int) -> SessionRecord:
    """Deserialize a session payload written with ``version``."""
    current = migrate_session_payload(payload, version)
    raw_settings = current["settings"]
    known = {item.name for item in fields(SessionSettings)}
    return SessionRecord(
        session_code=str(current["session_code"]),
        event_name=str(current["event_name"]),
        created_at=datetime.fromisoformat(str(current["created_at"])),
        photo_count=int(current.get("photo_count") or 0),
        is_active=bool(current["is_active"]),
        settings=SessionSettings(
            **{key: value for key, value in raw_settings.items() if key in known}
        ),
    )


def photo_to_payload(photo: PhotoRecord) -> Payload:
    """Serialize a photo record for the local store."""
    return {
        "id": photo.id,
        "session_code": photo.session_code,
        "photo_number": photo.photo_number,
        "timestamp": photo.timestamp.isoformat(),
        "uploaded": photo.uploaded,
        "storage_path": photo.storage_path,
        "access_token": photo.access_token,
    }


def photo_from_payload(payload: Payload, version: int) -> PhotoRecord:
    """Deserialize a photo payload written with ``version``."""
    current = migrate_photo_payload(payload, version)
    return PhotoRecord(
        id=str(current["id"]),
        session_code=str(current["session_code"]),
        photo_number=int(current["photo_number"]),
        timestamp=datetime.fromisoformat(str(current["timestamp"])),
        uploaded=bool(current.get("uploaded", False)),
        storage_path=current.get("storage_path"),
        access_token=current.get("access_token"),
    )
