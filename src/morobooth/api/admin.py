"""Operator API endpoints with simple token auth."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel, Field

from morobooth.domain.sessions import SessionSettings
from morobooth.domain.sync import SyncDegraded
from morobooth.errors import (
    BoothError,
    CounterTimeout,
    DuplicatePhoto,
    NoActiveSession,
    PhotoLimitReached,
    PhotoNotFound,
    QuotaExceeded,
    SessionNotFound,
    StorageBusy,
)

if TYPE_CHECKING:
    from morobooth.containers import AppContainer
    from morobooth.domain.photos import PhotoRecord
    from morobooth.domain.sessions import SessionRecord
    from morobooth.domain.sync import SyncResult
    from morobooth.services.uploads import UploadResult

router = APIRouter(prefix="/admin", tags=["admin"])

_STATUS_BY_ERROR: dict[type[BoothError], int] = {
    SessionNotFound: status.HTTP_404_NOT_FOUND,
    PhotoNotFound: status.HTTP_404_NOT_FOUND,
    NoActiveSession: status.HTTP_409_CONFLICT,
    PhotoLimitReached: status.HTTP_409_CONFLICT,
    DuplicatePhoto: status.HTTP_409_CONFLICT,
    CounterTimeout: status.HTTP_503_SERVICE_UNAVAILABLE,
    StorageBusy: status.HTTP_503_SERVICE_UNAVAILABLE,
    QuotaExceeded: status.HTTP_507_INSUFFICIENT_STORAGE,
}


class CreateSessionRequest(BaseModel):
    event_name: str = Field(min_length=1)


class SessionSettingsPayload(BaseModel):
    photo_expired_hours: int = Field(default=24, ge=1)
    enable_expired_check: bool = True
    allow_download_after_expired: bool = False
    enable_auto_delete: bool = True
    auto_delete_days: int = Field(default=30, ge=1)
    storage_delete_days: int = Field(default=5, ge=1)
    max_photos: int | None = Field(default=None, ge=1)


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@contextmanager
def _booth_errors() -> Iterator[None]:
    """Turn engine errors into HTTP errors."""
    try:
        yield
    except ValueError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except BoothError as exc:
        code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_503_SERVICE_UNAVAILABLE)
        raise HTTPException(code, detail=str(exc)) from exc


def _session_payload(session: SessionRecord) -> dict[str, object]:
    payload = asdict(session)
    payload["created_at"] = session.created_at.isoformat()
    return payload


def _photo_payload(photo: PhotoRecord) -> dict[str, object]:
    payload = asdict(photo)
    payload["timestamp"] = photo.timestamp.isoformat()
    return payload


def _upload_payload(result: UploadResult) -> dict[str, object]:
    return asdict(result)


def _sync_payload(result: SyncResult) -> dict[str, object]:
    if isinstance(result, SyncDegraded):
        return {"status": "degraded", "reason": result.reason}
    return {"status": "ok"}


def _container(request: Request) -> AppContainer:
    return request.app.state.container


@router.get("/sessions", dependencies=[Depends(require_admin)])
async def list_sessions(request: Request) -> dict[str, object]:
    """Return every known session, newest first."""
    sessions = await _container(request).session_service.get_all_sessions()
    return {"sessions": [_session_payload(session) for session in sessions]}


@router.post(
    "/sessions",
    dependencies=[Depends(require_admin)],
    status_code=status.HTTP_201_CREATED,
)
async def create_session(
    body: CreateSessionRequest, request: Request
) -> dict[str, object]:
    """Create a session and make it active on this device."""
    with _booth_errors():
        session = await _container(request).session_service.create_session(
            body.event_name
        )
    return _session_payload(session)


@router.get("/sessions/current", dependencies=[Depends(require_admin)])
async def current_session(request: Request) -> dict[str, object]:
    session = _container(request).session_service.get_current_session()
    if session is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="No active session")
    return _session_payload(session)


@router.post("/sessions/current/deactivate", dependencies=[Depends(require_admin)])
async def deactivate_current_session(request: Request) -> dict[str, object]:
    session = await _container(request).session_service.deactivate_current_session()
    if session is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="No active session")
    return _session_payload(session)


@router.get("/sessions/{session_code}", dependencies=[Depends(require_admin)])
async def session_detail(session_code: str, request: Request) -> dict[str, object]:
    session = await _container(request).session_service.get_session_by_code(
        session_code
    )
    if session is None:
        raise HTTPException(
            status.HTTP_404_NOT_FOUND, detail=f"Session {session_code} not found"
        )
    return _session_payload(session)


@router.put("/sessions/{session_code}/settings", dependencies=[Depends(require_admin)])
async def update_session_settings(
    session_code: str, body: SessionSettingsPayload, request: Request
) -> dict[str, object]:
    """Replace a session's download and retention settings."""
    settings = SessionSettings(**body.model_dump())
    with _booth_errors():
        result = await _container(request).session_service.update_settings(
            session_code, settings
        )
    return {"settings": asdict(settings), "remote": _sync_payload(result)}


@router.post("/sessions/{session_code}/activate", dependencies=[Depends(require_admin)])
async def activate_session(session_code: str, request: Request) -> dict[str, object]:
    with _booth_errors():
        session = await _container(request).session_service.activate_session(
            session_code
        )
    return _session_payload(session)


@router.post(
    "/sessions/{session_code}/reconcile", dependencies=[Depends(require_admin)]
)
async def reconcile_session(session_code: str, request: Request) -> dict[str, object]:
    """Raise both stores to the highest photo count either has seen."""
    with _booth_errors():
        session = await _container(request).counter_service.reconcile(session_code)
    return _session_payload(session)


@router.get("/sessions/{session_code}/photos", dependencies=[Depends(require_admin)])
async def session_photos(session_code: str, request: Request) -> dict[str, object]:
    photos = await _container(request).photo_ledger.get_photos_by_session(session_code)
    return {"photos": [_photo_payload(photo) for photo in photos]}


@router.post("/wipe", dependencies=[Depends(require_admin)])
async def wipe_all_data(request: Request) -> dict[str, object]:
    """Delete every session and photo from both stores."""
    with _booth_errors():
        result = await _container(request).session_service.wipe_all_data()
    return {"remote": _sync_payload(result)}


@router.post(
    "/photos",
    dependencies=[Depends(require_admin)],
    status_code=status.HTTP_201_CREATED,
)
async def create_photo(request: Request) -> dict[str, object]:
    """Record a captured photo; the request body is the raw PNG."""
    image = await request.body()
    with _booth_errors():
        photo = await _container(request).photo_ledger.create_photo(image)
    return _photo_payload(photo)


@router.get("/photos/pending", dependencies=[Depends(require_admin)])
async def pending_photos(request: Request) -> dict[str, object]:
    photos = _container(request).photo_ledger.get_unuploaded()
    return {"photos": [_photo_payload(photo) for photo in photos]}


@router.post("/photos/backfill", dependencies=[Depends(require_admin)])
async def backfill_photos(
    request: Request, limit: int | None = None
) -> dict[str, object]:
    """Upload every pending photo, oldest session first."""
    with _booth_errors():
        results = await _container(request).upload_service.backfill(limit)
    return {"results": [_upload_payload(result) for result in results]}


@router.post("/photos/{photo_id}/upload", dependencies=[Depends(require_admin)])
async def upload_photo(photo_id: str, request: Request) -> dict[str, object]:
    with _booth_errors():
        result = await _container(request).upload_service.upload_photo(photo_id)
    return _upload_payload(result)


@router.get("/photos/{photo_id}/download-url", dependencies=[Depends(require_admin)])
async def photo_download_url(photo_id: str, request: Request) -> dict[str, object]:
    """Return a cached signed URL for an uploaded photo."""
    with _booth_errors():
        url = await _container(request).upload_service.download_url(photo_id)
    return {"photo_id": photo_id, "url": url}
