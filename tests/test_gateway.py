"""Tests for download validation."""

import asyncio
from dataclasses import replace

import pytest

from morobooth.domain.access import DownloadStage, RejectionReason, hash_token
from morobooth.domain.photos import PhotoRecord
from morobooth.domain.sessions import SessionRecord, SessionSettings
from morobooth.services.gateway import DownloadGateway, DownloadRequest
from tests.conftest import (
    START,
    FakeClock,
    FakeObjectStorage,
    InMemoryAccessLogRepository,
    InMemoryRemotePhotoRepository,
    InMemoryRemoteSessionRepository,
)

CODE = "WEDDING-AB12CD"
PHOTO_ID = f"{CODE}-001"
TOKEN = "s3cr3t-token"


@pytest.fixture
def seeded(
    remote_photos: InMemoryRemotePhotoRepository,
    remote_sessions: InMemoryRemoteSessionRepository,
) -> None:
    remote_sessions.sessions[CODE] = SessionRecord(
        session_code=CODE, event_name="Wedding", created_at=START
    )
    remote_photos.photos[PHOTO_ID] = PhotoRecord(
        id=PHOTO_ID,
        session_code=CODE,
        photo_number=1,
        timestamp=START,
        uploaded=True,
        storage_path=f"{CODE}/{PHOTO_ID}.png",
        access_token=TOKEN,
    )


def _request(
    photo_id: str | None = PHOTO_ID, token: str | None = TOKEN
) -> DownloadRequest:
    return DownloadRequest(
        photo_id=photo_id,
        token=token,
        client_address="203.0.113.9",
        user_agent="pytest",
    )


@pytest.mark.usefixtures("seeded")
def test_valid_request_issues_url(
    download_gateway: DownloadGateway,
    access_logs: InMemoryAccessLogRepository,
    object_storage: FakeObjectStorage,
) -> None:
    response = asyncio.run(download_gateway.validate(_request()))

    assert response.status_code == 200
    assert response.stage == DownloadStage.URL_ISSUED
    assert response.body["expiresIn"] == 3600
    assert str(response.body["signedUrl"]).startswith(f"https://storage.test/{CODE}/")
    assert object_storage.signed == [(f"{CODE}/{PHOTO_ID}.png", 3600)]
    (entry,) = access_logs.entries
    assert entry.granted is True
    assert entry.token_hash == hash_token(TOKEN)
    assert entry.client_address == "203.0.113.9"


@pytest.mark.usefixtures("seeded")
@pytest.mark.parametrize(
    ("photo_id", "token", "reason"),
    [
        (None, TOKEN, RejectionReason.MISSING_PARAMETERS),
        (PHOTO_ID, None, RejectionReason.MISSING_PARAMETERS),
        ("WEDDING-AB12CD-999", TOKEN, RejectionReason.PHOTO_NOT_FOUND),
        (PHOTO_ID, "wrong-token", RejectionReason.TOKEN_MISMATCH),
    ],
)
def test_invalid_links_are_rejected_and_logged(
    download_gateway: DownloadGateway,
    access_logs: InMemoryAccessLogRepository,
    photo_id: str | None,
    token: str | None,
    reason: RejectionReason,
) -> None:
    response = asyncio.run(download_gateway.validate(_request(photo_id, token)))

    assert response.status_code == 401
    assert response.reason == reason
    assert response.body == {"error": "Invalid download link"}
    (entry,) = access_logs.entries
    assert entry.granted is False
    assert entry.failure_reason == reason.value
    assert entry.photo_id == (photo_id or "unknown")


@pytest.mark.usefixtures("seeded")
def test_not_uploaded_photo(
    download_gateway: DownloadGateway,
    remote_photos: InMemoryRemotePhotoRepository,
) -> None:
    remote_photos.photos[PHOTO_ID] = replace(
        remote_photos.photos[PHOTO_ID], uploaded=False, storage_path=None
    )

    response = asyncio.run(download_gateway.validate(_request()))

    assert response.status_code == 404
    assert response.body == {"error": "Photo not available yet"}


@pytest.mark.usefixtures("seeded")
def test_expired_photo_and_override(
    download_gateway: DownloadGateway,
    remote_sessions: InMemoryRemoteSessionRepository,
    access_logs: InMemoryAccessLogRepository,
    clock: FakeClock,
) -> None:
    clock.advance(hours=25)

    expired = asyncio.run(download_gateway.validate(_request()))

    assert expired.status_code == 403
    assert expired.body == {"error": "Download link has expired"}

    remote_sessions.sessions[CODE] = replace(
        remote_sessions.sessions[CODE],
        settings=SessionSettings(allow_download_after_expired=True),
    )
    allowed = asyncio.run(download_gateway.validate(_request()))

    assert allowed.status_code == 200
    assert [e.granted for e in access_logs.entries] == [False, True]


@pytest.mark.usefixtures("seeded")
def test_missing_session_uses_default_settings(
    download_gateway: DownloadGateway,
    remote_sessions: InMemoryRemoteSessionRepository,
    clock: FakeClock,
) -> None:
    remote_sessions.sessions.clear()

    assert asyncio.run(download_gateway.validate(_request())).status_code == 200

    clock.advance(hours=25)
    assert asyncio.run(download_gateway.validate(_request())).status_code == 403


@pytest.mark.usefixtures("seeded")
def test_rate_limited_client(
    download_gateway: DownloadGateway,
    access_logs: InMemoryAccessLogRepository,
) -> None:
    for _ in range(10):
        asyncio.run(download_gateway.validate(_request()))

    response = asyncio.run(download_gateway.validate(_request()))

    assert response.status_code == 429
    assert response.body == {
        "error": "Too many requests. Please try again later.",
        "retryAfter": 300,
    }
    assert response.headers == {"Retry-After": "300"}
    assert access_logs.entries[-1].failure_reason == "rate_limited"
    assert len(access_logs.entries) == 11


@pytest.mark.usefixtures("seeded")
def test_signing_failure(
    download_gateway: DownloadGateway, object_storage: FakeObjectStorage
) -> None:
    object_storage.fail_signing = True

    response = asyncio.run(download_gateway.validate(_request()))

    assert response.status_code == 500
    assert response.body == {"error": "Failed to generate download link"}


@pytest.mark.usefixtures("seeded")
def test_remote_lookup_failure_is_internal_error(
    download_gateway: DownloadGateway,
    remote_photos: InMemoryRemotePhotoRepository,
    access_logs: InMemoryAccessLogRepository,
) -> None:
    remote_photos.fail = True

    response = asyncio.run(download_gateway.validate(_request()))

    assert response.status_code == 500
    assert response.reason == RejectionReason.INTERNAL_ERROR
    assert access_logs.entries[-1].failure_reason == "internal_error"


@pytest.mark.usefixtures("seeded")
def test_access_log_failure_does_not_block_download(
    download_gateway: DownloadGateway, access_logs: InMemoryAccessLogRepository
) -> None:
    access_logs.fail = True

    response = asyncio.run(download_gateway.validate(_request()))

    assert response.status_code == 200
