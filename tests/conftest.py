"""Shared test fixtures."""

import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta

import pytest

from morobooth.config import Settings
from morobooth.containers import AppContainer
from morobooth.domain.access import AccessLogEntry, RateLimitRecord
from morobooth.domain.photos import PhotoRecord
from morobooth.domain.sessions import SessionRecord, SessionSettings
from morobooth.errors import (
    DuplicatePhoto,
    PhotoNotFound,
    QuotaExceeded,
    SessionNotFound,
    StorageBusy,
)
from morobooth.services.access_log import AccessLogRepository, AccessLogService
from morobooth.services.counter import SessionCounterService
from morobooth.services.gateway import DownloadGateway
from morobooth.services.photos import (
    LocalPhotoStore,
    PhotoLedger,
    RemotePhotoRepository,
)
from morobooth.services.rate_limit import RateLimiter, RateLimitRepository
from morobooth.services.sessions import (
    LocalSessionStore,
    RemoteSessionRepository,
    SessionService,
)
from morobooth.services.signed_urls import (
    ObjectStorage,
    SignedUrlCache,
    StorageUrlSigner,
)
from morobooth.services.uploads import UploadService

START = datetime(2025, 6, 14, 18, 0, tzinfo=UTC)


@dataclass
class FakeClock:
    """Manually advanced clock."""

    now: datetime = START

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class InMemoryLocalStore(LocalSessionStore, LocalPhotoStore):
    """In-memory local store with injectable storage failures."""

    sessions: dict[str, SessionRecord] = field(default_factory=dict)
    photos: dict[str, PhotoRecord] = field(default_factory=dict)
    images: dict[str, bytes] = field(default_factory=dict)
    busy_failures: int = 0
    quota_exceeded: bool = False
    write_attempts: int = 0
    photo_updates: int = 0

    def _check_write(self) -> None:
        self.write_attempts += 1
        if self.quota_exceeded:
            raise QuotaExceeded("database or disk is full")
        if self.busy_failures > 0:
            self.busy_failures -= 1
            raise StorageBusy("database is locked")

    def get_session(self, session_code: str) -> SessionRecord | None:
        return self.sessions.get(session_code)

    def list_sessions(self) -> list[SessionRecord]:
        return list(self.sessions.values())

    def save_session(self, session: SessionRecord) -> None:
        self.sessions[session.session_code] = session

    def update_session(
        self, session_code: str, change: Callable[[SessionRecord], SessionRecord]
    ) -> SessionRecord:
        self._check_write()
        current = self.sessions.get(session_code)
        if current is None:
            raise SessionNotFound(session_code)
        updated = change(current)
        self.sessions[session_code] = updated
        return updated

    def set_active_session(self, session_code: str) -> None:
        if session_code not in self.sessions:
            raise SessionNotFound(session_code)
        for code, session in self.sessions.items():
            self.sessions[code] = replace(session, is_active=code == session_code)

    def clear(self) -> None:
        self.sessions.clear()
        self.photos.clear()
        self.images.clear()

    def add_photo(self, photo: PhotoRecord, image: bytes) -> None:
        self._check_write()
        if photo.id in self.photos:
            raise DuplicatePhoto(photo.id)
        self.photos[photo.id] = photo
        self.images[photo.id] = image

    def get_photo(self, photo_id: str) -> PhotoRecord | None:
        return self.photos.get(photo_id)

    def get_image(self, photo_id: str) -> bytes | None:
        return self.images.get(photo_id)

    def update_photo(
        self, photo_id: str, change: Callable[[PhotoRecord], PhotoRecord]
    ) -> PhotoRecord:
        self._check_write()
        current = self.photos.get(photo_id)
        if current is None:
            raise PhotoNotFound(photo_id)
        self.photo_updates += 1
        updated = change(current)
        self.photos[photo_id] = updated
        return updated

    def list_unuploaded(self) -> list[PhotoRecord]:
        return [photo for photo in self.photos.values() if not photo.uploaded]

    def list_photos_by_session(self, session_code: str) -> list[PhotoRecord]:
        return [p for p in self.photos.values() if p.session_code == session_code]


@dataclass
class InMemoryRemoteSessionRepository(RemoteSessionRepository):
    """In-memory remote session table."""

    sessions: dict[str, SessionRecord] = field(default_factory=dict)
    fail: bool = False
    delay_seconds: float = 0.0
    calls: list[str] = field(default_factory=list)

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        if self.fail:
            raise RuntimeError("remote store offline")

    def create_session(self, session: SessionRecord) -> None:
        self._call("create_session")
        self.sessions[session.session_code] = session

    def get_session(self, session_code: str) -> SessionRecord | None:
        self._call("get_session")
        return self.sessions.get(session_code)

    def list_sessions(self) -> list[SessionRecord]:
        self._call("list_sessions")
        return sorted(self.sessions.values(), key=lambda s: s.created_at, reverse=True)

    def update_photo_count(self, session_code: str, photo_count: int) -> None:
        self._call("update_photo_count")
        session = self.sessions.get(session_code)
        if session is not None and session.photo_count < photo_count:
            self.sessions[session_code] = replace(session, photo_count=photo_count)

    def update_settings(self, session_code: str, settings: SessionSettings) -> None:
        self._call("update_settings")
        session = self.sessions.get(session_code)
        if session is not None:
            self.sessions[session_code] = replace(session, settings=settings)

    def activate_session(self, session_code: str) -> None:
        self._call("activate_session")
        for code, session in self.sessions.items():
            self.sessions[code] = replace(session, is_active=code == session_code)

    def deactivate_session(self, session_code: str) -> None:
        self._call("deactivate_session")
        session = self.sessions.get(session_code)
        if session is not None:
            self.sessions[session_code] = replace(session, is_active=False)

    def delete_all_sessions(self) -> None:
        self._call("delete_all_sessions")
        self.sessions.clear()


@dataclass
class InMemoryRemotePhotoRepository(RemotePhotoRepository):
    """In-memory remote photo table."""

    photos: dict[str, PhotoRecord] = field(default_factory=dict)
    taken_tokens: set[str] = field(default_factory=set)
    fail: bool = False

    def _check(self) -> None:
        if self.fail:
            raise RuntimeError("remote store offline")

    def insert_photo(self, photo: PhotoRecord) -> None:
        self._check()
        self.photos[photo.id] = photo

    def mark_uploaded(self, photo_id: str, storage_path: str) -> None:
        self._check()
        photo = self.photos.get(photo_id)
        if photo is not None:
            self.photos[photo_id] = replace(
                photo, uploaded=True, storage_path=storage_path
            )

    def get_photo(self, photo_id: str) -> PhotoRecord | None:
        self._check()
        return self.photos.get(photo_id)

    def list_photos_by_session(self, session_code: str) -> list[PhotoRecord]:
        self._check()
        return [p for p in self.photos.values() if p.session_code == session_code]

    def token_exists(self, access_token: str) -> bool:
        self._check()
        if access_token in self.taken_tokens:
            return True
        return any(p.access_token == access_token for p in self.photos.values())


@dataclass
class FakeObjectStorage(ObjectStorage):
    """Object storage that records uploads and counts signed URLs."""

    objects: dict[str, bytes] = field(default_factory=dict)
    signed: list[tuple[str, int]] = field(default_factory=list)
    fail_uploads: bool = False
    fail_signing: bool = False

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        if self.fail_uploads:
            raise RuntimeError("storage offline")
        self.objects[path] = data

    def create_signed_url(self, path: str, expires_in_seconds: int) -> str:
        if self.fail_signing:
            raise RuntimeError("storage offline")
        self.signed.append((path, expires_in_seconds))
        count = len(self.signed)
        return f"https://storage.test/{path}?expires={expires_in_seconds}&n={count}"


@dataclass
class InMemoryRateLimitRepository(RateLimitRepository):
    records: dict[str, RateLimitRecord] = field(default_factory=dict)
    fail: bool = False

    def get_record(self, client_address: str) -> RateLimitRecord | None:
        if self.fail:
            raise RuntimeError("rate_limits unavailable")
        return self.records.get(client_address)

    def save_record(self, record: RateLimitRecord) -> None:
        self.records[record.client_address] = record

    def increment_request_count(self, client_address: str) -> None:
        record = self.records[client_address]
        self.records[client_address] = replace(
            record, request_count=record.request_count + 1
        )


@dataclass
class InMemoryAccessLogRepository(AccessLogRepository):
    entries: list[AccessLogEntry] = field(default_factory=list)
    fail: bool = False

    def create_entry(self, entry: AccessLogEntry) -> None:
        if self.fail:
            raise RuntimeError("photo_access_logs unavailable")
        self.entries.append(entry)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        admin_token="admin-token",
        local_db_path=str(tmp_path / "booth.db"),
        local_retry_delay_seconds=0.001,
        upload_delay_seconds=0.0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def local_store() -> InMemoryLocalStore:
    return InMemoryLocalStore()


@pytest.fixture
def remote_sessions() -> InMemoryRemoteSessionRepository:
    return InMemoryRemoteSessionRepository()


@pytest.fixture
def remote_photos() -> InMemoryRemotePhotoRepository:
    return InMemoryRemotePhotoRepository()


@pytest.fixture
def object_storage() -> FakeObjectStorage:
    return FakeObjectStorage()


@pytest.fixture
def access_logs() -> InMemoryAccessLogRepository:
    return InMemoryAccessLogRepository()


@pytest.fixture
def session_service(
    local_store: InMemoryLocalStore,
    remote_sessions: InMemoryRemoteSessionRepository,
    clock: FakeClock,
) -> SessionService:
    return SessionService(
        local_store=local_store, remote_repository=remote_sessions, clock=clock
    )


@pytest.fixture
def counter_service(
    local_store: InMemoryLocalStore,
    remote_sessions: InMemoryRemoteSessionRepository,
) -> SessionCounterService:
    return SessionCounterService(
        local_store=local_store,
        remote_repository=remote_sessions,
        retry_delay_seconds=0.001,
    )


@pytest.fixture
def photo_ledger(
    session_service: SessionService,
    counter_service: SessionCounterService,
    local_store: InMemoryLocalStore,
    remote_photos: InMemoryRemotePhotoRepository,
    clock: FakeClock,
) -> PhotoLedger:
    return PhotoLedger(
        session_service=session_service,
        counter=counter_service,
        local_store=local_store,
        remote_repository=remote_photos,
        retry_delay_seconds=0.001,
        clock=clock,
    )


@pytest.fixture
def upload_service(
    photo_ledger: PhotoLedger, object_storage: FakeObjectStorage, clock: FakeClock
) -> UploadService:
    return UploadService(
        ledger=photo_ledger,
        storage=object_storage,
        url_cache=SignedUrlCache(storage=object_storage, clock=clock),
        delay_seconds=0.0,
    )


@pytest.fixture
def download_gateway(
    remote_photos: InMemoryRemotePhotoRepository,
    remote_sessions: InMemoryRemoteSessionRepository,
    object_storage: FakeObjectStorage,
    access_logs: InMemoryAccessLogRepository,
    clock: FakeClock,
) -> DownloadGateway:
    return DownloadGateway(
        rate_limiter=RateLimiter(repository=InMemoryRateLimitRepository(), clock=clock),
        photo_repository=remote_photos,
        session_repository=remote_sessions,
        url_resolver=StorageUrlSigner(storage=object_storage),
        access_log=AccessLogService(access_logs),
        clock=clock,
    )


@pytest.fixture
def container(
    settings: Settings,
    session_service: SessionService,
    counter_service: SessionCounterService,
    photo_ledger: PhotoLedger,
    upload_service: UploadService,
    download_gateway: DownloadGateway,
) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        session_service=session_service,
        counter_service=counter_service,
        photo_ledger=photo_ledger,
        upload_service=upload_service,
        download_gateway=download_gateway,
        close_resources=close_resources,
    )
