"""SQLite-backed device-local store for sessions and photos."""

import json
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import Field, Session, SQLModel, create_engine, select

from morobooth.domain.photos import PhotoRecord
from morobooth.domain.schema import (
    CURRENT_SCHEMA_VERSION,
    photo_from_payload,
    photo_to_payload,
    session_from_payload,
    session_to_payload,
)
from morobooth.domain.sessions import SessionRecord
from morobooth.errors import (
    DuplicatePhoto,
    PhotoNotFound,
    QuotaExceeded,
    SessionNotFound,
    StorageBusy,
)
from morobooth.services.photos import LocalPhotoStore
from morobooth.services.sessions import LocalSessionStore

_logger = logging.getLogger(__name__)


class SessionRow(SQLModel, table=True):
    __tablename__ = "sessions"

    session_code: str = Field(primary_key=True)
    is_active: bool = Field(default=False, index=True)
    schema_version: int = Field(default=CURRENT_SCHEMA_VERSION)
    payload: str  # JSON


class PhotoRow(SQLModel, table=True):
    __tablename__ = "photos"

    id: str = Field(primary_key=True)
    session_code: str = Field(index=True)
    uploaded: bool = Field(default=False, index=True)
    schema_version: int = Field(default=CURRENT_SCHEMA_VERSION)
    payload: str  # JSON
    image: bytes


def _session_row(session: SessionRecord) -> SessionRow:
    return SessionRow(
        session_code=session.session_code,
        is_active=session.is_active,
        schema_version=CURRENT_SCHEMA_VERSION,
        payload=json.dumps(session_to_payload(session)),
    )


def _apply_session(row: SessionRow, session: SessionRecord) -> None:
    row.is_active = session.is_active
    row.schema_version = CURRENT_SCHEMA_VERSION
    row.payload = json.dumps(session_to_payload(session))


def _apply_photo(row: PhotoRow, photo: PhotoRecord) -> None:
    row.session_code = photo.session_code
    row.uploaded = photo.uploaded
    row.schema_version = CURRENT_SCHEMA_VERSION
    row.payload = json.dumps(photo_to_payload(photo))


def _read_session(row: SessionRow) -> SessionRecord:
    return session_from_payload(json.loads(row.payload), row.schema_version)


def _read_photo(row: PhotoRow) -> PhotoRecord:
    return photo_from_payload(json.loads(row.payload), row.schema_version)


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    """Map SQLite failures onto the engine's storage errors."""
    try:
        yield
    except IntegrityError as exc:
        raise DuplicatePhoto(f"{action}: {exc.orig}") from exc
    except OperationalError as exc:
        message = str(exc.orig).lower()
        if "locked" in message or "busy" in message:
            raise StorageBusy(f"{action}: {exc.orig}") from exc
        if "full" in message:
            raise QuotaExceeded(f"{action}: {exc.orig}") from exc
        raise


@dataclass
class LocalStore(LocalSessionStore, LocalPhotoStore):
    """Sessions and photos persisted in one SQLite database.

    Each row keeps its JSON payload with the schema version it was written
    with; older rows are upgraded when the store is opened and on every read.
    """

    engine: Engine

    @classmethod
    def create(cls, path: str, busy_timeout_seconds: float = 5.0) -> "LocalStore":
        """Open (and initialize) the store at ``path``.

        Writers wait up to ``busy_timeout_seconds`` for a competing lock before
        the write fails with StorageBusy.
        """
        engine = create_engine(
            f"sqlite:///{path}",
            connect_args={"check_same_thread": False, "timeout": busy_timeout_seconds},
        )
        store = cls(engine=engine)
        store.init()
        return store

    def init(self) -> None:
        """Create tables, enable WAL, and upgrade rows from older versions."""
        SQLModel.metadata.create_all(self.engine)
        with self.engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")
            conn.exec_driver_sql("PRAGMA synchronous=NORMAL")
            conn.commit()
        upgraded = self._upgrade_rows()
        if upgraded:
            _logger.info(
                "Upgraded %s local rows to schema version %s",
                upgraded,
                CURRENT_SCHEMA_VERSION,
            )

    def close(self) -> None:
        self.engine.dispose()

    def get_session(self, session_code: str) -> SessionRecord | None:
        with Session(self.engine) as db:
            row = db.get(SessionRow, session_code)
            return _read_session(row) if row else None

    def list_sessions(self) -> list[SessionRecord]:
        with Session(self.engine) as db:
            return [_read_session(row) for row in db.exec(select(SessionRow))]

    def save_session(self, session: SessionRecord) -> None:
        with _translate_errors("save_session"), Session(self.engine) as db:
            row = db.get(SessionRow, session.session_code)
            if row is None:
                db.add(_session_row(session))
            else:
                _apply_session(row, session)
                db.add(row)
            db.commit()

    def update_session(
        self, session_code: str, change: Callable[[SessionRecord], SessionRecord]
    ) -> SessionRecord:
        with _translate_errors("update_session"), Session(self.engine) as db:
            row = db.get(SessionRow, session_code)
            if row is None:
                raise SessionNotFound(session_code)
            updated = change(_read_session(row))
            _apply_session(row, updated)
            db.add(row)
            db.commit()
            return updated

    def set_active_session(self, session_code: str) -> None:
        with _translate_errors("set_active_session"), Session(self.engine) as db:
            rows = db.exec(select(SessionRow)).all()
            if not any(row.session_code == session_code for row in rows):
                raise SessionNotFound(session_code)
            for row in rows:
                session = _read_session(row)
                wanted = row.session_code == session_code
                stale = row.schema_version != CURRENT_SCHEMA_VERSION
                if session.is_active != wanted or stale:
                    _apply_session(row, replace(session, is_active=wanted))
                    db.add(row)
            db.commit()

    def clear(self) -> None:
        with _translate_errors("clear"), Session(self.engine) as db:
            for photo_row in db.exec(select(PhotoRow)).all():
                db.delete(photo_row)
            for session_row in db.exec(select(SessionRow)).all():
                db.delete(session_row)
            db.commit()

    def add_photo(self, photo: PhotoRecord, image: bytes) -> None:
        with _translate_errors("add_photo"), Session(self.engine) as db:
            row = PhotoRow(
                id=photo.id, session_code=photo.session_code, payload="", image=image
            )
            _apply_photo(row, photo)
            db.add(row)
            db.commit()

    def get_photo(self, photo_id: str) -> PhotoRecord | None:
        with Session(self.engine) as db:
            row = db.get(PhotoRow, photo_id)
            return _read_photo(row) if row else None

    def get_image(self, photo_id: str) -> bytes | None:
        with Session(self.engine) as db:
            row = db.get(PhotoRow, photo_id)
            return row.image if row else None

    def update_photo(
        self, photo_id: str, change: Callable[[PhotoRecord], PhotoRecord]
    ) -> PhotoRecord:
        with _translate_errors("update_photo"), Session(self.engine) as db:
            row = db.get(PhotoRow, photo_id)
            if row is None:
                raise PhotoNotFound(photo_id)
            updated = change(_read_photo(row))
            _apply_photo(row, updated)
            db.add(row)
            db.commit()
            return updated

    def list_unuploaded(self) -> list[PhotoRecord]:
        with Session(self.engine) as db:
            pending = select(PhotoRow).where(PhotoRow.uploaded == False)  # noqa: E712
            rows = db.exec(pending)
            return [_read_photo(row) for row in rows]

    def list_photos_by_session(self, session_code: str) -> list[PhotoRecord]:
        with Session(self.engine) as db:
            query = select(PhotoRow).where(PhotoRow.session_code == session_code)
            rows = db.exec(query)
            return [_read_photo(row) for row in rows]

    def _upgrade_rows(self) -> int:
        upgraded = 0
        with _translate_errors("upgrade"), Session(self.engine) as db:
            stale_sessions = db.exec(
                select(SessionRow).where(
                    SessionRow.schema_version < CURRENT_SCHEMA_VERSION
                )
            ).all()
            for row in stale_sessions:
                _apply_session(row, _read_session(row))
                db.add(row)
                upgraded += 1
            stale_photos = db.exec(
                select(PhotoRow).where(PhotoRow.schema_version < CURRENT_SCHEMA_VERSION)
            ).all()
            for row in stale_photos:
                _apply_photo(row, _read_photo(row))
                db.add(row)
                upgraded += 1
            db.commit()
        return upgraded