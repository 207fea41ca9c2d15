"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import Client, create_client

from morobooth.adapters.local_store import LocalStore
from morobooth.adapters.supabase_access_log_repository import (
    SupabaseAccessLogRepository,
)
from morobooth.adapters.supabase_photo_repository import SupabasePhotoRepository
from morobooth.adapters.supabase_rate_limit_repository import (
    SupabaseRateLimitRepository,
)
from morobooth.adapters.supabase_session_repository import (
    SupabaseSessionRepository,
)
from morobooth.adapters.supabase_storage import SupabaseObjectStorage
from morobooth.config import Settings
from morobooth.services.access_log import AccessLogService
from morobooth.services.counter import SessionCounterService
from morobooth.services.gateway import DownloadGateway
from morobooth.services.photos import PhotoLedger
from morobooth.services.rate_limit import RateLimiter
from morobooth.services.sessions import SessionService
from morobooth.services.signed_urls import SignedUrlCache, StorageUrlSigner
from morobooth.services.uploads import UploadService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    session_service: SessionService
    counter_service: SessionCounterService
    photo_ledger: PhotoLedger
    upload_service: UploadService
    download_gateway: DownloadGateway | None
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container.

    Without Supabase credentials the booth runs offline: remote writes are
    reported as degraded and the download gateway is disabled.
    """
    resolved_settings = settings or Settings()
    local_store = LocalStore.create(
        resolved_settings.local_db_path,
        busy_timeout_seconds=resolved_settings.local_busy_timeout_seconds,
    )
    supabase_client: Client | None = None
    if resolved_settings.remote_configured:
        supabase_client = create_client(
            resolved_settings.supabase_url, resolved_settings.supabase_service_key
        )

    remote_sessions = None
    remote_photos = None
    storage = None
    url_cache = None
    gateway = None
    timeout = resolved_settings.remote_timeout_seconds
    if supabase_client is not None:
        remote_sessions = SupabaseSessionRepository(supabase_client)
        remote_photos = SupabasePhotoRepository(supabase_client)
        storage = SupabaseObjectStorage(
            supabase_client, bucket=resolved_settings.storage_bucket
        )
        url_cache = SignedUrlCache(
            storage=storage,
            url_ttl_seconds=resolved_settings.signed_url_ttl_seconds,
            cache_ttl_seconds=resolved_settings.signed_url_cache_ttl_seconds,
            remote_timeout_seconds=timeout,
        )
        gateway = DownloadGateway(
            rate_limiter=RateLimiter(
                repository=SupabaseRateLimitRepository(supabase_client),
                max_requests=resolved_settings.rate_limit_max_requests,
                window_seconds=resolved_settings.rate_limit_window_seconds,
                block_seconds=resolved_settings.rate_limit_block_seconds,
                remote_timeout_seconds=timeout,
            ),
            photo_repository=remote_photos,
            session_repository=remote_sessions,
            url_resolver=StorageUrlSigner(
                storage=storage,
                ttl_seconds=resolved_settings.download_url_ttl_seconds,
                remote_timeout_seconds=timeout,
            ),
            access_log=AccessLogService(
                repository=SupabaseAccessLogRepository(supabase_client),
                remote_timeout_seconds=timeout,
            ),
            url_ttl_seconds=resolved_settings.download_url_ttl_seconds,
            remote_timeout_seconds=timeout,
        )

    session_service = SessionService(
        local_store=local_store,
        remote_repository=remote_sessions,
        remote_timeout_seconds=timeout,
    )
    counter_service = SessionCounterService(
        local_store=local_store,
        remote_repository=remote_sessions,
        lock_timeout_seconds=resolved_settings.counter_lock_timeout_seconds,
        remote_timeout_seconds=resolved_settings.counter_remote_timeout_seconds,
        remote_pause_seconds=resolved_settings.counter_remote_pause_seconds,
        write_retries=resolved_settings.local_write_retries,
        retry_delay_seconds=resolved_settings.local_retry_delay_seconds,
    )
    photo_ledger = PhotoLedger(
        session_service=session_service,
        counter=counter_service,
        local_store=local_store,
        remote_repository=remote_photos,
        remote_timeout_seconds=timeout,
        write_retries=resolved_settings.local_write_retries,
        retry_delay_seconds=resolved_settings.local_retry_delay_seconds,
    )
    upload_service = UploadService(
        ledger=photo_ledger,
        storage=storage,
        url_cache=url_cache,
        delay_seconds=resolved_settings.upload_delay_seconds,
    )

    async def close_resources() -> None:
        local_store.close()

    return AppContainer(
        settings=resolved_settings,
        session_service=session_service,
        counter_service=counter_service,
        photo_ledger=photo_ledger,
        upload_service=upload_service,
        download_gateway=gateway,
        close_resources=close_resources,
    )
