"""Upload pipeline from local photos to object storage."""

import asyncio
import logging
from dataclasses import dataclass

from morobooth.domain.photos import PhotoRecord
from morobooth.errors import PhotoNotFound, RemoteUnavailable, UrlUnavailable
from morobooth.services.photos import PhotoLedger
from morobooth.services.remote import call_remote
from morobooth.services.signed_urls import ObjectStorage, SignedUrlCache

_logger = logging.getLogger(__name__)

PNG_CONTENT_TYPE = "image/png"


@dataclass(frozen=True)
class UploadResult:
    photo_id: str
    success: bool
    storage_path: str | None = None
    error: str | None = None


@dataclass
class UploadService:
    """Pushes captured images to object storage and records the outcome."""

    ledger: PhotoLedger
    storage: ObjectStorage | None = None
    url_cache: SignedUrlCache | None = None
    remote_timeout_seconds: float = 30.0
    delay_seconds: float = 0.5

    async def upload_photo(self, photo_id: str) -> UploadResult:
        """Upload one photo; already-uploaded photos are reported as done."""
        photo = self.ledger.get_photo(photo_id)
        if photo is None:
            raise PhotoNotFound(photo_id)
        if photo.uploaded:
            return UploadResult(
                photo_id=photo_id,
                success=True,
                storage_path=self.ledger.storage_path_for(photo),
            )
        if self.storage is None:
            return UploadResult(
                photo_id=photo_id, success=False, error="Object storage not configured"
            )
        image = self.ledger.get_image(photo_id)
        if not image:
            return UploadResult(
                photo_id=photo_id, success=False, error="Image data missing"
            )

        path = self.ledger.storage_path_for(photo)
        try:
            await call_remote(
                self.storage.upload,
                path,
                image,
                PNG_CONTENT_TYPE,
                timeout=self.remote_timeout_seconds,
                action="upload",
            )
        except RemoteUnavailable as exc:
            _logger.warning("Upload of %s failed: %s", photo_id, exc)
            return UploadResult(photo_id=photo_id, success=False, error=str(exc))

        await self.ledger.mark_uploaded(photo_id, path)
        _logger.info("Uploaded photo %s to %s", photo_id, path)
        return UploadResult(photo_id=photo_id, success=True, storage_path=path)

    async def backfill(self, limit: int | None = None) -> list[UploadResult]:
        """Upload pending photos one at a time, pausing between uploads."""
        pending: list[PhotoRecord] = self.ledger.get_unuploaded()
        if limit is not None:
            pending = pending[:limit]
        results: list[UploadResult] = []
        for index, photo in enumerate(pending):
            if index:
                await asyncio.sleep(self.delay_seconds)
            results.append(await self.upload_photo(photo.id))
        failed = sum(1 for result in results if not result.success)
        _logger.info(
            "Backfill finished: %s uploaded, %s failed", len(results) - failed, failed
        )
        return results

    async def download_url(self, photo_id: str) -> str:
        """Return a cached signed URL for an uploaded photo."""
        photo = self.ledger.get_photo(photo_id)
        if photo is None:
            raise PhotoNotFound(photo_id)
        if not photo.uploaded:
            raise UrlUnavailable(f"Photo {photo_id} has not been uploaded")
        if self.url_cache is None:
            raise UrlUnavailable("Object storage not configured")
        return await self.url_cache.resolve(self.ledger.storage_path_for(photo))
