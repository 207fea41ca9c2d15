"""Supabase Storage adapter for photo images."""

from dataclasses import dataclass

from supabase import Client

from morobooth.services.signed_urls import ObjectStorage


@dataclass
class SupabaseObjectStorage(ObjectStorage):
    """Stores photo images in one Supabase Storage bucket."""

    client: Client
    bucket: str = "photos"

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        """Upload ``data`` to ``path``; an existing object is replaced."""
        self.client.storage.from_(self.bucket).upload(
            path=path,
            file=data,
            file_options={"content-type": content_type, "upsert": "true"},
        )

    def create_signed_url(self, path: str, expires_in_seconds: int) -> str:
        """Return a signed URL for ``path``."""
        response = self.client.storage.from_(self.bucket).create_signed_url(
            path, expires_in_seconds
        )
        url = response.get("signedURL") or response.get("signedUrl")
        if not url:
            raise RuntimeError(f"No signed URL returned for {path}")
        return url
