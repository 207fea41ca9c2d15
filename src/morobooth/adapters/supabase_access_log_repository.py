"""Supabase repository for download access logs."""

from dataclasses import dataclass

from supabase import Client

from morobooth.domain.access import AccessLogEntry
from morobooth.services.access_log import AccessLogRepository


@dataclass
class SupabaseAccessLogRepository(AccessLogRepository):
    """Supabase-backed access log repository."""

    client: Client

    def create_entry(self, entry: AccessLogEntry) -> None:
        """Create an access log row."""
        self.client.table("photo_access_logs").insert(
            {
                "photo_id": entry.photo_id,
                "access_token_hash": entry.token_hash,
                "ip_address": entry.client_address,
                "user_agent": entry.user_agent,
                "access_granted": entry.granted,
                "failure_reason": entry.failure_reason,
            }
        ).execute()
