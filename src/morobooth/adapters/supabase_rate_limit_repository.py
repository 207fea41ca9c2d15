"""Supabase repository for rate-limit windows."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from morobooth.domain.access import RateLimitRecord
from morobooth.services.rate_limit import RateLimitRepository


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class SupabaseRateLimitRepository(RateLimitRepository):
    """Supabase-backed rate-limit repository, one row per address."""

    client: Client

    def get_record(self, client_address: str) -> RateLimitRecord | None:
        """Return the current record for an address, if any."""
        response = (
            self.client.table("rate_limits")
            .select("ip_address, request_count, window_start, blocked_until")
            .eq("ip_address", client_address)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        return RateLimitRecord(
            client_address=row["ip_address"],
            window_start=_parse_timestamp(row["window_start"]),
            request_count=row.get("request_count") or 0,
            blocked_until=_parse_timestamp(row.get("blocked_until")),
        )

    def save_record(self, record: RateLimitRecord) -> None:
        """Upsert the record for an address."""
        self.client.table("rate_limits").upsert(
            {
                "ip_address": record.client_address,
                "request_count": record.request_count,
                "window_start": record.window_start.isoformat(),
                "blocked_until": (
                    record.blocked_until.isoformat() if record.blocked_until else None
                ),
                "last_request_at": datetime.now(tz=UTC).isoformat(),
            },
            on_conflict="ip_address",
        ).execute()

    def increment_request_count(self, client_address: str) -> None:
        """Atomically add one request through the ``increment_rate_limit`` RPC."""
        self.client.rpc("increment_rate_limit", {"ip_addr": client_address}).execute()
