"""Per-address request limiting for the download gateway."""

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from morobooth.domain.access import Allowed, Blocked, RateDecision, RateLimitRecord
from morobooth.services.remote import call_remote

_logger = logging.getLogger(__name__)


class RateLimitRepository(Protocol):
    """Persistence interface for rate-limit windows."""

    def get_record(self, client_address: str) -> RateLimitRecord | None:
        """Return the current record for an address, if any."""

    def save_record(self, record: RateLimitRecord) -> None:
        """Insert or replace the record for an address."""

    def increment_request_count(self, client_address: str) -> None:
        """Atomically add one request to the address's current window."""


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class RateLimiter:
    """Windowed request limiter that fails open."""

    repository: RateLimitRepository
    max_requests: int = 10
    window_seconds: int = 60
    block_seconds: int = 300
    remote_timeout_seconds: float = 5.0
    clock: Callable[[], datetime] = _utcnow

    async def check(self, client_address: str) -> RateDecision:
        """Count a request from ``client_address`` and decide whether it may go on."""
        try:
            return await call_remote(
                self._check_sync,
                client_address,
                timeout=self.remote_timeout_seconds,
                action="rate_limit_check",
            )
        except Exception:
            _logger.exception(
                "Rate limit check failed for %s; allowing", client_address
            )
            return Allowed()

    def _check_sync(self, client_address: str) -> RateDecision:
        now = self.clock()
        record = self.repository.get_record(client_address)

        if record is not None and record.blocked_until and record.blocked_until > now:
            remaining = (record.blocked_until - now).total_seconds()
            return Blocked(retry_after_seconds=max(1, math.ceil(remaining)))

        window = timedelta(seconds=self.window_seconds)
        if record is None or now - record.window_start >= window:
            self.repository.save_record(
                RateLimitRecord(
                    client_address=client_address,
                    window_start=now,
                    request_count=1,
                    blocked_until=None,
                )
            )
            return Allowed()

        if record.request_count >= self.max_requests:
            blocked_until = now + timedelta(seconds=self.block_seconds)
            self.repository.save_record(
                RateLimitRecord(
                    client_address=client_address,
                    window_start=record.window_start,
                    request_count=record.request_count,
                    blocked_until=blocked_until,
                )
            )
            _logger.warning(
                "Blocking %s until %s after %s requests",
                client_address,
                blocked_until.isoformat(),
                record.request_count,
            )
            return Blocked(retry_after_seconds=self.block_seconds)

        self.repository.increment_request_count(client_address)
        return Allowed()
