"""Outcome of a best-effort write to the remote store."""

from dataclasses import dataclass


@dataclass(frozen=True)
class SyncOk:
    """The remote store accepted the write."""


@dataclass(frozen=True)
class SyncDegraded:
    """The remote write failed; local state moved on without it."""

    reason: str


SyncResult = SyncOk | SyncDegraded

SYNC_OK = SyncOk()
