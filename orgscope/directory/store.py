"""
Versioned holder of the active directory snapshot.

Readers call `read()`, which is one attribute read and never blocks. A refresh
fetches from the source (with retry), builds and validates a complete new
snapshot off to the side, then swaps the reference under the writer lock.
Readers therefore see either the old version or the new one, never a mix.

Failure policy:
- `IntegrityError` from the source or from validation blocks the store:
  `read()` raises it until a corrected snapshot loads. There is no fallback
  to the previous version, since the corruption may already be upstream truth.
- `DirectoryUnavailable` after all retries keeps the last good snapshot.
  `read()` flags it stale once older than the TTL and refuses it once older
  than the maximum staleness.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
import threading
import time
from typing import Callable

from orgscope.directory.snapshot import DirectorySnapshot, build_snapshot
from orgscope.directory.sources import DirectorySource
from orgscope.errors import DirectoryUnavailable, IntegrityError
from orgscope.retry import call_with_retry

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[DirectorySnapshot], None]


@dataclass(frozen=True)
class SnapshotRead:
    snapshot: DirectorySnapshot
    stale: bool


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotStore:
    def __init__(
        self,
        source: DirectorySource,
        *,
        region_codes: frozenset[str],
        ttl: timedelta = timedelta(minutes=5),
        max_stale: timedelta = timedelta(hours=1),
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._source = source
        self._region_codes = frozenset(region_codes)
        self._ttl = ttl
        self._max_stale = max_stale
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._clock = clock
        self._sleep = sleep

        self._snapshot: DirectorySnapshot | None = None
        self._blocked: IntegrityError | None = None
        self._next_version = 1
        self._write_lock = threading.Lock()
        self._listeners: list[SnapshotListener] = []

    def subscribe(self, listener: SnapshotListener) -> None:
        """Call `listener(new_snapshot)` after every successful swap."""
        self._listeners.append(listener)

    @property
    def version(self) -> int | None:
        snapshot = self._snapshot
        return snapshot.version if snapshot else None

    @property
    def blocked(self) -> IntegrityError | None:
        return self._blocked

    def read(self) -> SnapshotRead:
        blocked = self._blocked
        if blocked is not None:
            raise blocked
        snapshot = self._snapshot
        if snapshot is None:
            raise DirectoryUnavailable("no directory snapshot loaded")

        age = self._clock() - snapshot.loaded_at
        if age > self._max_stale:
            raise DirectoryUnavailable(f"directory snapshot v{snapshot.version} too stale to serve")
        return SnapshotRead(snapshot=snapshot, stale=age > self._ttl)

    def is_due(self) -> bool:
        snapshot = self._snapshot
        return snapshot is None or self._blocked is not None or self._clock() - snapshot.loaded_at > self._ttl

    def refresh(self) -> DirectorySnapshot:
        """
        Load, validate and activate a new snapshot version.

        Raises `IntegrityError` (store now blocked) or `DirectoryUnavailable`
        (previous snapshot kept).
        """

        with self._write_lock:
            try:
                records = call_with_retry(
                    self._source.fetch,
                    retry_on=(DirectoryUnavailable,),
                    max_attempts=self._max_attempts,
                    backoff_seconds=self._backoff_seconds,
                    sleep=self._sleep,
                    description="directory fetch",
                )
                snapshot = build_snapshot(
                    records,
                    version=self._next_version,
                    region_codes=self._region_codes,
                    loaded_at=self._clock(),
                )
            except IntegrityError as e:
                self._block(e)
                raise
            self._next_version += 1
            self._snapshot = snapshot
            self._blocked = None

        logger.info("Activated directory snapshot version=%s employees=%s", snapshot.version, len(snapshot))
        for listener in list(self._listeners):
            listener(snapshot)
        return snapshot

    def invalidate(self) -> DirectorySnapshot:
        """Explicit invalidation signal from the directory: refresh now."""
        logger.info("Directory invalidation requested")
        return self.refresh()

    def refresh_if_due(self) -> DirectorySnapshot | None:
        """Background-worker entry point: refresh when due, report failures through logs and state."""
        if not self.is_due():
            return None
        try:
            return self.refresh()
        except IntegrityError:
            # Already logged and the store is blocked; the next tick retries.
            return None
        except DirectoryUnavailable:
            logger.warning("Directory refresh failed; serving snapshot version=%s", self.version)
            return None

    def _block(self, error: IntegrityError) -> None:
        self._blocked = error
        logger.error("Directory snapshot rejected, scope resolution blocked: %s", error)
