"""
Service Statistics: Lifetime Counters and a Rolling 24h Window

Tracks downloads, uploads, HTTP errors and rate-limit hits.

Design:
- Lifetime counters only ever increase.
- Every download/upload/error increment is also added to an hour bucket
  keyed by the wall-clock hour it happened in (UTC, truncated).
- snapshot() drops buckets whose hour started before now - 24h and sums
  the rest; the pruning happens under the same lock as the writes.
- Rate-limit hits are broken out per client in the lifetime view only.

All state lives in memory and is lost on restart.

Thread Safety:
    A single threading.Lock guards every mutation and snapshot.

Complexity:
    increment: O(1)
    snapshot:  O(b + c) for b live buckets (at most 25) and c rate-limited
               clients
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from evstore.core import constants as C
from evstore.core.types import Clock, system_clock


@dataclass(slots=True)
class _Bucket:
    downloads: int = 0
    uploads: int = 0
    http_errors: int = 0


@dataclass(frozen=True, slots=True)
class RateLimitedClient:
    """Lifetime count of rate-limit hits for one client."""

    client: str
    request_count: int


@dataclass(frozen=True, slots=True)
class StatsSnapshot:
    """Point-in-time copy of all counters."""

    download_count: int
    upload_count: int
    http_error_count: int
    rate_limit_hit_count: int
    last_24h_download_count: int
    last_24h_upload_count: int
    last_24h_http_error_count: int
    rate_limited_clients: tuple[RateLimitedClient, ...] = field(default_factory=tuple)
    start_time: float = 0.0
    taken_at: float = 0.0

    @property
    def uptime_seconds(self) -> float:
        return max(0.0, self.taken_at - self.start_time)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["rate_limited_clients"] = [asdict(c) for c in self.rate_limited_clients]
        data["start_time"] = datetime.fromtimestamp(self.start_time, tz=timezone.utc).isoformat()
        data.pop("taken_at")
        data["uptime_seconds"] = round(self.uptime_seconds, 3)
        return data


class StatsAggregator:
    """
    Thread-safe statistics collector.

    Usage:
        stats = StatsAggregator()
        stats.increment_uploads()
        snap = stats.snapshot()
        snap.last_24h_upload_count
    """

    __slots__ = (
        "_lock",
        "_clock",
        "_start_time",
        "_downloads",
        "_uploads",
        "_http_errors",
        "_rate_limit_hits",
        "_per_client_hits",
        "_buckets",
    )

    def __init__(self, clock: Clock = system_clock) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self._start_time = clock()
        self._downloads = 0
        self._uploads = 0
        self._http_errors = 0
        self._rate_limit_hits = 0
        self._per_client_hits: dict[str, int] = {}
        self._buckets: dict[int, _Bucket] = {}

    # -------------------------------------------------------------------------
    # MUTATIONS
    # -------------------------------------------------------------------------
    def increment_downloads(self) -> None:
        with self._lock:
            self._downloads += 1
            self._current_bucket().downloads += 1

    def increment_uploads(self) -> None:
        with self._lock:
            self._uploads += 1
            self._current_bucket().uploads += 1

    def increment_http_errors(self) -> None:
        with self._lock:
            self._http_errors += 1
            self._current_bucket().http_errors += 1

    def record_rate_limit_hit(self, client: str) -> None:
        """Count a denied request against ``client``."""
        with self._lock:
            self._rate_limit_hits += 1
            self._per_client_hits[client] = self._per_client_hits.get(client, 0) + 1

    def _current_bucket(self) -> _Bucket:
        # caller holds self._lock
        hour = int(self._clock() // C.STATS_BUCKET_S) * C.STATS_BUCKET_S
        bucket = self._buckets.get(hour)
        if bucket is None:
            bucket = _Bucket()
            self._buckets[hour] = bucket
        return bucket

    # -------------------------------------------------------------------------
    # READS
    # -------------------------------------------------------------------------
    def snapshot(self) -> StatsSnapshot:
        """Prune expired hour buckets and return a copy of every counter."""
        with self._lock:
            now = self._clock()
            cutoff = now - C.STATS_WINDOW_S

            for hour in [h for h in self._buckets if h < cutoff]:
                del self._buckets[hour]

            live = self._buckets.values()
            return StatsSnapshot(
                download_count=self._downloads,
                upload_count=self._uploads,
                http_error_count=self._http_errors,
                rate_limit_hit_count=self._rate_limit_hits,
                last_24h_download_count=sum(b.downloads for b in live),
                last_24h_upload_count=sum(b.uploads for b in live),
                last_24h_http_error_count=sum(b.http_errors for b in live),
                rate_limited_clients=tuple(
                    RateLimitedClient(client, count)
                    for client, count in self._per_client_hits.items()
                ),
                start_time=self._start_time,
                taken_at=now,
            )

    def uptime(self) -> float:
        """Seconds since the aggregator was created."""
        with self._lock:
            return max(0.0, self._clock() - self._start_time)

    @property
    def bucket_count(self) -> int:
        with self._lock:
            return len(self._buckets)
