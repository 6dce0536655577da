"""
Request metrics and rate limiting.

Both are plain objects owned by the app instance, so each test builds its
own. Old entries are evicted by ``sweep()``, which the Sweeper task calls
periodically.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

MAX_RECORDS = 10000
RECENT_WINDOW_SECONDS = 60


def hash_client(ip: str) -> str:
    return hashlib.sha256((ip or "unknown").encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class RequestMetric:
    endpoint: str
    method: str
    status_code: int
    response_time_ms: float
    timestamp: float
    client_hash: str = ""


class RequestMetrics:
    def __init__(
        self,
        window_seconds: int = 300,
        max_records: int = MAX_RECORDS,
        clock: Callable[[], float] = time.time,
    ):
        self.window_seconds = window_seconds
        self.clock = clock
        self.started_at = clock()
        self._lock = threading.Lock()
        self._records: deque[RequestMetric] = deque(maxlen=max_records)
        self._active_streams = 0

    def record(
        self,
        endpoint: str,
        method: str,
        status_code: int,
        response_time_ms: float,
        client_hash: str = "",
    ) -> None:
        metric = RequestMetric(
            endpoint=endpoint,
            method=method,
            status_code=status_code,
            response_time_ms=response_time_ms,
            timestamp=self.clock(),
            client_hash=client_hash,
        )
        with self._lock:
            self._records.append(metric)

    def stream_opened(self) -> None:
        with self._lock:
            self._active_streams += 1

    def stream_closed(self) -> None:
        with self._lock:
            self._active_streams = max(0, self._active_streams - 1)

    @property
    def active_streams(self) -> int:
        with self._lock:
            return self._active_streams

    def sweep(self) -> int:
        """Drop records older than the window. Returns how many were dropped."""
        cutoff = self.clock() - self.window_seconds
        dropped = 0
        with self._lock:
            while self._records and self._records[0].timestamp < cutoff:
                self._records.popleft()
                dropped += 1
        return dropped

    def snapshot(self) -> dict:
        now = self.clock()
        with self._lock:
            records = list(self._records)
            active = self._active_streams

        per_endpoint: dict[str, list[RequestMetric]] = defaultdict(list)
        for r in records:
            per_endpoint[f"{r.method} {r.endpoint}"].append(r)

        endpoint_stats = []
        for key, items in per_endpoint.items():
            times = [r.response_time_ms for r in items]
            endpoint_stats.append(
                {
                    "endpoint": key,
                    "total_requests": len(items),
                    "avg_response_time_ms": round(sum(times) / len(times), 2),
                    "min_response_time_ms": round(min(times), 2),
                    "max_response_time_ms": round(max(times), 2),
                    "success_count": sum(1 for r in items if r.status_code < 400),
                    "error_count": sum(1 for r in items if r.status_code >= 400),
                    "last_request_at": max(r.timestamp for r in items),
                }
            )
        endpoint_stats.sort(key=lambda s: -s["total_requests"])

        total = len(records)
        errors = sum(1 for r in records if r.status_code >= 400)
        return {
            "uptime_seconds": round(now - self.started_at),
            "total_requests": total,
            "requests_per_minute": sum(1 for r in records if r.timestamp > now - RECENT_WINDOW_SECONDS),
            "avg_response_time_ms": round(sum(r.response_time_ms for r in records) / total, 2) if total else 0,
            "error_rate": round(errors / total * 100, 2) if total else 0,
            "active_streams": active,
            "endpoints": endpoint_stats,
        }


class RateLimiter:
    """Sliding one-minute window per client key."""

    def __init__(self, limit_per_minute: int = 30, clock: Callable[[], float] = time.monotonic):
        self.limit = limit_per_minute
        self.clock = clock
        self._lock = threading.Lock()
        self._hits: dict[str, deque[float]] = {}

    def hit(self, key: str) -> tuple[bool, int]:
        """Count a request. Returns (allowed, retry_after_seconds)."""
        if self.limit <= 0:
            return True, 0
        now = self.clock()
        with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= now - 60:
                hits.popleft()
            if len(hits) >= self.limit:
                retry_after = max(1, int(hits[0] + 60 - now + 0.999))
                return False, retry_after
            hits.append(now)
            return True, 0

    def sweep(self) -> int:
        now = self.clock()
        with self._lock:
            idle = [k for k, hits in self._hits.items() if not hits or hits[-1] <= now - 60]
            for k in idle:
                del self._hits[k]
        return len(idle)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)


class Sweeper:
    """Background task that periodically evicts stale metrics and rate-limit keys."""

    def __init__(self, metrics: RequestMetrics, limiter: RateLimiter, interval: float = 30.0):
        self.metrics = metrics
        self.limiter = limiter
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    def sweep_once(self) -> tuple[int, int]:
        return self.metrics.sweep(), self.limiter.sweep()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            dropped, idle = self.sweep_once()
            if dropped or idle:
                logger.info(f"Swept {dropped} request metrics and {idle} idle rate-limit keys")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
