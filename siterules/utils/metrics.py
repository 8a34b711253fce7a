"""
Performance metrics for siterules.

PerformanceMonitor is the metrics sink components report to: startup and
index build durations, per-partition load durations, pattern cache hits and
misses, and processed requests. It never influences behavior.
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from siterules.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ChunkLoadRecord:
    """A single partition load measurement."""

    partition: str
    duration_ms: float
    loaded_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "partition": self.partition,
            "duration_ms": round(self.duration_ms, 2),
            "loaded_at": self.loaded_at.isoformat(),
        }


class PerformanceMonitor:
    """Collects counters and timings for the rule engine.

    Thread-safe. Instances are created by the host and passed to the
    components that report to them.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started = time.perf_counter()
        self.startup_ms = 0.0
        self.index_build_ms = 0.0
        self.chunk_loads: list[ChunkLoadRecord] = []
        self.cache_hits = 0
        self.cache_misses = 0
        self.requests_processed = 0

    def record_startup(self, duration_ms: float) -> None:
        """Record engine startup time."""
        self.startup_ms = duration_ms
        logger.info("Startup completed", duration_ms=round(duration_ms, 2))

    def record_index_build(self, duration_ms: float) -> None:
        """Record the duration of the most recent index build."""
        self.index_build_ms = duration_ms
        logger.debug("Index build recorded", duration_ms=round(duration_ms, 2))

    def record_chunk_load(self, partition: str, duration_ms: float) -> None:
        """Record a partition load."""
        with self._lock:
            self.chunk_loads.append(ChunkLoadRecord(partition, duration_ms))
        logger.debug(
            "Chunk load recorded",
            partition=partition,
            duration_ms=round(duration_ms, 2),
        )

    def record_cache_hit(self) -> None:
        with self._lock:
            self.cache_hits += 1

    def record_cache_miss(self) -> None:
        with self._lock:
            self.cache_misses += 1

    def record_request(self) -> None:
        with self._lock:
            self.requests_processed += 1

    @property
    def cache_hit_rate(self) -> float:
        """Cache hit rate as a percentage (0.0 when nothing was tested)."""
        total = self.cache_hits + self.cache_misses
        if total == 0:
            return 0.0
        return round(self.cache_hits / total * 100, 2)

    @property
    def avg_chunk_load_ms(self) -> float:
        """Average partition load time in milliseconds."""
        with self._lock:
            if not self.chunk_loads:
                return 0.0
            total = sum(load.duration_ms for load in self.chunk_loads)
            return round(total / len(self.chunk_loads), 2)

    def export_metrics(self) -> dict[str, Any]:
        """Export a snapshot of all metrics.

        Returns:
            Dictionary suitable for serialization.
        """
        with self._lock:
            loads = [load.to_dict() for load in self.chunk_loads]
            hits, misses, requests = self.cache_hits, self.cache_misses, self.requests_processed

        return {
            "startup_ms": round(self.startup_ms, 2),
            "index_build_ms": round(self.index_build_ms, 2),
            "chunk_loads": loads,
            "cache_hits": hits,
            "cache_misses": misses,
            "cache_hit_rate": self.cache_hit_rate,
            "requests_processed": requests,
            "avg_chunk_load_ms": self.avg_chunk_load_ms,
            "total_runtime_ms": round((time.perf_counter() - self._started) * 1000, 2),
        }

    def log_summary(self) -> None:
        """Log a performance summary."""
        logger.info("Performance summary", **self.export_metrics())

    def reset(self) -> None:
        """Reset all metrics."""
        with self._lock:
            self._started = time.perf_counter()
            self.startup_ms = 0.0
            self.index_build_ms = 0.0
            self.chunk_loads = []
            self.cache_hits = 0
            self.cache_misses = 0
            self.requests_processed = 0
