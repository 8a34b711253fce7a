"""
Usage Learner - visit frequency tracking and domain promotion.

Counts visits per domain. A domain whose count reaches the promotion threshold
is promoted, permanently: there is no decay and no demotion. Promoted domains
are the ones whose partitions a host should keep resident.

Persistence is batched. Counters are written every ``persist_every``-th visit
of a domain (plus on promotion and on explicit persist()), so an unclean
shutdown loses at most ``persist_every - 1`` visits per domain. Store failures
are logged; the in-memory state stays authoritative. Inside a running event
loop the writes run in a worker thread; flush() waits for them.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Iterable, Mapping
from typing import Any

from siterules.errors import PersistenceError
from siterules.storage.kv_store import KeyValueStore
from siterules.utils.logging import get_logger

logger = get_logger(__name__)

USAGE_KEY = "usage_data"
PROMOTED_KEY = "promoted_sites"
STORE_KEYS = (USAGE_KEY, PROMOTED_KEY)

DEFAULT_PROMOTION_THRESHOLD = 5
DEFAULT_PERSIST_EVERY = 10


class UsageLearner:
    """
    Tracks domain visits and promotes frequently visited domains.

    Usage:
        learner = UsageLearner(JsonFileStore("data/usage.json"))
        learner.load()

        learner.track_visit("nytimes.com")
        if learner.is_promoted("nytimes.com"):
            ...
    """

    def __init__(
        self,
        store: KeyValueStore,
        promotion_threshold: int = DEFAULT_PROMOTION_THRESHOLD,
        persist_every: int = DEFAULT_PERSIST_EVERY,
        enabled: bool = True,
    ):
        if promotion_threshold < 1:
            raise ValueError("promotion_threshold must be >= 1")
        if persist_every < 1:
            raise ValueError("persist_every must be >= 1")

        self._store = store
        self.promotion_threshold = promotion_threshold
        self.persist_every = persist_every
        self.enabled = enabled

        # Insertion order of _visits is the tie-break order for get_top_domains
        self._visits: dict[str, int] = {}
        self._promoted: set[str] = set()
        self._lock = threading.Lock()

        self._dirty: set[str] = set()
        self._write_task: asyncio.Task[None] | None = None

    def load(self) -> None:
        """Restore counters and promotions from the store.

        Stored counts are merged with any already tracked in memory, keeping
        the larger value, so counters never go backwards. Stored values of
        the wrong shape are logged and ignored.
        """
        try:
            usage = self._store.get(USAGE_KEY)
            promoted = self._store.get(PROMOTED_KEY)
        except PersistenceError as e:
            logger.error("Failed to load usage data", error=str(e))
            return

        if usage is not None and not isinstance(usage, Mapping):
            logger.warning("Ignoring stored usage data", value_type=type(usage).__name__)
            usage = None
        if promoted is not None and not isinstance(promoted, list):
            logger.warning("Ignoring stored promoted sites", value_type=type(promoted).__name__)
            promoted = None

        with self._lock:
            for domain, count in (usage or {}).items():
                try:
                    count = int(count)
                except (TypeError, ValueError):
                    logger.warning("Ignoring invalid visit count", domain=domain, count=count)
                    continue
                self._visits[domain] = max(self._visits.get(domain, 0), count)
            self._promoted.update(d for d in promoted or [] if isinstance(d, str) and d)

        logger.info(
            "Usage learner loaded",
            tracked=len(self._visits),
            promoted=len(self._promoted),
        )

    def track_visit(self, domain: str) -> None:
        """Record one visit to a domain.

        Promotes the domain when its count first reaches the threshold and
        persists every ``persist_every``-th visit of the domain. Called from
        a running event loop, the write is handed to a worker thread and
        this method only touches memory. Without a loop it writes inline.
        """
        if not self.enabled or not domain:
            return

        keys: set[str] = set()

        with self._lock:
            count = self._visits.get(domain, 0) + 1
            self._visits[domain] = count

            if count >= self.promotion_threshold and domain not in self._promoted:
                self._promoted.add(domain)
                keys.add(PROMOTED_KEY)

        if PROMOTED_KEY in keys:
            logger.info("Domain promoted", domain=domain, visits=count)

        if count % self.persist_every == 0:
            keys.update(STORE_KEYS)

        if keys:
            self._schedule_write(keys)

    def is_promoted(self, domain: str) -> bool:
        return domain in self._promoted

    def get_visit_count(self, domain: str) -> int:
        return self._visits.get(domain, 0)

    def get_top_domains(self, limit: int = 20) -> list[tuple[str, int]]:
        """Most visited domains, highest count first.

        Ties keep first-seen order.

        Args:
            limit: Maximum number of domains to return.

        Returns:
            List of (domain, visit count).
        """
        with self._lock:
            ranked = sorted(self._visits.items(), key=lambda item: item[1], reverse=True)
        return ranked[: max(limit, 0)]

    @property
    def promoted_domains(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._promoted)

    def persist(self) -> bool:
        """Write counters and promotions to the store.

        Returns:
            True if both keys were written.
        """
        return self._write_keys(STORE_KEYS)

    async def flush(self) -> None:
        """Wait for scheduled writes to finish."""
        while self._write_task is not None and not self._write_task.done():
            await asyncio.shield(self._write_task)

    def _schedule_write(self, keys: Iterable[str]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._write_keys(keys)
            return

        self._dirty.update(keys)
        if self._write_task is None or self._write_task.done():
            self._write_task = loop.create_task(self._drain(), name="usage-learner:persist")

    async def _drain(self) -> None:
        while self._dirty:
            keys = set(self._dirty)
            self._dirty.clear()
            await asyncio.to_thread(self._write_keys, keys)

    def _write_keys(self, keys: Iterable[str]) -> bool:
        wanted = set(keys)
        with self._lock:
            values = {USAGE_KEY: dict(self._visits), PROMOTED_KEY: sorted(self._promoted)}

        ok = True
        for key in STORE_KEYS:
            if key in wanted:
                ok = self._write(key, values[key]) and ok
        return ok

    def _write(self, key: str, value: Any) -> bool:
        try:
            self._store.set(key, value)
            return True
        except PersistenceError as e:
            logger.error("Failed to persist usage data", key=key, error=str(e))
            return False

    def reset(self) -> None:
        """Clear all counters and promotions, in memory and in the store."""
        with self._lock:
            self._visits.clear()
            self._promoted.clear()
        self._dirty.clear()

        try:
            self._store.delete(USAGE_KEY, PROMOTED_KEY)
        except PersistenceError as e:
            logger.error("Failed to drop persisted usage data", error=str(e))
            return

        logger.info("Usage data reset")

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        logger.info("Usage learning toggled", enabled=enabled)

    def get_stats(self) -> dict[str, Any]:
        """Get learner statistics."""
        with self._lock:
            total = sum(self._visits.values())
            tracked = len(self._visits)
            promoted = len(self._promoted)

        return {
            "enabled": self.enabled,
            "tracked_sites": tracked,
            "promoted_sites": promoted,
            "total_visits": total,
            "avg_visits_per_site": round(total / tracked, 2) if tracked else 0.0,
            "promotion_threshold": self.promotion_threshold,
        }
