"""
Site rules engine.

Wires the pattern cache, domain index, header rules, chunk loader and usage
learner together from Settings, and exposes the two paths a host calls into:

- navigation: ``await engine.on_navigation(url)`` before querying a site
- requests: ``engine.should_block(domain, url)`` and
  ``engine.apply_headers(domain, headers)`` for each outbound request

Components are plain instances owned by the engine; nothing is process-wide.
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

from siterules.catalog.schemas import ChunkManifest, ConfigEntry
from siterules.catalog.source import (
    CatalogSource,
    FileCatalogSource,
    HttpCatalogSource,
    parse_catalog,
)
from siterules.headers.engine import Header, HeaderRuleEngine
from siterules.index.domain_index import DomainIndex
from siterules.index.pattern_cache import PatternCache
from siterules.learning.usage_learner import UsageLearner
from siterules.loader.chunk_loader import ChunkLoader
from siterules.storage.kv_store import JsonFileStore, KeyValueStore
from siterules.utils.config import Settings, get_settings
from siterules.utils.domain import extract_domain
from siterules.utils.logging import get_logger
from siterules.utils.metrics import PerformanceMonitor
from siterules.utils.retry import RetryPolicy

logger = get_logger(__name__)

CatalogData = Iterable[ConfigEntry] | Mapping[str, Any] | list[Any]


def _create_source(settings: Settings) -> CatalogSource:
    loader = settings.loader
    if loader.base_url:
        return HttpCatalogSource(loader.base_url, timeout=loader.request_timeout)
    return FileCatalogSource(loader.catalog_dir)


def _as_entries(catalog: CatalogData) -> list[ConfigEntry]:
    if isinstance(catalog, Mapping):
        return parse_catalog(catalog)

    items = list(catalog)
    if all(isinstance(item, ConfigEntry) for item in items):
        return items
    return parse_catalog([i.model_dump() if isinstance(i, ConfigEntry) else i for i in items])


class SiteRulesEngine:
    """
    Per-site rule resolution.

    Usage:
        engine = SiteRulesEngine()
        await engine.initialize(core_catalog, manifest)

        entry = await engine.on_navigation("https://www.nytimes.com/section")
        if engine.should_block("nytimes.com", request_url):
            ...
        headers = engine.apply_headers("nytimes.com", headers)

        await engine.close()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        source: CatalogSource | None = None,
        store: KeyValueStore | None = None,
        monitor: PerformanceMonitor | None = None,
        rng: random.Random | None = None,
    ):
        """Initialize engine.

        Args:
            settings: Settings to build from (default: get_settings()).
            source: Catalog source (default: HTTP if loader.base_url is set,
                files under loader.catalog_dir otherwise).
            store: Usage history store (default: JSON file at
                learning.store_path).
            monitor: Metrics sink (default: a new PerformanceMonitor).
            rng: Random generator for synthetic addresses.
        """
        self.settings = settings or get_settings()
        self.monitor = monitor or PerformanceMonitor()

        self.pattern_cache = PatternCache(
            max_results=self.settings.cache.max_results,
            monitor=self.monitor,
        )
        self.index = DomainIndex(self.pattern_cache, monitor=self.monitor)
        self.headers = HeaderRuleEngine(
            pool_size=self.settings.headers.address_pool_size,
            rng=rng,
        )

        loader = self.settings.loader
        policy = RetryPolicy(
            max_attempts=loader.max_attempts,
            base_delay=loader.base_delay,
            max_delay=loader.max_delay,
        )
        self.source = source or _create_source(self.settings)
        self.loader = ChunkLoader(self.index, self.source, policy=policy, monitor=self.monitor)
        self.loader.add_merge_callback(self._on_merge)

        learning = self.settings.learning
        self.learner = UsageLearner(
            store if store is not None else JsonFileStore(Path(learning.store_path)),
            promotion_threshold=learning.promotion_threshold,
            persist_every=learning.persist_every,
            enabled=learning.enabled,
        )

        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(
        self,
        core_catalog: CatalogData,
        manifest: ChunkManifest | Mapping[str, Any] | None = None,
    ) -> None:
        """Build the in-memory state for a session.

        Loads usage history, indexes the core catalog, builds header rules,
        initializes the chunk loader and preloads partitions of promoted
        domains.

        Args:
            core_catalog: Entries that are always resident.
            manifest: Partition manifest for lazily loaded entries.
        """
        if self._initialized:
            logger.warning("Engine already initialized")
            return

        start = time.perf_counter()

        await asyncio.to_thread(self.learner.load)
        self.index.build(_as_entries(core_catalog))
        self.headers.build_rules(self.index, mobile=self.settings.headers.mobile)

        if manifest is not None:
            self.loader.init(manifest)
            promoted = self.learner.promoted_domains
            if self.settings.learning.preload_promoted and promoted:
                await self.loader.preload_for_domains(sorted(promoted))

        self._initialized = True

        duration_ms = (time.perf_counter() - start) * 1000
        self.monitor.record_startup(duration_ms)
        logger.info(
            "Site rules engine initialized",
            sites=len(self.index),
            partitions=self.loader.get_stats()["total_chunks"],
            duration_ms=round(duration_ms, 2),
        )

    def _on_merge(self, entries: Sequence[ConfigEntry]) -> None:
        self.headers.build_rules(self.index, mobile=self.settings.headers.mobile)

    async def on_navigation(self, url_or_domain: str) -> ConfigEntry | None:
        """Handle a top-level navigation.

        Tracks the visit, loads the owning partition if needed and resolves
        the domain's entry.

        Returns:
            The domain's entry, or None if the site has no rules.
        """
        domain = extract_domain(url_or_domain)
        if not domain:
            return None

        self.learner.track_visit(domain)
        if self.loader.initialized:
            await self.loader.ensure_loaded(domain)
        return self.index.lookup(domain)

    def should_block(self, domain: str, candidate_url: str) -> bool:
        self.monitor.record_request()
        return self.index.should_block(domain, candidate_url)

    def apply_headers(
        self,
        domain: str,
        headers: Sequence[Header],
        now_ms: int | None = None,
    ) -> Sequence[Header]:
        return self.headers.apply_headers(domain, headers, now_ms=now_ms)

    def has_site_config(self, domain: str) -> bool:
        return self.index.contains(domain)

    def get_site_config(self, domain: str) -> ConfigEntry | None:
        return self.index.lookup(domain)

    def clear_caches(self) -> None:
        """Drop compiled patterns and memoized match results."""
        self.pattern_cache.clear_all()
        logger.info("Pattern caches cleared")

    async def reset_usage(self) -> None:
        """Drop visit history once scheduled writes have finished."""
        await self.learner.flush()
        await asyncio.to_thread(self.learner.reset)

    def get_stats(self) -> dict[str, Any]:
        """Get statistics from every component."""
        return {
            "index": self.index.get_stats(),
            "pattern_cache": self.pattern_cache.get_stats(),
            "headers": self.headers.get_stats(),
            "loader": self.loader.get_stats(),
            "learner": self.learner.get_stats(),
            "performance": self.monitor.export_metrics(),
        }

    async def close(self) -> None:
        """Flush usage history and release the catalog source."""
        await self.learner.flush()
        await asyncio.to_thread(self.learner.persist)
        await self.source.close()
        self.monitor.log_summary()
        logger.info("Site rules engine closed")
