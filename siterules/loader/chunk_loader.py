"""
Chunk Loader - on-demand loading of catalog partitions.

Each partition named in the manifest moves through an explicit state machine:

    UNLOADED -> LOADING -> LOADED
                        -> FAILED -> (full catalog fallback) -> LOADED

Domains not mapped by the manifest are UNKNOWN. Concurrent requests for the
same partition share a single in-flight fetch. A partition that still fails
after the retry policy is exhausted triggers a load of the full catalog, which
marks every partition LOADED. Callers of ensure_loaded() only ever see a
boolean; load failures are logged, never raised.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable, Sequence
from enum import Enum
from typing import Any

from siterules.catalog.schemas import ChunkManifest, ConfigEntry
from siterules.catalog.source import CatalogSource
from siterules.index.domain_index import DomainIndex
from siterules.utils.logging import LogContext, get_logger
from siterules.utils.metrics import PerformanceMonitor
from siterules.utils.retry import RetryExhaustedError, RetryPolicy, retry_async

logger = get_logger(__name__)

MergeCallback = Callable[[Sequence[ConfigEntry]], None]


class ChunkState(str, Enum):
    """Load state of a catalog partition."""

    UNKNOWN = "unknown"
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class ChunkLoader:
    """
    Lazy loader for catalog partitions.

    Usage:
        loader = ChunkLoader(index, FileCatalogSource("data/catalog"))
        loader.init(manifest)

        if await loader.ensure_loaded("example.in"):
            entry = index.lookup("example.in")
    """

    def __init__(
        self,
        index: DomainIndex,
        source: CatalogSource,
        policy: RetryPolicy | None = None,
        monitor: PerformanceMonitor | None = None,
        fallback_locator: str | None = None,
    ):
        """Initialize chunk loader.

        Args:
            index: Domain index that receives loaded entries.
            source: Catalog source used to fetch partitions.
            policy: Retry policy for each fetch (default: RetryPolicy()).
            monitor: Optional metrics sink.
            fallback_locator: Full catalog locator, used when the manifest
                does not name one.
        """
        self._index = index
        self._source = source
        self._policy = policy or RetryPolicy()
        self._monitor = monitor
        self._fallback_locator = fallback_locator

        self._manifest = ChunkManifest()
        self._domain_to_chunk: dict[str, str] = {}
        self._states: dict[str, ChunkState] = {}
        self._inflight: dict[str, asyncio.Task[bool]] = {}
        self._fallback_task: asyncio.Task[bool] | None = None
        self._fallback_loaded = False
        self._merge_callbacks: list[MergeCallback] = []
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def fallback_locator(self) -> str | None:
        return self._manifest.full_catalog or self._fallback_locator

    def init(self, manifest: ChunkManifest | dict[str, Any]) -> None:
        """Build the domain -> partition reverse index.

        Args:
            manifest: Partition manifest (model or raw mapping).

        Raises:
            RuntimeError: If the loader was already initialized.
        """
        if self._initialized:
            raise RuntimeError("ChunkLoader is already initialized")

        if not isinstance(manifest, ChunkManifest):
            manifest = ChunkManifest.model_validate(manifest)

        for name, info in manifest.partitions.items():
            self._states[name] = ChunkState.UNLOADED
            for domain in info.domains:
                previous = self._domain_to_chunk.get(domain)
                if previous is not None and previous != name:
                    logger.warning(
                        "Domain mapped to multiple partitions",
                        domain=domain,
                        previous=previous,
                        partition=name,
                    )
                self._domain_to_chunk[domain] = name

        self._manifest = manifest
        self._initialized = True

        logger.info(
            "Chunk loader initialized",
            partitions=len(manifest.partitions),
            mapped_domains=len(self._domain_to_chunk),
            full_catalog=self.fallback_locator,
        )

    async def ensure_loaded(self, domain: str) -> bool:
        """Make sure the partition owning ``domain`` is merged into the index.

        Args:
            domain: Domain about to be resolved.

        Returns:
            True if the domain is indexed or its partition (or the full
            catalog) is now loaded, False if no partition maps the domain or
            every load path failed.
        """
        if self._index.contains(domain):
            return True

        name = self._domain_to_chunk.get(domain)
        if name is None:
            return False

        return await self._load(name)

    async def preload_chunks(self, names: Iterable[str]) -> dict[str, bool]:
        """Load several partitions concurrently.

        Unknown partition names are logged and reported as False.

        Returns:
            Partition name -> load outcome.
        """
        names = list(dict.fromkeys(names))
        known = [n for n in names if n in self._manifest.partitions]
        for name in names:
            if name not in self._manifest.partitions:
                logger.warning("Unknown partition", partition=name)

        results = await asyncio.gather(*(self._load(n) for n in known))
        outcome = {name: False for name in names}
        outcome.update(zip(known, results, strict=True))
        return outcome

    async def preload_for_domains(self, domains: Iterable[str]) -> dict[str, bool]:
        """Load the partitions owning the given domains (skips unmapped ones)."""
        names = [
            self._domain_to_chunk[d] for d in domains if d in self._domain_to_chunk
        ]
        if not names:
            return {}
        return await self.preload_chunks(names)

    async def _load(self, name: str) -> bool:
        if self._states.get(name) is ChunkState.LOADED:
            return True

        task = self._inflight.get(name)
        if task is None:
            task = asyncio.create_task(self._load_partition(name), name=f"chunk-load:{name}")
            self._inflight[name] = task
            task.add_done_callback(lambda t, n=name: self._forget_inflight(n, t))

        # Shielded so one cancelled waiter does not cancel the shared fetch
        return await asyncio.shield(task)

    def _forget_inflight(self, name: str, task: asyncio.Task[bool]) -> None:
        if self._inflight.get(name) is task:
            del self._inflight[name]

    async def _load_partition(self, name: str) -> bool:
        info = self._manifest.partitions[name]
        self._states[name] = ChunkState.LOADING
        start = time.perf_counter()

        with LogContext(partition=name):
            try:
                entries = await retry_async(
                    self._source.fetch,
                    info.locator,
                    policy=self._policy,
                    operation_name="fetch_partition",
                )
            except RetryExhaustedError as e:
                self._states[name] = ChunkState.FAILED
                logger.error(
                    "Partition load failed after retries",
                    locator=info.locator,
                    attempts=e.attempts,
                    error=str(e.last_error),
                )
                return await self._load_fallback()
            except Exception as e:
                self._states[name] = ChunkState.FAILED
                logger.error(
                    "Partition load failed",
                    locator=info.locator,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                return await self._load_fallback()

            self._merge(entries)
            self._states[name] = ChunkState.LOADED

            duration_ms = (time.perf_counter() - start) * 1000
            if self._monitor is not None:
                self._monitor.record_chunk_load(name, duration_ms)

            logger.info(
                "Partition loaded",
                entries=len(entries),
                domains=len(info.domains),
                duration_ms=round(duration_ms, 2),
            )
            return True

    async def _load_fallback(self) -> bool:
        if not self._fallback_loaded:
            if self._fallback_task is None or self._fallback_task.done():
                self._fallback_task = asyncio.create_task(
                    self._load_full_catalog(), name="chunk-load:full-catalog"
                )
            if not await asyncio.shield(self._fallback_task):
                return False

        # A partition that failed after the fallback finished is covered too
        self._mark_all_loaded()
        return True

    def _mark_all_loaded(self) -> None:
        for name in self._states:
            self._states[name] = ChunkState.LOADED

    async def _load_full_catalog(self) -> bool:
        locator = self.fallback_locator
        if locator is None:
            logger.error("Full catalog fallback unavailable, no locator configured")
            return False

        logger.warning("Falling back to full catalog", locator=locator)
        start = time.perf_counter()

        try:
            entries = await retry_async(
                self._source.fetch,
                locator,
                policy=self._policy,
                operation_name="fetch_full_catalog",
            )
        except Exception as e:
            logger.error(
                "Full catalog load failed",
                locator=locator,
                error_type=type(e).__name__,
                error=str(e),
            )
            return False

        self._merge(entries)
        self._mark_all_loaded()
        self._fallback_loaded = True

        duration_ms = (time.perf_counter() - start) * 1000
        if self._monitor is not None:
            self._monitor.record_chunk_load(locator, duration_ms)

        logger.info(
            "Full catalog loaded",
            entries=len(entries),
            partitions=len(self._states),
            duration_ms=round(duration_ms, 2),
        )
        return True

    def _merge(self, entries: Sequence[ConfigEntry]) -> None:
        self._index.build(entries)

        for callback in list(self._merge_callbacks):
            try:
                callback(entries)
            except Exception as e:
                logger.error("Merge callback failed", error=str(e))

    def add_merge_callback(self, callback: MergeCallback) -> None:
        """Add callback to be called after entries are merged into the index."""
        self._merge_callbacks.append(callback)

    def remove_merge_callback(self, callback: MergeCallback) -> None:
        """Remove merge callback."""
        if callback in self._merge_callbacks:
            self._merge_callbacks.remove(callback)

    def get_state(self, name: str) -> ChunkState:
        """Get the load state of a partition (UNKNOWN if not in the manifest)."""
        return self._states.get(name, ChunkState.UNKNOWN)

    def get_domain_state(self, domain: str) -> ChunkState:
        """Get the load state of the partition owning a domain."""
        name = self._domain_to_chunk.get(domain)
        if name is None:
            return ChunkState.UNKNOWN
        return self._states[name]

    def is_chunk_loaded(self, name: str) -> bool:
        return self._states.get(name) is ChunkState.LOADED

    def get_chunk_for_domain(self, domain: str) -> str | None:
        return self._domain_to_chunk.get(domain)

    def get_stats(self) -> dict[str, Any]:
        """Get loader statistics."""
        loaded = sorted(n for n, s in self._states.items() if s is ChunkState.LOADED)
        return {
            "total_chunks": len(self._manifest.partitions),
            "loaded_chunks": len(loaded),
            "loaded_chunks_list": loaded,
            "failed_chunks": sum(1 for s in self._states.values() if s is ChunkState.FAILED),
            "loading_chunks": len(self._inflight),
            "mapped_domains": len(self._domain_to_chunk),
            "fallback_loaded": self._fallback_loaded,
        }
