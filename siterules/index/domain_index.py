"""
Domain Index - O(1) lookup structures over the site catalog.

Maps every registered domain to its ConfigEntry, either directly or through a
group (many domains sharing one entry), and keeps derived per-domain feature
tables: user agent override, cookie rule and compiled block patterns.

Builds are additive. Indexing a new catalog partition never removes domains
indexed earlier; only clear() does.
"""

from __future__ import annotations

import re
import threading
import time
from collections.abc import Iterable

from siterules.catalog.schemas import ConfigEntry, CookieRule, UserAgentTag
from siterules.errors import PatternCompileError
from siterules.index.pattern_cache import PatternCache
from siterules.utils.logging import get_logger
from siterules.utils.metrics import PerformanceMonitor

logger = get_logger(__name__)


class DomainIndex:
    """
    Indexed view of the site catalog.

    Usage:
        index = DomainIndex(PatternCache())
        index.build(entries)

        if index.contains("nytimes.com"):
            entry = index.lookup("nytimes.com")

        index.should_block("nytimes.com", "https://px.tinypass.com/xyz")
    """

    def __init__(
        self,
        pattern_cache: PatternCache,
        monitor: PerformanceMonitor | None = None,
    ):
        self._pattern_cache = pattern_cache
        self._monitor = monitor

        # Core indexes
        self._domain_map: dict[str, ConfigEntry] = {}
        self._group_map: dict[str, str] = {}  # domain -> entry name
        self._group_entries: dict[str, ConfigEntry] = {}  # entry name -> shared entry

        # Feature indexes
        self._user_agents: dict[str, UserAgentTag | str] = {}
        self._cookie_rules: dict[str, CookieRule] = {}
        self._block_rules: dict[str, list[re.Pattern[str]]] = {}

        self._indexed: set[str] = set()
        self._lock = threading.RLock()

    @property
    def pattern_cache(self) -> PatternCache:
        return self._pattern_cache

    def build(self, catalog: Iterable[ConfigEntry]) -> None:
        """Index catalog entries, merging with what is already indexed.

        Comment entries and entries without a domain are skipped. Calling
        build again with the same entries leaves lookups unchanged.

        Args:
            catalog: Entries to index.
        """
        start = time.perf_counter()
        entries = 0
        skipped = 0

        with self._lock:
            for entry in catalog:
                if entry.is_comment:
                    skipped += 1
                    continue

                if entry.group is not None:
                    self._group_entries[entry.name] = entry
                    for domain in entry.group:
                        self._group_map[domain] = entry.name
                        self._indexed.add(domain)
                elif entry.domain is not None:
                    self._domain_map[entry.domain] = entry
                    self._indexed.add(entry.domain)
                else:
                    logger.warning("Skipping entry without domain", entry=entry.name)
                    skipped += 1
                    continue

                self._index_features(entry)
                entries += 1

        duration_ms = (time.perf_counter() - start) * 1000
        if self._monitor is not None:
            self._monitor.record_index_build(duration_ms)

        logger.info(
            "Domain index built",
            entries=entries,
            skipped=skipped,
            total_domains=len(self._indexed),
            duration_ms=round(duration_ms, 2),
        )

    def _index_features(self, entry: ConfigEntry) -> None:
        """Populate derived feature tables for every domain of an entry."""
        user_agent = entry.user_agent_spec
        cookie_rule = entry.cookie_rule()

        compiled: list[re.Pattern[str]] = []
        for source in entry.block_patterns:
            try:
                compiled.append(self._pattern_cache.compile(source))
            except PatternCompileError as e:
                logger.warning(
                    "Skipping invalid block pattern",
                    entry=entry.name,
                    pattern=e.pattern,
                    error=e.reason,
                )

        for domain in entry.domains:
            if user_agent is not None:
                self._user_agents[domain] = user_agent

            if cookie_rule is not None:
                self._cookie_rules[domain] = cookie_rule.merged_into(
                    self._cookie_rules.get(domain)
                )

            if compiled:
                rules = self._block_rules.setdefault(domain, [])
                for pattern in compiled:
                    # Compiled patterns are shared through the cache, so
                    # identity detects a pattern indexed by an earlier build.
                    if not any(pattern is existing for existing in rules):
                        rules.append(pattern)

    def lookup(self, domain: str) -> ConfigEntry | None:
        """Get the entry for a domain (direct mapping first, then groups)."""
        entry = self._domain_map.get(domain)
        if entry is not None:
            return entry

        name = self._group_map.get(domain)
        if name is not None:
            return self._group_entries.get(name)

        return None

    def contains(self, domain: str) -> bool:
        """O(1) presence check without resolving the entry."""
        return domain in self._indexed

    def __contains__(self, domain: object) -> bool:
        return domain in self._indexed

    def __len__(self) -> int:
        return len(self._indexed)

    @property
    def domains(self) -> frozenset[str]:
        """Snapshot of every indexed domain."""
        with self._lock:
            return frozenset(self._indexed)

    def get_user_agent(self, domain: str) -> UserAgentTag | str | None:
        return self._user_agents.get(domain)

    def get_cookie_rule(self, domain: str) -> CookieRule | None:
        return self._cookie_rules.get(domain)

    def get_block_rules(self, domain: str) -> list[re.Pattern[str]]:
        return list(self._block_rules.get(domain, ()))

    def should_block(self, domain: str, candidate_url: str) -> bool:
        """Check whether a request made on ``domain`` to ``candidate_url`` is blocked.

        Returns:
            True if any block pattern registered for the domain matches.
        """
        rules = self._block_rules.get(domain)
        if not rules:
            return False

        for pattern in rules:
            if self._pattern_cache.test(pattern, candidate_url):
                return True

        return False

    def get_stats(self) -> dict[str, int]:
        """Get index statistics."""
        with self._lock:
            return {
                "total_sites": len(self._indexed),
                "direct_domains": len(self._domain_map),
                "grouped_domains": len(self._group_map),
                "groups": len(self._group_entries),
                "user_agents": len(self._user_agents),
                "cookie_rules": len(self._cookie_rules),
                "block_rules": len(self._block_rules),
            }

    def clear(self) -> None:
        """Remove every indexed domain and feature."""
        with self._lock:
            self._domain_map.clear()
            self._group_map.clear()
            self._group_entries.clear()
            self._user_agents.clear()
            self._cookie_rules.clear()
            self._block_rules.clear()
            self._indexed.clear()
        logger.info("Domain index cleared")
