"""
Pytest fixtures and configuration for siterules tests.

=============================================================================
Test Classification
=============================================================================

Primary Markers (Execution Speed):
- @pytest.mark.unit: Single class/function, no external dependencies
  - Fast (<1s per test)
  - DEFAULT: Tests without marker are auto-classified as unit

- @pytest.mark.integration: Multiple components wired together, collaborators
  faked (catalog source, store, HTTP transport)

- @pytest.mark.e2e: Real catalog endpoints (excluded by default)
- @pytest.mark.slow: Tests taking >5 seconds (excluded by default)

Default execution: pytest -m "not e2e and not slow"

=============================================================================
Mock Strategy
=============================================================================

- Catalog source: FakeCatalogSource (in-memory, call counting, failure
  injection, optional gate to hold fetches in flight)
- Key-value store: MemoryStore
- HTTP: httpx.MockTransport
- File I/O: tmp_path fixture
"""

import asyncio
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

# Set test environment before importing anything else
os.environ["SITERULES_CONFIG_DIR"] = str(Path(__file__).parent.parent / "config")
os.environ["SITERULES_GENERAL__LOG_LEVEL"] = "DEBUG"

from siterules.catalog.schemas import ChunkManifest, ConfigEntry
from siterules.errors import PartitionLoadError
from siterules.index.domain_index import DomainIndex
from siterules.index.pattern_cache import PatternCache
from siterules.storage.kv_store import MemoryStore
from siterules.utils.metrics import PerformanceMonitor
from siterules.utils.retry import RetryPolicy

# =============================================================================
# Pytest Hooks for Test Classification
# =============================================================================


def pytest_configure(config):
    """Register custom markers for test classification."""
    config.addinivalue_line(
        "markers", "unit: Unit tests with no external dependencies (fast, <1s/test)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests with faked collaborators (<5s/test)"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests against real catalog endpoints (excluded by default)"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds (excluded by default)"
    )


def pytest_collection_modifyitems(config, items):
    """Tests without explicit markers are assumed to be unit tests."""
    for item in items:
        has_classification = any(
            marker.name in ("unit", "integration", "e2e") for marker in item.iter_markers()
        )
        if not has_classification:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Fakes
# =============================================================================


class FakeCatalogSource:
    """In-memory CatalogSource.

    Attributes:
        catalogs: locator -> entries returned by fetch
        calls: Every locator fetched, in call order
        gate: When set, fetches wait on it before answering
    """

    def __init__(self, catalogs: dict[str, list[ConfigEntry]] | None = None):
        self.catalogs = dict(catalogs or {})
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None
        self.closed = False
        self._failures: dict[str, int] = {}

    def fail(self, locator: str, times: int = -1) -> None:
        """Make fetches of ``locator`` fail ``times`` times (-1: always)."""
        self._failures[locator] = times

    def fetch_count(self, locator: str) -> int:
        return self.calls.count(locator)

    async def fetch(self, locator: str) -> list[ConfigEntry]:
        self.calls.append(locator)

        if self.gate is not None:
            await self.gate.wait()

        remaining = self._failures.get(locator, 0)
        if remaining != 0:
            if remaining > 0:
                self._failures[locator] = remaining - 1
            raise PartitionLoadError(locator, "simulated failure")

        if locator not in self.catalogs:
            raise PartitionLoadError(locator, "not found")
        return list(self.catalogs[locator])

    async def close(self) -> None:
        self.closed = True


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def make_entry() -> Callable[..., ConfigEntry]:
    """Factory for catalog entries using on-disk key names."""

    def _make(name: str, **fields: Any) -> ConfigEntry:
        return ConfigEntry.model_validate({"name": name, **fields})

    return _make


@pytest.fixture
def sample_catalog(make_entry) -> list[ConfigEntry]:
    """Small core catalog covering every entry feature."""
    return [
        make_entry("# news sites", domain="###_news"),
        make_entry(
            "The New York Times",
            domain="nytimes.com",
            block_regex=[r"\.tinypass\.com/", r"\.nytimes\.com/.+/meter\.js"],
            remove_cookies=True,
        ),
        make_entry(
            "Wall Street Journal",
            domain="wsj.com",
            useragent="googlebot",
            referer="https://www.google.com/",
        ),
        make_entry(
            "Groupe Sud Ouest",
            domain="###_fr_groupe_sud_ouest",
            group=["charentelibre.fr", "larepubliquedespyrenees.fr", "sudouest.fr"],
            block_regex=r"\.poool\.fr/",
            random_ip=True,
        ),
        make_entry(
            "Haaretz",
            domain="haaretz.com",
            useragent_custom="Mozilla/5.0 (custom)",
            remove_cookies_select_hold=["ui_state"],
        ),
        make_entry("Plain site", domain="plain.example"),
    ]


@pytest.fixture
def india_entries(make_entry) -> list[ConfigEntry]:
    return [
        make_entry("Example India", domain="example.in", block_regex=r"paywall\.example\.in"),
        make_entry("The Hindu", domain="thehindu.com", useragent="bingbot"),
    ]


@pytest.fixture
def full_catalog_entries(sample_catalog, india_entries, make_entry) -> list[ConfigEntry]:
    return [
        *sample_catalog,
        *india_entries,
        make_entry("Le Monde", domain="lemonde.fr"),
    ]


@pytest.fixture
def manifest() -> ChunkManifest:
    return ChunkManifest.model_validate(
        {
            "partitions": {
                "india": {"file": "chunks/india.yaml", "domains": ["example.in", "thehindu.com"]},
                "france": {"file": "chunks/france.yaml", "domains": ["lemonde.fr"]},
            },
            "full_catalog": "sites.yaml",
        }
    )


@pytest.fixture
def fake_source(india_entries, full_catalog_entries, make_entry) -> FakeCatalogSource:
    return FakeCatalogSource(
        {
            "chunks/india.yaml": india_entries,
            "chunks/france.yaml": [make_entry("Le Monde", domain="lemonde.fr")],
            "sites.yaml": full_catalog_entries,
        }
    )


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Retry policy with millisecond backoff."""
    return RetryPolicy(
        max_attempts=3,
        base_delay=0.001,
        max_delay=0.01,
    )


@pytest.fixture
def monitor() -> PerformanceMonitor:
    return PerformanceMonitor()


@pytest.fixture
def pattern_cache(monitor) -> PatternCache:
    return PatternCache(max_results=1000, monitor=monitor)


@pytest.fixture
def domain_index(pattern_cache, monitor) -> DomainIndex:
    return DomainIndex(pattern_cache, monitor=monitor)


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()
