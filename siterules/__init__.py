"""
siterules - per-site rule resolution.

Turns a large site catalog into O(1) lookup structures and answers, per
domain, whether a sub-resource is blocked and which request headers to
rewrite. Catalog partitions are loaded on demand.

Main entry point:
    SiteRulesEngine - wires every component from Settings

Components:
    PatternCache - compiled patterns with memoized match results
    DomainIndex - domain -> ConfigEntry and per-domain feature tables
    HeaderRuleEngine - precomputed header rewrites
    ChunkLoader - lazy partition loading with retry and fallback
    UsageLearner - visit counting and domain promotion
"""

from siterules.catalog import ChunkManifest, ConfigEntry
from siterules.engine import SiteRulesEngine
from siterules.errors import (
    PartitionLoadError,
    PatternCompileError,
    PersistenceError,
    SiteRulesError,
)
from siterules.headers import HeaderRuleEngine
from siterules.index import DomainIndex, PatternCache
from siterules.learning import UsageLearner
from siterules.loader import ChunkLoader, ChunkState

__version__ = "0.1.0"

__all__ = [
    "ChunkLoader",
    "ChunkManifest",
    "ChunkState",
    "ConfigEntry",
    "DomainIndex",
    "HeaderRuleEngine",
    "PartitionLoadError",
    "PatternCache",
    "PatternCompileError",
    "PersistenceError",
    "SiteRulesEngine",
    "SiteRulesError",
    "UsageLearner",
]
