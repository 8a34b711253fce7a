"""
Pattern caching and domain indexing.
"""

from siterules.index.domain_index import DomainIndex
from siterules.index.pattern_cache import PatternCache, PatternSpec

__all__ = [
    "DomainIndex",
    "PatternCache",
    "PatternSpec",
]
