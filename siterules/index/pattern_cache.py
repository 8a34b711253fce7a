"""
Pattern Cache - compiled regular expressions with memoized match results.

Compiled matchers are kept for the lifetime of the cache (compilation is the
expensive part and the set of block patterns is finite). Match results are
memoized per (matcher, subject) pair in a bounded cache that evicts in
insertion order: once the bound is exceeded, the oldest inserted result goes,
regardless of how recently it was read.
"""

from __future__ import annotations

import re
import threading
from collections import OrderedDict

from siterules.errors import PatternCompileError
from siterules.utils.logging import get_logger
from siterules.utils.metrics import PerformanceMonitor

logger = get_logger(__name__)

PatternSpec = str | re.Pattern[str]

DEFAULT_MAX_RESULTS = 1000


class PatternCache:
    """Compile-once, test-many pattern matcher.

    Usage:
        cache = PatternCache(max_results=1000)
        cache.test(r"\\.tinypass\\.com/", "https://px.tinypass.com/xyz")  # True
        cache.test(r"\\.tinypass\\.com/", "https://px.tinypass.com/xyz")  # cache hit
    """

    def __init__(
        self,
        max_results: int = DEFAULT_MAX_RESULTS,
        monitor: PerformanceMonitor | None = None,
    ):
        if max_results < 1:
            raise ValueError("max_results must be >= 1")

        self.max_results = max_results
        self._monitor = monitor
        self._compiled: dict[tuple[str, int], re.Pattern[str]] = {}
        self._invalid: dict[tuple[str, int], str] = {}
        self._results: OrderedDict[tuple[re.Pattern[str], str], bool] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def compile(self, pattern: PatternSpec, flags: int = 0) -> re.Pattern[str]:
        """Compile a pattern, returning the cached matcher if already compiled.

        Args:
            pattern: Pattern source or an already compiled pattern.
            flags: re flags for string sources (ignored for compiled patterns).

        Returns:
            The cached compiled pattern. Repeated calls with the same source
            and flags return the identical object.

        Raises:
            PatternCompileError: If the source is not a valid expression.
        """
        if isinstance(pattern, re.Pattern):
            key = (pattern.pattern, pattern.flags)
        else:
            key = (pattern, flags)

        with self._lock:
            cached = self._compiled.get(key)
            if cached is not None:
                return cached

            if key in self._invalid:
                raise PatternCompileError(key[0], self._invalid[key])

            if isinstance(pattern, re.Pattern):
                compiled = pattern
            else:
                try:
                    compiled = re.compile(pattern, flags)
                except re.error as e:
                    self._invalid[key] = str(e)
                    logger.warning("Invalid block pattern", pattern=pattern, error=str(e))
                    raise PatternCompileError(pattern, str(e)) from e

            self._compiled[key] = compiled
            return compiled

    def test(self, pattern: PatternSpec, subject: str) -> bool:
        """Test a pattern against a subject, memoizing the outcome.

        Invalid patterns never match.

        Args:
            pattern: Pattern source or compiled pattern.
            subject: String to search (usually a request URL).

        Returns:
            True if the pattern matches anywhere in the subject.
        """
        try:
            compiled = self.compile(pattern)
        except PatternCompileError:
            return False

        key = (compiled, subject)

        with self._lock:
            cached = self._results.get(key)
            if cached is not None:
                self.hits += 1
                if self._monitor is not None:
                    self._monitor.record_cache_hit()
                return cached

            self.misses += 1
            if self._monitor is not None:
                self._monitor.record_cache_miss()

            result = compiled.search(subject) is not None
            self._results[key] = result
            while len(self._results) > self.max_results:
                self._results.popitem(last=False)

            return result

    def clear_results(self) -> None:
        """Drop memoized results, keeping compiled matchers."""
        with self._lock:
            self._results.clear()

    def clear_all(self) -> None:
        """Drop compiled matchers and memoized results."""
        with self._lock:
            self._compiled.clear()
            self._invalid.clear()
            self._results.clear()

    @property
    def result_count(self) -> int:
        return len(self._results)

    def is_cached(self, pattern: PatternSpec, subject: str) -> bool:
        """Check whether a result for (pattern, subject) is memoized."""
        try:
            compiled = self.compile(pattern)
        except PatternCompileError:
            return False
        return (compiled, subject) in self._results

    def get_stats(self) -> dict[str, int]:
        """Get cache statistics."""
        with self._lock:
            return {
                "compiled_patterns": len(self._compiled),
                "invalid_patterns": len(self._invalid),
                "cached_results": len(self._results),
                "max_results": self.max_results,
                "hits": self.hits,
                "misses": self.misses,
            }
