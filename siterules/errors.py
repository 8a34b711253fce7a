"""
Error types for siterules.

None of these are fatal to a domain resolution. Each has a local recovery:
- PatternCompileError: the pattern is treated as never matching.
- PartitionLoadError: retried, then the full catalog is loaded instead.
- PersistenceError: in-memory state stays authoritative for the session.
"""


class SiteRulesError(Exception):
    """Base exception for siterules errors."""


class PatternCompileError(SiteRulesError):
    """Raised when a block pattern source is not a valid regular expression.

    Attributes:
        pattern: The offending pattern source
        reason: Compiler error message
    """

    def __init__(self, pattern: str, reason: str):
        super().__init__(f"Invalid pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


class PartitionLoadError(SiteRulesError):
    """Raised when a catalog partition cannot be fetched or parsed.

    Attributes:
        locator: Locator of the partition that failed
    """

    def __init__(self, locator: str, message: str):
        super().__init__(f"{locator}: {message}")
        self.locator = locator


class PersistenceError(SiteRulesError):
    """Raised when the key-value store cannot be read or written.

    Attributes:
        operation: "get", "set" or "delete"
        key: Key involved, if any
    """

    def __init__(self, operation: str, key: str | None, message: str):
        super().__init__(f"{operation} {key or ''}: {message}".strip())
        self.operation = operation
        self.key = key
