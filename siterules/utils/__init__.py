"""
siterules utilities module.
"""

from siterules.utils.config import Settings, get_project_root, get_settings, load_settings
from siterules.utils.domain import extract_domain, normalize_domain
from siterules.utils.logging import (
    LogContext,
    configure_logging,
    get_logger,
)
from siterules.utils.metrics import PerformanceMonitor
from siterules.utils.retry import RetryExhaustedError, RetryPolicy, retry_async

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "get_project_root",
    "load_settings",
    # Logging
    "get_logger",
    "configure_logging",
    "LogContext",
    # Metrics
    "PerformanceMonitor",
    # Retry
    "RetryPolicy",
    "RetryExhaustedError",
    "retry_async",
    # Domains
    "extract_domain",
    "normalize_domain",
]
