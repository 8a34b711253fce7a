"""
Precomputed request header rules.
"""

from siterules.headers.engine import (
    BOT_USER_AGENTS,
    HeaderRule,
    HeaderRuleEngine,
    generate_address_pool,
    resolve_user_agent,
)

__all__ = [
    "BOT_USER_AGENTS",
    "HeaderRule",
    "HeaderRuleEngine",
    "generate_address_pool",
    "resolve_user_agent",
]
