"""
Header Rule Engine - precomputed request header rewrites per domain.

Rules are derived once from the Domain Index (user agent, referer, synthetic
forwarded-for addresses) so the request path only does a dict lookup and a
list rebuild.

The bot user agents come in a desktop and a mobile variant; which one is used
is fixed at build time by the mobile flag.
"""

from __future__ import annotations

import random
import time
from collections.abc import Sequence
from dataclasses import dataclass

from siterules.catalog.schemas import UserAgentTag
from siterules.index.domain_index import DomainIndex
from siterules.utils.logging import get_logger

logger = get_logger(__name__)

Header = tuple[str, str]

USER_AGENT_HEADER = "User-Agent"
REFERER_HEADER = "Referer"
FORWARDED_FOR_HEADER = "X-Forwarded-For"

DEFAULT_POOL_SIZE = 10

# (desktop, mobile)
BOT_USER_AGENTS: dict[UserAgentTag, tuple[str, str]] = {
    UserAgentTag.GOOGLEBOT: (
        "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)",
        "Chrome/115.0.5790.171 Mobile Safari/537.36 "
        "(compatible ; Googlebot/2.1 ; +http://www.google.com/bot.html)",
    ),
    UserAgentTag.BINGBOT: (
        "Mozilla/5.0 (compatible; bingbot/2.0; +http://www.bing.com/bingbot.htm)",
        "Chrome/115.0.5790.171 Mobile Safari/537.36 "
        "(compatible; bingbot/2.0; +http://www.bing.com/bingbot.htm)",
    ),
    UserAgentTag.FACEBOOKBOT: (
        "facebookexternalhit/1.1 (+http://www.facebook.com/externalhit_uatext.php)",
        "facebookexternalhit/1.1 (+http://www.facebook.com/externalhit_uatext.php)",
    ),
}


def resolve_user_agent(spec: UserAgentTag | str, mobile: bool) -> str:
    """Resolve a bot tag to its user agent string; literal strings pass through."""
    if isinstance(spec, UserAgentTag):
        desktop, mobile_ua = BOT_USER_AGENTS[spec]
        return mobile_ua if mobile else desktop
    return spec


def generate_address_pool(size: int, rng: random.Random | None = None) -> tuple[str, ...]:
    """Generate ``size`` random dotted-quad addresses."""
    rng = rng or random.Random()
    return tuple(
        ".".join(str(rng.randrange(255)) for _ in range(4)) for _ in range(size)
    )


@dataclass(frozen=True)
class HeaderRule:
    """Header rewrites for one domain.

    Attributes:
        user_agent: Replacement User-Agent value
        referer: Replacement Referer value
        address_pool: Synthetic X-Forwarded-For values to rotate through
    """

    user_agent: str | None = None
    referer: str | None = None
    address_pool: tuple[str, ...] = ()

    def replaces(self) -> frozenset[str]:
        """Lowercased names of the headers this rule overrides."""
        names = set()
        if self.user_agent:
            names.add(USER_AGENT_HEADER.lower())
        if self.referer:
            names.add(REFERER_HEADER.lower())
        if self.address_pool:
            names.add(FORWARDED_FOR_HEADER.lower())
        return frozenset(names)


class HeaderRuleEngine:
    """
    Precomputed header rules keyed by domain.

    Usage:
        engine = HeaderRuleEngine()
        engine.build_rules(index, mobile=False)
        headers = engine.apply_headers("wsj.com", [("Accept", "*/*")])
    """

    def __init__(
        self,
        pool_size: int = DEFAULT_POOL_SIZE,
        rng: random.Random | None = None,
    ):
        if pool_size < 1:
            raise ValueError("pool_size must be >= 1")
        self.pool_size = pool_size
        self._rng = rng or random.Random()
        self._rules: dict[str, HeaderRule] = {}

    def build_rules(self, index: DomainIndex, mobile: bool = False) -> None:
        """Rebuild all rules from the index.

        Domains without any header feature get no rule. The previous rule set
        is replaced wholesale.

        Args:
            index: Domain index to derive rules from.
            mobile: Use the mobile variant of bot user agents.
        """
        rules: dict[str, HeaderRule] = {}

        for domain in index.domains:
            entry = index.lookup(domain)
            if entry is None or not entry.has_header_features:
                continue

            spec = entry.user_agent_spec
            rules[domain] = HeaderRule(
                user_agent=resolve_user_agent(spec, mobile) if spec else None,
                referer=entry.referer,
                address_pool=(
                    generate_address_pool(self.pool_size, self._rng) if entry.random_ip else ()
                ),
            )

        self._rules = rules
        logger.info("Header rules built", rules=len(rules), mobile=mobile)

    def apply_headers(
        self,
        domain: str,
        headers: Sequence[Header],
        now_ms: int | None = None,
    ) -> Sequence[Header]:
        """Apply the domain's header rule to a request's headers.

        Headers the rule overrides are removed (names compared
        case-insensitively) and the rule's values appended. The forwarded-for
        address is picked from the pool by ``now_ms % pool_size``.

        Args:
            domain: Request domain.
            headers: Request headers as (name, value) pairs.
            now_ms: Current time in milliseconds (defaults to the wall clock).

        Returns:
            ``headers`` itself if the domain has no rule, otherwise a new list.
        """
        rule = self._rules.get(domain)
        if rule is None:
            return headers

        overridden = rule.replaces()
        modified = [(name, value) for name, value in headers if name.lower() not in overridden]

        if rule.user_agent:
            modified.append((USER_AGENT_HEADER, rule.user_agent))
        if rule.referer:
            modified.append((REFERER_HEADER, rule.referer))
        if rule.address_pool:
            if now_ms is None:
                now_ms = time.time_ns() // 1_000_000
            modified.append(
                (FORWARDED_FOR_HEADER, rule.address_pool[now_ms % len(rule.address_pool)])
            )

        return modified

    def has_rules(self, domain: str) -> bool:
        return domain in self._rules

    def get_rule(self, domain: str) -> HeaderRule | None:
        return self._rules.get(domain)

    def get_stats(self) -> dict[str, int]:
        return {"total_rules": len(self._rules)}

    def clear(self) -> None:
        self._rules = {}
