"""
Catalog data model.

A catalog is a collection of ConfigEntry records, one per site (or per group
of sites sharing a configuration). Large catalogs are split into named
partitions described by a ChunkManifest and fetched on demand.

On-disk catalogs use the legacy key names (``useragent``, ``block_regex``,
``random_ip``, ...) or the camelCase names (``blockPatterns``,
``userAgentOverride``, ``randomizedOriginAddress``); both are accepted as
aliases of the Python field names.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from siterules.utils.logging import get_logger

logger = get_logger(__name__)

# Domain markers starting with this are authoring notes, not sites.
COMMENT_SENTINEL = "#"

USER_AGENT_KEYS = ("user_agent", "useragent", "userAgentOverride")
USER_AGENT_CUSTOM_KEYS = ("user_agent_custom", "useragent_custom")


class UserAgentTag(str, Enum):
    """Bot identities a site can be visited as."""

    GOOGLEBOT = "googlebot"
    BINGBOT = "bingbot"
    FACEBOOKBOT = "facebookbot"


class CookieMode(str, Enum):
    """Cookie handling for a site."""

    ALLOW = "allow"
    REMOVE = "remove"


@dataclass(frozen=True)
class CookieRule:
    """Derived cookie directive for a domain.

    Attributes:
        mode: Allow or remove all cookies (None if only selective rules apply)
        select_hold: Cookie names to keep while removing the others
        select_drop: Cookie names to remove while keeping the others
    """

    mode: CookieMode | None = None
    select_hold: tuple[str, ...] = ()
    select_drop: tuple[str, ...] = ()

    def merged_into(self, existing: CookieRule | None) -> CookieRule:
        """Combine this rule with one already registered for the same domain.

        A rule carrying a mode replaces the existing one. Selective rules
        without a mode are layered over the existing rule.
        """
        if existing is None or self.mode is not None:
            return self
        return replace(
            existing,
            select_hold=self.select_hold or existing.select_hold,
            select_drop=self.select_drop or existing.select_drop,
        )


def _as_tuple(value: Any) -> Any:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,) if value else ()
    return value


class ConfigEntry(BaseModel):
    """One catalog record.

    Either ``domain`` (a single site) or ``group`` (several sites sharing this
    entry verbatim) must be present. When a group is present, ``domain`` is
    only a label.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str = Field(..., min_length=1)
    domain: str | None = None
    group: tuple[str, ...] | None = None

    block_patterns: tuple[str, ...] = Field(
        default=(),
        validation_alias=AliasChoices("block_patterns", "block_regex", "blockPatterns"),
    )
    user_agent: UserAgentTag | None = Field(
        default=None, validation_alias=AliasChoices(*USER_AGENT_KEYS)
    )
    user_agent_custom: str | None = Field(
        default=None, validation_alias=AliasChoices(*USER_AGENT_CUSTOM_KEYS)
    )
    referer: str | None = None
    random_ip: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "random_ip", "randomized_origin_address", "randomizedOriginAddress"
        ),
    )

    allow_cookies: bool = False
    remove_cookies: bool = False
    remove_cookies_select_hold: tuple[str, ...] = ()
    remove_cookies_select_drop: tuple[str, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def split_user_agent(cls, data: Any) -> Any:
        """Route a user agent override to the tag or the literal field.

        A known bot tag stays a tag. Any other string is a literal user
        agent, unless a literal is already given. Non-string values are
        logged and dropped so the rest of the entry survives.
        """
        if not isinstance(data, dict):
            return data
        key = next((k for k in USER_AGENT_KEYS if k in data), None)
        if key is None:
            return data

        value = data[key]
        if value is None or isinstance(value, UserAgentTag):
            return data

        data = dict(data)
        del data[key]
        if not isinstance(value, str):
            logger.warning(
                "Ignoring user agent override",
                entry=data.get("name"),
                value_type=type(value).__name__,
            )
            return data

        value = value.strip()
        if value.lower() in {tag.value for tag in UserAgentTag}:
            data["user_agent"] = UserAgentTag(value.lower())
        elif value and not any(data.get(k) for k in USER_AGENT_CUSTOM_KEYS):
            data["user_agent_custom"] = value
        return data

    @field_validator("domain")
    @classmethod
    def normalize_domain(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.lower().strip()
        return v or None

    @field_validator("group", mode="before")
    @classmethod
    def normalize_group(cls, v: Any) -> Any:
        """Lowercase members and drop duplicates, keeping first-seen order."""
        if v is None:
            return None
        if isinstance(v, str):
            v = [v]
        members = [str(d).lower().strip() for d in v]
        unique = tuple(dict.fromkeys(d for d in members if d))
        return unique or None

    @field_validator(
        "block_patterns",
        "remove_cookies_select_hold",
        "remove_cookies_select_drop",
        mode="before",
    )
    @classmethod
    def accept_single_string(cls, v: Any) -> Any:
        return _as_tuple(v)

    @model_validator(mode="after")
    def require_domain_or_group(self) -> ConfigEntry:
        if self.domain is None and self.group is None:
            raise ValueError(f"Entry '{self.name}' needs a domain or a group")
        return self

    @property
    def is_comment(self) -> bool:
        """True for authoring metadata entries that describe no real site."""
        return self.group is None and (self.domain or "").startswith(COMMENT_SENTINEL)

    @property
    def domains(self) -> tuple[str, ...]:
        """Domains this entry applies to."""
        if self.group is not None:
            return self.group
        return (self.domain,) if self.domain else ()

    @property
    def user_agent_spec(self) -> UserAgentTag | str | None:
        """User agent override: a literal string wins over a bot tag."""
        return self.user_agent_custom or self.user_agent

    def cookie_rule(self) -> CookieRule | None:
        """Derive the cookie directive declared by this entry, if any."""
        mode: CookieMode | None = None
        if self.allow_cookies:
            mode = CookieMode.ALLOW
        elif self.remove_cookies:
            mode = CookieMode.REMOVE

        if (
            mode is None
            and not self.remove_cookies_select_hold
            and not self.remove_cookies_select_drop
        ):
            return None

        return CookieRule(
            mode=mode,
            select_hold=self.remove_cookies_select_hold,
            select_drop=self.remove_cookies_select_drop,
        )

    @property
    def has_header_features(self) -> bool:
        return bool(self.user_agent_spec or self.referer or self.random_ip)


class ChunkInfo(BaseModel):
    """A named catalog partition."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    locator: str = Field(..., min_length=1, validation_alias=AliasChoices("locator", "file"))
    domains: tuple[str, ...] = ()

    @field_validator("domains", mode="before")
    @classmethod
    def normalize_domains(cls, v: Any) -> Any:
        if v is None:
            return ()
        return tuple(str(d).lower().strip() for d in v if str(d).strip())


class ChunkManifest(BaseModel):
    """Partition name -> ChunkInfo, plus the locator of the full catalog.

    Accepts either ``{"partitions": {...}, "full_catalog": "..."}`` or the
    bare partition mapping ``{"india": {"file": ..., "domains": [...]}}``.
    """

    model_config = ConfigDict(frozen=True)

    partitions: dict[str, ChunkInfo] = Field(default_factory=dict)
    full_catalog: str | None = None

    @model_validator(mode="before")
    @classmethod
    def wrap_bare_mapping(cls, data: Any) -> Any:
        if isinstance(data, dict) and "partitions" not in data:
            bare = {k: v for k, v in data.items() if k != "full_catalog"}
            return {"partitions": bare, "full_catalog": data.get("full_catalog")}
        return data
