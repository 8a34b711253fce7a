"""
Tests for the catalog data model.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-CE-N-01 | Legacy key names | Equivalence – normal | Mapped to fields | Aliases |
| TC-CE-N-02 | Python field names | Equivalence – normal | Accepted | populate_by_name |
| TC-CE-N-03 | Single string pattern | Equivalence – normal | One-tuple | - |
| TC-CE-N-04 | Mixed-case, duplicate group | Equivalence – normal | Lowercased, deduped, ordered | - |
| TC-CE-N-05 | Custom and tag UA | Equivalence – normal | Custom wins | - |
| TC-CE-N-06 | Cookie flags | Equivalence – normal | CookieRule derived | - |
| TC-CE-N-07 | Comment entry | Equivalence – normal | is_comment | - |
| TC-CE-N-08 | Group with "#" label | Equivalence – normal | Not a comment | - |
| TC-CE-A-01 | No domain, no group | Equivalence – abnormal | ValidationError | - |
| TC-CE-N-09 | camelCase key names | Equivalence – normal | Mapped to fields | userAgentOverride, randomizedOriginAddress |
| TC-CE-N-10 | Literal string in UA tag field | Equivalence – normal | Literal user agent, entry kept | - |
| TC-CE-N-11 | Mixed-case tag | Equivalence – normal | Tag | - |
| TC-CE-A-02 | Non-string UA override | Equivalence – abnormal | Override dropped, entry kept | - |
| TC-CE-A-03 | Mutation | Equivalence – abnormal | ValidationError | Frozen |
| TC-CR-N-01 | Mode rule over existing | Equivalence – normal | Replaces | - |
| TC-CR-N-02 | Selective rule over existing | Equivalence – normal | Layered | - |
| TC-CM-N-01 | Bare manifest mapping | Equivalence – normal | Wrapped into partitions | - |
"""

import pytest
from pydantic import ValidationError

from siterules.catalog.schemas import (
    ChunkManifest,
    ConfigEntry,
    CookieMode,
    CookieRule,
    UserAgentTag,
)


class TestConfigEntry:
    """Tests for ConfigEntry validation."""

    def test_legacy_keys(self):
        """Test on-disk key names map onto the model fields."""
        # Given/When: An entry using the legacy keys
        entry = ConfigEntry.model_validate(
            {
                "name": "wsj",
                "domain": "WSJ.com ",
                "block_regex": [r"\.tinypass\.com/"],
                "useragent": "googlebot",
                "random_ip": True,
            }
        )

        # Then: Fields populated and domain normalized
        assert entry.domain == "wsj.com"
        assert entry.block_patterns == (r"\.tinypass\.com/",)
        assert entry.user_agent is UserAgentTag.GOOGLEBOT
        assert entry.random_ip is True
        assert entry.domains == ("wsj.com",)

    def test_python_field_names(self):
        """Test the Python field names are accepted too."""
        entry = ConfigEntry(
            name="hz",
            domain="haaretz.com",
            block_patterns=("a",),
            user_agent_custom="Custom/1.0",
        )

        assert entry.block_patterns == ("a",)
        assert entry.user_agent_spec == "Custom/1.0"

    def test_single_string_pattern(self):
        """Test a bare string pattern becomes a one-element tuple."""
        entry = ConfigEntry.model_validate(
            {"name": "x", "domain": "x.com", "block_regex": r"\.poool\.fr/"}
        )

        assert entry.block_patterns == (r"\.poool\.fr/",)

    def test_group_normalized(self):
        """Test group members are lowercased and deduplicated in order."""
        entry = ConfigEntry.model_validate(
            {"name": "g", "group": ["B.com", "a.com", "b.com", " "]}
        )

        assert entry.group == ("b.com", "a.com")
        assert entry.domains == ("b.com", "a.com")

    def test_custom_user_agent_wins(self):
        """Test a literal user agent takes precedence over a bot tag."""
        entry = ConfigEntry.model_validate(
            {"name": "x", "domain": "x.com", "useragent": "bingbot", "useragent_custom": "UA/2"}
        )

        assert entry.user_agent_spec == "UA/2"
        assert entry.has_header_features is True

    def test_no_header_features(self):
        """Test an entry with only block patterns has no header features."""
        entry = ConfigEntry.model_validate({"name": "x", "domain": "x.com", "block_regex": "a"})

        assert entry.has_header_features is False

    def test_cookie_rule_derivation(self):
        """Test cookie flags produce the matching rule."""
        allow = ConfigEntry(name="a", domain="a.com", allow_cookies=True)
        select = ConfigEntry.model_validate(
            {"name": "s", "domain": "s.com", "remove_cookies_select_drop": "trk"}
        )
        plain = ConfigEntry(name="p", domain="p.com")

        assert allow.cookie_rule() == CookieRule(mode=CookieMode.ALLOW)
        assert select.cookie_rule() == CookieRule(select_drop=("trk",))
        assert plain.cookie_rule() is None

    def test_comment_entry(self):
        """Test a domain starting with the sentinel marks a comment."""
        entry = ConfigEntry(name="# Spain", domain="###_es")

        assert entry.is_comment is True

    def test_group_with_sentinel_label_is_not_a_comment(self):
        """Test a group entry is indexed even when its label starts with the sentinel."""
        entry = ConfigEntry(name="grp", domain="###_grp", group=("a.com",))

        assert entry.is_comment is False
        assert entry.domains == ("a.com",)

    def test_domain_or_group_required(self):
        """Test an entry without domain and group is rejected."""
        with pytest.raises(ValidationError, match="needs a domain or a group"):
            ConfigEntry(name="empty")

    def test_camel_case_keys(self):
        """Test the camelCase key names map onto the model fields."""
        # Given/When: An entry using camelCase keys
        entry = ConfigEntry.model_validate(
            {
                "name": "x",
                "domain": "a.com",
                "blockPatterns": [r"\.tinypass\.com/"],
                "userAgentOverride": "googlebot",
                "randomizedOriginAddress": True,
            }
        )

        # Then: Header features present
        assert entry.block_patterns == (r"\.tinypass\.com/",)
        assert entry.user_agent is UserAgentTag.GOOGLEBOT
        assert entry.random_ip is True
        assert entry.has_header_features is True

    @pytest.mark.parametrize("key", ["useragent", "userAgentOverride"])
    def test_literal_user_agent_in_tag_field(self, key):
        """Test a non-tag string in the tag field becomes a literal user agent."""
        entry = ConfigEntry.model_validate(
            {"name": "x", "domain": "a.com", key: "MyBot/1.0", "block_regex": "a"}
        )

        assert entry.user_agent is None
        assert entry.user_agent_custom == "MyBot/1.0"
        assert entry.user_agent_spec == "MyBot/1.0"
        assert entry.block_patterns == ("a",)

    def test_tag_matching_ignores_case(self):
        """Test bot tags are matched case-insensitively."""
        entry = ConfigEntry.model_validate({"name": "x", "domain": "a.com", "useragent": "BingBot"})

        assert entry.user_agent is UserAgentTag.BINGBOT

    def test_explicit_literal_wins_over_unknown_tag(self):
        """Test an explicit literal is kept when the tag field holds another string."""
        entry = ConfigEntry.model_validate(
            {"name": "x", "domain": "a.com", "useragent": "yandexbot", "useragent_custom": "UA/3"}
        )

        assert entry.user_agent is None
        assert entry.user_agent_spec == "UA/3"

    def test_non_string_user_agent_dropped(self):
        """Test a malformed user agent override is dropped, not the entry."""
        entry = ConfigEntry.model_validate(
            {"name": "x", "domain": "a.com", "useragent": {"desktop": "x"}, "referer": "r"}
        )

        assert entry.user_agent_spec is None
        assert entry.referer == "r"

    def test_entries_are_immutable(self):
        """Test entries cannot be modified after load."""
        entry = ConfigEntry(name="x", domain="x.com")

        with pytest.raises(ValidationError):
            entry.referer = "https://google.com/"


class TestCookieRule:
    """Tests for CookieRule.merged_into."""

    def test_mode_rule_replaces(self):
        """Test a rule with a mode replaces the existing rule."""
        existing = CookieRule(select_hold=("a",))
        incoming = CookieRule(mode=CookieMode.ALLOW)

        assert incoming.merged_into(existing) == incoming

    def test_selective_rule_is_layered(self):
        """Test selective lists are layered over the existing rule."""
        existing = CookieRule(mode=CookieMode.REMOVE, select_hold=("keep",))
        incoming = CookieRule(select_drop=("drop",))

        merged = incoming.merged_into(existing)

        assert merged == CookieRule(
            mode=CookieMode.REMOVE, select_hold=("keep",), select_drop=("drop",)
        )

    def test_no_existing_rule(self):
        """Test merging into nothing returns the rule itself."""
        rule = CookieRule(select_drop=("x",))

        assert rule.merged_into(None) is rule


class TestChunkManifest:
    """Tests for ChunkManifest parsing."""

    def test_bare_mapping_is_wrapped(self):
        """Test the legacy partition mapping is accepted."""
        manifest = ChunkManifest.model_validate(
            {
                "india": {"file": "chunks/india.js", "domains": ["Example.in", "thehindu.com"]},
                "full_catalog": "sites.js",
            }
        )

        assert list(manifest.partitions) == ["india"]
        assert manifest.partitions["india"].locator == "chunks/india.js"
        assert manifest.partitions["india"].domains == ("example.in", "thehindu.com")
        assert manifest.full_catalog == "sites.js"

    def test_missing_locator_rejected(self):
        """Test a partition needs a locator."""
        with pytest.raises(ValidationError):
            ChunkManifest.model_validate({"partitions": {"india": {"domains": ["a.in"]}}})
