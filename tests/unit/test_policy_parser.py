"""Tests for parsing and serializing policy documents."""

from __future__ import annotations

from pathlib import Path

from knotcap.policy.models import (
    GeneralSetting,
    LineKind,
    MatchKind,
    MatchRule,
    Opaque,
    SectionMarker,
    Strategy,
)
from knotcap.policy.parser import (
    load_default_denylist,
    load_policy,
    parse_general_line,
    parse_lines,
    parse_policy,
    parse_rule_line,
    serialize_policy,
    split_comment,
)


def test_split_comment_keeps_scheme():
    assert split_comment("URL-REGEX, https://a.com/x, DIRECT //note") == (
        "URL-REGEX, https://a.com/x, DIRECT ",
        "note",
    )
    assert split_comment("name = x") == ("name = x", "")


def test_parse_general_line():
    line = parse_general_line("Name = Test // first")
    assert line == GeneralSetting(key="name", value="Test", comment="first")


def test_general_line_rejects_unknown_key():
    assert parse_general_line("colour = blue") is None
    assert parse_general_line("no separator") is None
    assert parse_general_line("   ") is None


def test_parse_rule_line():
    rule = parse_rule_line("domain-suffix, b.com, copy, extra //why")
    assert rule is not None
    assert rule.match_kind is MatchKind.DOMAIN_SUFFIX
    assert rule.pattern == "b.com"
    assert rule.strategy is Strategy.COPY
    assert rule.extra == "extra"
    assert rule.comment == "why"


def test_rule_line_needs_three_fields():
    assert parse_rule_line("DOMAIN, a.com") is None
    assert parse_rule_line("DOMAIN, , REJECT") is None
    assert parse_rule_line("PORT, 80, REJECT") is None
    assert parse_rule_line("DOMAIN, a.com, MAYBE") is None


def test_section_markers_are_case_insensitive():
    lines = parse_lines("[GENERAL]\n[rule]\n[Host]\n")
    assert [type(line) for line in lines] == [SectionMarker] * 3
    assert lines[0].render() == "[GENERAL]"


def test_lines_outside_sections_are_opaque():
    lines = parse_lines("DOMAIN, a.com, REJECT\n[Rule]\nDOMAIN, a.com, REJECT\n")
    assert isinstance(lines[0], Opaque)
    assert isinstance(lines[2], MatchRule)


def test_messy_document_counts(messy_policy_path: Path):
    policy = load_policy(messy_policy_path)
    assert len(policy.lines) == 19
    assert policy.count(LineKind.SECTION) == 3
    assert policy.count(LineKind.GENERAL) == 5
    assert policy.count(LineKind.RULE) == 4
    assert policy.count(LineKind.OPAQUE) == 7
    assert policy.count(LineKind.HOST) == 0


def test_messy_document_settings(messy_policy_path: Path):
    policy = load_policy(messy_policy_path)
    assert policy.name == "Messy"
    assert policy.default_strategy is Strategy.DIRECT
    assert policy.denylist_enabled is False
    assert policy.author == "tester"
    assert policy.created_at == "2024-01-02 03:04:05"
    assert policy.note is None
    assert [r.pattern for r in policy.rules] == [
        "a.com",
        "b.com",
        r"https://c\.com/.*",
        "MyApp",
    ]


def test_round_trip_preserves_semantics(messy_policy_path: Path):
    first = load_policy(messy_policy_path)
    second = parse_policy(serialize_policy(first))

    assert second.name == first.name
    assert second.default_strategy is first.default_strategy
    assert second.denylist_enabled == first.denylist_enabled
    assert second.author == first.author
    assert second.created_at == first.created_at
    for kind in LineKind:
        assert second.count(kind) == first.count(kind)
    assert second.rules == first.rules


def test_round_trip_keeps_malformed_lines_verbatim(messy_policy_path: Path):
    text = serialize_policy(load_policy(messy_policy_path))
    assert "DOMAIN, z.com, MAYBE\n" in text
    assert "example.com = 1.2.3.4\n" in text
    assert "bogus-key = 1\n" in text


def test_serialize_renders_normalized_lines():
    policy = parse_policy("[General]\nname=Test//c\n[Rule]\nDOMAIN,a.com,REJECT,x//y\n")
    assert serialize_policy(policy) == (
        "[General]\nname = Test // c\n[Rule]\nDOMAIN, a.com, REJECT, x //y\n"
    )


def test_empty_document():
    policy = parse_policy("")
    assert policy.lines == []
    assert serialize_policy(policy) == ""
    assert policy.default_strategy is Strategy.COPY
    assert policy.denylist_enabled is True
    assert policy.created_at == ""


def test_default_denylist_is_loaded_once():
    first = load_default_denylist()
    assert first is load_default_denylist()
    assert first
    assert all(rule.strategy is Strategy.DIRECT for rule in first)
    assert any(rule.match_kind is MatchKind.URL_REGEX for rule in first)
