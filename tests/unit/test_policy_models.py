"""Tests for Policy editing and its mirrored settings."""

from __future__ import annotations

from knotcap.policy.models import (
    GeneralSetting,
    LineKind,
    MatchKind,
    MatchRule,
    Opaque,
    Policy,
    Section,
    SectionMarker,
    Strategy,
)
from knotcap.policy.evaluator import RequestContext, matches
from knotcap.policy.parser import parse_policy


def _rule(pattern: str, strategy: Strategy = Strategy.REJECT) -> MatchRule:
    return MatchRule(match_kind=MatchKind.DOMAIN, pattern=pattern, strategy=strategy)


def test_setting_creates_general_section():
    policy = Policy()
    policy.name = "Fresh"
    assert policy.lines == [
        SectionMarker(target=Section.GENERAL),
        GeneralSetting(key="name", value="Fresh"),
    ]
    assert policy.text == "[General]\nname = Fresh\n"


def test_setting_overwrites_existing_key():
    policy = parse_policy("[General]\nname = Old\nauthor = me\n[Rule]\n")
    policy.name = "New"
    assert policy.count(LineKind.GENERAL) == 2
    assert policy.lines[1] == GeneralSetting(key="name", value="New")


def test_overwrite_only_inside_general_section():
    policy = parse_policy("[General]\n[Rule]\n")
    policy.lines.append(GeneralSetting(key="note", value="stray"))
    policy.note = "real"
    assert policy.lines[1] == GeneralSetting(key="note", value="real")
    assert policy.lines[-1] == GeneralSetting(key="note", value="stray")
    assert policy.note == "real"


def test_new_setting_goes_right_after_marker():
    policy = parse_policy("[General]\nname = A\n")
    policy.author = "someone"
    assert policy.lines[1] == GeneralSetting(key="author", value="someone")
    assert policy.lines[2] == GeneralSetting(key="name", value="A")


def test_strategy_setter_writes_through():
    policy = parse_policy("[General]\ndefault-strategy = COPY\n")
    policy.default_strategy = Strategy.DIRECT
    reparsed = parse_policy(policy.text)
    assert reparsed.default_strategy is Strategy.DIRECT


def test_denylist_setter_writes_through():
    policy = Policy()
    policy.denylist_enabled = False
    assert "default-direct-enable = false" in policy.text
    assert parse_policy(policy.text).denylist_enabled is False


def test_unknown_strategy_falls_back_to_copy():
    policy = parse_policy("[General]\ndefault-strategy = sideways\n")
    assert policy.default_strategy is Strategy.COPY
    assert policy.text == "[General]\ndefault-strategy = COPY\n"


def test_add_rule_inserts_after_marker():
    policy = parse_policy("[General]\n[Rule]\nDOMAIN, old.com, REJECT\n")
    assert policy.add(_rule("new.com"))
    assert [r.pattern for r in policy.rules] == ["new.com", "old.com"]


def test_add_rule_creates_rule_section():
    policy = parse_policy("[General]\nname = A\n")
    policy.add(_rule("a.com"))
    assert isinstance(policy.lines[-2], SectionMarker)
    assert policy.lines[-2].target is Section.RULE
    assert policy.lines[-1] == _rule("a.com")


def test_add_rule_does_not_dedupe():
    policy = Policy()
    policy.add(_rule("a.com"))
    policy.add(_rule("a.com"))
    assert policy.rule_count == 2


def test_add_refuses_opaque_lines():
    policy = Policy()
    assert policy.add(Opaque(raw="whatever")) is False
    assert policy.lines == []


def test_move():
    policy = parse_policy("[Rule]\nDOMAIN, a.com, REJECT\nDOMAIN, b.com, REJECT\n")
    assert policy.move(2, 1)
    assert [r.pattern for r in policy.rules] == ["b.com", "a.com"]
    assert policy.move(0, 9) is False


def test_delete_checks_index_and_kind():
    policy = parse_policy("[Rule]\nDOMAIN, a.com, REJECT\n# note\n")
    assert policy.delete(LineKind.RULE, 0) is False
    assert policy.delete(LineKind.RULE, 3) is False
    assert policy.delete(LineKind.RULE, 2) is False
    assert policy.delete(LineKind.RULE, 1)
    assert policy.rule_count == 0


def test_delete_general_resyncs_settings():
    policy = parse_policy("[General]\nname = Gone\n")
    assert policy.delete(LineKind.GENERAL, 1)
    assert policy.name == ""


def test_replace():
    policy = parse_policy("[Rule]\nDOMAIN, a.com, REJECT\n")
    assert policy.replace(LineKind.RULE, _rule("b.com", Strategy.COPY), 1)
    assert policy.rules == [_rule("b.com", Strategy.COPY)]
    assert policy.replace(LineKind.GENERAL, _rule("c.com"), 1) is False
    assert policy.replace(LineKind.RULE, _rule("c.com"), 0) is False


def test_text_setter_resyncs():
    policy = Policy()
    policy.text = "[General]\nname = Reloaded\ndefault-strategy = REJECT\n"
    assert policy.name == "Reloaded"
    assert policy.default_strategy is Strategy.REJECT


def test_denylist_loader_is_called_once():
    calls = []

    def loader():
        calls.append(1)
        return (_rule("x.com"),)

    policy = Policy(denylist_loader=loader)
    assert policy.denylist == (_rule("x.com"),)
    assert policy.denylist == (_rule("x.com"),)
    assert len(calls) == 1


def test_add_general_setting_updates_settings():
    policy = parse_policy("[General]\ndefault-strategy = COPY\n")
    assert policy.add(GeneralSetting(key="default-strategy", value="DIRECT"))
    assert policy.default_strategy is Strategy.DIRECT

    ctx = RequestContext(host="gateway.icloud.com")
    assert matches(ctx, policy)
    assert matches(ctx, policy) == matches(ctx, parse_policy(policy.text))


def test_add_new_general_setting_updates_settings():
    policy = parse_policy("[General]\nname = A\n")
    assert policy.add(GeneralSetting(key="default-direct-enable", value="false"))
    assert policy.denylist_enabled is False


def test_add_refuses_unknown_general_key():
    policy = parse_policy("[General]\nname = A\n")
    assert policy.add(GeneralSetting(key="colour", value="blue")) is False
    assert policy.text == "[General]\nname = A\n"


def test_replace_refuses_unknown_general_key():
    policy = parse_policy("[General]\nname = A\n")
    assert policy.replace(LineKind.GENERAL, GeneralSetting(key="colour"), 1) is False
    assert policy.name == "A"


def test_move_resyncs_duplicate_settings():
    policy = parse_policy("[General]\nname = A\nname = B\n")
    assert policy.name == "B"
    assert policy.move(2, 1)
    assert policy.name == "A"
    assert parse_policy(policy.text).name == "A"


def test_move_setting_out_of_general():
    policy = parse_policy("[General]\nname = A\n[Rule]\nDOMAIN, a.com, REJECT\n")
    assert policy.move(1, 3)
    assert policy.name == ""
    assert parse_policy(policy.text).name == ""
