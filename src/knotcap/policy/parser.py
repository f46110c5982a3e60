"""Parse and serialize line-oriented policy documents.

Parsing never raises: a line that does not fit its section's grammar is kept
as an ``Opaque`` line so the document survives a round trip unchanged.
"""

from __future__ import annotations

import functools
import importlib.resources
import logging
import re
from collections.abc import Iterable
from pathlib import Path

from knotcap.policy.models import (
    GENERAL_KEYS,
    GeneralSetting,
    HostAlias,
    MatchKind,
    MatchRule,
    Opaque,
    Policy,
    RuleLine,
    Section,
    SectionMarker,
    Strategy,
)

logger = logging.getLogger(__name__)

DENYLIST_PACKAGE = "knotcap.policy.presets"
DENYLIST_RESOURCE = "default_denylist.conf"

# [Host] aliasing is recognized as a section but its lines are not parsed.
HOST_ALIAS_SUPPORTED = False

_SECTION_HEADERS = (
    ("[general]", Section.GENERAL),
    ("[rule]", Section.RULE),
    ("[host]", Section.HOST),
)

# "//" starts a comment unless it is part of a scheme separator ("://")
_COMMENT_RE = re.compile(r"(?<!:)//")


def split_comment(line: str) -> tuple[str, str]:
    """Split a line into its payload and trailing ``//`` comment."""
    match = _COMMENT_RE.search(line)
    if match is None:
        return line, ""
    return line[: match.start()], line[match.end() :].strip()


def parse_section_marker(line: str) -> SectionMarker | None:
    lowered = line.strip().lower()
    for header, section in _SECTION_HEADERS:
        if lowered.startswith(header):
            return SectionMarker(target=section, raw=line)
    return None


def parse_general_line(line: str) -> GeneralSetting | None:
    """Parse ``key = value [// comment]``; unknown keys are rejected."""
    payload, comment = split_comment(line)
    if not payload.strip():
        return None
    key, sep, value = payload.partition("=")
    key = key.strip().lower()
    if not sep or key not in GENERAL_KEYS:
        return None
    return GeneralSetting(key=key, value=value.strip(), comment=comment)


def parse_rule_line(line: str) -> MatchRule | None:
    """Parse ``KIND, pattern, STRATEGY[, extra] [//comment]``."""
    payload, comment = split_comment(line)
    if not payload.strip():
        return None
    parts = payload.split(",")
    if len(parts) < 3:
        return None
    try:
        match_kind = MatchKind(parts[0].strip().upper())
        strategy = Strategy(parts[2].strip().upper())
    except ValueError:
        return None
    pattern = parts[1].strip()
    if not pattern:
        return None
    return MatchRule(
        match_kind=match_kind,
        pattern=pattern,
        strategy=strategy,
        extra=",".join(parts[3:]).strip(),
        comment=comment,
    )


def parse_host_line(line: str) -> HostAlias | None:
    if not HOST_ALIAS_SUPPORTED:
        return None
    return HostAlias(raw=line)


_LINE_PARSERS = {
    Section.GENERAL: parse_general_line,
    Section.RULE: parse_rule_line,
    Section.HOST: parse_host_line,
}


def parse_lines(text: str) -> list[RuleLine]:
    lines: list[RuleLine] = []
    section = Section.OTHER
    for number, raw in enumerate(text.splitlines(), start=1):
        marker = parse_section_marker(raw)
        if marker is not None:
            lines.append(marker)
            section = marker.target
            continue

        parser = _LINE_PARSERS.get(section)
        parsed = parser(raw) if parser is not None else None
        if parsed is None:
            if raw.strip() and section is not Section.OTHER:
                logger.debug("Line %d kept as opaque %s line: %r", number, section.value, raw)
            lines.append(Opaque(raw=raw))
        else:
            lines.append(parsed)
    return lines


def serialize_lines(lines: Iterable[RuleLine]) -> str:
    rendered = [line.render() for line in lines]
    if not rendered:
        return ""
    return "\n".join(rendered) + "\n"


def parse_policy(text: str) -> Policy:
    return Policy(parse_lines(text))


def serialize_policy(policy: Policy) -> str:
    return serialize_lines(policy.lines)


def load_policy(path: str | Path) -> Policy:
    """Load a policy document from a file path."""
    text = Path(path).read_text(encoding="utf-8")
    return parse_policy(text)


def load_policy_from_string(text: str) -> Policy:
    return parse_policy(text)


@functools.lru_cache(maxsize=1)
def load_default_denylist() -> tuple[MatchRule, ...]:
    """Read the bundled deny-list once per process."""
    resource = importlib.resources.files(DENYLIST_PACKAGE).joinpath(DENYLIST_RESOURCE)
    text = resource.read_text(encoding="utf-8")
    rules: list[MatchRule] = []
    for number, raw in enumerate(text.splitlines(), start=1):
        rule = parse_rule_line(raw)
        if rule is None:
            if raw.strip() and not raw.lstrip().startswith("#"):
                logger.debug("Deny-list line %d skipped: %r", number, raw)
            continue
        rules.append(rule)
    logger.debug("Loaded %d default deny-list rule(s)", len(rules))
    return tuple(rules)
