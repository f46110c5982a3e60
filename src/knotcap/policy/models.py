"""Policy data models — line variants of a policy document and the Policy itself."""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class Strategy(enum.Enum):
    """How a matched request is handled."""

    NONE = "-"
    DIRECT = "DIRECT"
    REJECT = "REJECT"
    COPY = "COPY"
    DEFAULT = "DEFAULT"


class MatchKind(enum.Enum):
    """What part of a request a rule pattern is tested against."""

    DOMAIN = "DOMAIN"
    DOMAIN_KEYWORD = "DOMAIN-KEYWORD"
    DOMAIN_SUFFIX = "DOMAIN-SUFFIX"
    IP_CIDR = "IP-CIDR"
    USER_AGENT = "USER-AGENT"
    URL_REGEX = "URL-REGEX"


class Section(enum.Enum):
    """Document sections; OTHER covers lines before the first marker."""

    OTHER = "Other"
    GENERAL = "General"
    RULE = "Rule"
    HOST = "Host"


class LineKind(enum.Enum):
    SECTION = "section"
    GENERAL = "general"
    RULE = "rule"
    HOST = "host"
    OPAQUE = "opaque"


class RuleLine:
    """One line of a policy document."""

    kind: LineKind = LineKind.OPAQUE
    section: Section = Section.OTHER

    def render(self) -> str:
        raise NotImplementedError


@dataclass
class SectionMarker(RuleLine):
    """A ``[General]``, ``[Rule]`` or ``[Host]`` header."""

    target: Section
    raw: str = ""

    kind = LineKind.SECTION

    def render(self) -> str:
        return self.raw or f"[{self.target.value}]"


@dataclass
class GeneralSetting(RuleLine):
    key: str
    value: str = ""
    comment: str = ""

    kind = LineKind.GENERAL
    section = Section.GENERAL

    def render(self) -> str:
        if self.comment:
            return f"{self.key} = {self.value} // {self.comment}"
        return f"{self.key} = {self.value}"


@dataclass
class MatchRule(RuleLine):
    match_kind: MatchKind
    pattern: str
    strategy: Strategy
    extra: str = ""
    comment: str = ""

    kind = LineKind.RULE
    section = Section.RULE

    def render(self) -> str:
        text = f"{self.match_kind.value}, {self.pattern}, {self.strategy.value}"
        if self.extra:
            text += f", {self.extra}"
        if self.comment:
            text += f" //{self.comment}"
        return text


@dataclass
class HostAlias(RuleLine):
    """Host to address alias. Not parsed yet: ``[Host]`` lines stay opaque."""

    raw: str

    kind = LineKind.HOST
    section = Section.HOST

    def render(self) -> str:
        return self.raw


@dataclass
class Opaque(RuleLine):
    """Any line that is not understood, kept verbatim."""

    raw: str

    def render(self) -> str:
        return self.raw


KEY_NAME = "name"
KEY_DEFAULT_STRATEGY = "default-strategy"
KEY_DENYLIST_ENABLED = "default-direct-enable"
KEY_CREATED_AT = "createtime"
KEY_AUTHOR = "author"
KEY_NOTE = "note"

GENERAL_KEYS = frozenset(
    {
        KEY_NAME,
        KEY_DEFAULT_STRATEGY,
        KEY_DENYLIST_ENABLED,
        KEY_CREATED_AT,
        KEY_AUTHOR,
        KEY_NOTE,
    }
)

_INSERTABLE = {
    LineKind.GENERAL: Section.GENERAL,
    LineKind.RULE: Section.RULE,
    LineKind.HOST: Section.HOST,
}


def now_string() -> str:
    return time.strftime("%Y-%m-%d %H:%M:%S")


class Policy:
    """An ordered policy document plus the settings mirrored from ``[General]``.

    Every settings property writes through to its ``[General]`` line, and
    assigning ``text`` re-derives all settings from the parsed lines, so the
    two views never diverge.
    """

    def __init__(
        self,
        lines: Iterable[RuleLine] = (),
        denylist_loader: Callable[[], tuple[MatchRule, ...]] | None = None,
    ) -> None:
        self.lines: list[RuleLine] = list(lines)
        self._denylist_loader = denylist_loader
        self._denylist: tuple[MatchRule, ...] | None = None
        self._sync_from_lines()

    # -- denormalized settings -------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        self.add_general(KEY_NAME, value)
        self._name = value

    @property
    def default_strategy(self) -> Strategy:
        return self._default_strategy

    @default_strategy.setter
    def default_strategy(self, value: Strategy) -> None:
        self.add_general(KEY_DEFAULT_STRATEGY, value.value)
        self._default_strategy = value

    @property
    def denylist_enabled(self) -> bool:
        return self._denylist_enabled

    @denylist_enabled.setter
    def denylist_enabled(self, value: bool) -> None:
        self.add_general(KEY_DENYLIST_ENABLED, "true" if value else "false")
        self._denylist_enabled = value

    @property
    def created_at(self) -> str:
        return self._created_at

    @created_at.setter
    def created_at(self, value: str) -> None:
        self.add_general(KEY_CREATED_AT, value)
        self._created_at = value

    @property
    def author(self) -> str | None:
        return self._author

    @author.setter
    def author(self, value: str | None) -> None:
        self.add_general(KEY_AUTHOR, value or "")
        self._author = value

    @property
    def note(self) -> str | None:
        return self._note

    @note.setter
    def note(self, value: str | None) -> None:
        self.add_general(KEY_NOTE, value or "")
        self._note = value

    # -- document ----------------------------------------------------------

    @property
    def text(self) -> str:
        from knotcap.policy.parser import serialize_lines

        return serialize_lines(self.lines)

    @text.setter
    def text(self, value: str) -> None:
        from knotcap.policy.parser import parse_lines

        self.lines = parse_lines(value)
        self._sync_from_lines()

    @property
    def rules(self) -> list[MatchRule]:
        """Match rules in document order."""
        return [line for line in self.lines if isinstance(line, MatchRule)]

    @property
    def rule_count(self) -> int:
        return len(self.rules)

    @property
    def denylist(self) -> tuple[MatchRule, ...]:
        """The bundled default deny-list, loaded on first access."""
        if self._denylist is None:
            loader = self._denylist_loader
            if loader is None:
                from knotcap.policy.parser import load_default_denylist

                loader = load_default_denylist
            self._denylist = loader()
        return self._denylist

    def count(self, kind: LineKind) -> int:
        return sum(1 for line in self.lines if line.kind is kind)

    # -- editing -------------------------------------------------------------

    def add_general(self, key: str, value: str) -> None:
        self.add(GeneralSetting(key=key, value=value))

    def add(self, line: RuleLine) -> bool:
        """Insert a line right after its section marker.

        The marker is appended to the document when missing. A general
        setting whose key already exists in ``[General]`` overwrites the
        existing value in place instead of inserting. Settings with an
        unknown key are refused.
        """
        section = _INSERTABLE.get(line.kind)
        if section is None:
            logger.warning("Cannot add a %s line to a policy", line.kind.value)
            return False
        if isinstance(line, GeneralSetting) and line.key not in GENERAL_KEYS:
            logger.warning("Unknown general setting %r", line.key)
            return False

        position = self._marker_index(section)
        if position is None:
            self.lines.append(SectionMarker(target=section))
            position = len(self.lines) - 1

        if not isinstance(line, GeneralSetting):
            self.lines.insert(position + 1, line)
            return True

        found = False
        for existing in self._section_lines(position):
            if isinstance(existing, GeneralSetting) and existing.key == line.key:
                existing.value = line.value
                found = True
        if not found:
            self.lines.insert(position + 1, line)
        self._sync_from_lines()
        return True

    def move(self, source: int, destination: int) -> bool:
        if not (0 <= source < len(self.lines) and 0 <= destination < len(self.lines)):
            logger.warning("Move %d -> %d out of range", source, destination)
            return False
        line = self.lines.pop(source)
        self.lines.insert(destination, line)
        self._sync_from_lines()
        return True

    def delete(self, kind: LineKind, index: int) -> bool:
        if not self._addressable(kind, index):
            return False
        del self.lines[index]
        self._sync_from_lines()
        return True

    def replace(self, kind: LineKind, line: RuleLine, index: int) -> bool:
        if line.kind is not kind or not self._addressable(kind, index):
            return False
        if isinstance(line, GeneralSetting) and line.key not in GENERAL_KEYS:
            logger.warning("Unknown general setting %r", line.key)
            return False
        self.lines[index] = line
        self._sync_from_lines()
        return True

    # -- internals -------------------------------------------------------------

    def _addressable(self, kind: LineKind, index: int) -> bool:
        if not 0 < index < len(self.lines):
            logger.warning("Line index %d out of range", index)
            return False
        if self.lines[index].kind is not kind:
            logger.warning(
                "Line %d is %s, not %s",
                index,
                self.lines[index].kind.value,
                kind.value,
            )
            return False
        return True

    def _marker_index(self, section: Section) -> int | None:
        for index, line in enumerate(self.lines):
            if isinstance(line, SectionMarker) and line.target is section:
                return index
        return None

    def _section_lines(self, marker: int) -> Iterable[RuleLine]:
        for line in self.lines[marker + 1 :]:
            if isinstance(line, SectionMarker):
                return
            yield line

    def _sync_from_lines(self) -> None:
        self._name = ""
        self._default_strategy = Strategy.COPY
        self._denylist_enabled = True
        self._created_at = ""
        self._author: str | None = None
        self._note: str | None = None

        # Only settings under a [General] marker count, as on a re-parse
        section = Section.OTHER
        for line in self.lines:
            if isinstance(line, SectionMarker):
                section = line.target
                continue
            if section is not Section.GENERAL or not isinstance(line, GeneralSetting):
                continue
            if line.key == KEY_NAME:
                self._name = line.value
            elif line.key == KEY_DEFAULT_STRATEGY:
                try:
                    self._default_strategy = Strategy(line.value.upper())
                except ValueError:
                    logger.debug("Unknown default strategy %r, using COPY", line.value)
                    self._default_strategy = Strategy.COPY
                    line.value = Strategy.COPY.value
            elif line.key == KEY_DENYLIST_ENABLED:
                self._denylist_enabled = line.value.lower() == "true"
            elif line.key == KEY_CREATED_AT:
                self._created_at = line.value
            elif line.key == KEY_AUTHOR:
                self._author = line.value
            elif line.key == KEY_NOTE:
                self._note = line.value
