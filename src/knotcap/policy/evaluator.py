"""Policy evaluator — hot path, matches captured requests against compiled rules."""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from urllib.parse import quote

from knotcap.policy.models import MatchKind, MatchRule, Policy, Strategy

logger = logging.getLogger(__name__)

# Characters left unescaped by a URL query component, minus "+"
_QUERY_SAFE = "!$&'()*,-./:;=?@_~"


def percent_encode(text: str) -> str:
    return quote(text, safe=_QUERY_SAFE)


@dataclass(frozen=True)
class RequestContext:
    """The parts of a live request a rule can look at."""

    host: str
    uri: str = ""
    client_identifier: str = ""

    @property
    def full_uri(self) -> str:
        """Host plus path when ``uri`` is relative, else ``uri`` itself."""
        if self.uri.startswith("/"):
            return self.host + self.uri
        return self.uri


class MatchSource(enum.Enum):
    DENYLIST = "denylist"
    POLICY = "policy"
    UNMATCHED = "unmatched"


@dataclass(frozen=True)
class Verdict:
    """Result of evaluating a request: which rule matched, if any."""

    matched_rule: MatchRule | None
    source: MatchSource

    @property
    def matched(self) -> bool:
        return self.matched_rule is not None

    @property
    def strategy(self) -> Strategy | None:
        if self.matched_rule is None:
            return None
        return self.matched_rule.strategy


UNMATCHED = Verdict(matched_rule=None, source=MatchSource.UNMATCHED)


@dataclass
class _CompiledRule:
    """A rule with its pattern lowered and, for URL-REGEX, compiled."""

    rule: MatchRule
    pattern: str
    encoded_pattern: str = ""
    regex: re.Pattern[str] | None = None
    invalid: bool = False


class PolicyEvaluator:
    """Evaluates requests against a compiled policy. First-match-wins.

    When the policy's default strategy is DIRECT and the default deny-list is
    enabled, the deny-list is consulted before the policy's own rules.
    """

    def __init__(self, policy: Policy) -> None:
        self.policy = policy
        self._denylist: list[_CompiledRule] = []
        if policy.default_strategy is Strategy.DIRECT and policy.denylist_enabled:
            self._denylist = [_compile_rule(rule) for rule in policy.denylist]
        self._rules = [_compile_rule(rule) for rule in policy.rules]

    def evaluate(self, ctx: RequestContext) -> Verdict:
        if self._denylist:
            rule = _first_match(self._denylist, ctx)
            if rule is not None:
                logger.debug("Deny-list hit for %s%s", ctx.host, ctx.uri)
                return Verdict(matched_rule=rule, source=MatchSource.DENYLIST)

        rule = _first_match(self._rules, ctx)
        if rule is not None:
            return Verdict(matched_rule=rule, source=MatchSource.POLICY)
        return UNMATCHED


def matches(ctx: RequestContext, policy: Policy) -> bool:
    """Whether any deny-list entry or policy rule matches the request."""
    return PolicyEvaluator(policy).evaluate(ctx).matched


def _compile_rule(rule: MatchRule) -> _CompiledRule:
    pattern = rule.pattern.lower()
    compiled = _CompiledRule(rule=rule, pattern=pattern)

    if rule.match_kind is MatchKind.USER_AGENT:
        compiled.encoded_pattern = percent_encode(rule.pattern).lower()
    elif rule.match_kind is MatchKind.URL_REGEX:
        try:
            compiled.regex = re.compile(rule.pattern, re.IGNORECASE)
        except re.error:
            logger.warning("Invalid URL-REGEX pattern: %r", rule.pattern)
            compiled.invalid = True

    return compiled


def _first_match(compiled: list[_CompiledRule], ctx: RequestContext) -> MatchRule | None:
    host = ctx.host.lower()
    full_uri = ctx.full_uri
    client = ctx.client_identifier.lower()

    for cr in compiled:
        kind = cr.rule.match_kind

        if kind is MatchKind.DOMAIN:
            if host == cr.pattern:
                return cr.rule

        elif kind is MatchKind.DOMAIN_KEYWORD:
            if cr.pattern in host or cr.pattern in full_uri.lower():
                return cr.rule

        elif kind is MatchKind.DOMAIN_SUFFIX:
            if host.endswith(cr.pattern):
                return cr.rule

        elif kind is MatchKind.URL_REGEX:
            # An unusable pattern ends the scan of this list
            if cr.invalid or cr.regex is None:
                return None
            candidates = (ctx.host, full_uri, percent_encode(full_uri))
            if any(cr.regex.fullmatch(c) for c in candidates):
                return cr.rule

        elif kind is MatchKind.USER_AGENT:
            if cr.pattern in client or cr.encoded_pattern in client:
                return cr.rule

        # IP-CIDR is reserved and never matches

    return None
