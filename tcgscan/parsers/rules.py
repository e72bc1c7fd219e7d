"""
Declarative rule tables.

A RuleTable is an ordered list of (pattern, result) pairs plus a matching
policy. Tables are data; the policy decides which of several matching
rules wins, so the policy can be tested without any card vocabulary.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class MatchPolicy(str, Enum):
    """How a table picks among matching rules."""

    # First matching rule in table order (tables list most specific first)
    FIRST = "first"
    # Matching rule with the longest pattern; ties go to table order
    LONGEST = "longest"


@dataclass(frozen=True, slots=True)
class Rule(Generic[T]):
    """
    A single pattern and the result it produces.

    Literal patterns are matched as substrings; regex patterns with re.search.
    """

    pattern: str
    result: T
    regex: bool = False

    def matches(self, text: str) -> bool:
        if self.regex:
            return _compiled(self.pattern).search(text) is not None
        return self.pattern in text


_PATTERN_CACHE: dict[str, re.Pattern[str]] = {}


def _compiled(pattern: str) -> re.Pattern[str]:
    compiled = _PATTERN_CACHE.get(pattern)
    if compiled is None:
        compiled = re.compile(pattern)
        _PATTERN_CACHE[pattern] = compiled
    return compiled


@dataclass(frozen=True)
class RuleTable(Generic[T]):
    """
    Versioned, ordered rule table.

    Attributes:
        name: Table identifier, used in logs and tests
        version: Bumped whenever the table contents change
        rules: Rules in priority order
        policy: How to choose among several matching rules
    """

    name: str
    version: int
    rules: tuple[Rule[T], ...]
    policy: MatchPolicy = MatchPolicy.FIRST
    _by_pattern: dict[str, Rule[T]] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        for rule in self.rules:
            self._by_pattern.setdefault(rule.pattern, rule)

    def matching(self, text: str) -> list[Rule[T]]:
        """All rules that match, in table order."""
        return [rule for rule in self.rules if rule.matches(text)]

    def winner(self, text: str) -> Rule[T] | None:
        """The winning rule under the table's policy, or None."""
        hits = self.matching(text)
        if not hits:
            return None
        if self.policy == MatchPolicy.LONGEST:
            # max() keeps the first of equal-length patterns
            return max(hits, key=lambda rule: len(rule.pattern))
        return hits[0]

    def match(self, text: str) -> T | None:
        """Result of the winning rule, or None if nothing matches."""
        rule = self.winner(text)
        return rule.result if rule is not None else None

    def match_all(self, text: str) -> list[T]:
        """Results of every matching rule, in table order."""
        return [rule.result for rule in self.matching(text)]

    def lookup(self, pattern: str) -> T | None:
        """Exact lookup by pattern (first rule with that pattern)."""
        rule = self._by_pattern.get(pattern)
        return rule.result if rule is not None else None

    def __len__(self) -> int:
        return len(self.rules)


def literal_table(
    name: str,
    version: int,
    pairs: list[tuple[str, T]],
    policy: MatchPolicy = MatchPolicy.FIRST,
) -> RuleTable[T]:
    """Build a table of literal substring rules from (pattern, result) pairs."""
    return RuleTable(
        name=name,
        version=version,
        rules=tuple(Rule(pattern, result) for pattern, result in pairs),
        policy=policy,
    )
