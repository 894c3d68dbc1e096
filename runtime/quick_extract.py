"""Quick extraction — pull a value such as a verification code out of an SMS.

Rules are tried in storage order with search (not full-match) semantics.
The first rule yielding a value wins:

- a pattern without capture groups (e.g. lookaround only) yields the whole
  matched span;
- a pattern with capture groups yields group 1;
- a match whose group 1 did not participate yields nothing, and the next
  rule is tried.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from contracts.rules import PatternRule
from runtime.patterns import compile_pattern

logger = logging.getLogger(__name__)


def match_value(match: re.Match[str]) -> str | None:
    """Return the extracted value for a successful match, or None."""
    if match.re.groups == 0:
        return match.group(0)
    return match.group(1)


def extract_quick_value(
    body: str, rules: Iterable[PatternRule]
) -> tuple[PatternRule, str] | None:
    """Return ``(rule, value)`` for the first rule that extracts a value."""
    for rule in rules:
        try:
            pattern = compile_pattern(rule.pattern, rule.pattern_flags)
        except re.error as exc:
            logger.warning("skipping quick-copy rule %d: invalid pattern %r: %s", rule.id, rule.pattern, exc)
            continue

        m = pattern.search(body)
        if m is None:
            continue
        value = match_value(m)
        if value is None:
            continue
        return rule, value
    return None
