"""Pattern-rule checkers (number and SMS content).

Both use full-match semantics: the whole normalized number, or the whole
message body, must satisfy the pattern.  A malformed pattern raises
``re.error`` from evaluate(); the resolver skips such checkers.
"""

from __future__ import annotations

import logging

from contracts.checker import Checker
from contracts.rules import PatternRule
from contracts.verdict import ResultCode, RuleAttribution, Verdict
from runtime.patterns import full_match, normalize_number

logger = logging.getLogger(__name__)


class NumberRuleChecker(Checker):
    def __init__(self, number: str, rule: PatternRule) -> None:
        self._number = number
        self.rule = rule

    def priority(self) -> int:
        return self.rule.priority

    def evaluate(self) -> Verdict | None:
        rule = self.rule
        if not full_match(rule.pattern, rule.pattern_flags, normalize_number(self._number)):
            return None

        block = rule.is_blacklist
        return Verdict(
            blocks=block,
            result_code=ResultCode.BLOCKED_BY_NUMBER if block else ResultCode.ALLOWED_BY_NUMBER,
            attribution=RuleAttribution(rule_id=rule.id),
        )


class ContentRuleChecker(Checker):
    """Matches the SMS body, and the sender when the rule names one."""

    def __init__(self, number: str, body: str, rule: PatternRule) -> None:
        self._number = number
        self._body = body
        self.rule = rule

    def priority(self) -> int:
        return self.rule.priority

    def evaluate(self) -> Verdict | None:
        rule = self.rule
        if not full_match(rule.pattern, rule.pattern_flags, self._body):
            return None
        if rule.pattern_extra and not full_match(
            rule.pattern_extra, rule.pattern_extra_flags, normalize_number(self._number)
        ):
            return None

        logger.debug("content rule %d matches", rule.id)
        block = rule.is_blacklist
        return Verdict(
            blocks=block,
            result_code=ResultCode.BLOCKED_BY_CONTENT if block else ResultCode.ALLOWED_BY_CONTENT,
            attribution=RuleAttribution(rule_id=rule.id),
        )
