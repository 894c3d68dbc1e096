"""Human-readable rendering of a verdict's reason.

Pure presentation: maps the result code and attribution to display text.
Rule-backed verdicts look the rule up to show its description (or pattern),
falling back to a placeholder when the rule has since been deleted.
"""

from __future__ import annotations

from collections.abc import Mapping

from contracts.rules import RuleCategory, RuleStore
from contracts.verdict import (
    AppAttribution,
    ContactAttribution,
    ResultCode,
    RuleAttribution,
    Verdict,
    VerificationAttribution,
    VerificationStatus,
)

DEFAULT_STRINGS: dict[str, str] = {
    "contact": "Contact",
    "non_contact": "Non-contact",
    "verification": "Caller verification",
    "verification.passed": "valid",
    "verification.not_verified": "unverified",
    "verification.failed": "spoofed",
    "emergency": "Emergency call",
    "recent_app": "Recent app",
    "repeated": "Repeated call",
    "dialed": "Dialed",
    "quiet_hours": "Quiet hours",
    "whitelist": "Whitelist",
    "blacklist": "Blacklist",
    "content": "Content",
    "default": "Passed by default",
    "deleted_rule": "Deleted rule",
}

_PLAIN: dict[ResultCode, str] = {
    ResultCode.BLOCKED_BY_NON_CONTACT: "non_contact",
    ResultCode.ALLOWED_BY_EMERGENCY: "emergency",
    ResultCode.ALLOWED_BY_REPEATED: "repeated",
    ResultCode.ALLOWED_BY_DIALED: "dialed",
    ResultCode.ALLOWED_BY_QUIET_HOURS: "quiet_hours",
}

_RULE_LABELS: dict[ResultCode, tuple[str, RuleCategory]] = {
    ResultCode.ALLOWED_BY_NUMBER: ("whitelist", RuleCategory.NUMBER),
    ResultCode.BLOCKED_BY_NUMBER: ("blacklist", RuleCategory.NUMBER),
    ResultCode.ALLOWED_BY_CONTENT: ("content", RuleCategory.CONTENT),
    ResultCode.BLOCKED_BY_CONTENT: ("content", RuleCategory.CONTENT),
}


class ReasonRenderer:
    """Render verdicts using a string table and a rule store for lookups."""

    def __init__(self, rules: RuleStore, strings: Mapping[str, str] | None = None) -> None:
        self._rules = rules
        self._strings = {**DEFAULT_STRINGS, **(strings or {})}

    def _s(self, key: str) -> str:
        return self._strings[key]

    def rule_text(self, category: RuleCategory, rule_id: int) -> str:
        rule = self._rules.find_rule(category, rule_id)
        if rule is None:
            return self._s("deleted_rule")
        return rule.description or rule.pattern_str()

    def render(self, verdict: Verdict) -> str:
        code = verdict.result_code
        a = verdict.attribution

        if code in _PLAIN:
            return self._s(_PLAIN[code])

        if code == ResultCode.ALLOWED_BY_CONTACT:
            if isinstance(a, ContactAttribution):
                return f"{self._s('contact')}: {a.name}"
            return self._s("contact")

        if code in (ResultCode.ALLOWED_BY_VERIFICATION, ResultCode.BLOCKED_BY_VERIFICATION):
            label = self._s("verification")
            if isinstance(a, VerificationAttribution):
                return f"{label} {self._status_text(a.status)}"
            return label

        if code == ResultCode.ALLOWED_BY_RECENT_APP:
            if isinstance(a, AppAttribution):
                return f"{self._s('recent_app')}: {a.app_id}"
            return self._s("recent_app")

        if code in _RULE_LABELS:
            label, category = _RULE_LABELS[code]
            if isinstance(a, RuleAttribution):
                return f"{self._s(label)}: {self.rule_text(category, a.rule_id)}"
            return f"{self._s(label)}: {self._s('deleted_rule')}"

        return self._s("default")

    def _status_text(self, status: VerificationStatus) -> str:
        return self._s(f"verification.{status.value}")
