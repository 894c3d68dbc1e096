"""Unit tests for verdict reason rendering."""

from __future__ import annotations

from pathlib import Path

import pytest

from contracts.rules import PatternRule, RuleCategory
from contracts.verdict import (
    AppAttribution,
    ContactAttribution,
    ResultCode,
    RuleAttribution,
    Verdict,
    VerificationAttribution,
    VerificationStatus,
)
from runtime.reason import ReasonRenderer
from runtime.rule_store import SqliteRuleStore


@pytest.fixture()
def store(tmp_path: Path) -> SqliteRuleStore:
    return SqliteRuleStore(tmp_path / "rules.db")


def _rule_verdict(code: ResultCode, rule_id: int) -> Verdict:
    return Verdict(
        blocks=code.value.startswith("blocked"),
        result_code=code,
        attribution=RuleAttribution(rule_id=rule_id),
    )


class TestRuleReasons:
    def test_blacklist_uses_description(self, store: SqliteRuleStore) -> None:
        rule = store.add_rule(
            RuleCategory.NUMBER, PatternRule(pattern="1800.*", description="Telemarketers")
        )
        text = ReasonRenderer(store).render(_rule_verdict(ResultCode.BLOCKED_BY_NUMBER, rule.id))
        assert text == "Blacklist: Telemarketers"

    def test_whitelist_falls_back_to_pattern(self, store: SqliteRuleStore) -> None:
        rule = store.add_rule(RuleCategory.NUMBER, PatternRule(pattern="555.*", is_blacklist=False))
        text = ReasonRenderer(store).render(_rule_verdict(ResultCode.ALLOWED_BY_NUMBER, rule.id))
        assert text == "Whitelist: 555.*"

    def test_content_rule_shows_sender_pattern(self, store: SqliteRuleStore) -> None:
        rule = store.add_rule(
            RuleCategory.CONTENT, PatternRule(pattern=".*CASH.*", pattern_extra="555.*")
        )
        text = ReasonRenderer(store).render(_rule_verdict(ResultCode.BLOCKED_BY_CONTENT, rule.id))
        assert text == "Content: .*CASH.* @ 555.*"

    def test_rule_looked_up_in_matching_category(self, store: SqliteRuleStore) -> None:
        store.add_rule(RuleCategory.NUMBER, PatternRule(pattern="1", description="number one"))
        text = ReasonRenderer(store).render(_rule_verdict(ResultCode.BLOCKED_BY_CONTENT, 1))
        assert text == "Content: Deleted rule"

    def test_deleted_rule_placeholder(self, store: SqliteRuleStore) -> None:
        rule = store.add_rule(RuleCategory.NUMBER, PatternRule(pattern="1", description="gone"))
        store.delete_rule(RuleCategory.NUMBER, rule.id)
        text = ReasonRenderer(store).render(_rule_verdict(ResultCode.BLOCKED_BY_NUMBER, rule.id))
        assert text == "Blacklist: Deleted rule"


class TestBuiltinReasons:
    def test_contact_name(self, store: SqliteRuleStore) -> None:
        v = Verdict(
            blocks=False,
            result_code=ResultCode.ALLOWED_BY_CONTACT,
            attribution=ContactAttribution(name="Alice"),
        )
        assert ReasonRenderer(store).render(v) == "Contact: Alice"

    @pytest.mark.parametrize(
        "status,suffix",
        [
            (VerificationStatus.PASSED, "valid"),
            (VerificationStatus.NOT_VERIFIED, "unverified"),
            (VerificationStatus.FAILED, "spoofed"),
        ],
    )
    def test_verification_status(
        self, store: SqliteRuleStore, status: VerificationStatus, suffix: str
    ) -> None:
        v = Verdict(
            blocks=False,
            result_code=ResultCode.ALLOWED_BY_VERIFICATION,
            attribution=VerificationAttribution(status=status),
        )
        assert ReasonRenderer(store).render(v) == f"Caller verification {suffix}"

    def test_recent_app(self, store: SqliteRuleStore) -> None:
        v = Verdict(
            blocks=False,
            result_code=ResultCode.ALLOWED_BY_RECENT_APP,
            attribution=AppAttribution(app_id="com.example.taxi"),
        )
        assert ReasonRenderer(store).render(v) == "Recent app: com.example.taxi"

    @pytest.mark.parametrize(
        "code,text",
        [
            (ResultCode.ALLOWED_BY_EMERGENCY, "Emergency call"),
            (ResultCode.BLOCKED_BY_NON_CONTACT, "Non-contact"),
            (ResultCode.ALLOWED_BY_REPEATED, "Repeated call"),
            (ResultCode.ALLOWED_BY_DIALED, "Dialed"),
            (ResultCode.ALLOWED_BY_QUIET_HOURS, "Quiet hours"),
            (ResultCode.ALLOWED_BY_DEFAULT, "Passed by default"),
        ],
    )
    def test_plain_codes(self, store: SqliteRuleStore, code: ResultCode, text: str) -> None:
        v = Verdict(blocks=code == ResultCode.BLOCKED_BY_NON_CONTACT, result_code=code)
        assert ReasonRenderer(store).render(v) == text

    def test_string_overrides(self, store: SqliteRuleStore) -> None:
        renderer = ReasonRenderer(store, {"default": "Durchgelassen", "contact": "Kontakt"})
        assert renderer.render(Verdict(blocks=False, result_code=ResultCode.ALLOWED_BY_DEFAULT)) == "Durchgelassen"
        v = Verdict(
            blocks=False,
            result_code=ResultCode.ALLOWED_BY_CONTACT,
            attribution=ContactAttribution(name="Bob"),
        )
        assert renderer.render(v) == "Kontakt: Bob"
