"""Unit tests for the screening resolver."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Sequence
from datetime import datetime, time
from pathlib import Path

import pytest

from contracts.audit import AuditEntry, AuditEvent
from contracts.checker import MAX_PRIORITY, Checker
from contracts.providers import Contact
from contracts.rules import PatternRule, RuleCategory, RuleScope, RuleStore
from contracts.settings import (
    ContactsConfig,
    DirectoryConfig,
    DirectoryEntry,
    PermissionsConfig,
    QuietHoursConfig,
    RepeatedConfig,
    Settings,
    VerificationConfig,
)
from contracts.verdict import (
    DEFAULT_VERDICT,
    ContactAttribution,
    ResultCode,
    RuleAttribution,
    Verdict,
    VerificationStatus,
)
from runtime.audit.logger import JsonlAuditLogger
from runtime.providers import (
    Channel,
    Direction,
    InMemoryAppUsage,
    InMemoryCallHistory,
    StaticContactDirectory,
)
from runtime.resolver import ScreeningEngine, resolve

NOW = datetime(2026, 3, 14, 12, 0)
STRANGER = "+1 555 010 0100"
FRIEND = "+1 555 010 0199"


# ── helpers ─────────────────────────────────────────────────────────


class _ListRuleStore(RuleStore):
    def __init__(self, rules: dict[RuleCategory, Sequence[PatternRule]]) -> None:
        self._rules = rules

    def list_active_rules(
        self, category: RuleCategory, scope: RuleScope | None = None
    ) -> list[PatternRule]:
        rules = list(self._rules.get(category, ()))
        if scope is None:
            return rules
        return [r for r in rules if r.applies_to & scope]

    def find_rule(self, category: RuleCategory, rule_id: int) -> PatternRule | None:
        return next((r for r in self._rules.get(category, ()) if r.id == rule_id), None)


def _engine(
    settings: Settings | Callable[[], Settings] | None = None,
    *,
    number_rules: Sequence[PatternRule] = (),
    content_rules: Sequence[PatternRule] = (),
    quick_rules: Sequence[PatternRule] = (),
    history: InMemoryCallHistory | None = None,
    audit: JsonlAuditLogger | None = None,
) -> ScreeningEngine:
    if settings is None:
        settings = Settings()
    source = settings if callable(settings) else (lambda: settings)
    store = _ListRuleStore({
        RuleCategory.NUMBER: number_rules,
        RuleCategory.CONTENT: content_rules,
        RuleCategory.QUICK_COPY: quick_rules,
    })
    return ScreeningEngine(
        settings=source,
        rules=store,
        history=history or InMemoryCallHistory(clock=lambda: NOW),
        app_usage=InMemoryAppUsage(clock=lambda: NOW),
        contacts=StaticContactDirectory([Contact(name="Alice", number=FRIEND)]),
        audit=audit,
        clock=lambda: NOW,
    )


class _Fixed(Checker):
    def __init__(self, priority: int, verdict: Verdict | None) -> None:
        self._priority = priority
        self._verdict = verdict
        self.calls = 0

    def priority(self) -> int:
        return self._priority

    def evaluate(self) -> Verdict | None:
        self.calls += 1
        return self._verdict


class _Broken(Checker):
    def priority(self) -> int:
        return 100

    def evaluate(self) -> Verdict | None:
        raise RuntimeError("collaborator unavailable")


ALLOW = Verdict(blocks=False, result_code=ResultCode.ALLOWED_BY_REPEATED)
BLOCK = Verdict(blocks=True, result_code=ResultCode.BLOCKED_BY_NON_CONTACT)


# ── resolve() ───────────────────────────────────────────────────────


class TestResolve:
    def test_highest_priority_wins_and_short_circuits(self) -> None:
        low = _Fixed(1, ALLOW)
        high = _Fixed(5, BLOCK)
        assert resolve([low, high]) == BLOCK
        assert high.calls == 1
        assert low.calls == 0

    def test_ties_keep_assembly_order(self) -> None:
        assert resolve([_Fixed(3, ALLOW), _Fixed(3, BLOCK)]) == ALLOW
        assert resolve([_Fixed(3, BLOCK), _Fixed(3, ALLOW)]) == BLOCK

    def test_abstaining_checkers_fall_through(self) -> None:
        assert resolve([_Fixed(9, None), _Fixed(1, BLOCK)]) == BLOCK

    def test_failing_checker_is_skipped(self) -> None:
        skipped: list[Checker] = []
        broken = _Broken()
        verdict = resolve([broken, _Fixed(1, BLOCK)], on_skip=lambda c, exc: skipped.append(c))
        assert verdict == BLOCK
        assert skipped == [broken]

    def test_empty_list_returns_default(self) -> None:
        verdict = resolve([])
        assert verdict.blocks is False
        assert verdict.result_code == ResultCode.ALLOWED_BY_DEFAULT

    def test_all_failing_returns_default(self) -> None:
        assert resolve([_Broken(), _Broken()]).result_code == ResultCode.ALLOWED_BY_DEFAULT


# ── default fallback ────────────────────────────────────────────────


class TestDefaultFallback:
    def test_call_default_allow(self) -> None:
        verdict = _engine().evaluate_call(STRANGER)
        assert verdict.blocks is False
        assert verdict.result_code == ResultCode.ALLOWED_BY_DEFAULT
        assert verdict.attribution is None

    def test_sms_default_allow(self) -> None:
        verdict = _engine().evaluate_sms(STRANGER, "hello")
        assert verdict.blocks is False
        assert verdict.result_code == ResultCode.ALLOWED_BY_DEFAULT


# ── call screening ──────────────────────────────────────────────────


class TestEvaluateCall:
    def test_emergency_overrides_everything(self) -> None:
        block_all = PatternRule(id=1, priority=MAX_PRIORITY, pattern=".*")
        settings = Settings(
            contacts=ContactsConfig(enabled=True, exclusive=True),
            verification=VerificationConfig(enabled=True, exclusive=True),
        )
        engine = _engine(settings, number_rules=[block_all])
        verdict = engine.evaluate_call(STRANGER, True, VerificationStatus.FAILED)
        assert verdict.blocks is False
        assert verdict.result_code == ResultCode.ALLOWED_BY_EMERGENCY

    def test_failed_verification_non_exclusive_is_default_allow(self) -> None:
        settings = Settings(verification=VerificationConfig(enabled=True, exclusive=False))
        verdict = _engine(settings).evaluate_call(STRANGER, False, VerificationStatus.FAILED)
        assert verdict.blocks is False
        assert verdict.result_code == ResultCode.ALLOWED_BY_DEFAULT

    def test_failed_verification_exclusive_blocks(self) -> None:
        settings = Settings(verification=VerificationConfig(enabled=True, exclusive=True))
        verdict = _engine(settings).evaluate_call(STRANGER, False, VerificationStatus.FAILED)
        assert verdict.blocks is True
        assert verdict.result_code == ResultCode.BLOCKED_BY_VERIFICATION

    def test_exclusive_verification_outranks_whitelist_rule(self) -> None:
        settings = Settings(verification=VerificationConfig(enabled=True, exclusive=True))
        allow_rule = PatternRule(id=1, priority=1000, pattern=".*", is_blacklist=False)
        verdict = _engine(settings, number_rules=[allow_rule]).evaluate_call(
            STRANGER, False, VerificationStatus.FAILED
        )
        assert verdict.result_code == ResultCode.BLOCKED_BY_VERIFICATION

    def test_higher_priority_rule_wins(self) -> None:
        rules = [
            PatternRule(id=1, priority=1, pattern=".*", is_blacklist=False),
            PatternRule(id=2, priority=5, pattern=r"\+1555.*", is_blacklist=True),
        ]
        verdict = _engine(number_rules=rules).evaluate_call(STRANGER)
        assert verdict.blocks is True
        assert verdict.attribution == RuleAttribution(rule_id=2)

    def test_equal_priority_rules_use_storage_order(self) -> None:
        rules = [
            PatternRule(id=1, priority=3, pattern=".*", is_blacklist=False),
            PatternRule(id=2, priority=3, pattern=".*", is_blacklist=True),
        ]
        verdict = _engine(number_rules=rules).evaluate_call(STRANGER)
        assert verdict.attribution == RuleAttribution(rule_id=1)

    def test_rule_above_contact_priority_wins(self) -> None:
        settings = Settings(contacts=ContactsConfig(enabled=True))
        rule = PatternRule(id=3, priority=20, pattern=".*")
        verdict = _engine(settings, number_rules=[rule]).evaluate_call(FRIEND)
        assert verdict.result_code == ResultCode.BLOCKED_BY_NUMBER

    def test_contact_above_low_priority_rule_wins(self) -> None:
        settings = Settings(contacts=ContactsConfig(enabled=True))
        rule = PatternRule(id=3, priority=5, pattern=".*")
        verdict = _engine(settings, number_rules=[rule]).evaluate_call(FRIEND)
        assert verdict.result_code == ResultCode.ALLOWED_BY_CONTACT
        assert verdict.attribution == ContactAttribution(name="Alice")

    def test_builtin_wins_tie_with_rule(self) -> None:
        settings = Settings(contacts=ContactsConfig(enabled=True))
        rule = PatternRule(id=3, priority=10, pattern=".*")
        verdict = _engine(settings, number_rules=[rule]).evaluate_call(FRIEND)
        assert verdict.result_code == ResultCode.ALLOWED_BY_CONTACT

    def test_sms_only_rules_ignored_for_calls(self) -> None:
        rule = PatternRule(id=1, pattern=".*", applies_to=int(RuleScope.SMS))
        assert _engine(number_rules=[rule]).evaluate_call(STRANGER).result_code == ResultCode.ALLOWED_BY_DEFAULT

    def test_content_rules_ignored_for_calls(self) -> None:
        rule = PatternRule(id=1, priority=100, pattern=".*")
        verdict = _engine(content_rules=[rule]).evaluate_call(STRANGER)
        assert verdict.result_code == ResultCode.ALLOWED_BY_DEFAULT

    def test_quiet_hours_uses_engine_clock(self) -> None:
        settings = Settings(
            quiet_hours=QuietHoursConfig(enabled=True, start=time(11, 0), end=time(13, 0))
        )
        rule = PatternRule(id=1, priority=1, pattern=".*")
        verdict = _engine(settings, number_rules=[rule]).evaluate_call(STRANGER)
        assert verdict.result_code == ResultCode.ALLOWED_BY_QUIET_HOURS

    def test_malformed_rule_skipped(self, tmp_path: Path) -> None:
        audit = JsonlAuditLogger(tmp_path / "audit.jsonl")
        rules = [
            PatternRule(id=1, priority=100, pattern="(["),
            PatternRule(id=2, priority=1, pattern=".*"),
        ]
        verdict = _engine(number_rules=rules, audit=audit).evaluate_call(STRANGER)
        assert verdict.blocks is True
        assert verdict.attribution == RuleAttribution(rule_id=2)

        skipped = audit.query_by_event(AuditEvent.RULE_SKIPPED)
        assert len(skipped) == 1
        assert skipped[0].detail["rule_id"] == 1


# ── SMS screening ───────────────────────────────────────────────────


class TestEvaluateSms:
    def test_win_cash_now_blocked(self) -> None:
        rule = PatternRule(id=11, pattern=".*CASH.*", is_blacklist=True)
        verdict = _engine(content_rules=[rule]).evaluate_sms(STRANGER, "WIN CASH NOW")
        assert verdict.blocks is True
        assert verdict.result_code == ResultCode.BLOCKED_BY_CONTENT
        assert verdict.attribution == RuleAttribution(rule_id=11)

    def test_sender_constraint_must_hold(self) -> None:
        rule = PatternRule(id=11, pattern=".*CASH.*", pattern_extra="999.*")
        verdict = _engine(content_rules=[rule]).evaluate_sms(STRANGER, "WIN CASH NOW")
        assert verdict.result_code == ResultCode.ALLOWED_BY_DEFAULT

    def test_number_rules_apply_before_lower_content_rules(self) -> None:
        number_rule = PatternRule(id=1, priority=5, pattern=".*", is_blacklist=False)
        content_rule = PatternRule(id=2, priority=1, pattern=".*CASH.*")
        verdict = _engine(number_rules=[number_rule], content_rules=[content_rule]).evaluate_sms(
            STRANGER, "WIN CASH NOW"
        )
        assert verdict.result_code == ResultCode.ALLOWED_BY_NUMBER

    def test_number_rule_wins_tie_with_content_rule(self) -> None:
        number_rule = PatternRule(id=1, priority=2, pattern=".*", is_blacklist=False)
        content_rule = PatternRule(id=2, priority=2, pattern=".*CASH.*")
        verdict = _engine(number_rules=[number_rule], content_rules=[content_rule]).evaluate_sms(
            STRANGER, "WIN CASH NOW"
        )
        assert verdict.result_code == ResultCode.ALLOWED_BY_NUMBER

    def test_call_only_rules_ignored_for_sms(self) -> None:
        rule = PatternRule(id=1, pattern=".*", applies_to=int(RuleScope.CALL))
        assert _engine(number_rules=[rule]).evaluate_sms(STRANGER, "hi").result_code == ResultCode.ALLOWED_BY_DEFAULT

    def test_exclusive_contacts_block_unknown_sender(self) -> None:
        settings = Settings(contacts=ContactsConfig(enabled=True, exclusive=True))
        verdict = _engine(settings).evaluate_sms(STRANGER, "hello")
        assert verdict.result_code == ResultCode.BLOCKED_BY_NON_CONTACT

    def test_history_checkers_not_used_for_sms(self) -> None:
        history = InMemoryCallHistory(clock=lambda: NOW)
        history.record(STRANGER, Direction.INCOMING, Channel.CALL, at=NOW)
        settings = Settings(repeated=RepeatedConfig(enabled=True, times=1))
        engine = _engine(settings, history=history)
        assert engine.evaluate_call(STRANGER).result_code == ResultCode.ALLOWED_BY_REPEATED
        assert engine.evaluate_sms(STRANGER, "hi").result_code == ResultCode.ALLOWED_BY_DEFAULT


# ── settings snapshot, audit, quick extraction ──────────────────────


class TestEngineWiring:
    def test_settings_read_fresh_each_evaluation(self) -> None:
        state = {"settings": Settings()}
        engine = _engine(lambda: state["settings"])
        assert engine.evaluate_call(FRIEND).result_code == ResultCode.ALLOWED_BY_DEFAULT

        state["settings"] = Settings(contacts=ContactsConfig(enabled=True))
        assert engine.evaluate_call(FRIEND).result_code == ResultCode.ALLOWED_BY_CONTACT

    def test_decisions_are_audited(self, tmp_path: Path) -> None:
        audit = JsonlAuditLogger(tmp_path / "audit.jsonl")
        rule = PatternRule(id=4, pattern=".*CASH.*")
        engine = _engine(content_rules=[rule], audit=audit)

        engine.evaluate_call(STRANGER, request_id="call-1")
        engine.evaluate_sms(STRANGER, "WIN CASH NOW", request_id="sms-1")

        call = audit.query_by_request("call-1")
        assert len(call) == 1
        assert call[0].event == AuditEvent.CALL_SCREENED
        assert call[0].blocks is False
        assert call[0].result_code == "allowed.default"

        sms = audit.query_by_request("sms-1")
        assert sms[0].event == AuditEvent.SMS_SCREENED
        assert sms[0].blocks is True
        assert sms[0].reason == "4"

    def test_quick_extract_uses_sms_quick_copy_rules(self) -> None:
        rules = [
            PatternRule(id=1, pattern=r"(\d+)", applies_to=int(RuleScope.CALL)),
            PatternRule(id=2, pattern=r"code (\d+)", applies_to=int(RuleScope.SMS)),
        ]
        result = _engine(quick_rules=rules).extract_quick_value("your code 8080")
        assert result is not None
        rule, value = result
        assert rule.id == 2
        assert value == "8080"

    def test_quick_extract_no_match(self) -> None:
        assert _engine().extract_quick_value("nothing") is None

    @pytest.mark.parametrize("emergency", [False, True])
    def test_every_call_gets_a_verdict(self, emergency: bool) -> None:
        rules = [PatternRule(id=1, pattern="(")]
        verdict = _engine(number_rules=rules).evaluate_call("", emergency)
        assert isinstance(verdict, Verdict)


# ── snapshot-backed collaborators ───────────────────────────────────


def _snapshot_engine(source: Callable[[], Settings], rules: RuleStore | None = None) -> ScreeningEngine:
    return ScreeningEngine(
        settings=source,
        rules=rules or _ListRuleStore({}),
        history=InMemoryCallHistory(clock=lambda: NOW),
        app_usage=InMemoryAppUsage(clock=lambda: NOW),
        clock=lambda: NOW,
    )


def _with_contacts(*entries: DirectoryEntry, **overrides: object) -> Settings:
    return Settings(
        contacts=ContactsConfig(enabled=True),
        directory=DirectoryConfig(contacts=list(entries)),
        **overrides,
    )


class TestSnapshotCollaborators:
    def test_directory_follows_settings_edits(self) -> None:
        state = {"settings": _with_contacts()}
        engine = _snapshot_engine(lambda: state["settings"])
        assert engine.evaluate_call("5550001").result_code == ResultCode.ALLOWED_BY_DEFAULT

        state["settings"] = _with_contacts(DirectoryEntry(name="Bob", number="555 0001"))
        verdict = engine.evaluate_call("5550001")
        assert verdict.result_code == ResultCode.ALLOWED_BY_CONTACT
        assert verdict.attribution == ContactAttribution(name="Bob")

    def test_one_snapshot_per_evaluation(self) -> None:
        granted = _with_contacts(DirectoryEntry(name="Bob", number="5550001"))
        revoked = _with_contacts(permissions=PermissionsConfig(contacts=False))
        snapshots = iter([granted, revoked])
        engine = _snapshot_engine(lambda: next(snapshots))

        assert engine.evaluate_call("5550001").result_code == ResultCode.ALLOWED_BY_CONTACT
        assert engine.evaluate_call("5550001").result_code == ResultCode.ALLOWED_BY_DEFAULT


# ── failing collaborators ───────────────────────────────────────────


class _LockedRuleStore(RuleStore):
    def list_active_rules(
        self, category: RuleCategory, scope: RuleScope | None = None
    ) -> list[PatternRule]:
        raise sqlite3.OperationalError("database is locked")

    def find_rule(self, category: RuleCategory, rule_id: int) -> PatternRule | None:
        raise sqlite3.OperationalError("database is locked")


class _FailingAudit(JsonlAuditLogger):
    def log(self, entry: AuditEntry) -> None:
        raise OSError("disk full")


class TestFailingCollaborators:
    def test_unreadable_rules_fall_back_to_builtins(self) -> None:
        settings = _with_contacts(DirectoryEntry(name="Bob", number="5550001"))
        engine = _snapshot_engine(lambda: settings, rules=_LockedRuleStore())

        assert engine.evaluate_call("123").result_code == ResultCode.ALLOWED_BY_DEFAULT
        assert engine.evaluate_call("5550001").result_code == ResultCode.ALLOWED_BY_CONTACT
        assert engine.evaluate_sms("123", "WIN CASH NOW").result_code == ResultCode.ALLOWED_BY_DEFAULT
        assert engine.extract_quick_value("code 1234") is None

    def test_unavailable_settings_give_default(self) -> None:
        def source() -> Settings:
            raise FileNotFoundError("callscreen.yaml")

        engine = _snapshot_engine(source)
        assert engine.evaluate_call("123") == DEFAULT_VERDICT
        assert engine.evaluate_sms("123", "hi") == DEFAULT_VERDICT

    def test_audit_failures_do_not_reach_caller(self, tmp_path: Path) -> None:
        audit = _FailingAudit(tmp_path / "audit.jsonl")
        rules = [PatternRule(id=1, priority=100, pattern="(["), PatternRule(id=2, pattern=".*")]
        engine = _engine(number_rules=rules, quick_rules=[PatternRule(id=3, pattern=r"\d+")], audit=audit)

        verdict = engine.evaluate_call(STRANGER)
        assert verdict.attribution == RuleAttribution(rule_id=2)
        assert engine.evaluate_sms(STRANGER, "hi").result_code == ResultCode.ALLOWED_BY_DEFAULT
        assert engine.extract_quick_value("code 42") is not None
