"""Unit tests for the SQLite rule store."""

from __future__ import annotations

from pathlib import Path

import pytest

from contracts.rules import PatternRule, RegexFlag, RuleCategory, RuleScope
from runtime.rule_store import SqliteRuleStore


@pytest.fixture()
def store(tmp_path: Path) -> SqliteRuleStore:
    return SqliteRuleStore(tmp_path / "data" / "rules.db")


class TestSqliteRuleStore:
    def test_add_assigns_increasing_ids(self, store: SqliteRuleStore) -> None:
        a = store.add_rule(RuleCategory.NUMBER, PatternRule(pattern="1.*"))
        b = store.add_rule(RuleCategory.NUMBER, PatternRule(pattern="2.*"))
        assert a.id > 0
        assert b.id > a.id

    def test_list_keeps_storage_order(self, store: SqliteRuleStore) -> None:
        for p in ("c", "a", "b"):
            store.add_rule(RuleCategory.NUMBER, PatternRule(pattern=p, priority=5))
        assert [r.pattern for r in store.list_rules(RuleCategory.NUMBER)] == ["c", "a", "b"]

    def test_fields_round_trip(self, store: SqliteRuleStore) -> None:
        saved = store.add_rule(
            RuleCategory.CONTENT,
            PatternRule(
                priority=7,
                pattern=".*win.*",
                pattern_flags=int(RegexFlag.IGNORE_CASE | RegexFlag.DOT_MATCHES_ALL),
                pattern_extra="555.*",
                pattern_extra_flags=int(RegexFlag.LITERAL),
                is_blacklist=False,
                description="prize spam",
                applies_to=int(RuleScope.SMS),
            ),
        )
        loaded = store.find_rule(RuleCategory.CONTENT, saved.id)
        assert loaded == saved

    def test_scope_filter(self, store: SqliteRuleStore) -> None:
        store.add_rule(RuleCategory.NUMBER, PatternRule(pattern="call", applies_to=int(RuleScope.CALL)))
        store.add_rule(RuleCategory.NUMBER, PatternRule(pattern="sms", applies_to=int(RuleScope.SMS)))
        store.add_rule(RuleCategory.NUMBER, PatternRule(pattern="both"))

        calls = store.list_active_rules(RuleCategory.NUMBER, RuleScope.CALL)
        sms = store.list_active_rules(RuleCategory.NUMBER, RuleScope.SMS)
        assert [r.pattern for r in calls] == ["call", "both"]
        assert [r.pattern for r in sms] == ["sms", "both"]
        assert len(store.list_active_rules(RuleCategory.NUMBER)) == 3

    def test_categories_are_separate(self, store: SqliteRuleStore) -> None:
        store.add_rule(RuleCategory.QUICK_COPY, PatternRule(pattern=r"(\d+)"))
        assert store.list_rules(RuleCategory.NUMBER) == []
        assert len(store.list_rules(RuleCategory.QUICK_COPY)) == 1

    def test_delete(self, store: SqliteRuleStore) -> None:
        rule = store.add_rule(RuleCategory.NUMBER, PatternRule(pattern="x"))
        assert store.delete_rule(RuleCategory.NUMBER, rule.id) is True
        assert store.find_rule(RuleCategory.NUMBER, rule.id) is None
        assert store.delete_rule(RuleCategory.NUMBER, rule.id) is False

    def test_reopen_keeps_rules(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.db"
        SqliteRuleStore(path).add_rule(RuleCategory.NUMBER, PatternRule(pattern="x"))
        assert len(SqliteRuleStore(path).list_rules(RuleCategory.NUMBER)) == 1
