"""SQLite-backed pattern rule store.

One table per rule category.  Storage order is insertion (rowid) order,
which the resolver relies on to break priority ties.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from contracts.rules import PatternRule, RuleCategory, RuleScope, RuleStore

_TABLES: dict[RuleCategory, str] = {
    RuleCategory.NUMBER: "number_rules",
    RuleCategory.CONTENT: "content_rules",
    RuleCategory.QUICK_COPY: "quick_copy_rules",
}

_COLUMNS = (
    "id, priority, pattern, pattern_flags, pattern_extra, pattern_extra_flags, "
    "is_blacklist, description, applies_to"
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS {table} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    priority INTEGER NOT NULL DEFAULT 1,
    pattern TEXT NOT NULL,
    pattern_flags INTEGER NOT NULL DEFAULT 0,
    pattern_extra TEXT NOT NULL DEFAULT '',
    pattern_extra_flags INTEGER NOT NULL DEFAULT 0,
    is_blacklist INTEGER NOT NULL DEFAULT 1,
    description TEXT NOT NULL DEFAULT '',
    applies_to INTEGER NOT NULL DEFAULT 3
)
"""


def _row_to_rule(row: tuple) -> PatternRule:
    return PatternRule(
        id=row[0],
        priority=row[1],
        pattern=row[2],
        pattern_flags=row[3],
        pattern_extra=row[4],
        pattern_extra_flags=row[5],
        is_blacklist=bool(row[6]),
        description=row[7],
        applies_to=row[8],
    )


class SqliteRuleStore(RuleStore):
    """Rule store persisted in a local SQLite database file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            for table in _TABLES.values():
                conn.execute(_SCHEMA.format(table=table))
            conn.commit()
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._path))

    # ── reads ───────────────────────────────────────────────────────

    def list_rules(self, category: RuleCategory) -> list[PatternRule]:
        return self.list_active_rules(category)

    def list_active_rules(
        self, category: RuleCategory, scope: RuleScope | None = None
    ) -> list[PatternRule]:
        table = _TABLES[category]
        query = f"SELECT {_COLUMNS} FROM {table}"
        params: tuple = ()
        if scope is not None:
            query += " WHERE (applies_to & ?) != 0"
            params = (int(scope),)
        query += " ORDER BY id"

        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [_row_to_rule(r) for r in rows]

    def find_rule(self, category: RuleCategory, rule_id: int) -> PatternRule | None:
        table = _TABLES[category]
        conn = self._connect()
        try:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM {table} WHERE id = ?", (rule_id,)
            ).fetchone()
        finally:
            conn.close()
        return _row_to_rule(row) if row else None

    # ── writes ──────────────────────────────────────────────────────

    def add_rule(self, category: RuleCategory, rule: PatternRule) -> PatternRule:
        """Insert *rule* and return it with its assigned id."""
        table = _TABLES[category]
        conn = self._connect()
        try:
            cur = conn.execute(
                f"INSERT INTO {table} (priority, pattern, pattern_flags, pattern_extra, "
                "pattern_extra_flags, is_blacklist, description, applies_to) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    rule.priority,
                    rule.pattern,
                    int(rule.pattern_flags),
                    rule.pattern_extra,
                    int(rule.pattern_extra_flags),
                    int(rule.is_blacklist),
                    rule.description,
                    int(rule.applies_to),
                ),
            )
            conn.commit()
            rule_id = cur.lastrowid
        finally:
            conn.close()
        return rule.model_copy(update={"id": rule_id})

    def delete_rule(self, category: RuleCategory, rule_id: int) -> bool:
        table = _TABLES[category]
        conn = self._connect()
        try:
            cur = conn.execute(f"DELETE FROM {table} WHERE id = ?", (rule_id,))
            conn.commit()
            deleted = cur.rowcount > 0
        finally:
            conn.close()
        return deleted
