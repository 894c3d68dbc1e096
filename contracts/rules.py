"""Pattern rule contracts.

Pattern rules are user-authored regular-expression filters.  The engine only
reads them; storage lives behind the RuleStore interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum, IntFlag

from pydantic import BaseModel, ConfigDict


class RegexFlag(IntFlag):
    NONE = 0
    IGNORE_CASE = 1
    MULTILINE = 2
    DOT_MATCHES_ALL = 4
    LITERAL = 8


class RuleScope(IntFlag):
    """Which kind of inbound event a rule applies to."""

    CALL = 1
    SMS = 2
    ALL = CALL | SMS


class RuleCategory(str, Enum):
    NUMBER = "number"
    CONTENT = "content"
    QUICK_COPY = "quick_copy"


class PatternRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int = 0
    priority: int = 1
    pattern: str
    pattern_flags: int = 0           # RegexFlag bits
    pattern_extra: str = ""         # content rules: constrains the sender number
    pattern_extra_flags: int = 0
    is_blacklist: bool = True
    description: str = ""
    applies_to: int = int(RuleScope.ALL)  # RuleScope bits

    def pattern_str(self) -> str:
        """Human-readable pattern text, including the sender constraint."""
        if self.pattern_extra:
            return f"{self.pattern} @ {self.pattern_extra}"
        return self.pattern


class RuleStore(ABC):
    """Read access to stored pattern rules."""

    @abstractmethod
    def list_active_rules(
        self, category: RuleCategory, scope: RuleScope | None = None
    ) -> list[PatternRule]:
        """Return rules of *category* in storage order.

        When *scope* is given only rules applying to it are returned.
        """
        ...

    @abstractmethod
    def find_rule(self, category: RuleCategory, rule_id: int) -> PatternRule | None:
        """Return a rule by id, or None if it no longer exists."""
        ...
