"""Checker contract.

A checker is one policy predicate.  It has a priority on the single global
priority axis and an evaluate() that either produces a Verdict or abstains.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from contracts.verdict import Verdict

MAX_PRIORITY = 2**31 - 1
DEFAULT_PRIORITY = 10


class Checker(ABC):
    """Interface implemented by the fixed set of screening checkers."""

    @abstractmethod
    def priority(self) -> int:
        """Higher priorities are evaluated first."""
        ...

    @abstractmethod
    def evaluate(self) -> Verdict | None:
        """Return a verdict, or None when this checker does not apply."""
        ...
