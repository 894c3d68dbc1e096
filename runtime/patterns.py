"""Regex helpers shared by the pattern-rule checkers and quick extraction."""

from __future__ import annotations

import functools
import re

from contracts.rules import RegexFlag

_NUMBER_FORMATTING_RE = re.compile(r"[\s\-().]")


def normalize_number(raw: str) -> str:
    """Strip formatting characters from a phone number.

    ``"+1 (555) 010-9999"`` becomes ``"+15550109999"``.
    """
    return _NUMBER_FORMATTING_RE.sub("", raw)


def to_re_flags(flags: int) -> int:
    """Translate RegexFlag bits into ``re`` module flags."""
    f = RegexFlag(flags)
    out = 0
    if f & RegexFlag.IGNORE_CASE:
        out |= re.IGNORECASE
    if f & RegexFlag.MULTILINE:
        out |= re.MULTILINE
    if f & RegexFlag.DOT_MATCHES_ALL:
        out |= re.DOTALL
    return out


@functools.lru_cache(maxsize=512)
def compile_pattern(pattern: str, flags: int = 0) -> re.Pattern[str]:
    """Compile a rule pattern with its RegexFlag bits.

    Raises ``re.error`` for malformed patterns.
    """
    if RegexFlag(flags) & RegexFlag.LITERAL:
        pattern = re.escape(pattern)
    return re.compile(pattern, to_re_flags(flags))


def full_match(pattern: str, flags: int, subject: str) -> bool:
    return compile_pattern(pattern, flags).fullmatch(subject) is not None
