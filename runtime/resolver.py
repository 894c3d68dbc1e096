"""Screening resolver.

Builds the checker list for a call or SMS, sorts it by priority (stable, so
assembly order breaks ties) and returns the first verdict produced.  Nothing
evaluated later can override an earlier verdict; when no checker fires the
result is an unattributed default allow.
"""

from __future__ import annotations

import logging
import re
import threading
import uuid
from collections.abc import Callable, Sequence
from datetime import datetime

from contracts.audit import AuditEntry, AuditEvent, AuditLogger
from contracts.checker import Checker
from contracts.providers import AppUsage, CallHistory, ContactDirectory, PermissionGate
from contracts.rules import PatternRule, RuleCategory, RuleScope, RuleStore
from contracts.settings import DirectoryConfig, Settings
from contracts.verdict import DEFAULT_VERDICT, Verdict, VerificationStatus
from runtime.checkers.builtin import (
    ContactChecker,
    EmergencyChecker,
    IdentityVerificationChecker,
    QuietHoursChecker,
    RecentForegroundAppChecker,
    RecentlyDialedChecker,
    RepeatedContactChecker,
)
from runtime.checkers.pattern import ContentRuleChecker, NumberRuleChecker
from runtime.providers import SettingsPermissionGate, StaticContactDirectory
from runtime.quick_extract import extract_quick_value

logger = logging.getLogger(__name__)

SkipHandler = Callable[[Checker, Exception], None]


def resolve(checkers: Sequence[Checker], on_skip: SkipHandler | None = None) -> Verdict:
    """Evaluate *checkers* highest priority first and return the first verdict.

    A checker that raises is skipped; *on_skip* is told about it.
    """
    ordered = sorted(checkers, key=lambda c: c.priority(), reverse=True)
    for checker in ordered:
        try:
            verdict = checker.evaluate()
        except re.error as exc:
            logger.warning("skipping %s: invalid pattern: %s", type(checker).__name__, exc)
            if on_skip is not None:
                on_skip(checker, exc)
            continue
        except Exception as exc:
            logger.exception("skipping %s: evaluation failed", type(checker).__name__)
            if on_skip is not None:
                on_skip(checker, exc)
            continue
        if verdict is not None:
            return verdict
    return DEFAULT_VERDICT


class ScreeningEngine:
    """Classifies inbound calls and SMS as allowed or blocked.

    *contacts* and *permissions* default to the ``directory`` and
    ``permissions`` sections of the settings snapshot taken for each
    evaluation.
    """

    def __init__(
        self,
        settings: Callable[[], Settings],
        rules: RuleStore,
        history: CallHistory,
        app_usage: AppUsage,
        *,
        contacts: ContactDirectory | None = None,
        permissions: PermissionGate | None = None,
        audit: AuditLogger | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._settings = settings
        self._rules = rules
        self._contacts = contacts
        self._history = history
        self._app_usage = app_usage
        self._permissions = permissions
        self._audit = audit
        self._clock = clock
        self._lock = threading.Lock()
        self._directory: tuple[DirectoryConfig, StaticContactDirectory] | None = None

    # ── checker assembly ────────────────────────────────────────────

    def call_checkers(
        self,
        settings: Settings,
        number: str,
        emergency: bool = False,
        verification: VerificationStatus | None = None,
    ) -> list[Checker]:
        contacts = self._contacts_for(settings)
        permissions = self._permissions_for(settings)
        checkers: list[Checker] = [
            EmergencyChecker(emergency),
            IdentityVerificationChecker(settings, verification),
            ContactChecker(settings, number, contacts, permissions),
            RepeatedContactChecker(settings, number, self._history, permissions),
            RecentlyDialedChecker(settings, number, self._history, permissions),
            RecentForegroundAppChecker(settings, self._app_usage),
            QuietHoursChecker(settings, self._clock()),
        ]
        for rule in self._active_rules(RuleCategory.NUMBER, RuleScope.CALL):
            checkers.append(NumberRuleChecker(number, rule))
        return checkers

    def sms_checkers(self, settings: Settings, number: str, body: str) -> list[Checker]:
        checkers: list[Checker] = [
            ContactChecker(
                settings, number, self._contacts_for(settings), self._permissions_for(settings)
            ),
            QuietHoursChecker(settings, self._clock()),
        ]
        for rule in self._active_rules(RuleCategory.NUMBER, RuleScope.SMS):
            checkers.append(NumberRuleChecker(number, rule))
        # Content rules are SMS-only whatever their scope bits say.
        for rule in self._active_rules(RuleCategory.CONTENT):
            checkers.append(ContentRuleChecker(number, body, rule))
        return checkers

    def _contacts_for(self, settings: Settings) -> ContactDirectory:
        if self._contacts is not None:
            return self._contacts
        with self._lock:
            if self._directory is None or self._directory[0] != settings.directory:
                self._directory = (
                    settings.directory,
                    StaticContactDirectory.from_settings(settings),
                )
            return self._directory[1]

    def _permissions_for(self, settings: Settings) -> PermissionGate:
        if self._permissions is not None:
            return self._permissions
        return SettingsPermissionGate(settings)

    def _active_rules(
        self, category: RuleCategory, scope: RuleScope | None = None
    ) -> list[PatternRule]:
        try:
            return self._rules.list_active_rules(category, scope)
        except Exception:
            logger.exception("could not load %s rules; evaluating without them", category.value)
            return []

    # ── public API ──────────────────────────────────────────────────

    def evaluate_call(
        self,
        number: str,
        emergency: bool = False,
        verification: VerificationStatus | None = None,
        *,
        request_id: str | None = None,
    ) -> Verdict:
        return self._screen(
            AuditEvent.CALL_SCREENED,
            request_id or str(uuid.uuid4()),
            number,
            lambda settings: self.call_checkers(settings, number, emergency, verification),
        )

    def evaluate_sms(self, number: str, body: str, *, request_id: str | None = None) -> Verdict:
        return self._screen(
            AuditEvent.SMS_SCREENED,
            request_id or str(uuid.uuid4()),
            number,
            lambda settings: self.sms_checkers(settings, number, body),
        )

    def extract_quick_value(
        self, body: str, *, request_id: str | None = None
    ) -> tuple[PatternRule, str] | None:
        rules = self._active_rules(RuleCategory.QUICK_COPY, RuleScope.SMS)
        result = extract_quick_value(body, rules)
        if result is not None:
            rule, _ = result
            self._write_audit(
                AuditEntry(
                    request_id=request_id or str(uuid.uuid4()),
                    event=AuditEvent.QUICK_EXTRACT,
                    reason=str(rule.id),
                    detail={"rule_id": rule.id},
                )
            )
        return result

    def _screen(
        self,
        event: AuditEvent,
        request_id: str,
        number: str,
        assemble: Callable[[Settings], list[Checker]],
    ) -> Verdict:
        try:
            settings = self._settings()
        except Exception:
            logger.exception("settings unavailable; %s %s gets the default verdict", event.value, number)
            verdict = DEFAULT_VERDICT
        else:
            verdict = resolve(assemble(settings), self._skip_handler(request_id, number))
        self._log_verdict(event, request_id, number, verdict)
        return verdict

    # ── audit ───────────────────────────────────────────────────────

    def _write_audit(self, entry: AuditEntry) -> None:
        if self._audit is None:
            return
        try:
            self._audit.log(entry)
        except Exception:
            logger.exception("audit write failed for %s %s", entry.event.value, entry.request_id)

    def _log_verdict(
        self, event: AuditEvent, request_id: str, number: str, verdict: Verdict
    ) -> None:
        logger.info(
            "%s %s -> %s (%s)", event.value, number, verdict.result_code.value, verdict.reason()
        )
        self._write_audit(
            AuditEntry(
                request_id=request_id,
                event=event,
                number=number,
                blocks=verdict.blocks,
                result_code=verdict.result_code.value,
                reason=verdict.reason(),
            )
        )

    def _skip_handler(self, request_id: str, number: str) -> SkipHandler | None:
        if self._audit is None:
            return None

        def on_skip(checker: Checker, exc: Exception) -> None:
            detail: dict[str, object] = {"checker": type(checker).__name__, "error": str(exc)}
            rule = getattr(checker, "rule", None)
            if isinstance(rule, PatternRule):
                detail["rule_id"] = rule.id
            self._write_audit(
                AuditEntry(
                    request_id=request_id,
                    event=AuditEvent.RULE_SKIPPED,
                    number=number,
                    detail=detail,
                )
            )

        return on_skip


def create_engine(settings_path: str, audit: AuditLogger | None = None) -> ScreeningEngine:
    """Create an engine wired to the local stores named in the settings file."""
    from runtime.providers import InMemoryAppUsage, InMemoryCallHistory
    from runtime.rule_store import SqliteRuleStore
    from runtime.settings_loader import FileSettingsSource

    source = FileSettingsSource(settings_path)
    settings = source()
    return ScreeningEngine(
        settings=source,
        rules=SqliteRuleStore(settings.storage.rules_db),
        history=InMemoryCallHistory(),
        app_usage=InMemoryAppUsage(),
        audit=audit,
    )
