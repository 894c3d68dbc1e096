"""Built-in policy checkers.

Each checker reads its own section of the Settings snapshot and returns None
whenever it is disabled, lacks a permission, or is missing its input signal.
"""

from __future__ import annotations

import logging
from datetime import datetime, time

from contracts.checker import DEFAULT_PRIORITY, MAX_PRIORITY, Checker
from contracts.providers import AppUsage, CallHistory, ContactDirectory, PermissionGate
from contracts.settings import Settings
from contracts.verdict import (
    AppAttribution,
    ContactAttribution,
    ResultCode,
    Verdict,
    VerificationAttribution,
    VerificationStatus,
)

logger = logging.getLogger(__name__)

_MINUTE_MS = 60 * 1000
_DAY_MS = 24 * 60 * _MINUTE_MS


class EmergencyChecker(Checker):
    """Always lets emergency and emergency-callback calls through."""

    def __init__(self, emergency: bool) -> None:
        self._emergency = emergency

    def priority(self) -> int:
        return MAX_PRIORITY

    def evaluate(self) -> Verdict | None:
        if not self._emergency:
            return None
        return Verdict(blocks=False, result_code=ResultCode.ALLOWED_BY_EMERGENCY)


class IdentityVerificationChecker(Checker):
    """Caller-number verification.

    Exclusive mode only ever blocks (failed, or unverified when included);
    non-exclusive mode only ever allows (passed, or unverified when
    included).  A failed status in non-exclusive mode abstains.
    """

    def __init__(self, settings: Settings, status: VerificationStatus | None) -> None:
        self._settings = settings
        self._status = status

    def priority(self) -> int:
        return MAX_PRIORITY if self._settings.verification.exclusive else DEFAULT_PRIORITY

    def evaluate(self) -> Verdict | None:
        cfg = self._settings.verification
        if not cfg.enabled or not self._settings.platform.verification_supported:
            return None
        if self._status is None:
            return None

        passed = self._status == VerificationStatus.PASSED
        unverified = self._status == VerificationStatus.NOT_VERIFIED
        failed = self._status == VerificationStatus.FAILED
        logger.debug(
            "verification: status=%s exclusive=%s include_unverified=%s",
            self._status.value, cfg.exclusive, cfg.include_unverified,
        )

        attribution = VerificationAttribution(status=self._status)
        if cfg.exclusive:
            if failed or (cfg.include_unverified and unverified):
                return Verdict(
                    blocks=True,
                    result_code=ResultCode.BLOCKED_BY_VERIFICATION,
                    attribution=attribution,
                )
        elif passed or (cfg.include_unverified and unverified):
            return Verdict(
                blocks=False,
                result_code=ResultCode.ALLOWED_BY_VERIFICATION,
                attribution=attribution,
            )
        return None


class ContactChecker(Checker):
    def __init__(
        self,
        settings: Settings,
        number: str,
        directory: ContactDirectory,
        permissions: PermissionGate,
    ) -> None:
        self._settings = settings
        self._number = number
        self._directory = directory
        self._permissions = permissions

    def priority(self) -> int:
        return MAX_PRIORITY if self._settings.contacts.exclusive else DEFAULT_PRIORITY

    def evaluate(self) -> Verdict | None:
        cfg = self._settings.contacts
        if not cfg.enabled or not self._permissions.contacts_granted():
            return None

        contact = self._directory.find_by_number(self._number)
        if contact is not None:
            logger.info("number %s is a contact", self._number)
            return Verdict(
                blocks=False,
                result_code=ResultCode.ALLOWED_BY_CONTACT,
                attribution=ContactAttribution(name=contact.name),
            )
        if cfg.exclusive:
            return Verdict(blocks=True, result_code=ResultCode.BLOCKED_BY_NON_CONTACT)
        return None


class RepeatedContactChecker(Checker):
    """Allows a number that has called or texted often enough recently."""

    def __init__(
        self,
        settings: Settings,
        number: str,
        history: CallHistory,
        permissions: PermissionGate,
    ) -> None:
        self._settings = settings
        self._number = number
        self._history = history
        self._permissions = permissions

    def priority(self) -> int:
        return DEFAULT_PRIORITY

    def evaluate(self) -> Verdict | None:
        cfg = self._settings.repeated
        if not cfg.enabled or not self._permissions.history_granted():
            return None

        window_ms = cfg.window_minutes * _MINUTE_MS
        count = self._history.count_incoming(self._number, window_ms)
        if count >= cfg.times:
            return Verdict(blocks=False, result_code=ResultCode.ALLOWED_BY_REPEATED)
        return None


class RecentlyDialedChecker(Checker):
    """Allows a number the user has called or texted recently."""

    def __init__(
        self,
        settings: Settings,
        number: str,
        history: CallHistory,
        permissions: PermissionGate,
    ) -> None:
        self._settings = settings
        self._number = number
        self._history = history
        self._permissions = permissions

    def priority(self) -> int:
        return DEFAULT_PRIORITY

    def evaluate(self) -> Verdict | None:
        cfg = self._settings.dialed
        if not cfg.enabled or not self._permissions.history_granted():
            return None

        window_ms = cfg.window_days * _DAY_MS
        if self._history.count_outgoing(self._number, window_ms) > 0:
            return Verdict(blocks=False, result_code=ResultCode.ALLOWED_BY_DIALED)
        return None


def within_window(now: time, start: time, end: time) -> bool:
    """Whether *now* falls in [start, end), wrapping past midnight.

    An equal start and end is an empty window.
    """
    if start <= end:
        return start <= now < end
    return now >= start or now < end


class QuietHoursChecker(Checker):
    def __init__(self, settings: Settings, now: datetime) -> None:
        self._settings = settings
        self._now = now

    def priority(self) -> int:
        return DEFAULT_PRIORITY

    def evaluate(self) -> Verdict | None:
        cfg = self._settings.quiet_hours
        if not cfg.enabled:
            return None
        if within_window(self._now.time(), cfg.start, cfg.end):
            return Verdict(blocks=False, result_code=ResultCode.ALLOWED_BY_QUIET_HOURS)
        return None


class RecentForegroundAppChecker(Checker):
    """Allows calls while one of the configured apps was recently in use.

    Useful for delivery or ride-hailing apps that call from unknown numbers.
    """

    def __init__(self, settings: Settings, app_usage: AppUsage) -> None:
        self._settings = settings
        self._app_usage = app_usage

    def priority(self) -> int:
        return DEFAULT_PRIORITY

    def evaluate(self) -> Verdict | None:
        cfg = self._settings.recent_apps
        if not cfg.apps:
            return None

        used = self._app_usage.recently_used(cfg.window_minutes * 60)
        matched = [app for app in cfg.apps if app in used]
        logger.debug("recent apps: configured=%s used=%s matched=%s", cfg.apps, sorted(used), matched)
        if matched:
            return Verdict(
                blocks=False,
                result_code=ResultCode.ALLOWED_BY_RECENT_APP,
                attribution=AppAttribution(app_id=matched[0]),
            )
        return None
