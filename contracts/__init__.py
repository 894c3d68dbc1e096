"""Shared contracts — source of truth for all callscreen interfaces."""

from contracts.api import CallScreenRequest, ExtractRequest, ExtractResponse, ScreenResponse, SmsScreenRequest
from contracts.audit import AuditEntry, AuditEvent, AuditLogger
from contracts.checker import DEFAULT_PRIORITY, MAX_PRIORITY, Checker
from contracts.providers import AppUsage, CallHistory, Contact, ContactDirectory, PermissionGate
from contracts.rules import PatternRule, RegexFlag, RuleCategory, RuleScope, RuleStore
from contracts.settings import Settings
from contracts.verdict import (
    AppAttribution,
    ContactAttribution,
    ResultCode,
    RuleAttribution,
    Verdict,
    VerificationAttribution,
    VerificationStatus,
)

__all__ = [
    # api
    "CallScreenRequest",
    "ExtractRequest",
    "ExtractResponse",
    "ScreenResponse",
    "SmsScreenRequest",
    # audit
    "AuditEntry",
    "AuditEvent",
    "AuditLogger",
    # checker
    "Checker",
    "DEFAULT_PRIORITY",
    "MAX_PRIORITY",
    # providers
    "AppUsage",
    "CallHistory",
    "Contact",
    "ContactDirectory",
    "PermissionGate",
    # rules
    "PatternRule",
    "RegexFlag",
    "RuleCategory",
    "RuleScope",
    "RuleStore",
    # settings
    "Settings",
    # verdict
    "AppAttribution",
    "ContactAttribution",
    "ResultCode",
    "RuleAttribution",
    "Verdict",
    "VerificationAttribution",
    "VerificationStatus",
]
