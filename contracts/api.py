"""HTTP API contracts for the screening service."""

from __future__ import annotations

from pydantic import BaseModel

from contracts.rules import PatternRule
from contracts.verdict import Verdict, VerificationStatus


class CallScreenRequest(BaseModel):
    number: str
    emergency: bool = False
    verification: VerificationStatus | None = None


class SmsScreenRequest(BaseModel):
    number: str
    body: str


class ScreenResponse(BaseModel):
    request_id: str
    verdict: Verdict
    reason: str     # rendered, human-readable


class ExtractRequest(BaseModel):
    body: str


class ExtractResponse(BaseModel):
    matched: bool
    rule: PatternRule | None = None
    value: str | None = None


class OutgoingEvent(BaseModel):
    number: str
    channel: str = "call"   # "call" | "sms"


class ForegroundEvent(BaseModel):
    app_id: str
