"""Verdict contracts.

A verdict is the outcome of one screening pass: allow or block, the result
code naming the checker outcome that decided it, and at most one attribution
explaining which contact, rule, app or verification status was responsible.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ResultCode(str, Enum):
    ALLOWED_BY_DEFAULT = "allowed.default"
    ALLOWED_BY_EMERGENCY = "allowed.emergency"
    ALLOWED_BY_VERIFICATION = "allowed.verification"
    BLOCKED_BY_VERIFICATION = "blocked.verification"
    ALLOWED_BY_CONTACT = "allowed.contact"
    BLOCKED_BY_NON_CONTACT = "blocked.non_contact"
    ALLOWED_BY_REPEATED = "allowed.repeated"
    ALLOWED_BY_DIALED = "allowed.dialed"
    ALLOWED_BY_QUIET_HOURS = "allowed.quiet_hours"
    ALLOWED_BY_RECENT_APP = "allowed.recent_app"
    ALLOWED_BY_NUMBER = "allowed.number"
    BLOCKED_BY_NUMBER = "blocked.number"
    ALLOWED_BY_CONTENT = "allowed.content"
    BLOCKED_BY_CONTENT = "blocked.content"


class VerificationStatus(str, Enum):
    """Caller-number verification status as resolved by the telephony stack."""

    PASSED = "passed"
    NOT_VERIFIED = "not_verified"
    FAILED = "failed"


# ── Attribution variants ────────────────────────────────────────────


class ContactAttribution(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["contact"] = "contact"
    name: str


class RuleAttribution(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["rule"] = "rule"
    rule_id: int


class AppAttribution(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["app"] = "app"
    app_id: str


class VerificationAttribution(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["verification"] = "verification"
    status: VerificationStatus


Attribution = Annotated[
    Union[ContactAttribution, RuleAttribution, AppAttribution, VerificationAttribution],
    Field(discriminator="kind"),
]

# Attribution kind each result code may carry; codes absent here carry none.
EXPECTED_ATTRIBUTION: dict[ResultCode, str] = {
    ResultCode.ALLOWED_BY_CONTACT: "contact",
    ResultCode.ALLOWED_BY_VERIFICATION: "verification",
    ResultCode.BLOCKED_BY_VERIFICATION: "verification",
    ResultCode.ALLOWED_BY_RECENT_APP: "app",
    ResultCode.ALLOWED_BY_NUMBER: "rule",
    ResultCode.BLOCKED_BY_NUMBER: "rule",
    ResultCode.ALLOWED_BY_CONTENT: "rule",
    ResultCode.BLOCKED_BY_CONTENT: "rule",
}


# ── Verdict ─────────────────────────────────────────────────────────


class Verdict(BaseModel):
    """Immutable allow/block decision plus its causal attribution."""

    model_config = ConfigDict(frozen=True)

    blocks: bool
    result_code: ResultCode
    attribution: Attribution | None = None

    @model_validator(mode="after")
    def _check_attribution_kind(self) -> Verdict:
        if self.attribution is None:
            return self
        expected = EXPECTED_ATTRIBUTION.get(self.result_code)
        if expected != self.attribution.kind:
            raise ValueError(
                f"Result code '{self.result_code.value}' cannot carry "
                f"a '{self.attribution.kind}' attribution"
            )
        return self

    def reason(self) -> str:
        """Return the attribution value as a flat string (empty if none)."""
        a = self.attribution
        if isinstance(a, ContactAttribution):
            return a.name
        if isinstance(a, RuleAttribution):
            return str(a.rule_id)
        if isinstance(a, AppAttribution):
            return a.app_id
        if isinstance(a, VerificationAttribution):
            return a.status.value
        return ""


DEFAULT_VERDICT = Verdict(blocks=False, result_code=ResultCode.ALLOWED_BY_DEFAULT)
