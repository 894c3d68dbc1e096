"""callscreen FastAPI service.

Screens calls and SMS over HTTP, manages pattern rules, and exposes the
audit log and metrics.  Screened events are recorded as incoming history so
the repeated-contact checker sees them; outgoing calls and foreground-app
usage are reported by the platform through their own endpoints.
"""

from __future__ import annotations

import os
import re
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from contracts.api import (
    CallScreenRequest,
    ExtractRequest,
    ExtractResponse,
    ForegroundEvent,
    OutgoingEvent,
    ScreenResponse,
    SmsScreenRequest,
)
from contracts.audit import AuditEntry, AuditEvent
from contracts.rules import PatternRule, RuleCategory
from contracts.verdict import Verdict
from runtime.audit.logger import JsonlAuditLogger
from runtime.audit.query import _read_all, query_filtered
from runtime.metrics import compute_metrics
from runtime.patterns import compile_pattern
from runtime.providers import (
    Channel,
    Direction,
    InMemoryAppUsage,
    InMemoryCallHistory,
)
from runtime.reason import ReasonRenderer
from runtime.resolver import ScreeningEngine
from runtime.rule_store import SqliteRuleStore
from runtime.settings_loader import FileSettingsSource

VERSION = "0.1.0"

# ── Module-level state (set during lifespan) ─────────────────────────

_engine: ScreeningEngine | None = None
_source: FileSettingsSource | None = None
_rules: SqliteRuleStore | None = None
_history: InMemoryCallHistory | None = None
_app_usage: InMemoryAppUsage | None = None
_logger: JsonlAuditLogger | None = None
_start_time: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialise all components on startup."""
    global _engine, _source, _rules, _history, _app_usage, _logger, _start_time  # noqa: PLW0603

    _start_time = time.time()

    settings_path = os.environ.get("CALLSCREEN_SETTINGS", "./callscreen.yaml")
    _source = FileSettingsSource(settings_path)
    settings = _source()

    _rules = SqliteRuleStore(settings.storage.rules_db)
    _history = InMemoryCallHistory()
    _app_usage = InMemoryAppUsage()
    _logger = JsonlAuditLogger(settings.audit.path)

    _engine = ScreeningEngine(
        settings=_source,
        rules=_rules,
        history=_history,
        app_usage=_app_usage,
        audit=_logger,
    )

    yield


app = FastAPI(title="callscreen", version=VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_methods=["*"],
    allow_headers=["*"],
)


def _require_engine() -> ScreeningEngine:
    if _engine is None:
        raise HTTPException(status_code=503, detail="Service not initialised")
    return _engine


def _renderer() -> ReasonRenderer:
    if _rules is None or _source is None:
        raise HTTPException(status_code=503, detail="Service not initialised")
    return ReasonRenderer(_rules, _source().strings)


def _category(name: str) -> RuleCategory:
    try:
        return RuleCategory(name)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown rule category: {name}")


# ── Health ───────────────────────────────────────────────────────────


@app.get("/v1/callscreen/health")
async def health() -> dict[str, Any]:
    """Extended health-check endpoint."""
    result: dict[str, Any] = {"status": "ok", "version": VERSION}
    result["uptime_seconds"] = round(time.time() - _start_time, 1) if _start_time else 0

    if _source is not None:
        settings = _source()
        result["settings"] = {
            "path": str(_source.path),
            "verification": settings.verification.enabled,
            "contacts": settings.contacts.enabled,
            "repeated": settings.repeated.enabled,
            "dialed": settings.dialed.enabled,
            "quiet_hours": settings.quiet_hours.enabled,
            "recent_apps": list(settings.recent_apps.apps),
        }
        log_path = Path(settings.audit.path)
        if log_path.exists():
            result["audit_log_size_bytes"] = log_path.stat().st_size
            result["audit_log_entries"] = len(_read_all(log_path))

    if _rules is not None:
        result["rules"] = {c.value: len(_rules.list_rules(c)) for c in RuleCategory}

    return result


# ── Screening ────────────────────────────────────────────────────────


@app.post("/v1/screen/call")
async def screen_call(request: CallScreenRequest) -> ScreenResponse:
    """Decide whether an incoming call should ring."""
    engine = _require_engine()
    request_id = str(uuid.uuid4())
    verdict = await run_in_threadpool(
        engine.evaluate_call,
        request.number,
        request.emergency,
        request.verification,
        request_id=request_id,
    )
    if _history is not None:
        _history.record(request.number, Direction.INCOMING, Channel.CALL)
    reason = await run_in_threadpool(_renderer().render, verdict)
    return ScreenResponse(request_id=request_id, verdict=verdict, reason=reason)


@app.post("/v1/screen/sms")
async def screen_sms(request: SmsScreenRequest) -> ScreenResponse:
    """Decide whether an incoming SMS should be shown."""
    engine = _require_engine()
    request_id = str(uuid.uuid4())
    verdict = await run_in_threadpool(
        engine.evaluate_sms, request.number, request.body, request_id=request_id
    )
    if _history is not None:
        _history.record(request.number, Direction.INCOMING, Channel.SMS)
    reason = await run_in_threadpool(_renderer().render, verdict)
    return ScreenResponse(request_id=request_id, verdict=verdict, reason=reason)


@app.post("/v1/extract")
async def extract(request: ExtractRequest) -> ExtractResponse:
    """Quick-copy extraction of a value (e.g. a code) from message text."""
    engine = _require_engine()
    result = await run_in_threadpool(engine.extract_quick_value, request.body)
    if result is None:
        return ExtractResponse(matched=False)
    rule, value = result
    return ExtractResponse(matched=True, rule=rule, value=value)


@app.post("/v1/reason")
async def reason(verdict: Verdict) -> dict[str, str]:
    """Render a stored verdict as display text."""
    return {"reason": await run_in_threadpool(_renderer().render, verdict)}


# ── Platform signals ─────────────────────────────────────────────────


@app.post("/v1/history/outgoing", status_code=204)
async def record_outgoing(event: OutgoingEvent) -> None:
    if _history is None:
        raise HTTPException(status_code=503, detail="Service not initialised")
    try:
        channel = Channel(event.channel)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Unknown channel: {event.channel}")
    _history.record(event.number, Direction.OUTGOING, channel)


@app.post("/v1/apps/foreground", status_code=204)
async def record_foreground(event: ForegroundEvent) -> None:
    if _app_usage is None:
        raise HTTPException(status_code=503, detail="Service not initialised")
    _app_usage.record(event.app_id)


# ── Rules ────────────────────────────────────────────────────────────


@app.get("/v1/rules/{category}")
async def list_rules(category: str) -> list[PatternRule]:
    if _rules is None:
        raise HTTPException(status_code=503, detail="Service not initialised")
    return _rules.list_rules(_category(category))


@app.post("/v1/rules/{category}", status_code=201)
async def add_rule(category: str, rule: PatternRule) -> PatternRule:
    if _rules is None:
        raise HTTPException(status_code=503, detail="Service not initialised")
    target = _category(category)
    try:
        compile_pattern(rule.pattern, rule.pattern_flags)
        if rule.pattern_extra:
            compile_pattern(rule.pattern_extra, rule.pattern_extra_flags)
    except re.error as exc:
        raise HTTPException(status_code=422, detail=f"Invalid pattern: {exc}")
    return _rules.add_rule(target, rule)


@app.delete("/v1/rules/{category}/{rule_id}", status_code=204)
async def delete_rule(category: str, rule_id: int) -> None:
    if _rules is None:
        raise HTTPException(status_code=503, detail="Service not initialised")
    if not _rules.delete_rule(_category(category), rule_id):
        raise HTTPException(status_code=404, detail=f"Rule {rule_id} not found")


# ── Audit and metrics ────────────────────────────────────────────────


@app.get("/v1/callscreen/audit/logs")
async def audit_logs(
    event: AuditEvent | None = Query(None),
    number: str | None = Query(None),
    blocked: bool | None = Query(None),
    since: datetime | None = Query(None),
    until: datetime | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> dict[str, Any]:
    """Filtered, paginated audit log query."""
    if _logger is None:
        raise HTTPException(status_code=503, detail="Service not initialised")

    entries, total = query_filtered(
        _logger.path,
        event=event,
        number=number,
        blocked=blocked,
        since=since,
        until=until,
        limit=limit,
        offset=offset,
    )
    return {"entries": [e.model_dump(mode="json") for e in entries], "total": total}


@app.get("/v1/callscreen/audit/{request_id}")
async def audit_query(request_id: str) -> list[AuditEntry]:
    """Return audit entries for a given request_id."""
    if _logger is None:
        raise HTTPException(status_code=503, detail="Service not initialised")
    return _logger.query_by_request(request_id)


@app.get("/v1/callscreen/metrics")
async def metrics(
    since: datetime | None = Query(None),
    window: int = Query(3600, ge=1, le=86400, description="Bucket window in seconds"),
) -> dict[str, Any]:
    """Aggregated screening metrics."""
    if _logger is None:
        raise HTTPException(status_code=503, detail="Service not initialised")

    return compute_metrics(_logger.path, since=since, window_seconds=window)
