"""callscreen CLI — validate settings, screen numbers, manage rules, query audit logs."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Ensure project root is importable when running as script
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def _load(path: str):
    from runtime.settings_loader import load_settings

    try:
        return load_settings(path)
    except FileNotFoundError:
        print(f"Error: settings not found: {path}", file=sys.stderr)
        sys.exit(1)
    except Exception as exc:
        print(f"Error: invalid settings: {exc}", file=sys.stderr)
        sys.exit(1)


def _engine(args: argparse.Namespace):
    from runtime.audit.logger import JsonlAuditLogger
    from runtime.resolver import create_engine

    settings = _load(args.settings)
    audit = None if args.no_audit else JsonlAuditLogger(settings.audit.path)
    return settings, create_engine(args.settings, audit=audit)


def _print_verdict(settings, verdict) -> None:
    from runtime.reason import ReasonRenderer
    from runtime.rule_store import SqliteRuleStore

    renderer = ReasonRenderer(SqliteRuleStore(settings.storage.rules_db), settings.strings)
    action = "BLOCK" if verdict.blocks else "ALLOW"
    print(f"{action}  {verdict.result_code.value}  {renderer.render(verdict)}")


def cmd_validate(args: argparse.Namespace) -> None:
    """Validate a callscreen.yaml settings file."""
    settings = _load(args.settings)

    def onoff(flag: bool) -> str:
        return "on" if flag else "off"

    print(f"Settings OK: {args.settings}")
    print(f"  Verification:  {onoff(settings.verification.enabled)}"
          f" (exclusive={settings.verification.exclusive})")
    print(f"  Contacts:      {onoff(settings.contacts.enabled)}"
          f" (exclusive={settings.contacts.exclusive}, {len(settings.directory.contacts)} saved)")
    print(f"  Repeated:      {onoff(settings.repeated.enabled)}")
    print(f"  Dialed:        {onoff(settings.dialed.enabled)}")
    qh = settings.quiet_hours
    print(f"  Quiet hours:   {onoff(qh.enabled)} ({qh.start:%H:%M}-{qh.end:%H:%M})")
    print(f"  Recent apps:   {', '.join(settings.recent_apps.apps) or '(none)'}")
    print(f"  Rules DB:      {settings.storage.rules_db}")
    print(f"  Audit path:    {settings.audit.path}")

    from runtime.reason import DEFAULT_STRINGS

    for key in settings.strings:
        if key not in DEFAULT_STRINGS:
            print(f"  Warning: unknown string key '{key}'")


def cmd_run(args: argparse.Namespace) -> None:
    """Start the callscreen HTTP service."""
    import os

    os.environ["CALLSCREEN_SETTINGS"] = args.settings
    _load(args.settings)

    print(f"Starting callscreen on {args.host}:{args.port} ({args.settings})")

    import uvicorn

    uvicorn.run(
        "runtime.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )


def cmd_call(args: argparse.Namespace) -> None:
    from contracts.verdict import VerificationStatus

    settings, engine = _engine(args)
    status = VerificationStatus(args.verification) if args.verification else None
    verdict = engine.evaluate_call(args.number, args.emergency, status)
    _print_verdict(settings, verdict)


def cmd_sms(args: argparse.Namespace) -> None:
    settings, engine = _engine(args)
    verdict = engine.evaluate_sms(args.number, args.body)
    _print_verdict(settings, verdict)


def cmd_extract(args: argparse.Namespace) -> None:
    _, engine = _engine(args)
    result = engine.extract_quick_value(args.body)
    if result is None:
        print("No match.")
        sys.exit(1)
    rule, value = result
    print(value)
    print(f"  (rule {rule.id}: {rule.description or rule.pattern})", file=sys.stderr)


def _rule_store(args: argparse.Namespace):
    from runtime.rule_store import SqliteRuleStore

    return SqliteRuleStore(_load(args.settings).storage.rules_db)


def cmd_rules_list(args: argparse.Namespace) -> None:
    from contracts.rules import RuleCategory

    rules = _rule_store(args).list_rules(RuleCategory(args.category))
    if not rules:
        print("No rules.")
        return
    for r in rules:
        if args.json:
            print(r.model_dump_json())
        else:
            kind = "block" if r.is_blacklist else "allow"
            print(f"{r.id:>4}  p={r.priority:<4} {kind:5s}  {r.pattern_str()}  {r.description}")


def cmd_rules_add(args: argparse.Namespace) -> None:
    from contracts.rules import PatternRule, RegexFlag, RuleCategory, RuleScope
    from runtime.patterns import compile_pattern

    flags = RegexFlag.NONE
    if args.ignore_case:
        flags |= RegexFlag.IGNORE_CASE
    if args.literal:
        flags |= RegexFlag.LITERAL
    scope = RuleScope.ALL
    if args.calls_only:
        scope = RuleScope.CALL
    elif args.sms_only:
        scope = RuleScope.SMS

    rule = PatternRule(
        priority=args.priority,
        pattern=args.pattern,
        pattern_flags=int(flags),
        pattern_extra=args.sender or "",
        is_blacklist=not args.allow,
        description=args.description,
        applies_to=int(scope),
    )
    try:
        compile_pattern(rule.pattern, rule.pattern_flags)
        if rule.pattern_extra:
            compile_pattern(rule.pattern_extra, rule.pattern_extra_flags)
    except Exception as exc:
        print(f"Error: invalid pattern: {exc}", file=sys.stderr)
        sys.exit(1)

    saved = _rule_store(args).add_rule(RuleCategory(args.category), rule)
    print(f"Added {args.category} rule {saved.id}")


def cmd_rules_delete(args: argparse.Namespace) -> None:
    from contracts.rules import RuleCategory

    if not _rule_store(args).delete_rule(RuleCategory(args.category), args.rule_id):
        print(f"Rule {args.rule_id} not found", file=sys.stderr)
        sys.exit(1)
    print(f"Deleted {args.category} rule {args.rule_id}")


def cmd_logs(args: argparse.Namespace) -> None:
    """Query audit logs."""
    from contracts.audit import AuditEvent
    from runtime.audit.query import query_by_event, query_by_request, tail

    log_path = args.log_path

    if not Path(log_path).exists():
        print(f"No audit log found at {log_path}", file=sys.stderr)
        sys.exit(1)

    if args.request_id:
        entries = query_by_request(log_path, args.request_id)
    elif args.event:
        try:
            event = AuditEvent(args.event)
        except ValueError:
            valid = ", ".join(e.value for e in AuditEvent)
            print(f"Unknown event type: {args.event}", file=sys.stderr)
            print(f"Valid events: {valid}", file=sys.stderr)
            sys.exit(1)
        entries = query_by_event(log_path, event, limit=args.limit)
    else:
        entries = tail(log_path, n=args.limit)

    if not entries:
        print("No matching audit entries.")
        return

    for entry in entries:
        record = json.loads(entry.model_dump_json())
        if args.json:
            print(json.dumps(record))
        else:
            ts = record["ts"][:19]
            action = {True: "BLOCK", False: "ALLOW"}.get(record["blocks"], "-")
            print(f"{ts}  [{record['event']:13s}]  {action:5s}  {record['number']:16s}  "
                  f"{record['result_code']}  {record['reason']}")


def cmd_stats(args: argparse.Namespace) -> None:
    from runtime.metrics import compute_metrics

    if not Path(args.log_path).exists():
        print(f"No audit log found at {args.log_path}", file=sys.stderr)
        sys.exit(1)
    print(json.dumps(compute_metrics(args.log_path), indent=2))


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="callscreen",
        description="callscreen — call and SMS screening engine CLI",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    def settings_arg(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--settings", "-s", default="callscreen.yaml", help="Path to settings file"
        )

    # validate
    p_val = sub.add_parser("validate", help="Validate a callscreen.yaml settings file")
    p_val.add_argument("settings", nargs="?", default="callscreen.yaml", help="Path to settings")
    p_val.set_defaults(func=cmd_validate)

    # run
    p_run = sub.add_parser("run", help="Start the HTTP service")
    p_run.add_argument("settings", nargs="?", default="callscreen.yaml", help="Path to settings")
    p_run.add_argument("--host", default="127.0.0.1", help="Bind address")
    p_run.add_argument("--port", type=int, default=8080, help="Port")
    p_run.add_argument("--reload", action="store_true", help="Enable auto-reload")
    p_run.set_defaults(func=cmd_run)

    # call
    p_call = sub.add_parser("call", help="Screen an incoming call")
    p_call.add_argument("number")
    p_call.add_argument("--emergency", action="store_true", help="Emergency call flag")
    p_call.add_argument(
        "--verification", choices=["passed", "not_verified", "failed"], help="Caller verification status"
    )
    p_call.add_argument("--no-audit", action="store_true", help="Do not write the audit log")
    settings_arg(p_call)
    p_call.set_defaults(func=cmd_call)

    # sms
    p_sms = sub.add_parser("sms", help="Screen an incoming SMS")
    p_sms.add_argument("number")
    p_sms.add_argument("body")
    p_sms.add_argument("--no-audit", action="store_true", help="Do not write the audit log")
    settings_arg(p_sms)
    p_sms.set_defaults(func=cmd_sms)

    # extract
    p_ext = sub.add_parser("extract", help="Quick-copy a value out of message text")
    p_ext.add_argument("body")
    p_ext.add_argument("--no-audit", action="store_true", help="Do not write the audit log")
    settings_arg(p_ext)
    p_ext.set_defaults(func=cmd_extract)

    # rules
    p_rules = sub.add_parser("rules", help="Manage pattern rules")
    rules_sub = p_rules.add_subparsers(dest="rules_command", required=True)
    categories = ["number", "content", "quick_copy"]

    p_rl = rules_sub.add_parser("list", help="List rules")
    p_rl.add_argument("category", choices=categories)
    p_rl.add_argument("--json", action="store_true", help="Output raw JSON")
    settings_arg(p_rl)
    p_rl.set_defaults(func=cmd_rules_list)

    p_ra = rules_sub.add_parser("add", help="Add a rule")
    p_ra.add_argument("category", choices=categories)
    p_ra.add_argument("pattern")
    p_ra.add_argument("--priority", "-p", type=int, default=1)
    p_ra.add_argument("--allow", action="store_true", help="Whitelist instead of blacklist")
    p_ra.add_argument("--description", "-d", default="")
    p_ra.add_argument("--sender", help="Content rules: sender number pattern")
    p_ra.add_argument("--ignore-case", "-i", action="store_true")
    p_ra.add_argument("--literal", action="store_true", help="Match the pattern text literally")
    scope = p_ra.add_mutually_exclusive_group()
    scope.add_argument("--calls-only", action="store_true")
    scope.add_argument("--sms-only", action="store_true")
    settings_arg(p_ra)
    p_ra.set_defaults(func=cmd_rules_add)

    p_rd = rules_sub.add_parser("delete", help="Delete a rule")
    p_rd.add_argument("category", choices=categories)
    p_rd.add_argument("rule_id", type=int)
    settings_arg(p_rd)
    p_rd.set_defaults(func=cmd_rules_delete)

    # logs
    p_logs = sub.add_parser("logs", help="Query audit logs")
    p_logs.add_argument("log_path", help="Path to audit JSONL file")
    p_logs.add_argument("--request-id", "-r", help="Filter by request ID")
    p_logs.add_argument("--event", "-e", help="Filter by event type")
    p_logs.add_argument("--limit", "-n", type=int, default=20, help="Max entries")
    p_logs.add_argument("--json", action="store_true", help="Output raw JSON")
    p_logs.set_defaults(func=cmd_logs)

    # stats
    p_stats = sub.add_parser("stats", help="Aggregate screening metrics")
    p_stats.add_argument("log_path", help="Path to audit JSONL file")
    p_stats.set_defaults(func=cmd_stats)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args.func(args)


if __name__ == "__main__":
    main()
