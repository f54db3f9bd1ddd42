"""
srd CLI: trigger one remediation action by hand.

Usage
-----
srd run-command "systemctl is-active nginx" --timeout 5 --user www-data
srd push-metric 'health,check=nginx ok=0i' --host 10.0.0.5 --port 8086
srd restart-service nginx
srd reboot --dry-run
srd log --path /var/log/srd.log --line "nginx failed" --user syslog
srd list-actions
"""

from __future__ import annotations

import argparse
import json
import sys
import uuid
from typing import Any, Dict, List, Optional

from infra.config import get_settings
from infra.logging_config import setup_logging
from services.remediation import (
    ActionContext,
    ActionRegistry,
    ExecutionRequest,
    MetricEndpoint,
    RemediationExecutor,
)
from services.remediation.payload import merge_payload, normalize_action_payload
from version import AGENT_NAME, AGENT_VERSION


def _context(args: argparse.Namespace, services: Optional[Dict[str, Any]] = None) -> ActionContext:
    return ActionContext(
        action_id=args.action_id or f"cli-{uuid.uuid4().hex[:12]}",
        check_name=args.check,
        run_id="cli",
        services=services or {},
    )


def _execute(
    args: argparse.Namespace,
    action_type: str,
    payload: Dict[str, Any],
    services: Optional[Dict[str, Any]] = None,
) -> int:
    executor = RemediationExecutor()
    extra = normalize_action_payload(args.payload)
    outcome = executor.run(
        ExecutionRequest(
            ctx=_context(args, services),
            action_type=action_type,
            payload=merge_payload(extra, payload),
            dry_run=bool(args.dry_run),
        )
    )
    print(
        json.dumps(
            {
                "action_id": outcome.ctx.action_id,
                "action_type": outcome.action_type,
                "dry_run": outcome.dry_run,
                "ok": outcome.result.ok,
                "message": outcome.result.message,
                "details": outcome.result.details,
            },
            indent=2,
            sort_keys=True,
        )
    )
    return 0 if outcome.result.ok else 1


def cmd_run_command(args: argparse.Namespace) -> int:
    return _execute(
        args,
        "run_command",
        {"command": args.command, "user": args.user, "timeout_seconds": args.timeout},
    )


def cmd_push_metric(args: argparse.Namespace) -> int:
    cfg = get_settings().metrics
    endpoint = MetricEndpoint(
        host=args.host or cfg.host,
        port=args.port if args.port is not None else cfg.port,
        http_path=args.path or cfg.path,
        authorization=args.authorization if args.authorization is not None else cfg.authorization,
        timeout=args.timeout if args.timeout is not None else cfg.timeout_seconds,
        connect_wait=cfg.connect_wait_seconds,
        read_buffer_size=cfg.read_buffer_size,
    )
    try:
        return _execute(args, "influx", {"line": args.line}, services={"influx": endpoint})
    finally:
        endpoint.close()


def cmd_restart_service(args: argparse.Namespace) -> int:
    return _execute(args, "restart_service", {"service": args.service})


def cmd_reboot(args: argparse.Namespace) -> int:
    return _execute(args, "reboot", {})


def cmd_log(args: argparse.Namespace) -> int:
    return _execute(
        args,
        "log",
        {"path": args.path, "line": args.line, "user": args.user, "header": args.header},
    )


def cmd_list_actions(args: argparse.Namespace) -> int:  # pylint: disable=unused-argument
    registry = ActionRegistry()
    registry.discover()
    for action_type, summary in registry.describe().items():
        print(f"{action_type:<16} {summary}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="srd", description=f"{AGENT_NAME} remediation actions")
    p.add_argument("--version", action="version", version=f"%(prog)s {AGENT_VERSION}")
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("--check", default="manual", help="Name of the failing check. Default: manual")
        sp.add_argument("--action-id", default=None, help="Action id for logs. Default: random")
        sp.add_argument("--payload", default=None, help="Extra payload as a JSON object.")
        sp.add_argument("--dry-run", action="store_true", help="Describe the action without running it.")

    sp = sub.add_parser("run-command", help="Run a shell command under a deadline.")
    add_common(sp)
    sp.add_argument("command", help="Shell command, run with /bin/sh -c.")
    sp.add_argument("--user", default=None, help="Run as this user.")
    sp.add_argument("--timeout", type=float, default=None, help="Deadline in seconds.")
    sp.set_defaults(func=cmd_run_command)

    sp = sub.add_parser("push-metric", help="Push one line-protocol record.")
    add_common(sp)
    sp.add_argument("line", help="Line-protocol record.")
    sp.add_argument("--host", default=None, help="Metrics host (or SRD_METRICS_HOST env var).")
    sp.add_argument("--port", type=int, default=None, help="Metrics port (or SRD_METRICS_PORT env var).")
    sp.add_argument("--path", default=None, help="HTTP path (or SRD_METRICS_PATH env var).")
    sp.add_argument("--authorization", default=None, help="Authorization header value.")
    sp.add_argument("--timeout", type=float, default=None, help="Push budget in seconds.")
    sp.set_defaults(func=cmd_push_metric)

    sp = sub.add_parser("restart-service", help="Restart a systemd unit.")
    add_common(sp)
    sp.add_argument("service", help="Unit name; '.service' is implied.")
    sp.set_defaults(func=cmd_restart_service)

    sp = sub.add_parser("reboot", help="Reboot the host.")
    add_common(sp)
    sp.set_defaults(func=cmd_reboot)

    sp = sub.add_parser("log", help="Append a line to a log file.")
    add_common(sp)
    sp.add_argument("--path", required=True, help="Log file path.")
    sp.add_argument("--line", required=True, help="Line to append.")
    sp.add_argument("--user", default=None, help="Owner of a newly created file.")
    sp.add_argument("--header", default=None, help="First line of a newly created file.")
    sp.set_defaults(func=cmd_log)

    sp = sub.add_parser("list-actions", help="List registered action types.")
    sp.set_defaults(func=cmd_list_actions)

    return p


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging()
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
