"""
cutover CLI: command-line interface for blue/green cutovers.

Usage:
    cutover deploy cdn production --artifact dist/ --version v42
    cutover init cdn production --active blue
    cutover status cdn production
    cutover approve <attempt-id> --reviewer alice
    cutover deny <attempt-id> --comment "wrong build"
    cutover attempts cdn production
    cutover version

``deploy`` exits 0 on success, 1 when the attempt failed before any traffic
moved and 2 when it was rolled back after a partial traffic shift.
"""

import argparse
import json
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from cutover import __version__
from cutover.backends.local import FileApprovalChannel, FileMetricsSource, LocalSlotBackend
from cutover.config import STATE_DIR_ENV, CutoverConfig
from cutover.delivery.deployer import ArtifactRef
from cutover.delivery.orchestrator import EXIT_FAILED, BlueGreenOrchestrator
from cutover.errors import CutoverError
from cutover.logs import configure_logging
from cutover.state import StateDir
from cutover.tracing import configure_tracing

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = "cutover.yaml"


def _emit(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _load_config(parsed: argparse.Namespace, required: bool) -> CutoverConfig:
    path = Path(parsed.config)
    if path.exists() or required:
        config = CutoverConfig.from_yaml(path)
    else:
        config = CutoverConfig.from_dict({})
    if parsed.state_dir:
        config.state_dir = parsed.state_dir
    return config


def _backend_root(parsed: argparse.Namespace, config: CutoverConfig) -> Path:
    return Path(parsed.backend_root) if parsed.backend_root else Path(config.state_dir) / "routing"


def _cmd_deploy(parsed: argparse.Namespace) -> int:
    config = _load_config(parsed, required=True)
    target = config.target(parsed.kind, parsed.environment)
    state = StateDir.open(config.state_dir, lease_ttl_seconds=config.lease.ttl_seconds)
    root = _backend_root(parsed, config)
    provider = configure_tracing(
        parsed.otlp_endpoint,
        console=parsed.trace_console,
        environment=parsed.environment,
        target_kind=parsed.kind,
    )
    orchestrator = BlueGreenOrchestrator(
        config,
        LocalSlotBackend(root),
        FileMetricsSource(root),
        FileApprovalChannel(state.approvals_dir),
        state,
        tracer=provider.get_tracer("cutover") if provider else None,
    )

    def _cancel(signum: int, _frame: Any) -> None:
        logger.warning("Received signal %d; cancelling at the next boundary", signum)
        orchestrator.cancel()

    previous = {sig: signal.signal(sig, _cancel) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        report = orchestrator.run(target, ArtifactRef(Path(parsed.artifact), parsed.version))
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        if provider is not None:
            provider.shutdown()
    _emit(report.to_dict())
    return report.exit_code


def _cmd_init(parsed: argparse.Namespace) -> int:
    config = _load_config(parsed, required=True)
    target = config.target(parsed.kind, parsed.environment)
    if parsed.active not in target.slots:
        raise CutoverError(f"Unknown slot '{parsed.active}' (slots: {target.slot_ids})")
    state = StateDir.open(config.state_dir)
    backend = LocalSlotBackend(_backend_root(parsed, config))
    backend.init_target(target, parsed.active)
    record = state.targets.ensure(target.target_id, parsed.active)
    _emit({"target_id": target.target_id, "active_slot_id": record.active_slot_id, "version": record.version})
    return 0


def _cmd_status(parsed: argparse.Namespace) -> int:
    config = _load_config(parsed, required=True)
    target = config.target(parsed.kind, parsed.environment)
    state = StateDir.open(config.state_dir)
    backend = LocalSlotBackend(_backend_root(parsed, config))
    status = state.target_status(target.target_id) or {"target_id": target.target_id, "record": None}
    status["slots"] = {
        sid: slot.model_dump(mode="json") for sid, slot in backend.read_slots(target).items()
    }
    _emit(status)
    return 0


def _cmd_decide(parsed: argparse.Namespace, approved: bool) -> int:
    config = _load_config(parsed, required=False)
    channel = FileApprovalChannel(StateDir.open(config.state_dir).approvals_dir)
    if channel.request_for(parsed.attempt_id) is None:
        raise CutoverError(f"No approval request for attempt '{parsed.attempt_id}'")
    existing = channel.decision_for(parsed.attempt_id)
    if existing is not None:
        raise CutoverError(f"Attempt '{parsed.attempt_id}' already {existing.value}")
    channel.decide(parsed.attempt_id, approved, reviewer=parsed.reviewer, comment=parsed.comment)
    decision = "approved" if approved else "denied"
    logger.info("Attempt %s %s by %s", parsed.attempt_id, decision, parsed.reviewer or "anonymous")
    _emit({"attempt_id": parsed.attempt_id, "decision": decision, "reviewer": parsed.reviewer})
    return 0


def _cmd_attempts(parsed: argparse.Namespace) -> int:
    config = _load_config(parsed, required=False)
    target_id = f"{parsed.kind}-{parsed.environment}"
    rows = StateDir.open(config.state_dir).attempts.list_attempts(target_id, limit=parsed.limit)
    _emit({"target_id": target_id, "attempts": rows, "count": len(rows)})
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cutover",
        description="Zero-downtime blue/green deployment orchestration",
    )
    parser.add_argument("--config", default=DEFAULT_CONFIG, help="Configuration file (YAML)")
    parser.add_argument(
        "--state-dir",
        default=os.environ.get(STATE_DIR_ENV),
        help=f"State directory (overrides config; env {STATE_DIR_ENV})",
    )
    parser.add_argument("--backend-root", help="Root of the local routing backend")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-format", choices=["text", "json"], default="text")
    parser.add_argument("--otlp-endpoint", help="Export attempt traces to this OTLP/HTTP endpoint")
    parser.add_argument("--trace-console", action="store_true", help="Print attempt spans to stderr")
    subparsers = parser.add_subparsers(dest="command")

    deploy = subparsers.add_parser("deploy", help="Run a blue/green cutover")
    deploy.add_argument("kind", help="Target kind, e.g. cdn or api")
    deploy.add_argument("environment")
    deploy.add_argument("--artifact", required=True, help="Built artifact directory")
    deploy.add_argument("--version", required=True, help="Artifact version label")

    init = subparsers.add_parser("init", help="Initialise a target in the local backend")
    init.add_argument("kind")
    init.add_argument("environment")
    init.add_argument("--active", default="blue", help="Slot serving traffic initially")

    status = subparsers.add_parser("status", help="Show slot weights and the target record")
    status.add_argument("kind")
    status.add_argument("environment")

    for name, help_text in (("approve", "Approve a pending attempt"), ("deny", "Deny a pending attempt")):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("attempt_id")
        p.add_argument("--reviewer", default=os.environ.get("USER", ""))
        p.add_argument("--comment", default="")

    attempts = subparsers.add_parser("attempts", help="List archived attempts")
    attempts.add_argument("kind")
    attempts.add_argument("environment")
    attempts.add_argument("--limit", type=int, default=20)

    subparsers.add_parser("version", help="Show version")
    return parser


def cli(args: Optional[List[str]] = None) -> int:
    """Main CLI entry point. Returns exit code."""
    parser = _build_parser()
    parsed = parser.parse_args(args)

    if parsed.command == "version":
        print(f"cutover {__version__}")
        return 0
    if parsed.command is None:
        parser.print_help()
        return 1

    configure_logging(parsed.log_level, parsed.log_format)

    commands = {
        "deploy": _cmd_deploy,
        "init": _cmd_init,
        "status": _cmd_status,
        "approve": lambda p: _cmd_decide(p, True),
        "deny": lambda p: _cmd_decide(p, False),
        "attempts": _cmd_attempts,
    }
    try:
        return commands[parsed.command](parsed)
    except (CutoverError, OSError) as exc:
        logger.error("%s", exc)
        _emit({"status": "error", "error": str(exc), "error_type": type(exc).__name__})
        return EXIT_FAILED


def main() -> None:
    sys.exit(cli())


if __name__ == "__main__":
    main()
