"""Command-line entry point for the referral nudge engine."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import asyncio
import json
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from nudge_engine.config.environment import EnvironmentConfig
from nudge_engine.config.exceptions import ConfigurationError
from nudge_engine.config.loader import load_config
from nudge_engine.config.models import MIN_RETENTION_DAYS, AppConfig
from nudge_engine.domain.exceptions import NudgeEngineError, ValidationError
from nudge_engine.domain.models import MatchTier
from nudge_engine.logging import get_logger
from nudge_engine.logging.config import configure_logging
from nudge_engine.persistence.database import close_database, init_database
from nudge_engine.scheduler import RetentionPurgeJob, SchedulerService
from nudge_engine.service import ReferralNudgeService, create_service

logger = get_logger(__name__, component="cli")


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and resolve the effective log level.

    Log level priority: CLI > LOG_LEVEL environment variable > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    return app_config, env_config


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _parse_metadata(pairs: Optional[List[str]]) -> Dict[str, str]:
    metadata = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise argparse.ArgumentTypeError(f"Metadata must be key=value, got '{pair}'")
        metadata[key.strip()] = value
    return metadata


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nudge-engine",
        description="Referral Nudge Engine - job/member matching, referral nudges and funnel analytics",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    nudges = subparsers.add_parser("nudges", help="Generate nudges for a member and a job")
    nudges.add_argument("member_id")
    nudges.add_argument("job_id")

    interact = subparsers.add_parser("interact", help="Record a nudge interaction")
    interact.add_argument("--member", required=True, dest="member_id")
    interact.add_argument("--job", required=True, dest="job_id")
    interact.add_argument("--nudge", default=None, dest="nudge_id")
    interact.add_argument("--action", required=True, help="e.g. VIEWED, CLICKED, REFERRED")
    interact.add_argument("--meta", action="append", metavar="KEY=VALUE", help="Metadata (repeatable)")

    stats = subparsers.add_parser("stats", help="Aggregate nudge interaction stats")
    stats.add_argument("--job", dest="job_id", default=None)
    stats.add_argument("--member", dest="member_id", default=None)

    funnel = subparsers.add_parser("funnel", help="Compute the referral funnel")
    funnel.add_argument("--job", dest="job_id", default=None)
    funnel.add_argument("--days", type=int, default=None, help="Window in days")

    subparsers.add_parser("budget", help="Show enrichment budget and cache status")

    summarize = subparsers.add_parser("summarize", help="Summarize a job")
    summarize.add_argument("job_id")
    summarize.add_argument(
        "--fallback", action="store_true", help="Use the static summary if enrichment is unavailable"
    )

    score = subparsers.add_parser("score", help="Rank members for a job")
    score.add_argument("job_id")
    score.add_argument("member_ids", nargs="+")
    score.add_argument(
        "--min-tier", default=MatchTier.LOW.value, choices=[tier.value for tier in MatchTier]
    )

    purge = subparsers.add_parser("purge", help="Delete old events and interactions now")
    purge.add_argument("--days", type=int, default=None, help="Retention in days (minimum 30)")

    subparsers.add_parser("serve", help="Run the retention purge scheduler until stopped")

    return parser


def run_command(args: argparse.Namespace, service: ReferralNudgeService, app_config: AppConfig) -> int:
    """Execute one non-daemon sub-command and print its JSON result."""
    if args.command == "nudges":
        candidates = asyncio.run(service.get_nudges(args.member_id, args.job_id))
        _print_json([candidate.model_dump() for candidate in candidates])

    elif args.command == "interact":
        interaction_id = service.post_interaction(
            {
                "member_id": args.member_id,
                "job_id": args.job_id,
                "nudge_id": args.nudge_id,
                "action": args.action,
                "metadata": _parse_metadata(args.meta),
            }
        )
        _print_json({"interaction_id": interaction_id})

    elif args.command == "stats":
        _print_json(service.stats({"job_id": args.job_id, "member_id": args.member_id}).to_dict())

    elif args.command == "funnel":
        _print_json(service.funnel(args.job_id, args.days).to_dict())

    elif args.command == "budget":
        _print_json(asyncio.run(service.budget_status()).to_dict())

    elif args.command == "summarize":
        summary = asyncio.run(service.summarize_job(args.job_id, use_fallback=args.fallback))
        _print_json({"job_id": args.job_id, "bullets": summary.bullets, "source": summary.source})

    elif args.command == "score":
        scores = service.score_members(args.job_id, args.member_ids, MatchTier(args.min_tier))
        _print_json([score.to_dict() for score in scores])

    elif args.command == "purge":
        days = args.days if args.days is not None else app_config.retention.event_retention_days
        if days < MIN_RETENTION_DAYS:
            raise ValidationError(f"Retention must be at least {MIN_RETENTION_DAYS} days (got {days})")
        result = RetentionPurgeJob(service.interactions, service.events, days)()
        _print_json(
            {
                "retention_days": days,
                "events_deleted": result.events_deleted,
                "interactions_deleted": result.interactions_deleted,
                "failed": result.failed,
            }
        )
        return 1 if result.failed else 0

    return 0


def serve(service: ReferralNudgeService, app_config: AppConfig) -> int:
    """Run the retention purge on its interval until SIGINT/SIGTERM."""
    if not app_config.retention.enabled:
        logger.warning(
            "Retention purge is disabled in configuration; nothing to schedule",
            extra={"event": "service.serve.disabled"},
        )
        return 0

    shutdown_event = threading.Event()
    scheduler_service = SchedulerService(
        purge_callable=RetentionPurgeJob(
            service.interactions, service.events, app_config.retention.event_retention_days
        ),
        interval_seconds=app_config.retention.purge_interval_seconds,
        shutdown_event=shutdown_event,
    )

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        scheduler_service.shutdown(wait=False)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    scheduler_service.start()
    logger.info(
        "Scheduler started. Press Ctrl+C to stop",
        extra={"event": "service.daemon_mode.started"},
    )

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info(
            "Keyboard interrupt received, shutting down",
            extra={"event": "service.keyboard_interrupt"},
        )
        scheduler_service.shutdown(wait=False)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the referral nudge engine CLI.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=env_config.environment,
            stream=sys.stderr,
        )

        logger.info(
            "Referral nudge engine starting",
            extra={
                "event": "service.starting",
                "command": args.command,
                "log_level": env_config.log_level,
                "enrichment_enabled": env_config.enrichment_enabled,
            },
        )

        init_database(env_config.database_url)
        service = create_service(app_config, env_config)

        try:
            if args.command == "serve":
                return serve(service, app_config)
            return run_command(args, service, app_config)
        finally:
            service.close()
            close_database()
            logger.info(
                "Referral nudge engine stopped",
                extra={
                    "event": "service.stopping",
                    "uptime_seconds": round(time.time() - start_time, 2),
                },
            )

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except argparse.ArgumentTypeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except NudgeEngineError as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.error(
            f"Command failed: {e}",
            extra={"event": "service.command_failed", "error_type": type(e).__name__},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            extra={"event": "service.failed", "error_type": type(e).__name__, "error": str(e)},
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
