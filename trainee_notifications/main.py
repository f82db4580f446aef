"""Main entry point for the trainee notification service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import signal
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

from trainee_notifications.config.environment import EnvironmentConfig
from trainee_notifications.config.exceptions import ConfigurationError
from trainee_notifications.config.loader import load_config
from trainee_notifications.config.models import AppConfig
from trainee_notifications.logging import get_logger
from trainee_notifications.logging.config import configure_logging
from trainee_notifications.notifications.models import MigrationIncompleteError
from trainee_notifications.persistence.database import close_database, init_database
from trainee_notifications.wiring import Application, build_application

logger = get_logger(__name__, component="cli")


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Priority: CLI > environment > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    return app_config, env_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Trainee notification service - milestone scheduling and delivery"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--sweep-once",
        action="store_true",
        help="Run one overdue sweep and outbox drain, then exit",
    )
    mode.add_argument(
        "--migrate-failed",
        action="store_true",
        help="Resend or reschedule FAILED emails that were never retried, then exit",
    )
    return parser


def run_sweep_once(app: Application) -> int:
    result = app.sweeper.run()
    handled = app.consumer.run()
    dead = app.channel.dead_letters(app.outbox.destination)

    logger.info(
        f"Sweep completed: {result.overdue} overdue, {handled} sent, {len(dead)} dead-lettered",
        extra={
            "event": "service.sweep_once.completed",
            "overdue": result.overdue,
            "handled": handled,
            "dead_lettered": len(dead),
        },
    )
    return 1 if result.failed or dead else 0


def run_migration(app: Application) -> int:
    try:
        app.migration.run()
    except MigrationIncompleteError as e:
        logger.error(
            f"Migration incomplete: {e}",
            extra={"event": "service.migration.incomplete", "failed_ids": e.failed_ids},
        )
        return 1
    return 0


def run_daemon(app: Application, app_config: AppConfig) -> int:
    shutdown_event = threading.Event()
    app.scheduler_service.shutdown_event = shutdown_event
    app.register_periodic_jobs(app_config.schedules.overdue_sweep_interval_seconds)

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        app.scheduler_service.shutdown(wait=False)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    app.scheduler_service.start()
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
        app.scheduler_service.shutdown(wait=False)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    try:
        # Step 1: Configuration, before logging so the format is known
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        # Step 2: Logging
        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=env_config.environment,
        )
        mode = "migrate" if args.migrate_failed else "sweep" if args.sweep_once else "daemon"
        logger.info(
            "Trainee notification service starting",
            extra={
                "event": "service.starting",
                "mode": mode,
                "log_level": env_config.log_level,
                "timezone": app_config.timezone,
            },
        )

        # Step 3: Database and services
        init_database(env_config.database_url)
        app = build_application(app_config, env_config)

        # Step 4: Branch on mode
        try:
            if args.migrate_failed:
                return run_migration(app)
            if args.sweep_once:
                return run_sweep_once(app)
            return run_daemon(app, app_config)
        finally:
            close_database()
            logger.info(
                "Trainee notification service stopped",
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
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error during startup",
            extra={
                "event": "service.startup.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
