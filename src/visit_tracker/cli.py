"""Command-line interface for the visit tracker."""

import argparse
import sys
import time
from typing import List, Optional

from .core.enums import ActorRole


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="visit-tracker",
        description="Visit Tracker - safety tracking for home-care field visits",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", help="Bind address (default: from config)")
    serve.add_argument("--port", type=int, help="Bind port (default: from config)")
    serve.add_argument(
        "--reload", action="store_true", help="Reload on code changes (development)"
    )

    sweep = subparsers.add_parser("sweep", help="Record missed check-ins")
    sweep.add_argument(
        "--once", action="store_true", help="Run a single sweep and exit"
    )
    sweep.add_argument(
        "--interval",
        type=float,
        help="Seconds between sweeps (default: sweep_interval_seconds from config)",
    )

    subparsers.add_parser("init-db", help="Create the database tables")

    token = subparsers.add_parser(
        "issue-token", help="Mint an access token for local testing"
    )
    token.add_argument("actor_id", help="Subject of the token")
    token.add_argument(
        "--role",
        choices=[r.value for r in ActorRole],
        default=ActorRole.PROFESSIONAL.value,
        help="Role claim (default: professional)",
    )
    token.add_argument(
        "--expires-minutes", type=int, help="Lifetime (default: from config)"
    )

    return parser.parse_args(argv)


def run_serve(ns: argparse.Namespace) -> int:
    import uvicorn

    from .config import get_config

    config = get_config()
    uvicorn.run(
        "visit_tracker.main:app",
        host=ns.host or config.server.host,
        port=ns.port or config.server.port,
        reload=ns.reload or config.server.auto_reload,
        log_level="debug" if config.server.debug else "info",
    )
    return 0


def run_sweep(ns: argparse.Namespace) -> int:
    from .api.dependencies import get_notification_dispatcher
    from .config import get_config
    from .db.database import SessionLocal
    from .services.scheduler import CheckInScheduler
    from .utils.logging_config import get_logger, initialize_logging

    initialize_logging()
    logger = get_logger("scheduler")
    interval = ns.interval or get_config().app.sweep_interval_seconds
    dispatcher = get_notification_dispatcher()

    while True:
        db = SessionLocal()
        try:
            results = CheckInScheduler(db).sweep()
        finally:
            db.close()
        dispatcher.dispatch_pending()

        for missed in results:
            print(
                f"{missed.visit_id}: {missed.missed_check_ins} missed, "
                f"{missed.minutes_overdue} min overdue"
            )

        if ns.once:
            return 0
        try:
            time.sleep(interval)
        except KeyboardInterrupt:
            logger.info("Sweep loop stopped")
            return 0


def run_init_db(ns: argparse.Namespace) -> int:
    from .db.database import get_database_url, init_db

    init_db()
    print(f"Database ready at {get_database_url()}")
    return 0


def run_issue_token(ns: argparse.Namespace) -> int:
    from .auth.jwt_auth import get_jwt_manager

    token, expires_at = get_jwt_manager().create_access_token(
        ns.actor_id, ActorRole(ns.role), expires_minutes=ns.expires_minutes
    )
    print(token)
    print(f"expires at {expires_at.isoformat()}", file=sys.stderr)
    return 0


COMMANDS = {
    "serve": run_serve,
    "sweep": run_sweep,
    "init-db": run_init_db,
    "issue-token": run_issue_token,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the visit tracker CLI."""
    ns = parse_args(argv)
    try:
        return COMMANDS[ns.command](ns)
    except KeyboardInterrupt:
        return 130
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
