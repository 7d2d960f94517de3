"""
Spendwise - Command line interface

Maintenance commands for operators:

    spendwise init-db            Create the schema if missing
    spendwise reset-db --yes     Delete every row and recreate the schema
    spendwise run-job recurring  Run one background sweep now
    spendwise seed-demo alice    Fill an account with sample data
    spendwise serve              Start the API with the job scheduler

Author: Spendwise contributors
License: MIT
"""

import argparse
import json
import logging
import sys

from .config import configure_logging, get_config
from .setup_sqlite import create_database, reset_database, verify_schema

logger = logging.getLogger(__name__)


def _build_engine(settings):
    from .engine import build_engine

    engine = build_engine(settings)
    engine.initialize_database()
    return engine


def cmd_init_db(args, settings):
    path = create_database(settings["DATABASE_PATH"])
    if not verify_schema(path):
        print(f"[ERROR] Schema verification failed for {path}")
        return 1
    print(f"[OK] Database ready at {path}")
    return 0


def cmd_reset_db(args, settings):
    if not args.yes:
        print("Refusing to reset without --yes. This deletes ALL data.")
        return 1
    path = reset_database(settings["DATABASE_PATH"])
    print(f"[OK] Database reset at {path}")
    return 0


def cmd_run_job(args, settings):
    from .scheduler import build_scheduler

    engine = _build_engine(settings)
    scheduler = build_scheduler(engine, engine.notifier, settings)
    if args.name not in scheduler.job_names:
        print(f"Unknown job '{args.name}'. Choose from: {', '.join(scheduler.job_names)}")
        return 1

    summary = scheduler.run_job(args.name)
    if summary is None:
        print(f"[ERROR] Job '{args.name}' failed. See the log above.")
        return 1
    print(json.dumps(summary, indent=2))
    return 0


def cmd_seed_demo(args, settings):
    from .demo_data import seed_demo_data

    engine = _build_engine(settings)
    user = engine.login_user(args.username, args.password)[0] if args.password else None
    if user is None:
        success, message, user_id = engine.register_user(args.username, args.password or "demo-password", args.email)
        if not success:
            print(f"[ERROR] {message}")
            return 1
    else:
        user_id = user["user_id"]

    summary = seed_demo_data(engine, user_id, days=args.days)
    print(json.dumps(summary, indent=2))
    return 0


def cmd_serve(args, settings):
    from .api import create_app

    settings["ENABLE_SCHEDULER"] = not args.no_scheduler
    app = create_app(settings)
    scheduler = app.extensions.get("spendwise_scheduler")
    try:
        app.run(host=args.host, port=args.port, debug=False, use_reloader=False)
    finally:
        if scheduler is not None:
            scheduler.shutdown()
    return 0


def build_parser():
    parser = argparse.ArgumentParser(prog="spendwise", description="Spendwise personal finance tracker")
    parser.add_argument("--db", dest="database_path", help="SQLite database file (default: DATABASE_PATH)")
    parser.add_argument("--log-level", default=None, help="Logging level (default: LOG_LEVEL)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_db = subparsers.add_parser("init-db", help="Create the database schema")
    init_db.set_defaults(func=cmd_init_db)

    reset_db = subparsers.add_parser("reset-db", help="Delete all data and recreate the schema")
    reset_db.add_argument("--yes", action="store_true", help="Confirm data deletion")
    reset_db.set_defaults(func=cmd_reset_db)

    run_job = subparsers.add_parser("run-job", help="Run a background job once")
    run_job.add_argument("name", help="recurring | budget-alerts | budget-reset")
    run_job.set_defaults(func=cmd_run_job)

    seed_demo = subparsers.add_parser("seed-demo", help="Create sample data for an account")
    seed_demo.add_argument("username")
    seed_demo.add_argument("--password", help="Password of an existing account, or for the new one")
    seed_demo.add_argument("--email")
    seed_demo.add_argument("--days", type=int, default=120, help="Days of history to generate")
    seed_demo.set_defaults(func=cmd_seed_demo)

    serve = subparsers.add_parser("serve", help="Run the API server")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=5001)
    serve.add_argument("--no-scheduler", action="store_true", help="Do not start background jobs")
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    overrides = {}
    if args.database_path:
        overrides["DATABASE_PATH"] = args.database_path
    if args.log_level:
        overrides["LOG_LEVEL"] = args.log_level
    settings = get_config(**overrides)
    configure_logging(settings["LOG_LEVEL"])

    return args.func(args, settings)


if __name__ == "__main__":
    sys.exit(main())
