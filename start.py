#!/usr/bin/env python3
"""
Spendwise - Simple Launcher

This script handles:
1. Python version check (requires 3.9+)
2. Dependency verification
3. Database setup (creates the schema if missing)
4. Flask server startup with the background job scheduler

Usage:
    python start.py

Author: Spendwise contributors
License: MIT
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent / "src"))

PORT = 5001


def check_python_version():
    """Verify Python 3.9+ is installed"""
    print("[1/4] Checking Python version...", end=" ")

    version = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    if sys.version_info < (3, 9):
        print("[ERROR]")
        print()
        print("=" * 60)
        print("ERROR: Python 3.9 or higher is required")
        print("=" * 60)
        print(f"You are using Python {version}")
        sys.exit(1)

    print(f"[OK] Python {version}")


def check_dependencies():
    """Verify required packages are installed"""
    print("[2/4] Checking dependencies...", end=" ")

    required = {
        "flask": "Flask",
        "flask_cors": "Flask-CORS",
        "flask_login": "Flask-Login",
        "bcrypt": "bcrypt",
        "dotenv": "python-dotenv",
        "dateutil": "python-dateutil",
        "apscheduler": "APScheduler",
    }

    missing = []
    for module, package in required.items():
        try:
            __import__(module)
        except ImportError:
            missing.append(package)

    if missing:
        print("[ERROR]")
        print()
        print("=" * 60)
        print("ERROR: Missing required packages")
        print("=" * 60)
        print()
        for pkg in missing:
            print(f"  - {pkg}")
        print()
        print("To install all dependencies, run:")
        print("  pip install -e .")
        sys.exit(1)

    print("[OK]")


def setup_database():
    """Create the schema on first run"""
    from spendwise import config
    from spendwise.setup_sqlite import create_database, verify_schema

    db_path = Path(config.DATABASE_PATH)
    if db_path.exists() and verify_schema(db_path):
        print("[3/4] Database found...", end=" ")
        print("[OK]")
        return

    print("[3/4] Creating new database...", end=" ")
    create_database(db_path)
    print("[OK]")


def start_flask_server():
    """Launch the API server and the background jobs"""
    from spendwise.api import create_app

    print("[4/4] Starting Spendwise server...")
    print()
    print("=" * 60)
    print("Spendwise is running!")
    print("=" * 60)
    print()
    print(f"  API:    http://127.0.0.1:{PORT}/api/health")
    print("  Press Ctrl+C to stop the server")
    print()

    app = create_app({"ENABLE_SCHEDULER": True})
    scheduler = app.extensions.get("spendwise_scheduler")
    try:
        app.run(debug=False, port=PORT, use_reloader=False)
    finally:
        if scheduler is not None:
            scheduler.shutdown()


def main():
    """Main entry point"""
    print()
    print("=" * 60)
    print("Spendwise - Personal Finance Tracker")
    print("=" * 60)
    print()

    try:
        check_python_version()
        check_dependencies()
        setup_database()
        start_flask_server()
    except KeyboardInterrupt:
        print()
        print("=" * 60)
        print("Server stopped. Thank you for using Spendwise!")
        print("=" * 60)
    except Exception as e:
        print()
        print("=" * 60)
        print("ERROR: An unexpected error occurred")
        print("=" * 60)
        print(f"Error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
