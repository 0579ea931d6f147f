#!/usr/bin/env python3
"""
Task Tracker - multi-user task lists behind a signed session cookie.
"""

import argparse
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep tasktracker imports lazy (inside main) so `--migrate` does not need the web stack
# or the session secret.
#


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run the task tracker server or manage its database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create or verify the database schema
  python main.py --migrate

  # Serve the web app and API
  AUTH_SESSION_SECRET=... DATABASE_URL=... python main.py --serve --port 8080
        """,
    )
    parser.add_argument("--serve", action="store_true", help="Run the HTTP server (pages + JSON API)")
    parser.add_argument("--migrate", action="store_true", help="Create or verify the database schema and exit")
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Server listen port (default: 8080)")

    args = parser.parse_args()

    try:
        if args.migrate:
            from tasktracker.store.migrate import main as migrate_main

            rc = migrate_main()
            if rc or not args.serve:
                sys.exit(rc)

        if args.serve:
            from tasktracker.api.app import run

            run(host=args.host, port=args.port)
            return

        parser.print_help()

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        raise


if __name__ == "__main__":
    main()
