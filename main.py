#!/usr/bin/env python3
"""
MyTunes - multi-user playlist manager.

Serves the JSON API and provides the one-off admin tasks (schema migration,
bootstrap admin account).
"""

import argparse
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

logger = logging.getLogger("mytunes")

#
# NOTE: Keep mytunes imports lazy (inside functions) so `--help` does not need
# the server or database dependencies.
#


def migrate() -> int:
    """Apply pending SQL migrations."""
    from mytunes.config import load_db_config
    from mytunes.db.migrate import apply_migrations

    dsn = load_db_config().dsn
    if not dsn:
        print("Postgres not configured (set POSTGRES_DSN or POSTGRES_* env vars).", file=sys.stderr)
        return 2
    n, versions = apply_migrations(dsn=dsn)
    if n:
        print(f"Applied {n} migration(s): {', '.join(versions)}")
    else:
        print("No pending migrations.")
    return 0


def seed_admin(username: str, password: str) -> int:
    """Create the admin account (no-op if the username already exists)."""
    import psycopg

    from mytunes.auth.local import initialize_admin_user, password_too_long
    from mytunes.config import load_db_config

    if not username or not password:
        print("Admin username and password are required.", file=sys.stderr)
        return 2
    if password_too_long(password):
        print("Admin password is longer than 72 bytes.", file=sys.stderr)
        return 2

    dsn = load_db_config().dsn
    if not dsn:
        print("Postgres not configured (set POSTGRES_DSN or POSTGRES_* env vars).", file=sys.stderr)
        return 2

    with psycopg.connect(dsn) as conn:
        created = initialize_admin_user(conn, username, password)
    print("Admin user created." if created else "Admin user already exists.")
    return 0


def main(argv=None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="MyTunes playlist manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create tables
  python main.py --migrate

  # Create the admin account from ADMIN_INITIAL_USERNAME / ADMIN_INITIAL_PASSWORD
  python main.py --seed-admin

  # Run the API server
  python main.py --serve --port 3000
        """,
    )
    parser.add_argument("--serve", action="store_true", help="Run the HTTP API server")
    parser.add_argument("--migrate", action="store_true", help="Apply pending database migrations and exit")
    parser.add_argument("--seed-admin", action="store_true", help="Create the admin account and exit")
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=3000, help="Server listen port (default: 3000)")
    parser.add_argument("--admin-username", help="Admin username for --seed-admin (default: ADMIN_INITIAL_USERNAME)")
    parser.add_argument("--admin-password", help="Admin password for --seed-admin (default: ADMIN_INITIAL_PASSWORD)")

    args = parser.parse_args(argv)

    try:
        if args.migrate:
            return migrate()

        if args.seed_admin:
            from mytunes.config import load_auth_config

            cfg = load_auth_config()
            return seed_admin(
                args.admin_username or cfg.admin_initial_username,
                args.admin_password or cfg.admin_initial_password or "",
            )

        if args.serve:
            from mytunes.api.server import run

            run(host=args.host, port=args.port)
            return 0

        parser.print_help()
        return 0
    except Exception:
        logger.exception("Command failed")
        raise


if __name__ == "__main__":
    raise SystemExit(main())
