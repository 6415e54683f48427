#!/usr/bin/env python3
"""
CodeStandoff backend -- GraphQL API server.

Usage:
  python main.py                      # serve on PORT (default 8080)
  python main.py --port 9000 --reload
  python main.py --sweep-sessions     # delete expired sessions and exit

Environment variables (see core/config.py for the full list):
  SECRET_KEY     JWT signing key, at least 32 chars. Required unless DEBUG=true.
  DATABASE_URL   SQLAlchemy URL; overrides DB_HOST / DB_PORT / DB_USER / ...
  DEBUG          true for local development (generated key, non-Secure cookies).
"""

import argparse

import uvicorn

from auth.store import UserStore
from core.config import get_settings
from core.database import resolve_database_url


def sweep_sessions() -> int:
    """Remove expired session rows. Returns the number deleted."""
    store = UserStore(resolve_database_url(get_settings()))
    try:
        return store.clean_expired_sessions()
    finally:
        store.close()


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="codestandoff",
        description="CodeStandoff GraphQL API server.",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")  # nosec B104
    parser.add_argument("--port", type=int, default=settings.port, help=f"Listen port (default: {settings.port})")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    parser.add_argument("--sweep-sessions", action="store_true", help="Delete expired sessions and exit")
    args = parser.parse_args()

    if args.sweep_sessions:
        removed = sweep_sessions()
        print(f"  Removed {removed} expired session(s).")
        return

    print(f"  Server starting on http://localhost:{args.port}")
    print(f"  GraphQL endpoint: http://localhost:{args.port}/query")
    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
