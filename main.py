#!/usr/bin/env python3
"""
gatekey -- Password login, JWT issuance and bearer-token route guards.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py serve --reload
  python main.py hash-password
  echo 'hunter2' | python main.py hash-password --stdin

Environment variables (see core/config.py):
  SECRET_KEY            Required unless DEBUG=true. At least 32 characters.
  DEBUG                 true = auto-generate SECRET_KEY for local development.
  TOKEN_ISSUER          iss claim written to and required on every token.
  TOKEN_EXPIRE_SECONDS  Token lifetime (default 3600).
  DATABASE_URL          SQLAlchemy URL for the demo user store.
"""

import argparse
import getpass
import sys

from auth.passwords import hash_password


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _cmd_hash_password(args: argparse.Namespace) -> int:
    """Print a bcrypt hash for seeding a user database by hand."""
    if args.stdin:
        password = sys.stdin.readline().rstrip("\n")
    else:
        password = getpass.getpass("Password: ")
        if password != getpass.getpass("Repeat: "):
            print("  [!] Passwords do not match.", file=sys.stderr)
            return 1
    if not password:
        print("  [!] Empty password.", file=sys.stderr)
        return 1
    try:
        hashed = hash_password(password)
    except ValueError as exc:
        print(f"  [!] {exc}.", file=sys.stderr)
        return 1
    print(hashed)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gatekey",
        description="Password login, JWT issuance and bearer-token route guards.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the demo API under uvicorn.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=4000)
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only).")
    serve.set_defaults(func=_cmd_serve)

    hashpw = sub.add_parser("hash-password", help="Print a bcrypt hash of a password.")
    hashpw.add_argument("--stdin", action="store_true", help="Read the password from the first line of stdin.")
    hashpw.set_defaults(func=_cmd_hash_password)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
