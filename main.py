#!/usr/bin/env python3
"""
AccountGuard -- Administrative command line.

Operates on the same database the API uses (DATABASE_URL), without going
through HTTP. Handy for seeding the first admin and for lifting a lockout
before it lapses on its own.

Usage:
  python main.py create-user --email admin@example.com --password s3cret --name Admin --admin --verified
  python main.py create-user --email user@example.com --password s3cret
  python main.py unblock --email user@example.com

Environment variables:
  DATABASE_URL   SQLAlchemy URL of the account database.
  SECRET_KEY     Required unless DEBUG=true (see core/config.py).
"""

import argparse
import logging
import sys

from auth.accounts import AccountService
from auth.auditor import AccessAuditor
from auth.errors import AuthError
from auth.store import AccountStore
from auth.tokens import TokenService
from core.config import AuthPolicy, get_settings

logger = logging.getLogger("accountguard.cli")


def _build_service(store: AccountStore) -> AccountService:
    settings = get_settings()
    policy = AuthPolicy.from_settings(settings)
    auditor = AccessAuditor(store)
    tokens = TokenService.from_settings(settings, store, auditor, policy=policy)
    return AccountService(store, tokens, policy)


def _cmd_create_user(service: AccountService, args: argparse.Namespace) -> int:
    role = "admin" if args.admin else "user"
    try:
        summary = service.create_account(args.name, args.email, args.password, role, verified=args.verified)
    except AuthError as e:
        print(f"  [!] Could not create {args.email}: {e.message}")
        return 1
    print(f"  Created {summary.role} {summary.email} (id={summary.id}, verified={summary.verified})")
    return 0


def _cmd_unblock(service: AccountService, args: argparse.Namespace) -> int:
    try:
        found = service.unblock(args.email)
    except AuthError as e:
        print(f"  [!] Could not unblock {args.email}: {e.message}")
        return 1
    if not found:
        print(f"  [!] No account with email {args.email}")
        return 1
    print(f"  Lockout cleared for {args.email}")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="accountguard",
        description="AccountGuard -- account administration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user --email admin@example.com --password s3cret --admin --verified
  python main.py unblock --email user@example.com
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create an account")
    create.add_argument("--email", required=True, help="Login email (stored lowercased)")
    create.add_argument("--password", required=True, help="Initial password")
    create.add_argument("--name", default="", help="Display name")
    create.add_argument("--admin", action="store_true", help="Give the account the admin role")
    create.add_argument("--verified", action="store_true", help="Mark the email as already verified")

    unblock = sub.add_parser("unblock", help="Reset failed-login counter and lift any active block")
    unblock.add_argument("--email", required=True, help="Email of the blocked account")

    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s %(message)s")
    args = _build_parser().parse_args(argv)

    store = AccountStore(db_url=get_settings().database_url)
    try:
        service = _build_service(store)
        if args.command == "create-user":
            return _cmd_create_user(service, args)
        return _cmd_unblock(service, args)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
