#!/usr/bin/env python3
"""
AreaGate -- operator command line.

Bootstraps accounts and mints magic links without going through the HTTP API,
e.g. to create the first admin on a fresh database.

Usage:
  python main.py create-user admin --group 1 --area HQ --role admin
  python main.py create-user alice --group 7 --area "North Gate" --role "Area Admin" --password ...
  python main.py magic-link bob

Environment variables (see core/config.py):
  SESSION_SECRET, TOKEN_SECRET   Required unless DEBUG=true (magic-link only)
  AUTH_DB_URL                    Defaults to a SQLite file next to auth/store.py
  BACKEND_URL                    Base of the printed login link
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.codec import TokenCodec
from auth.magic_links import MagicLinkManager
from auth.models import Role, User
from auth.passwords import hash_password
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import get_settings

_MIN_PASSWORD = 8


def _open_store(db_url: Optional[str]) -> UserStore:
    url = db_url or get_settings().auth_db_url
    return UserStore(url) if url else UserStore()


def _read_password(given: Optional[str]) -> Optional[str]:
    """Return the password from the flag, or prompt twice for it."""
    if given is not None:
        return given
    first = getpass.getpass("Password: ")
    if first != getpass.getpass("Confirm password: "):
        print("  [!] Passwords do not match.", file=sys.stderr)
        return None
    return first


def cmd_create_user(args: argparse.Namespace) -> int:
    password = _read_password(args.password)
    if password is None:
        return 1
    if len(password) < _MIN_PASSWORD:
        print(f"  [!] Password must be at least {_MIN_PASSWORD} characters.", file=sys.stderr)
        return 1

    store = _open_store(args.db_url)
    try:
        user_id = store.create_user(
            User(
                username=args.username,
                role=Role.parse(args.role),
                group_id=args.group,
                area_name=args.area,
                hashed_password=hash_password(password),
            )
        )
    except IntegrityError:
        print(f"  [!] A user named '{args.username}' already exists.", file=sys.stderr)
        return 1
    finally:
        store.close()

    print(f"Created user '{args.username}' (id {user_id}, role {args.role}, group {args.group}).")
    return 0


def cmd_magic_link(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = _open_store(args.db_url)
    try:
        user = store.get_active_by_username(args.username)
        if user is None:
            print(f"  [!] No active user named '{args.username}'.", file=sys.stderr)
            return 1
        codec = TokenCodec(settings.session_secret, settings.token_secret)
        sessions = SessionManager(codec, store, lifetime_seconds=settings.session_lifetime_seconds)
        links = MagicLinkManager(
            codec,
            store,
            sessions,
            lifetime_seconds=settings.magic_link_lifetime_seconds,
            backend_url=settings.backend_url,
        )
        token, record = links.generate(user)
    finally:
        store.close()

    print(f"Magic link for '{user.username}' (expires {record.expires_at}):")
    print(links.login_link(token))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="areagate",
        description="AreaGate operator commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user admin --group 1 --area HQ --role admin
  python main.py magic-link alice
        """,
    )
    parser.add_argument(
        "--db-url",
        metavar="URL",
        default=None,
        help="SQLAlchemy URL of the auth database (default: AUTH_DB_URL or the bundled SQLite file)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create a user account")
    create.add_argument("username", help="Unique login name")
    create.add_argument("--group", type=int, required=True, metavar="ID", help="Group (area) id")
    create.add_argument("--area", required=True, metavar="NAME", help="Area display name")
    create.add_argument(
        "--role",
        choices=[r.value for r in Role],
        default=Role.BASIC_USER.value,
        help="Role (default: Basic User)",
    )
    create.add_argument(
        "--password",
        default=None,
        help="Password (prompted for when omitted; avoid on shared machines, it lands in shell history)",
    )
    create.set_defaults(func=cmd_create_user)

    link = sub.add_parser("magic-link", help="Mint a magic-link login URL for a user")
    link.add_argument("username", help="Existing active user")
    link.set_defaults(func=cmd_magic_link)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
