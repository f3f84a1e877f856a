#!/usr/bin/env python3
"""
Clubhouse -- account administration from the shell.

Usage:
  python main.py create-user --username admin --role admin
  python main.py create-user --username coach --role editor --email coach@example.org --password s3cret!
  python main.py list-users

The password is prompted for (twice) when --password is omitted.

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the user database. Defaults to the SQLite
                file next to auth/store.py.

SECRET_KEY and CSRF_SECRET are not needed here; only the web app uses them.
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.models import ROLE_NAMES, User
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import DatabaseSettings

_MIN_PASSWORD_LENGTH = 6


def _read_password(given: Optional[str]) -> Optional[str]:
    if given:
        return given
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Repeat password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        return None
    return first


def cmd_create_user(store: UserStore, args: argparse.Namespace) -> int:
    password = _read_password(args.password)
    if password is None:
        return 1
    if len(password) < _MIN_PASSWORD_LENGTH:
        print(f"  [!] Password must be at least {_MIN_PASSWORD_LENGTH} characters.")
        return 1
    try:
        user_id = store.create_user(
            User(
                username=args.username,
                role=args.role,
                email=args.email,
                hashed_password=hash_password(password),
                created_by="cli",
            )
        )
    except IntegrityError:
        print(f"  [!] A user named '{args.username}' (or with that email) already exists.")
        return 1
    print(f"  Created {args.role} '{args.username}' (id={user_id})")
    return 0


def cmd_list_users(store: UserStore, args: argparse.Namespace) -> int:
    users = store.list_users()
    if not users:
        print("  No users.")
        return 0
    for u in users:
        status = "active" if u.is_active else "inactive"
        print(f"  {u.id:>4}  {u.username:<24} {u.role:<8} {status:<8} {u.email or ''}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Clubhouse account administration")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create a user account")
    create.add_argument("--username", required=True)
    create.add_argument("--role", required=True, choices=sorted(ROLE_NAMES))
    create.add_argument("--email", default=None)
    create.add_argument("--password", default=None, help="Omit to be prompted")
    create.set_defaults(func=cmd_create_user)

    listing = sub.add_parser("list-users", help="List user accounts")
    listing.set_defaults(func=cmd_list_users)
    return parser


def main(argv: Optional[list[str]] = None, store: Optional[UserStore] = None) -> int:
    args = build_parser().parse_args(argv)
    owns_store = store is None
    if store is None:
        store = UserStore(DatabaseSettings().database_url)
    try:
        return args.func(store, args)
    finally:
        if owns_store:
            store.close()


if __name__ == "__main__":
    sys.exit(main())
