#!/usr/bin/env python3
"""
CV Portal -- operational command line.

Usage:
  python main.py create-admin --email admin@example.com --name "System Admin"
  python main.py create-admin --email admin@example.com --name "System Admin" --password 'S3cret!'

create-admin creates an admin account, or promotes and reactivates an
existing account with that email. When --password is omitted it is read
interactively. For an existing account the password is only replaced when
--password is given explicitly.

Environment variables:
  DATABASE_URL   Store location (default: SQLite file next to the project).
  SECRET_KEY     Required unless DEBUG=true (see core/config.py).
"""

import argparse
import getpass
import sys
import uuid
from typing import Optional

from auth.models import ROLE_ADMIN, User
from auth.service import MAX_PASSWORD_LENGTH, MIN_PASSWORD_LENGTH
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import get_settings


def create_admin(store: UserStore, email: str, name: str, password: Optional[str]) -> str:
    """Create or promote an admin account and return its user id."""
    existing = store.get_by_email(email)
    if existing is not None:
        updates: dict = {"role": ROLE_ADMIN, "is_active": True}
        if password:
            updates["hashed_password"] = hash_password(password)
        store.update_user(existing.id, **updates)
        print(f"  [+] Promoted existing user {email} to admin.")
        return existing.id

    if not password:
        raise ValueError("A password is required to create a new admin account.")
    user = User(
        id=str(uuid.uuid4()),
        email=email,
        name=name,
        hashed_password=hash_password(password),
        role=ROLE_ADMIN,
    )
    store.create_user(user)
    print(f"  [+] Created admin {email} ({user.id}).")
    return user.id


def _read_password(args: argparse.Namespace, store: UserStore) -> Optional[str]:
    if args.password:
        return args.password
    if store.get_by_email(args.email) is not None:
        return None
    first = getpass.getpass("  Password: ")
    second = getpass.getpass("  Repeat password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        sys.exit(1)
    return first


def main() -> None:
    parser = argparse.ArgumentParser(
        description="CV Portal operational commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    admin = sub.add_parser("create-admin", help="Create or promote an admin account")
    admin.add_argument("--email", required=True)
    admin.add_argument("--name", default="System Admin")
    admin.add_argument("--password", default=None, help="Prompted for when omitted")

    args = parser.parse_args()
    settings = get_settings()
    store = UserStore(settings.database_url, settings.db_timeout_seconds)
    try:
        if args.command == "create-admin":
            password = _read_password(args, store)
            if password is not None and (
                len(password) < MIN_PASSWORD_LENGTH or len(password.encode("utf-8")) > MAX_PASSWORD_LENGTH
            ):
                print(f"  [!] Password must be {MIN_PASSWORD_LENGTH}-{MAX_PASSWORD_LENGTH} characters (ASCII).")
                sys.exit(1)
            try:
                create_admin(store, args.email.strip(), args.name.strip(), password)
            except ValueError as e:
                print(f"  [!] {e}")
                sys.exit(1)
    finally:
        store.close()


if __name__ == "__main__":
    main()
