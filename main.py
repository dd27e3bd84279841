#!/usr/bin/env python3
"""
Account service operator CLI.

Registration over HTTP only ever creates USER accounts, so the first ADMIN
has to be created here, directly against the configured database.

Usage:
  python main.py create-admin --name "Ada Lovelace" --username ada --email ada@example.com
  python main.py create-admin --name Ops --username ops --email ops@example.com --password-env OPS_PASSWORD
  python main.py list-users

Environment variables:
  DATABASE_URL    SQLAlchemy URL of the account database (see core/config.py).
  SECRET_KEY      Required unless DEBUG=true. Not used for signing here, but
                  Settings validates it the same way the server does.
"""

import argparse
import asyncio
import getpass
import os
import sys

from accounts.models import Account
from accounts.service import AccountService
from accounts.store import AccountStore
from auth.models import Role
from auth.passwords import PasswordHasher
from auth.tokens import TokenService
from core.config import get_settings
from core.errors import AccountServiceError, ValidationError


def _build_service() -> AccountService:
    settings = get_settings()
    store = AccountStore(settings.database_url)
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds, max_workers=1)
    tokens = TokenService(settings.secret_key, key_id=settings.secret_key_id)
    return AccountService(store, hasher, tokens)


def _read_password(env_var: str | None) -> str:
    if env_var:
        value = os.environ.get(env_var, "")
        if not value:
            raise SystemExit(f"  [!] Environment variable {env_var} is empty or not set.")
        return value
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Repeat password: ")
    if first != second:
        raise SystemExit("  [!] Passwords do not match.")
    return first


async def create_admin(service: AccountService, name: str, username: str, email: str, password: str) -> int:
    """Insert an ADMIN account in one store write. Returns the new account id.

    Raises ConflictError if the username or email is taken, in which case
    nothing is written.
    """
    fields = {"name": name, "username": username, "email": email}
    for field, value in fields.items():
        if not value or not value.strip():
            raise ValidationError(f"{field} must be a non-empty string.")
    if not password:
        raise ValidationError("password must be a non-empty string.")

    account = Account(
        name=name.strip(),
        username=username.strip(),
        email=email.strip(),
        password_hash=await service.hasher.hash_async(password),
        role=Role.ADMIN,
    )
    return await asyncio.to_thread(service.store.insert, account)


async def list_users(service: AccountService) -> None:
    accounts = await service.list_all()
    if not accounts:
        print("  No accounts.")
        return
    print(f"  {'ID':>5}  {'ROLE':<6}  {'USERNAME':<24}  EMAIL")
    for a in accounts:
        print(f"  {a.id:>5}  {a.role.value:<6}  {a.username:<24}  {a.email}")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="account-service",
        description="Operator commands for the account service database.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-admin", help="Create an ADMIN account")
    create.add_argument("--name", required=True)
    create.add_argument("--username", required=True)
    create.add_argument("--email", required=True)
    create.add_argument(
        "--password-env",
        metavar="VAR",
        help="Read the password from this environment variable instead of prompting",
    )

    sub.add_parser("list-users", help="Print every account")

    args = parser.parse_args()
    service = _build_service()
    try:
        if args.command == "create-admin":
            password = _read_password(args.password_env)
            account_id = asyncio.run(create_admin(service, args.name, args.username, args.email, password))
            print(f"  Created admin account {account_id} ({args.username}).")
        else:
            asyncio.run(list_users(service))
    except AccountServiceError as exc:
        print(f"  [!] {exc.message}", file=sys.stderr)
        sys.exit(1)
    finally:
        service.hasher.close()
        service.store.close()


if __name__ == "__main__":
    main()
