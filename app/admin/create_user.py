from __future__ import annotations

import argparse
import asyncio
import getpass

from app.core.database import AsyncSessionLocal, init_db
from app.services.users import DuplicateUserError, UserStore


async def _create_user(email: str, password: str, username: str | None) -> None:
    await init_db()
    async with AsyncSessionLocal() as session:
        user = await UserStore(session).create(email, password, username)

    print(f"Created user: {user.email} (id={user.id}, username={user.username or '-'})")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a login account.")
    parser.add_argument("--email", required=True, help="Login email.")
    parser.add_argument("--username", help="Optional unique username.")
    parser.add_argument("--password", help="Password (prompted if omitted).")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    email = args.email.strip().lower()
    password = args.password or getpass.getpass("Password: ")
    if len(password.strip()) < 5:
        raise SystemExit("Password must be at least 5 characters")

    try:
        asyncio.run(_create_user(email=email, password=password, username=args.username))
    except DuplicateUserError as exc:
        raise SystemExit(str(exc)) from exc


if __name__ == "__main__":
    main()
