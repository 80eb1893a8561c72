#!/usr/bin/env python3
"""CLI script to create a deal room user.

Usage:
    uv run python scripts/create_user.py --email ana@bank.com --role Bookrunner --password changeme
    uv run python scripts/create_user.py --email pm@fund.com --role Investor --password changeme \
        --lender-id 3f2a... --deal 101 --deal 102

Connects directly to the database using DATABASE_URL from environment or .env file.
Creates tables if needed, inserts the user, and grants deal access.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Ensure project root is on sys.path so we can import src.dealroom
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


async def create(
    email: str,
    role: str,
    password: str,
    name: str | None,
    lender_id: str | None,
    deals: list[str],
) -> None:
    """Create the user through the repository."""
    from src.dealroom.core.database import close_db, get_session, init_db
    from src.dealroom.core.security import hash_password
    from src.dealroom.deals.repository import DealRepository

    await init_db()
    repo = DealRepository(get_session)

    if await repo.get_user_by_email(email) is not None:
        print(f"User already exists: {email}")
        await close_db()
        sys.exit(1)

    user = await repo.create_user(
        email,
        role,
        name=name,
        hashed_password=hash_password(password),
        lender_id=lender_id,
    )
    print("User created:")
    print(f"  ID:    {user.id}")
    print(f"  Email: {user.email}")
    print(f"  Role:  {user.role.value if user.role else role}")

    for deal_id in deals:
        await repo.grant_deal_access(user.id, deal_id)
        print(f"  Deal access granted: {deal_id}")

    await close_db()


def main() -> None:
    from src.dealroom.access.roles import Role, normalize_role

    parser = argparse.ArgumentParser(description="Create a deal room user")
    parser.add_argument("--email", required=True, help="Login email")
    parser.add_argument("--role", required=True, help="Issuer, Bookrunner or Investor")
    parser.add_argument("--password", required=True, help="Initial password")
    parser.add_argument("--name", default=None, help="Display name")
    parser.add_argument("--lender-id", default=None, help="Linked lender record (investors)")
    parser.add_argument("--deal", action="append", default=[], help="Deal ID to grant (repeatable)")
    args = parser.parse_args()

    role = normalize_role(args.role)
    if role is None:
        parser.error(f"--role must be one of: {', '.join(r.value for r in Role)}")

    asyncio.run(
        create(args.email, role.value, args.password, args.name, args.lender_id, args.deal)
    )


if __name__ == "__main__":
    main()
