"""
Provision a user with a password and role.

Roles are assigned out of band; this is that band. Run with
``python -m devreview.scripts.create_user --email ... --password ... --role evaluator``.
"""

import argparse
import asyncio

from sqlmodel import select

from devreview.core.auth import hash_password
from devreview.core.database import get_session_context, init_db
from devreview.models.user import User
from devreview_shared.schemas.common import Role


async def create_user(email: str, password: str, role: str | None) -> None:
    await init_db()

    async with get_session_context() as session:
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if not user:
            user = User(email=email, role=role, password_hash=hash_password(password))
            session.add(user)
            print(f"Created user: {email} ({role or 'no role'})")
        else:
            user.role = role
            user.password_hash = hash_password(password)
            session.add(user)
            print(f"Updated user: {email} ({role or 'no role'})")

    print("Done.")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create or update a review platform user.")
    parser.add_argument("--email", required=True, help="Email address for the user")
    parser.add_argument("--password", required=True, help="Password for the user")
    parser.add_argument(
        "--role",
        choices=[r.value for r in Role],
        default=None,
        help="Role to assign (omit to leave the account unprovisioned)",
    )

    args = parser.parse_args()

    asyncio.run(create_user(args.email, args.password, args.role))


if __name__ == "__main__":
    main()
