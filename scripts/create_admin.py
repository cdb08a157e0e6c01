"""Create (or promote) an administrator account.

Usage:
    python -m scripts.create_admin admin@example.com "Admin Name" s3cret-pass
"""
import asyncio
import logging
import sys

from trackpool.core.logging_config import setup_logging
from trackpool.core.security import hash_password
from trackpool.crud.user import get_user_by_email
from trackpool.db.session import AsyncSessionLocal, init_db
from trackpool.models.user import User

logger = logging.getLogger("create_admin")


async def create_admin(email: str, name: str, password: str) -> User:
    await init_db()
    async with AsyncSessionLocal() as db:
        user = await get_user_by_email(db, email)
        if user is None:
            user = User(email=email.strip().lower(), name=name)
            db.add(user)
            logger.info(f"Creating admin {email}")
        else:
            logger.info(f"Promoting existing user {email} to admin")
        user.password_hash = hash_password(password)
        user.is_admin = True
        user.is_active = True
        await db.commit()
        await db.refresh(user)
        return user


def main(argv):
    if len(argv) != 4:
        print(__doc__)
        return 1
    setup_logging()
    _, email, name, password = argv
    user = asyncio.run(create_admin(email, name, password))
    print(f"Admin ready: {user.id} {user.email}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
