from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from trackpool.models.user import User
from trackpool.core.security import verify_password

async def get_user_by_email(db: AsyncSession, email: str):
    result = await db.execute(select(User).where(User.email == email.strip().lower()))
    return result.scalar_one_or_none()

async def get_user(db: AsyncSession, user_id):
    return await db.get(User, user_id)

async def authenticate_user(db: AsyncSession, email: str, password: str):
    user = await get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        return None
    return user
