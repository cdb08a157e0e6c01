from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from typing import Optional
from uuid import UUID
from trackpool.models.user import User
from trackpool.schemas.user import CreateUserRequest, UserSchema
from trackpool.schemas.pagination import SortOrder
from trackpool.db.service import PaginationService
from trackpool.core.exceptions import BusinessLogicException, DatabaseException, UserNotFoundException
from trackpool.core.security import hash_password
from trackpool.crud.user import get_user_by_email

import logging

logger = logging.getLogger(__name__)

class UserService:
    def __init__(self):
        pass

    async def create_user(self, data: CreateUserRequest, db: AsyncSession) -> User:
        existing = await get_user_by_email(db, data.email)
        if existing:
            logger.warning(f"Email already registered for {data.email}")
            raise BusinessLogicException(status_code=400, detail="Email already registered")

        user = User(
            email=data.email,
            name=data.name,
            password_hash=hash_password(data.password),
            is_admin=data.is_admin,
            is_active=True,
        )
        try:
            db.add(user)
            await db.commit()
            await db.refresh(user)
        except IntegrityError as ex:
            await db.rollback()
            raise BusinessLogicException(status_code=400, detail="Email already registered") from ex
        except Exception as ex:
            await db.rollback()
            logger.exception(f"unexpected error creating user {data.email}")
            raise DatabaseException(500, "Unexpected error while creating user") from ex
        logger.info(f"Created {user.role} {user.id} {user.email}")
        return user

    async def get_users(self,
        db: AsyncSession,
        page: int,
        limit: int,
        is_active: Optional[bool] = None,
        is_admin: Optional[bool] = None,
        email: Optional[str] = None):

        filters = {}
        if is_active is not None:
            filters["is_active"] = is_active
        if is_admin is not None:
            filters["is_admin"] = is_admin
        if email:
            filters["email"] = email.strip().lower()

        pagination_service = PaginationService(db)
        try:
            return await pagination_service.paginate(
                model_class=User,
                output_schema=UserSchema,
                page=page,
                limit=limit,
                sort_by="created_at",
                sort_order=SortOrder.desc,
                filters=filters,
            )
        except Exception as ex:
            logger.exception("unexpected error getting users")
            raise DatabaseException(500, "Unexpected error while getting users") from ex

    async def set_active(self, user_id: UUID, is_active: bool, db: AsyncSession) -> User:
        try:
            stmt = (
                update(User)
                .where(User.id == user_id)
                .values(is_active=is_active)
                .execution_options(synchronize_session="fetch")
                .returning(User)
            )
            result = await db.execute(stmt)
            user = result.scalar_one_or_none()
            await db.commit()
        except Exception as ex:
            await db.rollback()
            logger.exception(f"failed to update {user_id} active flag")
            raise DatabaseException(500, "Unexpected error while updating user") from ex

        if user is None:
            raise UserNotFoundException(user_id)
        logger.info(f"User {user_id} active={is_active}")
        return user
