from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from uuid import UUID
import logging
from trackpool.api.deps import get_current_admin
from trackpool.db.session import get_db
from trackpool.models.user import User
from trackpool.schemas.user import CreateUserRequest, UserSchema
from trackpool.services.user import UserService

logger = logging.getLogger("admin")

router = APIRouter()


def get_user_service():
    return UserService()

@router.get("/users")
async def get_users(
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    user_service: UserService = Depends(get_user_service),
    page: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(20, ge=2, le=100),
    is_active: Optional[bool] = None,
    is_admin: Optional[bool] = None,
    email: Optional[str] = None):
    return await user_service.get_users(
        db,
        page,
        limit,
        is_active=is_active,
        is_admin=is_admin,
        email=email,
    )

@router.post("/users", response_model=UserSchema, status_code=status.HTTP_201_CREATED)
async def create_user(
    data: CreateUserRequest,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    user_service: UserService = Depends(get_user_service)):
    logger.info(f"admin {current_user.id} creating user {data.email}")
    return await user_service.create_user(data, db)

@router.post("/users/{user_id}/activate", response_model=UserSchema)
async def activate_user(
    user_id: UUID,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    user_service: UserService = Depends(get_user_service)):
    return await user_service.set_active(user_id, True, db)

@router.post("/users/{user_id}/deactivate", response_model=UserSchema)
async def deactivate_user(
    user_id: UUID,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    user_service: UserService = Depends(get_user_service)):
    return await user_service.set_active(user_id, False, db)
