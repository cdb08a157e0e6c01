from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from trackpool.schemas.auth import Token, LoginRequest
from trackpool.schemas.user import UserMeSchema
from trackpool.core.security import create_access_token
from trackpool.core.config import settings
from trackpool.crud.user import authenticate_user
from trackpool.models.user import User
from trackpool.db.session import get_db
from trackpool.api.deps import get_current_user
import logging

logger = logging.getLogger("auth")
router = APIRouter()

SESSION_COOKIE = "access_token"


async def _issue_token(credentials: LoginRequest, db: AsyncSession) -> str:
    """Check credentials and sign a token; deactivated accounts are refused."""
    user = await authenticate_user(db, credentials.email, credentials.password)
    if not user:
        logger.warning(f"Failed login for {credentials.email}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if not user.is_active:
        logger.warning(f"Deactivated account {user.id} tried to log in")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is not active")

    logger.info(f"Issued {user.role} token for {user.id}")
    return create_access_token({
        "user_id": str(user.id),
        "name": user.name,
        "role": user.role,
        "email": user.email,
    })


@router.post("/login")
async def login(credentials: LoginRequest, db: AsyncSession = Depends(get_db)):
    token = await _issue_token(credentials, db)
    response = JSONResponse(content={"message": "Login successful"})
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=not settings.debug,
        samesite="lax",
        max_age=settings.access_token_expire_minutes * 60,
    )
    return response


@router.post("/get-token", response_model=Token)
async def get_token(credentials: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Bearer token for scripted clients that cannot keep cookies."""
    return Token(access_token=await _issue_token(credentials, db))


@router.post("/logout")
async def logout(current_user: User = Depends(get_current_user)):
    logger.info(f"User {current_user.id} logged out")
    response = JSONResponse(content={"message": "Logged out"})
    response.delete_cookie(SESSION_COOKIE)
    return response


@router.get("/me", response_model=UserMeSchema)
async def read_user_me(current_user: User = Depends(get_current_user)):
    return UserMeSchema.model_validate(current_user)
