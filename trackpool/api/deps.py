from fastapi import Depends, HTTPException, status, Request, Header
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from uuid import UUID
import logging
from trackpool.db.session import get_db
from trackpool.core.security import decode_access_token
from trackpool.crud.user import get_user
from trackpool.models.user import User

logger = logging.getLogger("auth")

BEARER_PREFIX = "Bearer "


async def get_token_from_cookie_or_header(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> str:
    # browser sessions use the cookie, API clients the bearer header
    token = request.cookies.get("access_token")
    if not token and authorization and authorization.startswith(BEARER_PREFIX):
        token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return token


def _user_id_from_claims(claims: Optional[dict]) -> UUID:
    if not claims or not claims.get("user_id"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    try:
        return UUID(str(claims["user_id"]))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


async def get_current_user(
    token: str = Depends(get_token_from_cookie_or_header),
    db: AsyncSession = Depends(get_db)) -> User:
    user_id = _user_id_from_claims(decode_access_token(token))
    user = await get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if not user.is_active:
        logger.warning(f"Rejected request from deactivated user {user.id}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is not active")
    return user


async def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    """Allocation, ingest and reporting are admin-only."""
    if not current_user.is_admin:
        logger.warning(f"User {current_user.id} attempted an admin operation")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required"
        )
    return current_user
