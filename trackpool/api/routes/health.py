from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
import logging
from trackpool.core.exceptions import StoreUnavailableException
from trackpool.db.session import get_db

logger = logging.getLogger("health")

router = APIRouter()

@router.get("")
async def health():
    return {"status": "ok"}

@router.get("/db")
async def health_db(db: AsyncSession = Depends(get_db)):
    try:
        await db.execute(text("SELECT 1"))
    except Exception as ex:
        logger.exception("database health check failed")
        raise StoreUnavailableException() from ex
    return {"status": "ok", "database": "ok"}
