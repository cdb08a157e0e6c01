from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from trackpool.core.config import settings
import trackpool.models

engine = create_async_engine(settings.database_url, echo=settings.debug)
AsyncSessionLocal = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

async def get_db():
    async with AsyncSessionLocal() as session:
        yield session

async def init_db():
    from trackpool.models.base import Base
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
