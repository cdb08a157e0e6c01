from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from trackpool.api.routes import tracking_ids, labels, auth, admin, health
from trackpool.core.config import settings
from trackpool.db.session import init_db
from trackpool.handlers.exception_handlers import init_exception_handlers
import logging
from trackpool.core.logging_config import setup_logging
setup_logging()

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],             # must include "OPTIONS"
    allow_headers=["*"],             # allow custom headers like Authorization
)


#init exception handlers
init_exception_handlers(app)
app.include_router(auth.router, prefix="/auth", tags=["Auth"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])
app.include_router(tracking_ids.router, prefix="/tracking-ids", tags=["Tracking IDs"])
app.include_router(labels.router, prefix="/labels", tags=["Labels"])
app.include_router(health.router, prefix="/health", tags=["Health"])

@app.on_event("startup")
async def startup():
    await init_db()
    logger.info("database schema ready")
