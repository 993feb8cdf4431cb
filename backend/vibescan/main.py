import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from vibescan.core.config import settings
from vibescan.core.database import async_session
from vibescan.api.routes.admin import router as admin_router
from vibescan.api.routes.analytics import router as analytics_router
from vibescan.api.routes.collection import router as collection_router
from vibescan.api.routes.events import router as events_router
from vibescan.api.routes.strategy import router as strategy_router
from vibescan.services.cache import drain_background_tasks, get_cache
from vibescan.services.scheduler import start_continuous_syncer, stop_continuous_syncer

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: periodic ledger sync and cache cleanup
    if settings.ENABLE_BACKGROUND_SYNC:
        await start_continuous_syncer()
    yield
    # Shutdown: stop the syncer, let detached refreshes finish, close the cache
    await stop_continuous_syncer()
    await drain_background_tasks()
    await get_cache().close()


app = FastAPI(title=settings.PROJECT_NAME, debug=settings.DEBUG, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(collection_router, prefix="/api/v1")
app.include_router(events_router, prefix="/api/v1")
app.include_router(analytics_router, prefix="/api/v1")
app.include_router(strategy_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")


@app.get("/health")
async def health():
    try:
        async with async_session() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {e}"

    cache_ok = await get_cache().health_check()

    return {
        "status": "ok" if db_status == "connected" and cache_ok else "degraded",
        "db": db_status,
        "cache": "connected" if cache_ok else "unavailable",
    }
