"""Ticket Gate API - validación de tickets QR en los accesos del evento"""
from contextlib import asynccontextmanager
from typing import List, Tuple
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from shared.config import settings
from shared.database.connection import init_db, close_db, get_session_factory
from shared.cache.redis_client import init_redis, close_redis, ping as redis_ping
from shared.utils.rate_limiter import limiter, rate_limit_exceeded_handler
from services.ticket_validation.routes.validation import router as validation_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    await init_redis()
    logger.info(f"Ticket Gate API ready (env={settings.APP_ENV})")
    try:
        yield
    finally:
        await close_db()
        await close_redis()
        logger.info("Ticket Gate API stopped")


def cors_policy() -> Tuple[List[str], bool]:
    """(orígenes, credentials); en desarrollo cualquier origen y sin credentials"""
    if settings.APP_ENV == "development":
        return ["*"], False
    origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]
    return origins, True


app = FastAPI(
    title="Ticket Gate API",
    description="Validación y canje de tickets QR en puerta",
    version="1.0.0",
    lifespan=lifespan,
)

origins, credentials = cors_policy()
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=credentials,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
    max_age=3600,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.include_router(validation_router, prefix="/api/v1/tickets", tags=["tickets"])


@app.get("/health")
async def health():
    return {"status": "ok", "service": "ticket-gate-api"}


@app.get("/ready")
async def ready():
    """Base de datos y Redis alcanzables; 503 si alguno falla"""
    checks = {"database": "connected", "redis": "connected"}

    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Ready check failed (database): {e}")
        checks["database"] = "unavailable"

    if not await redis_ping():
        checks["redis"] = "unavailable"

    if "unavailable" in checks.values():
        return JSONResponse(status_code=503, content={"status": "not ready", **checks})
    return {"status": "ready", **checks}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.APP_DEBUG)
