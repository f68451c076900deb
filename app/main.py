from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from app.core.config import get_settings
from app.core.exceptions import AppError
from app.core.runtime import build_runtime
from app.db import session as db_session
from app.middleware import (
    error_handler_middleware,
    app_error_handler,
    validation_error_handler,
)

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting marketplace chat service...")

    # Database is optional - stores fall back to memory without it
    try:
        await db_session.init_db()
    except Exception as db_error:
        logger.error(f"Database initialization failed: {db_error}")
        raise

    runtime = build_runtime(settings, session_factory=db_session.AsyncSessionLocal)
    await runtime.start()
    app.state.runtime = runtime
    logger.info("Chat service ready")

    yield

    logger.info("Shutting down chat service...")
    await runtime.stop()
    await db_session.dispose_engine()


app = FastAPI(
    title="RawKart Chat Service",
    description="Purchase requests and live vendor/supplier chat",
    version="1.0.0",
    lifespan=lifespan
)

cors_origins = settings.get_cors_origins() or [
    "http://localhost:3000",  # Development only
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "x-auth-token"],
)

app.middleware("http")(error_handler_middleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)

# Include routers
from app.api.v1.api import api_router, ws_router
from app.api.v1.endpoints import health
app.include_router(health.router, tags=["Health"])
app.include_router(api_router, prefix="/api/v1")
app.include_router(ws_router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Welcome to the RawKart API!",
        "status": "Server is running successfully.",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=5000)
