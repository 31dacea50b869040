"""
Counseling Appointment API: students book sessions, counselors run them, admins manage accounts.
"""
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

import config
from database.connection import Database
from core.exceptions import CounselingError
from core.logger import logger
from auth.security import get_encryption_key
from middleware.security import (
    RateLimitMiddleware, SecurityHeadersMiddleware,
    setup_cors, setup_trusted_hosts
)
from middleware.auth_middleware import AuthRequiredMiddleware
from services.push_service import PushChannel
from services.notification_service import NotificationDispatcher
from routers.auth import router as auth_router
from routers.users import router as users_router
from routers.profile import router as profile_router
from routers.appointments import router as appointments_router
from routers.feedback import router as feedback_router
from routers.records import router as records_router
from routers.notifications import router as notifications_router


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan events for FastAPI app.
    Check the encryption key, initialize the database and the push channel.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {config.APP_NAME}...")
    logger.info("=" * 60)

    # Counseling notes cannot be stored or read without it; refuse to start
    get_encryption_key()

    # Initialize database
    try:
        config.db = Database(
            database_url=config.DATABASE_URL,
            pool_size=config.DB_POOL_SIZE,
            max_overflow=config.DB_MAX_OVERFLOW
        )
        # Create tables if they don't exist
        config.db.create_tables()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}", exc_info=True)
        raise

    app.state.push_channel = PushChannel()
    app.state.notifier = NotificationDispatcher(app.state.push_channel)

    logger.info("=" * 60)
    logger.info("Server ready!")
    logger.info(f"Environment: {config.ENVIRONMENT}")
    logger.info("API Docs: http://localhost:8000/docs")
    logger.info("=" * 60)

    yield

    # Cleanup on shutdown
    logger.info("Shutting down...")
    if config.db:
        config.db.engine.dispose()
        config.db = None
        logger.info("Database connections closed")


# Initialize FastAPI app
app = FastAPI(
    title=config.APP_NAME,
    description="Counseling appointments with role-based access, account lockout and encrypted session notes",
    version=config.APP_VERSION,
    lifespan=lifespan
)

# Setup security middleware
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    RateLimitMiddleware,
    requests_per_minute=config.RATE_LIMIT_PER_MINUTE,
    requests_per_hour=config.RATE_LIMIT_PER_HOUR,
    login_requests_per_minute=config.LOGIN_RATE_LIMIT_PER_MINUTE
)
app.add_middleware(AuthRequiredMiddleware)
setup_cors(app, config.CORS_ORIGINS, allow_credentials=config.CORS_ALLOW_CREDENTIALS)
if config.ENVIRONMENT == "production":
    setup_trusted_hosts(app, config.TRUSTED_HOSTS)


@app.exception_handler(CounselingError)
async def counseling_error_handler(request: Request, exc: CounselingError):
    """Domain errors become {"detail": message} with the error's status."""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
        headers=exc.headers
    )


# Include routers
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(profile_router)
app.include_router(appointments_router)
app.include_router(feedback_router)
app.include_router(records_router)
app.include_router(notifications_router)


@app.get("/")
async def root():
    """Root endpoint with API information. Public endpoint."""
    return {
        "message": config.APP_NAME,
        "version": config.APP_VERSION,
        "environment": config.ENVIRONMENT,
        "endpoints": {
            "login": "POST /api/auth/login",
            "appointments": "GET /api/appointments",
            "notifications": "WS /ws/notifications?token=<access token>"
        },
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring. Public endpoint."""
    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "checks": {}
    }

    # Check database
    try:
        if config.db is None:
            health_status["checks"]["database"] = {"status": "error", "error": "not initialized"}
            health_status["status"] = "degraded"
        else:
            with config.db.get_session() as db:
                db.execute(text("SELECT 1"))
            health_status["checks"]["database"] = {"status": "ok"}
    except Exception as e:
        health_status["checks"]["database"] = {"status": "error", "error": str(e)}
        health_status["status"] = "degraded"

    push_channel = getattr(app.state, "push_channel", None)
    health_status["checks"]["push"] = {"status": "ok" if push_channel is not None else "not initialized"}

    return health_status


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
