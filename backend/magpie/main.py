"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager

import sentry_sdk
import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import update
from starlette.exceptions import HTTPException as StarletteHTTPException

from magpie.api import router as api_router
from magpie.config import get_settings
from magpie.db.models import DiscoveryRun, utcnow
from magpie.db.session import async_session_factory
from magpie.errors import MagpieError

VERSION = "0.1.0"

settings = get_settings()
logger = structlog.get_logger()

# Initialize Sentry if configured
if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.1 if settings.is_production else 1.0,
    )


async def cleanup_orphaned_runs():
    """Mark any 'running' discovery runs as failed on startup.

    When the server restarts (deploy, crash, etc.), any runs that were
    in progress are now orphaned since the process handling them is gone.
    """
    async with async_session_factory() as session:
        result = await session.execute(
            update(DiscoveryRun)
            .where(DiscoveryRun.status == "running")
            .values(
                status="failed",
                error_message="Interrupted by server restart",
                completed_at=utcnow(),
            )
        )
        await session.commit()

        if result.rowcount:
            logger.info("Cleaned up orphaned discovery runs", count=result.rowcount)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting Magpie API", environment=settings.environment)
    await cleanup_orphaned_runs()
    yield
    # Shutdown
    logger.info("Shutting down Magpie API")


app = FastAPI(
    title="Magpie API",
    description="Scholarship discovery, moderation and search API",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "https://magpie.app",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================
# ERROR RESPONSES: {"error": str, "issues"?: [...]}
# ============================================


@app.exception_handler(MagpieError)
async def magpie_error_handler(request: Request, exc: MagpieError):
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, status=exc.status_code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    issues = [
        {"path": list(error.get("loc", ())), "message": error.get("msg", "Invalid value")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({"error": "Validation failed", "issues": issues}),
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail if isinstance(exc.detail, str) else "Request failed"},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", path=request.url.path, error=str(exc), exc_info=exc)
    sentry_sdk.capture_exception(exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Include API routes
app.include_router(api_router, prefix="/api")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": VERSION}
