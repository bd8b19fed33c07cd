"""Main FastAPI application"""
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from gazette_sync.core.config import settings
from gazette_sync.core.logging import configure_logging
from gazette_sync.db.session import AsyncSessionLocal, init_db, close_db
from gazette_sync.api.v1.routes import communications, sync, settings as settings_routes
from gazette_sync.services.scheduler import SyncScheduler
from gazette_sync.services.sync_engine import GazetteSyncEngine


configure_logging(settings.debug)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    # Startup
    logger.info("Starting GazetteSync API", environment=settings.environment)

    await init_db()
    logger.info("Database initialized")

    engine = GazetteSyncEngine(AsyncSessionLocal)
    app.state.sync_engine = engine
    app.state.scheduler = None

    if settings.scheduler_enabled:
        scheduler = SyncScheduler(engine)
        scheduler.start()
        app.state.scheduler = scheduler
    else:
        logger.info("Sync scheduler disabled by configuration")

    yield

    # Shutdown
    logger.info("Shutting down GazetteSync API")
    if app.state.scheduler is not None:
        await app.state.scheduler.stop()
    # An in-flight run gets a grace period, then is cancelled and failed in the ledger
    await app.state.sync_engine.shutdown()
    await close_db()


# Create FastAPI app
app = FastAPI(
    title="GazetteSync API",
    description="""
    DJEN gazette synchronization for the law office.

    This API provides endpoints for:
    - Triggering and monitoring sync runs
    - Browsing, reading and exporting ingested communications
    - Editing the sync policy
    """,
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next: Callable) -> Response:
    """Log all incoming requests"""
    logger.info(
        "Incoming request",
        method=request.method,
        url=str(request.url),
        client_ip=request.client.host if request.client else None
    )

    response = await call_next(request)

    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code
    )

    return response


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions"""
    logger.exception(
        "Unhandled exception",
        method=request.method,
        url=str(request.url),
        error=str(exc)
    )

    return JSONResponse(
        status_code=500,
        content={
            "detail": "An internal error occurred",
            "error": str(exc) if settings.debug else "Internal server error"
        }
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for load balancers and monitoring"""
    return {
        "status": "healthy",
        "version": "0.1.0",
        "environment": settings.environment
    }


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """API root endpoint"""
    return {
        "name": "GazetteSync API",
        "version": "0.1.0",
        "docs": "/docs" if settings.debug else "Documentation disabled in production"
    }


# Include API routers
app.include_router(sync.router, prefix="/api/v1")
app.include_router(communications.router, prefix="/api/v1")
app.include_router(settings_routes.router, prefix="/api/v1")
