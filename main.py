#!/usr/bin/env python3
"""
OctoBot GitHub Bridge
Main application entry point
"""

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
import structlog

from src.api.errors import failure
from src.api.webhooks import router as webhook_router
from src.api.health import router as health_router
from src.api.issues import router as issues_router
from src.api.repositories import router as repositories_router
from src.services.errors import ErrorCategory
from src.services.shared_services import build_services
from config.settings import settings

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Create FastAPI application
app = FastAPI(
    title="OctoBot GitHub Bridge",
    description="GitHub webhook notifications and a local repository/issue mirror",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.DEBUG else ["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(webhook_router, prefix="/webhooks", tags=["webhooks"])
app.include_router(repositories_router, prefix="/repositories", tags=["repositories"])
app.include_router(issues_router, prefix="/issues", tags=["issues"])


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Answer malformed queries and bodies with the common failure shape"""
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in errors
    ) or "Invalid request"
    logger.warning("Request validation failed", path=request.url.path, errors=len(errors))
    return failure(message, ErrorCategory.VALIDATION_ERROR)


@app.get("/", tags=["root"])
async def root():
    """Welcome endpoint for the OctoBot GitHub Bridge"""
    return {
        "message": "OctoBot GitHub Bridge",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
        "health": "/health",
        "webhook_url": settings.webhook_url,
    }


@app.on_event("startup")
async def startup_event():
    """Initialize application on startup"""
    logger.info(
        "Starting OctoBot GitHub Bridge",
        host=settings.HOST,
        port=settings.PORT,
        owner=settings.GITHUB_OWNER,
    )

    # Tests install their own container before startup
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(settings)
    await app.state.services.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Clean up on shutdown"""
    logger.info("Shutting down OctoBot GitHub Bridge")
    services = getattr(app.state, "services", None)
    if services is not None:
        await services.close()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=False,
        log_level=settings.LOG_LEVEL.lower(),
    )
