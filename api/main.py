import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.routes import router
from api.middleware import (
    RequestLoggingMiddleware,
    ErrorHandlingMiddleware,
    error_envelope
)
from config.settings import settings
from utils.logging_config import setup_logging

# Initialize logging
logger = setup_logging()

# Global service registry
service_registry = {}

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager"""
    logger.info(f"Starting {settings.APP_NAME}")

    try:
        initialize_services()
        logger.info("All services initialized successfully")

        yield

    except Exception as e:
        logger.error(f"Failed to initialize services: {e}")
        raise

    finally:
        logger.info(f"Shutting down {settings.APP_NAME}")
        cleanup_services()

def initialize_services():
    """Initialize all core services"""

    try:
        logger.info("Initializing cache manager...")
        from utils.cache import get_cache_manager
        service_registry['cache_manager'] = get_cache_manager()

        logger.info(f"Initializing deal store ({settings.DEAL_STORE})...")
        from core.deal_store import get_deal_store
        service_registry['deal_store'] = get_deal_store()

        logger.info("Initializing deal signal engine...")
        from core.signal_engine import create_deal_signal_engine
        service_registry['signal_engine'] = create_deal_signal_engine(
            deal_store=service_registry['deal_store'],
            cache_manager=service_registry['cache_manager']
        )

        perform_health_checks()

    except Exception as e:
        logger.error(f"Service initialization failed: {e}")
        raise

def cleanup_services():
    """Cleanup services on shutdown"""

    try:
        cache_manager = service_registry.get('cache_manager')
        if cache_manager:
            cache_manager.close()

        service_registry.clear()
        logger.info("Services cleaned up successfully")

    except Exception as e:
        logger.error(f"Error during service cleanup: {e}")

def collect_health() -> dict:
    """Health of each registered service"""
    health_results = {}

    cache_manager = service_registry.get('cache_manager')
    if cache_manager:
        health_results['cache'] = cache_manager.health_check()

    deal_store = service_registry.get('deal_store')
    if deal_store:
        try:
            health_results['deal_store'] = {'status': 'healthy', 'stats': deal_store.get_stats()}
        except Exception as e:
            health_results['deal_store'] = {'status': 'unhealthy', 'error': str(e)}

    return health_results

def perform_health_checks():
    """Log health check results for all services"""
    for service, health in collect_health().items():
        service_status = health.get('status', 'unknown')
        logger.info(f"Health check - {service}: {service_status}")
        if service_status not in ('healthy', 'disabled'):
            logger.warning(f"Service {service} health issue: {health}")

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    Deal signal analysis for CRM opportunities.

    Combines a deal's action log, email history and stage history into a
    structured `aiSummary`: engagement and response time, recent activity,
    time in stage, roadblocks, likelihood to close and salesperson performance.
    All scoring is rule based and deterministic for a given analysis time.
    """,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

# Add middleware (order matters!)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID", "X-Process-Time"],
    max_age=86400
)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(ErrorHandlingMiddleware)

# Include API routes
app.include_router(router, prefix=settings.API_PREFIX)

# Global exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions"""
    return error_envelope(request, exc.status_code, exc.detail)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are reported as 400"""
    logger.warning(f"Invalid request to {request.url.path}: {exc.errors()}")
    return error_envelope(request, status.HTTP_400_BAD_REQUEST, "Invalid request body")

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    logger.error(f"Unhandled exception: {exc}")
    return error_envelope(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": "Rule-based deal signal analysis",
        "docs_url": "/docs",
        "health_url": "/health",
        "api_prefix": settings.API_PREFIX,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """System health check endpoint"""
    try:
        health_results = {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "services": collect_health()
        }

        unhealthy_services = [
            name for name, health in health_results["services"].items()
            if health.get("status") not in ("healthy", "disabled")
        ]

        if unhealthy_services:
            health_results["status"] = "degraded"
            health_results["unhealthy_services"] = unhealthy_services

        return health_results

    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "error": str(e),
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        )

# Make service registry available to routes
app.state.services = service_registry

if __name__ == "__main__":
    uvicorn.run(
        "api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
