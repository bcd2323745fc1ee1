"""Main FastAPI application for the visit tracker."""

import time
from urllib.parse import urlsplit

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy import text

from . import __version__
from .api import admin, public, tracking
from .api.middleware import (
    ProblemDetailsMiddleware,
    RequestSizeLimitMiddleware,
    register_exception_handlers,
)
from .config import get_config, validate_startup_security
from .db.database import SessionLocal
from .utils.logging_config import get_logger, initialize_logging

logger = get_logger("main")

# Create FastAPI app
app = FastAPI(
    title="Visit Tracker",
    description="Safety tracking for home-care field visits: check-ins, panic alerts and shared live links",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Add custom middleware in correct order (innermost first)
app.add_middleware(ProblemDetailsMiddleware)
app.add_middleware(RequestSizeLimitMiddleware)
register_exception_handlers(app)

config = get_config()
if config.app.enable_cors:
    allowed_origins = [
        "http://127.0.0.1:8000",
        "http://localhost:8000",
    ]

    # Public tracking pages are served from their own origin
    public_url = urlsplit(config.app.public_tracking_base_url)
    if public_url.scheme and public_url.netloc:
        allowed_origins.append(f"{public_url.scheme}://{public_url.netloc}")

    if config.server.debug:
        allowed_origins.extend([
            "http://127.0.0.1:3000",  # Development frontend
            "http://localhost:3000",
        ])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "Origin"],
    )


# Register API routers
app.include_router(tracking.router)
app.include_router(admin.router)
app.include_router(public.router)


@app.on_event("startup")
async def startup_event():
    """Initialize logging and refuse to start with a weak JWT secret."""
    initialize_logging()
    validate_startup_security()
    logger.info(f"Visit Tracker {__version__} started")


@app.get("/", include_in_schema=False)
async def root():
    return RedirectResponse(url="/docs")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "visit-tracker", "version": __version__}


@app.get("/ready")
def readiness_check():
    """Readiness check endpoint that validates database connectivity and configuration."""
    start_time = time.time()
    checks = {"database": False, "config": False}
    errors = []

    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        errors.append(f"Database check failed: {str(e)}")
    finally:
        db.close()

    try:
        if get_config().app.jwt_secret_key:
            checks["config"] = True
    except Exception as e:
        errors.append(f"Config check failed: {str(e)}")

    response_time_ms = round((time.time() - start_time) * 1000, 2)
    all_ready = all(checks.values())

    response = {
        "status": "ready" if all_ready else "not_ready",
        "service": "visit-tracker",
        "version": __version__,
        "checks": checks,
        "response_time_ms": response_time_ms,
    }

    if errors:
        response["errors"] = errors
        logger.warning(f"Readiness check failed: {'; '.join(errors)}")

    status_code = 200 if all_ready else 503
    return JSONResponse(content=response, status_code=status_code)
