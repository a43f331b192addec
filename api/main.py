"""
FastAPI API Service Entry Point
"""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.routes import bookings, branches, otc_products, services_products, transactions, used_quantities
from database.connection import get_firestore_client
from database.models import Collections
from salon.exceptions import SalonError
from shared.config import get_settings
from shared.logging_config import configure_logging
from shared.startup_validator import StartupValidationError, validate_startup_config

# Configure structured JSON logging on startup
configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Salon POS Booking & Inventory API",
    version="1.0.0",
)

# Load settings for CORS configuration
settings = get_settings()
origins = settings.CORS_ORIGINS.split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(bookings.router, prefix="/api")
app.include_router(branches.router, prefix="/api")
app.include_router(otc_products.router, prefix="/api")
app.include_router(services_products.router, prefix="/api")
app.include_router(transactions.router, prefix="/api")
app.include_router(used_quantities.router, prefix="/api")


# =========================================================================
# STARTUP VALIDATION
# =========================================================================
@app.on_event("startup")
async def startup_config_validation():
    """
    Validate critical configuration at startup.

    Google Calendar credentials are not required: bookings are stored
    without calendar events when the calendar is unavailable.

    Raises:
        StartupValidationError: If critical configuration is invalid
    """
    logger.info("Running API startup configuration validation...")
    try:
        await validate_startup_config(require_google_calendar=False)
        logger.info("API startup configuration validation passed")
    except StartupValidationError as e:
        logger.critical(f"API startup blocked due to configuration errors: {e}")
        raise  # FastAPI will fail to start


# =========================================================================
# EXCEPTION HANDLERS
# =========================================================================
@app.exception_handler(SalonError)
async def salon_exception_handler(request: Request, exc: SalonError) -> JSONResponse:
    """Render domain errors as {"error": message, **extra}."""
    if exc.status_code >= 500:
        logger.error(exc.message, extra={"request_path": request.url.path})
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, **exc.extra},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with validation error details."""
    # Rejected inputs may be NaN or infinity, which JSON cannot carry
    details = [{k: v for k, v in error.items() if k != "input"} for error in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "details": jsonable_encoder(details)},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled error on {request.method} {request.url.path}: {exc}",
        exc_info=exc,
        extra={"request_path": request.url.path},
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/health")
async def health_check() -> JSONResponse:
    """
    Health check endpoint for container health checks and monitoring.

    Checks:
    - Firestore connectivity (single-document read)

    Returns:
        200 OK if all systems healthy
        503 Service Unavailable if degraded
    """
    health_status = {
        "status": "healthy",
        "firestore": "unknown",
    }
    status_code = 200

    try:
        db = get_firestore_client()
        await db.collection(Collections.BRANCHES).limit(1).get()
        health_status["firestore"] = "connected"
    except Exception:
        health_status["firestore"] = "disconnected"
        health_status["status"] = "degraded"
        status_code = 503

    return JSONResponse(status_code=status_code, content=health_status)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint"""
    return {"message": "Salon POS Booking & Inventory API - Use /health for health checks"}
