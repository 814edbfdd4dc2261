"""Main FastAPI application."""
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.api.v1.router import api_router
from app.core.clock import Clock, SystemClock
from app.core.config import Settings, settings
from app.core.exceptions import AppError, ServiceUnavailableError
from app.core.logging_config import setup_logging, get_logger
from app.core.metrics import OTPMetrics
from app.core.rate_limit import limiter
from app.db.init_db import initialize_database
from app.db.store import CheckInStore
from app.middleware import LoggingMiddleware
from app.services import CheckInService, DeliveryRenderer, OTPEngine

# Initialize structured logging
setup_logging(level=settings.LOG_LEVEL)
logger = get_logger(__name__)

# Validate production configuration after logging is configured
if settings.ENVIRONMENT == "production":
    settings.validate_production_config()

# Keys on app.state that hold the services built at startup
SERVICE_KEYS = ("store", "otp_engine", "otp_metrics", "renderer", "checkin_service")


def build_services(app_settings: Settings = settings, clock: Optional[Clock] = None) -> Dict[str, Any]:
    """
    Connect the store, load the OTP secret and wire the services together.

    A missing secret is created when AUTO_BOOTSTRAP is on; otherwise it is a
    fatal startup error.

    Raises:
        StorageConnectivityError: If the database stays unreachable
        ServiceUnavailableError: If the secret is missing and bootstrap is off
        ValidationError: If the delivery target or template is malformed
    """
    clock = clock or SystemClock()

    store = CheckInStore(
        database_url=app_settings.get_database_url(),
        clock=clock,
        max_retries=app_settings.DB_CONNECT_RETRIES,
        retry_delay=app_settings.DB_RETRY_DELAY_SECONDS,
    )
    store.connect()
    try:
        store.create_schema()
        if app_settings.AUTO_BOOTSTRAP:
            initialize_database(store, app_settings.OTP_SECRET)
        secret = store.get_otp_secret()

        metrics = OTPMetrics()
        engine = OTPEngine(secret, window_ms=app_settings.OTP_WINDOW_MS, clock=clock, metrics=metrics)
        renderer = DeliveryRenderer(app_settings.TARGET_PHONE_NUMBER, app_settings.MESSAGE_TEMPLATE, clock=clock)
    except AppError as exc:
        logger.error("service_startup_failed", code=exc.code, error=exc.message)
        store.close()
        raise
    except ValueError as exc:
        logger.error("service_startup_failed", code="INVALID_CONFIGURATION", error=str(exc))
        store.close()
        raise

    service = CheckInService(engine, store, clock=clock, timestamp_tolerance_ms=app_settings.TIMESTAMP_TOLERANCE_MS)

    return {
        "store": store,
        "otp_engine": engine,
        "otp_metrics": metrics,
        "renderer": renderer,
        "checkin_service": service,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Services already placed on app.state (tests, embedding) are left alone
    owned = getattr(app.state, "checkin_service", None) is None
    if owned:
        for key, value in build_services().items():
            setattr(app.state, key, value)
        logger.info("services_initialized", window_ms=app.state.otp_engine.window_ms)

    yield

    if owned:
        app.state.store.close()
        for key in SERVICE_KEYS:
            setattr(app.state, key, None)
        logger.info("services_shutdown")


logger.info(
    "application_starting",
    app_title=settings.APP_TITLE,
    app_version=settings.APP_VERSION,
    environment=settings.ENVIRONMENT,
)

app = FastAPI(
    title=settings.APP_TITLE,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render service faults as {"success": false, "error": {...}}."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("request_error", code=exc.code, message=exc.message, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Add logging middleware (must be added before other middleware for proper request tracking)
app.add_middleware(LoggingMiddleware)


@app.middleware("http")
async def add_api_version_header(request: Request, call_next):
    """Add X-API-Version header to all responses for version tracking."""
    response = await call_next(request)
    response.headers["X-API-Version"] = settings.APP_VERSION
    return response

# CORS middleware - configured for cookie-based auth
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)

app.include_router(api_router)


@app.get("/health")
def health_check(request: Request):
    """
    Health check for the engine, the store and the renderer.

    Returns:
        - status: "healthy", "degraded" (weak or default OTP secret) or "unhealthy"
        - components: per-service status
        - environment: Current environment setting

    Returns 503 unless every component is healthy.
    """
    service = getattr(request.app.state, "checkin_service", None)
    renderer = getattr(request.app.state, "renderer", None)

    if service is None:
        exc = ServiceUnavailableError("Check-in service not initialized")
        logger.error("health_check_failed", error=exc.message)
        return JSONResponse(status_code=503, content={
            "status": "unhealthy",
            "environment": settings.ENVIRONMENT,
            "error": exc.message,
        })

    health = service.health_status()
    health["components"]["renderer"] = (
        {"status": "healthy", **renderer.get_config()}
        if renderer is not None
        else {"status": "unhealthy", "error": "not initialized"}
    )
    if renderer is None:
        health["status"] = "unhealthy"
    health["environment"] = settings.ENVIRONMENT
    health["version"] = settings.APP_VERSION

    if health["status"] != "healthy":
        logger.warning("health_check_not_healthy", status=health["status"])
        return JSONResponse(status_code=503, content=health)
    return health
