from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from contextlib import asynccontextmanager
from slowapi.errors import RateLimitExceeded
import time
import uuid

from .config import settings
from .database import create_tables, SessionLocal
from .services.notification_policies import seed_default_policies
from .services.scheduler import start_scheduler, stop_scheduler
from .utils.exceptions import DomainException
from .utils.logging_config import setup_logging, get_logger, set_request_context, clear_request_context
from .utils.rate_limiter import limiter

from .routers import bookings, pricing, payments, health, admin

setup_logging(settings.log_level, json_format=settings.log_json)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info(f"Starting lodging booking service ({settings.environment})")
    logger.info(f"Business timezone: {settings.business_timezone}")

    create_tables()

    db = SessionLocal()
    try:
        seed_default_policies(db)
    finally:
        db.close()

    if settings.payment_relaxed_verification:
        logger.warning("PAYMENT_RELAXED_VERIFICATION is on: unverified successful callbacks will be applied")

    scheduler_started = False
    if settings.scheduler_enabled:
        scheduler_started = start_scheduler()
    else:
        logger.warning("Scheduler disabled, notifications and expiry will not run")

    yield

    logger.info("Shutting down lodging booking service")
    if scheduler_started:
        stop_scheduler()


app = FastAPI(
    title="Lodging Booking API",
    description="Room reservations, pricing, payment reconciliation and guest notifications",
    version="1.0.0",
    lifespan=lifespan
)

# Rate limiter state
app.state.limiter = limiter


# ================================
# CORS MIDDLEWARE - MUST BE FIRST!
# ================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


# Security Headers Middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


# Request ID Middleware
class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request.state.request_id = request_id
        set_request_context(request_id)
        start = time.time()
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id
        logger.api_request(
            request.method, request.url.path, response.status_code,
            round((time.time() - start) * 1000, 1)
        )
        return response


app.add_middleware(RequestIdMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"detail": "Too many requests, try again later"}
    )


app.include_router(bookings.router)
app.include_router(pricing.router)
app.include_router(payments.router)
app.include_router(health.router)
app.include_router(admin.router)


@app.get("/")
async def root():
    return {
        "message": "Lodging Booking API",
        "version": "1.0.0",
        "docs": "/docs",
        "status": "running"
    }
