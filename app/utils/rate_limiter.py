"""
Rate Limiter Configuration

In-memory storage by default. Set RATE_LIMIT_STORAGE_URI (e.g. a redis://
URL understood by the limits package) when running several instances.
"""

import logging
import os

from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

logger = logging.getLogger(__name__)


def get_real_client_ip(request: Request) -> str:
    """Get real client IP behind a reverse proxy"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP (original client)
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return get_remote_address(request)


def create_limiter() -> Limiter:
    storage_uri = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")
    enabled = os.getenv("RATE_LIMIT_ENABLED", "true").lower() not in ("0", "false", "no")
    logger.info(f"Rate limiter storage: {storage_uri.split('://')[0]}, enabled={enabled}")
    return Limiter(
        key_func=get_real_client_ip,
        storage_uri=storage_uri,
        default_limits=["150/15minutes"],
        enabled=enabled,
    )


# Global rate limiter instance
limiter = create_limiter()


# ================================
# RATE LIMIT CONFIGURATIONS
# ================================

RATE_LIMITS = {
    # Public booking flow
    "booking_create": "200/15minutes",
    "availability": "200/15minutes",
    "price": "200/15minutes",

    # Gateway notifications and redirects
    "payment": "50/15minutes",

    # Operator endpoints
    "admin": "100/15minutes",
}


def get_rate_limit(operation: str) -> str:
    """Get rate limit for a specific operation."""
    return RATE_LIMITS.get(operation, "150/15minutes")
