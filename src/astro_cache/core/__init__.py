from .app import AstroService, build_limiter, create_app
from .asgi_cache import CachedResponse, CachedResponseApp, default_key_builder
from .models import BirthData, RequestError, TransitQuery, parse_birth_request, parse_transit_request
from .rate_limit import (
    DEFAULT,
    LENIENT,
    MODERATE,
    STRICT,
    FixedWindowRateLimiter,
    RateLimitedApp,
    RateLimiter,
    RateLimitPolicy,
    RateLimitResult,
    RedisFixedWindowRateLimiter,
    client_identifier,
)

__all__ = [
    "AstroService",
    "build_limiter",
    "create_app",
    "CachedResponse",
    "CachedResponseApp",
    "default_key_builder",
    "BirthData",
    "RequestError",
    "TransitQuery",
    "parse_birth_request",
    "parse_transit_request",
    "DEFAULT",
    "LENIENT",
    "MODERATE",
    "STRICT",
    "FixedWindowRateLimiter",
    "RateLimitedApp",
    "RateLimiter",
    "RateLimitPolicy",
    "RateLimitResult",
    "RedisFixedWindowRateLimiter",
    "client_identifier",
]
