"""Configuration and resilience helpers."""

from .config import AppConfig, GeocoderConfig, InterpreterConfig, RateLimitConfig, ResilienceConfig
from .resilience import CircuitBreaker, CircuitBreakerConfig, CircuitOpenError, CircuitState, with_retries

__all__ = [
    "AppConfig",
    "GeocoderConfig",
    "InterpreterConfig",
    "RateLimitConfig",
    "ResilienceConfig",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitOpenError",
    "CircuitState",
    "with_retries",
]
