from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from astro_cache.cache.bounded_cache import CacheConfig


@dataclass
class RateLimitConfig:
    enabled: bool = True
    backend: str = "memory"  # memory | redis
    redis_url: str = "redis://localhost:6379/0"
    redis_prefix: str = "astro:ratelimit"


@dataclass
class GeocoderConfig:
    api_key: Optional[str] = None
    base_url: str = "https://api.opencagedata.com/geocode/v1/json"
    language: str = "en"
    limit: int = 5
    timeout_seconds: float = 10.0


@dataclass
class InterpreterConfig:
    api_key: Optional[str] = None
    base_url: str = "https://openrouter.ai/api/v1/chat/completions"
    model: str = "moonshotai/kimi-k2:free"
    temperature: float = 0.7
    max_tokens: int = 2000
    timeout_seconds: float = 30.0
    app_url: str = "http://localhost:3000"
    app_name: str = "AstroApp"


@dataclass
class ResilienceConfig:
    circuit_breaker_enabled: bool = True
    failure_threshold: int = 5
    reset_timeout_seconds: float = 30.0
    retry_max_attempts: int = 2
    retry_backoff_ms: List[int] = dataclasses.field(default_factory=lambda: [200, 1000])


@dataclass
class AppConfig:
    cache: CacheConfig = dataclasses.field(default_factory=CacheConfig)
    rate_limit: RateLimitConfig = dataclasses.field(default_factory=RateLimitConfig)
    geocoder: GeocoderConfig = dataclasses.field(default_factory=GeocoderConfig)
    interpreter: InterpreterConfig = dataclasses.field(default_factory=InterpreterConfig)
    resilience: ResilienceConfig = dataclasses.field(default_factory=ResilienceConfig)
    admin_token: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        def build(dc_cls, key):
            values = data.get(key, {})
            return dc_cls(**values)

        return cls(
            cache=build(CacheConfig, "cache"),
            rate_limit=build(RateLimitConfig, "rate_limit"),
            geocoder=build(GeocoderConfig, "geocoder"),
            interpreter=build(InterpreterConfig, "interpreter"),
            resilience=build(ResilienceConfig, "resilience"),
            admin_token=data.get("admin_token"),
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        env = os.environ if environ is None else environ
        config = cls()

        config.cache.enabled = _as_bool(env.get("ASTRO_CACHE_ENABLED"), config.cache.enabled)
        if env.get("ASTRO_CACHE_MAX_SIZE"):
            config.cache.max_size = int(env["ASTRO_CACHE_MAX_SIZE"])
        if env.get("ASTRO_CACHE_DEFAULT_TTL"):
            config.cache.default_ttl_seconds = float(env["ASTRO_CACHE_DEFAULT_TTL"])

        config.rate_limit.enabled = _as_bool(env.get("ASTRO_RATE_LIMIT_ENABLED"), config.rate_limit.enabled)
        config.rate_limit.backend = env.get("ASTRO_RATE_LIMIT_BACKEND", config.rate_limit.backend).lower()
        config.rate_limit.redis_url = env.get("ASTRO_REDIS_URL", config.rate_limit.redis_url)

        config.geocoder.api_key = env.get("OPENCAGE_API_KEY") or None
        config.geocoder.language = env.get("ASTRO_GEOCODER_LANGUAGE", config.geocoder.language)

        config.interpreter.api_key = env.get("OPENROUTER_API_KEY") or None
        config.interpreter.model = env.get("OPENROUTER_MODEL", config.interpreter.model)
        config.interpreter.app_url = env.get("APP_URL", config.interpreter.app_url)
        config.interpreter.app_name = env.get("APP_NAME", config.interpreter.app_name)

        config.admin_token = env.get("ASTRO_ADMIN_TOKEN") or None
        return config


def _as_bool(raw: Optional[str], default: bool) -> bool:
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}
