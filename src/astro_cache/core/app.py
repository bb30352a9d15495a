from __future__ import annotations

import contextlib
import datetime
import logging
import secrets
import time
import typing as t

import anyio.to_thread
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route, request_response

from astro_cache.astro.engine import Chart, ChartEngine
from astro_cache.astro.prompt import build_messages
from astro_cache.astro.transit import compare_natal_with_transit
from astro_cache.cache.bounded_cache import BoundedExpiringCache
from astro_cache.cache.memoize import API, CHART, LOCATION, TRANSIT, CacheStrategy, guarded_lookup
from astro_cache.clients.geocoder import GeocodingError, OpenCageGeocoder
from astro_cache.clients.interpreter import InterpretationError, OpenRouterInterpreter
from astro_cache.monitoring import metrics
from astro_cache.utils.config import AppConfig

from .asgi_cache import CachedResponseApp
from .models import BirthData, RequestError, parse_birth_request, parse_transit_request
from .rate_limit import (
    LENIENT,
    MODERATE,
    STRICT,
    FixedWindowRateLimiter,
    RateLimitedApp,
    RateLimiter,
    RateLimitPolicy,
    RedisFixedWindowRateLimiter,
)

JSON = t.Dict[str, t.Any]

_logger = logging.getLogger(__name__)

_NETWORK_KINDS = {"DNS", "TIMEOUT", "NETWORK"}


def _error(status: int, message: str, details: t.Optional[str] = None, **extra: t.Any) -> JSONResponse:
    payload: JSON = {"error": message}
    if details:
        payload["details"] = details
    payload.update(extra)
    return JSONResponse(payload, status_code=status)


def _cache_headers(status: str) -> t.Dict[str, str]:
    if status == "FALLBACK":
        return {"X-Cache": "MISS", "X-Cache-Fallback": "1"}
    return {"X-Cache": status}


async def _json_body(request: Request) -> t.Any:
    try:
        return await request.json()
    except ValueError as exc:
        raise RequestError("Request body must be valid JSON.") from exc


class AstroService:
    """HTTP handlers; every collaborator is injected so tests can build fresh ones."""

    def __init__(
        self,
        engine: ChartEngine,
        cache: BoundedExpiringCache,
        geocoder: OpenCageGeocoder,
        interpreter: OpenRouterInterpreter,
        *,
        admin_token: t.Optional[str] = None,
    ) -> None:
        self._engine = engine
        self._cache = cache
        self._geocoder = geocoder
        self._interpreter = interpreter
        self._admin_token = admin_token

    @property
    def cache(self) -> BoundedExpiringCache:
        return self._cache

    async def _compute(self, birth: BirthData) -> Chart:
        start = time.perf_counter()
        try:
            return await anyio.to_thread.run_sync(self._engine.compute_chart, birth)
        finally:
            metrics.upstream_latency_seconds.observe(time.perf_counter() - start, provider="engine")

    async def _memoized(self, strategy: CacheStrategy, key: str, producer: t.Callable[[], t.Awaitable[t.Any]]):
        return await guarded_lookup(self._cache, key, strategy.ttl_seconds, strategy.tags, producer)

    async def calculate(self, request: Request) -> Response:
        try:
            birth = parse_birth_request(await _json_body(request), self._engine.timezone_at)
        except RequestError as exc:
            return JSONResponse(exc.to_dict(), status_code=400)

        try:
            chart, status = await self._memoized(
                CHART, CHART.key(birth.cache_fields()), lambda: self._compute(birth)
            )
        except Exception as exc:
            _logger.exception("chart calculation failed")
            return _error(500, "An error occurred while calculating the chart.", str(exc))
        return JSONResponse(chart, headers=_cache_headers(status))

    async def geocode(self, request: Request) -> Response:
        if not self._geocoder.configured:
            return _error(500, "Location search is not configured.", "OPENCAGE_API_KEY is not set.")
        query = (request.query_params.get("q") or "").strip()
        if not query:
            return _error(400, "A search query is required.", "Enter the name of a city or place.")
        if len(query) < 2:
            return _error(400, "The search query is too short.", "Enter at least 2 characters.")

        try:
            results, status = await self._memoized(
                LOCATION, LOCATION.key(query.lower()), lambda: self._geocoder.search(query)
            )
        except GeocodingError as exc:
            return _error(exc.status_code, exc.message, exc.details)

        if not results:
            return _error(404, "Location not found.", f'No results for "{query}". Try a different search term.')
        return JSONResponse(results, headers=_cache_headers(status))

    async def transit(self, request: Request) -> Response:
        try:
            query = parse_transit_request(await _json_body(request), self._engine.timezone_at)
        except RequestError as exc:
            return JSONResponse(exc.to_dict(), status_code=400)

        try:
            chart, status = await self._memoized(
                TRANSIT, TRANSIT.key(query.birth.cache_fields()), lambda: self._compute(query.birth)
            )
            comparison = compare_natal_with_transit(query.natal_chart, chart) if query.natal_chart else None
        except Exception as exc:
            _logger.exception("transit calculation failed")
            return _error(500, "An error occurred while calculating the transit chart.", str(exc))

        payload = {
            "transitDate": query.transit_date,
            "transitChart": {
                "planets": chart.get("planets"),
                "houses": chart.get("houses") or [],
                "axes": chart.get("axes") or {},
            },
            "comparison": comparison,
            "calculatedAt": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        }
        return JSONResponse(payload, headers=_cache_headers(status))

    async def interpret(self, request: Request) -> Response:
        if not self._interpreter.configured:
            return _error(
                500,
                "The AI interpretation service is not configured.",
                "OPENROUTER_API_KEY is missing or invalid.",
            )
        try:
            body = await _json_body(request)
        except RequestError as exc:
            return JSONResponse(exc.to_dict(), status_code=400)

        chart = body.get("chartData") if isinstance(body, dict) else None
        if not isinstance(chart, dict) or not chart.get("planets"):
            return _error(400, "Invalid chart data.", "Chart data is missing or corrupt. Calculate the chart first.")
        try:
            messages = build_messages(chart, body.get("transitData"))
        except (KeyError, TypeError, AttributeError, ValueError):
            return _error(400, "Chart data could not be processed.", "Chart data has an unexpected format.")

        try:
            text = await self._interpreter.interpret(messages)
        except InterpretationError as exc:
            extra: JSON = {}
            if exc.kind in _NETWORK_KINDS:
                extra["technical"] = {
                    "message": str(exc.__cause__ or exc),
                    "type": exc.kind,
                    "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
                }
            return _error(exc.status_code, exc.message, exc.details, **extra)
        return JSONResponse({"interpretation": text})

    async def health(self, request: Request) -> Response:
        return JSONResponse(
            {"status": "ok", "cache": {"enabled": self._cache.enabled, "size": len(self._cache)}}
        )

    async def metrics_snapshot(self, request: Request) -> Response:
        return JSONResponse(metrics.snapshot())

    def _authorized(self, request: Request) -> bool:
        supplied = request.headers.get("x-admin-token", "")
        return bool(self._admin_token) and secrets.compare_digest(supplied, t.cast(str, self._admin_token))

    async def cache_stats(self, request: Request) -> Response:
        if not self._authorized(request):
            return _error(401, "Unauthorized.")
        return JSONResponse(self._cache.get_stats().to_dict())

    async def cache_invalidate(self, request: Request) -> Response:
        if not self._authorized(request):
            return _error(401, "Unauthorized.")
        try:
            body = await _json_body(request)
        except RequestError as exc:
            return JSONResponse(exc.to_dict(), status_code=400)
        tags = body.get("tags") if isinstance(body, dict) else None
        if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
            return _error(400, "`tags` must be a list of strings.")
        removed = self._cache.invalidate_by_tags(tags)
        _logger.info("invalidated %d cache entries for tags=%s", removed, tags)
        return JSONResponse({"removed": removed, "size": len(self._cache)})

    async def cache_clear(self, request: Request) -> Response:
        if not self._authorized(request):
            return _error(401, "Unauthorized.")
        self._cache.clear()
        _logger.info("cache cleared")
        return JSONResponse({"size": 0})


def build_limiter(config: AppConfig, policy: RateLimitPolicy, name: str) -> RateLimiter:
    if config.rate_limit.backend == "redis":
        return RedisFixedWindowRateLimiter(
            policy,
            config.rate_limit.redis_url,
            prefix=config.rate_limit.redis_prefix,
            name=name,
        )
    return FixedWindowRateLimiter.from_policy(policy)


def create_app(
    config: AppConfig,
    engine: ChartEngine,
    *,
    cache: t.Optional[BoundedExpiringCache] = None,
    geocoder: t.Optional[OpenCageGeocoder] = None,
    interpreter: t.Optional[OpenRouterInterpreter] = None,
    limiter_factory: t.Optional[t.Callable[[RateLimitPolicy, str], RateLimiter]] = None,
) -> Starlette:
    """Assemble the Starlette application around one process-wide cache."""
    if cache is None:
        cache = BoundedExpiringCache(config.cache)
    if geocoder is None:
        geocoder = OpenCageGeocoder(config.geocoder, config.resilience)
    if interpreter is None:
        interpreter = OpenRouterInterpreter(config.interpreter, config.resilience)
    service = AstroService(engine, cache, geocoder, interpreter, admin_token=config.admin_token)

    limiters: t.List[RateLimiter] = []

    def make_limiter(policy: RateLimitPolicy, name: str) -> RateLimiter:
        if limiter_factory is not None:
            limiter = limiter_factory(policy, name)
        else:
            limiter = build_limiter(config, policy, name)
        limiters.append(limiter)
        return limiter

    # Route wraps plain handlers itself; wrapped endpoints must be ASGI instances
    def guarded(handler: t.Callable[[Request], t.Awaitable[Response]], policy: RateLimitPolicy, name: str):
        if not config.rate_limit.enabled:
            return handler
        return RateLimitedApp(request_response(handler), make_limiter(policy, name), policy, route_name=name)

    interpret_app = CachedResponseApp(request_response(service.interpret), cache, API)
    if config.rate_limit.enabled:
        interpret_endpoint: t.Any = RateLimitedApp(
            interpret_app, make_limiter(STRICT, "interpret"), STRICT, route_name="interpret"
        )
    else:
        interpret_endpoint = interpret_app

    routes = [
        Route("/health", service.health, methods=["GET"]),
        Route("/api/metrics", service.metrics_snapshot, methods=["GET"]),
        Route("/api/calculate", guarded(service.calculate, MODERATE, "calculate"), methods=["POST"]),
        Route("/api/transit", guarded(service.transit, MODERATE, "transit"), methods=["POST"]),
        Route("/api/geocode", guarded(service.geocode, LENIENT, "geocode"), methods=["GET"]),
        Route("/api/interpret", interpret_endpoint, methods=["POST"]),
    ]
    if config.admin_token:
        routes += [
            Route("/api/cache/stats", service.cache_stats, methods=["GET"]),
            Route("/api/cache/invalidate", service.cache_invalidate, methods=["POST"]),
            Route("/api/cache", service.cache_clear, methods=["DELETE"]),
        ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> t.AsyncIterator[None]:
        _logger.info("astro-cache started (cache enabled=%s, max_size=%d)", cache.enabled, cache.config.max_size)
        try:
            yield
        finally:
            await geocoder.aclose()
            await interpreter.aclose()
            for limiter in limiters:
                await limiter.close()
            _logger.info("astro-cache shutting down")

    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.service = service
    app.state.cache = cache
    return app
