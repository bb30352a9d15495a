from __future__ import annotations

import logging
import time
import typing as t

import httpx

from astro_cache.monitoring.metrics import upstream_latency_seconds
from astro_cache.utils.config import GeocoderConfig, ResilienceConfig
from astro_cache.utils.resilience import CircuitBreaker, CircuitBreakerConfig, CircuitOpenError, with_retries

JSON = t.Dict[str, t.Any]

_logger = logging.getLogger(__name__)


class GeocodingError(RuntimeError):
    def __init__(self, message: str, details: str = "", status_code: int = 502) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.status_code = status_code


def _is_transient(exc: Exception) -> bool:
    return isinstance(exc, httpx.TransportError)


class OpenCageGeocoder:
    """Forward geocoding against the OpenCage JSON API.

    Results include `annotations.timezone`, which the chart endpoint uses to
    resolve the birth place's UTC offset.
    """

    def __init__(
        self,
        config: GeocoderConfig,
        resilience: t.Optional[ResilienceConfig] = None,
        *,
        client: t.Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config
        self._resilience = resilience or ResilienceConfig()
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._breaker = (
            CircuitBreaker(
                CircuitBreakerConfig(
                    failure_threshold=self._resilience.failure_threshold,
                    reset_timeout_seconds=self._resilience.reset_timeout_seconds,
                ),
                name="geocoder",
            )
            if self._resilience.circuit_breaker_enabled
            else None
        )

    @property
    def configured(self) -> bool:
        return bool(self._config.api_key and self._config.api_key.strip())

    async def _request(self, query: str) -> httpx.Response:
        params = {
            "q": query,
            "key": self._config.api_key or "",
            "language": self._config.language,
            "limit": str(self._config.limit),
            "annotations": "1",
        }
        return await with_retries(
            lambda: self._client.get(self._config.base_url, params=params),
            attempts=self._resilience.retry_max_attempts,
            backoff_ms=self._resilience.retry_backoff_ms,
            retry_on=_is_transient,
        )

    async def search(self, query: str) -> t.List[JSON]:
        if not self.configured:
            raise GeocodingError(
                "Location search is not configured.",
                "OPENCAGE_API_KEY is not set.",
                status_code=500,
            )

        start = time.perf_counter()
        try:
            if self._breaker is not None:
                response = await self._breaker.run(lambda: self._request(query))
            else:
                response = await self._request(query)
        except CircuitOpenError as exc:
            raise GeocodingError("Location search is temporarily unavailable.", str(exc), 503) from exc
        except httpx.HTTPError as exc:
            _logger.warning("geocoder request failed: %s", exc)
            raise GeocodingError("Location search failed.", str(exc)) from exc
        finally:
            upstream_latency_seconds.observe(time.perf_counter() - start, provider="opencage")

        if response.status_code != 200:
            raise GeocodingError(
                "Location search failed.",
                f"OpenCage responded with status {response.status_code}",
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise GeocodingError("Location search failed.", "OpenCage returned invalid JSON") from exc
        return list(data.get("results") or [])

    async def aclose(self) -> None:
        await self._client.aclose()
