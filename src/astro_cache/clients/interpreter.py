from __future__ import annotations

import logging
import time
import typing as t

import httpx

from astro_cache.monitoring.metrics import upstream_latency_seconds
from astro_cache.utils.config import InterpreterConfig, ResilienceConfig
from astro_cache.utils.resilience import CircuitBreaker, CircuitBreakerConfig, CircuitOpenError

JSON = t.Dict[str, t.Any]

_logger = logging.getLogger(__name__)

_PLACEHOLDER_KEYS = {"YOUR_OPENROUTER_KEY"}


class InterpretationError(RuntimeError):
    """Failure to obtain a narrative; `kind` is one of
    CONFIG, UPSTREAM, EMPTY, DNS, TIMEOUT, NETWORK, UNAVAILABLE.
    """

    def __init__(self, message: str, details: str, status_code: int, kind: str) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.status_code = status_code
        self.kind = kind


def _classify(exc: httpx.HTTPError) -> t.Tuple[str, str]:
    if isinstance(exc, httpx.TimeoutException):
        return "TIMEOUT", "The request timed out. Please try again."
    text = str(exc)
    if "Name or service not known" in text or "nodename nor servname" in text or "getaddrinfo" in text:
        return "DNS", "DNS resolution failed. Check the network connection."
    return "NETWORK", "Could not connect to the interpretation service."


class OpenRouterInterpreter:
    """Chat-completions client for narrative chart interpretations.

    Each call is bounded by `timeout_seconds`; the caller decides whether to
    cache the result.
    """

    def __init__(
        self,
        config: InterpreterConfig,
        resilience: t.Optional[ResilienceConfig] = None,
        *,
        client: t.Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config
        resilience = resilience or ResilienceConfig()
        self._client = client or httpx.AsyncClient()
        self._breaker = (
            CircuitBreaker(
                CircuitBreakerConfig(
                    failure_threshold=resilience.failure_threshold,
                    reset_timeout_seconds=resilience.reset_timeout_seconds,
                ),
                name="interpreter",
            )
            if resilience.circuit_breaker_enabled
            else None
        )

    @property
    def configured(self) -> bool:
        key = (self._config.api_key or "").strip()
        return bool(key) and key not in _PLACEHOLDER_KEYS

    async def _post(self, messages: t.List[JSON]) -> httpx.Response:
        response = await self._client.post(
            self._config.base_url,
            headers={
                "Authorization": f"Bearer {self._config.api_key}",
                "HTTP-Referer": self._config.app_url,
                "X-Title": self._config.app_name,
                "Content-Type": "application/json",
            },
            json={
                "model": self._config.model,
                "messages": messages,
                "temperature": self._config.temperature,
                "max_tokens": self._config.max_tokens,
            },
            timeout=self._config.timeout_seconds,
        )
        if response.status_code >= 500:
            # counts toward the breaker; 4xx are the caller's problem
            response.raise_for_status()
        return response

    async def interpret(self, messages: t.List[JSON]) -> str:
        if not self.configured:
            raise InterpretationError(
                "The AI interpretation service is not configured.",
                "OPENROUTER_API_KEY is missing or invalid.",
                500,
                "CONFIG",
            )

        start = time.perf_counter()
        try:
            if self._breaker is not None:
                response = await self._breaker.run(lambda: self._post(messages))
            else:
                response = await self._post(messages)
        except CircuitOpenError as exc:
            raise InterpretationError(
                "The AI interpretation service is currently unavailable.",
                "Too many recent failures; try again shortly.",
                503,
                "UNAVAILABLE",
            ) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            _logger.error("OpenRouter error status=%s body=%s", status, exc.response.text[:500])
            raise InterpretationError(
                "The AI service returned an error.",
                f"OpenRouter responded with {status}. Please try again later.",
                status,
                "UPSTREAM",
            ) from exc
        except httpx.HTTPError as exc:
            kind, friendly = _classify(exc)
            _logger.error("OpenRouter network error kind=%s: %s", kind, exc)
            raise InterpretationError(
                "The AI interpretation service is currently unreachable.",
                friendly,
                503,
                kind,
            ) from exc
        finally:
            upstream_latency_seconds.observe(time.perf_counter() - start, provider="openrouter")

        if response.status_code != 200:
            _logger.error("OpenRouter error status=%s body=%s", response.status_code, response.text[:500])
            raise InterpretationError(
                "The AI service returned an error.",
                f"OpenRouter responded with {response.status_code}. Please try again later.",
                # non-200 success or redirect statuses are reported as 502
                response.status_code if response.status_code >= 400 else 502,
                "UPSTREAM",
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            content = None
        if not content:
            raise InterpretationError(
                "The AI could not produce an interpretation.",
                "The service returned an empty answer. Please try again.",
                500,
                "EMPTY",
            )
        return t.cast(str, content)

    async def aclose(self) -> None:
        await self._client.aclose()
