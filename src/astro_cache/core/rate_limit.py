from __future__ import annotations

import json
import logging
import math
import time
import typing as t
from dataclasses import dataclass

from astro_cache.monitoring.metrics import rate_limit_rejections_total

Scope = t.Dict[str, t.Any]
Message = t.Dict[str, t.Any]
Receive = t.Callable[[], t.Awaitable[Message]]
Send = t.Callable[[Message], t.Awaitable[None]]
ASGIApp = t.Callable[[Scope, Receive, Send], t.Awaitable[None]]
Clock = t.Callable[[], float]

_logger = logging.getLogger(__name__)

# prune expired windows once this many clients are tracked
_PRUNE_THRESHOLD = 10_000


@dataclass(frozen=True)
class RateLimitPolicy:
    window_seconds: float
    max_requests: int
    message: str = "Too many requests. Please try again later."


STRICT = RateLimitPolicy(10 * 60, 5, "Interpretation limit reached. Try again in 10 minutes.")
MODERATE = RateLimitPolicy(5 * 60, 20, "Calculation limit reached. Try again in 5 minutes.")
LENIENT = RateLimitPolicy(60, 60, "Search limit reached. Try again in 1 minute.")
DEFAULT = RateLimitPolicy(15 * 60, 100)


@dataclass(frozen=True)
class RateLimitResult:
    blocked: bool
    remaining: int
    reset_time: float  # epoch seconds
    limit: int

    def retry_after(self, now: float) -> int:
        return max(0, math.ceil(self.reset_time - now))


class RateLimiter:
    """Fixed-window counter keyed by client identifier."""

    max_requests: int

    async def hit(self, key: str) -> RateLimitResult:  # pragma: no cover - interface
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend connections; in-memory limiters hold none."""


@dataclass
class _Window:
    count: int
    reset_time: float


class FixedWindowRateLimiter(RateLimiter):
    def __init__(
        self,
        window_seconds: float = DEFAULT.window_seconds,
        max_requests: int = DEFAULT.max_requests,
        *,
        clock: t.Optional[Clock] = None,
        prune_threshold: int = _PRUNE_THRESHOLD,
    ) -> None:
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock: Clock = clock or time.time
        self._windows: t.Dict[str, _Window] = {}
        self._prune_threshold = prune_threshold
        self._prune_at = prune_threshold

    @classmethod
    def from_policy(cls, policy: RateLimitPolicy, *, clock: t.Optional[Clock] = None) -> "FixedWindowRateLimiter":
        return cls(policy.window_seconds, policy.max_requests, clock=clock)

    def check(self, key: str) -> RateLimitResult:
        now = self._clock()
        window = self._windows.get(key)
        if window is None or now > window.reset_time:
            if len(self._windows) >= self._prune_at:
                self._prune(now)
            window = _Window(count=1, reset_time=now + self.window_seconds)
            self._windows[key] = window
            return RateLimitResult(False, self.max_requests - 1, window.reset_time, self.max_requests)

        if window.count >= self.max_requests:
            return RateLimitResult(True, 0, window.reset_time, self.max_requests)

        window.count += 1
        return RateLimitResult(False, self.max_requests - window.count, window.reset_time, self.max_requests)

    async def hit(self, key: str) -> RateLimitResult:
        return self.check(key)

    def remaining(self, key: str) -> int:
        window = self._windows.get(key)
        if window is None or self._clock() > window.reset_time:
            return self.max_requests
        return max(0, self.max_requests - window.count)

    def reset_time(self, key: str) -> float:
        window = self._windows.get(key)
        return window.reset_time if window is not None else self._clock()

    def _prune(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if now > window.reset_time]
        for key in expired:
            del self._windows[key]
        # next scan waits until the live set has doubled
        self._prune_at = max(self._prune_threshold, 2 * len(self._windows))
        _logger.debug("pruned %d expired rate-limit windows", len(expired))


class RedisFixedWindowRateLimiter(RateLimiter):
    """Same fixed-window contract shared across processes through Redis.

    - Counter key: `{prefix}:{name}:{client}`, created by INCR and given a PEXPIRE
      equal to the window on its first hit.
    """

    def __init__(
        self,
        policy: RateLimitPolicy,
        url: str = "redis://localhost:6379/0",
        *,
        prefix: str = "astro:ratelimit",
        name: str = "default",
        client: t.Any = None,
        clock: t.Optional[Clock] = None,
    ) -> None:
        if client is None:
            import redis.asyncio as redis_asyncio

            client = redis_asyncio.from_url(url, decode_responses=True)
        self._redis = client
        self._policy = policy
        self.max_requests = policy.max_requests
        self._prefix = f"{prefix.rstrip(':')}:{name}"
        self._clock: Clock = clock or time.time

    def _key(self, client_key: str) -> str:
        return f"{self._prefix}:{client_key}"

    async def hit(self, key: str) -> RateLimitResult:
        redis_key = self._key(key)
        window_ms = int(self._policy.window_seconds * 1000)
        pipe = self._redis.pipeline()
        pipe.incr(redis_key)
        pipe.pttl(redis_key)
        count, ttl_ms = await pipe.execute()
        count = int(count)
        ttl_ms = int(ttl_ms)
        if count == 1 or ttl_ms < 0:
            await self._redis.pexpire(redis_key, window_ms)
            ttl_ms = window_ms
        reset_time = self._clock() + ttl_ms / 1000.0
        if count > self.max_requests:
            return RateLimitResult(True, 0, reset_time, self.max_requests)
        return RateLimitResult(False, self.max_requests - count, reset_time, self.max_requests)

    async def close(self) -> None:
        await self._redis.aclose()


def client_identifier(headers: t.Mapping[str, str]) -> str:
    """Best-effort client address from proxy headers, or `"unknown"`."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    for name in ("x-real-ip", "remote-addr"):
        value = headers.get(name)
        if value:
            return value.strip()
    return "unknown"


def _header_map(scope: Scope) -> t.Dict[str, str]:
    headers: t.Dict[str, str] = {}
    for key_bytes, val_bytes in scope.get("headers", []) or []:
        headers[key_bytes.decode("latin1").lower()] = val_bytes.decode("latin1")
    return headers


class RateLimitedApp:
    """ASGI wrapper enforcing a `RateLimiter` in front of `app`.

    Every response carries `X-RateLimit-Limit`, `X-RateLimit-Remaining` and
    `X-RateLimit-Reset`; blocked requests get 429 with `Retry-After`.
    """

    def __init__(
        self,
        app: ASGIApp,
        limiter: RateLimiter,
        policy: RateLimitPolicy = DEFAULT,
        *,
        key_func: t.Optional[t.Callable[[t.Mapping[str, str]], str]] = None,
        route_name: str = "",
        clock: t.Optional[Clock] = None,
    ) -> None:
        self._app = app
        self._limiter = limiter
        self._policy = policy
        self._key_func = key_func or client_identifier
        self._route = route_name
        self._clock: Clock = clock or time.time

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self._app(scope, receive, send)
            return

        client = self._key_func(_header_map(scope))
        result = await self._limiter.hit(client)
        rate_headers = [
            (b"x-ratelimit-limit", str(result.limit).encode("latin1")),
            (b"x-ratelimit-remaining", str(result.remaining).encode("latin1")),
            (b"x-ratelimit-reset", str(math.ceil(result.reset_time)).encode("latin1")),
        ]

        if result.blocked:
            rate_limit_rejections_total.inc(route=self._route or scope.get("path", ""))
            retry_after = result.retry_after(self._clock())
            _logger.info("rate limit exceeded client=%s path=%s", client, scope.get("path"))
            await self._send_json(
                send,
                429,
                {"error": self._policy.message, "retryAfter": retry_after},
                rate_headers + [(b"retry-after", str(retry_after).encode("latin1"))],
            )
            return

        started = False

        async def send_with_headers(message: Message) -> None:
            nonlocal started
            if message.get("type") == "http.response.start":
                started = True
                message = {**message, "headers": list(message.get("headers") or []) + rate_headers}
            await send(message)

        try:
            await self._app(scope, receive, send_with_headers)
        except Exception:
            _logger.exception("rate limited endpoint failed for client=%s", client)
            if started:
                raise
            await self._send_json(
                send,
                500,
                {
                    "error": "Internal server error",
                    "message": "A server error occurred while processing your request.",
                },
                rate_headers,
            )

    @staticmethod
    async def _send_json(
        send: Send, status: int, payload: t.Dict[str, t.Any], headers: t.List[t.Tuple[bytes, bytes]]
    ) -> None:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        await send(
            {
                "type": "http.response.start",
                "status": status,
                "headers": [
                    (b"content-type", b"application/json"),
                    (b"content-length", str(len(body)).encode("latin1")),
                ]
                + headers,
            }
        )
        await send({"type": "http.response.body", "body": body, "more_body": False})
