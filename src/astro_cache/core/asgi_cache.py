from __future__ import annotations

import json
import logging
import typing as t
from dataclasses import dataclass

from astro_cache.cache.bounded_cache import BoundedExpiringCache, generate_key
from astro_cache.cache.memoize import API, CacheStrategy
from astro_cache.monitoring.metrics import cache_fallbacks_total, cache_lookups_total

Scope = t.Dict[str, t.Any]
Message = t.Dict[str, t.Any]
Receive = t.Callable[[], t.Awaitable[Message]]
Send = t.Callable[[Message], t.Awaitable[None]]
ASGIApp = t.Callable[[Scope, Receive, Send], t.Awaitable[None]]
KeyBuilder = t.Callable[[Scope, bytes], str]

_SKIP_HEADERS = {b"x-cache", b"x-cache-fallback"}


@dataclass(frozen=True)
class CachedResponse:
    status: int
    headers: t.Tuple[t.Tuple[bytes, bytes], ...]
    body: bytes


def default_key_builder(strategy: CacheStrategy) -> KeyBuilder:
    """Key on method, path, query string and the (JSON-decoded if possible) body."""

    def build(scope: Scope, body: bytes) -> str:
        payload: t.Any = ""
        if body:
            try:
                payload = json.loads(body)
            except ValueError:
                payload = body.decode("utf-8", errors="replace")
        query = scope.get("query_string", b"")
        return generate_key(
            strategy.prefix,
            scope.get("method", "GET"),
            scope.get("path", ""),
            query.decode("latin1") if isinstance(query, bytes) else str(query),
            payload,
        )

    return build


async def _read_body(receive: Receive) -> bytes:
    chunks: list[bytes] = []
    while True:
        message = await receive()
        if message.get("type") != "http.request":
            break
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            break
    return b"".join(chunks)


def _with_headers(message: Message, extra: t.Sequence[t.Tuple[bytes, bytes]]) -> Message:
    headers = [(bytes(k), bytes(v)) for k, v in message.get("headers") or [] if bytes(k).lower() not in _SKIP_HEADERS]
    return {**message, "headers": headers + list(extra)}


class CachedResponseApp:
    """ASGI wrapper that memoizes successful HTTP responses of `app`.

    The request body is buffered once and replayed to the inner app. A hit is
    answered from the cache with `X-Cache: HIT`; a miss runs the inner app
    exactly once, streams its response with `X-Cache: MISS` and stores it only
    for 2xx statuses. Errors raised by the cache itself never fail the request:
    the inner app is called directly and the response carries
    `X-Cache: MISS` and `X-Cache-Fallback: 1`. Errors raised by the inner app
    propagate.

    Usage:
        app = CachedResponseApp(inner_app, cache, API)
    """

    def __init__(
        self,
        app: ASGIApp,
        cache: BoundedExpiringCache,
        strategy: CacheStrategy = API,
        *,
        key_builder: t.Optional[KeyBuilder] = None,
    ) -> None:
        self._app = app
        self._cache = cache
        self._strategy = strategy
        self._key_builder = key_builder or default_key_builder(strategy)
        self._logger = logging.getLogger(__name__)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self._app(scope, receive, send)
            return

        body = await _read_body(receive)
        replayed = False

        async def replay_receive() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        try:
            key = self._key_builder(scope, body)
            cached = self._cache.get(key)
        except Exception:
            self._logger.exception("response cache lookup failed; serving %s directly", scope.get("path"))
            await self._serve_fallback(scope, replay_receive, send)
            return

        if isinstance(cached, CachedResponse):
            cache_lookups_total.inc(namespace=self._strategy.prefix, result="hit")
            await send(
                {
                    "type": "http.response.start",
                    "status": cached.status,
                    "headers": list(cached.headers) + [(b"x-cache", b"HIT")],
                }
            )
            await send({"type": "http.response.body", "body": cached.body, "more_body": False})
            return

        cache_lookups_total.inc(namespace=self._strategy.prefix, result="miss")
        status = 0
        headers: t.List[t.Tuple[bytes, bytes]] = []
        chunks: t.List[bytes] = []
        complete = False

        async def capturing_send(message: Message) -> None:
            nonlocal status, headers, complete
            if message.get("type") == "http.response.start":
                status = int(message.get("status", 200))
                headers = [
                    (bytes(k), bytes(v))
                    for k, v in message.get("headers") or []
                    if bytes(k).lower() not in _SKIP_HEADERS
                ]
                await send(_with_headers(message, [(b"x-cache", b"MISS")]))
                return
            if message.get("type") == "http.response.body":
                chunks.append(message.get("body", b""))
                if not message.get("more_body", False):
                    complete = True
            await send(message)

        await self._app(scope, replay_receive, capturing_send)

        if not complete or not 200 <= status < 300:
            return
        try:
            self._cache.set(
                key,
                CachedResponse(status=status, headers=tuple(headers), body=b"".join(chunks)),
                self._strategy.ttl_seconds,
                self._strategy.tags,
            )
        except Exception:
            # response already sent as MISS
            self._logger.exception("response cache store failed for %s", scope.get("path"))
            cache_fallbacks_total.inc(namespace=self._strategy.prefix, stage="store")

    async def _serve_fallback(self, scope: Scope, receive: Receive, send: Send) -> None:
        cache_fallbacks_total.inc(namespace=self._strategy.prefix, stage="lookup")

        async def marking_send(message: Message) -> None:
            if message.get("type") == "http.response.start":
                message = _with_headers(message, [(b"x-cache", b"MISS"), (b"x-cache-fallback", b"1")])
            await send(message)

        await self._app(scope, receive, marking_send)
