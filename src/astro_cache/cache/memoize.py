from __future__ import annotations

import functools
import inspect
import logging
import typing as t
from dataclasses import dataclass

from astro_cache.monitoring.metrics import cache_fallbacks_total, cache_lookups_total

from .bounded_cache import BoundedExpiringCache, generate_key

T = t.TypeVar("T")

_MISSING = object()
_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheStrategy:
    """Namespace, lifetime and tags shared by one family of cached values."""

    prefix: str
    ttl_seconds: float
    tags: t.Tuple[str, ...]

    def key(self, *args: t.Any) -> str:
        return generate_key(self.prefix, *args)


CHART = CacheStrategy("chart", 10 * 60, ("chart", "calculation"))
LOCATION = CacheStrategy("location", 2 * 60, ("location", "search"))
TRANSIT = CacheStrategy("transit", 5 * 60, ("transit", "calculation"))
API = CacheStrategy("api", 3 * 60, ("api", "response"))


async def lookup(
    cache: BoundedExpiringCache,
    key: str,
    ttl_seconds: t.Optional[float],
    tags: t.Optional[t.Iterable[str]],
    producer: t.Callable[[], t.Awaitable[T]],
) -> t.Tuple[T, bool]:
    """Return `(value, hit)`; on miss await `producer` once and store its result.

    A failing producer propagates and leaves the cache untouched.
    """
    namespace = key.split(":", 1)[0]
    cached = cache.get(key, _MISSING)
    if cached is not _MISSING:
        cache_lookups_total.inc(namespace=namespace, result="hit")
        return t.cast(T, cached), True

    cache_lookups_total.inc(namespace=namespace, result="miss")
    value = await producer()
    cache.set(key, value, ttl_seconds, tags)
    _logger.debug("cache store key=%s ttl=%s", key, ttl_seconds)
    return value, False


async def with_cache(
    cache: BoundedExpiringCache,
    key: str,
    ttl_seconds: t.Optional[float],
    tags: t.Optional[t.Iterable[str]],
    producer: t.Callable[[], t.Awaitable[T]],
) -> T:
    value, _ = await lookup(cache, key, ttl_seconds, tags, producer)
    return value


def _call_key(prefix: str, args: t.Tuple[t.Any, ...], kwargs: t.Dict[str, t.Any]) -> str:
    if kwargs:
        return generate_key(prefix, *args, dict(sorted(kwargs.items())))
    return generate_key(prefix, *args)


def cached(
    cache: BoundedExpiringCache,
    prefix: t.Union[str, CacheStrategy],
    ttl_seconds: t.Optional[float] = None,
    tags: t.Optional[t.Iterable[str]] = None,
) -> t.Callable[[t.Callable[..., t.Any]], t.Callable[..., t.Any]]:
    """Wrap a function so its results are memoized in `cache`.

    Works for coroutine functions and plain functions. The key is derived from
    `prefix` and the call arguments, so arguments must be JSON serializable or
    have a stable `str()`.
    """
    if isinstance(prefix, CacheStrategy):
        strategy = prefix
        prefix = strategy.prefix
        ttl_seconds = strategy.ttl_seconds if ttl_seconds is None else ttl_seconds
        tags = strategy.tags if tags is None else tags
    tag_tuple = tuple(tags or ())
    key_prefix = prefix

    def decorator(fn: t.Callable[..., t.Any]) -> t.Callable[..., t.Any]:
        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(*args: t.Any, **kwargs: t.Any) -> t.Any:
                key = _call_key(key_prefix, args, kwargs)
                return await with_cache(cache, key, ttl_seconds, tag_tuple, lambda: fn(*args, **kwargs))

            return async_wrapper

        @functools.wraps(fn)
        def sync_wrapper(*args: t.Any, **kwargs: t.Any) -> t.Any:
            key = _call_key(key_prefix, args, kwargs)
            value = cache.get(key, _MISSING)
            if value is not _MISSING:
                return value
            value = fn(*args, **kwargs)
            cache.set(key, value, ttl_seconds, tag_tuple)
            return value

        return sync_wrapper

    return decorator


async def guarded_lookup(
    cache: BoundedExpiringCache,
    key: str,
    ttl_seconds: t.Optional[float],
    tags: t.Optional[t.Iterable[str]],
    producer: t.Callable[[], t.Awaitable[T]],
) -> t.Tuple[T, str]:
    """Like `lookup`, but a failing cache degrades to a direct producer call.

    Returns `(value, status)` with status `"HIT"`, `"MISS"` or `"FALLBACK"`.
    Producer failures still propagate.
    """
    namespace = key.split(":", 1)[0]
    try:
        cached = cache.get(key, _MISSING)
    except Exception:
        _logger.exception("cache lookup failed for %s; calling producer directly", key)
        cache_fallbacks_total.inc(namespace=namespace, stage="lookup")
        return await producer(), "FALLBACK"

    if cached is not _MISSING:
        cache_lookups_total.inc(namespace=namespace, result="hit")
        return t.cast(T, cached), "HIT"

    cache_lookups_total.inc(namespace=namespace, result="miss")
    value = await producer()
    try:
        cache.set(key, value, ttl_seconds, tags)
    except Exception:
        _logger.exception("cache store failed for %s", key)
        cache_fallbacks_total.inc(namespace=namespace, stage="store")
        return value, "FALLBACK"
    return value, "MISS"
