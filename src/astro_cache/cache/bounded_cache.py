from __future__ import annotations

import json
import threading
import time
import typing as t
from collections import OrderedDict
from dataclasses import dataclass, field

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

Clock = t.Callable[[], float]


@dataclass
class CacheConfig:
    default_ttl_seconds: float = 300.0
    max_size: int = 1000
    enabled: bool = True


@dataclass
class CacheEntry:
    value: t.Any
    created_at: float
    ttl: float
    tags: t.FrozenSet[str] = frozenset()

    def is_stale(self, now: float) -> bool:
        return now - self.created_at > self.ttl


@dataclass
class CacheStats:
    size: int
    keys: t.List[str]
    hits: int = 0
    misses: int = 0
    expirations: int = 0
    evictions: int = 0

    def to_dict(self) -> t.Dict[str, t.Any]:
        return {
            "size": self.size,
            "keys": list(self.keys),
            "hits": self.hits,
            "misses": self.misses,
            "expirations": self.expirations,
            "evictions": self.evictions,
        }


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits: list[str] = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def hash_code(text: str) -> str:
    """32-bit rolling polynomial hash (h*31 + c) over UTF-16 code units, base-36.

    Not collision resistant; only meant to bound key length.
    """
    h = 0
    for ch in text:
        cp = ord(ch)
        if cp > 0xFFFF:
            cp -= 0x10000
            units = (0xD800 + (cp >> 10), 0xDC00 + (cp & 0x3FF))
        else:
            units = (cp,)
        for unit in units:
            h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return _to_base36(abs(h))


def _serialize_arg(arg: t.Any) -> str:
    if arg is None:
        return "null"
    if isinstance(arg, bool):
        return "true" if arg else "false"
    if isinstance(arg, (dict, list, tuple)):
        return json.dumps(arg, separators=(",", ":"), ensure_ascii=False, default=str)
    return str(arg)


def generate_key(prefix: str, *args: t.Any) -> str:
    """Derive `"<prefix>:<hash>"` from the arguments.

    Structured arguments are serialized as compact JSON in their own key order,
    so `{"a": 1, "b": 2}` and `{"b": 2, "a": 1}` may produce different keys.
    """
    key_data = "|".join(_serialize_arg(arg) for arg in args)
    return f"{prefix}:{hash_code(key_data)}"


class BoundedExpiringCache:
    """LRU + TTL cache with tag invalidation.

    Entries and recency live in one OrderedDict (front = least recently used),
    so every stored key has exactly one recency slot. Expiry is lazy: stale
    entries are dropped when `get`/`has` touches them or when they reach the
    front of the recency order and get evicted.

    Each public operation holds a re-entrant lock for its whole duration.
    """

    def __init__(self, config: t.Optional[CacheConfig] = None, *, clock: t.Optional[Clock] = None) -> None:
        self._config = config or CacheConfig()
        self._clock: Clock = clock or time.monotonic
        self._store: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._expirations = 0
        self._evictions = 0

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def generate_key(self, prefix: str, *args: t.Any) -> str:
        return generate_key(prefix, *args)

    def _live_entry(self, key: str) -> t.Optional[CacheEntry]:
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_stale(self._clock()):
            del self._store[key]
            self._expirations += 1
            return None
        return entry

    def get(self, key: str, default: t.Any = None) -> t.Any:
        if not self._config.enabled:
            return default
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                self._misses += 1
                return default
            self._store.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(
        self,
        key: str,
        value: t.Any,
        ttl_seconds: t.Optional[float] = None,
        tags: t.Optional[t.Iterable[str]] = None,
    ) -> None:
        if not self._config.enabled:
            return
        ttl = self._config.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            # evicts even when `key` is already present; the insert below still succeeds
            if self._store and len(self._store) >= self._config.max_size:
                self._store.popitem(last=False)
                self._evictions += 1
            self._store[key] = CacheEntry(
                value=value,
                created_at=self._clock(),
                ttl=ttl,
                tags=frozenset(tags or ()),
            )
            self._store.move_to_end(key)

    def has(self, key: str) -> bool:
        """Existence probe; unlike `get` it does not refresh recency."""
        if not self._config.enabled:
            return False
        with self._lock:
            return self._live_entry(key) is not None

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def invalidate_by_tags(self, tags: t.Iterable[str]) -> int:
        wanted = frozenset(tags)
        if not wanted:
            return 0
        with self._lock:
            doomed = [key for key, entry in self._store.items() if entry.tags & wanted]
            for key in doomed:
                del self._store[key]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def get_stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._store),
                keys=list(self._store.keys()),
                hits=self._hits,
                misses=self._misses,
                expirations=self._expirations,
                evictions=self._evictions,
            )

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)
