"""
ResourceCache - Async-compatible TTL cache shared by the resource handlers.

Features:
- Memory cache with LRU eviction
- TTL per entry: handler option > per-resource TTL > default TTL
- Lazy expiry at read time (no background sweep)
- Invalidation by resource name, optionally scoped to one resource id
- Faults are logged and reported as a miss / skipped write, never raised
"""

import asyncio
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable
from urllib.parse import quote, urlencode, urlsplit

from loguru import logger

from maasbridge.services.errors import CacheError
from maasbridge.settings import Settings, global_settings

# Parameter names that identify a single resource, in lookup order
ID_PARAM_NAMES = (
    "system_id",
    "id",
    "name",
    "tag_name",
    "zone_id",
    "subnet_id",
    "domain_id",
)


@dataclass(frozen=True)
class CacheControl:
    """Cache-Control directives stored with an entry and sent to clients."""

    private: bool = False
    must_revalidate: bool = False
    immutable: bool = False


@dataclass(frozen=True)
class CacheOptions:
    """Per-handler cache configuration."""

    enabled: bool = True
    ttl: timedelta | None = None  # None: use the store's TTL for the resource
    cache_control: CacheControl = field(default_factory=CacheControl)
    include_query_params: bool = True
    include_query_params_list: tuple[str, ...] = ()
    key_generator: Callable[[str, dict[str, Any]], str] | None = None


@dataclass
class CacheEntry:
    """A single cache entry with metadata."""

    data: Any
    timestamp: datetime
    ttl: timedelta
    cache_control: CacheControl = field(default_factory=CacheControl)

    def is_expired(self, now: datetime) -> bool:
        """Check if entry is past its TTL."""
        return now - self.timestamp > self.ttl


@dataclass
class CacheResult:
    """Result from cache lookup."""

    data: Any
    stored_at: datetime
    age: float  # seconds since the entry was written
    cache_control: CacheControl = field(default_factory=CacheControl)


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    expired: int = 0
    evictions: int = 0
    invalidations: int = 0
    errors: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "expired": self.expired,
            "evictions": self.evictions,
            "invalidations": self.invalidations,
            "errors": self.errors,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }


def _key_segment(value: str, safe: str = "") -> str:
    # ":" separates key parts
    return quote(value, safe=safe)


def _as_timedelta(value: timedelta | int | float) -> timedelta:
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=value)


class ResourceCache:
    """
    Process-wide cache of validated resource payloads.

    One instance is created at startup and handed to every handler.

    Usage:
        cache = ResourceCache(default_ttl=timedelta(minutes=5))

        key = cache.generate_key("Machine", uri, params, options)
        result = await cache.get(key)
        if result:
            return result.data

        data = await fetch_data()
        await cache.set(key, data, "Machine", options)
    """

    def __init__(
        self,
        enabled: bool = True,
        max_size: int = 1000,
        default_ttl: timedelta | int = timedelta(minutes=5),
        resource_ttls: dict[str, timedelta | int] | None = None,
        clock: Callable[[], datetime] = datetime.now,
        debug: bool = False,
    ):
        self._memory: OrderedDict[str, CacheEntry] = OrderedDict()
        self._enabled = enabled
        self._max_size = max_size
        self._default_ttl = _as_timedelta(default_ttl)
        self._resource_ttls = {
            name: _as_timedelta(ttl) for name, ttl in (resource_ttls or {}).items()
        }
        self._clock = clock
        self._debug = debug
        self._lock = asyncio.Lock()
        self._stats = CacheStats()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ResourceCache":
        settings = settings or global_settings
        return cls(
            enabled=settings.cache_enabled,
            max_size=settings.cache_max_size,
            default_ttl=settings.cache_max_age,
            resource_ttls=settings.cache_resource_specific_ttl,
        )

    # Configuration

    def is_enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        logger.info(f"Resource cache {'enabled' if enabled else 'disabled'}")

    @property
    def default_ttl(self) -> timedelta:
        return self._default_ttl

    def set_default_ttl(self, ttl: timedelta | int) -> None:
        self._default_ttl = _as_timedelta(ttl)
        logger.info(f"Default cache TTL set to {self._default_ttl.total_seconds()}s")

    def ttl_for(self, resource_name: str) -> timedelta:
        """TTL configured for a resource, or the default TTL."""
        return self._resource_ttls.get(resource_name, self._default_ttl)

    def set_resource_ttl(self, resource_name: str, ttl: timedelta | int) -> None:
        self._resource_ttls[resource_name] = _as_timedelta(ttl)
        logger.info(f"Cache TTL for {resource_name} set to {ttl}")

    # Keys

    def generate_key(
        self,
        resource_name: str,
        uri: str,
        params: dict[str, Any],
        options: CacheOptions | None = None,
        resource_id: str | None = None,
    ) -> str:
        """
        Build the cache key for a request.

        Layout: ``<resource>:<host/path>[:<id>][:<sorted params>]``. The
        trailing part comes from ``params``, the validated request
        parameters, so query keys that never reach MAAS do not split the
        cache. Pairs are sorted so equivalent requests share a key; with an
        allow-list only those names take part. Colons inside the path and
        id are percent-encoded so they never collide with the separators.
        """
        if options and options.key_generator:
            return options.key_generator(uri, params)

        parts = urlsplit(uri)
        key = f"{resource_name}:{_key_segment(parts.netloc + parts.path, safe='/')}"

        id_name = None
        if resource_id is None:
            id_name = next((n for n in ID_PARAM_NAMES if params.get(n)), None)
            if id_name is not None:
                resource_id = str(params[id_name])
        if resource_id:
            key += f":{_key_segment(resource_id)}"

        include_query = options.include_query_params if options else True
        if include_query and params:
            query = {k: v for k, v in params.items() if v is not None and k != id_name}
            if options and options.include_query_params_list:
                query = {
                    k: v for k, v in query.items() if k in options.include_query_params_list
                }
            if query:
                key += f":{urlencode(sorted(query.items()), doseq=True)}"

        return key

    # Reads and writes

    async def get(self, key: str) -> CacheResult | None:
        """
        Get value from cache.

        Returns CacheResult if found and not expired, None otherwise. A fault
        inside the store is logged and reported as a miss.
        """
        if not self._enabled:
            return None
        try:
            async with self._lock:
                return self._lookup(key)
        except Exception as e:
            self._stats.errors += 1
            logger.warning(f"[ResourceCache] Lookup failed, treating as miss: {e}")
            return None

    async def set(
        self,
        key: str,
        data: Any,
        resource_name: str | None = None,
        options: CacheOptions | None = None,
    ) -> CacheEntry | None:
        """
        Set value in cache.

        Returns the stored entry, or None when caching is disabled or the
        write failed.
        """
        if not self._enabled or (options is not None and not options.enabled):
            return None

        ttl = self._default_ttl
        if resource_name and resource_name in self._resource_ttls:
            ttl = self._resource_ttls[resource_name]
        if options is not None and options.ttl is not None:
            ttl = options.ttl

        entry = CacheEntry(
            data=data,
            timestamp=self._clock(),
            ttl=ttl,
            cache_control=options.cache_control if options else CacheControl(),
        )
        try:
            async with self._lock:
                self._store(key, entry)
        except Exception as e:
            self._stats.errors += 1
            logger.warning(f"[ResourceCache] Write failed, entry not cached: {e}")
            return None
        return entry

    async def delete(self, key: str) -> bool:
        """Delete a specific key from cache."""
        async with self._lock:
            if key in self._memory:
                del self._memory[key]
                self._log(f"DELETE: {key[:50]}...")
                return True
            return False

    # Invalidation

    async def invalidate(self, pattern: str | re.Pattern[str]) -> int:
        """
        Invalidate all keys matching a pattern.

        Args:
            pattern: Compiled regex (searched) or substring to match in keys

        Returns:
            Number of entries invalidated
        """
        if not self._enabled:
            return 0
        async with self._lock:
            if isinstance(pattern, re.Pattern):
                keys_to_delete = [k for k in self._memory if pattern.search(k)]
            else:
                keys_to_delete = [k for k in self._memory if pattern in k]
            for key in keys_to_delete:
                del self._memory[key]

            self._stats.invalidations += len(keys_to_delete)
            if keys_to_delete:
                self._log(f"INVALIDATE: {len(keys_to_delete)} entries matching '{pattern}'")

            return len(keys_to_delete)

    async def invalidate_resource(
        self, resource_name: str, resource_id: str | None = None
    ) -> int:
        """
        Invalidate entries of one resource kind.

        Without ``resource_id`` every entry of the kind goes; with it, only
        entries whose key carries that id (``Machine:<path>:abc`` or
        ``Machine:abc``, with or without a trailing query part).
        """
        prefix = re.escape(resource_name)
        if resource_id is None:
            return await self.invalidate(re.compile(f"^{prefix}:"))
        encoded_id = re.escape(_key_segment(str(resource_id)))
        return await self.invalidate(
            re.compile(f"^{prefix}:(?:[^:]*:)?{encoded_id}(?::|$)")
        )

    async def clear(self) -> None:
        """Clear all cache entries."""
        async with self._lock:
            count = len(self._memory)
            self._memory.clear()
            self._log(f"CLEAR: {count} entries removed")

    async def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        async with self._lock:
            now = self._clock()
            expired_keys = [k for k, v in self._memory.items() if v.is_expired(now)]
            for key in expired_keys:
                del self._memory[key]

            if expired_keys:
                self._log(f"CLEANUP: {len(expired_keys)} expired entries removed")

            return len(expired_keys)

    def size(self) -> int:
        return len(self._memory)

    def keys(self) -> list[str]:
        return list(self._memory.keys())

    def get_stats(self) -> CacheStats:
        """Get cache statistics."""
        self._stats.size = len(self._memory)
        self._stats.max_size = self._max_size
        return self._stats

    # Internals, called with the lock held

    def _lookup(self, key: str) -> CacheResult | None:
        entry = self._memory.get(key)
        if entry is None:
            self._stats.misses += 1
            self._log(f"MISS: {key[:50]}...")
            return None

        now = self._clock()
        if entry.is_expired(now):
            del self._memory[key]
            self._stats.misses += 1
            self._stats.expired += 1
            self._log(f"EXPIRED: {key[:50]}...")
            return None

        self._memory.move_to_end(key)
        self._stats.hits += 1
        self._log(f"HIT: {key[:50]}...")
        return CacheResult(
            data=entry.data,
            stored_at=entry.timestamp,
            age=max(0.0, (now - entry.timestamp).total_seconds()),
            cache_control=entry.cache_control,
        )

    def _store(self, key: str, entry: CacheEntry) -> None:
        if self._max_size <= 0:
            raise CacheError("cache max_size must be positive")

        if key in self._memory:
            self._memory.move_to_end(key)
        elif len(self._memory) >= self._max_size:
            evicted, _ = self._memory.popitem(last=False)
            self._stats.evictions += 1
            self._log(f"EVICT: {evicted[:50]}...")

        self._memory[key] = entry
        self._log(f"SET: {key[:50]}... (TTL: {entry.ttl.total_seconds()}s)")

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[ResourceCache] {message}")


# Process default, used by the bootstrap only
_global_cache: ResourceCache | None = None


def get_resource_cache() -> ResourceCache:
    """Get the process-wide cache instance."""
    global _global_cache
    if _global_cache is None:
        _global_cache = ResourceCache.from_settings()
    return _global_cache
