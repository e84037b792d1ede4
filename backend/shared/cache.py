"""In-process read cache with a last-known-good fallback.

The birthday settings row is read on every scheduler wake-up and every
dispatch run. Reads are served from a short TTL cache; when the database is
briefly unreachable the last value seen is returned instead of failing, so
the scheduler keeps running on its previous configuration.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from cachetools import LRUCache, TTLCache  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

# Sentinel so that a cached None still counts as a hit
MISSING: Any = object()

T = TypeVar("T")


class AsyncTTLCache:
    """Fresh values expire after *ttl* seconds; stale copies live until evicted."""

    def __init__(self, maxsize: int = 128, ttl: float = 60.0):
        self._fresh: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._last_good: LRUCache = LRUCache(maxsize=maxsize)
        self._loading: dict[str, asyncio.Lock] = {}

    def get(self, key: str) -> Any:
        return self._fresh.get(key, MISSING)

    def get_stale(self, key: str) -> Any:
        return self._last_good.get(key, MISSING)

    def set(self, key: str, value: Any) -> None:
        self._fresh[key] = value
        self._last_good[key] = value

    def invalidate(self, key: str) -> None:
        """Expire *key* now. Its last-known-good copy stays available."""
        self._fresh.pop(key, None)

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[T]],
        *,
        attempts: int = 3,
        backoff: float = 1.0,
    ) -> T:
        """Return the fresh value for *key*, loading it on a miss.

        Concurrent misses on the same key share one load. A load that fails
        *attempts* times falls back to the stale copy, or re-raises if there
        is none.
        """
        value = self.get(key)
        if value is not MISSING:
            return value

        lock = self._loading.setdefault(key, asyncio.Lock())
        async with lock:
            value = self.get(key)
            if value is not MISSING:
                return value

            error: Exception | None = None
            for attempt in range(1, attempts + 1):
                try:
                    value = await loader()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    error = e
                    if attempt < attempts:
                        delay = backoff * attempt
                        logger.warning(
                            f"Loading {key} failed ({type(e).__name__}), "
                            f"attempt {attempt}/{attempts}, retrying in {delay:g}s"
                        )
                        await asyncio.sleep(delay)
                else:
                    self.set(key, value)
                    return value

            stale = self.get_stale(key)
            if stale is MISSING:
                assert error is not None
                raise error
            logger.warning(f"Serving stale {key} after {type(error).__name__}")
            return stale


def cached(
    cache: AsyncTTLCache,
    key_func: Callable[..., str],
    *,
    retry: int = 3,
    backoff: float = 1.0,
):
    """Decorate an async read so it goes through :meth:`AsyncTTLCache.get_or_load`.

    ``key_func`` is called with the decorated function's arguments.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await cache.get_or_load(
                key_func(*args, **kwargs),
                lambda: func(*args, **kwargs),
                attempts=retry,
                backoff=backoff,
            )

        return wrapper

    return decorator
