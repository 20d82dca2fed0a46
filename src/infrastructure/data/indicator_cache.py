"""
Per-run indicator series cache.

Each simulation owns one cache, so identical (kind, params) indicators
referenced by several rules are computed once per run. Caches are never
shared between runs, which keeps parallel candidate evaluations isolated.
"""

from collections.abc import Callable

import numpy as np
from cachetools import LRUCache
from loguru import logger

from src.core.constants import INDICATOR_CACHE_SIZE
from src.core.models.strategy import IndicatorSpec

IndicatorSeries = dict[str, np.ndarray]


class IndicatorCache:
    """Bounded LRU cache of computed indicator outputs keyed by IndicatorSpec."""

    def __init__(self, max_size: int = INDICATOR_CACHE_SIZE) -> None:
        self._cache: LRUCache[IndicatorSpec, IndicatorSeries] = LRUCache(maxsize=max_size)
        self._hits = 0
        self._misses = 0

    def get_or_compute(
        self, spec: IndicatorSpec, compute: Callable[[IndicatorSpec], IndicatorSeries]
    ) -> IndicatorSeries:
        """Return cached outputs for ``spec``, computing them on a miss."""
        cached = self._cache.get(spec)
        if cached is not None:
            self._hits += 1
            return cached

        self._misses += 1
        series = compute(spec)
        self._cache[spec] = series
        logger.debug(f"Cached indicator {spec.label} ({len(self._cache)}/{self._cache.maxsize})")
        return series

    def __contains__(self, spec: IndicatorSpec) -> bool:
        return spec in self._cache

    def __len__(self) -> int:
        return len(self._cache)

    @property
    def hit_rate(self) -> float:
        """Cache hit rate as percentage."""
        total_requests = self._hits + self._misses
        if total_requests == 0:
            return 0.0
        return (self._hits / total_requests) * 100

    def get_stats(self) -> dict[str, int]:
        """Get current statistics."""
        return {"hits": self._hits, "misses": self._misses, "size": len(self._cache)}

    def clear(self) -> None:
        """Drop all cached series and reset statistics."""
        self._cache.clear()
        self._hits = 0
        self._misses = 0
