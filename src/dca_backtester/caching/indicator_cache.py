"""
IndicatorCache: share indicator arrays across backtests on the same candles.

Optimizer trials replay one candle frame with configs that mostly share
indicator periods, so CCI / CMO / Williams %R / Turtle arrays are computed
once per (indicator, data, params) and reused.
"""

import hashlib
import json
import threading
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

import numpy as np
import pandas as pd

from dca_backtester.logging import get_logger

logger = get_logger(__name__)


def _freeze(value: Any) -> Any:
    """Mark numpy arrays (also inside tuples) read-only before sharing them."""
    if isinstance(value, np.ndarray):
        value.flags.writeable = False
    elif isinstance(value, tuple):
        for item in value:
            _freeze(item)
    return value


class IndicatorCache:
    """
    In-memory cache for indicator arrays.

    Keys are built from indicator name + data hash + parameters. Cached
    arrays are read-only. Oldest entries are evicted first once
    ``max_size`` is reached. Each process owns its own cache. Within a
    process, reads and writes hold a lock, so API worker threads can share
    one instance.
    """

    def __init__(self, max_size: int = 256) -> None:
        self._cache: OrderedDict[str, Any] = OrderedDict()
        self._max_size = max_size
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._cache)

    def get(self, key: str) -> Any | None:
        """Get cached value by key."""
        with self._lock:
            value = self._cache.get(key)
            if value is not None:
                self._hits += 1
            else:
                self._misses += 1
        return value

    def put(self, key: str, value: Any) -> None:
        """Cache a value, evicting the oldest entries when at capacity."""
        frozen = _freeze(value)
        with self._lock:
            evicted = 0
            if key not in self._cache and len(self._cache) >= self._max_size:
                evicted = max(1, self._max_size // 10)
                for _ in range(evicted):
                    self._cache.popitem(last=False)
            self._cache[key] = frozen
        if evicted:
            logger.debug("Indicator cache eviction", evicted=evicted)

    def get_or_compute(self, key: str, compute_fn: Callable[[], Any]) -> Any:
        """Get cached value or compute and cache it."""
        value = self.get(key)
        if value is not None:
            return value
        value = compute_fn()
        self.put(key, value)
        return value

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    @property
    def stats(self) -> dict[str, Any]:
        with self._lock:
            hits, misses, size = self._hits, self._misses, len(self._cache)
        total = hits + misses
        return {
            "size": size,
            "max_size": self._max_size,
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / total, 4) if total > 0 else 0.0,
        }

    @staticmethod
    def make_key(indicator: str, data_hash: str, **params: Any) -> str:
        """Build a cache key from indicator name, data hash, and parameters."""
        return f"{indicator}:{data_hash}:{json.dumps(params, sort_keys=True)}"

    @staticmethod
    def hash_candles(candles: pd.DataFrame) -> str:
        """Short content hash of a candle frame."""
        row_hashes = pd.util.hash_pandas_object(candles, index=False).to_numpy()
        return hashlib.sha256(row_hashes.tobytes()).hexdigest()[:16]
