"""Performance monitoring utilities for the pricing pipeline."""
import functools
import logging
import sys
import threading
import time
from collections import Counter
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("tradesphere-pricing.perf")

# Calls slower than this are logged at WARNING instead of DEBUG
SLOW_CALL_MS: float = 250.0


def timed_async(func: Optional[Callable] = None, *, slow_ms: float = SLOW_CALL_MS) -> Callable:
    """
    Log the wall time of an async callable; usable bare or with arguments::

        @timed_async
        async def calculate_pricing(...): ...

        @timed_async(slow_ms=50)
        async def load(...): ...
    """
    def decorate(fn: Callable) -> Callable:
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            started = time.perf_counter()
            try:
                return await fn(*args, **kwargs)
            finally:
                elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
                logger.log(
                    logging.WARNING if elapsed_ms >= slow_ms else logging.DEBUG,
                    f"{fn.__qualname__} took {elapsed_ms}ms",
                    extra={"event": "function.timed", "duration_ms": elapsed_ms},
                )
        return wrapper

    return decorate(func) if func is not None else decorate


def process_memory_mb() -> float:
    """Peak resident set size of this process in MB; 0.0 where ``resource`` is missing (Windows)."""
    try:
        import resource
    except ImportError:
        return 0.0
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # bytes on macOS, kilobytes elsewhere
    divisor = 1024 * 1024 if sys.platform == "darwin" else 1024
    return round(peak / divisor, 2)


class PricingMetrics:
    """
    Thread-safe in-memory counters for the pricing pipeline: calculations
    per config source and their average duration, cache hits and misses,
    fallback configs served, and failures by kind (config_load, bundled,
    subscription).
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._reset_locked()

    def _reset_locked(self) -> None:
        self._total_duration_ms: float = 0.0
        self._by_source: Counter = Counter()
        self._cache: Counter = Counter()
        self._fallbacks: int = 0
        self._failures: Counter = Counter()

    def record_calculation(self, source: str, duration_ms: float) -> None:
        """Call once when a calculate_pricing run finishes."""
        with self._lock:
            self._total_duration_ms += duration_ms
            self._by_source[source] += 1

    def record_cache(self, hit: bool) -> None:
        with self._lock:
            self._cache["hit" if hit else "miss"] += 1

    def record_fallback(self) -> None:
        with self._lock:
            self._fallbacks += 1

    def record_failure(self, kind: str) -> None:
        with self._lock:
            self._failures[kind] += 1

    def get_metrics(self) -> Dict[str, Any]:
        """
        Snapshot with keys ``calculations``, ``avg_calculation_ms``,
        ``calculations_by_source``, ``fallbacks_served``, ``cache_hits``,
        ``cache_misses``, ``failure_count`` and ``failures_by_kind``.
        """
        with self._lock:
            calculations = sum(self._by_source.values())
            return {
                "calculations": calculations,
                "avg_calculation_ms": round(self._total_duration_ms / calculations, 2) if calculations else 0.0,
                "calculations_by_source": dict(self._by_source),
                "fallbacks_served": self._fallbacks,
                "cache_hits": self._cache["hit"],
                "cache_misses": self._cache["miss"],
                "failure_count": sum(self._failures.values()),
                "failures_by_kind": dict(self._failures),
            }

    def reset(self) -> None:
        with self._lock:
            self._reset_locked()


# Process-wide default; engines accept their own instance for isolation
metrics = PricingMetrics()
