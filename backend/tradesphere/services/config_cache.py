"""
ConfigCache — in-process cache of normalized ServiceConfigs keyed by
``"{company_id}:{service_name}"``.

Lookup order: cached entry → live store record → compiled-in fallback.
Fallback configs are never cached, so the next call retries the store.
Nothing here raises for a missing or unreachable configuration.
"""
import logging
from typing import Dict, Optional, Tuple

from tradesphere.models.pricing_models import ServiceConfig
from tradesphere.services.config_normalizer import normalize_config
from tradesphere.services.config_store import ConfigStore
from tradesphere.services.default_configs import fallback_record
from tradesphere.services.errors import ConfigUnavailableError
from tradesphere.services.perf_monitor import PricingMetrics, metrics as default_metrics
from tradesphere.services.trace import TraceHook, emit, log_trace

logger = logging.getLogger("tradesphere-pricing.cache")

SOURCE_CACHE = "cache"
SOURCE_LIVE = "live"
SOURCE_FALLBACK = "fallback"


def cache_key(company_id: str, service_name: str) -> str:
    return f"{company_id}:{service_name}"


class ConfigCache:

    def __init__(
        self,
        store: ConfigStore,
        metrics: Optional[PricingMetrics] = None,
        trace: Optional[TraceHook] = None,
    ):
        self.store = store
        self.metrics = metrics or default_metrics
        self.trace = trace or log_trace
        self._entries: Dict[str, ServiceConfig] = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, company_id: str, service_name: str) -> ServiceConfig:
        config, _ = await self.resolve(company_id, service_name)
        return config

    async def resolve(self, company_id: str, service_name: str) -> Tuple[ServiceConfig, str]:
        """Return ``(config, source)`` where source is cache, live or fallback."""
        cached = self._entries.get(cache_key(company_id, service_name))
        if cached is not None:
            self.metrics.record_cache(hit=True)
            return cached, SOURCE_CACHE
        self.metrics.record_cache(hit=False)
        return await self._load(company_id, service_name, evict_on_failure=False)

    async def force_reload(self, company_id: str, service_name: str) -> ServiceConfig:
        """Bypass the cache: re-fetch, overwrite the entry, or evict it if the store has nothing usable."""
        self.invalidate(company_id, service_name)
        config, _ = await self._load(company_id, service_name, evict_on_failure=True)
        return config

    def peek(self, company_id: str, service_name: str) -> Optional[ServiceConfig]:
        return self._entries.get(cache_key(company_id, service_name))

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def invalidate(self, company_id: str, service_name: str) -> bool:
        removed = self._entries.pop(cache_key(company_id, service_name), None) is not None
        if removed:
            logger.debug(
                f"Invalidated {cache_key(company_id, service_name)}",
                extra={"event": "cache.invalidate", "company_id": company_id, "service_name": service_name},
            )
        return removed

    def invalidate_all(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        logger.info(f"Cleared {count} cached pricing configs", extra={"event": "cache.clear"})

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _load(self, company_id: str, service_name: str, evict_on_failure: bool) -> Tuple[ServiceConfig, str]:
        key = cache_key(company_id, service_name)

        if not company_id or not company_id.strip():
            return self._fallback(company_id, service_name, reason="missing company_id"), SOURCE_FALLBACK

        try:
            raw = await self.store.fetch_config(company_id, service_name)
        except ConfigUnavailableError as e:
            return self._failed(key, company_id, service_name, str(e), evict_on_failure), SOURCE_FALLBACK
        except Exception as e:
            # Adapters should wrap their own errors; an unwrapped one is still not fatal
            logger.exception(f"Unexpected config store error for {key}")
            return self._failed(key, company_id, service_name, repr(e), evict_on_failure), SOURCE_FALLBACK

        if raw is None:
            if evict_on_failure:
                self._entries.pop(key, None)
            return self._fallback(company_id, service_name, reason="no active record"), SOURCE_FALLBACK

        try:
            config = normalize_config(raw, source=SOURCE_LIVE)
        except ConfigUnavailableError as e:
            return self._failed(key, company_id, service_name, str(e), evict_on_failure), SOURCE_FALLBACK

        self._entries[key] = config
        logger.info(
            f"Loaded pricing config {key} (version {config.version})",
            extra={"event": "config.loaded", "company_id": company_id, "service_name": service_name},
        )
        return config, SOURCE_LIVE

    def _failed(self, key: str, company_id: str, service_name: str, error: str, evict: bool) -> ServiceConfig:
        logger.warning(
            f"Config load failed for {key}: {error}",
            extra={"event": "config.load_failed", "company_id": company_id, "service_name": service_name},
        )
        self.metrics.record_failure("config_load")
        if evict:
            self._entries.pop(key, None)
        return self._fallback(company_id, service_name, reason=error)

    def _fallback(self, company_id: str, service_name: str, reason: str) -> ServiceConfig:
        self.metrics.record_fallback()
        emit(
            self.trace, "config.fallback", logging.WARNING,
            company_id=company_id, service_name=service_name, reason=reason,
        )
        return normalize_config(fallback_record(service_name, company_id), source=SOURCE_FALLBACK)
