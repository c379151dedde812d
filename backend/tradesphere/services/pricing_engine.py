"""
PricingEngine — the pipeline entry points.

  (company_id, service_name, selections, quantity)
      → ConfigCache (cache / live / fallback)
      → Tier 1 labor hours
      → bundled excavation cost (async, optional)
      → Tier 2 costs
      → CalculationResult

One explicit instance per process (or per test) owns the store, cache and
realtime sync; nothing is global except the metrics singleton it defaults to.
"""
import logging
import time
from typing import Any, Dict, List, Optional, Union

from tradesphere.config import (
    CONFIDENCE_FALLBACK,
    CONFIDENCE_LIVE,
    DEFAULT_SERVICE,
    EXCAVATION_SERVICE,
)
from tradesphere.models.pricing_models import (
    CalculationResult,
    ExcavationCostResult,
    ExcavationPricingResult,
    PricingSelections,
    ServiceConfig,
)
from tradesphere.services.config_cache import SOURCE_FALLBACK, ConfigCache
from tradesphere.services.config_store import ConfigStore
from tradesphere.services.config_validator import validate_variables_config
from tradesphere.services.errors import ConfigValidationError
from tradesphere.services.excavation_integration import ExcavationCost, ExcavationIntegration
from tradesphere.services.perf_monitor import PricingMetrics, metrics as default_metrics, timed_async
from tradesphere.services.realtime_sync import ConfigSubscription, OnUpdate, RealtimeSync
from tradesphere.services.tier1_engine import LaborHours, LaborHoursCalculator, validate_quantity
from tradesphere.services.tier2_engine import CostCalculator
from tradesphere.services.trace import TraceHook, emit, log_trace

logger = logging.getLogger("tradesphere-pricing")


class PricingEngine:

    def __init__(
        self,
        store: ConfigStore,
        cache: Optional[ConfigCache] = None,
        metrics: Optional[PricingMetrics] = None,
        trace: Optional[TraceHook] = None,
    ):
        self.store = store
        self.metrics = metrics or default_metrics
        self.trace = trace or log_trace
        self.cache = cache or ConfigCache(store, metrics=self.metrics, trace=self.trace)
        self.labor = LaborHoursCalculator(trace=self.trace)
        self.costs = CostCalculator(trace=self.trace)
        self.excavation = ExcavationIntegration(self.cache)
        self.sync = RealtimeSync(store, self.cache, metrics=self.metrics)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    async def load_config(self, service_name: str, company_id: str) -> ServiceConfig:
        return await self.cache.get(company_id, service_name)

    async def force_reload_config(self, service_name: str, company_id: str) -> ServiceConfig:
        return await self.cache.force_reload(company_id, service_name)

    async def update_pricing_config(
        self,
        service_name: str,
        company_id: str,
        updates: Dict[str, Any],
    ) -> ServiceConfig:
        """
        Validate and write ``updates`` through the store, then invalidate the
        cached entry so this caller sees its own edit on the next calculation
        without waiting for the change notification.

        Raises ConfigValidationError for an invalid ``variables_config`` and
        ConfigUnavailableError when the store rejects the write.
        """
        if "variables_config" in updates:
            validation = validate_variables_config(updates["variables_config"])
            if not validation.valid:
                raise ConfigValidationError(validation.errors, validation.warnings)

        await self.store.save_config(company_id, service_name, updates)
        self.cache.invalidate(company_id, service_name)
        logger.info(
            f"Pricing config updated for {company_id}:{service_name} ({', '.join(sorted(updates))})",
            extra={"event": "config.updated", "company_id": company_id, "service_name": service_name},
        )
        return await self.cache.force_reload(company_id, service_name)

    def subscribe_to_config_changes(
        self,
        service_name: str,
        company_id: str,
        on_update: OnUpdate,
    ) -> ConfigSubscription:
        return self.sync.subscribe(service_name, company_id, on_update)

    async def close(self) -> None:
        await self.sync.close_all()

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    @timed_async
    async def calculate_pricing(
        self,
        selections: Union[PricingSelections, Dict[str, Any], None],
        quantity: float,
        service_name: str = DEFAULT_SERVICE,
        company_id: str = "",
    ) -> CalculationResult:
        """
        Price ``quantity`` units of ``service_name`` for ``company_id``.

        Raises InvalidQuantityError before any work; every other failure
        (store outage, bad selection, bundled sub-calculation) degrades to a
        fallback or a zero contribution and is reported in ``warnings``.
        """
        quantity = validate_quantity(quantity)
        if not isinstance(selections, PricingSelections):
            selections = PricingSelections.from_payload(selections or {})
        start = time.perf_counter()

        config, source = await self.cache.resolve(company_id, service_name)
        warnings: List[str] = []
        if source == SOURCE_FALLBACK:
            warnings.append(
                f"Pricing configuration for '{service_name}' unavailable; using default rates ({config.version})"
            )

        labor = self.labor.calculate(config, selections, quantity)
        bundled = await self._bundled_excavation(labor, selections, company_id, warnings)
        costs = self.costs.calculate(config, selections, quantity, labor, bundled)

        result = CalculationResult(
            tier1=labor.to_result(),
            tier2=costs.to_result(),
            quantity=quantity,
            service_name=service_name,
            company_id=company_id,
            config_version=config.version,
            source=source,
            confidence=CONFIDENCE_FALLBACK if source == SOURCE_FALLBACK else CONFIDENCE_LIVE,
            selections=selections,
            warnings=warnings,
        )

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        self.metrics.record_calculation(source, duration_ms)
        logger.info(
            f"Priced {quantity:g} x {service_name} for {company_id or '<none>'}: "
            f"{result.tier1.total_hours}h, total {result.tier2.total} ({source})",
            extra={"event": "pricing.calculated", "company_id": company_id,
                   "service_name": service_name, "source": source, "duration_ms": duration_ms},
        )
        return result

    async def _bundled_excavation(
        self,
        labor: LaborHours,
        selections: PricingSelections,
        company_id: str,
        warnings: List[str],
    ) -> Optional[ExcavationCost]:
        if not labor.includes_excavation:
            return None
        try:
            return await self.excavation.calculate_excavation_cost(
                labor.bundled_quantity, company_id, selections.custom_excavation_depth
            )
        except Exception as e:
            message = f"Excavation cost unavailable, bundled cost set to 0: {e}"
            logger.warning(message, extra={"event": "bundled.failed", "company_id": company_id,
                                           "service_name": EXCAVATION_SERVICE})
            self.metrics.record_failure("bundled")
            emit(self.trace, "bundled.failed", logging.WARNING,
                 company_id=company_id, service_name=EXCAVATION_SERVICE, error=str(e))
            warnings.append(message)
            return None

    # ------------------------------------------------------------------
    # Excavation
    # ------------------------------------------------------------------

    def calculate_excavation_hours(self, quantity: float) -> int:
        return self.excavation.calculate_excavation_hours(quantity)

    async def calculate_excavation_cost(
        self,
        quantity: float,
        company_id: str,
        custom_depth: Optional[float] = None,
    ) -> ExcavationCostResult:
        cost = await self.excavation.calculate_excavation_cost(quantity, company_id, custom_depth)
        return cost.to_result()

    async def calculate_excavation_pricing(
        self,
        quantity: float,
        depth_inches: Optional[float] = None,
        company_id: str = "",
    ) -> ExcavationPricingResult:
        return await self.excavation.calculate_excavation_pricing(quantity, depth_inches, company_id)
