"""
excavation_integration.py — Excavation as a standalone and a bundled service

Two independent quantities:

  Hours  — area-based step function: every started 1000 sqft tier costs a
           flat 12 hours (depth does not affect time)
  Cost   — volume-based: sqft × depth(in)/12 / 27 = cubic yards, inflated by
           waste and compaction, rounded per the configured rule, priced at
           the excavation service's rate per cubic yard plus its own profit

Settings (depth, waste, compaction, rounding) come from the live
``excavation_removal`` configuration's calculation settings.
"""
import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

from tradesphere.config import (
    CUBIC_FEET_PER_CUBIC_YARD,
    CURRENCY_PRECISION,
    EXCAVATION_DAYS_PER_TIER,
    EXCAVATION_HOURS_PER_TIER,
    EXCAVATION_SERVICE,
    EXCAVATION_TIER_SIZE,
    INCHES_PER_FOOT,
    ROUNDING_EXACT,
    ROUNDING_RULES,
    ROUNDING_UP_HALF,
    ROUNDING_UP_WHOLE,
)
from tradesphere.models.pricing_models import (
    BundledDetails,
    ExcavationCostResult,
    ExcavationPricingResult,
    ServiceConfig,
)
from tradesphere.services.errors import BundledCalculationError, InvalidQuantityError

logger = logging.getLogger("tradesphere-pricing.excavation")


# ---------------------------------------------------------------------------
# Setting defaults (used when the excavation config omits a setting)
# ---------------------------------------------------------------------------

DEFAULT_DEPTH_INCHES: float = 12.0
DEFAULT_WASTE_FACTOR_PCT: float = 10.0
DEFAULT_COMPACTION_FACTOR_PCT: float = 0.0
DEFAULT_ROUNDING_RULE: str = ROUNDING_UP_WHOLE

# Float noise tolerance before rounding up (37.0000000001 must stay 37)
_ROUNDING_GUARD_DIGITS = 6


def excavation_tiers(quantity: float) -> int:
    return math.ceil(quantity / EXCAVATION_TIER_SIZE)


def calculate_excavation_hours(quantity: float) -> int:
    """
    Labor hours for excavating ``quantity`` sqft: ceil(q / 1000) × 12.

    1 → 12, 1000 → 12, 1001 → 24, 2001 → 36.
    """
    _require_quantity(quantity)
    return excavation_tiers(quantity) * EXCAVATION_HOURS_PER_TIER


def apply_rounding(cubic_yards: float, rule: str) -> float:
    if rule == ROUNDING_UP_WHOLE:
        return float(math.ceil(round(cubic_yards, _ROUNDING_GUARD_DIGITS)))
    if rule == ROUNDING_UP_HALF:
        return math.ceil(round(cubic_yards * 2, _ROUNDING_GUARD_DIGITS)) / 2
    if rule == ROUNDING_EXACT:
        return cubic_yards
    raise BundledCalculationError(f"Unknown rounding rule '{rule}'; expected one of {', '.join(ROUNDING_RULES)}")


@dataclass(frozen=True)
class ExcavationSettings:
    depth_inches: float
    waste_factor: float          # percent
    compaction_factor: float     # percent
    rounding_rule: str
    rate: float                  # currency per cubic yard
    profit_margin: float

    @classmethod
    def from_config(cls, config: ServiceConfig) -> "ExcavationSettings":
        try:
            settings = cls(
                depth_inches=float(config.setting("defaultDepth", DEFAULT_DEPTH_INCHES)),
                waste_factor=float(config.setting("wasteFactor", DEFAULT_WASTE_FACTOR_PCT)),
                compaction_factor=float(config.setting("compactionFactor", DEFAULT_COMPACTION_FACTOR_PCT)),
                rounding_rule=str(config.setting("roundingRule", DEFAULT_ROUNDING_RULE)),
                rate=config.hourly_labor_rate,
                profit_margin=config.profit_margin,
            )
        except (TypeError, ValueError) as e:
            raise BundledCalculationError(f"Invalid excavation settings in {config.cache_key}: {e}") from e
        if settings.waste_factor < 0 or settings.compaction_factor < 0:
            raise BundledCalculationError("Excavation waste and compaction factors must be non-negative")
        if settings.rounding_rule not in ROUNDING_RULES:
            raise BundledCalculationError(f"Unknown rounding rule '{settings.rounding_rule}'")
        return settings


@dataclass(frozen=True)
class ExcavationVolume:
    raw: float
    adjusted: float
    final: float


def excavation_volume(area_sqft: float, depth_inches: float, settings: ExcavationSettings) -> ExcavationVolume:
    raw = area_sqft * (depth_inches / INCHES_PER_FOOT) / CUBIC_FEET_PER_CUBIC_YARD
    adjusted = raw * (1 + settings.waste_factor / 100.0) * (1 + settings.compaction_factor / 100.0)
    return ExcavationVolume(raw=raw, adjusted=adjusted, final=apply_rounding(adjusted, settings.rounding_rule))


@dataclass(frozen=True)
class ExcavationCost:
    """Unrounded bundled-excavation cost; rounded at the result boundary."""
    quantity: float
    volume: float
    depth: float
    waste_factor: float
    compaction_factor: float
    rate: float
    base_cost: float
    profit: float
    cost: float

    def to_result(self) -> ExcavationCostResult:
        p = CURRENCY_PRECISION
        return ExcavationCostResult(
            cost=round(self.cost, p),
            volume=round(self.volume, 2),
            rate=round(self.rate, p),
            profit=round(self.profit, p),
            depth=self.depth,
            waste_factor=self.waste_factor,
            compaction_factor=self.compaction_factor,
            base_cost=round(self.base_cost, p),
        )

    def to_details(self, service_name: str = EXCAVATION_SERVICE) -> BundledDetails:
        p = CURRENCY_PRECISION
        return BundledDetails(
            service_name=service_name,
            quantity=self.quantity,
            volume=round(self.volume, 2),
            depth=self.depth,
            waste_factor=self.waste_factor,
            compaction_factor=self.compaction_factor,
            rate=round(self.rate, p),
            base_cost=round(self.base_cost, p),
            profit=round(self.profit, p),
        )


# ---------------------------------------------------------------------------
# ExcavationIntegration
# ---------------------------------------------------------------------------

class ExcavationIntegration:
    """Prices excavation against the company's ``excavation_removal`` configuration."""

    def __init__(self, cache, service_name: str = EXCAVATION_SERVICE):
        self.cache = cache
        self.service_name = service_name

    def calculate_excavation_hours(self, quantity: float) -> int:
        return calculate_excavation_hours(quantity)

    async def calculate_excavation_cost(
        self,
        quantity: float,
        company_id: str,
        custom_depth: Optional[float] = None,
    ) -> ExcavationCost:
        """
        Volume-based excavation cost for ``quantity`` sqft.

        ``custom_depth`` (inches) overrides the configured default depth.
        Raises InvalidQuantityError for a non-positive quantity and
        BundledCalculationError for a bad depth or configuration; callers
        bundling excavation recover from either.
        """
        _require_quantity(quantity)
        config = await self.cache.get(company_id, self.service_name)
        settings = ExcavationSettings.from_config(config)
        depth = _resolve_depth(custom_depth, settings)

        volume = excavation_volume(quantity, depth, settings)
        base_cost = volume.final * settings.rate
        profit = base_cost * settings.profit_margin
        logger.debug(
            f"Excavation cost {company_id}: {quantity:g} sqft @ {depth:g}in -> "
            f"{volume.final:g} cy x {settings.rate:g} = {base_cost + profit:.2f}",
            extra={"event": "excavation.cost", "company_id": company_id, "service_name": self.service_name},
        )
        return ExcavationCost(
            quantity=float(quantity),
            volume=volume.final,
            depth=depth,
            waste_factor=settings.waste_factor,
            compaction_factor=settings.compaction_factor,
            rate=settings.rate,
            base_cost=base_cost,
            profit=profit,
            cost=base_cost + profit,
        )

    async def calculate_excavation_pricing(
        self,
        quantity: float,
        depth_inches: Optional[float] = None,
        company_id: str = "",
    ) -> ExcavationPricingResult:
        """
        Full standalone excavation quote.

        Always force-reloads the excavation config so admin edits to the rate
        or settings take effect on the very next quote.
        """
        _require_quantity(quantity)
        config = await self.cache.force_reload(company_id, self.service_name)
        settings = ExcavationSettings.from_config(config)
        depth = _resolve_depth(depth_inches, settings)

        volume = excavation_volume(quantity, depth, settings)
        tiers = excavation_tiers(quantity)
        base_hours = tiers * EXCAVATION_HOURS_PER_TIER
        base_cost = volume.final * settings.rate
        profit = base_cost * settings.profit_margin
        total_cost = base_cost + profit
        per_cy, hours_per_cy = _per_cubic_yard(total_cost, base_hours, volume.final)

        p = CURRENCY_PRECISION
        return ExcavationPricingResult(
            area_sqft=float(quantity),
            depth_inches=depth,
            cubic_yards_raw=round(volume.raw, 2),
            cubic_yards_adjusted=round(volume.adjusted, 2),
            cubic_yards_final=round(volume.final, 2),
            rounding_rule=settings.rounding_rule,
            base_hours=base_hours,
            project_days=tiers * EXCAVATION_DAYS_PER_TIER,
            base_cost=round(base_cost, p),
            profit=round(profit, p),
            total_cost=round(total_cost, p),
            cost_per_cubic_yard=round(per_cy, p),
            hours_per_cubic_yard=round(hours_per_cy, 1),
        )


def _is_positive_number(value) -> bool:
    return not isinstance(value, bool) and isinstance(value, (int, float)) and math.isfinite(value) and value > 0


def _require_quantity(quantity) -> None:
    if not _is_positive_number(quantity):
        raise InvalidQuantityError(quantity)


def _resolve_depth(custom_depth: Optional[float], settings: ExcavationSettings) -> float:
    depth = settings.depth_inches if custom_depth is None else custom_depth
    if not _is_positive_number(depth):
        raise BundledCalculationError(f"Excavation depth must be greater than zero; received {depth!r}")
    return float(depth)


def _per_cubic_yard(total_cost: float, base_hours: int, cubic_yards: float) -> Tuple[float, float]:
    if cubic_yards <= 0:
        return 0.0, 0.0
    return total_cost / cubic_yards, base_hours / cubic_yards
