"""
tier1_engine.py — Tier 1: labor hours

  base_hours     = quantity / base_productivity × optimal_team_size × 8
  bundled_hours  = excavation tier hours (when excavation is bundled)
  adjusted_hours = base_hours + Σ variable effects
  total_hours    = adjusted_hours + bundled_hours
  total_days     = total_hours / (optimal_team_size × 8)

Every percentage effect is taken against the ORIGINAL base hours, never the
running total, so effects commute: any selection order gives the same hours.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from tradesphere.config import HOURS_PER_DAY, HOURS_PRECISION, INCLUDE_EXCAVATION
from tradesphere.models.pricing_models import (
    LaborAdjustment,
    Option,
    PricingSelections,
    ServiceConfig,
    Tier1Result,
    Variable,
    VariableEffect,
)
from tradesphere.services.errors import InvalidQuantityError, InvalidSelection
from tradesphere.services.excavation_integration import calculate_excavation_hours
from tradesphere.services.trace import TraceHook, emit, log_trace


def validate_quantity(quantity) -> float:
    """Reject non-numeric, NaN/inf and non-positive quantities."""
    if isinstance(quantity, bool) or not isinstance(quantity, (int, float)):
        raise InvalidQuantityError(quantity)
    if not math.isfinite(quantity) or quantity <= 0:
        raise InvalidQuantityError(quantity)
    return float(quantity)


def bundles_excavation(config: ServiceConfig, selections: PricingSelections) -> bool:
    """Explicit selection wins; otherwise the configured toggle default applies."""
    if INCLUDE_EXCAVATION in selections.service_integrations:
        return selections.include_excavation
    return config.service_integrations.get(INCLUDE_EXCAVATION, False) is True


def select_option(
    config: ServiceConfig,
    variable: Variable,
    selections: PricingSelections,
    trace: TraceHook,
) -> Tuple[str, Optional[Option]]:
    """Resolve the user's choice for ``variable``; unknown keys fall back to the default."""
    requested = selections.selected(variable.name)
    if requested is None:
        return variable.default, variable.default_option()
    try:
        return str(requested), variable.require_option(str(requested))
    except InvalidSelection as e:
        emit(
            trace, "selection.defaulted",
            company_id=config.company_id,
            service_name=config.service_name,
            variable=e.variable,
            requested=requested,
            default=variable.default,
        )
        return variable.default, variable.default_option()


@dataclass
class LaborHours:
    """Unrounded Tier 1 figures; rounded only by ``to_result``."""
    base_hours: float
    bundled_hours: float = 0.0
    bundled_quantity: float = 0.0
    adjusted_hours: float = 0.0
    total_hours: float = 0.0
    total_days: float = 0.0
    breakdown_steps: List[str] = field(default_factory=list)
    adjustments: List[LaborAdjustment] = field(default_factory=list)

    @property
    def includes_excavation(self) -> bool:
        return self.bundled_hours > 0

    def to_result(self) -> Tier1Result:
        return Tier1Result(
            base_hours=round(self.base_hours, HOURS_PRECISION),
            bundled_hours=round(self.bundled_hours, HOURS_PRECISION),
            adjusted_hours=round(self.adjusted_hours, HOURS_PRECISION),
            total_hours=round(self.total_hours, HOURS_PRECISION),
            total_days=round(self.total_days, HOURS_PRECISION),
            breakdown_steps=list(self.breakdown_steps),
            adjustments=list(self.adjustments),
        )


# ---------------------------------------------------------------------------
# LaborHoursCalculator
# ---------------------------------------------------------------------------

class LaborHoursCalculator:
    """Pure and synchronous; safe to share across concurrent calculations."""

    def __init__(self, trace: Optional[TraceHook] = None):
        self.trace = trace or log_trace

    def calculate(self, config: ServiceConfig, selections: PricingSelections, quantity: float) -> LaborHours:
        quantity = validate_quantity(quantity)
        team = config.optimal_team_size
        crew_day_hours = team * HOURS_PER_DAY

        base = quantity / config.base_productivity * team * HOURS_PER_DAY
        hours = LaborHours(base_hours=base)
        hours.breakdown_steps.append(
            f"Base: {_num(quantity)} / {_num(config.base_productivity)} x {team} people x "
            f"{HOURS_PER_DAY} hours = {base:.2f} hours"
        )

        if bundles_excavation(config, selections):
            bundled_quantity = selections.bundled_quantity_for(quantity)
            hours.bundled_quantity = bundled_quantity
            hours.bundled_hours = float(calculate_excavation_hours(bundled_quantity))
            hours.adjustments.append(LaborAdjustment(
                variable=INCLUDE_EXCAVATION,
                kind="bundled",
                amount=bundled_quantity,
                hours=hours.bundled_hours,
            ))
            hours.breakdown_steps.append(
                f"+ Excavation (bundled, {_num(bundled_quantity)} sqft): +{hours.bundled_hours:.2f} hours"
            )

        for variable in config.variables_with_effect(
            VariableEffect.LABOR_TIME_PERCENTAGE, VariableEffect.LABOR_AND_WASTE
        ):
            adjustment = self._adjustment(config, variable, selections, base)
            if adjustment is None or adjustment.hours == 0:
                continue
            hours.adjustments.append(adjustment)
            hours.breakdown_steps.append(_describe(variable, adjustment, base))

        variable_hours = sum(a.hours for a in hours.adjustments if a.kind != "bundled")
        hours.adjusted_hours = base + variable_hours
        hours.total_hours = hours.adjusted_hours + hours.bundled_hours
        hours.total_days = hours.total_hours / crew_day_hours
        hours.breakdown_steps.append(
            f"Total: {hours.total_hours:.2f} hours = {hours.total_days:.2f} days "
            f"({team} people x {HOURS_PER_DAY} hours)"
        )
        return hours

    def _adjustment(
        self,
        config: ServiceConfig,
        variable: Variable,
        selections: PricingSelections,
        base: float,
    ) -> Optional[LaborAdjustment]:
        key, option = select_option(config, variable, selections, self.trace)
        if option is None:
            return None

        if variable.effect == VariableEffect.LABOR_TIME_PERCENTAGE:
            pct = option.value or 0.0
            return LaborAdjustment(variable=variable.name, option=key, kind="percentage",
                                   amount=pct, hours=base * pct / 100.0)

        if option.fixed_labor_hours is not None and option.fixed_labor_hours > 0:
            return LaborAdjustment(variable=variable.name, option=key, kind="fixed",
                                   amount=option.fixed_labor_hours, hours=option.fixed_labor_hours)
        pct = option.labor_percentage or 0.0
        return LaborAdjustment(variable=variable.name, option=key, kind="percentage",
                               amount=pct, hours=base * pct / 100.0)


def _num(value: float) -> str:
    return f"{value:g}"


def _describe(variable: Variable, adjustment: LaborAdjustment, base: float) -> str:
    label = variable.label or variable.name
    if adjustment.kind == "fixed":
        return f"+ {label} ({adjustment.option}): +{adjustment.hours:.2f} hours (fixed)"
    return (
        f"+ {label} ({adjustment.option}): +{base:.2f} x {_num(adjustment.amount)}% "
        f"= {adjustment.hours:+.2f} hours"
    )
