"""
tier2_engine.py — Tier 2: costs

Order is load-bearing:

  1. labor_cost        = total_hours × hourly_labor_rate
  2. material base     = base_material_cost × quantity × style multiplier
  3. material waste    = material base × cutting waste %
  4. bundled cost      = pre-computed excavation cost (profit-bearing)
  5. pass-through      = equipment daily rate × project days + obstacle fee
  6. complexity        = (labor + material + bundled) × (1 + pct / 100)
  7. profit            = complexity-adjusted subtotal × profit_margin
  8. total             = adjusted subtotal + profit + pass-through

Pass-through costs are billed at cost: no complexity, no profit.
"""
from dataclasses import dataclass
from typing import Optional

from tradesphere.config import CURRENCY_PRECISION, EXCAVATION_SERVICE
from tradesphere.models.pricing_models import (
    PricingSelections,
    ServiceConfig,
    Tier2Result,
    Variable,
    VariableEffect,
)
from tradesphere.services.excavation_integration import ExcavationCost
from tradesphere.services.tier1_engine import LaborHours, select_option, validate_quantity
from tradesphere.services.trace import TraceHook, emit, log_trace


@dataclass
class CostBreakdown:
    """Unrounded Tier 2 figures; rounded only by ``to_result``."""
    quantity: float
    labor_cost: float
    material_multiplier: float
    material_cost_base: float
    material_waste_pct: float
    material_waste_cost: float
    total_material_cost: float
    bundled: Optional[ExcavationCost]
    equipment_daily_rate: float
    equipment_cost: float
    obstacle_cost: float
    complexity_pct: float
    complexity_adjustment: float
    subtotal_before_profit: float
    profit: float
    total: float

    @property
    def bundled_cost(self) -> float:
        return self.bundled.cost if self.bundled is not None else 0.0

    @property
    def pass_through_costs(self) -> float:
        return self.equipment_cost + self.obstacle_cost

    @property
    def complexity_multiplier(self) -> float:
        return 1 + self.complexity_pct / 100.0

    @property
    def unit_price(self) -> float:
        return self.total / self.quantity

    def to_result(self, bundled_service: str = EXCAVATION_SERVICE) -> Tier2Result:
        p = CURRENCY_PRECISION
        total = round(self.total, p)
        return Tier2Result(
            labor_cost=round(self.labor_cost, p),
            material_cost_base=round(self.material_cost_base, p),
            material_waste_cost=round(self.material_waste_cost, p),
            total_material_cost=round(self.total_material_cost, p),
            bundled_cost=round(self.bundled.cost, p) if self.bundled is not None else None,
            bundled_details=self.bundled.to_details(bundled_service) if self.bundled is not None else None,
            equipment_cost=round(self.equipment_cost, p),
            obstacle_cost=round(self.obstacle_cost, p),
            pass_through_costs=round(self.pass_through_costs, p),
            complexity_multiplier=round(self.complexity_multiplier, 4),
            complexity_adjustment=round(self.complexity_adjustment, p),
            subtotal=total,
            profit=round(self.profit, p),
            total=total,
            unit_price=round(self.unit_price, p),
        )


# ---------------------------------------------------------------------------
# CostCalculator
# ---------------------------------------------------------------------------

class CostCalculator:
    """Pure and synchronous. Bundled costs arrive pre-computed from the pipeline."""

    def __init__(self, trace: Optional[TraceHook] = None):
        self.trace = trace or log_trace

    def calculate(
        self,
        config: ServiceConfig,
        selections: PricingSelections,
        quantity: float,
        labor: LaborHours,
        bundled: Optional[ExcavationCost] = None,
    ) -> CostBreakdown:
        quantity = validate_quantity(quantity)

        # 1. Labor
        labor_cost = labor.total_hours * config.hourly_labor_rate

        # 2-3. Materials
        multiplier = 1.0
        for variable in config.variables_with_effect(VariableEffect.MATERIAL_COST_MULTIPLIER):
            _, option = select_option(config, variable, selections, self.trace)
            if option is not None and option.multiplier is not None:
                multiplier *= option.multiplier
        material_base = config.base_material_cost * quantity * multiplier

        waste_pct = 0.0
        for variable in config.variables_with_effect(VariableEffect.LABOR_AND_WASTE):
            _, option = select_option(config, variable, selections, self.trace)
            if option is not None:
                waste_pct += option.material_waste or 0.0
        material_waste = material_base * waste_pct / 100.0
        total_material = material_base + material_waste

        # 4. Bundled services
        bundled_cost = bundled.cost if bundled is not None else 0.0

        # 5. Pass-through
        daily_rate = self._sum_values(config, selections, VariableEffect.DAILY_COST)
        equipment_cost = daily_rate * labor.total_days
        obstacle_cost = self._sum_values(config, selections, VariableEffect.FLAT_COST)

        # 6. Complexity, before profit
        complexity_pct = sum(
            self._complexity_pct(config, variable, selections)
            for variable in config.variables_with_effect(VariableEffect.COMPLEXITY_PERCENTAGE)
        )
        profit_bearing = labor_cost + total_material + bundled_cost
        adjusted = profit_bearing * (1 + complexity_pct / 100.0)

        # 7-8. Profit and total
        profit = adjusted * config.profit_margin
        total = adjusted + profit + equipment_cost + obstacle_cost

        return CostBreakdown(
            quantity=quantity,
            labor_cost=labor_cost,
            material_multiplier=multiplier,
            material_cost_base=material_base,
            material_waste_pct=waste_pct,
            material_waste_cost=material_waste,
            total_material_cost=total_material,
            bundled=bundled,
            equipment_daily_rate=daily_rate,
            equipment_cost=equipment_cost,
            obstacle_cost=obstacle_cost,
            complexity_pct=complexity_pct,
            complexity_adjustment=adjusted - profit_bearing,
            subtotal_before_profit=adjusted,
            profit=profit,
            total=total,
        )

    def _sum_values(self, config: ServiceConfig, selections: PricingSelections, effect: VariableEffect) -> float:
        total = 0.0
        for variable in config.variables_with_effect(effect):
            _, option = select_option(config, variable, selections, self.trace)
            if option is not None:
                total += option.value or 0.0
        return total

    def _complexity_pct(self, config: ServiceConfig, variable: Variable, selections: PricingSelections) -> float:
        selected = selections.selected(variable.name)
        # A bare number is a legacy direct multiplier (1.15 == +15%)
        if isinstance(selected, (int, float)) and not isinstance(selected, bool):
            if selected > 0:
                return (selected - 1.0) * 100.0
            emit(
                self.trace, "selection.defaulted",
                company_id=config.company_id, service_name=config.service_name,
                variable=variable.name, requested=selected, default=variable.default,
            )
            selections = selections.model_copy(update={"values": {**selections.values, variable.name: variable.default}})
        if not variable.options:
            # Option-less slider: the default is a multiplier too
            return _default_multiplier_pct(variable)
        _, option = select_option(config, variable, selections, self.trace)
        return (option.value or 0.0) if option is not None else 0.0


def _default_multiplier_pct(variable: Variable) -> float:
    try:
        multiplier = float(variable.default)
    except ValueError:
        return 0.0
    return (multiplier - 1.0) * 100.0 if multiplier > 0 else 0.0
