"""
Pricing data model — configuration snapshots, user selections and the
calculation result contract.

ServiceConfig and CalculationResult are frozen: a configuration refresh
supersedes the snapshot, it never mutates it.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tradesphere.config import INCLUDE_EXCAVATION
from tradesphere.services.errors import InvalidSelection


def camel_key(key: str) -> str:
    """``include_excavation`` -> ``includeExcavation``; camelCase passes through."""
    if "_" not in key:
        return key
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


# ─── Configuration ───────────────────────────────────────────────────────────

class VariableType(str, Enum):
    SELECT = "select"
    SLIDER = "slider"


class VariableEffect(str, Enum):
    """Role a variable plays in the two-tier formula."""
    LABOR_TIME_PERCENTAGE = "labor_time_percentage"     # Tier 1, % of base hours
    LABOR_AND_WASTE = "labor_and_waste"                 # Tier 1 hours + Tier 2 waste
    MATERIAL_COST_MULTIPLIER = "material_cost_multiplier"
    DAILY_COST = "daily_cost"                           # pass-through, per project day
    FLAT_COST = "flat_cost"                             # pass-through, flat fee
    COMPLEXITY_PERCENTAGE = "complexity_percentage"     # Tier 2, before profit
    INFORMATIONAL = "informational"


class Option(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore", alias_generator=camel_key)

    label: str = ""
    value: Optional[float] = None
    multiplier: Optional[float] = None
    labor_percentage: Optional[float] = None
    material_waste: Optional[float] = None
    fixed_labor_hours: Optional[float] = None


class Variable(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    label: str = ""
    type: VariableType = VariableType.SELECT
    effect: VariableEffect = VariableEffect.INFORMATIONAL
    default: str
    options: Dict[str, Option] = Field(default_factory=dict)

    def default_option(self) -> Optional[Option]:
        return self.options.get(self.default)

    def require_option(self, option_key: str) -> Option:
        """Option for ``option_key``; raises InvalidSelection when the key is not defined."""
        if option_key not in self.options:
            raise InvalidSelection(self.name, option_key)
        return self.options[option_key]


class ServiceConfig(BaseModel):
    """Immutable, fully-populated pricing rules for one company and service."""
    model_config = ConfigDict(frozen=True)

    company_id: str
    service_name: str
    version: str = "0"
    updated_at: Optional[datetime] = None

    hourly_labor_rate: float
    optimal_team_size: int
    base_productivity: float
    base_material_cost: float
    profit_margin: float

    variables: Dict[str, Variable] = Field(default_factory=dict)
    settings: Dict[str, Union[float, str]] = Field(default_factory=dict)
    service_integrations: Dict[str, bool] = Field(default_factory=dict)
    source: str = "live"

    @property
    def cache_key(self) -> str:
        return f"{self.company_id}:{self.service_name}"

    def variables_with_effect(self, *effects: VariableEffect) -> List[Variable]:
        return [v for v in self.variables.values() if v.effect in effects]

    def setting(self, name: str, default: Any = None) -> Any:
        return self.settings.get(name, default)


class ConfigRecord(BaseModel):
    """
    Raw configuration row as read from the store.

    Accepts the snake_case column names and their camelCase spellings.
    Numeric columns arriving as strings (Postgres NUMERIC over JSON) are
    coerced here.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore", alias_generator=camel_key)

    company_id: str = ""
    service_name: str = ""
    hourly_labor_rate: Optional[float] = None
    optimal_team_size: Optional[float] = None
    base_productivity: Optional[float] = None
    base_material_cost: Optional[float] = None
    profit_margin: Optional[float] = None
    variables_config: Dict[str, Any] = Field(default_factory=dict)
    default_variables: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    version: Optional[str] = None
    updated_at: Optional[datetime] = None

    @field_validator("variables_config", "default_variables", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or {}


# ─── Selections ──────────────────────────────────────────────────────────────

class PricingSelections(BaseModel):
    """The user's chosen option key per variable plus bundling toggles."""

    values: Dict[str, Union[str, float]] = Field(default_factory=dict)
    service_integrations: Dict[str, bool] = Field(default_factory=dict)
    bundled_quantity: Optional[float] = Field(None, gt=0)
    custom_excavation_depth: Optional[float] = Field(None, gt=0)

    @field_validator("service_integrations", mode="before")
    @classmethod
    def _camel_integration_keys(cls, value):
        return {camel_key(k): v for k, v in (value or {}).items()}

    @property
    def include_excavation(self) -> bool:
        return self.service_integrations.get(INCLUDE_EXCAVATION) is True

    def selected(self, variable_name: str) -> Optional[Union[str, float]]:
        return self.values.get(variable_name)

    def bundled_quantity_for(self, quantity: float) -> float:
        return self.bundled_quantity if self.bundled_quantity is not None else quantity

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "PricingSelections":
        """
        Build selections from a loosely-shaped payload.

        Category-nested selections (``{"siteAccess": {"accessDifficulty": "moderate"}}``)
        are flattened; top-level scalars are taken as direct selections.
        """
        payload = dict(payload or {})
        values: Dict[str, Union[str, float]] = dict(payload.pop("values", {}) or {})
        integrations = payload.pop("service_integrations", None) or payload.pop("serviceIntegrations", None) or {}
        bundled_quantity = payload.pop("bundled_quantity", payload.pop("bundledQuantity", None))
        custom_depth = payload.pop("custom_excavation_depth", payload.pop("customExcavationDepth", None))

        for key, value in payload.items():
            if isinstance(value, dict):
                for var_name, option_key in value.items():
                    if isinstance(option_key, (str, int, float)) and not isinstance(option_key, bool):
                        values[var_name] = option_key
            elif isinstance(value, (str, int, float)) and not isinstance(value, bool):
                values[key] = value

        return cls(
            values=values,
            service_integrations=integrations,
            bundled_quantity=bundled_quantity,
            custom_excavation_depth=custom_depth,
        )


# ─── Results ─────────────────────────────────────────────────────────────────

class LaborAdjustment(BaseModel):
    """One Tier 1 step: what was applied and how many hours it added."""
    model_config = ConfigDict(frozen=True)

    variable: str
    option: Optional[str] = None
    kind: str                      # "percentage" | "fixed" | "bundled"
    amount: float                  # percentage points, or fixed hours
    hours: float


class Tier1Result(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_hours: float
    bundled_hours: float
    adjusted_hours: float          # primary-service hours after variable effects
    total_hours: float             # adjusted + bundled
    total_days: float
    breakdown_steps: List[str] = Field(default_factory=list)
    adjustments: List[LaborAdjustment] = Field(default_factory=list)


class BundledDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    service_name: str
    quantity: float
    volume: float                  # cubic yards, after rounding rule
    depth: float                   # inches
    waste_factor: float
    compaction_factor: float
    rate: float
    base_cost: float
    profit: float


class Tier2Result(BaseModel):
    model_config = ConfigDict(frozen=True)

    labor_cost: float
    material_cost_base: float
    material_waste_cost: float
    total_material_cost: float
    bundled_cost: Optional[float] = None
    bundled_details: Optional[BundledDetails] = None
    equipment_cost: float = 0.0
    obstacle_cost: float = 0.0
    pass_through_costs: float = 0.0
    complexity_multiplier: float = 1.0
    complexity_adjustment: float = 0.0
    subtotal: float
    profit: float
    total: float
    unit_price: float


class CalculationResult(BaseModel):
    """Output contract of the pricing pipeline. Safe to serialize and cache."""
    model_config = ConfigDict(frozen=True)

    tier1: Tier1Result
    tier2: Tier2Result
    quantity: float
    service_name: str
    company_id: str
    config_version: str
    source: str                    # "cache" | "live" | "fallback"
    confidence: float
    selections: PricingSelections
    warnings: List[str] = Field(default_factory=list)


class ExcavationCostResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    cost: float
    volume: float
    rate: float
    profit: float
    depth: float
    waste_factor: float
    compaction_factor: float
    base_cost: float


class ExcavationPricingResult(BaseModel):
    """Full standalone excavation quote."""
    model_config = ConfigDict(frozen=True)

    area_sqft: float
    depth_inches: float
    cubic_yards_raw: float
    cubic_yards_adjusted: float
    cubic_yards_final: float
    rounding_rule: str
    base_hours: int
    project_days: float
    base_cost: float
    profit: float
    total_cost: float
    cost_per_cubic_yard: float
    hours_per_cubic_yard: float


# ─── Change notifications ────────────────────────────────────────────────────

class ConfigChangeEvent(BaseModel):
    """A row change on the configuration store."""
    model_config = ConfigDict(frozen=True)

    event_type: str                # INSERT | UPDATE | DELETE
    company_id: str
    service_name: str
    new_record: Optional[Dict[str, Any]] = None
    old_record: Optional[Dict[str, Any]] = None

    @classmethod
    def from_notification(cls, payload: Dict[str, Any]) -> "ConfigChangeEvent":
        """Decode a store notification (``{eventType|type, new|record, old|old_record}``)."""
        new_record = payload.get("new_record") or payload.get("newRecord") or payload.get("new") or payload.get("record")
        old_record = payload.get("old_record") or payload.get("oldRecord") or payload.get("old")
        row = new_record or old_record or {}
        return cls(
            event_type=str(payload.get("event_type") or payload.get("eventType") or payload.get("type") or "UPDATE").upper(),
            company_id=str(payload.get("company_id") or payload.get("companyId") or row.get("company_id", "")),
            service_name=str(payload.get("service_name") or payload.get("serviceName") or row.get("service_name", "")),
            new_record=new_record,
            old_record=old_record,
        )

    def matches(self, company_id: str, service_name: str) -> bool:
        if self.company_id != company_id:
            return False
        names = {self.service_name}
        for record in (self.new_record, self.old_record):
            if record and record.get("service_name"):
                names.add(record["service_name"])
        return service_name in names
