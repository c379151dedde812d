"""
Configuration normalization — the one place raw store rows are interpreted.

A raw ``service_pricing_configs`` row carries category-nested variable tables
with sparse, partly legacy option fields. ``normalize_config`` runs once at
load time and produces a fully-populated ServiceConfig so the engines never
need fallback chains:

  - base settings filled with declared defaults
  - categories flattened into one ordered variable map
  - each variable assigned a canonical VariableEffect
  - material multipliers always in ``Option.multiplier``
  - complexity always a percentage in ``Option.value``
  - option-less complexity sliders kept as variables, read as multipliers
  - numeric "calculation settings" collected into ``ServiceConfig.settings``
  - every variable given a valid default option key
"""
import logging
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from tradesphere.models.pricing_models import (
    ConfigRecord,
    Option,
    ServiceConfig,
    Variable,
    VariableEffect,
    VariableType,
)
from tradesphere.services.errors import ConfigUnavailableError

logger = logging.getLogger("tradesphere-pricing.config")


# Declared defaults for base settings missing from a record
DEFAULT_HOURLY_LABOR_RATE: float = 25.0
DEFAULT_OPTIMAL_TEAM_SIZE: int = 3
DEFAULT_BASE_PRODUCTIVITY: float = 50.0
DEFAULT_BASE_MATERIAL_COST: float = 5.84
DEFAULT_PROFIT_MARGIN: float = 0.20

# Keys inside a category that describe the category, not a variable
_CATEGORY_META_KEYS = {"label", "description"}

# Category whose entries are scalar settings even when they declare options
SETTINGS_CATEGORY = "calculationSettings"
INTEGRATIONS_CATEGORY = "serviceIntegrations"

# Declared effect strings -> (canonical effect, complexity values are legacy multipliers)
_EFFECT_ALIASES: Dict[str, Tuple[VariableEffect, bool]] = {
    "labor_time_percentage": (VariableEffect.LABOR_TIME_PERCENTAGE, False),
    "labor_percentage": (VariableEffect.LABOR_TIME_PERCENTAGE, False),
    "cutting_complexity": (VariableEffect.LABOR_AND_WASTE, False),
    "labor_and_waste": (VariableEffect.LABOR_AND_WASTE, False),
    "dual": (VariableEffect.LABOR_AND_WASTE, False),
    "material_cost_multiplier": (VariableEffect.MATERIAL_COST_MULTIPLIER, False),
    "daily_cost": (VariableEffect.DAILY_COST, False),
    "daily_equipment_cost": (VariableEffect.DAILY_COST, False),
    "flat_cost": (VariableEffect.FLAT_COST, False),
    "flat_additional_cost": (VariableEffect.FLAT_COST, False),
    "complexity_percentage": (VariableEffect.COMPLEXITY_PERCENTAGE, False),
    "subtotal_percentage": (VariableEffect.COMPLEXITY_PERCENTAGE, False),
    "total_project_multiplier": (VariableEffect.COMPLEXITY_PERCENTAGE, False),
    "subtotal_multiplier": (VariableEffect.COMPLEXITY_PERCENTAGE, True),
    "informational": (VariableEffect.INFORMATIONAL, False),
}

# Well-known variable names for records that predate the ``effect`` field
_KNOWN_EFFECTS: Dict[str, VariableEffect] = {
    "accessDifficulty": VariableEffect.LABOR_TIME_PERCENTAGE,
    "teamSize": VariableEffect.LABOR_TIME_PERCENTAGE,
    "tearoutComplexity": VariableEffect.LABOR_TIME_PERCENTAGE,
    "cuttingComplexity": VariableEffect.LABOR_AND_WASTE,
    "paverStyle": VariableEffect.MATERIAL_COST_MULTIPLIER,
    "equipmentRequired": VariableEffect.DAILY_COST,
    "obstacleRemoval": VariableEffect.FLAT_COST,
    "overallComplexity": VariableEffect.COMPLEXITY_PERCENTAGE,
}


def normalize_config(raw: Dict[str, Any], source: str = "live") -> ServiceConfig:
    """
    Turn a raw store row into an immutable, fully-populated ServiceConfig.

    Raises ConfigUnavailableError if the row cannot be interpreted at all;
    callers treat that exactly like a missing record.
    """
    try:
        record = ConfigRecord.model_validate(raw)
    except ValidationError as e:
        raise ConfigUnavailableError(f"Malformed configuration record: {e}") from e

    variables: Dict[str, Variable] = {}
    settings: Dict[str, Any] = {}
    integrations: Dict[str, bool] = {}
    defaults = _flatten_defaults(record.default_variables)

    for name, definition, category in _iter_variable_definitions(record.variables_config):
        if category == INTEGRATIONS_CATEGORY or definition.get("type") == "toggle":
            integrations[name] = definition.get("default") is True
            continue
        if category != SETTINGS_CATEGORY and _is_complexity_slider(name, definition):
            variables[name] = _build_slider_variable(name, definition)
            continue
        if category == SETTINGS_CATEGORY or not isinstance(definition.get("options"), dict):
            if "default" in definition:
                settings[name] = _setting_value(definition["default"])
            continue
        try:
            variables[name] = _build_variable(name, definition, defaults.get(name))
        except (ValidationError, ValueError, TypeError) as e:
            logger.warning(
                "Skipping malformed variable '%s' in %s:%s: %s",
                name, record.company_id, record.service_name, e,
            )

    try:
        return ServiceConfig(
            company_id=record.company_id,
            service_name=record.service_name,
            version=record.version or (record.updated_at.isoformat() if record.updated_at else "0"),
            updated_at=record.updated_at,
            hourly_labor_rate=_non_negative(record.hourly_labor_rate, DEFAULT_HOURLY_LABOR_RATE),
            optimal_team_size=int(_positive(record.optimal_team_size, DEFAULT_OPTIMAL_TEAM_SIZE)),
            base_productivity=_positive(record.base_productivity, DEFAULT_BASE_PRODUCTIVITY),
            base_material_cost=_non_negative(record.base_material_cost, DEFAULT_BASE_MATERIAL_COST),
            profit_margin=_non_negative(record.profit_margin, DEFAULT_PROFIT_MARGIN),
            variables=variables,
            settings=settings,
            service_integrations=integrations,
            source=source,
        )
    except ValidationError as e:
        raise ConfigUnavailableError(f"Configuration record could not be normalized: {e}") from e


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _iter_variable_definitions(variables_config: Dict[str, Any]):
    """Yield ``(name, definition, category)`` for every variable, in declaration order."""
    for key, entry in variables_config.items():
        if not isinstance(entry, dict):
            continue  # formulaType, formulaDescription, ...
        if _looks_like_variable(entry):
            yield key, entry, None
            continue
        for var_name, definition in entry.items():
            if var_name in _CATEGORY_META_KEYS or not isinstance(definition, dict):
                continue
            yield var_name, definition, key


def _looks_like_variable(entry: Dict[str, Any]) -> bool:
    return "options" in entry or ("type" in entry and "default" in entry)


def _flatten_defaults(default_variables: Dict[str, Any]) -> Dict[str, Any]:
    """``default_variables`` may be flat ``{var: key}`` or nested ``{category: {var: key}}``."""
    flat: Dict[str, Any] = {}
    for key, value in default_variables.items():
        if isinstance(value, dict):
            flat.update(value)
        else:
            flat[key] = value
    return flat


def _setting_value(value: Any) -> Any:
    try:
        return float(value)
    except (TypeError, ValueError):
        return str(value)


def _resolve_effect(name: str, definition: Dict[str, Any]) -> Tuple[VariableEffect, bool]:
    declared = definition.get("effect") or definition.get("effectType")
    if isinstance(declared, str) and declared in _EFFECT_ALIASES:
        return _EFFECT_ALIASES[declared]
    if definition.get("tier") == "dual":
        return VariableEffect.LABOR_AND_WASTE, False
    if name in _KNOWN_EFFECTS:
        return _KNOWN_EFFECTS[name], False

    options = [o for o in definition.get("options", {}).values() if isinstance(o, dict)]
    if any(k in o for o in options for k in ("laborPercentage", "fixedLaborHours", "materialWaste")):
        return VariableEffect.LABOR_AND_WASTE, False
    if any("multiplier" in o for o in options):
        return VariableEffect.MATERIAL_COST_MULTIPLIER, False
    return VariableEffect.INFORMATIONAL, False


def _normalize_option(raw: Dict[str, Any], effect: VariableEffect, legacy_multiplier: bool) -> Option:
    option = Option.model_validate(raw)

    if effect == VariableEffect.MATERIAL_COST_MULTIPLIER:
        multiplier = option.multiplier if option.multiplier is not None else option.value
        return option.model_copy(update={"multiplier": 1.0 if multiplier is None else multiplier})

    if effect == VariableEffect.COMPLEXITY_PERCENTAGE:
        # Canonical form: percentage in ``value``; multipliers are converted here once
        if option.multiplier is not None:
            percentage = (option.multiplier - 1.0) * 100.0
        elif legacy_multiplier and option.value is not None:
            percentage = (option.value - 1.0) * 100.0
        else:
            percentage = option.value or 0.0
        return option.model_copy(update={"value": percentage, "multiplier": None})

    return option


def _build_variable(name: str, definition: Dict[str, Any], stored_default: Optional[Any]) -> Variable:
    effect, legacy_multiplier = _resolve_effect(name, definition)
    options = {
        key: _normalize_option(raw, effect, legacy_multiplier)
        for key, raw in definition["options"].items()
        if isinstance(raw, dict)
    }
    if not options:
        raise ValueError("variable has no usable options")

    default = definition.get("default")
    if default not in options:
        default = stored_default if stored_default in options else next(iter(options))

    var_type = definition.get("type")
    return Variable(
        name=name,
        label=str(definition.get("label", "")),
        type=VariableType.SLIDER if var_type == "slider" else VariableType.SELECT,
        effect=effect,
        default=default,
        options=options,
    )


def _is_complexity_slider(name: str, definition: Dict[str, Any]) -> bool:
    """A ranged complexity control with no option table; its selection is a direct multiplier."""
    if "options" in definition or definition.get("type") not in ("slider", "number"):
        return False
    return _resolve_effect(name, definition)[0] == VariableEffect.COMPLEXITY_PERCENTAGE


def _build_slider_variable(name: str, definition: Dict[str, Any]) -> Variable:
    return Variable(
        name=name,
        label=str(definition.get("label", "")),
        type=VariableType.SLIDER,
        effect=VariableEffect.COMPLEXITY_PERCENTAGE,
        default=str(definition.get("default", 1.0)),
    )


def _positive(value: Optional[float], default: float) -> float:
    if value is None or value <= 0:
        return default
    return float(value)


def _non_negative(value: Optional[float], default: float) -> float:
    if value is None or value < 0:
        return default
    return float(value)
