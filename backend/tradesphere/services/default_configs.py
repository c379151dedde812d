"""
Compiled-in fallback configuration records.

These are raw store rows (same shape as ``service_pricing_configs``) and go
through the normal normalization step; there is no separate legacy code path.
Used when the store is unreachable or has no active record for a
company/service pair.
"""
import copy
from typing import Any, Dict

from tradesphere.config import EXCAVATION_SERVICE, PAVER_PATIO_SERVICE

FALLBACK_COMPANY_ID = "fallback"
FALLBACK_VERSION = "fallback-2.0.0"


PAVER_PATIO_RECORD: Dict[str, Any] = {
    "service_name": PAVER_PATIO_SERVICE,
    "hourly_labor_rate": 25.00,
    "optimal_team_size": 3,
    "base_productivity": 50.00,       # sqft per crew-day
    "base_material_cost": 5.84,       # $/sqft
    "profit_margin": 0.20,
    "version": FALLBACK_VERSION,
    "variables_config": {
        "formulaType": "two_tier",
        "labor": {
            "label": "Labor & Team",
            "teamSize": {
                "type": "select",
                "label": "Team Size",
                "effect": "labor_time_percentage",
                "default": "threePlus",
                "options": {
                    "threePlus": {"label": "3+ Person Team (Optimal)", "value": 0},
                    "twoPerson": {"label": "2 Person Team", "value": 40},
                },
            },
        },
        "materials": {
            "label": "Materials & Complexity",
            "paverStyle": {
                "type": "select",
                "label": "Paver Style",
                "effect": "material_cost_multiplier",
                "default": "standard",
                "options": {
                    "standard": {"label": "Standard Pavers", "multiplier": 1.0},
                    "premium": {"label": "Premium Pavers", "multiplier": 1.2},
                },
            },
            "cuttingComplexity": {
                "type": "select",
                "label": "Cutting Complexity",
                "effect": "labor_and_waste",
                "default": "minimal",
                "options": {
                    "minimal": {"label": "Minimal Cutting (Baseline)", "laborPercentage": 0, "materialWaste": 0},
                    "moderate": {"label": "Moderate Cutting", "laborPercentage": 20, "materialWaste": 15},
                    "complex": {"label": "Complex Cutting", "laborPercentage": 30, "materialWaste": 25},
                },
            },
        },
        "excavation": {
            "label": "Excavation & Equipment",
            "equipmentRequired": {
                "type": "select",
                "label": "Equipment Required",
                "effect": "daily_cost",
                "default": "handTools",
                "options": {
                    "handTools": {"label": "Hand Tools Only (Baseline)", "value": 0},
                    "attachments": {"label": "Small Attachments", "value": 100},
                    "lightMachinery": {"label": "Light Machinery", "value": 250},
                    "heavyMachinery": {"label": "Heavy Machinery", "value": 500},
                },
            },
        },
        "siteAccess": {
            "label": "Site Access & Obstacles",
            "accessDifficulty": {
                "type": "select",
                "label": "Access Difficulty",
                "effect": "labor_time_percentage",
                "default": "easy",
                "options": {
                    "easy": {"label": "Easy Access (Baseline)", "value": 0},
                    "moderate": {"label": "Moderate Access", "value": 25},
                    "difficult": {"label": "Difficult/Tight Access", "value": 50},
                },
            },
            "obstacleRemoval": {
                "type": "select",
                "label": "Obstacle Removal",
                "effect": "flat_cost",
                "default": "none",
                "options": {
                    "none": {"label": "No Obstacles (Baseline)", "value": 0},
                    "minor": {"label": "Minor Obstacles", "value": 500},
                    "major": {"label": "Major Obstacles", "value": 1500},
                },
            },
        },
        "complexity": {
            "label": "Overall Complexity",
            "overallComplexity": {
                "type": "select",
                "label": "Overall Project Complexity",
                "effect": "complexity_percentage",
                "default": "simple",
                "options": {
                    "simple": {"label": "Simple Project", "value": 0},
                    "standard": {"label": "Standard Project", "value": 15},
                    "complex": {"label": "Complex Project", "value": 30},
                },
            },
        },
        "serviceIntegrations": {
            "label": "Bundled Services",
            "includeExcavation": {"type": "toggle", "label": "Include Excavation", "default": False},
        },
    },
}


EXCAVATION_RECORD: Dict[str, Any] = {
    "service_name": EXCAVATION_SERVICE,
    "hourly_labor_rate": 25.00,       # $ per cubic yard for this service
    "optimal_team_size": 3,
    "base_productivity": 1000.00,
    "base_material_cost": 0.0,
    "profit_margin": 0.05,
    "version": FALLBACK_VERSION,
    "variables_config": {
        "formulaType": "volume_based",
        "calculationSettings": {
            "label": "Calculation Settings",
            "defaultDepth": {"type": "number", "label": "Default Excavation Depth", "default": 12, "min": 1, "max": 36, "unit": "inches"},
            "wasteFactor": {"type": "number", "label": "Waste Factor", "default": 10, "min": 0, "max": 50, "unit": "%"},
            "compactionFactor": {"type": "number", "label": "Compaction Factor", "default": 0, "min": 0, "max": 30, "unit": "%"},
            "roundingRule": {
                "type": "select",
                "label": "Cubic Yard Rounding",
                "default": "up_whole",
                "options": {
                    "up_whole": {"label": "Round up to nearest whole yard", "value": 0},
                    "up_half": {"label": "Round up to nearest 0.5 yard", "value": 0},
                    "exact": {"label": "Use exact calculation", "value": 0},
                },
            },
        },
    },
}


# Generic record for services with no dedicated fallback
GENERIC_RECORD: Dict[str, Any] = {
    "hourly_labor_rate": 25.00,
    "optimal_team_size": 3,
    "base_productivity": 50.00,
    "base_material_cost": 0.0,
    "profit_margin": 0.20,
    "version": FALLBACK_VERSION,
    "variables_config": {},
}


FALLBACK_RECORDS: Dict[str, Dict[str, Any]] = {
    PAVER_PATIO_SERVICE: PAVER_PATIO_RECORD,
    EXCAVATION_SERVICE: EXCAVATION_RECORD,
}


def fallback_record(service_name: str, company_id: str) -> Dict[str, Any]:
    """Return a deep copy of the fallback row for ``service_name``, stamped with the caller's identity."""
    record = copy.deepcopy(FALLBACK_RECORDS.get(service_name, GENERIC_RECORD))
    record["service_name"] = service_name
    record["company_id"] = company_id or FALLBACK_COMPANY_ID
    return record
