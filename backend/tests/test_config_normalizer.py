"""
Unit tests for config_normalizer.normalize_config and config_validator.

Tests cover:
  - Category flattening, declaration order, effect assignment
  - Legacy record shapes: no ``effect`` field, ``value``-only paver multipliers,
    complexity stored as multipliers
  - Effect names written by the custom-service wizard
  - Option-less complexity sliders
  - Settings and service-integration toggles
  - Default option resolution (declared → default_variables → first key)
  - Missing base settings and malformed rows
  - variables_config structural validation
"""
import pytest

from tradesphere.models.pricing_models import PricingSelections, VariableEffect, VariableType
from tradesphere.services.config_normalizer import DEFAULT_BASE_PRODUCTIVITY, normalize_config
from tradesphere.services.config_validator import validate_variables_config
from tradesphere.services.errors import ConfigUnavailableError, InvalidSelection


def record(variables_config, **overrides):
    row = {
        "company_id": "c1",
        "service_name": "paver_patio_sqft",
        "hourly_labor_rate": 25,
        "optimal_team_size": 3,
        "base_productivity": 50,
        "base_material_cost": 5.84,
        "profit_margin": 0.2,
        "variables_config": variables_config,
    }
    row.update(overrides)
    return row


class TestFlattening:
    def test_variables_flattened_in_declaration_order(self, paver_config):
        assert list(paver_config.variables) == [
            "teamSize", "paverStyle", "cuttingComplexity", "equipmentRequired",
            "accessDifficulty", "obstacleRemoval", "overallComplexity",
        ]

    def test_effects_assigned(self, paver_config):
        effects = {name: v.effect for name, v in paver_config.variables.items()}
        assert effects["accessDifficulty"] == VariableEffect.LABOR_TIME_PERCENTAGE
        assert effects["cuttingComplexity"] == VariableEffect.LABOR_AND_WASTE
        assert effects["paverStyle"] == VariableEffect.MATERIAL_COST_MULTIPLIER
        assert effects["equipmentRequired"] == VariableEffect.DAILY_COST
        assert effects["obstacleRemoval"] == VariableEffect.FLAT_COST
        assert effects["overallComplexity"] == VariableEffect.COMPLEXITY_PERCENTAGE

    def test_toggle_becomes_integration(self, paver_config):
        assert paver_config.service_integrations == {"includeExcavation": False}
        assert "includeExcavation" not in paver_config.variables

    def test_settings_collected(self, excavation_record):
        config = normalize_config(excavation_record)
        assert config.settings["defaultDepth"] == 12.0
        assert config.settings["wasteFactor"] == 10.0
        assert config.settings["roundingRule"] == "up_whole"
        assert config.variables == {}

    def test_setting_values_coerced(self):
        """Numbers and numeric strings become floats; anything else stays text."""
        config = normalize_config(record({"calculationSettings": {
            "defaultDepth": {"type": "number", "default": 12},
            "wasteFactor": {"type": "number", "default": "12.5"},
            "roundingRule": {"type": "select", "default": "up_half", "options": {"up_half": {"label": "Half"}}},
        }}))
        assert config.settings == {"defaultDepth": 12.0, "wasteFactor": 12.5, "roundingRule": "up_half"}

    def test_flat_variables_are_accepted(self):
        config = normalize_config(record({
            "accessDifficulty": {"type": "select", "default": "easy",
                                 "options": {"easy": {"value": 0}, "hard": {"value": 50}}},
        }))
        assert config.variables["accessDifficulty"].effect == VariableEffect.LABOR_TIME_PERCENTAGE

    def test_slider_type_kept(self):
        config = normalize_config(record({"labor": {"crew": {
            "type": "slider", "default": "a", "effect": "labor_time_percentage",
            "options": {"a": {"value": 0}, "b": {"value": 10}},
        }}}))
        assert config.variables["crew"].type == VariableType.SLIDER


class TestLegacyShapes:
    def test_effect_inferred_from_known_names(self, paver_record):
        for category in paver_record["variables_config"].values():
            if isinstance(category, dict):
                for definition in category.values():
                    if isinstance(definition, dict):
                        definition.pop("effect", None)
        config = normalize_config(paver_record)
        assert config.variables["obstacleRemoval"].effect == VariableEffect.FLAT_COST
        assert config.variables["cuttingComplexity"].effect == VariableEffect.LABOR_AND_WASTE

    def test_effect_inferred_from_option_shape(self):
        config = normalize_config(record({"extras": {"borderCuts": {
            "type": "select", "default": "none",
            "options": {"none": {"laborPercentage": 0}, "lots": {"laborPercentage": 10, "materialWaste": 5}},
        }}}))
        assert config.variables["borderCuts"].effect == VariableEffect.LABOR_AND_WASTE
        assert config.variables["borderCuts"].options["lots"].material_waste == 5

    def test_dual_tier_marker(self):
        config = normalize_config(record({"extras": {"edging": {
            "type": "select", "default": "none", "tier": "dual",
            "options": {"none": {"value": 0}},
        }}}))
        assert config.variables["edging"].effect == VariableEffect.LABOR_AND_WASTE

    def test_paver_multiplier_from_value(self):
        config = normalize_config(record({"materials": {"paverStyle": {
            "type": "select", "default": "standard",
            "options": {"standard": {"value": 1.0}, "premium": {"value": 1.2}, "odd": {"label": "?"}},
        }}}))
        options = config.variables["paverStyle"].options
        assert options["premium"].multiplier == 1.2
        assert options["odd"].multiplier == 1.0

    def test_complexity_multiplier_values_become_percentages(self):
        """Seed SQL stores 1.0 / 1.15 / 1.3 with effect subtotal_multiplier."""
        config = normalize_config(record({"complexity": {"overallComplexity": {
            "type": "select", "default": "simple", "effect": "subtotal_multiplier",
            "options": {"simple": {"value": 1.0}, "standard": {"value": 1.15}, "complex": {"value": 1.3}},
        }}}))
        options = config.variables["overallComplexity"].options
        assert options["simple"].value == pytest.approx(0.0)
        assert options["standard"].value == pytest.approx(15.0)
        assert options["complex"].value == pytest.approx(30.0)

    def test_complexity_multiplier_field(self):
        config = normalize_config(record({"complexity": {"overallComplexity": {
            "type": "select", "default": "x",
            "options": {"x": {"multiplier": 1.25}},
        }}}))
        assert config.variables["overallComplexity"].options["x"].value == pytest.approx(25.0)

    def test_effect_type_key(self):
        config = normalize_config(record({"siteAccess": {"obstacleRemoval": {
            "type": "select", "default": "none", "effectType": "flat_cost",
            "options": {"none": {"value": 0}},
        }}}))
        assert config.variables["obstacleRemoval"].effect == VariableEffect.FLAT_COST


class TestWizardEffectTypes:
    """Effect names written by the custom-service wizard, on variables with unfamiliar names."""

    @pytest.mark.parametrize("effect_type,options,expected", [
        ("daily_equipment_cost", {"none": {"value": 0}, "crane": {"value": 300}}, VariableEffect.DAILY_COST),
        ("flat_additional_cost", {"none": {"value": 0}, "permit": {"value": 150}}, VariableEffect.FLAT_COST),
        ("cutting_complexity", {"none": {"laborPercentage": 0, "materialWaste": 0}}, VariableEffect.LABOR_AND_WASTE),
        ("total_project_multiplier", {"none": {"value": 0, "multiplier": 1.0}}, VariableEffect.COMPLEXITY_PERCENTAGE),
        ("labor_time_percentage", {"none": {"value": 0}}, VariableEffect.LABOR_TIME_PERCENTAGE),
        ("material_cost_multiplier", {"none": {"value": 1.0}}, VariableEffect.MATERIAL_COST_MULTIPLIER),
    ])
    def test_effect_type_mapped(self, effect_type, options, expected):
        config = normalize_config(record({"custom": {"customExtra": {
            "type": "select", "default": "none", "effectType": effect_type, "options": options,
        }}}))
        assert config.variables["customExtra"].effect == expected

    def test_daily_cost_value_kept(self):
        config = normalize_config(record({"custom": {"craneRental": {
            "type": "select", "default": "none", "effectType": "daily_equipment_cost",
            "options": {"none": {"value": 0}, "crane": {"value": 300}},
        }}}))
        assert config.variables["craneRental"].options["crane"].value == 300

    def test_project_multiplier_stored_as_percentage(self):
        """Wizard rows carry both fields: {value: 20, multiplier: 1.2} is +20%."""
        config = normalize_config(record({"custom": {"siteRisk": {
            "type": "select", "default": "normal", "effectType": "total_project_multiplier",
            "options": {
                "normal": {"value": 0, "multiplier": 1.0},
                "elevated": {"value": 20, "multiplier": 1.2},
                "percentOnly": {"value": 10},
            },
        }}}))
        options = config.variables["siteRisk"].options
        assert options["normal"].value == pytest.approx(0.0)
        assert options["elevated"].value == pytest.approx(20.0)
        assert options["elevated"].multiplier is None
        assert options["percentOnly"].value == pytest.approx(10.0)


class TestComplexitySlider:
    def test_option_less_complexity_slider_is_a_variable(self):
        config = normalize_config(record({"complexity": {"overallComplexity": {
            "type": "slider", "label": "Complexity", "default": 1.0, "min": 1.0, "max": 2.0,
        }}}))
        variable = config.variables["overallComplexity"]
        assert variable.type == VariableType.SLIDER
        assert variable.effect == VariableEffect.COMPLEXITY_PERCENTAGE
        assert variable.options == {}
        assert variable.default == "1.0"
        assert "overallComplexity" not in config.settings

    def test_declared_effect_on_custom_slider(self):
        config = normalize_config(record({"custom": {"siteRisk": {
            "type": "number", "default": 1.1, "min": 1, "max": 2,
            "effectType": "total_project_multiplier",
        }}}))
        assert config.variables["siteRisk"].effect == VariableEffect.COMPLEXITY_PERCENTAGE

    def test_other_ranged_inputs_stay_settings(self):
        config = normalize_config(record({"custom": {"edgeLength": {
            "type": "slider", "default": 4, "min": 0, "max": 10,
        }}}))
        assert config.variables == {}
        assert config.settings["edgeLength"] == 4.0

    def test_calculation_settings_never_become_variables(self):
        config = normalize_config(record({"calculationSettings": {"overallComplexity": {
            "type": "number", "default": 1.2, "min": 1, "max": 2,
        }}}))
        assert config.variables == {}
        assert config.settings["overallComplexity"] == 1.2


class TestDefaults:
    def test_default_from_default_variables(self):
        config = normalize_config(record(
            {"siteAccess": {"accessDifficulty": {
                "type": "select",
                "options": {"easy": {"value": 0}, "moderate": {"value": 25}},
            }}},
            default_variables={"siteAccess": {"accessDifficulty": "moderate"}},
        ))
        assert config.variables["accessDifficulty"].default == "moderate"

    def test_default_option(self, paver_config):
        variable = paver_config.variables["accessDifficulty"]
        assert variable.default_option() == variable.options["easy"]

    def test_require_option(self, paver_config):
        variable = paver_config.variables["accessDifficulty"]
        assert variable.require_option("difficult") == variable.options["difficult"]

    def test_require_option_raises_for_unknown_key(self, paver_config):
        with pytest.raises(InvalidSelection) as exc:
            paver_config.variables["accessDifficulty"].require_option("nope")
        assert exc.value.variable == "accessDifficulty"

    def test_invalid_default_uses_first_option(self):
        config = normalize_config(record({"siteAccess": {"accessDifficulty": {
            "type": "select", "default": "gone",
            "options": {"easy": {"value": 0}, "moderate": {"value": 25}},
        }}}))
        assert config.variables["accessDifficulty"].default == "easy"

    def test_missing_base_settings_use_defaults(self):
        config = normalize_config({"company_id": "c1", "service_name": "s", "base_productivity": 0})
        assert config.base_productivity == DEFAULT_BASE_PRODUCTIVITY
        assert config.optimal_team_size == 3
        assert config.profit_margin == 0.20

    def test_camel_case_record(self):
        config = normalize_config({
            "companyId": "c1", "serviceName": "s", "hourlyLaborRate": "30.00",
            "variablesConfig": None,
        })
        assert config.hourly_labor_rate == 30.0
        assert config.company_id == "c1"

    def test_version_falls_back_to_updated_at(self):
        config = normalize_config(record({}, updated_at="2026-03-01T10:00:00+00:00"))
        assert config.version.startswith("2026-03-01T10:00:00")


class TestMalformed:
    def test_bad_variable_is_skipped(self):
        config = normalize_config(record({"siteAccess": {
            "accessDifficulty": {"type": "select", "default": "easy", "options": {"easy": {"value": "lots"}}},
            "obstacleRemoval": {"type": "select", "default": "none", "effect": "flat_cost",
                                "options": {"none": {"value": 0}}},
        }}))
        assert list(config.variables) == ["obstacleRemoval"]

    def test_unusable_row_raises(self):
        with pytest.raises(ConfigUnavailableError):
            normalize_config({"company_id": "c1", "hourly_labor_rate": "a lot"})


class TestSelectionsPayload:
    def test_nested_selections_are_flattened(self):
        sel = PricingSelections.from_payload({
            "siteAccess": {"accessDifficulty": "moderate", "obstacleRemoval": "minor"},
            "materials": {"paverStyle": "premium"},
            "overallComplexity": 1.15,
            "serviceIntegrations": {"includeExcavation": True},
            "customExcavationDepth": 8,
        })
        assert sel.values == {
            "accessDifficulty": "moderate", "obstacleRemoval": "minor",
            "paverStyle": "premium", "overallComplexity": 1.15,
        }
        assert sel.include_excavation is True
        assert sel.custom_excavation_depth == 8


class TestValidator:
    def test_seed_records_are_valid(self, paver_record, excavation_record):
        for row in (paver_record, excavation_record):
            result = validate_variables_config(row["variables_config"])
            assert result.valid, result.errors
            assert result.warnings  # descriptions are optional but recommended

    def test_not_an_object(self):
        result = validate_variables_config(["a"])
        assert not result.valid
        assert result.errors == ["variables_config must be a valid object"]

    def test_empty(self):
        assert not validate_variables_config({}).valid

    def test_missing_fields(self):
        result = validate_variables_config({"site": {"access": {"type": "dropdown"}}})
        assert "Category 'site' missing required 'label' field" in result.errors
        assert any("invalid type 'dropdown'" in e for e in result.errors)
        assert "Variable 'site.access' missing required 'label' field" in result.errors
        assert "Variable 'site.access' missing required 'default' field" in result.errors

    def test_select_default_must_be_option_key(self):
        result = validate_variables_config({"site": {"label": "Site", "access": {
            "type": "select", "label": "Access", "default": "hard",
            "options": {"easy": {"label": "Easy", "value": 0}},
        }}})
        assert any("is not a valid option key" in e for e in result.errors)

    def test_option_needs_label_and_value(self):
        result = validate_variables_config({"site": {"label": "Site", "access": {
            "type": "select", "label": "Access", "default": "easy",
            "options": {"easy": {}},
        }}})
        assert "Option 'site.access.options.easy' missing required 'label' field" in result.errors
        assert "Option 'site.access.options.easy' missing required 'value' field" in result.errors

    def test_number_range(self):
        result = validate_variables_config({"calc": {"label": "Calc", "depth": {
            "type": "number", "label": "Depth", "default": 40, "min": 1, "max": 36,
        }}})
        assert any("outside range [1, 36]" in e for e in result.errors)
        assert any("missing optional 'unit'" in w for w in result.warnings)

    def test_min_not_below_max(self):
        result = validate_variables_config({"calc": {"label": "Calc", "depth": {
            "type": "slider", "label": "Depth", "default": 5, "min": 10, "max": 10,
        }}})
        assert "Variable 'calc.depth' has min (10) >= max (10)" in result.errors

    def test_admin_editable_must_be_bool(self):
        result = validate_variables_config({"calc": {"label": "Calc", "depth": {
            "type": "number", "label": "Depth", "default": 5, "min": 1, "max": 10,
            "unit": "in", "adminEditable": "yes",
        }}})
        assert "Variable 'calc.depth' has invalid 'adminEditable' value. Must be boolean." in result.errors
