"""
Unit tests for excavation_integration.

Tests cover:
  - Tier boundaries for excavation hours (1, 1000, 1001, 2001)
  - Volume → cubic yards with waste/compaction and each rounding rule
  - Float-noise guard on round-up (270 sqft × 1.1 stays 11 cy)
  - Cost and profit from the live excavation config; custom depth override
  - Non-positive quantities raise InvalidQuantityError; bad depth or settings
    raise BundledCalculationError
  - Full standalone excavation quote (force-reloads the config)
"""
import pytest

from conftest import COMPANY_ID, run
from tradesphere.config import EXCAVATION_SERVICE
from tradesphere.services.config_cache import ConfigCache
from tradesphere.services.errors import BundledCalculationError, InvalidQuantityError
from tradesphere.services.excavation_integration import (
    ExcavationIntegration,
    ExcavationSettings,
    apply_rounding,
    calculate_excavation_hours,
    excavation_volume,
)

# ---------------------------------------------------------------------------
# Mirror constants from the seed excavation record
# ---------------------------------------------------------------------------
RATE_PER_CY = 25.0
PROFIT_MARGIN = 0.05
WASTE = 0.10


def settings(rule: str = "up_whole", waste: float = 10.0, compaction: float = 0.0) -> ExcavationSettings:
    return ExcavationSettings(
        depth_inches=12, waste_factor=waste, compaction_factor=compaction,
        rounding_rule=rule, rate=RATE_PER_CY, profit_margin=PROFIT_MARGIN,
    )


@pytest.fixture
def integration(store, metrics):
    return ExcavationIntegration(ConfigCache(store, metrics=metrics))


class TestExcavationHours:
    @pytest.mark.parametrize("quantity,hours", [
        (1, 12),
        (999.5, 12),
        (1000, 12),
        (1001, 24),
        (2000, 24),
        (2001, 36),
    ])
    def test_tier_boundaries(self, quantity, hours):
        assert calculate_excavation_hours(quantity) == hours

    def test_returns_int(self):
        assert isinstance(calculate_excavation_hours(500), int)

    @pytest.mark.parametrize("quantity", [0, -1, float("nan")])
    def test_rejects_non_positive(self, quantity):
        with pytest.raises(InvalidQuantityError):
            calculate_excavation_hours(quantity)


class TestVolume:
    def test_raw_and_adjusted_cubic_yards(self):
        """1000 sqft × 1 ft / 27 = 37.04 cy; × 1.1 = 40.74; round up → 41."""
        volume = excavation_volume(1000, 12, settings())
        assert volume.raw == pytest.approx(37.037, abs=1e-3)
        assert volume.adjusted == pytest.approx(40.741, abs=1e-3)
        assert volume.final == 41

    def test_compaction_compounds_with_waste(self):
        volume = excavation_volume(1000, 12, settings(compaction=20))
        assert volume.adjusted == pytest.approx(1000 / 27 * 1.1 * 1.2)

    def test_up_half(self):
        """500 sqft → 20.37 cy → 20.5."""
        assert excavation_volume(500, 12, settings("up_half")).final == 20.5

    def test_exact(self):
        volume = excavation_volume(500, 12, settings("exact"))
        assert volume.final == volume.adjusted

    def test_round_up_ignores_float_noise(self):
        """270 sqft → 10 cy × 1.1 = 11.000000000000002 in floats; stays 11."""
        assert excavation_volume(270, 12, settings()).final == 11

    def test_unknown_rule(self):
        with pytest.raises(BundledCalculationError):
            apply_rounding(3.2, "nearest")


class TestExcavationCost:
    def test_cost_from_live_config(self, integration):
        """1000 sqft @ 12in → 41 cy × $25 = $1,025 + 5% = $1,076.25."""
        cost = run(integration.calculate_excavation_cost(1000, COMPANY_ID))
        assert cost.volume == 41
        assert cost.base_cost == pytest.approx(1025.0)
        assert cost.profit == pytest.approx(51.25)
        assert cost.cost == pytest.approx(1076.25)
        assert cost.depth == 12
        assert cost.waste_factor == 10

    def test_custom_depth_overrides_default(self, integration):
        """1000 sqft @ 6in → 20.37 cy → 21 × 25 = 525 + 26.25."""
        cost = run(integration.calculate_excavation_cost(1000, COMPANY_ID, custom_depth=6))
        assert cost.depth == 6
        assert cost.volume == 21
        assert cost.cost == pytest.approx(551.25)

    def test_rate_comes_from_config(self, store, excavation_record, integration):
        excavation_record["hourly_labor_rate"] = 30
        store.upsert(COMPANY_ID, EXCAVATION_SERVICE, excavation_record)
        cost = run(integration.calculate_excavation_cost(1000, COMPANY_ID))
        assert cost.rate == 30
        assert cost.base_cost == pytest.approx(41 * 30)

    def test_result_is_rounded(self, integration):
        result = run(integration.calculate_excavation_cost(1000, COMPANY_ID)).to_result()
        assert result.cost == 1076.25
        assert result.volume == 41

    @pytest.mark.parametrize("quantity", [0, -10, float("inf"), True])
    def test_invalid_quantity(self, integration, quantity):
        with pytest.raises(InvalidQuantityError) as exc:
            run(integration.calculate_excavation_cost(quantity, COMPANY_ID))
        assert exc.value.quantity is quantity

    @pytest.mark.parametrize("depth", [0, -3])
    def test_invalid_depth(self, integration, depth):
        with pytest.raises(BundledCalculationError):
            run(integration.calculate_excavation_cost(100, COMPANY_ID, custom_depth=depth))

    def test_invalid_rounding_setting(self, store, excavation_record, integration):
        excavation_record["variables_config"]["calculationSettings"]["roundingRule"]["default"] = "nearest"
        store.upsert(COMPANY_ID, EXCAVATION_SERVICE, excavation_record)
        with pytest.raises(BundledCalculationError):
            run(integration.calculate_excavation_cost(100, COMPANY_ID))

    def test_unknown_company_uses_fallback_settings(self, integration):
        cost = run(integration.calculate_excavation_cost(1000, "unknown-company"))
        assert cost.cost == pytest.approx(1076.25)


class TestExcavationPricing:
    def test_full_quote(self, integration):
        quote = run(integration.calculate_excavation_pricing(1000, 12, COMPANY_ID))
        assert quote.cubic_yards_raw == 37.04
        assert quote.cubic_yards_adjusted == 40.74
        assert quote.cubic_yards_final == 41
        assert quote.rounding_rule == "up_whole"
        assert quote.base_hours == 12
        assert quote.project_days == 1.5
        assert quote.base_cost == 1025.0
        assert quote.profit == 51.25
        assert quote.total_cost == 1076.25
        assert quote.cost_per_cubic_yard == 26.25
        assert quote.hours_per_cubic_yard == 0.3

    def test_project_days_follow_tiers(self, integration):
        quote = run(integration.calculate_excavation_pricing(2500, None, COMPANY_ID))
        assert quote.base_hours == 36
        assert quote.project_days == 4.5
        assert quote.depth_inches == 12

    def test_force_reloads_config(self, store, excavation_record, integration):
        run(integration.calculate_excavation_pricing(1000, 12, COMPANY_ID))
        before = store.fetch_count
        run(integration.calculate_excavation_pricing(1000, 12, COMPANY_ID))
        assert store.fetch_count == before + 1

    def test_invalid_quantity_checked_before_reload(self, store, integration):
        before = store.fetch_count
        with pytest.raises(InvalidQuantityError):
            run(integration.calculate_excavation_pricing(0, 12, COMPANY_ID))
        assert store.fetch_count == before
