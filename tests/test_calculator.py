import logging
from datetime import datetime

import pytest
from billsnipe.calculator import (
    baseline_cost,
    estimate_cost,
    estimate_plan,
    rate_for_hour,
    tiered_cost,
)
from billsnipe.exceptions import MalformedPlanSchemaError
from billsnipe.models import (
    FlatSchema,
    Plan,
    RatePeriod,
    Tier,
    TieredSchema,
    TimeOfUseSchema,
    UsageReading,
)
from billsnipe.plans import DEFAULT_TOU_PERIODS

TOU = TimeOfUseSchema(
    off_peak_rate=0.08,
    mid_peak_rate=0.13,
    on_peak_rate=0.18,
    periods=DEFAULT_TOU_PERIODS,
)


def reading(hour: int, kwh: float, day: int = 1) -> UsageReading:
    return UsageReading(datetime(2026, 3, day, hour), kwh)


def test_flat_cost():
    """Flat plans charge total kWh at one rate."""
    usage = [reading(0, 10.0), reading(1, 5.0)]
    assert estimate_cost(FlatSchema(0.12), usage) == pytest.approx(1.80)


def test_tiered_cost_with_unbounded_last_tier():
    schema = TieredSchema(tiers=(Tier(100, 0.10), Tier(None, 0.08)))
    usage = [reading(0, 100.0), reading(1, 50.0)]
    assert estimate_cost(schema, usage) == pytest.approx(14.00)


def test_tiered_cost_within_first_tier():
    schema = TieredSchema(tiers=(Tier(100, 0.10), Tier(None, 0.08)))
    assert tiered_cost(schema, 40.0) == pytest.approx(4.0)


def test_tiered_cost_applies_to_aggregate_not_readings():
    """Tiers apply to total consumption, not per reading."""
    schema = TieredSchema(tiers=(Tier(10, 0.20), Tier(None, 0.10)))
    usage = [reading(h, 5.0) for h in range(4)]  # 20 kWh in 5 kWh readings
    assert estimate_cost(schema, usage) == pytest.approx(10 * 0.20 + 10 * 0.10)


def test_tiered_excess_is_not_charged(caplog):
    """Consumption beyond a bounded last tier is dropped and logged."""
    schema = TieredSchema(tiers=(Tier(100, 0.10), Tier(200, 0.08)))
    with caplog.at_level(logging.WARNING, logger="billsnipe.calculator"):
        cost = tiered_cost(schema, 500.0)
    assert cost == pytest.approx(100 * 0.10 + 200 * 0.08)
    assert "not charged" in caplog.text


def test_tiered_excess_raises_when_strict():
    schema = TieredSchema(tiers=(Tier(100, 0.10),))
    with pytest.raises(MalformedPlanSchemaError):
        tiered_cost(schema, 150.0, strict=True)


def test_tiered_strict_allows_exact_fit():
    schema = TieredSchema(tiers=(Tier(100, 0.10),))
    assert tiered_cost(schema, 100.0, strict=True) == pytest.approx(10.0)


def test_tiered_zero_limit_tier_consumes_nothing():
    schema = TieredSchema(tiers=(Tier(0, 1.00), Tier(None, 0.10)))
    assert tiered_cost(schema, 10.0) == pytest.approx(1.0)


def test_time_of_use_rates():
    assert estimate_cost(TOU, [reading(8, 2.0)]) == pytest.approx(0.36)
    assert estimate_cost(TOU, [reading(2, 2.0)]) == pytest.approx(0.16)
    assert estimate_cost(TOU, [reading(12, 1.0)]) == pytest.approx(0.13)


def test_time_of_use_boundaries_are_half_open():
    assert rate_for_hour(TOU, 7) == 0.18
    assert rate_for_hour(TOU, 10) == 0.18
    assert rate_for_hour(TOU, 11) == 0.13
    assert rate_for_hour(TOU, 17) == 0.18
    assert rate_for_hour(TOU, 19) == 0.08
    assert rate_for_hour(TOU, 23) == 0.08


def test_time_of_use_first_matching_period_wins():
    """Overlapping periods resolve to the first one declared."""
    schema = TimeOfUseSchema(
        off_peak_rate=0.05,
        mid_peak_rate=0.10,
        on_peak_rate=0.20,
        periods=(RatePeriod(8, 12, "mid_peak"), RatePeriod(10, 14, "on_peak")),
    )
    assert rate_for_hour(schema, 10) == 0.10
    assert rate_for_hour(schema, 12) == 0.20


def test_time_of_use_overnight_period():
    schema = TimeOfUseSchema(
        off_peak_rate=0.05,
        mid_peak_rate=0.10,
        on_peak_rate=0.20,
        periods=(RatePeriod(22, 6, "on_peak"),),
    )
    assert rate_for_hour(schema, 23) == 0.20
    assert rate_for_hour(schema, 3) == 0.20
    assert rate_for_hour(schema, 6) == 0.05


@pytest.mark.parametrize(
    "schema",
    [FlatSchema(0.12), TieredSchema(tiers=(Tier(None, 0.1),)), TOU],
)
def test_empty_usage_costs_nothing(schema):
    assert estimate_cost(schema, []) == 0.0


def test_estimate_cost_is_repeatable():
    usage = [reading(h, 0.5 + h / 10) for h in range(24)]
    assert estimate_cost(TOU, usage) == estimate_cost(TOU, usage)


def test_estimate_plan_spans_usage():
    plan = Plan("p1", "Plan One", "Acme", "north", FlatSchema(0.10))
    usage = [reading(5, 1.0, day=2), reading(3, 1.0, day=1)]
    estimate = estimate_plan(plan, usage)
    assert estimate.plan_id == "p1"
    assert estimate.total_cost == pytest.approx(0.20)
    assert estimate.period_start == datetime(2026, 3, 1, 3)
    assert estimate.period_end == datetime(2026, 3, 2, 5)


def test_baseline_cost_uses_flat_rate():
    usage = [reading(0, 10.0), reading(1, 10.0)]
    assert baseline_cost(usage) == pytest.approx(3.0)
    assert baseline_cost(usage, rate=0.2) == pytest.approx(4.0)
