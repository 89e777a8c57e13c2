"""Cost of a usage series under a plan's rate structure.

All functions here are pure. Inputs are assumed validated by the caller
(usage importers, plan catalog parsing); nothing is rounded.
"""

import logging
from datetime import datetime
from functools import reduce
from typing import Iterable, Sequence

from .config import DEFAULT_BASELINE_RATE
from .exceptions import MalformedPlanSchemaError
from .models import (
    CostEstimate,
    FlatSchema,
    Plan,
    PlanSchema,
    TieredSchema,
    TimeOfUseSchema,
    UsageReading,
)
from .plans import MID_PEAK, ON_PEAK

logger = logging.getLogger(__name__)


def total_kwh(usage: Iterable[UsageReading]) -> float:
    return sum((r.kwh for r in usage), 0.0)


def hour_in_range(hour: int, start: int, end: int) -> bool:
    """Check if an hour falls within [start, end) (handles overnight ranges)."""
    if start <= end:
        return start <= hour < end
    else:
        # Overnight range (e.g., 22 to 6)
        return hour >= start or hour < end


def rate_for_hour(schema: TimeOfUseSchema, hour: int) -> float:
    """Rate for an hour of the day. First matching period wins; default is off-peak."""
    for period in schema.periods:
        if hour_in_range(hour, period.start_hour, period.end_hour):
            if period.band == ON_PEAK:
                return schema.on_peak_rate
            if period.band == MID_PEAK:
                return schema.mid_peak_rate
            return schema.off_peak_rate
    return schema.off_peak_rate


def flat_cost(schema: FlatSchema, usage: Sequence[UsageReading]) -> float:
    return total_kwh(usage) * schema.rate_per_kwh


def tiered_cost(schema: TieredSchema, consumption_kwh: float, strict: bool = False) -> float:
    """Charge aggregate consumption through the tiers in order.

    Consumption beyond a bounded final tier is not charged unless strict,
    in which case MalformedPlanSchemaError is raised.
    """

    def consume(state: tuple[float, float], tier) -> tuple[float, float]:
        cost, remaining = state
        if remaining <= 0:
            return state
        consumed = remaining if tier.limit_kwh is None else min(remaining, tier.limit_kwh)
        return cost + consumed * tier.rate_per_kwh, remaining - consumed

    cost, remaining = reduce(consume, schema.tiers, (0.0, consumption_kwh))

    if remaining > 0:
        if strict:
            raise MalformedPlanSchemaError(
                f"Tiers cover {consumption_kwh - remaining:.2f} kWh "
                f"of {consumption_kwh:.2f} kWh consumed"
            )
        logger.warning("%.2f kWh exceeds the last tier and was not charged", remaining)

    return cost


def time_of_use_cost(schema: TimeOfUseSchema, usage: Sequence[UsageReading]) -> float:
    return reduce(
        lambda cost, r: cost + r.kwh * rate_for_hour(schema, r.timestamp.hour),
        usage,
        0.0,
    )


def estimate_cost(
    schema: PlanSchema, usage: Sequence[UsageReading], strict: bool = False
) -> float:
    """Total cost of the usage series under the given rate structure."""
    if isinstance(schema, FlatSchema):
        return flat_cost(schema, usage)
    if isinstance(schema, TieredSchema):
        return tiered_cost(schema, total_kwh(usage), strict=strict)
    if isinstance(schema, TimeOfUseSchema):
        return time_of_use_cost(schema, usage)
    raise TypeError(f"Unsupported plan schema: {type(schema).__name__}")


def estimate_plan(
    plan: Plan,
    usage: Sequence[UsageReading],
    period_start: datetime | None = None,
    period_end: datetime | None = None,
    strict: bool = False,
) -> CostEstimate:
    """Cost estimate for one catalog plan, spanning the usage series by default."""
    if usage:
        period_start = period_start or min(r.timestamp for r in usage)
        period_end = period_end or max(r.timestamp for r in usage)
    return CostEstimate(
        plan_id=plan.id,
        total_cost=estimate_cost(plan.schema, usage, strict=strict),
        period_start=period_start,
        period_end=period_end,
    )


def baseline_cost(usage: Sequence[UsageReading], rate: float = DEFAULT_BASELINE_RATE) -> float:
    """Approximate cost under the account's current plan.

    The current plan's rate structure is not known, so this is a flat-rate
    approximation at an average rate.
    """
    return total_kwh(usage) * rate
