"""Rank catalog plans by projected savings over an account's usage history."""

import logging
from datetime import datetime
from typing import Sequence

from ..calculator import baseline_cost as flat_baseline_cost
from ..calculator import estimate_cost, total_kwh
from ..config import DAYS_PER_MONTH, DAYS_PER_YEAR, DEFAULT_BASELINE_RATE, MAX_RECOMMENDATIONS
from ..exceptions import ValidationError
from ..models import Account, Plan, Recommendation, UsageReading
from ..plans import plan_features, plan_type

logger = logging.getLogger(__name__)


def window_days_between(start: datetime, end: datetime) -> float:
    """Length of an analysis window in days."""
    return (end - start).total_seconds() / 86400


def rank_plans(
    plans: Sequence[Plan],
    usage: Sequence[UsageReading],
    baseline_cost: float | None,
    window_days: float,
    limit: int = MAX_RECOMMENDATIONS,
    strict: bool = False,
) -> list[Recommendation]:
    """Estimate every active plan and return the best savings first.

    Savings are annualized from the analysis window (365 / window_days).
    A baseline of None means the current plan is unknown, so no savings are
    claimed. Plans with equal savings keep their catalog order.
    """
    if window_days < 1:
        raise ValidationError(f"Analysis window must be at least one day, got {window_days:.2f}")

    annualization_factor = DAYS_PER_YEAR / window_days
    months_in_window = window_days / DAYS_PER_MONTH

    ranked = []
    for position, plan in enumerate(plans):
        if not plan.active:
            continue

        cost = estimate_cost(plan.schema, usage, strict=strict)
        if baseline_cost is None:
            savings = 0.0
        else:
            savings = max(0.0, (baseline_cost - cost) * annualization_factor)

        recommendation = Recommendation(
            plan_id=plan.id,
            plan_name=plan.name,
            provider=plan.provider,
            estimated_monthly_cost=cost / months_in_window,
            estimated_annual_cost=cost * annualization_factor,
            estimated_annual_savings=savings,
            plan_type=plan_type(plan.schema),
            features=plan_features(plan.schema),
        )
        ranked.append((position, recommendation))

    ranked.sort(key=lambda item: (-item[1].estimated_annual_savings, item[0]))
    logger.debug("Ranked %d of %d plan(s)", len(ranked), len(plans))
    return [rec for _, rec in ranked[:limit]]


def compare_plans(
    account: Account,
    plans: Sequence[Plan],
    usage: Sequence[UsageReading],
    start: datetime,
    end: datetime,
    baseline_rate: float = DEFAULT_BASELINE_RATE,
    strict: bool = False,
) -> dict:
    """Build the plan comparison for an account over [start, end]."""
    window_days = window_days_between(start, end)
    current_cost = flat_baseline_cost(usage, baseline_rate)

    recommendations = rank_plans(
        plans,
        usage,
        baseline_cost=current_cost if account.provider else None,
        window_days=window_days,
        strict=strict,
    )

    return {
        "currentPlan": {
            "provider": account.provider,
            "estimatedMonthlyCost": current_cost / (window_days / DAYS_PER_MONTH),
        },
        "recommendations": [r.to_dict() for r in recommendations],
        "analysisPeriod": {
            "startDate": start.isoformat(),
            "endDate": end.isoformat(),
            "totalUsage": total_kwh(usage),
        },
    }


def format_comparison_text(comparison: dict) -> str:
    """Format a plan comparison as human-readable text."""
    period = comparison["analysisPeriod"]
    current = comparison["currentPlan"]
    lines = [
        f"Plan Comparison: {period['startDate'][:10]} to {period['endDate'][:10]}",
        f"- Total usage: {period['totalUsage']:.2f} kWh",
        f"- Current plan: {current['provider'] or 'Unknown'} "
        f"(~${current['estimatedMonthlyCost']:.2f}/month)",
        "",
    ]

    recommendations = comparison["recommendations"]
    if not recommendations:
        lines.append("No active plans found for this region.")
        return "\n".join(lines)

    lines.append("Recommendations:")
    for i, rec in enumerate(recommendations, start=1):
        line = (
            f"  {i}. {rec['planName']} ({rec['provider']}, {rec['planType']}): "
            f"${rec['estimatedMonthlyCost']:.2f}/month"
        )
        if rec["estimatedAnnualSavings"] > 0:
            line += f", saves ${rec['estimatedAnnualSavings']:.2f}/year"
        lines.append(line)
        if rec["features"]:
            lines.append(f"     {', '.join(rec['features'])}")

    return "\n".join(lines)
