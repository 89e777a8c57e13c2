"""Usage forecasting from historical hourly readings.

Builds daily totals, fits a least-squares trend over them and projects each
future day from the historical average of its weekday plus the trend.
"""

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Sequence

from ..config import (
    CONFIDENCE_DECAY,
    DEFAULT_PREDICTION_RATE,
    EVENING_PEAK_END_HOUR,
    EVENING_PEAK_START_HOUR,
    MAX_HORIZON_DAYS,
    MIN_CONFIDENCE,
    MIN_HISTORY_DAYS,
    MIN_HORIZON_DAYS,
    TREND_CHANGE_PERCENT,
    TREND_THRESHOLD,
    WEEKEND_DISPARITY_RATIO,
)
from ..exceptions import InsufficientDataError, ValidationError
from ..models import Analytics, DailyAggregate, DailyPrediction, PredictionResult, UsageReading

logger = logging.getLogger(__name__)

HOURS_IN_HISTORY_WINDOW = 90 * 24  # Completeness is measured against 90 days of hourly data


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def daily_aggregates(usage: Sequence[UsageReading]) -> list[DailyAggregate]:
    """Total kWh per calendar date, oldest first."""
    totals: dict[date, float] = defaultdict(float)
    for r in usage:
        totals[r.timestamp.date()] += r.kwh
    return [DailyAggregate(date=d, total_kwh=totals[d]) for d in sorted(totals)]


def hourly_averages(usage: Sequence[UsageReading]) -> dict[int, float]:
    """Mean kWh per hour-of-day across all days, keyed by hour."""
    by_hour: dict[int, list[float]] = defaultdict(list)
    for r in usage:
        by_hour[r.timestamp.hour].append(r.kwh)
    return {hour: _mean(by_hour[hour]) for hour in sorted(by_hour)}


def trend_slope(values: Sequence[float]) -> float:
    """Ordinary least-squares slope of values against a 0-based index.

    Returns 0.0 for fewer than two points. Values are taken relative to the
    first one so that a constant series gives exactly 0.0.
    """
    n = len(values)
    if n < 2:
        return 0.0

    x_mean = (n - 1) / 2
    origin = values[0]
    numerator = sum((i - x_mean) * (y - origin) for i, y in enumerate(values))
    denominator = sum((i - x_mean) ** 2 for i in range(n))
    return numerator / denominator


def trend_label(slope: float) -> str:
    if slope > TREND_THRESHOLD:
        return "increasing"
    if slope < -TREND_THRESHOLD:
        return "decreasing"
    return "stable"


def weekday_averages(days: Sequence[DailyAggregate]) -> dict[int, float]:
    """Mean daily total per weekday (0=Monday, 6=Sunday)."""
    by_weekday: dict[int, list[float]] = defaultdict(list)
    for day in days:
        by_weekday[day.date.weekday()].append(day.total_kwh)
    return {weekday: _mean(totals) for weekday, totals in by_weekday.items()}


def calculate_analytics(usage: Sequence[UsageReading]) -> Analytics:
    """Summary statistics over a usage history (any order)."""
    ordered = sorted(usage, key=lambda r: r.timestamp)
    days = daily_aggregates(ordered)
    hourly = hourly_averages(ordered)

    # Ties go to the earliest hour
    peak_hour = max(hourly, key=lambda h: (hourly[h], -h)) if hourly else 0
    lowest_hour = min(hourly, key=lambda h: (hourly[h], h)) if hourly else 0

    weekday_totals = [d.total_kwh for d in days if d.date.weekday() < 5]
    weekend_totals = [d.total_kwh for d in days if d.date.weekday() >= 5]

    return Analytics(
        average_daily_usage=_mean([d.total_kwh for d in days]),
        peak_usage_hour=peak_hour,
        lowest_usage_hour=lowest_hour,
        weekday_average=_mean(weekday_totals),
        weekend_average=_mean(weekend_totals),
        trend_slope=trend_slope([d.total_kwh for d in days]),
    )


def generate_predictions(
    days: Sequence[DailyAggregate],
    horizon_days: int,
    analytics: Analytics,
    rate: float = DEFAULT_PREDICTION_RATE,
) -> list[DailyPrediction]:
    """Project usage for each of the horizon_days after the last observed date."""
    last_date = days[-1].date
    by_weekday = weekday_averages(days)
    slope = analytics.trend_slope
    trend = trend_label(slope)

    predictions = []
    for i in range(1, horizon_days + 1):
        prediction_date = last_date + timedelta(days=i)
        base_usage = by_weekday.get(prediction_date.weekday(), analytics.average_daily_usage)
        predicted_kwh = max(0.0, base_usage + slope * i)
        confidence = max(MIN_CONFIDENCE, 1 - (i / horizon_days) * CONFIDENCE_DECAY)

        predictions.append(
            DailyPrediction(
                date=prediction_date,
                predicted_kwh=predicted_kwh,
                confidence=confidence,
                trend=trend,
                estimated_cost=predicted_kwh * rate,
            )
        )
    return predictions


def generate_insights(analytics: Analytics, predictions: Sequence[DailyPrediction]) -> list[str]:
    """Plain-language observations about the usage pattern and forecast."""
    insights = []

    if (
        analytics.weekday_average > 0
        and analytics.weekend_average > analytics.weekday_average * WEEKEND_DISPARITY_RATIO
    ):
        percent = round((analytics.weekend_average / analytics.weekday_average - 1) * 100)
        insights.append(
            f"Your weekend usage is {percent}% higher than weekdays. Consider time-of-use plans."
        )

    if EVENING_PEAK_START_HOUR <= analytics.peak_usage_hour <= EVENING_PEAK_END_HOUR:
        insights.append(
            f"Peak usage occurs at {analytics.peak_usage_hour}:00 during evening hours. "
            "Shifting some activities could reduce costs."
        )

    if predictions and analytics.average_daily_usage > 0:
        average_predicted = _mean([p.predicted_kwh for p in predictions])
        change = (average_predicted / analytics.average_daily_usage - 1) * 100
        if abs(change) > TREND_CHANGE_PERCENT:
            if change > 0:
                insights.append(
                    f"Usage is trending upward by {abs(change):.1f}%. "
                    "Monitor for efficiency opportunities."
                )
            else:
                insights.append(
                    f"Great news! Usage is trending downward by {abs(change):.1f}%. "
                    "Keep up the good work!"
                )

    total_cost = sum(p.estimated_cost for p in predictions)
    insights.append(
        f"Estimated {len(predictions)}-day cost: ${total_cost:.2f} based on current patterns."
    )
    return insights


def predict(
    usage: Sequence[UsageReading],
    horizon_days: int,
    rate: float = DEFAULT_PREDICTION_RATE,
) -> PredictionResult:
    """Forecast daily usage for the next horizon_days.

    Raises ValidationError for a horizon outside 1-90 days and
    InsufficientDataError with fewer than seven distinct days of history.
    """
    if not MIN_HORIZON_DAYS <= horizon_days <= MAX_HORIZON_DAYS:
        raise ValidationError(
            f"Prediction horizon must be between {MIN_HORIZON_DAYS} and "
            f"{MAX_HORIZON_DAYS} days, got {horizon_days}"
        )

    ordered = sorted(usage, key=lambda r: r.timestamp)
    days = daily_aggregates(ordered)
    if len(days) < MIN_HISTORY_DAYS:
        raise InsufficientDataError(len(days), MIN_HISTORY_DAYS)

    analytics = calculate_analytics(ordered)
    predictions = generate_predictions(days, horizon_days, analytics, rate)
    logger.debug(
        "Predicted %d day(s) from %d day(s) of history, slope %.3f",
        horizon_days,
        len(days),
        analytics.trend_slope,
    )

    return PredictionResult(
        predictions=predictions,
        analytics=analytics,
        insights=generate_insights(analytics, predictions),
        data_points=len(ordered),
        first_reading=ordered[0].timestamp,
        last_reading=ordered[-1].timestamp,
        completeness_percent=min(100.0, len(ordered) / HOURS_IN_HISTORY_WINDOW * 100),
    )


def prediction_to_dict(result: PredictionResult, account_id: str | None = None) -> dict:
    """Response payload for a prediction, rounded for presentation."""
    return {
        "accountId": account_id,
        "predictions": [
            {
                "date": p.date.isoformat(),
                "predictedKWh": round(p.predicted_kwh, 2),
                "confidence": round(p.confidence, 2),
                "trend": p.trend,
                "estimatedCost": round(p.estimated_cost, 2),
            }
            for p in result.predictions
        ],
        "analytics": {k: round(v, 2) for k, v in result.analytics.to_dict().items()},
        "insights": result.insights,
        "dataQuality": {
            "dataPoints": result.data_points,
            "dateRange": {
                "start": result.first_reading.isoformat(),
                "end": result.last_reading.isoformat(),
            },
            "completeness": round(result.completeness_percent, 1),
        },
    }


def format_prediction_text(result: PredictionResult) -> str:
    """Format a prediction summary as human-readable text."""
    analytics = result.analytics
    first = result.predictions[0].date.isoformat()
    last = result.predictions[-1].date.isoformat()
    lines = [
        f"Usage Forecast: {first} to {last} ({len(result.predictions)} days)",
        f"- Trend: {result.predictions[0].trend} ({analytics.trend_slope:+.2f} kWh/day)",
        f"- Average daily usage: {analytics.average_daily_usage:.2f} kWh",
        f"- Weekday / weekend: {analytics.weekday_average:.2f} / {analytics.weekend_average:.2f} kWh",
        f"- Peak hour: {analytics.peak_usage_hour}:00, lowest: {analytics.lowest_usage_hour}:00",
        f"- Projected cost: ${result.total_estimated_cost:.2f}",
        f"- History: {result.data_points} readings ({result.completeness_percent:.1f}% complete)",
        "",
        "Insights:",
    ]
    lines.extend(f"  - {insight}" for insight in result.insights)
    return "\n".join(lines)
