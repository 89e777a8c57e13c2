"""Data models for usage readings, pricing plans and their derived estimates."""

from dataclasses import dataclass, field
from datetime import date, datetime


@dataclass(frozen=True)
class UsageReading:
    """A single hourly usage reading."""

    timestamp: datetime
    kwh: float


@dataclass(frozen=True)
class FlatSchema:
    """Single rate for every kWh."""

    rate_per_kwh: float
    green_energy: bool = False
    rewards: bool = False


@dataclass(frozen=True)
class Tier:
    """A consumption band within a tiered plan."""

    limit_kwh: float | None  # None = unbounded
    rate_per_kwh: float


@dataclass(frozen=True)
class TieredSchema:
    """Successive consumption bands charged at their own rates."""

    tiers: tuple[Tier, ...]
    green_energy: bool = False
    rewards: bool = False


@dataclass(frozen=True)
class RatePeriod:
    """An hour-of-day range [start_hour, end_hour) billed at one band's rate."""

    start_hour: int
    end_hour: int
    band: str  # 'on_peak', 'mid_peak' or 'off_peak'


@dataclass(frozen=True)
class TimeOfUseSchema:
    """Rate varies by hour-of-day band."""

    off_peak_rate: float
    mid_peak_rate: float
    on_peak_rate: float
    periods: tuple[RatePeriod, ...]
    green_energy: bool = False
    rewards: bool = False


PlanSchema = FlatSchema | TieredSchema | TimeOfUseSchema


@dataclass
class Plan:
    """A pricing plan from the regional catalog."""

    id: str
    name: str
    provider: str
    region: str
    schema: PlanSchema
    active: bool = True


@dataclass
class Account:
    """A utility account whose usage is being analysed."""

    id: str
    region: str
    provider: str | None = None
    account_number: str | None = None


@dataclass
class CostEstimate:
    """Total cost of a usage series under one plan."""

    plan_id: str
    total_cost: float
    period_start: datetime | None
    period_end: datetime | None


@dataclass
class Recommendation:
    """A ranked plan suggestion."""

    plan_id: str
    plan_name: str
    provider: str
    estimated_monthly_cost: float
    estimated_annual_cost: float
    estimated_annual_savings: float
    plan_type: str
    features: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "planId": self.plan_id,
            "planName": self.plan_name,
            "provider": self.provider,
            "estimatedMonthlyCost": self.estimated_monthly_cost,
            "estimatedAnnualCost": self.estimated_annual_cost,
            "estimatedAnnualSavings": self.estimated_annual_savings,
            "planType": self.plan_type,
            "features": list(self.features),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Recommendation":
        return cls(
            plan_id=data["planId"],
            plan_name=data["planName"],
            provider=data["provider"],
            estimated_monthly_cost=float(data["estimatedMonthlyCost"]),
            estimated_annual_cost=float(data["estimatedAnnualCost"]),
            estimated_annual_savings=float(data["estimatedAnnualSavings"]),
            plan_type=data["planType"],
            features=list(data.get("features", [])),
        )


@dataclass
class DailyAggregate:
    """Total usage for one calendar date."""

    date: date
    total_kwh: float


@dataclass
class DailyPrediction:
    """Forecast usage for one future date."""

    date: date
    predicted_kwh: float
    confidence: float
    trend: str  # 'increasing', 'decreasing' or 'stable'
    estimated_cost: float

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "predictedKWh": self.predicted_kwh,
            "confidence": self.confidence,
            "trend": self.trend,
            "estimatedCost": self.estimated_cost,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DailyPrediction":
        return cls(
            date=date.fromisoformat(data["date"]),
            predicted_kwh=float(data["predictedKWh"]),
            confidence=float(data["confidence"]),
            trend=data["trend"],
            estimated_cost=float(data["estimatedCost"]),
        )


@dataclass
class Analytics:
    """Summary statistics over a usage history."""

    average_daily_usage: float
    peak_usage_hour: int
    lowest_usage_hour: int
    weekday_average: float
    weekend_average: float
    trend_slope: float  # kWh/day change per day

    def to_dict(self) -> dict:
        return {
            "averageDailyUsage": self.average_daily_usage,
            "peakUsageHour": self.peak_usage_hour,
            "lowestUsageHour": self.lowest_usage_hour,
            "weekdayAverage": self.weekday_average,
            "weekendAverage": self.weekend_average,
            "monthlyTrend": self.trend_slope,
        }


@dataclass
class PredictionResult:
    """Output of the usage forecaster."""

    predictions: list[DailyPrediction]
    analytics: Analytics
    insights: list[str]
    data_points: int
    first_reading: datetime
    last_reading: datetime
    completeness_percent: float

    @property
    def total_estimated_cost(self) -> float:
        return sum(p.estimated_cost for p in self.predictions)
