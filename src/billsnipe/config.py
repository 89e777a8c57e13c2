"""Runtime settings and fixed analysis constants."""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .exceptions import ValidationError

# Plan comparison
DEFAULT_WINDOW_DAYS = 90  # Usage history analysed when no range is given
MAX_RECOMMENDATIONS = 5
DAYS_PER_MONTH = 30  # Approximation for monthly figures
DAYS_PER_YEAR = 365
DEFAULT_BASELINE_RATE = 0.15  # Flat approximation of the current plan, per kWh

# Prediction
MIN_HISTORY_DAYS = 7
MIN_HORIZON_DAYS = 1
MAX_HORIZON_DAYS = 90
DEFAULT_HORIZON_DAYS = 30
DEFAULT_PREDICTION_RATE = 0.15  # Per kWh, independent of the plan catalog
TREND_THRESHOLD = 0.1  # kWh/day per day before a trend counts as increasing/decreasing
CONFIDENCE_DECAY = 0.3
MIN_CONFIDENCE = 0.5

# Insights
WEEKEND_DISPARITY_RATIO = 1.2  # Weekend average 20% above weekdays
EVENING_PEAK_START_HOUR = 17
EVENING_PEAK_END_HOUR = 21  # Inclusive
TREND_CHANGE_PERCENT = 5.0

DEFAULT_PLANS_PATH = Path(__file__).parent.parent.parent / "config" / "plans.yaml"


@dataclass
class Settings:
    """Settings that may be overridden from the environment."""

    db_path: Path | None = None
    baseline_rate: float = DEFAULT_BASELINE_RATE
    prediction_rate: float = DEFAULT_PREDICTION_RATE
    strict_tiers: bool = False
    catalog_url: str | None = None


def _float_env(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        rate = float(value)
    except ValueError:
        raise ValidationError(f"{name} must be a number, got {value!r}")
    if rate < 0:
        raise ValidationError(f"{name} must not be negative")
    return rate


def load_settings() -> Settings:
    """Build settings from environment variables (and a .env file if present)."""
    load_dotenv()

    db_path = os.environ.get("BILLSNIPE_DB_PATH")
    return Settings(
        db_path=Path(db_path) if db_path else None,
        baseline_rate=_float_env("BILLSNIPE_BASELINE_RATE", DEFAULT_BASELINE_RATE),
        prediction_rate=_float_env("BILLSNIPE_PREDICTION_RATE", DEFAULT_PREDICTION_RATE),
        strict_tiers=os.environ.get("BILLSNIPE_STRICT_TIERS", "").lower() in ("1", "true", "yes"),
        catalog_url=os.environ.get("BILLSNIPE_CATALOG_URL") or None,
    )
