"""Plan catalog loading, schema parsing and validation."""

import json
import logging
import math
from pathlib import Path

import yaml

from .config import DEFAULT_PLANS_PATH
from .db import get_connection
from .exceptions import CatalogError, ValidationError
from .models import FlatSchema, Plan, PlanSchema, RatePeriod, Tier, TieredSchema, TimeOfUseSchema

logger = logging.getLogger(__name__)

# Rates used when a catalog entry omits them
DEFAULT_FLAT_RATE = 0.12
DEFAULT_OFF_PEAK_RATE = 0.08
DEFAULT_MID_PEAK_RATE = 0.13
DEFAULT_ON_PEAK_RATE = 0.18

ON_PEAK = "on_peak"
MID_PEAK = "mid_peak"
OFF_PEAK = "off_peak"
BANDS = (ON_PEAK, MID_PEAK, OFF_PEAK)

# Hours not listed fall back to off-peak
DEFAULT_TOU_PERIODS = (
    RatePeriod(7, 11, ON_PEAK),
    RatePeriod(11, 17, MID_PEAK),
    RatePeriod(17, 19, ON_PEAK),
)

FLAT_TYPES = ("flat", "fixed")


def _rate(data: dict, key: str, default: float | None = None) -> float:
    value = data.get(key, default)
    if value is None:
        raise ValidationError(f"Missing rate '{key}'")
    try:
        rate = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Rate '{key}' must be a number, got {value!r}")
    if rate < 0 or math.isnan(rate):
        raise ValidationError(f"Rate '{key}' must not be negative")
    return rate


def _flag(data: dict, key: str, default: bool = False) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ValidationError(f"Flag '{key}' must be true or false, got {value!r}")
    return value


def _parse_tiers(raw_tiers: list) -> tuple[Tier, ...]:
    if not raw_tiers:
        raise ValidationError("Tiered plan needs at least one tier")

    tiers = []
    previous_limit = 0.0
    for i, raw in enumerate(raw_tiers):
        if not isinstance(raw, dict):
            raise ValidationError(f"Tier {i} must be a mapping")
        if tiers and tiers[-1].limit_kwh is None:
            raise ValidationError("Only the last tier may be unbounded")

        limit = raw.get("limit")
        if limit is not None:
            try:
                limit = float(limit)
            except (TypeError, ValueError):
                raise ValidationError(f"Tier {i} limit must be a number, got {limit!r}")
            if math.isinf(limit):
                limit = None
            elif limit < 0:
                raise ValidationError(f"Tier {i} limit must not be negative")
            elif limit < previous_limit:
                raise ValidationError(
                    f"Tier limits must be non-decreasing (tier {i}: {limit} < {previous_limit})"
                )
            else:
                previous_limit = limit

        tiers.append(Tier(limit_kwh=limit, rate_per_kwh=_rate(raw, "rate")))
    return tuple(tiers)


def _parse_periods(raw_periods: list | None) -> tuple[RatePeriod, ...]:
    if raw_periods is None:
        return DEFAULT_TOU_PERIODS

    periods = []
    for i, raw in enumerate(raw_periods):
        try:
            start = int(raw["start"])
            end = int(raw["end"])
            band = raw["band"]
        except (KeyError, TypeError, ValueError):
            raise ValidationError(f"Period {i} needs integer 'start', 'end' and a 'band'")
        if not (0 <= start <= 23 and 0 <= end <= 24):
            raise ValidationError(f"Period {i} hours out of range: {start}-{end}")
        if start == end:
            raise ValidationError(f"Period {i} is empty: {start}-{end}")
        if band not in BANDS:
            raise ValidationError(f"Period {i} has unknown band {band!r}")
        periods.append(RatePeriod(start_hour=start, end_hour=end, band=band))
    return tuple(periods)


def parse_plan_schema(data: dict) -> PlanSchema:
    """Parse a catalog rate structure keyed by its 'type' discriminator."""
    if not isinstance(data, dict):
        raise ValidationError("Plan schema must be a mapping")

    schema_type = data.get("type", "flat")
    green_energy = _flag(data, "green_energy")
    rewards = _flag(data, "rewards")

    if schema_type in FLAT_TYPES:
        return FlatSchema(
            rate_per_kwh=_rate(data, "base_rate", DEFAULT_FLAT_RATE),
            green_energy=green_energy,
            rewards=rewards,
        )
    if schema_type == "tiered":
        return TieredSchema(
            tiers=_parse_tiers(data.get("tiers") or []),
            green_energy=green_energy,
            rewards=rewards,
        )
    if schema_type == "tou":
        rates = data.get("rates") or {}
        return TimeOfUseSchema(
            off_peak_rate=_rate(rates, "off_peak", DEFAULT_OFF_PEAK_RATE),
            mid_peak_rate=_rate(rates, "mid_peak", DEFAULT_MID_PEAK_RATE),
            on_peak_rate=_rate(rates, "on_peak", DEFAULT_ON_PEAK_RATE),
            periods=_parse_periods(data.get("periods")),
            green_energy=green_energy,
            rewards=rewards,
        )

    raise ValidationError(f"Unknown plan type: {schema_type!r}")


def schema_to_dict(schema: PlanSchema) -> dict:
    """Inverse of parse_plan_schema."""
    if isinstance(schema, FlatSchema):
        data = {"type": "flat", "base_rate": schema.rate_per_kwh}
    elif isinstance(schema, TieredSchema):
        data = {
            "type": "tiered",
            "tiers": [{"limit": t.limit_kwh, "rate": t.rate_per_kwh} for t in schema.tiers],
        }
    elif isinstance(schema, TimeOfUseSchema):
        data = {
            "type": "tou",
            "rates": {
                "off_peak": schema.off_peak_rate,
                "mid_peak": schema.mid_peak_rate,
                "on_peak": schema.on_peak_rate,
            },
            "periods": [
                {"start": p.start_hour, "end": p.end_hour, "band": p.band} for p in schema.periods
            ],
        }
    else:
        raise TypeError(f"Unsupported plan schema: {type(schema).__name__}")

    data["green_energy"] = schema.green_energy
    data["rewards"] = schema.rewards
    return data


def parse_plan(data: dict) -> Plan:
    """Parse one catalog entry."""
    try:
        plan_id = str(data["id"])
        name = data["name"]
        provider = data["provider"]
        region = data["region"]
    except (KeyError, TypeError) as e:
        raise ValidationError(f"Catalog entry missing field {e}")

    return Plan(
        id=plan_id,
        name=name,
        provider=provider,
        region=region,
        schema=parse_plan_schema(data.get("schema") or {}),
        active=_flag(data, "active", default=True),
    )


def plan_to_dict(plan: Plan) -> dict:
    return {
        "id": plan.id,
        "name": plan.name,
        "provider": plan.provider,
        "region": plan.region,
        "active": plan.active,
        "schema": schema_to_dict(plan.schema),
    }


def plan_type(schema: PlanSchema) -> str:
    """Short type label used in recommendations."""
    if isinstance(schema, TieredSchema):
        return "tiered"
    if isinstance(schema, TimeOfUseSchema):
        return "tou"
    return "flat"


def plan_features(schema: PlanSchema) -> list[str]:
    """Marketing features shown alongside a recommendation."""
    features = []
    if isinstance(schema, TimeOfUseSchema):
        features.append("Time-of-Use pricing")
    if isinstance(schema, TieredSchema):
        features.append("Tiered pricing")
    if schema.green_energy:
        features.append("100% Green Energy")
    if schema.rewards:
        features.append("Rewards program")
    return features


def load_plans_from_yaml(config_path: Path | None = None) -> list[Plan]:
    """Load plan definitions from YAML config file."""
    path = config_path or DEFAULT_PLANS_PATH
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise CatalogError(f"Invalid YAML in {path}: {e}")
    if not isinstance(data, dict):
        raise CatalogError(f"Expected a 'plans:' mapping in {path}")

    plans = [parse_plan(p) for p in data.get("plans", [])]
    logger.debug("Loaded %d plan(s) from %s", len(plans), path)
    return plans


def save_plans_to_db(plans: list[Plan], db_path: Path | None = None) -> int:
    """Save plans to the catalog table. Returns number of plans saved."""
    count = 0
    with get_connection(db_path) as conn:
        for plan in plans:
            conn.execute(
                """INSERT INTO plan_catalog (id, name, provider, region, schema, active)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       name = excluded.name,
                       provider = excluded.provider,
                       region = excluded.region,
                       schema = excluded.schema,
                       active = excluded.active""",
                (
                    plan.id,
                    plan.name,
                    plan.provider,
                    plan.region,
                    json.dumps(schema_to_dict(plan.schema)),
                    1 if plan.active else 0,
                ),
            )
            count += 1
        conn.commit()
    return count


def _row_to_plan(row) -> Plan:
    return Plan(
        id=row["id"],
        name=row["name"],
        provider=row["provider"],
        region=row["region"],
        schema=parse_plan_schema(json.loads(row["schema"])),
        active=bool(row["active"]),
    )


def get_active_plans(region: str, db_path: Path | None = None) -> list[Plan]:
    """Get the active plans of a region in catalog order."""
    with get_connection(db_path) as conn:
        rows = conn.execute(
            "SELECT id, name, provider, region, schema, active FROM plan_catalog "
            "WHERE region = ? AND active = 1 ORDER BY seq",
            (region,),
        ).fetchall()
    return [_row_to_plan(row) for row in rows]


def list_plans(region: str | None = None, db_path: Path | None = None) -> list[Plan]:
    """List catalog plans, optionally for one region, including inactive ones."""
    query = "SELECT id, name, provider, region, schema, active FROM plan_catalog"
    params: tuple = ()
    if region:
        query += " WHERE region = ?"
        params = (region,)
    query += " ORDER BY seq"

    with get_connection(db_path) as conn:
        rows = conn.execute(query, params).fetchall()
    return [_row_to_plan(row) for row in rows]
