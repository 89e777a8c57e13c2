from pathlib import Path

import pytest
from billsnipe import db
from billsnipe.exceptions import CatalogError, ValidationError
from billsnipe.models import FlatSchema, RatePeriod, Tier, TieredSchema, TimeOfUseSchema
from billsnipe.plans import (
    DEFAULT_TOU_PERIODS,
    get_active_plans,
    list_plans,
    load_plans_from_yaml,
    parse_plan,
    parse_plan_schema,
    plan_features,
    plan_to_dict,
    plan_type,
    save_plans_to_db,
)

CATALOG_YAML = """
plans:
  - id: a-flat
    name: A Flat
    provider: Acme
    region: north
    schema: {type: flat, base_rate: 0.11}
  - id: b-tiered
    name: B Tiered
    provider: Bolt
    region: north
    schema:
      type: tiered
      tiers:
        - {limit: 500, rate: 0.12}
        - {rate: 0.09}
  - id: c-old
    name: C Old
    provider: Acme
    region: north
    active: false
    schema: {type: flat, base_rate: 0.2}
  - id: d-south
    name: D South
    provider: Dyn
    region: south
    schema: {type: tou}
"""


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "test.db"
    db.init_db(path)
    return path


@pytest.fixture
def catalog_file(tmp_path) -> Path:
    path = tmp_path / "plans.yaml"
    path.write_text(CATALOG_YAML)
    return path


def test_parse_flat_defaults():
    assert parse_plan_schema({}) == FlatSchema(0.12)
    assert parse_plan_schema({"type": "fixed", "base_rate": 0.1}) == FlatSchema(0.1)


def test_parse_tiered():
    schema = parse_plan_schema(
        {"type": "tiered", "tiers": [{"limit": 100, "rate": 0.1}, {"rate": 0.08}], "rewards": True}
    )
    assert schema == TieredSchema(tiers=(Tier(100.0, 0.1), Tier(None, 0.08)), rewards=True)


def test_parse_tou_defaults():
    schema = parse_plan_schema({"type": "tou"})
    assert isinstance(schema, TimeOfUseSchema)
    assert (schema.off_peak_rate, schema.mid_peak_rate, schema.on_peak_rate) == (0.08, 0.13, 0.18)
    assert schema.periods == DEFAULT_TOU_PERIODS


def test_parse_tou_custom_periods():
    schema = parse_plan_schema(
        {
            "type": "tou",
            "rates": {"off_peak": 0.05, "mid_peak": 0.1, "on_peak": 0.3},
            "periods": [{"start": 16, "end": 21, "band": "on_peak"}],
        }
    )
    assert schema.periods == (RatePeriod(16, 21, "on_peak"),)
    assert schema.on_peak_rate == 0.3


@pytest.mark.parametrize(
    "data, message",
    [
        ({"type": "gas"}, "Unknown plan type"),
        ({"type": "flat", "base_rate": -0.1}, "negative"),
        ({"type": "flat", "base_rate": "cheap"}, "must be a number"),
        ({"type": "tiered", "tiers": []}, "at least one tier"),
        ({"type": "tiered", "tiers": [{"limit": -5, "rate": 0.1}]}, "negative"),
        (
            {"type": "tiered", "tiers": [{"limit": 200, "rate": 0.1}, {"limit": 100, "rate": 0.1}]},
            "non-decreasing",
        ),
        (
            {"type": "tiered", "tiers": [{"rate": 0.1}, {"limit": 100, "rate": 0.1}]},
            "last tier",
        ),
        ({"type": "tiered", "tiers": [{"limit": 100}]}, "Missing rate"),
        ({"type": "tou", "periods": [{"start": 7, "end": 25, "band": "on_peak"}]}, "out of range"),
        ({"type": "tou", "periods": [{"start": 7, "end": 9, "band": "super_peak"}]}, "unknown band"),
        ({"type": "tou", "periods": [{"start": 7, "end": 7, "band": "on_peak"}]}, "empty"),
        ({"type": "tou", "rates": {"on_peak": -1}}, "negative"),
        ({"type": "flat", "green_energy": "false"}, "must be true or false"),
        ({"type": "tou", "rewards": 1}, "must be true or false"),
    ],
)
def test_parse_rejects_invalid_schema(data, message):
    with pytest.raises(ValidationError, match=message):
        parse_plan_schema(data)


def test_parse_plan_requires_fields():
    with pytest.raises(ValidationError, match="missing field"):
        parse_plan({"id": "x", "name": "X"})


def test_plan_dict_round_trip():
    original = parse_plan(
        {
            "id": "t1",
            "name": "Tiered One",
            "provider": "Acme",
            "region": "north",
            "active": False,
            "schema": {
                "type": "tiered",
                "tiers": [{"limit": 10, "rate": 0.2}, {"rate": 0.1}],
                "green_energy": True,
            },
        }
    )
    assert parse_plan(plan_to_dict(original)) == original


def test_plan_type_and_features():
    tou = parse_plan_schema({"type": "tou", "green_energy": True, "rewards": True})
    assert plan_type(tou) == "tou"
    assert plan_features(tou) == ["Time-of-Use pricing", "100% Green Energy", "Rewards program"]

    tiered = parse_plan_schema({"type": "tiered", "tiers": [{"rate": 0.1}]})
    assert plan_type(tiered) == "tiered"
    assert plan_features(tiered) == ["Tiered pricing"]

    assert plan_type(FlatSchema(0.1)) == "flat"
    assert plan_features(FlatSchema(0.1)) == []


def test_load_plans_from_yaml(catalog_file):
    plans = load_plans_from_yaml(catalog_file)
    assert [p.id for p in plans] == ["a-flat", "b-tiered", "c-old", "d-south"]
    assert plans[2].active is False


def test_load_plans_rejects_malformed_yaml(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("plans:\n  - id: a\n    name: [unclosed\n")
    with pytest.raises(CatalogError, match="Invalid YAML"):
        load_plans_from_yaml(path)

    path.write_text("- just\n- a list\n")
    with pytest.raises(CatalogError, match="mapping"):
        load_plans_from_yaml(path)


def test_bundled_catalog_loads():
    plans = load_plans_from_yaml()
    assert plans
    assert {plan_type(p.schema) for p in plans} == {"flat", "tiered", "tou"}


def test_active_plans_by_region_in_catalog_order(db_path, catalog_file):
    assert save_plans_to_db(load_plans_from_yaml(catalog_file), db_path) == 4

    north = get_active_plans("north", db_path)
    assert [p.id for p in north] == ["a-flat", "b-tiered"]
    assert north[1].schema == TieredSchema(tiers=(Tier(500.0, 0.12), Tier(None, 0.09)))

    assert [p.id for p in get_active_plans("south", db_path)] == ["d-south"]
    assert len(list_plans(db_path=db_path)) == 4
    assert [p.id for p in list_plans("north", db_path)] == ["a-flat", "b-tiered", "c-old"]


def test_save_plans_updates_existing(db_path, catalog_file):
    plans = load_plans_from_yaml(catalog_file)
    save_plans_to_db(plans, db_path)

    plans[0].active = False
    save_plans_to_db(plans[:1], db_path)

    assert [p.id for p in get_active_plans("north", db_path)] == ["b-tiered"]
    assert len(list_plans(db_path=db_path)) == 4


def test_parse_plan_rejects_non_boolean_active():
    with pytest.raises(ValidationError, match="must be true or false"):
        parse_plan(
            {"id": "x", "name": "X", "provider": "P", "region": "north", "schema": {}, "active": "no"}
        )
