"""Tests for the remote plan catalog collector."""

import httpx
import pytest
from billsnipe import db
from billsnipe.collectors import catalog
from billsnipe.exceptions import CatalogError
from billsnipe.models import FlatSchema
from billsnipe.plans import get_active_plans

CATALOG = {
    "plans": [
        {
            "id": "a",
            "name": "A",
            "provider": "Acme",
            "region": "north",
            "schema": {"type": "flat", "base_rate": 0.1},
        },
        {
            "id": "b",
            "name": "B",
            "provider": "Bolt",
            "region": "south",
            "schema": {"type": "tou"},
        },
    ]
}


def mock_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_fetch_catalog():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json=CATALOG)

    plans = catalog.fetch_catalog(
        "https://plans.example.com/catalog.json", client=mock_client(handler)
    )

    assert [p.id for p in plans] == ["a", "b"]
    assert plans[0].schema == FlatSchema(0.1)
    assert requests[0].url.params.get("region") is None


def test_fetch_catalog_filters_region():
    def handler(request):
        assert request.url.params["region"] == "north"
        return httpx.Response(200, json=CATALOG["plans"])

    plans = catalog.fetch_catalog(
        "https://plans.example.com/catalog.json", region="north", client=mock_client(handler)
    )

    assert [p.id for p in plans] == ["a"]


def test_fetch_catalog_http_error():
    client = mock_client(lambda request: httpx.Response(503))
    with pytest.raises(CatalogError, match="503"):
        catalog.fetch_catalog("https://plans.example.com/catalog.json", client=client)


def test_fetch_catalog_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(CatalogError, match="Could not fetch"):
        catalog.fetch_catalog("https://plans.example.com/catalog.json", client=mock_client(handler))


def test_fetch_catalog_invalid_entry():
    bad = {"plans": [{"id": "x", "name": "X", "provider": "P", "region": "r", "schema": {"type": "gas"}}]}
    client = mock_client(lambda request: httpx.Response(200, json=bad))
    with pytest.raises(CatalogError, match="Invalid catalog entry 0"):
        catalog.fetch_catalog("https://plans.example.com/catalog.json", client=client)


def test_fetch_catalog_requires_url(monkeypatch):
    monkeypatch.setattr(catalog, "load_dotenv", lambda: None)
    monkeypatch.delenv("BILLSNIPE_CATALOG_URL", raising=False)
    with pytest.raises(CatalogError, match="BILLSNIPE_CATALOG_URL"):
        catalog.fetch_catalog()


def test_fetch_and_import(tmp_path, monkeypatch):
    db_path = tmp_path / "test.db"
    db.init_db(db_path)

    original_client = httpx.Client
    monkeypatch.setattr(
        catalog.httpx,
        "Client",
        lambda: original_client(transport=httpx.MockTransport(lambda r: httpx.Response(200, json=CATALOG))),
    )

    result = catalog.fetch_and_import("https://plans.example.com/catalog.json", db_path=db_path)

    assert result == {"imported": 2}
    assert [p.id for p in get_active_plans("north", db_path)] == ["a"]
