"""Remote plan catalog collector.

Fetches a JSON plan catalog over HTTP. The document is either a list of plan
entries or an object with a "plans" list, each entry shaped like the entries
of config/plans.yaml.
"""

import logging
import os
from pathlib import Path

import httpx
from dotenv import load_dotenv

from ..exceptions import CatalogError, ValidationError
from ..models import Plan
from ..plans import parse_plan, save_plans_to_db

logger = logging.getLogger(__name__)


def get_catalog_url() -> str:
    """Get the catalog URL from environment."""
    load_dotenv()
    url = os.environ.get("BILLSNIPE_CATALOG_URL")
    if not url:
        raise CatalogError(
            "BILLSNIPE_CATALOG_URL environment variable not set.\n"
            "Pass --url or set it: export BILLSNIPE_CATALOG_URL='https://...'"
        )
    return url


def fetch_catalog(
    url: str | None = None,
    region: str | None = None,
    client: httpx.Client | None = None,
) -> list[Plan]:
    """Download and parse the plan catalog, optionally filtered to one region."""
    if url is None:
        url = get_catalog_url()

    params = {"region": region} if region else None
    owns_client = client is None
    client = client or httpx.Client()
    try:
        response = client.get(url, params=params, timeout=30.0)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPStatusError as e:
        raise CatalogError(f"Catalog request failed: {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise CatalogError(f"Could not fetch catalog from {url}: {e}") from e
    except ValueError as e:
        raise CatalogError(f"Catalog response is not JSON: {e}") from e
    finally:
        if owns_client:
            client.close()

    entries = data.get("plans") if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise CatalogError("Catalog response has no plan list")

    plans = []
    for i, entry in enumerate(entries):
        try:
            plan = parse_plan(entry)
        except ValidationError as e:
            raise CatalogError(f"Invalid catalog entry {i}: {e}") from e
        if region is None or plan.region == region:
            plans.append(plan)

    logger.info("Fetched %d plan(s) from %s", len(plans), url)
    return plans


def fetch_and_import(
    url: str | None = None,
    region: str | None = None,
    db_path: Path | None = None,
) -> dict:
    """Fetch the remote catalog and save it to the database.

    Returns dict with 'imported' count.
    """
    plans = fetch_catalog(url, region)
    return {"imported": save_plans_to_db(plans, db_path)}
