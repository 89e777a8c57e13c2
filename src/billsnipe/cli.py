"""Command-line interface for plan comparison and usage prediction."""

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path

import click
import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import db
from .analysis import prediction, ranking
from .collectors import catalog, usage_file
from .config import DEFAULT_HORIZON_DAYS, DEFAULT_WINDOW_DAYS, load_settings
from .exceptions import BillsnipeError
from .models import Account
from .plans import get_active_plans, list_plans, load_plans_from_yaml, plan_type, save_plans_to_db

console = Console()
DATE_FORMATS = click.DateTime(formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"])


@click.group()
@click.option("--db-path", type=click.Path(), help="Path to SQLite database")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx, db_path, verbose):
    """Compare utility plans and forecast usage from hourly readings."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )

    settings = load_settings()
    if db_path:
        settings.db_path = Path(db_path)

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["db_path"] = settings.db_path


# Database commands
@cli.group()
def database():
    """Database management commands."""
    pass


@database.command("init")
@click.pass_context
def db_init(ctx):
    """Initialize the database schema."""
    db.init_db(ctx.obj["db_path"])
    console.print("[green]Database initialized successfully[/green]")


@database.command("stats")
@click.pass_context
def db_stats(ctx):
    """Show database statistics."""
    stats = db.get_stats(ctx.obj["db_path"])

    table = Table(title="Database Statistics")
    table.add_column("Category", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Range")

    table.add_row("Accounts", str(stats["accounts"]["count"]), "")

    usage = stats["usage_readings"]
    table.add_row(
        "Usage readings",
        str(usage["count"]),
        f"{usage['earliest'] or 'N/A'} → {usage['latest'] or 'N/A'}",
    )
    for account_id, count in stats.get("usage_by_account", {}).items():
        table.add_row(f"  └ {account_id}", str(count), "")

    catalog_stats = stats["plans"]
    table.add_row("Plans", str(catalog_stats["count"]), f"{catalog_stats['active']} active")

    console.print(table)


# Account commands
@cli.group()
def account():
    """Utility account commands."""
    pass


@account.command("add")
@click.option("--id", "account_id", required=True, help="Account identifier")
@click.option("--region", required=True, help="Region used to select catalog plans")
@click.option("--provider", help="Current provider (omit if unknown)")
@click.option("--number", "account_number", help="Provider account number")
@click.pass_context
def account_add(ctx, account_id, region, provider, account_number):
    """Add or update a utility account."""
    db.save_account(
        Account(id=account_id, region=region, provider=provider, account_number=account_number),
        ctx.obj["db_path"],
    )
    console.print(f"[green]Saved account {account_id}[/green]")


@account.command("list")
@click.pass_context
def account_list(ctx):
    """List utility accounts."""
    accounts = db.list_accounts(ctx.obj["db_path"])
    if not accounts:
        console.print("[yellow]No accounts found[/yellow]")
        return

    table = Table(title="Accounts")
    table.add_column("ID", style="cyan")
    table.add_column("Region")
    table.add_column("Provider")
    table.add_column("Account Number", style="dim")

    for a in accounts:
        table.add_row(a.id, a.region, a.provider or "-", a.account_number or "-")

    console.print(table)


# Import commands
@cli.group("import")
def import_cmd():
    """Import usage data."""
    pass


@import_cmd.command("usage")
@click.option("--account", "account_id", required=True, help="Account to import into")
@click.option("--file", "file_path", type=click.Path(exists=True), help="CSV or JSON usage export")
@click.pass_context
def import_usage(ctx, account_id, file_path):
    """Import hourly usage readings from a CSV or JSON export."""
    if not file_path:
        console.print("[red]Please specify --file path[/red]")
        return

    try:
        db.get_account(account_id, ctx.obj["db_path"])
        result = usage_file.import_from_file(account_id, Path(file_path), ctx.obj["db_path"])
    except BillsnipeError as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    console.print(f"[green]Imported {result['imported']} readings[/green]")
    if result["skipped"]:
        console.print(f"[yellow]Skipped {result['skipped']} duplicates[/yellow]")


# Plan catalog commands
@cli.group()
def plans():
    """Plan catalog commands."""
    pass


@plans.command("load")
@click.option("--config", type=click.Path(exists=True), help="Path to plans.yaml")
@click.pass_context
def plans_load(ctx, config):
    """Load plans from YAML config."""
    config_path = Path(config) if config else None
    try:
        catalog_plans = load_plans_from_yaml(config_path)
    except BillsnipeError as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    count = save_plans_to_db(catalog_plans, ctx.obj["db_path"])
    console.print(f"[green]Loaded {count} plan(s)[/green]")


@plans.command("fetch")
@click.option("--url", help="Catalog URL (or set BILLSNIPE_CATALOG_URL)")
@click.option("--region", help="Only import plans for this region")
@click.pass_context
def plans_fetch(ctx, url, region):
    """Import plans from a remote JSON catalog."""
    try:
        result = catalog.fetch_and_import(
            url or ctx.obj["settings"].catalog_url, region, ctx.obj["db_path"]
        )
    except BillsnipeError as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)
    except httpx.TimeoutException:
        console.print("[red]Request timed out[/red]")
        ctx.exit(1)

    console.print(f"[green]Imported {result['imported']} plan(s)[/green]")


@plans.command("list")
@click.option("--region", help="Only show plans for this region")
@click.pass_context
def plans_list(ctx, region):
    """List catalog plans."""
    catalog_plans = list_plans(region, ctx.obj["db_path"])
    if not catalog_plans:
        console.print("[yellow]No plans found[/yellow]")
        return

    table = Table(title=f"Plans ({region})" if region else "Plans")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Provider")
    table.add_column("Region", style="dim")
    table.add_column("Type")
    table.add_column("Status")

    for p in catalog_plans:
        status = "[green]Active[/green]" if p.active else "[dim]Inactive[/dim]"
        table.add_row(p.id, p.name, p.provider, p.region, plan_type(p.schema), status)

    console.print(table)


# Analysis commands
@cli.command()
@click.option("--account", "account_id", required=True, help="Account to analyse")
@click.option("--region", help="Plan region (defaults to the account's region)")
@click.option("--from-date", type=DATE_FORMATS, help="Start date (YYYY-MM-DD), defaults to 90 days ago")
@click.option("--to-date", type=DATE_FORMATS, help="End date (YYYY-MM-DD), defaults to now")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def compare(ctx, account_id, region, from_date, to_date, as_json):
    """Rank catalog plans by projected savings for an account."""
    settings = ctx.obj["settings"]
    end = to_date or datetime.now()
    start = from_date or end - timedelta(days=DEFAULT_WINDOW_DAYS)

    try:
        acct = db.get_account(account_id, ctx.obj["db_path"])
        usage = db.get_usage_for_period(account_id, start, end, ctx.obj["db_path"])
        catalog_plans = get_active_plans(region or acct.region, ctx.obj["db_path"])
        data = ranking.compare_plans(
            acct,
            catalog_plans,
            usage,
            start,
            end,
            baseline_rate=settings.baseline_rate,
            strict=settings.strict_tiers,
        )
    except BillsnipeError as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    if as_json:
        click.echo(json.dumps(data, indent=2))
    else:
        console.print(ranking.format_comparison_text(data))


@cli.command()
@click.option("--account", "account_id", required=True, help="Account to forecast")
@click.option(
    "--days",
    default=DEFAULT_HORIZON_DAYS,
    help=f"Number of days to predict (default: {DEFAULT_HORIZON_DAYS})",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def predict(ctx, account_id, days, as_json):
    """Forecast daily usage from the last 90 days of history."""
    settings = ctx.obj["settings"]
    start = datetime.now() - timedelta(days=DEFAULT_WINDOW_DAYS)

    try:
        db.get_account(account_id, ctx.obj["db_path"])
        usage = db.get_usage_for_period(account_id, start, None, ctx.obj["db_path"])
        result = prediction.predict(usage, days, rate=settings.prediction_rate)
    except BillsnipeError as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    if as_json:
        click.echo(json.dumps(prediction.prediction_to_dict(result, account_id), indent=2))
    else:
        console.print(prediction.format_prediction_text(result))


if __name__ == "__main__":
    cli()
