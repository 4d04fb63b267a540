"""CLI entry point for Koyn Finance, the rate-limited market aggregation server.

Provides the ``koyn`` command with subcommands for running the API server,
trying the asset resolver, and inspecting or purging the usage ledger.

This is the ONLY module where console output is allowed. All other modules use
``logging``. Async internals are bridged to typer's synchronous interface via
``asyncio.run()``.
"""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from Koyn_Finance.config import load_settings
from Koyn_Finance.logging_config import configure_logging

# ---------------------------------------------------------------------------
# Typer app and sub-apps
# ---------------------------------------------------------------------------

app = typer.Typer(name="koyn", help="Rate-limited market sentiment and chart API")
usage_app = typer.Typer(help="Inspect and maintain the daily usage ledger")
app.add_typer(usage_app, name="usage")

# Rich console for formatted output
console = Console()

DEFAULT_HOST: str = "127.0.0.1"
DEFAULT_PORT: int = 3001


# ---------------------------------------------------------------------------
# serve command
# ---------------------------------------------------------------------------


@app.command()
def serve(
    host: Annotated[str, typer.Option(help="Interface to bind")] = DEFAULT_HOST,
    port: Annotated[int, typer.Option(help="Port to listen on")] = DEFAULT_PORT,
    reload: Annotated[bool, typer.Option(help="Restart on code changes")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    configure_logging(verbose=verbose)
    console.print(f"[bold]Koyn Finance API[/bold] on http://{host}:{port}")
    uvicorn.run(
        "Koyn_Finance.web.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_config=None,
    )


# ---------------------------------------------------------------------------
# resolve command
# ---------------------------------------------------------------------------


@app.command()
def resolve(
    query: Annotated[str, typer.Argument(help="Free text or symbol to resolve")],
    price: Annotated[bool, typer.Option(help="Fetch a live price for the match")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
) -> None:
    """Show which asset a question resolves to."""
    configure_logging(verbose=verbose, quiet=not verbose)
    asyncio.run(_resolve_async(query=query, with_price=price))


async def _resolve_async(*, query: str, with_price: bool) -> None:
    """Run the resolver tiers against *query* and print the match."""
    from Koyn_Finance.agents.llm_client import LLMClient
    from Koyn_Finance.data.catalog import AssetCatalog
    from Koyn_Finance.services import (
        AssetResolver,
        DexScreenerClient,
        FmpClient,
        MarketDataService,
        Upstreams,
    )

    settings = load_settings()
    fmp = FmpClient(settings.fmp_api_key)
    dex = DexScreenerClient()
    llm = LLMClient(settings.gemini_api_key)
    resolver = AssetResolver(
        AssetCatalog.load(settings.catalog_dir),
        dex=dex,
        llm=llm,
        market_data=MarketDataService(Upstreams(fmp=fmp, dex=dex)),
    )

    try:
        asset = await resolver.resolve(query, enrich=with_price)
    finally:
        for client in (fmp, dex, llm):
            await client.aclose()

    if asset is None:
        default = resolver.default()
        console.print(
            f"[yellow]No asset found; requests would default to "
            f"{default.name} ({default.display_symbol}).[/yellow]"
        )
        return

    table = Table(title=f"Resolved: {query}")
    table.add_column("Field", style="bold", width=16)
    table.add_column("Value", width=48)
    table.add_row("Symbol", asset.display_symbol)
    table.add_row("Upstream symbol", asset.query_symbol)
    table.add_row("Name", asset.name)
    table.add_row("Class", asset.asset_class.value)
    table.add_row("Matched by", asset.resolution_source.value)
    if asset.price is not None:
        table.add_row("Price", f"${asset.price:,}")
    if asset.onchain is not None:
        table.add_row("Chain", asset.onchain.chain)
        table.add_row("Contract", asset.onchain.contract_address)
        table.add_row("Liquidity", f"${asset.onchain.liquidity_usd:,.0f}")
        table.add_row("Safety", asset.onchain.safety_score)
    console.print(table)


# ---------------------------------------------------------------------------
# usage subcommands
# ---------------------------------------------------------------------------


@usage_app.command("show")
def usage_show(
    subscription_id: Annotated[str, typer.Argument(help="Subscription id to inspect")],
) -> None:
    """Show plan, limit and retained daily counts for a subscription."""
    configure_logging(quiet=True)
    asyncio.run(_usage_show_async(subscription_id=subscription_id))


async def _usage_show_async(*, subscription_id: str) -> None:
    from Koyn_Finance.data import Database, SubscriptionStore
    from Koyn_Finance.models import UNLIMITED
    from Koyn_Finance.services import RateLimiter, SubscriptionResolver, UsageLedger

    settings = load_settings()
    resolver = SubscriptionResolver(
        SubscriptionStore(settings.subscriptions_path), jwt_secret=settings.jwt_secret
    )

    async with Database(settings.db_path) as db:
        ledger = UsageLedger(db)
        limiter = RateLimiter(ledger, resolver, plan_limits=settings.plan_limits)
        decision = await limiter.check(subscription_id)
        history = await ledger.history(subscription_id)

    limit = "unlimited" if decision.limit == UNLIMITED else str(decision.limit)
    active = resolver.is_active(subscription_id)
    console.print(f"\n[bold]{subscription_id}[/bold]")
    console.print(f"Plan:    {decision.plan.value}")
    console.print(f"Active:  {'[green]yes[/green]' if active else '[red]no[/red]'}")
    console.print(f"Today:   {decision.used} / {limit}")

    if not history:
        console.print("[dim]No usage recorded.[/dim]")
        return

    table = Table(title="Daily usage (UTC)")
    table.add_column("Date", width=12)
    table.add_column("Requests", justify="right", width=10)
    for record in history:
        table.add_row(record.date.isoformat(), str(record.count))
    console.print(table)


@usage_app.command("purge")
def usage_purge(
    days: Annotated[
        int | None, typer.Option(help="Keep this many days (default: USAGE_RETENTION_DAYS)")
    ] = None,
) -> None:
    """Delete usage rows older than the retention window."""
    configure_logging(quiet=True)
    asyncio.run(_usage_purge_async(days=days))


async def _usage_purge_async(*, days: int | None) -> None:
    from Koyn_Finance.data import Database
    from Koyn_Finance.services import UsageLedger

    settings = load_settings()
    retention = days if days is not None else settings.usage_retention_days
    async with Database(settings.db_path) as db:
        removed = await UsageLedger(db).purge_older_than(retention)
    console.print(f"[green]Removed {removed} usage rows older than {retention} days.[/green]")


if __name__ == "__main__":
    app()
