"""CLI interface for the Daily Briefing pipeline.

Usage:
    briefing run
    briefing run --dry-run --deadline 600
    briefing preview someone@example.com
    briefing subscribe someone@example.com -c technology -c science
    briefing unsubscribe someone@example.com
    briefing subscribers
    briefing status
    briefing serve --port 8080
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional, Tuple

import click
from aiohttp import web
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from briefing.config import DEFAULT_CONFIG_PATH, Settings, load_settings
from briefing.delivery.base import LogDelivery
from briefing.digest.composer import render_text
from briefing.intake.app import create_app, handle_subscribe
from briefing.pipeline.orchestrator import DigestPipeline, RunContext
from briefing.storage.db import DatabaseManager

console = Console()


def run_async(coro):
    """Run an async function in a fresh event loop."""
    return asyncio.run(coro)


def _settings(ctx: click.Context) -> Settings:
    return ctx.obj["settings"]


@click.group()
@click.option("--db", default=None, help="Database path (overrides config)")
@click.option("--config", default=DEFAULT_CONFIG_PATH, help="Config file path")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, db: Optional[str], config: str, verbose: bool):
    """Daily Briefing pipeline CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    ctx.ensure_object(dict)
    try:
        settings = load_settings(config)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    if db:
        settings.db_path = db
    ctx.obj["settings"] = settings


@cli.command()
@click.option("--dry-run", is_flag=True, help="Log digests instead of emailing them")
@click.option("--deadline", type=float, default=None, help="Stop starting new subscribers after N seconds")
@click.option("--concurrency", type=int, default=None, help="Subscribers processed in parallel")
@click.pass_context
def run(ctx, dry_run: bool, deadline: Optional[float], concurrency: Optional[int]):
    """Run one briefing pass over all active subscribers."""
    settings = _settings(ctx)
    if concurrency is not None:
        settings.max_concurrent_subscribers = max(1, concurrency)

    async def _run():
        pipeline = DigestPipeline(
            settings,
            delivery=LogDelivery() if dry_run else None,
        )
        async with pipeline:
            return await pipeline.run(RunContext.with_timeout(deadline))

    summary = run_async(_run())

    if summary.aborted:
        console.print(f"[red]Run aborted:[/red] {summary.error}")
        sys.exit(1)

    table = Table(title=f"Run {summary.run_id}")
    table.add_column("Subscriber", style="cyan")
    table.add_column("Articles", justify="right")
    table.add_column("Outcome")
    table.add_column("Time", justify="right")

    for r in summary.results:
        if r.skipped:
            outcome = "[yellow]skipped (no articles)"
        elif r.delivered:
            outcome = "[green]delivered"
        else:
            outcome = f"[red]failed: {(r.error_message or '')[:50]}"
        table.add_row(r.email, str(r.articles), outcome, f"{r.duration_seconds:.1f}s")
    table.add_section()
    table.add_row(
        "[bold]Total",
        "",
        f"[bold]{summary.delivered}/{summary.attempted} delivered, "
        f"{summary.skipped} skipped, {summary.not_started} not started",
        f"[bold]{summary.duration_seconds:.1f}s",
    )
    console.print(table)


@cli.command()
@click.argument("email")
@click.pass_context
def preview(ctx, email: str):
    """Build and print one subscriber's digest without sending it."""

    async def _run():
        async with DigestPipeline(_settings(ctx)) as pipeline:
            return await pipeline.preview(email)

    with console.status("[bold green]Building digest..."):
        digest = run_async(_run())
    if digest is None:
        console.print(f"[yellow]No digest for {email}[/yellow] (unknown subscriber or no articles)")
        sys.exit(1)
    console.print(render_text(digest), markup=False, highlight=False)


@cli.command()
@click.argument("email")
@click.option("--category", "-c", "categories", multiple=True, required=True, help="News category (repeatable)")
@click.pass_context
def subscribe(ctx, email: str, categories: Tuple[str, ...]):
    """Add a subscriber or replace their categories."""

    async def _run():
        async with DatabaseManager(_settings(ctx).db_path) as db:
            return await handle_subscribe(db, {"email": email, "categories": list(categories)})

    status, message = run_async(_run())
    if status == 200:
        console.print(f"[green]{message}[/green]")
    else:
        console.print(f"[red]Error:[/red] {message}")
        sys.exit(1)


@cli.command()
@click.argument("email")
@click.pass_context
def unsubscribe(ctx, email: str):
    """Deactivate a subscriber."""

    async def _run():
        async with DatabaseManager(_settings(ctx).db_path) as db:
            return await db.deactivate_subscriber(email)

    if run_async(_run()):
        console.print(f"[green]Deactivated {email}[/green]")
    else:
        console.print(f"[yellow]No subscriber {email}[/yellow]")
        sys.exit(1)


@cli.command()
@click.pass_context
def subscribers(ctx):
    """List active subscribers."""

    async def _run():
        async with DatabaseManager(_settings(ctx).db_path) as db:
            return await db.get_active_subscribers()

    subs = run_async(_run())
    if not subs:
        console.print("[yellow]No active subscribers[/yellow]")
        return

    table = Table(title="Active Subscribers")
    table.add_column("Email", style="cyan")
    table.add_column("Topics")
    table.add_column("Since")
    for s in subs:
        since = s.created_at.strftime("%Y-%m-%d") if s.created_at else "?"
        table.add_row(s.email, ", ".join(s.topics), since)
    console.print(table)


@cli.command()
@click.option("--limit", "-n", default=20, help="Recent deliveries to show")
@click.pass_context
def status(ctx, limit: int):
    """Show store statistics and recent delivery outcomes."""
    settings = _settings(ctx)

    async def _run():
        async with DatabaseManager(settings.db_path) as db:
            return await db.get_stats(), await db.get_recent_deliveries(limit)

    stats, deliveries = run_async(_run())

    console.print("\n[bold]Database Status[/bold]")
    console.print(f"  Path: {settings.db_path}")
    console.print(f"  Size: {stats['db_size_bytes'] / 1024:.1f} KB")
    console.print(f"  Subscribers: {stats['active_subscribers']} active / {stats['total_subscribers']} total")
    console.print(f"  Deliveries: {stats['successful_deliveries']} ok / {stats['total_deliveries']} total")
    console.print(f"  Source key: {'set' if settings.source.configured else '[red]missing'}")
    console.print(f"  Delivery key: {'set' if settings.delivery.configured else '[red]missing'}")
    console.print(f"  LLM provider: {settings.llm.provider}")

    if deliveries:
        console.print()
        table = Table(title="Recent Deliveries")
        table.add_column("Run", style="dim")
        table.add_column("Email", style="cyan")
        table.add_column("Articles", justify="right")
        table.add_column("Delivered")
        table.add_column("Error")
        for d in deliveries:
            table.add_row(
                d.run_id,
                d.email,
                str(d.article_count),
                "[green]yes" if d.delivered else "[red]no",
                (d.error or "")[:50],
            )
        console.print(table)


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8080, type=int, help="Bind port")
@click.pass_context
def serve(ctx, host: str, port: int):
    """Serve the subscription intake API."""
    settings = _settings(ctx)

    async def _app() -> web.Application:
        db = DatabaseManager(settings.db_path)
        await db.initialize()
        app = create_app(db)

        async def _close_db(app: web.Application) -> None:
            await db.close()

        app.on_cleanup.append(_close_db)
        return app

    web.run_app(_app(), host=host, port=port)


def main():
    cli()


if __name__ == "__main__":
    main()
