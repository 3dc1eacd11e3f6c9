# src/cli/runner.py

"""Headless job runners for the scanner CLI."""

import asyncio
import logging
from datetime import datetime

from rich.console import Console
from rich.table import Table

from src.models.category import Category
from src.services.auction_scanner import (
    AuctionScanner,
    ReconcileReport,
    ScanReport,
)
from src.storage.auction_db import AuctionDB

logger = logging.getLogger("nellis_scanner.cli")

# Stderr console for status messages so stdout stays clean for tables
_err = Console(stderr=True)


def resolve_category(name: str | None) -> Category | None:
    """Map a CLI category argument to a :class:`Category`.

    Returns ``None`` (all categories) when *name* is ``None``.
    Raises ``SystemExit`` on an unknown name.
    """
    if name is None:
        return None
    try:
        return Category.from_name(name)
    except ValueError:
        valid = ", ".join(c.name.lower() for c in Category)
        _err.print(f"[red]Unknown category: {name}[/red]")
        _err.print(f"[dim]Available: {valid}[/dim]")
        raise SystemExit(1) from None


def _fmt_time(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "—"


def _print_scan_table(reports: list[ScanReport]) -> None:
    """Render one row per scanned category."""
    table = Table(
        title="Scan Results",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Category", style="bold")
    table.add_column("Pages", justify="right")
    table.add_column("Listings", justify="right")
    table.add_column("New", justify="right", style="green")
    table.add_column("Updated", justify="right")
    table.add_column("Closed skipped", justify="right", style="dim")
    table.add_column("Status", justify="center")

    for r in reports:
        status = (
            "[red]❌ ERRORS[/red]" if r.errors else "[green]✅ OK[/green]"
        )
        table.add_row(
            r.category,
            f"{r.pages_fetched}/{r.total_pages}",
            str(r.listings_seen),
            str(r.upsert.inserted),
            str(r.upsert.updated),
            str(r.upsert.skipped_closed),
            status,
        )

    Console().print(table)


def _print_reconcile_summary(report: ReconcileReport) -> None:
    colour = "red" if report.errors else "green"
    _err.print(
        f"[{colour}]Reconciled {report.candidates} candidates: "
        f"{report.closed} closed, {report.still_active} still active, "
        f"{report.refreshed} closing soon refreshed, "
        f"{len(report.errors)} errors[/{colour}]"
    )


def _print_errors(errors: list[str]) -> None:
    for error_msg in errors:
        _err.print(f"[red]Error: {error_msg}[/red]")


async def run_scan(category_name: str | None) -> int:
    """Scan one category, or every category; 1 if any page failed."""
    category = resolve_category(category_name)
    scanner = AuctionScanner()
    try:
        if category is None or category is Category.ALL:
            reports = await scanner.scan_all_categories()
        else:
            reports = [await scanner.scan_category(category)]
    finally:
        scanner.db.close()

    for r in reports:
        _print_errors(r.errors)
    _print_scan_table(reports)
    return 1 if any(r.errors for r in reports) else 0


async def run_reconcile() -> int:
    """Run one reconciliation pass."""
    scanner = AuctionScanner()
    try:
        report = await scanner.reconcile_closed_auctions()
    finally:
        scanner.db.close()

    _print_errors(report.errors)
    _print_reconcile_summary(report)
    return 1 if report.errors else 0


async def run_once() -> int:
    """Run a full scan followed by a reconciliation pass."""
    scanner = AuctionScanner()
    try:
        scans, reconcile = await scanner.run_once()
    finally:
        scanner.db.close()

    for r in scans:
        _print_errors(r.errors)
    _print_errors(reconcile.errors)
    _print_scan_table(scans)
    _print_reconcile_summary(reconcile)
    failed = any(r.errors for r in scans) or bool(reconcile.errors)
    return 1 if failed else 0


async def run_watch(listing_id: int, record: bool = False) -> int:
    """Print live price updates for one listing until interrupted.

    With *record*, the listing is tracked first and every update is
    stored as a price snapshot.
    """
    scanner = AuctionScanner()
    try:
        if record:
            listing = await scanner.track_listing(listing_id)
            if listing is None:
                _err.print(
                    f"[red]Listing {listing_id} could not be tracked[/red]"
                )
                return 1

        _err.print(
            f"[bold]Watching listing {listing_id}[/bold] "
            "[dim](Ctrl+C to stop)[/dim]"
        )
        stream = scanner.client.stream_live_updates(listing_id)
        console = Console()
        try:
            async for update in stream:
                console.print(
                    f"{_fmt_time(update.timestamp)}  "
                    f"[green]${update.current_price:,.2f}[/green]  "
                    f"{update.bid_count} bids"
                )
                if record:
                    await asyncio.to_thread(
                        scanner.db.record_snapshot,
                        update.product_id or listing_id,
                        update.current_price,
                        update.bid_count,
                        update.timestamp,
                    )
        finally:
            await stream.aclose()
    finally:
        scanner.db.close()

    _err.print(f"[dim]Stream for listing {listing_id} closed[/dim]")
    return 0


def run_history(listing_id: int) -> int:
    """Print the stored state and price history of one listing."""
    db = AuctionDB()
    try:
        listing = db.get_listing(listing_id)
        if listing is None:
            _err.print(f"[yellow]Listing {listing_id} is not stored.[/yellow]")
            return 1
        history = db.get_price_history(listing_id)
        summary = db.get_trend_summary(listing_id)
    finally:
        db.close()

    _err.print(
        f"[bold]{listing.title}[/bold] "
        f"[dim]({listing.state.value}, closes {_fmt_time(listing.close_time)}, "
        f"inventory {listing.inventory_number or '—'})[/dim]"
    )
    if listing.final_price:
        _err.print(f"[green]Final price: ${listing.final_price:,.2f}[/green]")

    table = Table(
        title=f"Price History for {listing_id}",
        show_lines=False,
        title_style="bold cyan",
    )
    table.add_column("Recorded", style="dim")
    table.add_column("Price", justify="right", style="green")
    table.add_column("Bids", justify="right")
    for snap in history:
        table.add_row(
            _fmt_time(snap.recorded_at),
            f"${snap.price:,.2f}",
            str(snap.bid_count),
        )
    Console().print(table)

    if summary:
        _err.print(
            f"[dim]min ${summary['min']:,.2f}  max ${summary['max']:,.2f}  "
            f"{summary['count']} snapshots[/dim]"
        )
    return 0
