# src/services/auction_scanner.py

"""Scan-and-reconcile orchestration for Nellis auction listings."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from src.config.settings import Settings
from src.filters.deduplicator import ListingDeduplicator
from src.filters.listing_validator import ListingValidator
from src.models.auction import AuctionListing
from src.models.category import Category
from src.models.price_snapshot import AuctionPriceSample
from src.scrapers.errors import ListingNotFoundError, NellisError
from src.scrapers.nellis_client import NellisClient
from src.storage.auction_db import AuctionDB, UpsertResult

logger = logging.getLogger("nellis_scanner.scanner")


@dataclass
class ScanReport:
    """Outcome of scanning one category."""

    category: str
    total_pages: int = 0
    pages_fetched: int = 0
    listings_seen: int = 0
    invalid_count: int = 0
    deduplicated_count: int = 0
    upsert: UpsertResult = field(default_factory=UpsertResult)
    errors: list[str] = field(
        default_factory=lambda: list[str]()
    )


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation pass."""

    candidates: int = 0
    closed: int = 0
    still_active: int = 0
    refreshed: int = 0
    errors: list[str] = field(
        default_factory=lambda: list[str]()
    )


@dataclass
class RefreshReport:
    """Outcome of one closing-soon refresh pass."""

    candidates: int = 0
    refreshed: int = 0
    closed: int = 0
    errors: list[str] = field(
        default_factory=lambda: list[str]()
    )


class AuctionScanner:
    """Turns marketplace listings into consistent stored state.

    Every public coroutine is safe to call from a scheduler with no
    arguments: failures are logged and reported, never raised.
    Blocking client and database calls run in worker threads, one at
    a time, so cancelling the task stops further network calls while
    writes already made stay in place.
    """

    def __init__(
        self,
        client: NellisClient | None = None,
        db: AuctionDB | None = None,
    ) -> None:
        self.settings = Settings()
        self.client = client or NellisClient()
        self.db = db or AuctionDB()

    # ── Write path ───────────────────────────────────────

    @staticmethod
    def _prepare(
        listings: list[AuctionListing],
    ) -> tuple[list[AuctionListing], int, int]:
        """Validated, de-duplicated batch plus the dropped counts."""
        valid, invalid = ListingValidator.validate(listings)
        unique, dupes = ListingDeduplicator.deduplicate(valid)
        return unique, invalid, dupes

    async def upsert_listings(
        self,
        listings: list[AuctionListing],
        category_name: str = "",
    ) -> UpsertResult:
        """Validate, de-duplicate and upsert one batch in one transaction."""
        unique, _, _ = self._prepare(listings)
        if not unique:
            return UpsertResult()
        result: UpsertResult = await asyncio.to_thread(
            self.db.upsert_listings, unique, category_name,
        )
        return result

    # ── Scanning ─────────────────────────────────────────

    async def scan_category(self, category: Category) -> ScanReport:
        """Fetch up to MAX_PAGES pages of *category* and upsert them once.

        Pages are fetched in order and aggregated before a single
        upsert.  A failed page is logged and skipped; a failed first
        page ends the scan of this category.
        """
        report = ScanReport(category=category.display_name)
        logger.info("Starting scan of %s auctions", category.display_name)
        try:
            collected: list[AuctionListing] = []
            try:
                first = await asyncio.to_thread(
                    self.client.fetch_listings,
                    category,
                    0,
                    self.settings.PAGE_SIZE,
                )
            except NellisError as exc:
                report.errors.append(f"page 0: {exc}")
                logger.error(
                    "Error fetching %s page 0: %s",
                    category.display_name,
                    exc,
                )
                return report

            report.pages_fetched = 1
            report.total_pages = first.total_pages
            collected.extend(first.listings)

            last_page = min(first.total_pages, self.settings.MAX_PAGES)
            for page in range(1, last_page):
                try:
                    result = await asyncio.to_thread(
                        self.client.fetch_listings,
                        category,
                        page,
                        self.settings.PAGE_SIZE,
                    )
                except NellisError as exc:
                    report.errors.append(f"page {page}: {exc}")
                    logger.error(
                        "Error fetching %s page %d: %s",
                        category.display_name,
                        page,
                        exc,
                    )
                    continue
                report.pages_fetched += 1
                collected.extend(result.listings)

            report.listings_seen = len(collected)
            unique, report.invalid_count, report.deduplicated_count = (
                self._prepare(collected)
            )
            if unique:
                report.upsert = await asyncio.to_thread(
                    self.db.upsert_listings, unique, category.display_name,
                )
            logger.info(
                "Completed scan of %s auctions: %d pages, %d listings",
                category.display_name,
                report.pages_fetched,
                report.listings_seen,
            )
        except Exception as exc:
            report.errors.append(str(exc))
            logger.error(
                "Error scanning %s auctions: %s",
                category.display_name,
                exc,
                exc_info=True,
            )
        return report

    async def scan_all_categories(self) -> list[ScanReport]:
        """Scan every concrete category in turn."""
        start = time.monotonic()
        reports: list[ScanReport] = []
        for category in Category:
            if category is Category.ALL:
                continue
            reports.append(await self.scan_category(category))

        failed = sum(1 for r in reports if r.errors)
        logger.info(
            "Scanned %d categories in %.1fs (%d with errors)",
            len(reports),
            time.monotonic() - start,
            failed,
        )
        return reports

    # ── Reconciliation ───────────────────────────────────

    async def _apply_product_page(
        self, listing: AuctionListing,
    ) -> tuple[AuctionPriceSample, bool]:
        """Read the product page of *listing* and store what it says."""
        sample: AuctionPriceSample = await asyncio.to_thread(
            self.client.fetch_price_and_state,
            listing.id,
            listing.title,
        )
        closed: bool = await asyncio.to_thread(
            self.db.apply_price_sample,
            sample,
            listing.title,
        )
        return sample, closed

    async def refresh_closing_soon(self) -> RefreshReport:
        """Refresh current price and inventory of listings about to close.

        Scans run hours apart, so the last stretch of an auction would
        otherwise have no price history.  A page that already shows the
        auction closed is applied as such.
        """
        report = RefreshReport()
        try:
            candidates: list[AuctionListing] = await asyncio.to_thread(
                self.db.find_closing_soon,
                self.settings.CLOSING_SOON_MINUTES,
                datetime.now(timezone.utc),
            )
            report.candidates = len(candidates)
            logger.info(
                "Found %d auctions closing within %d minutes",
                report.candidates,
                self.settings.CLOSING_SOON_MINUTES,
            )

            for listing in candidates:
                try:
                    sample, closed = await self._apply_product_page(listing)
                except NellisError as exc:
                    report.errors.append(f"listing {listing.id}: {exc}")
                    logger.error(
                        "Error refreshing auction %d: %s", listing.id, exc,
                    )
                    continue
                except Exception as exc:
                    report.errors.append(f"listing {listing.id}: {exc}")
                    logger.error(
                        "Error refreshing auction %d: %s",
                        listing.id,
                        exc,
                        exc_info=True,
                    )
                    continue

                if closed:
                    report.closed += 1
                else:
                    report.refreshed += 1
                    logger.debug(
                        "Refreshed auction %d at %.2f",
                        listing.id,
                        sample.price,
                    )
        except Exception as exc:
            report.errors.append(str(exc))
            logger.error(
                "Error refreshing closing auctions: %s",
                exc,
                exc_info=True,
            )
        return report

    async def reconcile_closed_auctions(self) -> ReconcileReport:
        """Confirm state and final price of overdue active listings.

        Listings closing soon are refreshed first.  Then active listings
        whose close time is more than the grace period in the past get
        the product page's reading applied.  This is the only path that
        closes a listing.
        """
        report = ReconcileReport()
        refresh = await self.refresh_closing_soon()
        report.refreshed = refresh.refreshed
        report.closed = refresh.closed
        report.errors.extend(refresh.errors)
        try:
            candidates: list[AuctionListing] = await asyncio.to_thread(
                self.db.find_reconcile_candidates,
                self.settings.RECONCILE_GRACE_MINUTES,
                datetime.now(timezone.utc),
            )
            report.candidates = len(candidates)
            logger.info(
                "Found %d potentially closed auctions to reconcile",
                report.candidates,
            )

            for listing in candidates:
                try:
                    sample, closed = await self._apply_product_page(listing)
                except NellisError as exc:
                    report.errors.append(f"listing {listing.id}: {exc}")
                    logger.error(
                        "Error reconciling auction %d: %s",
                        listing.id,
                        exc,
                    )
                    continue
                except Exception as exc:
                    report.errors.append(f"listing {listing.id}: {exc}")
                    logger.error(
                        "Error reconciling auction %d: %s",
                        listing.id,
                        exc,
                        exc_info=True,
                    )
                    continue

                if closed:
                    report.closed += 1
                    if not sample.price:
                        logger.warning(
                            "Auction %d closed but its final price "
                            "was not found on the page",
                            listing.id,
                        )
                    logger.info(
                        "Updated closed auction %d with final price %.2f",
                        listing.id,
                        sample.price,
                    )
                else:
                    report.still_active += 1

            logger.info(
                "Completed reconciliation: %d closed, %d still active, "
                "%d errors",
                report.closed,
                report.still_active,
                len(report.errors),
            )
        except Exception as exc:
            report.errors.append(str(exc))
            logger.error(
                "Error reconciling closed auctions: %s",
                exc,
                exc_info=True,
            )
        return report

    # ── One-off helpers ──────────────────────────────────

    async def track_listing(self, listing_id: int) -> AuctionListing | None:
        """Fetch one listing by id and store it.

        Returns the stored listing, or None if it does not exist
        upstream or could not be fetched.
        """
        try:
            listing = await asyncio.to_thread(
                self.client.fetch_listing_detail, listing_id,
            )
        except ListingNotFoundError:
            logger.warning("Listing %d does not exist", listing_id)
            return None
        except NellisError as exc:
            logger.error(
                "Error fetching listing %d: %s", listing_id, exc,
            )
            return None
        await self.upsert_listings([listing])
        return await asyncio.to_thread(self.db.get_listing, listing_id)

    async def run_once(self) -> tuple[list[ScanReport], ReconcileReport]:
        """Scan everything, then refresh and reconcile (both jobs, once)."""
        scans = await self.scan_all_categories()
        reconcile = await self.reconcile_closed_auctions()
        return scans, reconcile
