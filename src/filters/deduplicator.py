# src/filters/deduplicator.py

"""Listing de-duplication across the pages of one category scan."""

import logging

from src.models.auction import AuctionListing

logger = logging.getLogger("nellis_scanner.filters")


class ListingDeduplicator:
    """Collapse repeated listing ids into a single row.

    Search results shift while a scan pages through them (new bids
    reorder a price-sorted list), so the same listing can show up on
    two pages.
    """

    @staticmethod
    def _freshness(listing: AuctionListing) -> tuple[int, float]:
        """Ordering key: more bids, then a higher price, is newer data."""
        return listing.bid_count, listing.current_price

    @staticmethod
    def deduplicate(
        listings: list[AuctionListing],
    ) -> tuple[list[AuctionListing], int]:
        """Keep one listing per id, preferring the freshest sighting.

        Ties go to the later sighting.  First-seen order is preserved.
        Returns the deduplicated list and the count of removed dupes.
        """
        if not listings:
            return [], 0

        index_by_id: dict[int, int] = {}
        kept: list[AuctionListing] = []
        removed = 0

        for listing in listings:
            existing_idx = index_by_id.get(listing.id)
            if existing_idx is None:
                index_by_id[listing.id] = len(kept)
                kept.append(listing)
                continue

            removed += 1
            if ListingDeduplicator._freshness(
                listing
            ) >= ListingDeduplicator._freshness(kept[existing_idx]):
                kept[existing_idx] = listing

        if removed:
            logger.info(
                "Deduplication removed %d repeated listings",
                removed,
            )

        return kept, removed
