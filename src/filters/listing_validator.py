# src/filters/listing_validator.py

"""Listing validation: drop unusable rows before they reach storage."""

import logging

from src.models.auction import AuctionListing

logger = logging.getLogger("nellis_scanner.filters")


class ListingValidator:
    """Validate listings and drop those missing essential fields."""

    @staticmethod
    def validate(
        listings: list[AuctionListing],
    ) -> tuple[list[AuctionListing], int]:
        """Drop listings with a non-positive id or a blank title.

        Zero prices are kept: a fresh auction legitimately has no bids.
        Returns the valid listings and the count of dropped items.
        """
        valid: list[AuctionListing] = []
        dropped = 0

        for listing in listings:
            if listing.id <= 0:
                logger.debug(
                    "Dropped listing with invalid id %r (title=%s)",
                    listing.id,
                    listing.title,
                )
                dropped += 1
                continue
            if not listing.title.strip():
                logger.debug(
                    "Dropped listing %d with empty title",
                    listing.id,
                )
                dropped += 1
                continue
            valid.append(listing)

        if dropped:
            logger.info(
                "Validation dropped %d invalid listings",
                dropped,
            )

        return valid, dropped
