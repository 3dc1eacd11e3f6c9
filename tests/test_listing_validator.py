# tests/test_listing_validator.py

"""Tests for ListingValidator."""

import unittest

from src.filters.listing_validator import ListingValidator
from src.models.auction import AuctionListing


def _l(listing_id: int = 1, title: str = "Desk Chair") -> AuctionListing:
    """Create a minimal AuctionListing."""
    return AuctionListing(id=listing_id, title=title)


class TestListingValidator(unittest.TestCase):
    """ListingValidator.validate unit tests."""

    def test_empty_list_returns_empty(self) -> None:
        valid, dropped = ListingValidator.validate([])
        self.assertEqual(valid, [])
        self.assertEqual(dropped, 0)

    def test_valid_listings_pass_through(self) -> None:
        valid, dropped = ListingValidator.validate([_l(1), _l(2)])
        self.assertEqual(len(valid), 2)
        self.assertEqual(dropped, 0)

    def test_zero_price_kept(self) -> None:
        """A fresh auction without bids is still valid."""
        valid, _ = ListingValidator.validate([_l(1)])
        self.assertEqual(valid[0].current_price, 0.0)

    def test_blank_title_dropped(self) -> None:
        valid, dropped = ListingValidator.validate([_l(1, "   "), _l(2)])
        self.assertEqual([v.id for v in valid], [2])
        self.assertEqual(dropped, 1)

    def test_non_positive_id_dropped(self) -> None:
        valid, dropped = ListingValidator.validate([_l(0), _l(-4), _l(3)])
        self.assertEqual([v.id for v in valid], [3])
        self.assertEqual(dropped, 2)


if __name__ == "__main__":
    unittest.main()
