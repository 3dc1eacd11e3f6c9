# src/models/auction.py

"""Auction listing and inventory data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class AuctionState(str, Enum):
    """Lifecycle state of a listing.  ``CLOSED`` is terminal."""

    ACTIVE = "active"
    CLOSED = "closed"


@dataclass
class ListingLocation:
    """Pickup location attached to a listing in the search feed."""

    id: int = 0
    name: str = ""
    city: str = ""
    state: str = ""
    timezone: str = ""

    def __str__(self) -> str:
        if self.city and self.state:
            return f"{self.city}, {self.state}"
        return self.name or self.city


@dataclass
class AuctionListing:
    """One auction instance, keyed by the marketplace's listing id.

    ``is_closed`` is the search feed's own flag.  It is kept for
    logging only; ``state`` and ``final_price`` are owned by
    reconciliation.
    """

    id: int
    title: str
    retail_price: float = 0.0
    current_price: float = 0.0
    final_price: float = 0.0
    bid_count: int = 0
    open_time: datetime | None = None
    close_time: datetime | None = None
    last_updated: datetime | None = None
    location: str = ""
    state: AuctionState = AuctionState.ACTIVE
    inventory_number: str = ""
    is_closed: bool = False


@dataclass
class InventoryItem:
    """A physical good that may be re-auctioned under several listings."""

    inventory_number: str
    description: str = ""
    category_name: str = ""
    first_seen: datetime | None = None
    last_seen: datetime | None = None


@dataclass
class SearchPage:
    """One page of search results plus the feed's paging counters."""

    listings: list[AuctionListing] = field(
        default_factory=lambda: list[AuctionListing]()
    )
    page: int = 0
    total_pages: int = 0
    total_hits: int = 0
