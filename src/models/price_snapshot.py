# src/models/price_snapshot.py

"""Point-in-time price observations for auction listings."""

from dataclasses import dataclass
from datetime import datetime

from src.models.auction import AuctionState


@dataclass
class PriceSnapshot:
    """A stored price/bid observation for a listing.  Append-only."""

    listing_id: int
    price: float
    bid_count: int
    recorded_at: datetime


@dataclass
class AuctionPriceSample:
    """Result of reading a listing's rendered product page.

    Fields the page did not yield stay at their zero value.
    """

    listing_id: int
    price: float = 0.0
    state: AuctionState = AuctionState.ACTIVE
    inventory_number: str = ""
    retrieved_at: datetime | None = None


@dataclass
class PriceUpdate:
    """A single push from the live-updates stream."""

    product_id: int
    current_price: float
    bid_count: int
    timestamp: datetime | None = None
