# src/scrapers/nellis_client.py

"""Client for nellisauction.com search, product data and product pages."""

import json
import re
import urllib.parse
from datetime import datetime, timezone
from typing import Any

from src.models.auction import (
    AuctionListing,
    ListingLocation,
    SearchPage,
)
from src.models.category import Category, Location
from src.models.price_snapshot import AuctionPriceSample
from src.models.wire_dates import decode_wire_date
from src.scrapers.base_scraper import BaseScraper
from src.scrapers.errors import (
    ListingNotFoundError,
    MalformedResponseError,
)
from src.scrapers.live_stream import LiveUpdateStream
from src.scrapers.price_page_parser import parse_price_page

_SLUG_STRIP_RE = re.compile(r"[^A-Za-z0-9\s-]")
_SLUG_SPACE_RE = re.compile(r"\s+")


def pagination_parameter(page_size: int, page_number: int) -> str:
    """Combined page-size/page-number value, e.g. ``s:120,n:3``."""
    return f"s:{page_size},n:{page_number}"


def slugify_title(title: str) -> str:
    """Build the human-readable URL segment from a listing title.

    Characters other than letters, digits, spaces and hyphens are
    dropped; runs of whitespace become single hyphens.
    """
    stripped = _SLUG_STRIP_RE.sub("", title or "").strip()
    return _SLUG_SPACE_RE.sub("-", stripped)


def build_search_params(
    category: Category,
    page_number: int,
    page_size: int,
    location: Location,
    sort_by: str,
) -> list[tuple[str, str]]:
    """Ordered query parameters for one search page (unencoded)."""
    params: list[tuple[str, str]] = [
        ("query", ""),
        ("sortBy", sort_by),
    ]
    if category.taxonomy:
        params.append(("Taxonomy Level 1", category.taxonomy))
    params.extend([
        ("Location Name", location.value),
        ("page", pagination_parameter(page_size, page_number)),
        ("_data", "routes/search"),
    ])
    return params


def _as_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def parse_listing(raw: Any) -> AuctionListing:
    """Decode one listing object from the search or product feed.

    Raises:
        MalformedResponseError: *raw* is not an object or has no id.
    """
    if not isinstance(raw, dict):
        raise MalformedResponseError(
            f"Listing is {type(raw).__name__}, expected object"
        )
    listing_id = _as_int(raw.get("id"))
    if listing_id <= 0:
        raise MalformedResponseError(
            f"Listing without a usable id: {raw.get('id')!r}"
        )

    location = ""
    loc_raw = raw.get("location")
    if isinstance(loc_raw, dict):
        location = str(ListingLocation(
            id=_as_int(loc_raw.get("id")),
            name=str(loc_raw.get("name") or ""),
            city=str(loc_raw.get("city") or ""),
            state=str(loc_raw.get("state") or ""),
            timezone=str(loc_raw.get("timezone") or ""),
        ))

    inventory = raw.get("inventoryNumber")
    return AuctionListing(
        id=listing_id,
        title=str(raw.get("title") or ""),
        retail_price=_as_float(raw.get("retailPrice")),
        current_price=_as_float(raw.get("currentPrice")),
        bid_count=_as_int(raw.get("bidCount")),
        open_time=decode_wire_date(raw.get("openTime")),
        close_time=decode_wire_date(raw.get("closeTime")),
        location=location,
        inventory_number=str(inventory).strip() if inventory else "",
        is_closed=bool(raw.get("isClosed", False)),
    )


class NellisClient(BaseScraper):
    """Marketplace client returning normalised domain objects.

    The search and product-data endpoints are Remix ``_data`` routes
    that answer with JSON.  Closure is read from the rendered product
    page, because the JSON feed is not reliable about it.
    """

    def __init__(self) -> None:
        super().__init__("nellis")
        self.base_url = self.settings.BASE_URL

    def _get_homepage(self) -> str:
        """Return the marketplace homepage URL."""
        return self.base_url + "/"

    def _location(self, location: Location | None = None) -> Location:
        return location or Location.from_name(self.settings.DEFAULT_LOCATION)

    def _json_headers(
        self, location: Location | None = None,
    ) -> dict[str, str]:
        cookie = urllib.parse.quote(self._location(location).cookie, safe="")
        return {
            **self.settings.DEFAULT_HEADERS,
            "Referer": self._get_homepage(),
            "Accept": "application/json",
            "Cookie": f"{self.settings.LOCATION_COOKIE_NAME}={cookie}",
            "sec-fetch-dest": "empty",
            "sec-fetch-mode": "cors",
            "sec-fetch-site": "same-origin",
        }

    def _decode_json(self, text: str, url: str) -> Any:
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedResponseError(
                f"Non-JSON body from {url}: {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search_url(
        self,
        category: Category,
        page_number: int = 0,
        page_size: int | None = None,
        location: Location | None = None,
        sort_by: str | None = None,
    ) -> str:
        """Full search URL for one page of a category."""
        params = build_search_params(
            category,
            page_number,
            page_size or self.settings.PAGE_SIZE,
            self._location(location),
            sort_by or self.settings.DEFAULT_SORT,
        )
        return (
            f"{self.settings.SEARCH_URL}?"
            f"{urllib.parse.urlencode(params)}"
        )

    def fetch_listings(
        self,
        category: Category,
        page_number: int = 0,
        page_size: int | None = None,
        location: Location | None = None,
        sort_by: str | None = None,
    ) -> SearchPage:
        """Fetch one page of search results for *category*.

        Raises:
            TransientFetchError: network/5xx after retries.
            MalformedResponseError: body is not the expected JSON shape.
        """
        url = self.search_url(
            category, page_number, page_size, location, sort_by
        )
        self.logger.info(
            "[nellis] Fetching %s page %d",
            category.display_name,
            page_number,
        )
        self._wait()
        resp = self._fetch_get(url, self._json_headers(location))
        data = self._decode_json(resp.text, url)

        if not isinstance(data, dict):
            raise MalformedResponseError(
                f"Search response is {type(data).__name__}, expected object"
            )
        products = data.get("products")
        if not isinstance(products, list):
            raise MalformedResponseError(
                "Search response has no 'products' array"
            )
        algolia = data.get("algolia")
        paging: dict[str, Any] = algolia if isinstance(algolia, dict) else {}

        listings: list[AuctionListing] = []
        for raw in products:
            try:
                listings.append(parse_listing(raw))
            except MalformedResponseError as exc:
                self.logger.warning(
                    "[nellis] Skipping listing on %s page %d: %s",
                    category.display_name,
                    page_number,
                    exc,
                )

        return SearchPage(
            listings=listings,
            page=_as_int(paging.get("page", page_number)),
            total_pages=_as_int(paging.get("nbPages")),
            total_hits=_as_int(
                paging.get("nbHits", data.get("searchResultsCount"))
            ),
        )

    # ------------------------------------------------------------------
    # Product data / page
    # ------------------------------------------------------------------

    def fetch_listing_detail(self, listing_id: int) -> AuctionListing:
        """Look up a single listing by id.

        Raises:
            ListingNotFoundError: the id does not exist upstream.
        """
        url = f"{self.base_url}/p/{listing_id}/_data"
        self.logger.info(
            "[nellis] Fetching product data for %d", listing_id
        )
        self._wait()
        resp = self._fetch_get(
            url, self._json_headers(), passthrough=(404,)
        )
        if resp.status_code == 404:
            raise ListingNotFoundError(listing_id)
        data = self._decode_json(resp.text, url)
        if isinstance(data, dict) and isinstance(data.get("product"), dict):
            data = data["product"]
        if data is None:
            raise ListingNotFoundError(listing_id)
        return parse_listing(data)

    def product_page_url(self, listing_id: int, title_hint: str = "") -> str:
        """``/p/{slug}/{id}``, or ``/p/{id}`` when there is no usable title."""
        slug = slugify_title(title_hint)
        if slug:
            return f"{self.base_url}/p/{slug}/{listing_id}"
        return f"{self.base_url}/p/{listing_id}"

    def fetch_price_and_state(
        self, listing_id: int, title_hint: str = "",
    ) -> AuctionPriceSample:
        """Read price, state and inventory number from the product page.

        Only an HTTP failure raises; fields the page does not yield are
        left at their zero values.
        """
        url = self.product_page_url(listing_id, title_hint)
        self.logger.info(
            "[nellis] Fetching product page for %d", listing_id
        )
        html = self._get_page(url)
        sample = parse_price_page(
            html, listing_id, retrieved_at=datetime.now(timezone.utc)
        )
        self.logger.debug(
            "[nellis] Listing %d page says %s at %.2f (inventory=%s)",
            listing_id,
            sample.state.value,
            sample.price,
            sample.inventory_number or "-",
        )
        return sample

    # ------------------------------------------------------------------
    # Live updates
    # ------------------------------------------------------------------

    def stream_live_updates(self, listing_id: int) -> LiveUpdateStream:
        """Open a lazy, single-use stream of price updates for a listing."""
        return LiveUpdateStream(
            listing_id,
            base_url=self.settings.SSE_URL,
            impersonate=self.settings.IMPERSONATE_BROWSER,
        )
