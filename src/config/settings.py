# src/config/settings.py

"""Central configuration for the nellis_scanner service."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the nellis_scanner service."""

    # --- Endpoints ---
    BASE_URL: str = "https://www.nellisauction.com"
    SEARCH_URL: str = BASE_URL + "/search"
    SSE_URL: str = "https://sse.nellisauction.com/live-products"

    # --- Scraping ---
    REQUEST_DELAY: float = 2.0          # Seconds between requests
    REQUEST_TIMEOUT: int = 15           # Seconds before a request times out
    MAX_RETRIES: int = 3                # Retry count on transient failures
    PAGE_SIZE: int = 120                # Listings per search page
    MAX_PAGES: int = 5                  # Page cap per category scan
    DEFAULT_SORT: str = "retail_price_desc"
    DEFAULT_LOCATION: str = os.getenv(
        "NELLIS_LOCATION", "HOUSTON"
    )
    LOCATION_COOKIE_NAME: str = os.getenv(
        "NELLIS_LOCATION_COOKIE", "__session"
    )

    # --- Reconciliation ---
    RECONCILE_GRACE_MINUTES: int = 30   # Delay after close before HTML check
    CLOSING_SOON_MINUTES: int = 30      # Refresh window before close

    # --- Resilience ---
    CIRCUIT_BREAKER_THRESHOLD: int = 3  # Consecutive failures to trip
    CIRCUIT_BREAKER_COOLDOWN: float = 120.0  # Seconds before half-open
    MAX_DELAY_MULTIPLIER: int = 8       # Cap for adaptive backoff
    CAPTCHA_KEYWORDS: list[str] = [
        "captcha",
        "verify you are human",
        "unusual traffic",
        "automated requests",
    ]

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "en-US,en;q=0.9",
        "sec-ch-ua": (
            '"Google Chrome";v="131", '
            '"Chromium";v="131", '
            '"Not_A Brand";v="24"'
        ),
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
        "sec-fetch-dest": "document",
        "sec-fetch-mode": "navigate",
        "sec-fetch-site": "none",
        "sec-fetch-user": "?1",
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    LOGS_DIR: Path = BASE_DIR / "logs"
    AUCTION_DB_PATH: Path = Path(
        os.getenv(
            "NELLIS_DB_PATH",
            str(BASE_DIR / "data" / "auctions.db"),
        )
    )
