# src/scrapers/price_page_parser.py

"""Price, state and inventory extraction from a rendered product page.

The product page markup is third-party and changes without notice, so
everything that depends on it lives here behind one function,
:func:`parse_price_page`.  Matching works on visible text rather than
class names or attribute order, with a raw-text regex as a second try.

A pattern that does not match leaves its field at the zero value and
logs an extraction miss at DEBUG; nothing in here raises.
"""

import logging
import re
from datetime import datetime, timezone

from bs4 import BeautifulSoup, NavigableString

from src.models.auction import AuctionState
from src.models.price_snapshot import AuctionPriceSample

logger = logging.getLogger("nellis_scanner.price_page")

_ENDED_RE = re.compile(r"\bEnded\b")
_WON_FOR_RE = re.compile(r"\bwon\s+for\b", re.IGNORECASE)
_CURRENT_PRICE_RE = re.compile(r"current\s+price", re.IGNORECASE)
_INVENTORY_LABEL_RE = re.compile(r"inventory\s+number", re.IGNORECASE)
_RETAIL_RE = re.compile(r"\bretail\b", re.IGNORECASE)

_PRICE_RE = re.compile(r"\$\s*(\d[\d,]*(?:\.\d{1,2})?)")
_INVENTORY_VALUE_RE = re.compile(r"\b(\d{4,})\b")
_CENTS_RE = re.compile(r"^\.\d{1,2}$")
_AMOUNT_PART_RE = re.compile(r"^\d[\d,]*(?:\.\d{1,2})?$")

# How many text nodes after a label are searched for its value
_LOOKAHEAD = 25
# Most text nodes one amount is split across ("$", "1,651", ".00")
_MAX_AMOUNT_NODES = 3


def _raw_price_re(label: str) -> re.Pattern[str]:
    """Raw-markup fallback: label, then the first amount before any "retail"."""
    return re.compile(
        label
        + r"(?:(?!retail).){0,600}?\$\s*(?:<[^>]+>\s*)*(\d[\d,]*(?:\.\d{1,2})?)",
        re.IGNORECASE | re.DOTALL,
    )


_RAW_WON_FOR_PRICE_RE = _raw_price_re(r"won\s+for")
_RAW_ENDED_PRICE_RE = _raw_price_re(r"\bEnded\b")
_RAW_CURRENT_PRICE_RE = _raw_price_re(r"current\s+price")
_RAW_INVENTORY_RE = re.compile(
    r"inventory\s+number.{0,300}?>\s*#?\s*(\d{4,})\s*<",
    re.IGNORECASE | re.DOTALL,
)


def parse_price(text: str | None) -> float:
    """Parse ``'$1,651.00'``-style text into a float (0.0 if unparseable)."""
    if not text:
        return 0.0
    cleaned = text.replace("$", "").replace(",", "").strip()
    match = re.search(r"\d+(?:\.\d+)?", cleaned)
    if not match:
        return 0.0
    try:
        return round(float(match.group(0)), 2)
    except ValueError:
        return 0.0


def _visible_strings(soup: BeautifulSoup) -> list[NavigableString]:
    """All non-blank text nodes outside script/style/noscript."""
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    return [
        s for s in soup.find_all(string=True)
        if isinstance(s, NavigableString) and s.strip()
    ]


def _value_after(
    strings: list[NavigableString],
    label_re: re.Pattern[str],
    value_re: re.Pattern[str],
) -> str:
    """Find *label_re*, then the first *value_re* match at or after it."""
    for idx, node in enumerate(strings):
        label = label_re.search(node)
        if not label:
            continue
        # Same node first ("Won For $1,651"), then the following nodes
        tail = str(node)[label.end():]
        found = value_re.search(tail)
        if found:
            return found.group(1)
        for nxt in strings[idx + 1: idx + 1 + _LOOKAHEAD]:
            found = value_re.search(nxt)
            if found:
                return found.group(1)
    return ""


def _amount_at(strings: list[NavigableString], idx: int) -> tuple[str, int]:
    """Text of the amount starting at ``strings[idx]`` and the nodes used.

    Rendered prices are often split across sibling elements, e.g.
    ``<span>$</span><span>219</span>``, so following nodes holding only
    digits are joined on until the text reads as a whole amount.
    """
    text = str(strings[idx]).strip()
    used = 1
    while idx + used < len(strings) and used < _MAX_AMOUNT_NODES:
        nxt = str(strings[idx + used]).strip()
        complete = _PRICE_RE.search(text)
        if complete and not _CENTS_RE.match(nxt):
            break
        if not complete and not _AMOUNT_PART_RE.match(nxt):
            break
        text += nxt
        used += 1
    return text, used


def _price_after(
    strings: list[NavigableString], label_re: re.Pattern[str],
) -> str:
    """First dollar amount after *label_re* that is not a retail price."""
    for idx, node in enumerate(strings):
        label = label_re.search(node)
        if not label:
            continue
        # Same node first ("Won For $1,651")
        tail = str(node)[label.end():]
        found = _PRICE_RE.search(tail)
        if found and not _RETAIL_RE.search(tail[:found.start()]):
            return found.group(1)

        skip_next = False
        pos = idx + 1
        end = min(len(strings), idx + 1 + _LOOKAHEAD)
        while pos < end:
            text = str(strings[pos])
            if _RETAIL_RE.search(text):
                # Retail amount is in this node or the next one
                skip_next = not _PRICE_RE.search(text)
                pos += 1
                continue
            if "$" not in text:
                pos += 1
                continue
            amount, used = _amount_at(strings, pos)
            pos += used
            found = _PRICE_RE.search(amount)
            if not found:
                continue
            if skip_next:
                skip_next = False
                continue
            return found.group(1)
    return ""


def _raw_price(html: str, *patterns: re.Pattern[str]) -> str:
    for pattern in patterns:
        found = pattern.search(html)
        if found:
            return found.group(1)
    return ""


def parse_price_page(
    html: str,
    listing_id: int,
    retrieved_at: datetime | None = None,
) -> AuctionPriceSample:
    """Extract an :class:`AuctionPriceSample` from product page HTML.

    1. A "Won For" or "Ended" marker means the auction is closed. The
       final price is the amount after "Won For", or after "Ended" when
       no "Won For" amount exists. Retail prices are skipped.
    2. Otherwise the auction is active and the price after the
       "CURRENT PRICE" label is the current price.
    3. The "Inventory Number" field is read either way.
    """
    sample = AuctionPriceSample(
        listing_id=listing_id,
        retrieved_at=retrieved_at or datetime.now(timezone.utc),
    )
    if not html:
        logger.debug("Empty product page for listing %d", listing_id)
        return sample

    soup = BeautifulSoup(html, "lxml")
    strings = _visible_strings(soup)

    if any(_WON_FOR_RE.search(s) or _ENDED_RE.search(s) for s in strings):
        sample.state = AuctionState.CLOSED
        price_text = (
            _price_after(strings, _WON_FOR_RE)
            or _price_after(strings, _ENDED_RE)
            or _raw_price(html, _RAW_WON_FOR_PRICE_RE, _RAW_ENDED_PRICE_RE)
        )
    else:
        price_text = _price_after(
            strings, _CURRENT_PRICE_RE
        ) or _raw_price(html, _RAW_CURRENT_PRICE_RE)

    sample.price = parse_price(price_text)
    if not sample.price:
        logger.debug(
            "Extraction miss: no %s price on page for listing %d",
            sample.state.value,
            listing_id,
        )

    inventory = _value_after(
        strings, _INVENTORY_LABEL_RE, _INVENTORY_VALUE_RE
    )
    if not inventory:
        raw = _RAW_INVENTORY_RE.search(html)
        inventory = raw.group(1) if raw else ""
    if inventory:
        sample.inventory_number = inventory
    else:
        logger.debug(
            "Extraction miss: no inventory number for listing %d",
            listing_id,
        )

    return sample
