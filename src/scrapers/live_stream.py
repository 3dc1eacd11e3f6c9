# src/scrapers/live_stream.py

"""Server-sent live price updates for a single listing.

A :class:`LiveUpdateStream` is lazy and single-use::

    stream = client.stream_live_updates(50504133)
    async for update in stream:
        ...

It moves ``CONNECTING -> STREAMING -> CLOSED``.  Cancellation, the
server ending the stream, and a connection failure all land in
``CLOSED``; the iterator simply stops, nothing is raised to the
caller (task cancellation still propagates).
"""

import json
import logging
from collections.abc import AsyncIterator
from enum import Enum
from typing import Any

from curl_cffi.requests import AsyncSession, BrowserTypeLiteral

from src.models.price_snapshot import PriceUpdate
from src.models.wire_dates import decode_wire_date

logger = logging.getLogger("nellis_scanner.live_stream")

DATA_PREFIX = "data:"
# Payloads the server sends to keep the connection open
_KEEPALIVE_PREFIXES: tuple[str, ...] = ("connected",)
_KEEPALIVE_PAYLOADS: frozenset[str] = frozenset({"ping"})


class StreamState(str, Enum):
    """Lifecycle of a live update stream."""

    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSED = "closed"


def _field(data: dict[str, Any], *names: str) -> Any:
    """First present key among camelCase / PascalCase spellings."""
    for name in names:
        if name in data:
            return data[name]
    return None


def parse_event_line(line: str | bytes) -> PriceUpdate | None:
    """Decode one event-stream line into a :class:`PriceUpdate`.

    Returns ``None`` for anything that should not be emitted: lines
    without the ``data:`` prefix, keepalive payloads, and payloads that
    are not a JSON object.  Bad JSON is logged.
    """
    text = line.decode("utf-8", errors="replace") if isinstance(line, bytes) else line
    text = text.rstrip("\r\n")
    if not text.startswith(DATA_PREFIX):
        return None

    payload = text[len(DATA_PREFIX):].strip()
    if (
        not payload
        or payload in _KEEPALIVE_PAYLOADS
        or payload.startswith(_KEEPALIVE_PREFIXES)
    ):
        return None

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        logger.error(
            "Error deserializing product update %r: %s", payload, exc
        )
        return None
    if not isinstance(data, dict):
        logger.error("Product update is not an object: %r", payload)
        return None

    try:
        return PriceUpdate(
            product_id=int(_field(data, "productId", "ProductId") or 0),
            current_price=float(
                _field(data, "currentPrice", "CurrentPrice") or 0
            ),
            bid_count=int(_field(data, "bidCount", "BidCount") or 0),
            timestamp=decode_wire_date(_field(data, "timestamp", "Timestamp")),
        )
    except (TypeError, ValueError) as exc:
        logger.error(
            "Product update has unusable fields %r: %s", payload, exc
        )
        return None


async def _no_updates() -> AsyncIterator[PriceUpdate]:
    return
    yield  # pragma: no cover


class LiveUpdateStream:
    """Lazy, cancellable, non-restartable stream of :class:`PriceUpdate`."""

    def __init__(
        self,
        listing_id: int,
        base_url: str,
        impersonate: BrowserTypeLiteral = "chrome131",
    ) -> None:
        self.listing_id = listing_id
        self.url = f"{base_url}?productId={listing_id}"
        self._impersonate = impersonate
        self.state = StreamState.CONNECTING
        self._iterator: Any = None

    def __aiter__(self) -> AsyncIterator[PriceUpdate]:
        if self._iterator is not None or self.state is StreamState.CLOSED:
            return _no_updates()
        self._iterator = self._run()
        return self._iterator

    async def aclose(self) -> None:
        """Stop the stream and release the connection."""
        if self._iterator is not None:
            await self._iterator.aclose()
        self.state = StreamState.CLOSED

    async def _run(self) -> AsyncIterator[PriceUpdate]:
        session: Any = None
        resp: Any = None
        try:
            logger.info(
                "Monitoring updates for listing %d", self.listing_id
            )
            try:
                session = AsyncSession(impersonate=self._impersonate)
                resp = await session.get(
                    self.url,
                    headers={
                        "Accept": "text/event-stream",
                        "Cache-Control": "no-cache",
                    },
                    stream=True,
                    timeout=None,
                )
                if resp.status_code != 200:
                    logger.error(
                        "Live stream for listing %d answered HTTP %d",
                        self.listing_id,
                        resp.status_code,
                    )
                    return
            except Exception as exc:
                logger.error(
                    "Error connecting to live stream for listing %d: %s",
                    self.listing_id,
                    exc,
                    exc_info=True,
                )
                return

            self.state = StreamState.STREAMING
            try:
                async for raw in resp.aiter_lines():
                    update = parse_event_line(raw)
                    if update is not None:
                        yield update
            except Exception as exc:
                logger.error(
                    "Live stream for listing %d dropped: %s",
                    self.listing_id,
                    exc,
                    exc_info=True,
                )
            else:
                logger.info(
                    "Live stream for listing %d ended", self.listing_id
                )
        finally:
            self.state = StreamState.CLOSED
            await self._release(resp, session)

    async def _release(self, resp: Any, session: Any) -> None:
        try:
            if resp is not None:
                await resp.aclose()
            if session is not None:
                await session.close()
        except Exception as exc:
            logger.debug(
                "Error closing live stream for listing %d: %s",
                self.listing_id,
                exc,
            )
