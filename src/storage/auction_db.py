# src/storage/auction_db.py

"""SQLite-backed store for auction listings, inventory and price history."""

import logging
import sqlite3
import threading
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from src.config.settings import Settings
from src.models.auction import AuctionListing, AuctionState, InventoryItem
from src.models.price_snapshot import AuctionPriceSample, PriceSnapshot

logger = logging.getLogger("nellis_scanner.auction_db")

# Stay well under SQLite's bound-parameter limit for IN (...) lookups
_IN_CHUNK = 500

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS inventory (
    inventory_number TEXT    PRIMARY KEY,
    description      TEXT    NOT NULL DEFAULT '',
    category_name    TEXT    NOT NULL DEFAULT '',
    first_seen       TEXT    NOT NULL,
    last_seen        TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS auctions (
    id               INTEGER PRIMARY KEY,
    title            TEXT    NOT NULL DEFAULT '',
    inventory_number TEXT
                     REFERENCES inventory(inventory_number),
    retail_price     REAL    NOT NULL DEFAULT 0,
    current_price    REAL    NOT NULL DEFAULT 0,
    final_price      REAL    NOT NULL DEFAULT 0,
    bid_count        INTEGER NOT NULL DEFAULT 0,
    state            TEXT    NOT NULL DEFAULT 'active'
                     CHECK (state IN ('active', 'closed')),
    open_time        TEXT,
    close_time       TEXT,
    last_updated     TEXT    NOT NULL,
    location         TEXT    NOT NULL DEFAULT ''
);

CREATE INDEX IF NOT EXISTS idx_auctions_close_time
    ON auctions(close_time);

CREATE INDEX IF NOT EXISTS idx_auctions_state_close
    ON auctions(state, close_time);

CREATE INDEX IF NOT EXISTS idx_auctions_inventory
    ON auctions(inventory_number);

CREATE TABLE IF NOT EXISTS price_snapshots (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    listing_id  INTEGER NOT NULL
                REFERENCES auctions(id) ON DELETE CASCADE,
    price       REAL    NOT NULL,
    bid_count   INTEGER NOT NULL DEFAULT 0,
    recorded_at TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_snapshots_listing_date
    ON price_snapshots(listing_id, recorded_at);
"""

_AUCTION_COLUMNS: tuple[str, ...] = (
    "id", "title", "inventory_number", "retail_price",
    "current_price", "final_price", "bid_count", "state",
    "open_time", "close_time", "last_updated", "location",
)

# Owned by reconciliation, never touched by a scan
_AUCTION_PROTECTED: frozenset[str] = frozenset({"final_price", "state"})

_AUCTION_OVERRIDES: dict[str, str] = {
    "inventory_number": (
        "COALESCE(excluded.inventory_number, auctions.inventory_number)"
    ),
    "open_time": "COALESCE(auctions.open_time, excluded.open_time)",
}

_INVENTORY_COLUMNS: tuple[str, ...] = (
    "inventory_number", "description", "category_name",
    "first_seen", "last_seen",
)

_INVENTORY_OVERRIDES: dict[str, str] = {
    "description": (
        "CASE WHEN inventory.description = '' "
        "THEN excluded.description ELSE inventory.description END"
    ),
    "category_name": (
        "CASE WHEN inventory.category_name = '' "
        "THEN excluded.category_name ELSE inventory.category_name END"
    ),
    "last_seen": "MAX(inventory.last_seen, excluded.last_seen)",
}


def to_db_time(value: datetime | None) -> str | None:
    """Serialise a datetime as fixed-width UTC ISO-8601 (sortable as text)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value: str | None) -> datetime | None:
    """Inverse of :func:`to_db_time`."""
    return datetime.fromisoformat(value) if value else None


def _stamp(value: datetime | None) -> str:
    """Database timestamp for *value*, or for now when it is None."""
    return to_db_time(value or datetime.now(timezone.utc)) or ""


def upsert_sql(
    table: str,
    columns: Sequence[str],
    key: str,
    protected: Iterable[str] = (),
    overrides: Mapping[str, str] | None = None,
    guard: str | None = None,
) -> str:
    """Build an ``INSERT ... ON CONFLICT DO UPDATE`` statement.

    Every column except *key* and the *protected* set is copied from
    ``excluded``, unless *overrides* supplies an expression for it.
    *guard* becomes the ``WHERE`` of the update; a conflicting row that
    fails it is left untouched.
    """
    skip = set(protected) | {key}
    overrides = overrides or {}
    assignments = [
        f"{col} = {overrides.get(col, f'excluded.{col}')}"
        for col in columns
        if col not in skip
    ]
    placeholders = ", ".join("?" for _ in columns)
    sql = (
        f"INSERT INTO {table} ({', '.join(columns)}) "
        f"VALUES ({placeholders}) "
        f"ON CONFLICT({key}) DO UPDATE SET {', '.join(assignments)}"
    )
    if guard:
        sql += f" WHERE {guard}"
    return sql


_UPSERT_AUCTION_SQL = upsert_sql(
    "auctions",
    _AUCTION_COLUMNS,
    key="id",
    protected=_AUCTION_PROTECTED,
    overrides=_AUCTION_OVERRIDES,
    guard="auctions.state = 'active'",
)

_UPSERT_INVENTORY_SQL = upsert_sql(
    "inventory",
    _INVENTORY_COLUMNS,
    key="inventory_number",
    protected={"first_seen"},
    overrides=_INVENTORY_OVERRIDES,
)


@dataclass
class UpsertResult:
    """Counts from one :meth:`AuctionDB.upsert_listings` batch."""

    inserted: int = 0
    updated: int = 0
    skipped_closed: int = 0
    inventory_touched: int = 0
    snapshots: int = 0


class AuctionDB:
    """SQLite store for auctions, inventory items and price snapshots.

    One connection is shared across worker threads; every batch runs
    in its own transaction under a lock.
    """

    def __init__(
        self, db_path: Path | None = None,
    ) -> None:
        path = db_path or Settings.AUCTION_DB_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False, timeout=30.0,
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)
        logger.debug("AuctionDB opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # ── Writes ───────────────────────────────────────────

    def _ensure_inventory(
        self,
        cur: sqlite3.Cursor,
        inventory_number: str,
        description: str,
        category_name: str,
        seen_at: str,
    ) -> None:
        cur.execute(
            _UPSERT_INVENTORY_SQL,
            (inventory_number, description or "", category_name or "",
             seen_at, seen_at),
        )

    def _existing_states(
        self, cur: sqlite3.Cursor, ids: list[int],
    ) -> dict[int, str]:
        states: dict[int, str] = {}
        for start in range(0, len(ids), _IN_CHUNK):
            chunk = ids[start:start + _IN_CHUNK]
            marks = ", ".join("?" for _ in chunk)
            for row in cur.execute(
                f"SELECT id, state FROM auctions WHERE id IN ({marks})",
                chunk,
            ):
                states[row["id"]] = row["state"]
        return states

    def _append_snapshot(
        self,
        cur: sqlite3.Cursor,
        listing_id: int,
        price: float,
        bid_count: int,
        recorded_at: str,
    ) -> bool:
        """Append unless the latest snapshot already has this price/bids."""
        latest = cur.execute(
            "SELECT price, bid_count FROM price_snapshots "
            "WHERE listing_id = ? ORDER BY id DESC LIMIT 1",
            (listing_id,),
        ).fetchone()
        if latest and latest["price"] == price and latest["bid_count"] == bid_count:
            return False
        cur.execute(
            "INSERT INTO price_snapshots "
            "(listing_id, price, bid_count, recorded_at) "
            "VALUES (?, ?, ?, ?)",
            (listing_id, price, bid_count, recorded_at),
        )
        return True

    def ensure_inventory(
        self,
        inventory_number: str,
        description: str = "",
        category_name: str = "",
        seen_at: datetime | None = None,
    ) -> None:
        """Create the inventory item, or bump its last-seen time.

        Description and category are only filled in when empty.
        """
        ts = _stamp(seen_at)
        with self._lock, self._conn:
            self._ensure_inventory(
                self._conn.cursor(), inventory_number,
                description, category_name, ts,
            )

    def upsert_listings(
        self,
        listings: Sequence[AuctionListing],
        category_name: str = "",
        seen_at: datetime | None = None,
    ) -> UpsertResult:
        """Insert new listings and refresh active ones in one transaction.

        - New listings are stored ``active`` with ``final_price`` 0,
          whatever the feed's ``isClosed`` says.
        - Stored ``closed`` rows are left untouched.
        - Every inventory number is created or touched first.
        - A price snapshot is appended for each listing still active.

        Re-applying the same batch with the same *seen_at* leaves the
        store unchanged.
        """
        result = UpsertResult()
        if not listings:
            return result
        ts = _stamp(seen_at)

        with self._lock, self._conn:
            cur = self._conn.cursor()
            states = self._existing_states(
                cur, [listing.id for listing in listings]
            )

            touched: set[str] = set()
            for listing in listings:
                if listing.inventory_number:
                    self._ensure_inventory(
                        cur, listing.inventory_number,
                        listing.title, category_name, ts,
                    )
                    touched.add(listing.inventory_number)
            result.inventory_touched = len(touched)

            for listing in listings:
                previous = states.get(listing.id)
                cur.execute(_UPSERT_AUCTION_SQL, (
                    listing.id,
                    listing.title,
                    listing.inventory_number or None,
                    listing.retail_price,
                    listing.current_price,
                    0.0,
                    listing.bid_count,
                    AuctionState.ACTIVE.value,
                    to_db_time(listing.open_time),
                    to_db_time(listing.close_time),
                    ts,
                    listing.location,
                ))
                if previous == AuctionState.CLOSED.value:
                    result.skipped_closed += 1
                    continue
                if previous is None:
                    result.inserted += 1
                else:
                    result.updated += 1
                states[listing.id] = AuctionState.ACTIVE.value
                if self._append_snapshot(
                    cur, listing.id, listing.current_price,
                    listing.bid_count, ts,
                ):
                    result.snapshots += 1

        logger.info(
            "Upserted %d listings: %d new, %d updated, %d closed skipped, "
            "%d inventory items, %d snapshots",
            len(listings),
            result.inserted,
            result.updated,
            result.skipped_closed,
            result.inventory_touched,
            result.snapshots,
        )
        return result

    def apply_price_sample(
        self, sample: AuctionPriceSample, title: str = "",
    ) -> bool:
        """Write a product-page reading back to its listing.

        A closed reading closes the listing and sets its final price
        (a missing price keeps whatever final price is stored).  An
        active reading only refreshes the current price of a listing
        that is still active.  Returns True if the listing is now closed.
        """
        ts = _stamp(sample.retrieved_at)
        inventory = sample.inventory_number or None

        with self._lock, self._conn:
            cur = self._conn.cursor()
            if inventory:
                self._ensure_inventory(cur, inventory, title, "", ts)

            if sample.state is AuctionState.CLOSED:
                cur.execute(
                    "UPDATE auctions SET "
                    "state = 'closed', "
                    "final_price = CASE WHEN ? > 0 THEN ? ELSE final_price END, "
                    "inventory_number = COALESCE(?, inventory_number), "
                    "last_updated = ? "
                    "WHERE id = ?",
                    (sample.price, sample.price, inventory, ts,
                     sample.listing_id),
                )
                return cur.rowcount > 0

            cur.execute(
                "UPDATE auctions SET "
                "current_price = CASE WHEN ? > 0 THEN ? ELSE current_price END, "
                "inventory_number = COALESCE(?, inventory_number), "
                "last_updated = ? "
                "WHERE id = ? AND state = 'active'",
                (sample.price, sample.price, inventory, ts,
                 sample.listing_id),
            )
            if cur.rowcount and sample.price > 0:
                bids = cur.execute(
                    "SELECT bid_count FROM auctions WHERE id = ?",
                    (sample.listing_id,),
                ).fetchone()["bid_count"]
                self._append_snapshot(
                    cur, sample.listing_id, sample.price, bids, ts,
                )
            return False

    def record_snapshot(
        self,
        listing_id: int,
        price: float,
        bid_count: int,
        recorded_at: datetime | None = None,
    ) -> bool:
        """Append one observation (e.g. from the live stream).

        Returns False if the listing is unknown, closed, or nothing
        changed.
        """
        ts = _stamp(recorded_at)
        with self._lock, self._conn:
            cur = self._conn.cursor()
            active = cur.execute(
                "SELECT 1 FROM auctions WHERE id = ? AND state = 'active'",
                (listing_id,),
            ).fetchone()
            if active is None:
                return False
            return self._append_snapshot(
                cur, listing_id, price, bid_count, ts,
            )

    # ── Reads ────────────────────────────────────────────

    @staticmethod
    def _row_to_listing(row: sqlite3.Row) -> AuctionListing:
        state = AuctionState(row["state"])
        return AuctionListing(
            id=row["id"],
            title=row["title"],
            retail_price=row["retail_price"],
            current_price=row["current_price"],
            final_price=row["final_price"],
            bid_count=row["bid_count"],
            open_time=from_db_time(row["open_time"]),
            close_time=from_db_time(row["close_time"]),
            last_updated=from_db_time(row["last_updated"]),
            location=row["location"],
            state=state,
            inventory_number=row["inventory_number"] or "",
            is_closed=state is AuctionState.CLOSED,
        )

    def _query(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def get_listing(self, listing_id: int) -> AuctionListing | None:
        """Point lookup by marketplace id."""
        rows = self._query(
            "SELECT * FROM auctions WHERE id = ?", (listing_id,),
        )
        return self._row_to_listing(rows[0]) if rows else None

    def get_inventory_item(
        self, inventory_number: str,
    ) -> InventoryItem | None:
        """Point lookup by inventory number."""
        rows = self._query(
            "SELECT * FROM inventory WHERE inventory_number = ?",
            (inventory_number,),
        )
        if not rows:
            return None
        r = rows[0]
        return InventoryItem(
            inventory_number=r["inventory_number"],
            description=r["description"],
            category_name=r["category_name"],
            first_seen=from_db_time(r["first_seen"]),
            last_seen=from_db_time(r["last_seen"]),
        )

    def get_listings_for_inventory(
        self, inventory_number: str,
    ) -> list[AuctionListing]:
        """Every listing of one physical good, oldest close first."""
        rows = self._query(
            "SELECT * FROM auctions WHERE inventory_number = ? "
            "ORDER BY close_time ASC",
            (inventory_number,),
        )
        return [self._row_to_listing(r) for r in rows]

    def count_inventory(self) -> int:
        """Number of distinct inventory items."""
        return int(self._query("SELECT COUNT(*) FROM inventory")[0][0])

    def count_listings(self, state: AuctionState | None = None) -> int:
        """Number of stored listings, optionally in one state."""
        if state is None:
            rows = self._query("SELECT COUNT(*) FROM auctions")
        else:
            rows = self._query(
                "SELECT COUNT(*) FROM auctions WHERE state = ?",
                (state.value,),
            )
        return int(rows[0][0])

    def find_reconcile_candidates(
        self,
        grace_minutes: int | None = None,
        now: datetime | None = None,
    ) -> list[AuctionListing]:
        """Active listings whose close time is over *grace_minutes* ago."""
        grace = (
            Settings.RECONCILE_GRACE_MINUTES
            if grace_minutes is None else grace_minutes
        )
        cutoff = to_db_time(
            (now or datetime.now(timezone.utc)) - timedelta(minutes=grace)
        )
        rows = self._query(
            "SELECT * FROM auctions "
            "WHERE state = 'active' AND close_time IS NOT NULL "
            "AND close_time < ? "
            "ORDER BY close_time ASC",
            (cutoff,),
        )
        return [self._row_to_listing(r) for r in rows]

    def find_closing_soon(
        self,
        window_minutes: int | None = None,
        now: datetime | None = None,
    ) -> list[AuctionListing]:
        """Active listings closing within the next *window_minutes*."""
        window = (
            Settings.CLOSING_SOON_MINUTES
            if window_minutes is None else window_minutes
        )
        start = now or datetime.now(timezone.utc)
        rows = self._query(
            "SELECT * FROM auctions "
            "WHERE state = 'active' AND close_time IS NOT NULL "
            "AND close_time > ? AND close_time <= ? "
            "ORDER BY close_time ASC",
            (to_db_time(start),
             to_db_time(start + timedelta(minutes=window))),
        )
        return [self._row_to_listing(r) for r in rows]

    def get_price_history(self, listing_id: int) -> list[PriceSnapshot]:
        """All snapshots for a listing, oldest first."""
        rows = self._query(
            "SELECT listing_id, price, bid_count, recorded_at "
            "FROM price_snapshots WHERE listing_id = ? "
            "ORDER BY recorded_at ASC, id ASC",
            (listing_id,),
        )
        return [
            PriceSnapshot(
                listing_id=r["listing_id"],
                price=r["price"],
                bid_count=r["bid_count"],
                recorded_at=datetime.fromisoformat(r["recorded_at"]),
            )
            for r in rows
        ]

    def get_trend_summary(
        self, listing_id: int,
    ) -> dict[str, object] | None:
        """Min / max / latest snapshot price and the final price."""
        rows = self._query(
            "SELECT MIN(price), MAX(price), COUNT(id) "
            "FROM price_snapshots WHERE listing_id = ?",
            (listing_id,),
        )
        row = rows[0]
        if row[2] == 0:
            return None
        latest = self._query(
            "SELECT price FROM price_snapshots WHERE listing_id = ? "
            "ORDER BY recorded_at DESC, id DESC LIMIT 1",
            (listing_id,),
        )
        listing = self.get_listing(listing_id)
        return {
            "min": row[0],
            "max": row[1],
            "count": row[2],
            "latest": latest[0][0] if latest else 0.0,
            "final": listing.final_price if listing else 0.0,
        }
