# tests/test_cli_runner.py

"""Tests for the CLI argument parsing and job runners."""

import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

from main import _build_parser
from src.cli import runner
from src.models.auction import AuctionListing
from src.models.category import Category
from src.services.auction_scanner import ReconcileReport, ScanReport
from src.storage.auction_db import AuctionDB


class TestParser(unittest.TestCase):
    """argparse subcommands."""

    def test_scan_with_category(self) -> None:
        args = _build_parser().parse_args(["scan", "--category", "automotive"])
        self.assertEqual(args.command, "scan")
        self.assertEqual(args.category, "automotive")

    def test_watch_record_flag(self) -> None:
        args = _build_parser().parse_args(["watch", "50504133", "--record"])
        self.assertEqual(args.listing_id, 50504133)
        self.assertTrue(args.record)

    def test_command_required(self) -> None:
        with self.assertRaises(SystemExit):
            _build_parser().parse_args([])


class TestResolveCategory(unittest.TestCase):
    """Category argument resolution."""

    def test_none_means_all(self) -> None:
        self.assertIsNone(runner.resolve_category(None))

    def test_known_name(self) -> None:
        self.assertIs(
            runner.resolve_category("electronics"), Category.ELECTRONICS
        )

    def test_unknown_name_exits(self) -> None:
        with self.assertRaises(SystemExit):
            runner.resolve_category("toys")


class TestJobRunners(unittest.IsolatedAsyncioTestCase):
    """Exit codes follow the reports."""

    @patch("src.cli.runner.AuctionScanner")
    async def test_scan_exit_code_on_errors(self, mock_cls: MagicMock) -> None:
        scanner = mock_cls.return_value
        scanner.scan_category = AsyncMock(
            return_value=ScanReport(category="Electronics", errors=["page 0: boom"])
        )
        code = await runner.run_scan("electronics")
        self.assertEqual(code, 1)
        scanner.db.close.assert_called_once()

    @patch("src.cli.runner.AuctionScanner")
    async def test_scan_all_ok(self, mock_cls: MagicMock) -> None:
        scanner = mock_cls.return_value
        scanner.scan_all_categories = AsyncMock(
            return_value=[ScanReport(category="Automotive")]
        )
        self.assertEqual(await runner.run_scan(None), 0)

    @patch("src.cli.runner.AuctionScanner")
    async def test_reconcile_exit_code(self, mock_cls: MagicMock) -> None:
        scanner = mock_cls.return_value
        scanner.reconcile_closed_auctions = AsyncMock(
            return_value=ReconcileReport(candidates=2, closed=2)
        )
        self.assertEqual(await runner.run_reconcile(), 0)


class TestHistory(unittest.TestCase):
    """history command against a real database file."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "auctions.db"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_unknown_listing(self) -> None:
        with patch("src.cli.runner.AuctionDB", lambda: AuctionDB(self.path)):
            self.assertEqual(runner.run_history(1), 1)

    def test_known_listing(self) -> None:
        db = AuctionDB(self.path)
        db.upsert_listings(
            [AuctionListing(id=1, title="Lamp", current_price=5.0)],
            seen_at=datetime(2025, 4, 25, tzinfo=timezone.utc),
        )
        db.close()
        with patch("src.cli.runner.AuctionDB", lambda: AuctionDB(self.path)):
            self.assertEqual(runner.run_history(1), 0)


if __name__ == "__main__":
    unittest.main()
