# tests/conftest.py

"""Shared pytest fixtures for the scanner tests."""

from collections.abc import Generator
from unittest.mock import patch

import pytest


@pytest.fixture(autouse=True)
def mock_sleep() -> Generator[None, None, None]:
    """Patch time.sleep globally so retry loops and request delays run instantly."""
    with patch("time.sleep"):
        yield


@pytest.fixture(autouse=True)
def isolated_db_path(
    tmp_path_factory: pytest.TempPathFactory,
) -> Generator[None, None, None]:
    """Point the default database at a throwaway file."""
    from src.config.settings import Settings

    db_path = tmp_path_factory.mktemp("data") / "auctions.db"
    with patch.object(Settings, "AUCTION_DB_PATH", db_path):
        yield
