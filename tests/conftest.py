"""Shared test fixtures."""

from pathlib import Path

import pytest

from ledgerlink.config import Config
from ledgerlink.database.repository import Repository
from ledgerlink.database.store import RepositoryStore

# Test fixture config directory with synthetic data
FIXTURE_CONFIG_DIR = Path(__file__).parent / "fixtures" / "config"
FIXTURE_STATEMENTS_DIR = Path(__file__).parent / "fixtures" / "statements"


class StubCategorizer:
    """Categorizer double: fixed category by kind, records every call."""

    def __init__(self, transfer_category_id: str = "transfer"):
        self.transfer_category_id = transfer_category_id
        self.calls: list[tuple[str, str, bool]] = []
        self.transfer_lookups = 0

    async def resolve_category(self, title: str, subtitle: str, is_expense: bool) -> str:
        self.calls.append((title, subtitle, is_expense))
        return "general-expense" if is_expense else "general-income"

    async def resolve_transfer_category_id(self) -> str:
        self.transfer_lookups += 1
        return self.transfer_category_id


@pytest.fixture
def config():
    return Config(FIXTURE_CONFIG_DIR)


@pytest.fixture
def categorizer():
    return StubCategorizer()


@pytest.fixture
def repo():
    r = Repository(":memory:")
    r.apply_migrations()
    yield r
    r.close()


@pytest.fixture
def store(repo):
    return RepositoryStore(repo)
