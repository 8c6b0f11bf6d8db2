import sys
from pathlib import Path

import pytest

# Ensure 'src' and 'tests' are on sys.path for imports
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
TESTS = ROOT / "tests"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(TESTS) not in sys.path:
    sys.path.insert(0, str(TESTS))


@pytest.fixture
def store():
    from ledgerbook.store import SqlLedgerStore

    s = SqlLedgerStore.from_url("sqlite://")
    yield s
    s.close()


@pytest.fixture
def market_data():
    from fixtures import FakeMarketData

    return FakeMarketData()


@pytest.fixture
def settings():
    from ledgerbook.config import LedgerSettings

    return LedgerSettings(base_currency="SGD", database_url="sqlite://")


@pytest.fixture
def service(store, market_data, settings):
    from ledgerbook.ledger import HistoricalFxResolver, LedgerService

    resolver = HistoricalFxResolver(market_data, store, base_currency="SGD")
    return LedgerService(store, resolver, settings)
