from __future__ import annotations

import datetime as dt
from contextlib import AbstractContextManager
from decimal import Decimal
from typing import Iterable, Protocol

from ledgerbook.ledger.domain import (
    HistoricalFxRate,
    Import,
    IncomeEvent,
    PortfolioSummary,
    Position,
    Trade,
)


class LedgerStore(Protocol):
    """Persistence boundary used by the reconciler and the service."""

    def load_trades(self, account_id: str) -> list[Trade]:
        """All trades of the account, ascending by (trade_date, id)."""
        ...

    def upsert_trades(self, account_id: str, trades: Iterable[Trade]) -> list[Trade]:
        """Insert trades without id; update fx_rate of trades with id."""
        ...

    def load_income(self, account_id: str) -> list[IncomeEvent]: ...

    def upsert_income(
        self, account_id: str, events: Iterable[IncomeEvent]
    ) -> list[IncomeEvent]: ...

    def upsert_import(self, account_id: str, imp: Import) -> Import: ...

    def list_imports(self, account_id: str) -> list[Import]: ...

    def delete_import(self, account_id: str, import_id: int) -> bool: ...

    def delete_trade(self, account_id: str, trade_id: int) -> bool: ...

    def delete_positions(self, account_id: str) -> int: ...

    def insert_positions(self, account_id: str, positions: Iterable[Position]) -> int: ...

    def load_positions(self, account_id: str) -> list[Position]: ...

    def replace_positions(
        self,
        account_id: str,
        positions: Iterable[Position],
        summary: PortfolioSummary,
    ) -> int:
        """Delete and re-insert positions plus the summary in one transaction."""
        ...

    def load_portfolio_summary(self, account_id: str) -> PortfolioSummary | None: ...

    def cache_fx_rate(self, rate: HistoricalFxRate) -> None: ...

    def lookup_cached_fx_rate(
        self, currency: str, date: dt.date, to_currency: str
    ) -> Decimal | None: ...

    def account_lock(self, account_id: str) -> AbstractContextManager[object]: ...
