from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from .money import ONE, ZERO

# fx_rate value meaning "no historical rate resolved yet"
DEFAULT_FX_RATE = ONE


class Action(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class IncomeType(str, Enum):
    DIVIDEND = "DIVIDEND"
    INTEREST = "INTEREST"
    OTHER = "OTHER"


TradeKey = tuple[dt.date, str, Action, Decimal, Decimal]
IncomeKey = tuple[dt.date, str | None, IncomeType, Decimal]


@dataclass(frozen=True)
class Trade:
    trade_date: dt.date
    symbol: str
    action: Action
    quantity: Decimal  # always positive; direction lives in action
    price: Decimal
    currency: str
    description: str = ""
    asset_class: str = "Stocks"
    settle_date: dt.date | None = None
    fx_rate: Decimal = DEFAULT_FX_RATE  # native -> base
    proceeds: Decimal | None = None
    cost_basis: Decimal | None = None
    realized_pnl: Decimal | None = None  # broker-reported, native
    commission: Decimal = ZERO
    fees: Decimal = ZERO
    id: int | None = None
    import_id: int | None = None

    @property
    def dedup_key(self) -> TradeKey:
        return (self.trade_date, self.symbol, self.action, self.quantity, self.price)

    @property
    def charges(self) -> Decimal:
        return self.commission + self.fees

    @property
    def fx_unresolved(self) -> bool:
        return self.fx_rate == DEFAULT_FX_RATE


@dataclass(frozen=True)
class IncomeEvent:
    date: dt.date
    income_type: IncomeType
    amount: Decimal
    currency: str
    symbol: str | None = None
    description: str = ""
    fx_rate: Decimal = DEFAULT_FX_RATE
    id: int | None = None
    import_id: int | None = None

    @property
    def dedup_key(self) -> IncomeKey:
        return (self.date, self.symbol, self.income_type, self.amount)

    @property
    def fx_unresolved(self) -> bool:
        return self.fx_rate == DEFAULT_FX_RATE


@dataclass(frozen=True)
class Position:
    symbol: str
    currency: str
    quantity: Decimal  # signed net open quantity
    avg_cost: Decimal  # native per share
    total_cost: Decimal  # native
    total_cost_base: Decimal
    realized_pnl: Decimal  # native, cumulative
    realized_pnl_base: Decimal
    avg_fx_rate: Decimal

    @property
    def is_open(self) -> bool:
        return self.quantity != 0


@dataclass(frozen=True)
class Realization:
    """P&L crystallized by one closing trade."""

    symbol: str
    trade_date: dt.date
    quantity: Decimal
    pnl: Decimal
    pnl_base: Decimal


@dataclass(frozen=True)
class Import:
    filename: str
    statement_start: dt.date | None
    statement_end: dt.date | None
    trade_count: int
    dividend_count: int
    created_at: dt.datetime | None = None
    id: int | None = None


@dataclass(frozen=True)
class HistoricalFxRate:
    date: dt.date
    from_currency: str
    to_currency: str
    rate: Decimal


@dataclass(frozen=True)
class PortfolioSummary:
    base_currency: str
    total_realized_pnl: Decimal
    total_realized_pnl_base: Decimal
    updated_at: dt.datetime | None = None


@dataclass
class ParsedStatement:
    trades: list[Trade] = field(default_factory=list)
    income: list[IncomeEvent] = field(default_factory=list)
    statement_start: dt.date | None = None
    statement_end: dt.date | None = None

    def activity_dates(self) -> list[dt.date]:
        return [t.trade_date for t in self.trades] + [i.date for i in self.income]

    def period(self) -> tuple[dt.date | None, dt.date | None]:
        """Statement period, falling back to the span of the activity itself."""
        dates = self.activity_dates()
        start = self.statement_start or (min(dates) if dates else None)
        end = self.statement_end or (max(dates) if dates else None)
        return start, end


@dataclass(frozen=True)
class LedgerFold:
    positions: dict[str, Position]
    total_realized_pnl: Decimal
    total_realized_pnl_base: Decimal
    realizations: tuple[Realization, ...] = ()


@dataclass(frozen=True)
class ReconcileResult:
    import_id: int
    trades_inserted: int
    income_inserted: int
    fx_backfilled: int


@dataclass(frozen=True)
class RecomputeResult:
    positions_updated: int
    total_realized_pnl: Decimal
    total_realized_pnl_base: Decimal
    realizations: tuple[Realization, ...] = ()


@dataclass(frozen=True)
class IngestResult:
    import_id: int
    trades_found: int
    trades_inserted: int
    income_found: int
    income_inserted: int
    positions_updated: int
    total_realized_pnl_base: Decimal
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class BackfillResult:
    trades_updated: int
    income_updated: int
    recompute: RecomputeResult


@dataclass(frozen=True)
class LedgerSnapshot:
    base_currency: str
    positions: list[Position]
    trades: list[Trade]
    income: list[IncomeEvent]
    imports: list[Import]
    summary: PortfolioSummary | None = None
