"""SQLAlchemy 2.0 ORM tables for the ledger store.

Decimals are stored as text so values read back exactly as written.
Positions and cached FX rates are derived state and can be rebuilt at any time
from the trade history.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class DecimalText(TypeDecorator):
    """Decimal persisted as its canonical string."""

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(Decimal(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class ImportRow(Base):
    __tablename__ = "ledger_imports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(String(64), index=True)
    filename: Mapped[str] = mapped_column(String(255))
    statement_start: Mapped[dt.date | None] = mapped_column(Date)
    statement_end: Mapped[dt.date | None] = mapped_column(Date)
    trade_count: Mapped[int] = mapped_column(Integer, default=0)
    dividend_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class TradeRow(Base):
    __tablename__ = "ledger_trades"
    __table_args__ = (Index("ix_ledger_trades_account_date", "account_id", "trade_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(String(64))
    import_id: Mapped[int | None] = mapped_column(
        ForeignKey("ledger_imports.id", ondelete="CASCADE"), index=True
    )
    trade_date: Mapped[dt.date] = mapped_column(Date)
    settle_date: Mapped[dt.date | None] = mapped_column(Date)
    symbol: Mapped[str] = mapped_column(String(32))
    description: Mapped[str] = mapped_column(Text, default="")
    asset_class: Mapped[str] = mapped_column(String(32), default="Stocks")
    action: Mapped[str] = mapped_column(String(4))
    quantity: Mapped[Decimal] = mapped_column(DecimalText)
    price: Mapped[Decimal] = mapped_column(DecimalText)
    currency: Mapped[str] = mapped_column(String(3))
    fx_rate: Mapped[Decimal] = mapped_column(DecimalText)
    proceeds: Mapped[Decimal | None] = mapped_column(DecimalText)
    cost_basis: Mapped[Decimal | None] = mapped_column(DecimalText)
    realized_pnl: Mapped[Decimal | None] = mapped_column(DecimalText)
    commission: Mapped[Decimal] = mapped_column(DecimalText)
    fees: Mapped[Decimal] = mapped_column(DecimalText)


class IncomeRow(Base):
    __tablename__ = "ledger_income"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(String(64), index=True)
    import_id: Mapped[int | None] = mapped_column(
        ForeignKey("ledger_imports.id", ondelete="CASCADE"), index=True
    )
    date: Mapped[dt.date] = mapped_column(Date)
    symbol: Mapped[str | None] = mapped_column(String(32))
    description: Mapped[str] = mapped_column(Text, default="")
    income_type: Mapped[str] = mapped_column(String(16))
    amount: Mapped[Decimal] = mapped_column(DecimalText)
    currency: Mapped[str] = mapped_column(String(3))
    fx_rate: Mapped[Decimal] = mapped_column(DecimalText)


class PositionRow(Base):
    __tablename__ = "ledger_positions"
    __table_args__ = (UniqueConstraint("account_id", "symbol"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(String(64))
    symbol: Mapped[str] = mapped_column(String(32))
    currency: Mapped[str] = mapped_column(String(3))
    quantity: Mapped[Decimal] = mapped_column(DecimalText)
    avg_cost: Mapped[Decimal] = mapped_column(DecimalText)
    total_cost: Mapped[Decimal] = mapped_column(DecimalText)
    total_cost_base: Mapped[Decimal] = mapped_column(DecimalText)
    realized_pnl: Mapped[Decimal] = mapped_column(DecimalText)
    realized_pnl_base: Mapped[Decimal] = mapped_column(DecimalText)
    avg_fx_rate: Mapped[Decimal] = mapped_column(DecimalText)


class PortfolioSummaryRow(Base):
    __tablename__ = "ledger_portfolio_summary"

    account_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    base_currency: Mapped[str] = mapped_column(String(3))
    total_realized_pnl: Mapped[Decimal] = mapped_column(DecimalText)
    total_realized_pnl_base: Mapped[Decimal] = mapped_column(DecimalText)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class FxRateRow(Base):
    __tablename__ = "ledger_fx_rates"
    __table_args__ = (UniqueConstraint("date", "from_currency", "to_currency"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date: Mapped[dt.date] = mapped_column(Date)
    from_currency: Mapped[str] = mapped_column(String(3))
    to_currency: Mapped[str] = mapped_column(String(3))
    rate: Mapped[Decimal] = mapped_column(DecimalText)
