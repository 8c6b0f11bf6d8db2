from __future__ import annotations

import datetime as dt
import logging
import threading
from contextlib import contextmanager
from decimal import Decimal
from typing import Iterable, Iterator

from sqlalchemy import Engine, create_engine, delete, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ledgerbook.ledger.domain import (
    Action,
    HistoricalFxRate,
    Import,
    IncomeEvent,
    IncomeType,
    PortfolioSummary,
    Position,
    Trade,
)

from .tables import (
    Base,
    FxRateRow,
    ImportRow,
    IncomeRow,
    PortfolioSummaryRow,
    PositionRow,
    TradeRow,
)

logger = logging.getLogger(__name__)


def _trade_from_row(r: TradeRow) -> Trade:
    return Trade(
        id=r.id,
        import_id=r.import_id,
        trade_date=r.trade_date,
        settle_date=r.settle_date,
        symbol=r.symbol,
        description=r.description,
        asset_class=r.asset_class,
        action=Action(r.action),
        quantity=r.quantity,
        price=r.price,
        currency=r.currency,
        fx_rate=r.fx_rate,
        proceeds=r.proceeds,
        cost_basis=r.cost_basis,
        realized_pnl=r.realized_pnl,
        commission=r.commission,
        fees=r.fees,
    )


def _income_from_row(r: IncomeRow) -> IncomeEvent:
    return IncomeEvent(
        id=r.id,
        import_id=r.import_id,
        date=r.date,
        symbol=r.symbol,
        description=r.description,
        income_type=IncomeType(r.income_type),
        amount=r.amount,
        currency=r.currency,
        fx_rate=r.fx_rate,
    )


def _import_from_row(r: ImportRow) -> Import:
    return Import(
        id=r.id,
        filename=r.filename,
        statement_start=r.statement_start,
        statement_end=r.statement_end,
        trade_count=r.trade_count,
        dividend_count=r.dividend_count,
        created_at=r.created_at,
    )


def _position_from_row(r: PositionRow) -> Position:
    return Position(
        symbol=r.symbol,
        currency=r.currency,
        quantity=r.quantity,
        avg_cost=r.avg_cost,
        total_cost=r.total_cost,
        total_cost_base=r.total_cost_base,
        realized_pnl=r.realized_pnl,
        realized_pnl_base=r.realized_pnl_base,
        avg_fx_rate=r.avg_fx_rate,
    )


def _position_row(account_id: str, p: Position) -> PositionRow:
    return PositionRow(
        account_id=account_id,
        symbol=p.symbol,
        currency=p.currency,
        quantity=p.quantity,
        avg_cost=p.avg_cost,
        total_cost=p.total_cost,
        total_cost_base=p.total_cost_base,
        realized_pnl=p.realized_pnl,
        realized_pnl_base=p.realized_pnl_base,
        avg_fx_rate=p.avg_fx_rate,
    )


class SqlLedgerStore:
    """LedgerStore on a SQLAlchemy engine (SQLite by default)."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._sessions = sessionmaker(engine, expire_on_commit=False)
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False) -> SqlLedgerStore:
        """Open (and create tables for) the database at url."""
        kwargs: dict = {"echo": echo}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every session sees an empty db
                kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)
        Base.metadata.create_all(engine)
        logger.debug("Opened ledger store at %s", engine.url)
        return cls(engine)

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self._sessions.begin() as session:
            yield session

    @contextmanager
    def account_lock(self, account_id: str) -> Iterator[None]:
        """Serialize destructive position rewrites for one account."""
        with self._locks_guard:
            lock = self._locks.setdefault(account_id, threading.Lock())
        with lock:
            yield

    # trades

    def load_trades(self, account_id: str) -> list[Trade]:
        with self._session() as s:
            rows = s.scalars(
                select(TradeRow)
                .where(TradeRow.account_id == account_id)
                .order_by(TradeRow.trade_date, TradeRow.id)
            ).all()
            return [_trade_from_row(r) for r in rows]

    def upsert_trades(self, account_id: str, trades: Iterable[Trade]) -> list[Trade]:
        out: list[TradeRow] = []
        with self._session() as s:
            for t in trades:
                if t.id is not None:
                    row = s.get(TradeRow, t.id)
                    if row is None or row.account_id != account_id:
                        raise KeyError(f"trade {t.id} not found for account {account_id}")
                    row.fx_rate = t.fx_rate
                else:
                    row = TradeRow(
                        account_id=account_id,
                        import_id=t.import_id,
                        trade_date=t.trade_date,
                        settle_date=t.settle_date,
                        symbol=t.symbol,
                        description=t.description,
                        asset_class=t.asset_class,
                        action=t.action.value,
                        quantity=t.quantity,
                        price=t.price,
                        currency=t.currency,
                        fx_rate=t.fx_rate,
                        proceeds=t.proceeds,
                        cost_basis=t.cost_basis,
                        realized_pnl=t.realized_pnl,
                        commission=t.commission,
                        fees=t.fees,
                    )
                    s.add(row)
                out.append(row)
            s.flush()
            return [_trade_from_row(r) for r in out]

    def delete_trade(self, account_id: str, trade_id: int) -> bool:
        with self._session() as s:
            res = s.execute(
                delete(TradeRow).where(
                    TradeRow.account_id == account_id, TradeRow.id == trade_id
                )
            )
            return res.rowcount > 0

    # income

    def load_income(self, account_id: str) -> list[IncomeEvent]:
        with self._session() as s:
            rows = s.scalars(
                select(IncomeRow)
                .where(IncomeRow.account_id == account_id)
                .order_by(IncomeRow.date, IncomeRow.id)
            ).all()
            return [_income_from_row(r) for r in rows]

    def upsert_income(
        self, account_id: str, events: Iterable[IncomeEvent]
    ) -> list[IncomeEvent]:
        out: list[IncomeRow] = []
        with self._session() as s:
            for e in events:
                if e.id is not None:
                    row = s.get(IncomeRow, e.id)
                    if row is None or row.account_id != account_id:
                        raise KeyError(
                            f"income {e.id} not found for account {account_id}"
                        )
                    row.fx_rate = e.fx_rate
                else:
                    row = IncomeRow(
                        account_id=account_id,
                        import_id=e.import_id,
                        date=e.date,
                        symbol=e.symbol,
                        description=e.description,
                        income_type=e.income_type.value,
                        amount=e.amount,
                        currency=e.currency,
                        fx_rate=e.fx_rate,
                    )
                    s.add(row)
                out.append(row)
            s.flush()
            return [_income_from_row(r) for r in out]

    # imports

    def upsert_import(self, account_id: str, imp: Import) -> Import:
        with self._session() as s:
            row = s.get(ImportRow, imp.id) if imp.id is not None else None
            if row is None:
                row = ImportRow(account_id=account_id)
                s.add(row)
            row.filename = imp.filename
            row.statement_start = imp.statement_start
            row.statement_end = imp.statement_end
            row.trade_count = imp.trade_count
            row.dividend_count = imp.dividend_count
            s.flush()
            s.refresh(row)
            return _import_from_row(row)

    def list_imports(self, account_id: str) -> list[Import]:
        with self._session() as s:
            rows = s.scalars(
                select(ImportRow)
                .where(ImportRow.account_id == account_id)
                .order_by(ImportRow.id)
            ).all()
            return [_import_from_row(r) for r in rows]

    def delete_import(self, account_id: str, import_id: int) -> bool:
        """Delete an import with its trades and income rows."""
        with self._session() as s:
            row = s.get(ImportRow, import_id)
            if row is None or row.account_id != account_id:
                return False
            trades = s.execute(
                delete(TradeRow).where(
                    TradeRow.account_id == account_id, TradeRow.import_id == import_id
                )
            ).rowcount
            income = s.execute(
                delete(IncomeRow).where(
                    IncomeRow.account_id == account_id,
                    IncomeRow.import_id == import_id,
                )
            ).rowcount
            s.delete(row)
        logger.info(
            "Deleted import %d (%d trade(s), %d income row(s))",
            import_id,
            trades,
            income,
        )
        return True

    # positions

    def delete_positions(self, account_id: str) -> int:
        with self._session() as s:
            return s.execute(
                delete(PositionRow).where(PositionRow.account_id == account_id)
            ).rowcount

    def insert_positions(self, account_id: str, positions: Iterable[Position]) -> int:
        with self._session() as s:
            rows = [_position_row(account_id, p) for p in positions]
            s.add_all(rows)
            return len(rows)

    def load_positions(self, account_id: str) -> list[Position]:
        with self._session() as s:
            rows = s.scalars(
                select(PositionRow)
                .where(PositionRow.account_id == account_id)
                .order_by(PositionRow.symbol)
            ).all()
            return [_position_from_row(r) for r in rows]

    def replace_positions(
        self,
        account_id: str,
        positions: Iterable[Position],
        summary: PortfolioSummary,
    ) -> int:
        with self._session() as s:
            s.execute(delete(PositionRow).where(PositionRow.account_id == account_id))
            rows = [_position_row(account_id, p) for p in positions]
            s.add_all(rows)

            srow = s.get(PortfolioSummaryRow, account_id)
            if srow is None:
                srow = PortfolioSummaryRow(account_id=account_id)
                s.add(srow)
            srow.base_currency = summary.base_currency
            srow.total_realized_pnl = summary.total_realized_pnl
            srow.total_realized_pnl_base = summary.total_realized_pnl_base
            srow.updated_at = summary.updated_at or dt.datetime.now(dt.timezone.utc)
            return len(rows)

    def load_portfolio_summary(self, account_id: str) -> PortfolioSummary | None:
        with self._session() as s:
            row = s.get(PortfolioSummaryRow, account_id)
            if row is None:
                return None
            return PortfolioSummary(
                base_currency=row.base_currency,
                total_realized_pnl=row.total_realized_pnl,
                total_realized_pnl_base=row.total_realized_pnl_base,
                updated_at=row.updated_at,
            )

    # fx cache

    def cache_fx_rate(self, rate: HistoricalFxRate) -> None:
        with self._session() as s:
            row = s.scalars(
                select(FxRateRow).where(
                    FxRateRow.date == rate.date,
                    FxRateRow.from_currency == rate.from_currency.upper(),
                    FxRateRow.to_currency == rate.to_currency.upper(),
                )
            ).one_or_none()
            if row is None:
                s.add(
                    FxRateRow(
                        date=rate.date,
                        from_currency=rate.from_currency.upper(),
                        to_currency=rate.to_currency.upper(),
                        rate=rate.rate,
                    )
                )
            else:
                row.rate = rate.rate

    def lookup_cached_fx_rate(
        self, currency: str, date: dt.date, to_currency: str
    ) -> Decimal | None:
        with self._session() as s:
            return s.scalars(
                select(FxRateRow.rate).where(
                    FxRateRow.date == date,
                    FxRateRow.from_currency == currency.upper(),
                    FxRateRow.to_currency == to_currency.upper(),
                )
            ).one_or_none()
