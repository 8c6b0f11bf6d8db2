from __future__ import annotations

import dataclasses
import datetime as dt
import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable

from ledgerbook.model import IbkrStatementParser

from .domain import (
    DEFAULT_FX_RATE,
    BackfillResult,
    IncomeEvent,
    IngestResult,
    LedgerSnapshot,
    ParsedStatement,
    RecomputeResult,
    Trade,
)
from .errors import EmptyStatementError
from .extract import (
    parse_forex_rates,
    parse_income,
    parse_statement_period,
    parse_trades,
)
from .fx import FxRequest, HistoricalFxResolver
from .importer import ImportReconciler
from .reconcile import compare_realized, parse_performance_summary

if TYPE_CHECKING:
    from ledgerbook.config import LedgerSettings
    from ledgerbook.store import LedgerStore

logger = logging.getLogger(__name__)


class LedgerService:
    """Entry points for ingesting statements and maintaining derived positions."""

    def __init__(
        self,
        store: LedgerStore,
        resolver: HistoricalFxResolver,
        settings: LedgerSettings,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.settings = settings
        self.base_currency = self.settings.base_currency.upper()
        self.parser = IbkrStatementParser()
        self.reconciler = ImportReconciler(store, self.base_currency)

    def ingest(self, raw: bytes, account_id: str, filename: str = "") -> IngestResult:
        """Parse a statement, resolve FX, merge it into history and re-fold positions.

        Raises EmptyStatementError when neither trades nor income were found.
        Row problems and unresolved FX pairs come back as warnings.
        """
        model, report = self.parser.parse_bytes(raw)
        trades = parse_trades(model, self.settings.asset_scope, report)
        income = parse_income(model, report)
        report.log_with(logger)

        if not trades and not income:
            raise EmptyStatementError(
                f"No trades or income found in {filename or 'statement'}",
                report.messages(),
            )

        self.resolver.seed(parse_forex_rates(model, self.base_currency))
        trades, income, unresolved = self._apply_fx(trades, income)

        start, end = parse_statement_period(model)
        statement = ParsedStatement(
            trades=trades, income=income, statement_start=start, statement_end=end
        )
        rec = self.reconciler.reconcile(account_id, statement, filename)
        recompute = self.reconciler.recompute_positions(account_id)

        summary = parse_performance_summary(model)
        mismatches = (
            compare_realized(
                recompute.realizations,
                summary,
                *statement.period(),
                tolerance=self.settings.summary_tolerance,
            )
            if summary
            else []
        )

        warnings = (
            report.messages()
            + [
                f"FX rate for {ccy} on {date.isoformat()} unresolved; stored as 1"
                for ccy, date in unresolved
            ]
            + [
                f"Realized P&L for {m.symbol} is {m.ours}, broker summary says "
                f"{m.broker} ({self.base_currency})"
                for m in mismatches
            ]
        )
        return IngestResult(
            import_id=rec.import_id,
            trades_found=len(trades),
            trades_inserted=rec.trades_inserted,
            income_found=len(income),
            income_inserted=rec.income_inserted,
            positions_updated=recompute.positions_updated,
            total_realized_pnl_base=recompute.total_realized_pnl_base,
            warnings=warnings,
        )

    def _apply_fx(
        self, trades: Iterable[Trade], income: Iterable[IncomeEvent]
    ) -> tuple[list[Trade], list[IncomeEvent], list[FxRequest]]:
        trades = list(trades)
        income = list(income)
        requests = [(t.currency, t.trade_date) for t in trades] + [
            (e.currency, e.date) for e in income
        ]
        rates = self.resolver.resolve(requests)

        def rate_for(ccy: str, date: dt.date) -> Decimal:
            return rates.get((ccy.upper(), date), DEFAULT_FX_RATE)

        unresolved = sorted(
            {(c.upper(), d) for c, d in requests if (c.upper(), d) not in rates}
        )
        for ccy, date in unresolved:
            logger.warning("No FX rate for %s on %s; using 1", ccy, date)

        return (
            [dataclasses.replace(t, fx_rate=rate_for(t.currency, t.trade_date)) for t in trades],
            [dataclasses.replace(e, fx_rate=rate_for(e.currency, e.date)) for e in income],
            unresolved,
        )

    def recompute_positions(self, account_id: str) -> RecomputeResult:
        return self.reconciler.recompute_positions(account_id)

    def delete_import(self, account_id: str, import_id: int) -> RecomputeResult:
        return self.reconciler.delete_import(account_id, import_id)

    def delete_trade(self, account_id: str, trade_id: int) -> RecomputeResult:
        return self.reconciler.delete_trade(account_id, trade_id)

    def backfill_fx_rates(self, account_id: str) -> BackfillResult:
        """Retry FX resolution for stored rows still on the 1 sentinel, then re-fold."""
        base = self.base_currency
        trades = [
            t
            for t in self.store.load_trades(account_id)
            if t.fx_unresolved and t.currency != base
        ]
        income = [
            e
            for e in self.store.load_income(account_id)
            if e.fx_unresolved and e.currency != base
        ]
        rates = self.resolver.resolve(
            [(t.currency, t.trade_date) for t in trades]
            + [(e.currency, e.date) for e in income]
        )

        trade_updates = [
            dataclasses.replace(t, fx_rate=rates[(t.currency, t.trade_date)])
            for t in trades
            if (t.currency, t.trade_date) in rates
        ]
        income_updates = [
            dataclasses.replace(e, fx_rate=rates[(e.currency, e.date)])
            for e in income
            if (e.currency, e.date) in rates
        ]
        if trade_updates:
            self.store.upsert_trades(account_id, trade_updates)
        if income_updates:
            self.store.upsert_income(account_id, income_updates)
        logger.info(
            "FX back-fill for %s: %d/%d trade(s), %d/%d income row(s) resolved",
            account_id,
            len(trade_updates),
            len(trades),
            len(income_updates),
            len(income),
        )
        return BackfillResult(
            trades_updated=len(trade_updates),
            income_updated=len(income_updates),
            recompute=self.recompute_positions(account_id),
        )

    def snapshot(self, account_id: str) -> LedgerSnapshot:
        return LedgerSnapshot(
            base_currency=self.base_currency,
            positions=self.store.load_positions(account_id),
            trades=self.store.load_trades(account_id),
            income=self.store.load_income(account_id),
            imports=self.store.list_imports(account_id),
            summary=self.store.load_portfolio_summary(account_id),
        )
