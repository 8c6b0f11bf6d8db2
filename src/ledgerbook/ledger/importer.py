from __future__ import annotations

import dataclasses
import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Hashable, Sequence, TypeVar

from .domain import (
    Import,
    IncomeEvent,
    ParsedStatement,
    PortfolioSummary,
    ReconcileResult,
    RecomputeResult,
    Trade,
)
from .errors import LedgerError, UnknownRecordError
from .positions import PositionLedger

if TYPE_CHECKING:
    from ledgerbook.store import LedgerStore

logger = logging.getLogger(__name__)

R = TypeVar("R", Trade, IncomeEvent)


def match_existing(
    incoming: Sequence[R], existing: Sequence[R]
) -> tuple[list[R], list[R]]:
    """Split incoming rows into (new rows, fx back-fills of existing rows).

    Keys are matched as multisets: each existing row absorbs at most one
    incoming row with the same dedup key, so two identical fills in one
    statement are both kept while re-importing the statement adds nothing.
    A matched existing row still on the unresolved FX sentinel picks up the
    incoming row's resolved rate.
    """
    pool: dict[Hashable, list[R]] = defaultdict(list)
    for row in existing:
        pool[row.dedup_key].append(row)

    fresh: list[R] = []
    backfills: list[R] = []
    for row in incoming:
        candidates = pool.get(row.dedup_key)
        if not candidates:
            fresh.append(row)
            continue
        match = candidates.pop(0)
        if match.fx_unresolved and not row.fx_unresolved:
            backfills.append(dataclasses.replace(match, fx_rate=row.fx_rate))
    return fresh, backfills


class ImportReconciler:
    """Merges a parsed statement into an account's persisted history."""

    def __init__(self, store: LedgerStore, base_currency: str) -> None:
        self.store = store
        self.base_currency = base_currency.upper()
        self.ledger = PositionLedger(self.base_currency)

    def reconcile(
        self, account_id: str, statement: ParsedStatement, filename: str
    ) -> ReconcileResult:
        with self.store.account_lock(account_id):
            existing = self.store.load_trades(account_id)
            new_trades, trade_fills = match_existing(statement.trades, existing)
            new_income, income_fills = match_existing(
                statement.income, self.store.load_income(account_id)
            )

            # Nothing is written unless the merged history folds cleanly
            filled = {t.id: t for t in trade_fills}
            self.ledger.fold([filled.get(t.id, t) for t in existing] + new_trades)

            start, end = statement.period()
            imp = self.store.upsert_import(
                account_id,
                Import(
                    filename=filename,
                    statement_start=start,
                    statement_end=end,
                    trade_count=len(statement.trades),
                    dividend_count=len(statement.income),
                ),
            )
            if imp.id is None:
                raise LedgerError(f"store assigned no id to import of {filename!r}")

            self.store.upsert_trades(
                account_id,
                [dataclasses.replace(t, import_id=imp.id) for t in new_trades]
                + trade_fills,
            )
            self.store.upsert_income(
                account_id,
                [dataclasses.replace(e, import_id=imp.id) for e in new_income]
                + income_fills,
            )

        logger.info(
            "Import %d (%s): %d/%d trade(s) new, %d/%d income row(s) new, "
            "%d FX back-fill(s)",
            imp.id,
            filename,
            len(new_trades),
            len(statement.trades),
            len(new_income),
            len(statement.income),
            len(trade_fills) + len(income_fills),
        )
        return ReconcileResult(
            import_id=imp.id,
            trades_inserted=len(new_trades),
            income_inserted=len(new_income),
            fx_backfilled=len(trade_fills) + len(income_fills),
        )

    def recompute_positions(self, account_id: str) -> RecomputeResult:
        """Re-fold the whole trade history and replace the stored positions."""
        with self.store.account_lock(account_id):
            result = self.ledger.fold(self.store.load_trades(account_id))
            written = self.store.replace_positions(
                account_id,
                list(result.positions.values()),
                PortfolioSummary(
                    base_currency=self.base_currency,
                    total_realized_pnl=result.total_realized_pnl,
                    total_realized_pnl_base=result.total_realized_pnl_base,
                ),
            )
        logger.debug(
            "Recomputed %d position(s) for %s; realized %s %s",
            written,
            account_id,
            result.total_realized_pnl_base,
            self.base_currency,
        )
        return RecomputeResult(
            positions_updated=written,
            total_realized_pnl=result.total_realized_pnl,
            total_realized_pnl_base=result.total_realized_pnl_base,
            realizations=result.realizations,
        )

    def delete_import(self, account_id: str, import_id: int) -> RecomputeResult:
        if not self.store.delete_import(account_id, import_id):
            raise UnknownRecordError(f"import {import_id} not found for {account_id}")
        return self.recompute_positions(account_id)

    def delete_trade(self, account_id: str, trade_id: int) -> RecomputeResult:
        if not self.store.delete_trade(account_id, trade_id):
            raise UnknownRecordError(f"trade {trade_id} not found for {account_id}")
        return self.recompute_positions(account_id)
