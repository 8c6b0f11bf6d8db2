from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from ledgerbook.conv import to_dec_opt
from ledgerbook.model import StatementModel
from ledgerbook.model.ibkr import SECTION_PERFORMANCE

from .domain import Realization
from .extract import ALL_SCOPES_SET
from .money import ZERO, abs_decimal

logger = logging.getLogger(__name__)

ASSET_STOCK_LIKE = ALL_SCOPES_SET["stocks_etfs"]

PNL_COLUMN_RE = re.compile(r"(Total|Realized|P/L|Profit|Loss)", re.I)


@dataclass(frozen=True)
class BrokerSummary:
    """Broker-reported per-symbol totals, in the statement's base currency."""

    symbol: str
    realized_total: Decimal | None
    unrealized_total: Decimal | None


@dataclass(frozen=True)
class RealizedMismatch:
    symbol: str
    ours: Decimal
    broker: Decimal

    @property
    def difference(self) -> Decimal:
        return self.ours - self.broker


def _rightmost_number(
    r: dict[str, str], header: list[str], candidates: list[int]
) -> Decimal | None:
    # Sanitized exports elide values with "..." so try columns right to left
    for ci in reversed(candidates):
        dec = to_dec_opt(r.get(header[ci], ""))
        if dec is not None and dec != 0:
            return dec
    return None


def parse_performance_summary(model: StatementModel) -> dict[str, BrokerSummary]:
    """Read 'Realized & Unrealized Performance Summary' into per-symbol totals.

    Uses 'Realized Total' / 'Unrealized Total' when present; otherwise the
    right-most parseable P/L-looking column is taken as the realized figure.
    Returns an empty dict if nothing usable is found.
    """
    result: dict[str, BrokerSummary] = {}
    for sub in model.get_subtables(SECTION_PERFORMANCE):
        header = [h.strip() for h in sub.header]
        if "Asset Category" not in header:
            continue

        sym_col = next(
            (name for name in ("Symbol", "Ticker", "Description") if name in header),
            None,
        )
        if sym_col is None:
            continue

        pnl_cols = [i for i, h in enumerate(header) if PNL_COLUMN_RE.search(h)]

        for row in sub.rows:
            r = dict(zip(header, row.values))
            if r.get("Asset Category", "").strip() not in ASSET_STOCK_LIKE:
                continue
            sym = r.get(sym_col, "").strip().upper()
            if not sym:
                continue

            realized = to_dec_opt(r.get("Realized Total"))
            unrealized = to_dec_opt(r.get("Unrealized Total"))
            if realized is None and "Realized Total" not in header:
                realized = _rightmost_number(r, header, pnl_cols)
            if realized is None and unrealized is None:
                continue

            prev = result.get(sym)
            if prev is not None:
                realized = _add_opt(prev.realized_total, realized)
                unrealized = _add_opt(prev.unrealized_total, unrealized)
            result[sym] = BrokerSummary(sym, realized, unrealized)

    return result


def _add_opt(a: Decimal | None, b: Decimal | None) -> Decimal | None:
    if a is None:
        return b
    if b is None:
        return a
    return a + b


def compare_realized(
    realizations: Iterable[Realization],
    summary: dict[str, BrokerSummary],
    start: dt.date | None,
    end: dt.date | None,
    tolerance: Decimal = Decimal("0.05"),
) -> list[RealizedMismatch]:
    """Compare our base-currency realized P&L inside [start, end] with the broker's.

    Advisory only: callers log the mismatches, nothing is enforced.
    """
    ours: dict[str, Decimal] = {}
    for rz in realizations:
        if start is not None and rz.trade_date < start:
            continue
        if end is not None and rz.trade_date > end:
            continue
        ours[rz.symbol] = ours.get(rz.symbol, ZERO) + rz.pnl_base

    mismatches: list[RealizedMismatch] = []
    for sym, broker in sorted(summary.items()):
        if broker.realized_total is None:
            continue
        mine = ours.get(sym, ZERO)
        if abs_decimal(mine - broker.realized_total) > tolerance:
            mismatches.append(RealizedMismatch(sym, mine, broker.realized_total))

    for m in mismatches:
        logger.info(
            "Realized P&L differs from broker summary for %s: ours=%s broker=%s",
            m.symbol,
            m.ours,
            m.broker,
        )
    return mismatches
