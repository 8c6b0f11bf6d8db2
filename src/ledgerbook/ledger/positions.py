from __future__ import annotations

import logging
from decimal import Decimal, localcontext
from typing import Iterable

from .domain import Action, LedgerFold, Position, Realization, Trade
from .errors import LedgerInvariantError
from .money import LEDGER_CONTEXT, ZERO, abs_decimal

logger = logging.getLogger(__name__)

# Tolerance for |total_cost - avg_cost * quantity| after a fold
COST_EPSILON = Decimal("0.000001")


class _Book:
    """Running average-cost state for one symbol.

    ``quantity`` is signed (negative = short). ``total_cost`` carries the same
    sign: money paid for a long, minus money received for a short.
    """

    def __init__(self, symbol: str, currency: str) -> None:
        self.symbol = symbol
        self.currency = currency
        self.quantity = ZERO
        self.total_cost = ZERO
        self.total_cost_base = ZERO
        self.realized = ZERO
        self.realized_base = ZERO

    def apply(self, trade: Trade) -> Realization | None:
        if trade.currency != self.currency:
            raise LedgerInvariantError(
                f"{self.symbol}: trade currency {trade.currency} differs from "
                f"position currency {self.currency}"
            )
        if trade.quantity <= 0:
            raise LedgerInvariantError(
                f"{self.symbol}: non-positive trade quantity {trade.quantity} "
                f"on {trade.trade_date}"
            )
        if trade.price < 0:
            raise LedgerInvariantError(
                f"{self.symbol}: negative trade price {trade.price} on {trade.trade_date}"
            )

        sign = Decimal(1) if trade.action is Action.BUY else Decimal(-1)
        qty = trade.quantity
        fx = trade.fx_rate
        charges = trade.charges

        # Closing leg: against the opposite side of the book
        closed = ZERO
        if self.quantity * sign < 0:
            open_qty = abs_decimal(self.quantity)
            closed = min(qty, open_qty)
            removed = self.total_cost * closed / open_qty
            removed_base = self.total_cost_base * closed / open_qty

            # value of the closing leg from the position's point of view:
            # sale proceeds for a long, buy-back outlay for a short
            leg = trade.price * closed * (-sign)
            pnl = leg - charges - removed
            pnl_base = (leg - charges) * fx - removed_base

            self.realized += pnl
            self.realized_base += pnl_base
            self.total_cost -= removed
            self.total_cost_base -= removed_base
            self.quantity += sign * closed
            if self.quantity == 0:
                self.total_cost = ZERO
                self.total_cost_base = ZERO
            realization = Realization(
                self.symbol, trade.trade_date, closed, pnl, pnl_base
            )
        else:
            realization = None

        # Opening leg: whatever was not needed to close
        excess = qty - closed
        if excess > 0:
            opened = sign * excess * trade.price
            if closed == 0 and trade.action is Action.BUY:
                opened += charges
            elif closed == 0:
                # a short's basis is the sale price alone; its charges are realized
                self.realized -= charges
                self.realized_base -= charges * fx
            self.total_cost += opened
            self.total_cost_base += opened * fx
            self.quantity += sign * excess
            if closed > 0:
                logger.info(
                    "%s: %s on %s flips position through zero (%s beyond open quantity)",
                    self.symbol,
                    trade.action.value,
                    trade.trade_date,
                    excess,
                )

        return realization

    def snapshot(self) -> Position:
        if self.quantity == 0:
            avg_cost = ZERO
            avg_fx = ZERO
        else:
            avg_cost = self.total_cost / self.quantity
            avg_fx = (
                self.total_cost_base / self.total_cost if self.total_cost != 0 else ZERO
            )
        if avg_cost < 0:
            raise LedgerInvariantError(
                f"{self.symbol}: negative average cost {avg_cost} "
                f"(quantity {self.quantity}, total cost {self.total_cost})"
            )
        if abs_decimal(self.total_cost - avg_cost * self.quantity) >= COST_EPSILON:
            raise LedgerInvariantError(
                f"{self.symbol}: total cost {self.total_cost} does not match "
                f"average cost {avg_cost} x quantity {self.quantity}"
            )
        return Position(
            symbol=self.symbol,
            currency=self.currency,
            quantity=self.quantity,
            avg_cost=avg_cost,
            total_cost=self.total_cost,
            total_cost_base=self.total_cost_base,
            realized_pnl=self.realized,
            realized_pnl_base=self.realized_base,
            avg_fx_rate=avg_fx,
        )


def fold(trades: Iterable[Trade], base_currency: str) -> LedgerFold:
    """Fold a trade history into average-cost positions.

    Pure: trades are ordered by trade_date with a stable sort, so same-day
    trades keep their input order. Every symbol ever traded gets a Position,
    including fully closed ones. Raises LedgerInvariantError on an invalid
    trade or resulting position.
    """
    ordered = sorted(trades, key=lambda t: t.trade_date)
    books: dict[str, _Book] = {}
    realizations: list[Realization] = []

    with localcontext(LEDGER_CONTEXT):
        for trade in ordered:
            book = books.get(trade.symbol)
            if book is None:
                book = books[trade.symbol] = _Book(trade.symbol, trade.currency)
            rz = book.apply(trade)
            if rz is not None:
                realizations.append(rz)

        positions = {sym: book.snapshot() for sym, book in books.items()}
        total = sum((p.realized_pnl for p in positions.values()), ZERO)
        total_base = sum((p.realized_pnl_base for p in positions.values()), ZERO)

    logger.debug(
        "Folded %d trade(s) into %d position(s) (base %s)",
        len(ordered),
        len(positions),
        base_currency,
    )
    return LedgerFold(
        positions=positions,
        total_realized_pnl=total,
        total_realized_pnl_base=total_base,
        realizations=tuple(realizations),
    )


class PositionLedger:
    """Fold bound to one base currency."""

    def __init__(self, base_currency: str) -> None:
        self.base_currency = base_currency.upper()

    def fold(self, trades: Iterable[Trade]) -> LedgerFold:
        return fold(trades, self.base_currency)
