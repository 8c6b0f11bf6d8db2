"""Test helpers for statements, trades and market data.

Production code builds Trade objects from statement rows via extract.py.
Tests use these helpers to get realistic statements and trades without
hand-writing every CSV cell, and a scripted market-data provider in place of
Yahoo Finance.
"""

from __future__ import annotations

import csv
import datetime as dt
import io
import threading
from decimal import Decimal, InvalidOperation

from ledgerbook.ledger.domain import Action, Trade

TRADES_HEADER = [
    "Trades",
    "Header",
    "DataDiscriminator",
    "Asset Category",
    "Currency",
    "Symbol",
    "Date/Time",
    "Quantity",
    "T. Price",
    "Proceeds",
    "Comm/Fee",
    "Basis",
    "Realized P/L",
    "Code",
]

INCOME_HEADER = ["Currency", "Date", "Description", "Amount"]


def trade_row(
    symbol: str,
    when: str,
    qty: str,
    price: str,
    currency: str = "USD",
    comm: str = "-1",
    category: str = "Stocks",
    discriminator: str = "Order",
) -> list[str]:
    try:
        proceeds = str(-Decimal(qty) * Decimal(price))
    except InvalidOperation:
        proceeds = ""
    return [
        "Trades",
        "Data",
        discriminator,
        category,
        currency,
        symbol,
        when,
        qty,
        price,
        proceeds,
        comm,
        "",
        "",
        "O",
    ]


def statement_rows(
    trades: list[list[str]] | None = None,
    dividends: list[list[str]] | None = None,
    interest: list[list[str]] | None = None,
    period: str | None = "January 1, 2024 - December 31, 2024",
) -> list[list[str]]:
    rows: list[list[str]] = []
    if period is not None:
        rows.append(["Statement", "Header", "Field Name", "Field Value"])
        rows.append(["Statement", "Data", "Period", period])
    if trades:
        rows.append(TRADES_HEADER)
        rows.extend(trades)
        rows.append(["Trades", "Total", "", "Stocks", "USD", "", "", "", "", "", "", "", "", ""])
    if dividends:
        rows.append(["Dividends", "Header", *INCOME_HEADER])
        rows.extend(["Dividends", "Data", *d] for d in dividends)
    if interest:
        rows.append(["Interest", "Header", *INCOME_HEADER])
        rows.extend(["Interest", "Data", *i] for i in interest)
    return rows


def to_csv_bytes(rows: list[list[str]]) -> bytes:
    buf = io.StringIO()
    csv.writer(buf).writerows(rows)
    return buf.getvalue().encode("utf-8")


def make_trade(
    day: int,
    action: Action | str,
    qty: str,
    price: str,
    symbol: str = "AAPL",
    currency: str = "USD",
    fx: str = "1",
    commission: str = "0",
    month: int = 1,
) -> Trade:
    return Trade(
        trade_date=dt.date(2024, month, day),
        symbol=symbol,
        action=Action(action),
        quantity=Decimal(qty),
        price=Decimal(price),
        currency=currency,
        fx_rate=Decimal(fx),
        commission=Decimal(commission),
    )


class FakeMarketData:
    """Scripted historical closes keyed by provider symbol.

    Symbols listed in ``failing`` raise on fetch. Every call is recorded.
    """

    def __init__(
        self,
        closes: dict[str, list[tuple[dt.date, Decimal]]] | None = None,
        failing: set[str] | None = None,
    ):
        self.closes = closes or {}
        self.failing = failing or set()
        self.calls: list[tuple[str, dt.date, dt.date]] = []
        self._lock = threading.Lock()

    def historical_closes(self, symbol, start, end):
        with self._lock:
            self.calls.append((symbol, start, end))
        if symbol in self.failing:
            raise ConnectionError(f"provider unavailable for {symbol}")
        return [(d, r) for d, r in self.closes.get(symbol, []) if start <= d <= end]
