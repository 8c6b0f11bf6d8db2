from __future__ import annotations

import datetime as dt
import logging
import re
from collections import defaultdict
from decimal import Decimal

from ledgerbook.conv import parse_date, parse_long_date, to_dec, to_dec_opt, to_dec_strict
from ledgerbook.model import ParseReport, StatementModel, Subtable
from ledgerbook.model.ibkr import (
    SECTION_DIVIDENDS,
    SECTION_INTEREST,
    SECTION_STATEMENT,
    SECTION_TRADES,
)

from .domain import Action, HistoricalFxRate, IncomeEvent, IncomeType, Trade
from .money import ZERO, abs_decimal, quantize_rate

logger = logging.getLogger(__name__)

ALL_SCOPES_SET = {
    "stocks": {"Stocks", "Stock"},
    "etfs": {"ETF", "ETFs", "ETCs", "ETP"},
    "stocks_etfs": {"Stocks", "Stock", "ETF", "ETFs", "ETCs", "ETP"},
    "all": None,
}

FOREX_CATEGORY = "Forex"

# logical field -> header names that may carry it (first match wins)
TRADE_FIELDS: dict[str, tuple[str, ...]] = {
    "discriminator": ("DataDiscriminator",),
    "asset_class": ("Asset Category", "Asset Class"),
    "currency": ("Currency",),
    "symbol": ("Symbol",),
    "datetime": ("Date/Time", "Trade Date", "Date"),
    "settle_date": ("Settle Date",),
    "description": ("Description",),
    "quantity": ("Quantity",),
    "price": ("T. Price", "Trade Price", "Price"),
    "proceeds": ("Proceeds",),
    "commission": ("Comm/Fee", "Commission", "Comm"),
    "fees": ("Fees",),
    "basis": ("Basis", "Cost Basis"),
    "realized": ("Realized P/L", "Realized P&L"),
}

REQUIRED_TRADE_FIELDS = (
    "asset_class",
    "currency",
    "symbol",
    "datetime",
    "quantity",
    "price",
    "commission",
)

# Column order of the classic Activity Statement "Trades" table, used when a
# subtable header does not name its columns.
LEGACY_TRADE_LAYOUT = (
    "DataDiscriminator",
    "Asset Category",
    "Currency",
    "Symbol",
    "Date/Time",
    "Quantity",
    "T. Price",
    "C. Price",
    "Proceeds",
    "Comm/Fee",
    "Basis",
    "Realized P/L",
    "MTM P/L",
    "Code",
)

# DataDiscriminator values that represent an execution (ClosedLot etc. repeat them)
EXECUTION_DISCRIMINATORS = {"", "Order", "Trade"}

INCOME_SECTIONS = {
    SECTION_DIVIDENDS: IncomeType.DIVIDEND,
    SECTION_INTEREST: IncomeType.INTEREST,
}

DIVIDEND_SYMBOL_RE = re.compile(r"^\s*([A-Za-z0-9.\- ]+?)\s*\(")
PERIOD_SPLIT_RE = re.compile(r"\s+-\s+")


def resolve_trade_columns(header: tuple[str, ...]) -> dict[str, int] | None:
    """Map logical trade fields to column positions, or None if required ones are missing."""
    positions = {name.strip(): i for i, name in reversed(list(enumerate(header)))}
    cols: dict[str, int] = {}
    for field_name, candidates in TRADE_FIELDS.items():
        for cand in candidates:
            if cand in positions:
                cols[field_name] = positions[cand]
                break
    if any(f not in cols for f in REQUIRED_TRADE_FIELDS):
        return None
    return cols


LEGACY_TRADE_COLUMNS = resolve_trade_columns(LEGACY_TRADE_LAYOUT)


def _cell(values: tuple[str, ...], cols: dict[str, int], name: str) -> str:
    idx = cols.get(name)
    if idx is None or idx >= len(values):
        return ""
    return values[idx].strip()


def _subtable_columns(
    sub: Subtable, report: ParseReport | None
) -> dict[str, int] | None:
    cols = resolve_trade_columns(sub.header)
    if cols is not None:
        return cols
    if len(sub.header) == len(LEGACY_TRADE_LAYOUT):
        logger.debug("Trades header %s not recognized; using legacy layout", sub.header)
        return LEGACY_TRADE_COLUMNS
    if report is not None and sub.rows:
        report.warn(
            sub.rows[0].line_no,
            f"Trades subtable lacks required columns; {len(sub.rows)} row(s) skipped.",
            sub.header,
        )
    return None


def parse_trade_row(
    values: tuple[str, ...],
    cols: dict[str, int],
    scope_set: set[str] | None,
) -> Trade | None:
    """Normalize one Trades data row; None if it is filtered out or unusable."""
    asset_class = _cell(values, cols, "asset_class")
    if scope_set is not None and asset_class not in scope_set:
        return None
    if _cell(values, cols, "discriminator") not in EXECUTION_DISCRIMINATORS:
        return None

    symbol = _cell(values, cols, "symbol").upper()
    if not symbol:
        return None

    # Metadata/summary lines look like trades but carry no numbers
    try:
        quantity = to_dec_strict(_cell(values, cols, "quantity"))
        price = to_dec_strict(_cell(values, cols, "price"))
        trade_date = parse_date(_cell(values, cols, "datetime"))
    except ValueError as exc:
        logger.debug("Skipping trade row %s: %s", values, exc)
        return None
    if quantity == 0:
        return None

    settle_s = _cell(values, cols, "settle_date")
    try:
        settle_date = parse_date(settle_s) if settle_s else None
    except ValueError:
        settle_date = None

    return Trade(
        trade_date=trade_date,
        settle_date=settle_date,
        symbol=symbol,
        description=_cell(values, cols, "description"),
        asset_class=asset_class,
        action=Action.BUY if quantity > 0 else Action.SELL,
        quantity=abs_decimal(quantity),
        price=abs_decimal(price),
        currency=_cell(values, cols, "currency").upper(),
        proceeds=to_dec_opt(_cell(values, cols, "proceeds")),
        cost_basis=to_dec_opt(_cell(values, cols, "basis")),
        realized_pnl=to_dec_opt(_cell(values, cols, "realized")),
        commission=abs_decimal(to_dec(_cell(values, cols, "commission"))),
        fees=abs_decimal(to_dec(_cell(values, cols, "fees"))),
    )


def parse_trades(
    model: StatementModel,
    asset_scope: str = "stocks",
    report: ParseReport | None = None,
) -> list[Trade]:
    """Extract trades of the configured asset scope from every 'Trades' subtable.

    asset_scope: 'stocks', 'etfs', 'stocks_etfs', 'all'. Row order is kept.
    """
    scope_set = ALL_SCOPES_SET[asset_scope]
    trades: list[Trade] = []

    for sub in model.get_subtables(SECTION_TRADES):
        cols = _subtable_columns(sub, report)
        if cols is None:
            continue
        for row in sub.rows:
            trade = parse_trade_row(row.values, cols, scope_set)
            if trade is not None:
                trades.append(trade)

    logger.debug("Extracted %d trade(s) in scope %r", len(trades), asset_scope)
    return trades


def dividend_symbol(description: str) -> str | None:
    """'AAPL(US0378331005) Cash Dividend USD 0.24 per Share' -> 'AAPL'."""
    m = DIVIDEND_SYMBOL_RE.match(description)
    if not m:
        return None
    return m.group(1).strip().upper() or None


def parse_income(
    model: StatementModel, report: ParseReport | None = None
) -> list[IncomeEvent]:
    """Extract dividend and interest events (Header: Currency, Date, Description, Amount)."""
    out: list[IncomeEvent] = []
    for section, income_type in INCOME_SECTIONS.items():
        for sub in model.get_subtables(section):
            for row in sub.rows:
                r = dict(zip(sub.header, row.values))
                cur = r.get("Currency", "").strip()
                date_s = r.get("Date", "").strip()
                desc = r.get("Description", "").strip()
                # Total lines carry a currency label like 'Total' or 'Total in SGD'
                if not cur or cur.lower().startswith("total"):
                    continue
                if not (date_s and desc):
                    continue
                try:
                    amount = to_dec_strict(r.get("Amount", ""))
                    date = parse_date(date_s)
                except ValueError as exc:
                    if report is not None:
                        report.warn(
                            row.line_no, f"{section} row unparseable ({exc}); skipped."
                        )
                    continue
                out.append(
                    IncomeEvent(
                        date=date,
                        symbol=(
                            dividend_symbol(desc)
                            if income_type is IncomeType.DIVIDEND
                            else None
                        ),
                        description=desc,
                        income_type=income_type,
                        amount=amount,
                        currency=cur.upper(),
                    )
                )
    return out


def parse_statement_period(
    model: StatementModel,
) -> tuple[dt.date | None, dt.date | None]:
    """Read the 'Period' field of the Statement section.

    Accepts 'January 1, 2024 - December 31, 2024', '2024-01-01 - 2024-12-31' and
    single-day periods.
    """
    for r in model.iter_rows(SECTION_STATEMENT):
        if r.get("Field Name", "").strip() != "Period":
            continue
        value = r.get("Field Value", "").strip()
        parts = PERIOD_SPLIT_RE.split(value, maxsplit=1)
        try:
            start = parse_long_date(parts[0])
            end = parse_long_date(parts[1]) if len(parts) > 1 else start
        except ValueError:
            logger.warning("Unrecognized statement period %r", value)
            return None, None
        return start, end
    return None, None


def parse_forex_rates(
    model: StatementModel, base_currency: str
) -> list[HistoricalFxRate]:
    """Derive daily FX rates to the base currency from Forex conversions in the statement.

    'USD.SGD' at 1.35 means 1 USD = 1.35 SGD; 'SGD.HKD' at 5.8 means
    1 HKD = 1/5.8 SGD. Several conversions on one day are averaged.
    """
    base = base_currency.upper()
    samples: dict[tuple[str, dt.date], list[Decimal]] = defaultdict(list)

    for sub in model.get_subtables(SECTION_TRADES):
        cols = resolve_trade_columns(sub.header) or (
            LEGACY_TRADE_COLUMNS if len(sub.header) == len(LEGACY_TRADE_LAYOUT) else None
        )
        if cols is None:
            continue
        for row in sub.rows:
            if _cell(row.values, cols, "asset_class") != FOREX_CATEGORY:
                continue
            if _cell(row.values, cols, "discriminator") not in EXECUTION_DISCRIMINATORS:
                continue
            pair = _cell(row.values, cols, "symbol").upper().split(".")
            if len(pair) != 2:
                continue
            try:
                price = to_dec_strict(_cell(row.values, cols, "price"))
                date = parse_date(_cell(row.values, cols, "datetime"))
            except ValueError:
                continue
            if price <= 0:
                continue
            quote_ccy, counter_ccy = pair
            if counter_ccy == base and quote_ccy != base:
                samples[(quote_ccy, date)].append(price)
            elif quote_ccy == base and counter_ccy != base:
                samples[(counter_ccy, date)].append(Decimal("1") / price)

    rates = [
        HistoricalFxRate(
            date=date,
            from_currency=ccy,
            to_currency=base,
            rate=quantize_rate(sum(vals, ZERO) / len(vals)),
        )
        for (ccy, date), vals in sorted(samples.items())
    ]
    logger.debug("Derived %d statement-implied FX rate(s)", len(rates))
    return rates
