import datetime as dt
from decimal import Decimal

from fixtures import TRADES_HEADER, trade_row

from ledgerbook.ledger.domain import Action
from ledgerbook.ledger.extract import (
    LEGACY_TRADE_LAYOUT,
    parse_forex_rates,
    parse_statement_period,
    parse_trades,
    resolve_trade_columns,
)
from ledgerbook.model import IbkrStatementParser, ParseReport


def _model(rows):
    model, _ = IbkrStatementParser().parse_rows(rows)
    return model


def test_parse_trades_sign_to_action_and_absolute_values():
    model = _model(
        [
            TRADES_HEADER,
            trade_row("aapl", "2024-01-02, 10:00:00", "10", "185.5", comm="-1.25"),
            trade_row("AAPL", "2024-01-09;093000", "-4", "190", comm="-1"),
        ]
    )
    buy, sell = parse_trades(model)

    assert buy.symbol == "AAPL"
    assert buy.action is Action.BUY
    assert buy.quantity == Decimal("10")
    assert buy.price == Decimal("185.5")
    assert buy.commission == Decimal("1.25")
    assert buy.trade_date == dt.date(2024, 1, 2)
    assert buy.proceeds == Decimal("-1855.0")
    assert buy.fx_unresolved

    assert sell.action is Action.SELL
    assert sell.quantity == Decimal("4")
    assert sell.trade_date == dt.date(2024, 1, 9)


def test_parse_trades_scope_filter_and_order():
    model = _model(
        [
            TRADES_HEADER,
            trade_row("BBB", "2024-01-03", "5", "20", category="ETF"),
            trade_row("AAA", "2024-01-01", "1", "10"),
            trade_row("USD.SGD", "2024-01-01", "1000", "1.34", currency="SGD", category="Forex"),
        ]
    )
    assert [t.symbol for t in parse_trades(model, "stocks")] == ["AAA"]
    assert [t.symbol for t in parse_trades(model, "etfs")] == ["BBB"]
    assert [t.symbol for t in parse_trades(model, "stocks_etfs")] == ["BBB", "AAA"]
    assert len(parse_trades(model, "all")) == 3


def test_parse_trades_skips_closed_lots_and_unusable_rows():
    model = _model(
        [
            TRADES_HEADER,
            trade_row("AAA", "2024-02-01", "-10", "12"),
            trade_row("AAA", "2024-01-05", "10", "9", discriminator="ClosedLot"),
            trade_row("BAD", "2024-02-01", "--", "12"),
            trade_row("BAD", "not a date", "1", "12"),
            trade_row("ZERO", "2024-02-01", "0", "12"),
            trade_row("", "2024-02-01", "1", "12"),
        ]
    )
    trades = parse_trades(model)
    assert [(t.symbol, t.action) for t in trades] == [("AAA", Action.SELL)]


def test_parse_trades_named_columns_in_any_order_with_fees():
    model = _model(
        [
            [
                "Trades",
                "Header",
                "Symbol",
                "Currency",
                "Asset Category",
                "Quantity",
                "Price",
                "Commission",
                "Fees",
                "Date/Time",
                "Settle Date",
                "Description",
            ],
            [
                "Trades",
                "Data",
                "0700",
                "HKD",
                "Stocks",
                "100",
                "301.2",
                "-18",
                "-2.5",
                "2024-03-04, 09:31:00",
                "2024-03-06",
                "TENCENT HOLDINGS LTD",
            ],
        ]
    )
    [t] = parse_trades(model)
    assert t.symbol == "0700"
    assert t.currency == "HKD"
    assert t.charges == Decimal("20.5")
    assert t.settle_date == dt.date(2024, 3, 6)
    assert t.description == "TENCENT HOLDINGS LTD"


def test_parse_trades_legacy_layout_fallback():
    unnamed = ["Trades", "Header", *[f"c{i}" for i in range(len(LEGACY_TRADE_LAYOUT))]]
    row = [
        "Trades",
        "Data",
        "Order",
        "Stocks",
        "USD",
        "MSFT",
        "2024-04-01, 10:00:00",
        "3",
        "420",
        "421",
        "-1260",
        "-1",
        "1261",
        "0",
        "3",
        "O",
    ]
    model = _model([unnamed, row])
    [t] = parse_trades(model)
    assert (t.symbol, t.quantity, t.price, t.commission) == (
        "MSFT",
        Decimal("3"),
        Decimal("420"),
        Decimal("1"),
    )
    assert t.cost_basis == Decimal("1261")


def test_parse_trades_unknown_layout_is_warned():
    model = _model(
        [
            ["Trades", "Header", "Symbol", "Quantity"],
            ["Trades", "Data", "AAA", "1"],
        ]
    )
    report = ParseReport()
    assert parse_trades(model, report=report) == []
    assert "lacks required columns" in report.issues[0].message


def test_resolve_trade_columns_requires_core_fields():
    assert resolve_trade_columns(("Symbol", "Quantity")) is None
    cols = resolve_trade_columns(tuple(TRADES_HEADER[2:]))
    assert cols is not None
    assert cols["price"] == TRADES_HEADER[2:].index("T. Price")


def test_parse_statement_period_formats():
    model = _model(
        [
            ["Statement", "Header", "Field Name", "Field Value"],
            ["Statement", "Data", "Title", "Activity Statement"],
            ["Statement", "Data", "Period", "January 1, 2024 - March 31, 2024"],
        ]
    )
    assert parse_statement_period(model) == (dt.date(2024, 1, 1), dt.date(2024, 3, 31))

    single = _model(
        [
            ["Statement", "Header", "Field Name", "Field Value"],
            ["Statement", "Data", "Period", "2024-05-17"],
        ]
    )
    assert parse_statement_period(single) == (dt.date(2024, 5, 17), dt.date(2024, 5, 17))
    assert parse_statement_period(_model([])) == (None, None)


def test_parse_forex_rates_both_directions_averaged():
    model = _model(
        [
            TRADES_HEADER,
            trade_row("USD.SGD", "2024-01-02, 10:00:00", "1000", "1.34", currency="SGD", category="Forex"),
            trade_row("USD.SGD", "2024-01-02, 15:00:00", "-500", "1.36", currency="SGD", category="Forex"),
            trade_row("SGD.HKD", "2024-01-03, 10:00:00", "100", "5", currency="HKD", category="Forex"),
            trade_row("EUR.USD", "2024-01-03, 10:00:00", "100", "1.1", category="Forex"),
            trade_row("AAPL", "2024-01-03, 10:00:00", "1", "100"),
        ]
    )
    rates = parse_forex_rates(model, "SGD")
    by_key = {(r.from_currency, r.date): r.rate for r in rates}
    assert by_key == {
        ("USD", dt.date(2024, 1, 2)): Decimal("1.35000000"),
        ("HKD", dt.date(2024, 1, 3)): Decimal("0.20000000"),
    }
    assert all(r.to_currency == "SGD" for r in rates)
