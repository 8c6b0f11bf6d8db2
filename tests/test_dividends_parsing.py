import datetime as dt
from decimal import Decimal

from fixtures import statement_rows

from ledgerbook.ledger.domain import IncomeType
from ledgerbook.ledger.extract import dividend_symbol, parse_income
from ledgerbook.model import IbkrStatementParser, ParseReport


def _model(rows):
    model, _ = IbkrStatementParser().parse_rows(rows)
    return model


def test_parse_income_dividends_and_interest():
    model = _model(
        statement_rows(
            dividends=[
                ["USD", "2024-02-15", "AAPL(US0378331005) Cash Dividend USD 0.24 per Share (Ordinary Dividend)", "2.40"],
                ["Total", "", "", "2.40"],
                ["Total in SGD", "", "", "3.21"],
            ],
            interest=[
                ["SGD", "2024-01-31", "SGD Credit Interest for Jan-2024", "1.05"],
                ["USD", "2024-01-31", "USD Debit Interest for Jan-2024", "(0.42)"],
            ],
        )
    )
    report = ParseReport()
    income = parse_income(model, report)

    assert report.issues == []
    div, *interest = income
    assert div.income_type is IncomeType.DIVIDEND
    assert div.symbol == "AAPL"
    assert div.amount == Decimal("2.40")
    assert div.date == dt.date(2024, 2, 15)
    assert div.fx_unresolved

    assert [i.income_type for i in interest] == [IncomeType.INTEREST] * 2
    assert [i.symbol for i in interest] == [None, None]
    assert interest[1].amount == Decimal("-0.42")


def test_parse_income_bad_amount_is_warned():
    model = _model(
        statement_rows(
            dividends=[
                ["USD", "2024-03-01", "KO(US1912161007) Cash Dividend", "n/a"],
                ["USD", "2024-03-02", "KO(US1912161007) Cash Dividend", "4.60"],
            ]
        )
    )
    report = ParseReport()
    income = parse_income(model, report)
    assert [i.amount for i in income] == [Decimal("4.60")]
    assert len(report.issues) == 1
    assert "Dividends row unparseable" in report.issues[0].message


def test_dividend_symbol_prefix():
    assert dividend_symbol("BRK.B(US0846707026) Cash Dividend") == "BRK.B"
    assert dividend_symbol("d05(SG1L01001701) Cash Dividend SGD 0.54") == "D05"
    assert dividend_symbol("Cash Dividend without identifier") is None
