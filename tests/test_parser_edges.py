from decimal import Decimal

from fixtures import TRADES_HEADER, trade_row

from ledgerbook.model.ibkr import IbkrStatementParser


def test_parser_bom_and_data_before_header():
    rows = [
        # Data before any header -> skipped
        trade_row("ASML", "2024-01-10, 10:00:00", "-1", "100", currency="EUR"),
        ["\ufeffDividends", "Header", "Currency", "Date", "Description", "Amount"],
        ["Dividends", "Data", "EUR", "2024-01-05", "Test Div", "10.00"],
    ]
    model, report = IbkrStatementParser().parse_rows(rows)

    assert any(
        "Data row encountered before any header" in i.message for i in report.issues
    )
    assert model.get_subtables("Trades") == []

    subs = model.get_subtables("Dividends")
    assert len(subs) == 1
    r = next(iter(model.iter_rows("Dividends")))
    assert r["Currency"] == "EUR" and Decimal(r["Amount"]) == Decimal("10.00")


def test_unrelated_section_between_trade_blocks_does_not_leak():
    rows = [
        TRADES_HEADER,
        trade_row("AAA", "2024-01-02, 10:00:00", "10", "100"),
        trade_row("BBB", "2024-01-03, 10:00:00", "5", "50"),
        ["Transfers", "Header", "Asset Category", "Symbol", "Qty"],
        ["Transfers", "Data", "Stocks", "ZZZ", "100"],
        # Trades data resuming without a fresh header must not join the old block
        trade_row("CCC", "2024-01-04, 10:00:00", "1", "10"),
        TRADES_HEADER,
        trade_row("DDD", "2024-01-05, 10:00:00", "2", "20"),
    ]
    model, report = IbkrStatementParser().parse_rows(rows)

    subs = model.get_subtables("Trades")
    assert [len(s.rows) for s in subs] == [2, 1]
    symbols = [r["Symbol"] for r in model.iter_rows("Trades")]
    assert symbols == ["AAA", "BBB", "DDD"]
    assert "Transfers" not in model.sections
    assert sum(1 for i in report.issues if "before any header" in i.message) == 1


def test_width_mismatch_is_warned_but_trailing_blanks_tolerated():
    rows = [
        ["Interest", "Header", "Currency", "Date", "Description", "Amount"],
        ["Interest", "Data", "USD", "2024-02-01", "USD Credit Interest", "1.23", "", ""],
        ["Interest", "Data", "USD", "2024-03-01", "USD Credit Interest"],
    ]
    model, report = IbkrStatementParser().parse_rows(rows)

    assert model.row_count("Interest") == 1
    [issue] = report.issues
    assert issue.line_no == 3
    assert "3 fields, header has 4" in issue.message
    assert report.messages() == [f"line 3: {issue.message}"]


def test_total_rows_silent_and_unknown_kinds_warned():
    rows = [
        ["Dividends", "Header", "Currency", "Date", "Description", "Amount"],
        ["Dividends", "Data", "USD", "2024-02-01", "X(US1) Cash Dividend", "1.00"],
        ["Dividends", "Total", "", "", "", "1.00"],
        ["Dividends", "SubTotal", "", "", "", "1.00"],
        ["Dividends", "Weird", "", "", "", "1.00"],
    ]
    model, report = IbkrStatementParser().parse_rows(rows)
    assert model.row_count("Dividends") == 1
    assert [i.message for i in report.issues] == ["Unknown kind 'Weird'; row skipped."]


def test_blank_rows_and_untagged_rows():
    rows = [
        [],
        ["", "", ""],
        ["Interest", "Header", "Currency", "Date", "Description", "Amount"],
        ["", "Data", "USD", "2024-02-01", "orphan", "1"],
        ["Interest", "Data", "USD", "2024-02-02", "ok", "2"],
    ]
    model, report = IbkrStatementParser().parse_rows(rows)
    assert model.row_count("Interest") == 1
    assert report.issues[0].line_no == 4
    assert "without section tag" in report.issues[0].message


def test_parse_bytes_csv_with_bom():
    raw = (
        "\ufeffInterest,Header,Currency,Date,Description,Amount\n"
        "Interest,Data,SGD,2024-01-31,SGD Credit Interest,4.56\n"
    ).encode("utf-8")
    model, report = IbkrStatementParser().parse_bytes(raw)

    assert model.row_count("Interest") == 1
    assert next(iter(model.iter_rows("Interest")))["Amount"] == "4.56"
    assert report.issues == []


def test_parse_bytes_reads_xlsx(tmp_path):
    import datetime as dt

    from openpyxl import Workbook

    wb = Workbook()
    ws = wb.active
    ws.append(["Dividends", "Header", "Currency", "Date", "Description", "Amount"])
    ws.append(
        ["Dividends", "Data", "USD", dt.datetime(2024, 5, 2), "KO(US1912161007) Div", 12.5]
    )
    ws.append(["Dividends", "Data", "USD", dt.date(2024, 6, 3), "KO(US1912161007) Div", 3.0])
    path = tmp_path / "statement.xlsx"
    wb.save(path)

    model, report = IbkrStatementParser().parse_file(path)
    rows = list(model.iter_rows("Dividends"))
    assert [r["Date"] for r in rows] == ["2024-05-02", "2024-06-03"]
    assert [r["Amount"] for r in rows] == ["12.5", "3"]
    assert report.issues == []
