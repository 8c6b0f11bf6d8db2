from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Protocol

from openpyxl import Workbook
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from .domain import LedgerSnapshot

DATE_FMT = "YYYY-MM-DD"
QTY_FMT = "0.########"
RATE_FMT = "0.00000000"

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "JPY": "¥", "SGD": "S$"}


class LedgerSink(Protocol):
    def write(self, snapshot: LedgerSnapshot) -> Path:  # returns written file path
        ...


def money_fmt_for_currency(ccy: str) -> str:
    cur = (ccy or "").upper()
    sym = CURRENCY_SYMBOLS.get(cur)
    if sym:
        return f'"{sym}"#,##0.00'
    return f'"{cur}" #,##0.00'


def _num(value: Decimal | None) -> float | None:
    return None if value is None else float(value)


def autosize(sheet: Worksheet, max_width: int = 60, min_width: int = 10) -> None:
    for col in range(1, sheet.max_column + 1):
        max_len = 0
        for row in range(1, sheet.max_row + 1):
            v = sheet.cell(row=row, column=col).value
            if v is None:
                continue
            s = v.strftime("%Y-%m-%d") if hasattr(v, "strftime") else str(v)
            max_len = max(max_len, len(s))
        width = min(max_width, max(min_width, max_len + 2))
        sheet.column_dimensions[get_column_letter(col)].width = width


@dataclass
class ExcelLedgerSink:
    out_path: Path
    base_currency: str = "SGD"

    def write(self, snapshot: LedgerSnapshot) -> Path:
        out_path = Path(self.out_path)
        base = (snapshot.base_currency or self.base_currency).upper()
        base_fmt = money_fmt_for_currency(base)

        wb = Workbook()
        wb.remove(wb.active)

        # Summary
        ws = wb.create_sheet(title="Summary")
        ws.append(["Metric", "Amount"])
        open_positions = [p for p in snapshot.positions if p.is_open]
        ws.append(["Base Currency", base])
        ws.append(["Open Positions", len(open_positions)])
        ws.append(
            [
                f"Cost of Open Positions ({base})",
                float(sum((p.total_cost_base for p in open_positions), Decimal("0"))),
            ]
        )
        ws.cell(row=ws.max_row, column=2).number_format = base_fmt
        if snapshot.summary is not None:
            ws.append(
                [
                    f"Total Realized P/L ({base})",
                    float(snapshot.summary.total_realized_pnl_base),
                ]
            )
            ws.cell(row=ws.max_row, column=2).number_format = base_fmt
            ws.append(
                [
                    "Total Realized P/L (Trade Currency, mixed)",
                    float(snapshot.summary.total_realized_pnl),
                ]
            )
        unresolved = sum(
            1 for t in snapshot.trades if t.fx_unresolved and t.currency != base
        )
        ws.append(["Trades Without Historical FX", unresolved])

        # Positions
        ws = wb.create_sheet(title="Positions")
        ws.append(
            [
                "Symbol",
                "Currency",
                "Quantity",
                "Average Cost",
                "Total Cost",
                f"Total Cost ({base})",
                "Average FX Rate",
                "Realized P/L",
                f"Realized P/L ({base})",
            ]
        )
        for p in sorted(snapshot.positions, key=lambda p: p.symbol):
            ws.append(
                [
                    p.symbol,
                    p.currency,
                    float(p.quantity),
                    float(p.avg_cost),
                    float(p.total_cost),
                    float(p.total_cost_base),
                    float(p.avg_fx_rate),
                    float(p.realized_pnl),
                    float(p.realized_pnl_base),
                ]
            )
            r = ws.max_row
            tcy_fmt = money_fmt_for_currency(p.currency)
            ws.cell(row=r, column=3).number_format = QTY_FMT
            for c in (4, 5, 8):
                ws.cell(row=r, column=c).number_format = tcy_fmt
            for c in (6, 9):
                ws.cell(row=r, column=c).number_format = base_fmt
            ws.cell(row=r, column=7).number_format = RATE_FMT

        # Trades
        ws = wb.create_sheet(title="Trades")
        ws.append(
            [
                "Id",
                "Import",
                "Trade Date",
                "Symbol",
                "Action",
                "Quantity",
                "Price",
                "Currency",
                "Commission",
                "Fees",
                "FX Rate",
                "Broker Realized P/L",
            ]
        )
        for t in snapshot.trades:
            ws.append(
                [
                    t.id,
                    t.import_id,
                    t.trade_date,
                    t.symbol,
                    t.action.value,
                    float(t.quantity),
                    float(t.price),
                    t.currency,
                    float(t.commission),
                    float(t.fees),
                    float(t.fx_rate),
                    _num(t.realized_pnl),
                ]
            )
            r = ws.max_row
            tcy_fmt = money_fmt_for_currency(t.currency)
            ws.cell(row=r, column=3).number_format = DATE_FMT
            ws.cell(row=r, column=6).number_format = QTY_FMT
            for c in (7, 9, 10, 12):
                ws.cell(row=r, column=c).number_format = tcy_fmt
            ws.cell(row=r, column=11).number_format = RATE_FMT

        # Income
        ws = wb.create_sheet(title="Income")
        ws.append(
            [
                "Date",
                "Type",
                "Symbol",
                "Currency",
                "Description",
                "Amount",
                "FX Rate",
                f"Amount ({base})",
            ]
        )
        for e in snapshot.income:
            ws.append(
                [
                    e.date,
                    e.income_type.value,
                    e.symbol or "",
                    e.currency,
                    e.description,
                    float(e.amount),
                    float(e.fx_rate),
                    float(e.amount * e.fx_rate),
                ]
            )
            r = ws.max_row
            ws.cell(row=r, column=1).number_format = DATE_FMT
            ws.cell(row=r, column=6).number_format = money_fmt_for_currency(e.currency)
            ws.cell(row=r, column=7).number_format = RATE_FMT
            ws.cell(row=r, column=8).number_format = base_fmt

        # Imports
        ws = wb.create_sheet(title="Imports")
        ws.append(["Id", "File", "Period Start", "Period End", "Trades", "Dividends"])
        for imp in snapshot.imports:
            ws.append(
                [
                    imp.id,
                    imp.filename,
                    imp.statement_start,
                    imp.statement_end,
                    imp.trade_count,
                    imp.dividend_count,
                ]
            )
            r = ws.max_row
            ws.cell(row=r, column=3).number_format = DATE_FMT
            ws.cell(row=r, column=4).number_format = DATE_FMT

        for _ws in wb.worksheets:
            autosize(_ws)

        out_path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(out_path)
        return out_path
