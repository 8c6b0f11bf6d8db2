from __future__ import annotations

import csv
import datetime as dt
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Sequence

from openpyxl import load_workbook

RowDict = dict[str, str]

logger = logging.getLogger(__name__)

SECTION_STATEMENT = "Statement"
SECTION_TRADES = "Trades"
SECTION_DIVIDENDS = "Dividends"
SECTION_INTEREST = "Interest"
SECTION_PERFORMANCE = "Realized & Unrealized Performance Summary"

RECOGNIZED_SECTIONS = frozenset(
    {
        SECTION_STATEMENT,
        SECTION_TRADES,
        SECTION_DIVIDENDS,
        SECTION_INTEREST,
        SECTION_PERFORMANCE,
    }
)

# Row kinds that carry no per-row data and are dropped without a warning
SILENT_KINDS = frozenset({"Total", "SubTotal", "Notes"})

_XLSX_SIGNATURE = b"PK\x03\x04"


@dataclass(frozen=True)
class SectionRow:
    line_no: int
    values: tuple[str, ...]


@dataclass(frozen=True)
class Subtable:
    """A single subtable inside a section (same header; many rows)."""

    header: tuple[str, ...]
    rows: tuple[SectionRow, ...]

    def as_dicts(self) -> Iterator[RowDict]:
        for row in self.rows:
            yield dict(zip(self.header, row.values))


@dataclass
class StatementModel:
    """
    In-memory representation of one activity statement export.

    sections[section_name] -> list of subtables, in file order
    """

    sections: dict[str, list[Subtable]] = field(default_factory=dict)

    def get_subtables(self, section_name: str) -> list[Subtable]:
        return self.sections.get(section_name, [])

    def iter_rows(self, section_name: str) -> Iterator[RowDict]:
        """Iterate row dicts across all subtables for a section."""
        for sub in self.get_subtables(section_name):
            yield from sub.as_dicts()

    def row_count(self, section_name: str) -> int:
        return sum(len(sub.rows) for sub in self.get_subtables(section_name))


@dataclass(frozen=True)
class ParseIssue:
    line_no: int
    message: str
    row_preview: Sequence[str] | None = None

    def describe(self) -> str:
        return f"line {self.line_no}: {self.message}"


@dataclass
class ParseReport:
    """Non-fatal diagnostics collected during parsing."""

    issues: list[ParseIssue] = field(default_factory=list)

    def warn(self, line_no: int, msg: str, row: Sequence[str] | None = None) -> None:
        self.issues.append(ParseIssue(line_no, msg, row))

    def messages(self) -> list[str]:
        return [i.describe() for i in self.issues]

    def log_with(self, log: logging.Logger) -> None:
        for i in self.issues:
            if i.row_preview is not None:
                log.warning("line %d: %s | row=%s", i.line_no, i.message, i.row_preview)
            else:
                log.warning("line %d: %s", i.line_no, i.message)


class IbkrStatementParser:
    """
    Maps raw statement rows -> StatementModel (+ ParseReport).

    Row shape:
        row[0] = section name (e.g., "Trades", "Dividends", ...)
        row[1] = kind ("Header" | "Data" | "Total" | ...)
        row[2:] = header fields (when kind=Header) or data fields (when kind=Data)

    A "Header" row opens a new subtable for its section. "Data" rows belong to
    that subtable while the leading column keeps naming the same section; the
    first row with a different non-empty leading column closes it. Sections not
    listed in ``sections`` are ignored entirely.
    """

    def __init__(self, sections: Iterable[str] = RECOGNIZED_SECTIONS) -> None:
        self.sections = frozenset(sections)

    def parse_file(self, path: str | Path) -> tuple[StatementModel, ParseReport]:
        return self.parse_bytes(Path(path).read_bytes())

    def parse_bytes(self, raw: bytes) -> tuple[StatementModel, ParseReport]:
        if raw.startswith(_XLSX_SIGNATURE):
            return self.parse_rows(_iter_xlsx_rows(raw))
        return self.parse_text(raw.decode("utf-8-sig", errors="replace"))

    def parse_text(self, text: str) -> tuple[StatementModel, ParseReport]:
        return self.parse_rows(csv.reader(io.StringIO(text, newline="")))

    def parse_rows(
        self, rows: Iterable[Sequence[str]]
    ) -> tuple[StatementModel, ParseReport]:
        report = ParseReport()
        sections_acc: dict[str, list[_MutableSubtable]] = {}

        current_section: str | None = None
        current_subtable: _MutableSubtable | None = None
        line_no = 0

        for row in rows:
            line_no += 1

            if not row or all(not (c or "").strip() for c in row):
                continue

            # Strip BOM on first cell if present
            section = (row[0] or "").lstrip("\ufeff").strip()
            kind = (row[1] or "").strip() if len(row) > 1 else ""

            if section and section != current_section:
                # A different leading tag closes whatever section was open
                current_section = None
                current_subtable = None

            if section not in self.sections:
                if not section and current_subtable is not None:
                    report.warn(
                        line_no, "Row without section tag inside a section; skipped.", row
                    )
                continue

            if len(row) < 2:
                report.warn(line_no, "Malformed row (< 2 cells); skipped.", row)
                continue

            if kind == "Header":
                header = tuple((c or "").strip() for c in row[2:])
                header = _trim_trailing_blanks(header)
                if not header:
                    report.warn(
                        line_no,
                        "Header row with empty header; subtable created anyway.",
                        row,
                    )
                current_section = section
                current_subtable = _MutableSubtable(header=header)
                sections_acc.setdefault(section, []).append(current_subtable)
                continue

            if kind in SILENT_KINDS:
                continue

            if kind != "Data":
                report.warn(line_no, f"Unknown kind '{kind}'; row skipped.", row)
                continue

            if current_subtable is None:
                report.warn(
                    line_no, "Data row encountered before any header; row skipped.", row
                )
                continue

            payload = tuple((c or "") for c in row[2:])
            values = _fit_to_header(payload, current_subtable.header)
            if values is None:
                report.warn(
                    line_no,
                    f"{section} row has {len(payload)} fields, header has "
                    f"{len(current_subtable.header)}; row skipped.",
                    row,
                )
                continue
            current_subtable.rows.append(SectionRow(line_no=line_no, values=values))

        model = StatementModel(
            sections={
                sec: [sub.freeze() for sub in subtables]
                for sec, subtables in sections_acc.items()
            }
        )
        logger.debug(
            "Parsed %d line(s): %s",
            line_no,
            {sec: model.row_count(sec) for sec in model.sections},
        )
        return model, report


@dataclass
class _MutableSubtable:
    header: tuple[str, ...]
    rows: list[SectionRow] = field(default_factory=list)

    def freeze(self) -> Subtable:
        return Subtable(header=self.header, rows=tuple(self.rows))


def _trim_trailing_blanks(values: tuple[str, ...]) -> tuple[str, ...]:
    end = len(values)
    while end > 0 and not values[end - 1].strip():
        end -= 1
    return values[:end]


def _fit_to_header(
    data_vals: tuple[str, ...], header: tuple[str, ...]
) -> tuple[str, ...] | None:
    """Return the data cells aligned to the header, or None if the width is wrong.

    Trailing blank cells past the header width are padding and get dropped.
    """
    hlen = len(header)
    if len(data_vals) == hlen:
        return data_vals
    if len(data_vals) > hlen and not any(v.strip() for v in data_vals[hlen:]):
        return data_vals[:hlen]
    return None


def _cell_to_str(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, dt.datetime):
        if value.time() == dt.time(0, 0):
            return value.date().isoformat()
        return f"{value.date().isoformat()}, {value.time().isoformat()}"
    if isinstance(value, dt.date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _iter_xlsx_rows(raw: bytes) -> Iterator[list[str]]:
    wb = load_workbook(io.BytesIO(raw), read_only=True, data_only=True)
    try:
        for ws in wb.worksheets:
            for values in ws.iter_rows(values_only=True):
                yield [_cell_to_str(v) for v in values]
    finally:
        wb.close()
