from .ibkr import (
    RECOGNIZED_SECTIONS,
    IbkrStatementParser,
    ParseIssue,
    ParseReport,
    SectionRow,
    StatementModel,
    Subtable,
)

__all__ = [
    "RECOGNIZED_SECTIONS",
    "IbkrStatementParser",
    "ParseIssue",
    "ParseReport",
    "SectionRow",
    "StatementModel",
    "Subtable",
]
