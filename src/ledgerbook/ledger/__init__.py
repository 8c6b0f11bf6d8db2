from .domain import (
    Action,
    HistoricalFxRate,
    Import,
    IncomeEvent,
    IncomeType,
    LedgerSnapshot,
    ParsedStatement,
    PortfolioSummary,
    Position,
    Trade,
)
from .errors import (
    ConfigError,
    EmptyStatementError,
    LedgerError,
    LedgerInvariantError,
    UnknownRecordError,
)
from .extract import (
    parse_forex_rates,
    parse_income,
    parse_statement_period,
    parse_trades,
)
from .fx import FxSeries, HistoricalFxResolver, MemoryFxCache, fx_pair_symbol
from .importer import ImportReconciler
from .positions import PositionLedger, fold
from .reconcile import BrokerSummary, compare_realized, parse_performance_summary
from .report_sink import ExcelLedgerSink, LedgerSink
from .service import LedgerService

__all__ = [
    "Action",
    "HistoricalFxRate",
    "Import",
    "IncomeEvent",
    "IncomeType",
    "LedgerSnapshot",
    "ParsedStatement",
    "PortfolioSummary",
    "Position",
    "Trade",
    "ConfigError",
    "EmptyStatementError",
    "LedgerError",
    "LedgerInvariantError",
    "UnknownRecordError",
    "parse_forex_rates",
    "parse_income",
    "parse_statement_period",
    "parse_trades",
    "FxSeries",
    "HistoricalFxResolver",
    "MemoryFxCache",
    "fx_pair_symbol",
    "ImportReconciler",
    "PositionLedger",
    "fold",
    "BrokerSummary",
    "compare_realized",
    "parse_performance_summary",
    "ExcelLedgerSink",
    "LedgerSink",
    "LedgerService",
]
