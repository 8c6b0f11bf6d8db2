"""
Ingest Interactive Brokers (IBKR) Activity Statements into a persistent ledger
and maintain average-cost positions valued in a base currency.

Usage
-----
    # Import one or more statements (CSV or XLSX)
    ledgerbook --db sqlite:///portfolio.db ingest Activity_2023.csv Activity_2024.csv

    # Retry historical FX for trades still stored with rate 1
    ledgerbook --db sqlite:///portfolio.db backfill-fx

    # Remove an import and rebuild positions
    ledgerbook --db sqlite:///portfolio.db delete-import 3

    # Export positions, trades and income to a workbook
    ledgerbook --db sqlite:///portfolio.db export --output ledger.xlsx
"""

from __future__ import annotations

import argparse
import dataclasses
import datetime as dt
import enum
import json
import logging
import sys
from decimal import Decimal
from pathlib import Path
from typing import Any

from ledgerbook.config import LedgerSettings
from ledgerbook.ledger import (
    EmptyStatementError,
    ExcelLedgerSink,
    HistoricalFxResolver,
    LedgerError,
    LedgerService,
)
from ledgerbook.ledger.extract import ALL_SCOPES_SET
from ledgerbook.logging import configure_logging
from ledgerbook.marketdata import MarketData, YahooMarketData
from ledgerbook.store import SqlLedgerStore

logger = logging.getLogger(__name__)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, (dt.date, dt.datetime)):
        return obj.isoformat()
    if isinstance(obj, enum.Enum):
        return obj.value
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def emit(result: Any) -> None:
    payload = dataclasses.asdict(result) if dataclasses.is_dataclass(result) else result
    print(json.dumps(payload, default=_json_default, indent=2))


def build_service(
    settings: LedgerSettings, market_data: MarketData | None = None
) -> LedgerService:
    store = SqlLedgerStore.from_url(settings.database_url)
    resolver = HistoricalFxResolver(
        market_data or YahooMarketData(),
        store,
        base_currency=settings.base_currency,
        max_workers=settings.fx_max_workers,
        window_padding_days=settings.fx_window_padding_days,
    )
    return LedgerService(store, resolver, settings)


def cmd_ingest(service: LedgerService, settings: LedgerSettings, args) -> None:
    results = []
    for path in args.input:
        logger.info("Reading %s", path)
        raw = Path(path).read_bytes()
        try:
            res = service.ingest(raw, settings.account_id, Path(path).name)
        except EmptyStatementError as exc:
            logger.error("%s", exc)
            for w in exc.warnings:
                logger.error("  %s", w)
            raise SystemExit(2) from exc
        for w in res.warnings:
            logger.warning("%s: %s", Path(path).name, w)
        results.append({"file": str(path), **dataclasses.asdict(res)})
    emit(results)


def cmd_recompute(service: LedgerService, settings: LedgerSettings, args) -> None:
    res = service.recompute_positions(settings.account_id)
    emit(dataclasses.replace(res, realizations=()))


def cmd_delete_import(service: LedgerService, settings: LedgerSettings, args) -> None:
    res = service.delete_import(settings.account_id, args.import_id)
    emit(dataclasses.replace(res, realizations=()))


def cmd_delete_trade(service: LedgerService, settings: LedgerSettings, args) -> None:
    res = service.delete_trade(settings.account_id, args.trade_id)
    emit(dataclasses.replace(res, realizations=()))


def cmd_backfill_fx(service: LedgerService, settings: LedgerSettings, args) -> None:
    res = service.backfill_fx_rates(settings.account_id)
    emit(
        {
            "trades_updated": res.trades_updated,
            "income_updated": res.income_updated,
            "positions_updated": res.recompute.positions_updated,
            "total_realized_pnl_base": res.recompute.total_realized_pnl_base,
        }
    )


def cmd_export(service: LedgerService, settings: LedgerSettings, args) -> None:
    snapshot = service.snapshot(settings.account_id)
    sink = ExcelLedgerSink(out_path=Path(args.output), base_currency=settings.base_currency)
    out_path = sink.write(snapshot)
    logger.info("Wrote workbook to %s", out_path)
    emit({"output": str(out_path), "positions": len(snapshot.positions)})


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ledgerbook",
        description="Average-cost position ledger from IBKR Activity Statements",
    )
    p.add_argument(
        "--db",
        type=str,
        default=LedgerSettings.database_url,
        help="SQLAlchemy database URL (default: %(default)s)",
    )
    p.add_argument(
        "--account",
        type=str,
        default=LedgerSettings.account_id,
        help="Account identifier the ledger is kept under",
    )
    p.add_argument(
        "--base-currency",
        type=str,
        default=LedgerSettings.base_currency,
        help="Currency positions are valued in (ISO code)",
    )
    p.add_argument(
        "--asset-scope",
        type=str,
        default=LedgerSettings.asset_scope,
        choices=sorted(ALL_SCOPES_SET),
        help="Asset filter scope for trades",
    )
    p.add_argument(
        "--fx-workers",
        type=int,
        default=LedgerSettings.fx_max_workers,
        help="Maximum concurrent FX history fetches",
    )
    p.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity: -v (INFO), -vv (DEBUG)",
    )

    sub = p.add_subparsers(dest="command", required=True)

    sp = sub.add_parser("ingest", help="Import Activity Statement files")
    sp.add_argument("input", type=str, nargs="+", help="CSV or XLSX statement paths")
    sp.set_defaults(func=cmd_ingest)

    sp = sub.add_parser("recompute", help="Rebuild positions from stored trades")
    sp.set_defaults(func=cmd_recompute)

    sp = sub.add_parser("delete-import", help="Delete an import and its rows")
    sp.add_argument("import_id", type=int)
    sp.set_defaults(func=cmd_delete_import)

    sp = sub.add_parser("delete-trade", help="Delete a single trade")
    sp.add_argument("trade_id", type=int)
    sp.set_defaults(func=cmd_delete_trade)

    sp = sub.add_parser(
        "backfill-fx", help="Retry historical FX for rows stored with rate 1"
    )
    sp.set_defaults(func=cmd_backfill_fx)

    sp = sub.add_parser("export", help="Write the ledger to an XLSX workbook")
    sp.add_argument("--output", type=str, required=True, help="Output .xlsx path")
    sp.set_defaults(func=cmd_export)
    return p


def main(argv: list[str] | None = None, market_data: MarketData | None = None) -> None:
    parser = build_argparser()
    args = parser.parse_args(argv)

    verbosity_map = {
        0: logging.WARNING,
        1: logging.INFO,
        2: logging.DEBUG,
    }
    level = verbosity_map.get(min(args.verbose, 2), logging.WARNING)
    configure_logging(level=level)

    try:
        settings = LedgerSettings.from_args(args)
        service = build_service(settings, market_data)
        args.func(service, settings, args)
    except LedgerError as exc:
        logger.error("%s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main(sys.argv[1:])
