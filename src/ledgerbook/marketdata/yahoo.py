from __future__ import annotations

import datetime as dt
import logging
from decimal import Decimal
from typing import Any, Callable

import pandas as pd
import yfinance as yf

from .base import Observation

logger = logging.getLogger(__name__)


class YahooMarketData:
    """Daily closes from Yahoo Finance via ``yfinance.Ticker.history``.

    ``ticker_factory`` builds the ticker object for a symbol; tests pass a fake.
    Provider errors are not caught here.
    """

    def __init__(self, ticker_factory: Callable[[str], Any] = yf.Ticker) -> None:
        self.ticker_factory = ticker_factory

    def historical_closes(
        self, symbol: str, start: dt.date, end: dt.date
    ) -> list[Observation]:
        # yfinance treats end as exclusive
        hist = self.ticker_factory(symbol).history(
            start=start.isoformat(),
            end=(end + dt.timedelta(days=1)).isoformat(),
            interval="1d",
            auto_adjust=False,
        )
        if hist is None or hist.empty or "Close" not in hist.columns:
            logger.debug("No history for %s between %s and %s", symbol, start, end)
            return []

        out: dict[dt.date, Decimal] = {}
        for ts, close in hist["Close"].items():
            if pd.isna(close):
                continue
            day = pd.Timestamp(ts).date()
            out[day] = Decimal(str(close))
        logger.debug("Fetched %d close(s) for %s", len(out), symbol)
        return sorted(out.items())
