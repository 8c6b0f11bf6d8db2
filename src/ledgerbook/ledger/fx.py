from __future__ import annotations

import bisect
import datetime as dt
import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from typing import Iterable, Protocol

from ledgerbook.marketdata import MarketData, Observation

from .domain import HistoricalFxRate
from .money import ONE

logger = logging.getLogger(__name__)

FxRequest = tuple[str, dt.date]

DEFAULT_WINDOW_PADDING_DAYS = 5
DEFAULT_MAX_WORKERS = 8


class FxRateCache(Protocol):
    def lookup_cached_fx_rate(
        self, currency: str, date: dt.date, to_currency: str
    ) -> Decimal | None: ...

    def cache_fx_rate(self, rate: HistoricalFxRate) -> None: ...


class MemoryFxCache:
    """In-process FX cache living as long as the object does."""

    def __init__(self) -> None:
        self._rates: dict[tuple[dt.date, str, str], Decimal] = {}

    def lookup_cached_fx_rate(
        self, currency: str, date: dt.date, to_currency: str
    ) -> Decimal | None:
        return self._rates.get((date, currency.upper(), to_currency.upper()))

    def cache_fx_rate(self, rate: HistoricalFxRate) -> None:
        key = (rate.date, rate.from_currency.upper(), rate.to_currency.upper())
        self._rates[key] = rate.rate

    def __len__(self) -> int:
        return len(self._rates)


def fx_pair_symbol(currency: str, base_currency: str) -> str:
    """Yahoo symbol quoting 1 unit of currency in base: ('USD', 'SGD') -> 'USDSGD=X'."""
    return f"{currency.upper()}{base_currency.upper()}=X"


class FxSeries:
    """Daily closes for one pair, answering nearest-date queries."""

    def __init__(self, observations: Iterable[Observation]):
        clean = {d: r for d, r in observations if r > 0}
        self.dates = sorted(clean)
        self.rates = [clean[d] for d in self.dates]

    def __len__(self) -> int:
        return len(self.dates)

    def nearest(self, date: dt.date) -> Decimal | None:
        """Rate of the observation closest to date; ties go to the earlier one."""
        if not self.dates:
            return None
        pos = bisect.bisect_left(self.dates, date)
        if pos < len(self.dates) and self.dates[pos] == date:
            return self.rates[pos]
        if pos == 0:
            return self.rates[0]
        if pos == len(self.dates):
            return self.rates[-1]
        before = date - self.dates[pos - 1]
        after = self.dates[pos] - date
        return self.rates[pos - 1] if before <= after else self.rates[pos]


class HistoricalFxResolver:
    """Resolves native -> base FX rates for (currency, date) pairs.

    Cached pairs are answered from ``cache``; the rest are fetched with one
    market-data call per currency covering the padded date span. Fetches run
    concurrently; a failing currency is logged and its pairs are left out of the
    result. Nothing here raises to the caller.
    """

    def __init__(
        self,
        market_data: MarketData,
        cache: FxRateCache,
        *,
        base_currency: str = "SGD",
        max_workers: int = DEFAULT_MAX_WORKERS,
        window_padding_days: int = DEFAULT_WINDOW_PADDING_DAYS,
    ):
        self.market_data = market_data
        self.cache = cache
        self.base_currency = base_currency.upper()
        self.max_workers = max_workers
        self.padding = dt.timedelta(days=window_padding_days)

    def resolve(self, requests: Iterable[FxRequest]) -> dict[FxRequest, Decimal]:
        result: dict[FxRequest, Decimal] = {}
        missing: dict[str, set[dt.date]] = defaultdict(set)

        for currency, date in requests:
            ccy = currency.upper()
            key = (ccy, date)
            if key in result or date in missing.get(ccy, ()):
                continue
            if ccy == self.base_currency:
                result[key] = ONE
                continue
            cached = self.cache.lookup_cached_fx_rate(ccy, date, self.base_currency)
            if cached is not None:
                result[key] = cached
                continue
            missing[ccy].add(date)

        if not missing:
            return result

        logger.debug(
            "Fetching FX for %d currenc(ies): %s",
            len(missing),
            {c: len(ds) for c, ds in missing.items()},
        )
        workers = max(1, min(len(missing), self.max_workers))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                ccy: pool.submit(self._fetch_series, ccy, dates)
                for ccy, dates in missing.items()
            }

        for ccy, fut in futures.items():
            series = fut.result()
            if series is None:
                continue
            for date in sorted(missing[ccy]):
                rate = series.nearest(date)
                if rate is None:
                    logger.warning("No FX observation for %s near %s", ccy, date)
                    continue
                result[(ccy, date)] = rate
                # Cache writes stay on the calling thread
                self.cache.cache_fx_rate(
                    HistoricalFxRate(date, ccy, self.base_currency, rate)
                )
        return result

    def _fetch_series(self, currency: str, dates: set[dt.date]) -> FxSeries | None:
        symbol = fx_pair_symbol(currency, self.base_currency)
        start = min(dates) - self.padding
        end = max(dates) + self.padding
        try:
            observations = self.market_data.historical_closes(symbol, start, end)
        except Exception:
            logger.exception("FX fetch failed for %s (%s..%s)", symbol, start, end)
            return None
        return FxSeries(observations)

    def seed(self, rates: Iterable[HistoricalFxRate]) -> int:
        """Cache statement-implied rates for pairs that have none yet."""
        written = 0
        for r in rates:
            if r.to_currency.upper() != self.base_currency or r.rate <= 0:
                continue
            existing = self.cache.lookup_cached_fx_rate(
                r.from_currency, r.date, self.base_currency
            )
            if existing is not None:
                continue
            self.cache.cache_fx_rate(r)
            written += 1
        if written:
            logger.info("Seeded %d statement-implied FX rate(s)", written)
        return written
