from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Protocol

Observation = tuple[dt.date, Decimal]


class MarketData(Protocol):
    """Source of daily historical closes for a provider symbol."""

    def historical_closes(
        self, symbol: str, start: dt.date, end: dt.date
    ) -> list[Observation]:
        """Closes in [start, end], ascending by date. May raise on provider errors."""
        ...
