from .base import MarketData, Observation
from .yahoo import YahooMarketData

__all__ = ["MarketData", "Observation", "YahooMarketData"]
