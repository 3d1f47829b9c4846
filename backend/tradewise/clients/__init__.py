"""Upstream API clients."""

from tradewise.clients.binance_rest import BinanceMarketClient
from tradewise.clients.copy_trading import CopyTradingClient
from tradewise.clients.retry import RateLimiter, with_retry

__all__ = [
    "BinanceMarketClient",
    "CopyTradingClient",
    "RateLimiter",
    "with_retry",
]
