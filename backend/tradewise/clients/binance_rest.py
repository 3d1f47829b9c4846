"""Binance spot REST client for candles and last prices."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import httpx

from signal_engine.models import Candle
from tradewise.clients.retry import RateLimiter, with_retry
from tradewise.errors import DataUnavailable


class BinanceMarketClient:
    """Market-data provider backed by the Binance public REST API."""

    MAX_LIMIT = 1000

    def __init__(
        self,
        base_url: str = "https://api.binance.com",
        timeout: float = 10.0,
        retry_attempts: int = 3,
        retry_backoff: float = 0.5,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.rate_limiter = RateLimiter()
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(self, endpoint: str, params: dict[str, Any]) -> Any:
        async def call() -> Any:
            await self.rate_limiter.acquire()
            client = await self._get_client()
            response = await client.get(endpoint, params=params)
            response.raise_for_status()
            return response.json()

        return await with_retry(
            call,
            description=f"GET {endpoint} {params.get('symbol', '')}",
            attempts=self.retry_attempts,
            backoff=self.retry_backoff,
            timeout=self.timeout,
        )

    async def get_candles(self, symbol: str, interval: str, limit: int = 200) -> list[Candle]:
        """
        Fetch the most recent candles, oldest first.

        Args:
            symbol: Trading pair (e.g., "BTCUSDT")
            interval: Candle interval (e.g., "15m", "1h")
            limit: Number of candles (max 1000)

        Raises:
            DataUnavailable: On timeout, HTTP failure or an unreadable payload.
        """
        params = {"symbol": symbol, "interval": interval, "limit": min(limit, self.MAX_LIMIT)}
        data = await self._request("/api/v3/klines", params)

        try:
            return [
                Candle(
                    symbol=symbol,
                    timeframe=interval,
                    open_time=datetime.fromtimestamp(item[0] / 1000, tz=timezone.utc),
                    open=Decimal(str(item[1])),
                    high=Decimal(str(item[2])),
                    low=Decimal(str(item[3])),
                    close=Decimal(str(item[4])),
                    volume=Decimal(str(item[5])),
                )
                for item in data
            ]
        except (TypeError, IndexError, ValueError, ArithmeticError) as e:
            raise DataUnavailable(f"Malformed kline payload for {symbol} {interval}: {e}") from e

    async def get_price(self, symbol: str) -> Decimal:
        """Latest traded price.

        Raises:
            DataUnavailable: On failure or an unreadable payload.
        """
        data = await self._request("/api/v3/ticker/price", {"symbol": symbol})
        try:
            return Decimal(str(data["price"]))
        except (TypeError, KeyError, ArithmeticError) as e:
            raise DataUnavailable(f"Malformed price payload for {symbol}: {e}") from e
