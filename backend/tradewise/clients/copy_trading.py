"""Copy-trading provider client: order history of lead portfolios."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from tradewise.clients.retry import RateLimiter, with_retry
from tradewise.errors import DataUnavailable

logger = logging.getLogger(__name__)


class CopyTradingClient:
    """Fetches recent orders of a lead portfolio.

    The provider takes a POSTed JSON body ``{portfolioId, startTime, endTime,
    pageSize}`` (epoch milliseconds) and answers ``{success, data: {list}}``.
    """

    def __init__(
        self,
        base_url: str,
        order_endpoint: str,
        window_hours: int = 12,
        page_size: int = 10,
        timeout: float = 10.0,
        retry_attempts: int = 3,
        retry_backoff: float = 0.5,
    ):
        self.base_url = base_url
        self.order_endpoint = order_endpoint
        self.window = timedelta(hours=window_hours)
        self.page_size = page_size
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.rate_limiter = RateLimiter(calls_per_minute=120)
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={
                    "Content-Type": "application/json",
                    "Referer": f"{self.base_url}/",
                    "Origin": self.base_url,
                },
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def time_window(self, now: datetime | None = None) -> tuple[datetime, datetime]:
        """Bounded window around ``now`` to query."""
        now = now or datetime.now(timezone.utc)
        return now - self.window, now + self.window

    async def get_trader_orders(
        self,
        portfolio_id: str,
        start: datetime,
        end: datetime,
    ) -> list[dict[str, Any]]:
        """
        Fetch raw order records for one portfolio.

        Raises:
            DataUnavailable: On timeout, HTTP failure or an unsuccessful response.
        """
        body = {
            "portfolioId": portfolio_id,
            "startTime": int(start.timestamp() * 1000),
            "endTime": int(end.timestamp() * 1000),
            "pageSize": self.page_size,
        }

        async def call() -> Any:
            await self.rate_limiter.acquire()
            client = await self._get_client()
            response = await client.post(self.order_endpoint, json=body)
            response.raise_for_status()
            return response.json()

        payload = await with_retry(
            call,
            description=f"order history {portfolio_id}",
            attempts=self.retry_attempts,
            backoff=self.retry_backoff,
            timeout=self.timeout,
        )

        if not isinstance(payload, dict) or not payload.get("success"):
            raise DataUnavailable(f"Order history for {portfolio_id} unsuccessful: {str(payload)[:200]}")
        records = (payload.get("data") or {}).get("list") or []
        if not isinstance(records, list):
            raise DataUnavailable(f"Order history for {portfolio_id}: 'list' is not an array")
        logger.debug(f"Portfolio {portfolio_id}: {len(records)} order records")
        return records
