"""Query and result-page models for the signal store."""

from datetime import datetime

from pydantic import BaseModel

from signal_engine.models import Signal, SignalStatus, SignalTier


class SignalQuery(BaseModel):
    """Filters for signal lookups; unset fields do not filter."""

    symbol: str | None = None
    tier: SignalTier | None = None
    status: SignalStatus | None = None
    start: datetime | None = None
    end: datetime | None = None


class SignalPage(BaseModel):
    """One page of query results, newest first."""

    items: list[Signal]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size
