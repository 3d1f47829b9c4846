"""REST API routes."""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from tradewise.errors import DataUnavailable, InvalidTransition
from tradewise.models import Signal, SignalQuery, SignalStatus, SignalTier, TraderPerformance
from tradewise.services import PipelineService

logger = logging.getLogger(__name__)

router = APIRouter()


# Response models
class SignalResponse(BaseModel):
    """Signal response model."""

    id: int
    symbol: str
    direction: str
    origin: str
    entry_price: float
    stop_loss: float
    take_profit: float
    score: int
    tier: str
    status: str
    confidence: float
    risk_reward: float
    regime: str
    reason: str
    created_at: datetime
    outcome_at: Optional[datetime] = None
    final_price: Optional[float] = None
    pnl_percent: Optional[float] = None
    notes: Optional[str] = None

    @classmethod
    def from_signal(cls, s: Signal) -> "SignalResponse":
        return cls(
            id=s.id,
            symbol=s.symbol,
            direction=s.direction.value,
            origin=s.origin,
            entry_price=float(s.entry_price),
            stop_loss=float(s.stop_loss),
            take_profit=float(s.take_profit),
            score=s.score,
            tier=s.tier.value,
            status=s.status.value,
            confidence=s.confidence,
            risk_reward=s.risk_reward,
            regime=s.regime,
            reason=s.reason,
            created_at=s.created_at,
            outcome_at=s.outcome_at,
            final_price=float(s.final_price) if s.final_price is not None else None,
            pnl_percent=float(s.pnl_percent) if s.pnl_percent is not None else None,
            notes=s.notes,
        )


class SignalPageResponse(BaseModel):
    items: list[SignalResponse]
    total: int
    page: int
    page_size: int
    pages: int


class CloseSignalRequest(BaseModel):
    """Manual close request; the current price is used when final_price is omitted."""

    final_price: Optional[Decimal] = None
    notes: Optional[str] = None


class CopyOrderResponse(BaseModel):
    id: Optional[int] = None
    trader_id: int
    order_id: str
    symbol: str
    side: str
    position_side: str
    action_type: str
    executed_qty: float
    avg_price: float
    total_value: float
    realized_pnl: Optional[float] = None
    order_time: datetime


class TraderPerformanceResponse(BaseModel):
    trader_id: int
    trader_name: str
    total_orders: int
    profitable_orders: int
    unprofitable_orders: int
    total_profit: float
    total_loss: float
    net_profit: float
    win_rate: float
    profit_factor: Optional[float] = None
    avg_win: float
    avg_loss: float
    largest_loss: float
    first_order_time: Optional[datetime] = None
    last_order_time: Optional[datetime] = None
    risk_level: str

    @classmethod
    def from_performance(cls, stats: TraderPerformance) -> "TraderPerformanceResponse":
        return cls(**stats.model_dump(mode="json"))


class TraderResponse(BaseModel):
    id: int
    name: str
    portfolio_id: str
    enabled: bool
    today_order_count: int
    total_order_count: int
    last_order_date: Optional[date] = None
    last_order_time: Optional[datetime] = None
    last_check_time: Optional[datetime] = None


class CleanupResponse(BaseModel):
    removed: int
    entries: int


def get_pipeline(request: Request) -> PipelineService:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not running")
    return pipeline


@router.post("/analysis/{symbol}")
async def trigger_analysis(symbol: str, request: Request):
    """Run one analysis cycle for a single symbol now."""
    return await get_pipeline(request).trigger_analysis(symbol)


@router.post("/orders/scan")
async def trigger_order_scan(request: Request):
    """Scan all enabled traders now."""
    return await get_pipeline(request).trigger_order_scan()


@router.get("/signals", response_model=SignalPageResponse)
async def query_signals(
    request: Request,
    symbol: Optional[str] = Query(None, description="Filter by symbol"),
    tier: Optional[SignalTier] = Query(None, description="Filter by tier"),
    status: Optional[SignalStatus] = Query(None, description="Filter by status"),
    start: Optional[datetime] = Query(None, description="Created at or after"),
    end: Optional[datetime] = Query(None, description="Created at or before"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
):
    """Query stored signals, newest first."""
    query = SignalQuery(symbol=symbol, tier=tier, status=status, start=start, end=end)
    result = await get_pipeline(request).query_signals(query, page, page_size)
    return SignalPageResponse(
        items=[SignalResponse.from_signal(s) for s in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        pages=result.pages,
    )


@router.get("/signals/stats")
async def signal_stats(request: Request, symbol: Optional[str] = Query(None)):
    """Counts by status and tier, average pnl of closed signals."""
    return await get_pipeline(request).signal_stats(symbol)


@router.get("/signals/{signal_id}", response_model=SignalResponse)
async def get_signal(signal_id: int, request: Request):
    """Get a specific signal by ID."""
    signal = await get_pipeline(request).get_signal(signal_id)
    if signal is None:
        raise HTTPException(status_code=404, detail="Signal not found")
    return SignalResponse.from_signal(signal)


@router.post("/signals/{signal_id}/close", response_model=SignalResponse)
async def close_signal(signal_id: int, request: Request, body: Optional[CloseSignalRequest] = None):
    """Manually close a signal."""
    body = body or CloseSignalRequest()
    try:
        signal = await get_pipeline(request).close_signal(signal_id, body.final_price, body.notes)
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except DataUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    if signal is None:
        raise HTTPException(status_code=404, detail="Signal not found")
    return SignalResponse.from_signal(signal)


@router.post("/cache/cleanup", response_model=CleanupResponse)
async def cleanup_cache(request: Request):
    pipeline = get_pipeline(request)
    removed = await pipeline.cleanup_cache()
    return CleanupResponse(removed=removed, entries=pipeline.market_data.size)


@router.post("/filter/reset")
async def reset_filter(request: Request):
    """Clear cooldowns and today's quota counters."""
    return await get_pipeline(request).reset_filter_state()


@router.get("/filter/stats")
async def filter_stats(request: Request):
    return get_pipeline(request).filter_stats()


@router.get("/diagnostics")
async def diagnostics(request: Request):
    """Per-symbol counters plus cache, filter, job and outbox state."""
    return get_pipeline(request).diagnostics()


@router.get("/orders", response_model=list[CopyOrderResponse])
async def recent_orders(
    request: Request,
    trader_id: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
):
    """Recently ingested copy orders."""
    orders = await get_pipeline(request).recent_orders(limit, trader_id)
    return [
        CopyOrderResponse(
            id=o.id,
            trader_id=o.trader_id,
            order_id=o.order_id,
            symbol=o.symbol,
            side=o.side,
            position_side=o.position_side,
            action_type=o.action_type.value,
            executed_qty=float(o.executed_qty),
            avg_price=float(o.avg_price),
            total_value=float(o.total_value),
            realized_pnl=float(o.realized_pnl) if o.realized_pnl is not None else None,
            order_time=o.order_time,
        )
        for o in orders
    ]


@router.get("/traders", response_model=list[TraderResponse])
async def traders(request: Request):
    """Followed traders with their order counters."""
    return [
        TraderResponse(**t.model_dump(exclude={"monitor_interval_seconds"}))
        for t in await get_pipeline(request).traders()
    ]


@router.get("/traders/performance", response_model=list[TraderPerformanceResponse])
async def traders_performance(request: Request):
    """Realized-PnL summary for every followed trader, best net profit first."""
    return [
        TraderPerformanceResponse.from_performance(s)
        for s in await get_pipeline(request).trader_performance()
    ]


@router.get("/traders/{trader_id}/performance", response_model=TraderPerformanceResponse)
async def trader_performance(trader_id: int, request: Request):
    """Realized-PnL summary for one trader."""
    stats = await get_pipeline(request).trader_performance(trader_id)
    if not stats:
        raise HTTPException(status_code=404, detail="Trader not found")
    return TraderPerformanceResponse.from_performance(stats[0])
