"""Main application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path

# Configure logging FIRST, before any other imports
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)

# Reduce noise from third-party libraries (must be set before importing them)
logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from signal_engine.enhancer import SignalEnhancer
from signal_engine.fusion import SignalFusionEngine
from signal_engine.signal_filter import SignalFilter
from tradewise.api import router
from tradewise.clients import BinanceMarketClient, CopyTradingClient
from tradewise.config import Settings, get_settings, validate_settings
from tradewise.feature_flags import FeatureFlagStore
from tradewise.services import (
    AnalysisPipeline,
    LogMailSender,
    MarketDataCache,
    NotificationDispatcher,
    OrderMonitor,
    PipelineService,
    Scheduler,
    SignalLifecycleTracker,
    SmtpMailSender,
)
from tradewise.storage import (
    CopyOrderRepository,
    SignalRepository,
    SubscriberDirectory,
    TraderWatchRepository,
    cache,
    get_database,
    init_database,
)
from tradewise.storage.filter_state_cache import load_filter_state

# Daily summary check interval (seconds); the summary itself goes out once per day
SUMMARY_CHECK_INTERVAL = 300

logger = logging.getLogger(__name__)


def build_mail_sender(settings: Settings):
    if not settings.smtp_enabled:
        logger.warning("SMTP disabled - notifications will only be logged")
        return LogMailSender()
    return SmtpMailSender(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        mail_from=settings.mail_from,
    )


def build_pipeline(settings: Settings) -> tuple[PipelineService, list]:
    """Wire up all components.

    Returns:
        The pipeline service and the upstream clients that need closing on shutdown.
    """
    market_client = BinanceMarketClient(
        base_url=settings.market_data_base_url,
        timeout=settings.http_timeout_seconds,
        retry_attempts=settings.retry_attempts,
        retry_backoff=settings.retry_backoff_seconds,
    )
    copy_client = CopyTradingClient(
        base_url=settings.copy_trading_base_url,
        order_endpoint=settings.copy_trading_order_endpoint,
        window_hours=settings.copy_trading_window_hours,
        page_size=settings.copy_trading_page_size,
        timeout=settings.http_timeout_seconds,
        retry_attempts=settings.retry_attempts,
        retry_backoff=settings.retry_backoff_seconds,
    )

    market_data = MarketDataCache(
        market_client,
        ttl_ratio=settings.cache_ttl_ratio,
        grace_multiplier=settings.cache_grace_multiplier,
        fetch_timeout=settings.http_timeout_seconds * (settings.retry_attempts + 1),
    )
    signal_repo = SignalRepository()
    order_repo = CopyOrderRepository()
    trader_repo = TraderWatchRepository()
    signal_filter = SignalFilter(settings.filter_config())
    dispatcher = NotificationDispatcher(
        build_mail_sender(settings),
        retry_attempts=settings.notification_retry_attempts,
        retry_backoff=settings.notification_retry_backoff_seconds,
    )
    flags = FeatureFlagStore(Path(settings.feature_flags_path) if settings.feature_flags_path else None)

    analysis = AnalysisPipeline(
        market_data,
        signal_repo,
        signal_filter,
        dispatcher,
        fusion=SignalFusionEngine(settings.fusion_config()),
        enhancer=SignalEnhancer(settings.scoring_config()),
        benchmark_symbol=settings.benchmark_symbol,
        primary_timeframe=settings.primary_timeframe,
        candle_limit=settings.candle_limit,
        concurrency=settings.concurrency_limit,
        alert_recipients=settings.signal_alert_recipients,
    )
    lifecycle = SignalLifecycleTracker(
        signal_repo,
        market_data,
        horizon=timedelta(hours=settings.signal_horizon_hours),
        concurrency=settings.concurrency_limit,
    )
    order_monitor = OrderMonitor(
        copy_client,
        order_repo,
        trader_repo,
        SubscriberDirectory(),
        dispatcher,
        concurrency=settings.concurrency_limit,
    )

    pipeline = PipelineService(
        symbols=settings.symbols,
        analysis=analysis,
        lifecycle=lifecycle,
        order_monitor=order_monitor,
        market_data=market_data,
        signal_filter=signal_filter,
        signal_repo=signal_repo,
        order_repo=order_repo,
        trader_repo=trader_repo,
        dispatcher=dispatcher,
        flags=flags,
        scheduler=Scheduler(),
        alert_recipients=settings.signal_alert_recipients,
        daily_summary_hour_utc=settings.daily_summary_hour_utc,
    )
    return pipeline, [market_client, copy_client]


def schedule_jobs(pipeline: PipelineService, settings: Settings) -> None:
    scheduler = pipeline.scheduler
    scheduler.add("analysis", settings.analysis_interval_seconds, pipeline.analysis_tick, initial_delay=5)
    scheduler.add("lifecycle", settings.lifecycle_interval_seconds, pipeline.lifecycle_tick)
    scheduler.add("order_scan", settings.order_scan_interval_seconds, pipeline.order_scan_tick, initial_delay=10)
    scheduler.add("cache_cleanup", settings.cache_cleanup_interval_seconds, pipeline.cache_cleanup_tick)
    scheduler.add("daily_summary", SUMMARY_CHECK_INTERVAL, pipeline.daily_summary_tick)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting TradeWise pipeline...")

    settings = get_settings()
    validate_settings(settings)

    db_initialized = False
    cache_initialized = False
    clients: list = []
    pipeline: PipelineService | None = None

    try:
        # Initialize database with timeout
        try:
            await asyncio.wait_for(init_database(), timeout=30)
            db_initialized = True
            logger.info("Database initialized")
        except asyncio.TimeoutError:
            raise RuntimeError("Database initialization timed out after 30s")

        # Initialize Redis cache with timeout
        try:
            await asyncio.wait_for(cache.init_cache(), timeout=10)
            cache_initialized = True
            if cache.is_cache_available():
                logger.info("Redis cache initialized")
            else:
                logger.warning("Redis cache unavailable - filter state will not survive restarts")
        except asyncio.TimeoutError:
            logger.warning("Redis cache initialization timed out - running without caching")
            cache_initialized = True

        pipeline, clients = build_pipeline(settings)
        await load_filter_state(pipeline.signal_filter)

        pipeline.dispatcher.start()
        schedule_jobs(pipeline, settings)
        pipeline.scheduler.start()
        app.state.pipeline = pipeline
        logger.info(f"Pipeline started for {len(settings.symbols)} symbols: {', '.join(settings.symbols)}")

    except Exception as e:
        logger.error(f"Startup failed: {e}")
        if pipeline:
            await pipeline.scheduler.stop()
            await pipeline.dispatcher.stop(drain_timeout=0)
        for client in clients:
            await client.close()
        if cache_initialized:
            try:
                await cache.close_cache()
            except Exception as cleanup_err:
                logger.warning(f"Error closing cache: {cleanup_err}")
        if db_initialized:
            try:
                await get_database().close()
            except Exception as cleanup_err:
                logger.warning(f"Error closing database: {cleanup_err}")
        raise

    yield

    # Shutdown
    logger.info("Shutting down...")
    app.state.pipeline = None

    await pipeline.scheduler.stop()
    await pipeline.dispatcher.stop()
    for client in clients:
        await client.close()

    await cache.close_cache()

    try:
        await get_database().close()
        logger.info("Database connections closed")
    except Exception as e:
        logger.warning(f"Error closing database: {e}")

    logger.info("Shutdown complete")


app = FastAPI(
    title="TradeWise",
    description="Crypto signal pipeline and copy-trading order monitor",
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "TradeWise",
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    pipeline = getattr(app.state, "pipeline", None)
    return {
        "status": "healthy" if pipeline is not None else "starting",
        "cache": cache.is_cache_available(),
    }


def main():
    """Run the application."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "tradewise.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
