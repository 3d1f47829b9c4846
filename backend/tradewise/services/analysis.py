"""Analysis pipeline: candles -> detectors -> regime -> fusion -> scoring -> filter -> persist.

One cycle analyzes every configured symbol concurrently (bounded by a
semaphore), then runs the surviving candidates through the signal filter as
a single batch so that quota and cooldown decisions see the whole cycle.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Sequence

from signal_engine.detectors import Detector, create_all_detectors, required_timeframes
from signal_engine.detectors.features import last_atr
from signal_engine.enhancer import HIGHER_TIMEFRAMES, SignalEnhancer
from signal_engine.fusion import PriceContext, SignalFusionEngine
from signal_engine.models import (
    DetectorSignal,
    MultiTimeframeCandles,
    ScoredSignal,
    Signal,
    SignalStatus,
    SignalTier,
)
from signal_engine.regime import detect_regime
from signal_engine.signal_filter import SignalFilter, utc_now
from tradewise.errors import DataUnavailable, PersistenceError
from tradewise.feature_flags import FeatureFlags
from tradewise.services.market_data import MarketDataCache
from tradewise.services.notifications import NotificationDispatcher, render_signal_alert
from tradewise.storage import SignalRepository
from tradewise.storage.filter_state_cache import save_filter_state

logger = logging.getLogger(__name__)

ALERT_TIERS = (SignalTier.LEVEL_1, SignalTier.LEVEL_2)


@dataclass
class SymbolDiagnostics:
    """Running per-symbol counters, plus what the last run saw."""

    symbol: str
    raw: int = 0
    enhanced: int = 0
    filtered: int = 0
    sent: int = 0
    runs: int = 0
    failures: int = 0
    last_regime: str | None = None
    last_decision: str | None = None
    last_run: datetime | None = None
    last_error: str | None = None

    def as_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "raw": self.raw,
            "enhanced": self.enhanced,
            "filtered": self.filtered,
            "sent": self.sent,
            "runs": self.runs,
            "failures": self.failures,
            "last_regime": self.last_regime,
            "last_decision": self.last_decision,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_error": self.last_error,
        }


@dataclass
class CycleReport:
    started_at: datetime
    symbols: list[str]
    candidates: list[ScoredSignal] = field(default_factory=list)
    saved: list[Signal] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    def summary(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "symbols": len(self.symbols),
            "candidates": len(self.candidates),
            "saved": len(self.saved),
            "failed": dict(self.failed),
        }


class AnalysisPipeline:
    """Turns market data into persisted, filtered signals."""

    def __init__(
        self,
        market_data: MarketDataCache,
        signal_repo: SignalRepository,
        signal_filter: SignalFilter,
        dispatcher: NotificationDispatcher,
        detectors: Sequence[Detector] | None = None,
        fusion: SignalFusionEngine | None = None,
        enhancer: SignalEnhancer | None = None,
        benchmark_symbol: str | None = "BTCUSDT",
        primary_timeframe: str = "1h",
        candle_limit: int = 250,
        concurrency: int = 5,
        alert_recipients: Iterable[str] = (),
        persist_filter_state: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.market_data = market_data
        self.signal_repo = signal_repo
        self.signal_filter = signal_filter
        self.dispatcher = dispatcher
        self.detectors = list(detectors) if detectors is not None else create_all_detectors()
        self.fusion = fusion or SignalFusionEngine()
        self.enhancer = enhancer or SignalEnhancer()
        self.benchmark_symbol = benchmark_symbol
        self.primary_timeframe = primary_timeframe
        self.candle_limit = candle_limit
        self.concurrency = concurrency
        self.alert_recipients = list(alert_recipients)
        self.persist_filter_state = persist_filter_state
        self._clock = clock

        frames = dict.fromkeys(required_timeframes(self.detectors))
        frames.setdefault(primary_timeframe, None)
        for tf in HIGHER_TIMEFRAMES:
            frames.setdefault(tf, None)
        self.timeframes = list(frames)

        self._diagnostics: dict[str, SymbolDiagnostics] = {}

    def _diag(self, symbol: str) -> SymbolDiagnostics:
        diag = self._diagnostics.get(symbol)
        if diag is None:
            diag = self._diagnostics[symbol] = SymbolDiagnostics(symbol)
        return diag

    async def load_candles(self, symbol: str) -> MultiTimeframeCandles:
        """Fetch all frames for ``symbol`` and the benchmark.

        Raises:
            DataUnavailable: If the primary timeframe could not be fetched.
        """
        frames = await self.market_data.get_multi_timeframe(symbol, self.timeframes, self.candle_limit)
        if not frames.get(self.primary_timeframe):
            raise DataUnavailable(f"{symbol}: no {self.primary_timeframe} candles")

        benchmark: dict = {}
        if self.benchmark_symbol and self.benchmark_symbol != symbol:
            benchmark = await self.market_data.get_multi_timeframe(
                self.benchmark_symbol, self.timeframes, self.candle_limit
            )
        return MultiTimeframeCandles(
            symbol=symbol,
            frames=frames,
            benchmark_symbol=self.benchmark_symbol,
            benchmark=benchmark,
        )

    def _detect(self, symbol: str, data: MultiTimeframeCandles) -> list[DetectorSignal]:
        candidates = []
        for detector in self.detectors:
            try:
                candidate = detector.detect(symbol, data)
            except Exception as e:
                logger.warning(f"{symbol}: detector {detector.name} failed: {e}")
                continue
            if candidate is not None:
                candidates.append(candidate)
        return candidates

    async def analyze_symbol(self, symbol: str) -> ScoredSignal | None:
        """Run detection, fusion and scoring for one symbol. Nothing is persisted."""
        diag = self._diag(symbol)
        diag.runs += 1
        diag.last_run = self._clock()
        diag.last_error = None

        data = await self.load_candles(symbol)
        candidates = self._detect(symbol, data)
        diag.raw += len(candidates)

        regime = detect_regime(symbol, data, self.primary_timeframe)
        diag.last_regime = regime.value

        primary = data.get(self.primary_timeframe)
        atr = last_atr(primary)
        context = PriceContext(
            symbol=symbol,
            price=data.last_price(self.primary_timeframe),
            atr=atr if not math.isnan(atr) else None,
        )
        fused = self.fusion.fuse(candidates, regime, context)
        diag.last_decision = fused.decision.value
        if not fused.is_actionable:
            logger.debug(f"{symbol}: HOLD ({len(candidates)} candidates, {regime.value})")
            return None

        scored = self.enhancer.enhance(fused, primary, data, now=self._clock())
        if scored is None:
            return None

        diag.enhanced += 1
        logger.info(
            f"{symbol}: {scored.direction.value} {scored.tier.value} score={scored.score} "
            f"from {scored.origin} ({regime.value})"
        )
        return scored

    async def run_cycle(self, symbols: Sequence[str], flags: FeatureFlags | None = None) -> CycleReport:
        """Analyze ``symbols``, filter the batch, persist and announce what survives."""
        flags = flags or FeatureFlags()
        report = CycleReport(started_at=self._clock(), symbols=list(symbols))
        semaphore = asyncio.Semaphore(self.concurrency)

        async def guarded(symbol: str) -> ScoredSignal | None:
            async with semaphore:
                return await self.analyze_symbol(symbol)

        results = await asyncio.gather(*(guarded(s) for s in symbols), return_exceptions=True)
        for symbol, result in zip(symbols, results):
            if isinstance(result, BaseException):
                diag = self._diag(symbol)
                diag.failures += 1
                diag.last_error = str(result)
                report.failed[symbol] = str(result)
                logger.warning(f"Analysis failed for {symbol}: {result}")
            elif result is not None:
                report.candidates.append(result)

        accepted = await self.signal_filter.filter_for_dispatch(report.candidates)
        for scored in accepted:
            self._diag(scored.symbol).filtered += 1
            saved = await self._publish(scored, flags)
            if saved is not None:
                report.saved.append(saved)

        if accepted and self.persist_filter_state:
            await save_filter_state(self.signal_filter)

        logger.info(f"Analysis cycle: {report.summary()}")
        return report

    async def _publish(self, scored: ScoredSignal, flags: FeatureFlags) -> Signal | None:
        try:
            saved = await self.signal_repo.save(Signal.from_scored(scored, SignalStatus.ACTIVE))
        except PersistenceError as e:
            logger.warning(f"{scored.symbol}: {e}")
            return None

        self._diag(scored.symbol).sent += 1

        if (
            scored.tier in ALERT_TIERS
            and flags.notifications_enabled
            and flags.signal_alerts_enabled
        ):
            recipients = flags.signal_recipients(self.alert_recipients)
            if recipients:
                self.dispatcher.enqueue(render_signal_alert(saved, recipients))
        return saved

    def diagnostics(self) -> dict[str, dict]:
        return {symbol: diag.as_dict() for symbol, diag in sorted(self._diagnostics.items())}
