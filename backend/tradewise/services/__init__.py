"""Pipeline services."""

from tradewise.services.analysis import AnalysisPipeline, CycleReport, SymbolDiagnostics
from tradewise.services.lifecycle_tracker import SignalLifecycleTracker
from tradewise.services.market_data import MarketDataCache
from tradewise.services.notifications import (
    LogMailSender,
    Notification,
    NotificationDispatcher,
    SmtpMailSender,
)
from tradewise.services.order_monitor import OrderMonitor, parse_order
from tradewise.services.pipeline import PipelineService
from tradewise.services.scheduler import PeriodicJob, Scheduler, SingleFlight

__all__ = [
    "AnalysisPipeline",
    "CycleReport",
    "SymbolDiagnostics",
    "SignalLifecycleTracker",
    "MarketDataCache",
    "LogMailSender",
    "Notification",
    "NotificationDispatcher",
    "SmtpMailSender",
    "OrderMonitor",
    "parse_order",
    "PipelineService",
    "PeriodicJob",
    "Scheduler",
    "SingleFlight",
]
