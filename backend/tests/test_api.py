"""Tests for the REST routes against a mocked pipeline service."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from signal_engine.models import SignalStatus, SignalTier
from tradewise.api import router
from tradewise.errors import DataUnavailable, InvalidTransition
from tradewise.models import SignalPage, TraderPerformance


@pytest.fixture
def pipeline():
    return MagicMock()


@pytest.fixture
def client(pipeline):
    app = FastAPI()
    app.include_router(router, prefix="/api")
    app.state.pipeline = pipeline
    return TestClient(app)


class TestSignalRoutes:
    def test_query_signals(self, client, pipeline, make_signal):
        pipeline.query_signals = AsyncMock(
            return_value=SignalPage(items=[make_signal(7)], total=51, page=2, page_size=50)
        )

        response = client.get("/api/signals", params={"symbol": "BTCUSDT", "tier": "LEVEL_1", "page": 2})

        assert response.status_code == 200
        body = response.json()
        assert body["pages"] == 2
        assert body["items"][0]["id"] == 7
        assert body["items"][0]["tier"] == "LEVEL_1"
        query = pipeline.query_signals.await_args.args[0]
        assert query.symbol == "BTCUSDT"
        assert query.tier is SignalTier.LEVEL_1

    def test_invalid_status_rejected(self, client):
        assert client.get("/api/signals", params={"status": "OPEN"}).status_code == 422

    def test_get_signal(self, client, pipeline, make_signal):
        pipeline.get_signal = AsyncMock(return_value=make_signal(3))

        response = client.get("/api/signals/3")

        assert response.status_code == 200
        assert response.json()["entry_price"] == 100.0

    def test_get_missing_signal(self, client, pipeline):
        pipeline.get_signal = AsyncMock(return_value=None)
        assert client.get("/api/signals/99").status_code == 404

    def test_stats_route_not_shadowed(self, client, pipeline):
        pipeline.signal_stats = AsyncMock(return_value={"total": 0})

        response = client.get("/api/signals/stats")

        assert response.status_code == 200
        assert response.json() == {"total": 0}

    def test_close_signal(self, client, pipeline, make_signal, t0):
        closed = make_signal(3).with_outcome(SignalStatus.CLOSED, Decimal("104"), t0, "manual")
        pipeline.close_signal = AsyncMock(return_value=closed)

        response = client.post("/api/signals/3/close", json={"final_price": "104", "notes": "manual"})

        assert response.status_code == 200
        assert response.json()["pnl_percent"] == 4.0
        assert pipeline.close_signal.await_args.args == (3, Decimal("104"), "manual")

    def test_close_without_body(self, client, pipeline, make_signal, t0):
        closed = make_signal(3).with_outcome(SignalStatus.CLOSED, Decimal("100"), t0, "manually closed")
        pipeline.close_signal = AsyncMock(return_value=closed)

        assert client.post("/api/signals/3/close").status_code == 200
        assert pipeline.close_signal.await_args.args == (3, None, None)

    def test_close_terminal_conflict(self, client, pipeline):
        pipeline.close_signal = AsyncMock(side_effect=InvalidTransition("Signal 3 is already EXPIRED"))

        response = client.post("/api/signals/3/close")

        assert response.status_code == 409
        assert "EXPIRED" in response.json()["detail"]

    def test_close_without_price(self, client, pipeline):
        pipeline.close_signal = AsyncMock(side_effect=DataUnavailable("No price for BTCUSDT"))

        response = client.post("/api/signals/3/close")

        assert response.status_code == 503
        assert "BTCUSDT" in response.json()["detail"]

    def test_close_missing(self, client, pipeline):
        pipeline.close_signal = AsyncMock(return_value=None)
        assert client.post("/api/signals/3/close").status_code == 404


class TestOperationRoutes:
    def test_trigger_analysis(self, client, pipeline):
        pipeline.trigger_analysis = AsyncMock(return_value={"saved": 0, "signals": []})

        response = client.post("/api/analysis/btcusdt")

        assert response.status_code == 200
        pipeline.trigger_analysis.assert_awaited_once_with("btcusdt")

    def test_cache_cleanup(self, client, pipeline):
        pipeline.cleanup_cache = AsyncMock(return_value=3)
        pipeline.market_data.size = 5

        assert client.post("/api/cache/cleanup").json() == {"removed": 3, "entries": 5}

    def test_filter_reset(self, client, pipeline):
        pipeline.reset_filter_state = AsyncMock(return_value={"today_count": 0})
        assert client.post("/api/filter/reset").json() == {"today_count": 0}

    def test_traders(self, client, pipeline):
        trader = MagicMock()
        trader.model_dump.return_value = {
            "id": 1,
            "name": "whale",
            "portfolio_id": "P-100",
            "enabled": True,
            "today_order_count": 2,
            "total_order_count": 10,
        }
        pipeline.traders = AsyncMock(return_value=[trader])

        body = client.get("/api/traders").json()

        assert body[0]["portfolio_id"] == "P-100"
        assert body[0]["last_check_time"] is None

    def test_trader_performance(self, client, pipeline, t0):
        stats = TraderPerformance.from_totals(
            1,
            "whale",
            total_orders=6,
            profitable_orders=4,
            unprofitable_orders=2,
            total_profit=Decimal("40"),
            total_loss=Decimal("-10"),
            first_order_time=t0,
            last_order_time=t0,
        )
        pipeline.trader_performance = AsyncMock(return_value=[stats])

        body = client.get("/api/traders/1/performance").json()

        assert body["net_profit"] == 30.0
        assert body["profit_factor"] == 4.0
        assert body["risk_level"] == "LOW"
        pipeline.trader_performance.assert_awaited_once_with(1)

    def test_unknown_trader_performance(self, client, pipeline):
        pipeline.trader_performance = AsyncMock(return_value=[])
        assert client.get("/api/traders/9/performance").status_code == 404

    def test_all_traders_performance(self, client, pipeline):
        pipeline.trader_performance = AsyncMock(
            return_value=[TraderPerformance.from_totals(2, "shrimp"), TraderPerformance.from_totals(1, "whale")]
        )

        body = client.get("/api/traders/performance").json()

        assert [s["trader_name"] for s in body] == ["shrimp", "whale"]
        assert body[0]["profit_factor"] is None

    def test_pipeline_not_running(self, pipeline):
        app = FastAPI()
        app.include_router(router, prefix="/api")

        assert TestClient(app).get("/api/filter/stats").status_code == 503
