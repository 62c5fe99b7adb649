"""Tests for the HTTP surface (/health, /analysis, /backtest, /dca)."""

import pytest
from fastapi.testclient import TestClient

from confluence.api.routers import configure_routers
from confluence.config import Config
from confluence.main import app


def _candle_dicts(closes, start: int = 1_700_000_000_000, step: int = 3_600_000):
    return [
        {
            "time": start + i * step,
            "open": c,
            "high": c + 0.5,
            "low": c - 0.5,
            "close": c,
            "volume": 1000.0,
        }
        for i, c in enumerate(closes)
    ]


@pytest.fixture
def client():
    configure_routers(Config())
    with TestClient(app) as c:
        yield c
    configure_routers(Config())


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestAnalysisEndpoint:
    def test_flat_market_is_neutral(self, client):
        resp = client.post("/analysis", json={"candles": {"1h": _candle_dicts([100.0] * 60)}})
        assert resp.status_code == 200
        body = resp.json()
        assert body["decision"]["signal"] == "NEUTRAL"
        assert body["decision"]["price"] == 100.0
        assert body["decision"]["leverage"] >= 10
        assert "candles" not in body["timeframes"]["1h"]
        assert body["timeframes"]["1h"]["timeframe"] == "1h"

    def test_explicit_price(self, client):
        resp = client.post(
            "/analysis",
            json={"candles": {"4h": _candle_dicts([100.0] * 10)}, "current_price": 123.0},
        )
        assert resp.status_code == 200
        assert resp.json()["decision"]["price"] == 123.0

    def test_leverage_bounds_from_config(self, client):
        configure_routers(Config(min_leverage=3, max_leverage=5))
        resp = client.post("/analysis", json={"candles": {"1h": _candle_dicts([100.0] * 60)}})
        assert 3 <= resp.json()["decision"]["leverage"] <= 5

    def test_no_candles_and_no_price(self, client):
        resp = client.post("/analysis", json={"candles": {"1h": []}})
        assert resp.status_code == 422

    def test_unordered_candles_rejected(self, client):
        candles = _candle_dicts([100.0] * 60)
        candles[5], candles[6] = candles[6], candles[5]
        resp = client.post("/analysis", json={"candles": {"1h": candles}})
        assert resp.status_code == 422


class TestBacktestEndpoint:
    def test_flat_series(self, client):
        resp = client.post("/backtest", json={"candles": _candle_dicts([100.0] * 60)})
        assert resp.status_code == 200
        body = resp.json()
        assert body["total_trades"] == 0
        assert body["final_capital"] == 10_000.0
        assert body["profit_factor"] == 0.0
        assert body["profit_factor_infinite"] is False

    def test_infinite_profit_factor_serialises_as_null(self, client):
        closes = [100.0 + k for k in range(55)] + [114.0, 124.0, 124.0]
        resp = client.post(
            "/backtest",
            json={"candles": _candle_dicts(closes), "initial_capital": 1_000.0},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["total_trades"] == 1
        assert body["profit_factor"] is None
        assert body["profit_factor_infinite"] is True
        assert body["trades"][0]["type"] == "LONG"

    def test_rejects_non_positive_capital(self, client):
        resp = client.post(
            "/backtest",
            json={"candles": _candle_dicts([100.0] * 60), "initial_capital": 0},
        )
        assert resp.status_code == 422


class TestDcaEndpoint:
    def test_ladder(self, client):
        resp = client.post(
            "/dca",
            json={"entry_price": 100.0, "direction": "LONG", "initial_size": 1.0},
        )
        assert resp.status_code == 200
        levels = resp.json()["levels"]
        assert [lvl["level"] for lvl in levels] == [1, 2, 3]
        assert levels[0]["price"] == pytest.approx(96.55)

    def test_unknown_direction(self, client):
        resp = client.post(
            "/dca",
            json={"entry_price": 100.0, "direction": "UP", "initial_size": 1.0},
        )
        assert resp.status_code == 422
