"""Tests for the REST API."""

import pytest
from fastapi.testclient import TestClient

from dca_backtester import __version__
from dca_backtester.api import create_app
from dca_backtester.api.auth import API_KEY_ENV
from dca_backtester.core.market_simulator import COIN_LIST
from tests.conftest import candles_payload, make_candles


@pytest.fixture
def client(monkeypatch):
    monkeypatch.delenv(API_KEY_ENV, raising=False)
    monkeypatch.delenv("LOG_DIR", raising=False)
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    with TestClient(create_app()) as c:
        yield c


@pytest.fixture
def payload():
    return candles_payload(make_candles(n=200))


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "dca-backtester", "version": __version__}

    def test_coins(self, client):
        response = client.get("/api/v1/coins")
        assert response.status_code == 200
        assert response.json() == list(COIN_LIST)


class TestBacktestEndpoint:

    def test_inline_candles(self, client, payload):
        response = client.post("/api/v1/backtest/run", json={
            "symbol": "ADA",
            "candles": payload,
            "config": {"smart_entry": False, "tp_percent": 1.5},
        })

        assert response.status_code == 200
        body = response.json()
        assert body["symbol"] == "ADA"
        assert body["candles_processed"] == 200
        assert body["config"]["tp_percent"] == 1.5
        assert len(body["equity_curve"]) == 150
        assert len(body["buy_and_hold_curve"]) == 200
        assert body["ai_optimized"] is False

    def test_series_can_be_skipped(self, client, payload):
        response = client.post("/api/v1/backtest/run", json={"candles": payload, "include_series": False})
        assert response.status_code == 200
        assert "equity_curve" not in response.json()

    def test_invalid_config_is_422(self, client, payload):
        response = client.post("/api/v1/backtest/run", json={
            "candles": payload,
            "config": {"grid_steps": [0, 5], "volume_weights": [1]},
        })
        assert response.status_code == 422

    def test_missing_candle_columns_is_422(self, client, payload):
        rows = [{k: v for k, v in row.items() if k != "low"} for row in payload]
        response = client.post("/api/v1/backtest/run", json={"candles": rows})
        assert response.status_code == 422
        assert "low" in response.json()["detail"]

    def test_lookback_out_of_range(self, client):
        response = client.post("/api/v1/backtest/run", json={"lookback_years": 0})
        assert response.status_code == 422


class TestAuth:

    def test_api_key_required_when_configured(self, monkeypatch):
        monkeypatch.setenv(API_KEY_ENV, "secret")
        monkeypatch.delenv("LOG_DIR", raising=False)
        monkeypatch.setenv("LOG_LEVEL", "WARNING")

        with TestClient(create_app()) as client:
            assert client.get("/api/v1/coins").status_code == 401
            assert client.get("/api/v1/coins", headers={"X-API-Key": "wrong"}).status_code == 401
            assert client.get("/api/v1/coins", headers={"X-API-Key": "secret"}).status_code == 200
            # Health stays open
            assert client.get("/health").status_code == 200

    def test_open_when_no_key_configured(self, client):
        assert client.get("/api/v1/coins").status_code == 200


class TestOptimizeEndpoint:

    def test_small_run(self, client, payload):
        response = client.post("/api/v1/optimize/run", json={
            "symbol": "SOL",
            "candles": payload,
            "config": {"smart_entry": False},
            "population_size": 3,
            "generations": 1,
            "seed": 4,
        })

        assert response.status_code == 200
        body = response.json()
        assert body["symbol"] == "SOL"
        assert body["generations"] == 1
        assert body["best_score"] >= body["baseline_score"]
        assert "_backtest_metrics" in body["preset_yaml"]
        assert body["baseline"]["total_trades"] >= 0
