"""Tests for RiskService: persisted VaR and liquidity metrics, position
limits and metric history, wired to in-memory stores."""

from __future__ import annotations

import threading

import pytest

from conftest import make_portfolio, make_position
from portfolio_risk.core.context import LiquidityDetails, VarDetails
from portfolio_risk.core.domain import RiskHistory
from portfolio_risk.core.enums import AssetType, MetricStatus, MetricType
from portfolio_risk.core.exceptions import (
    EvaluationCancelledError,
    InsufficientDataError,
    InvalidInputError,
    PortfolioNotFoundError,
)
from portfolio_risk.risk.liquidity_calculator import LiquidityCalculator
from portfolio_risk.risk.market_data import SymbolMarketData
from portfolio_risk.risk.risk_service import RiskService, var_status
from portfolio_risk.risk.var_calculator import VaRCalculator
from portfolio_risk.stores.memory import InMemoryMetricStore


@pytest.fixture
def seeded(portfolio_store):
    portfolio_store.add_portfolio(make_portfolio([
        make_position("AAPL", 100, 150.0),
        make_position("MSFT", 50, 300.0),
        make_position("BOND", 150, 100.0, asset_type=AssetType.GOVERNMENT_BOND),
    ]))
    return portfolio_store


class _FlakyHistoryStore(InMemoryMetricStore):
    def add_history(self, point: RiskHistory) -> None:
        raise RuntimeError("history table unavailable")


class TestVarStatus:
    def test_grades(self) -> None:
        assert var_status(120.0, 100.0) == MetricStatus.CRITICAL
        assert var_status(80.0, 100.0) == MetricStatus.WARNING
        assert var_status(75.0, 100.0) == MetricStatus.SAFE
        assert var_status(10.0, 100.0) == MetricStatus.SAFE


class TestPortfolioVar:
    def test_metric_persisted_with_details(self, risk_service, seeded, metric_store) -> None:
        metric = risk_service.calculate_portfolio_var("pf-1")

        assert metric.metric_type == MetricType.VAR
        assert metric.confidence_level == 0.95
        assert metric.time_horizon_days == 1
        # Default limit: 5% of a 45,000 portfolio
        assert metric.threshold == pytest.approx(2_250.0)
        assert isinstance(metric.details, VarDetails)
        assert metric.details.var_99 >= metric.value >= 0.0
        assert metric.details.position_count == 3
        assert metric_store.metrics == [metric]
        assert len(metric_store.history) == 1
        assert metric_store.history[0].value == metric.value

    def test_thresholds_created_on_first_use(self, risk_service, seeded, threshold_store) -> None:
        assert threshold_store.get_thresholds("pf-1") is None
        risk_service.calculate_portfolio_var("pf-1")
        assert threshold_store.get_thresholds("pf-1") is not None

    def test_unknown_portfolio(self, risk_service) -> None:
        with pytest.raises(PortfolioNotFoundError):
            risk_service.calculate_portfolio_var("missing")

    def test_empty_portfolio(self, risk_service, portfolio_store) -> None:
        portfolio_store.add_portfolio(make_portfolio([], portfolio_id="empty"))
        with pytest.raises(InvalidInputError):
            risk_service.calculate_portfolio_var("empty")

    def test_no_price_history(self, risk_service, portfolio_store) -> None:
        portfolio_store.add_portfolio(
            make_portfolio([make_position("NOPE", portfolio_id="pf-2")], portfolio_id="pf-2")
        )
        with pytest.raises(InsufficientDataError):
            risk_service.calculate_portfolio_var("pf-2")

    def test_history_failure_does_not_fail_metric(
        self, seeded, threshold_provider, price_history, market_data
    ) -> None:
        store = _FlakyHistoryStore()
        service = RiskService(
            seeded,
            threshold_provider,
            store,
            price_history,
            VaRCalculator(1_000, seed=1),
            LiquidityCalculator(market_data),
        )
        metric = service.calculate_portfolio_var("pf-1")
        assert store.metrics == [metric]
        assert store.history == []


class TestPortfolioLiquidity:
    def test_liquid_portfolio_is_safe(self, risk_service, seeded) -> None:
        metric = risk_service.calculate_portfolio_liquidity("pf-1")

        assert metric.metric_type == MetricType.LIQUIDITY_RATIO
        assert metric.threshold == 0.30
        assert 0.0 <= metric.value <= 1.0
        assert metric.status == MetricStatus.SAFE
        assert isinstance(metric.details, LiquidityDetails)
        assert metric.details.risk_assessment == "LOW_RISK"

    def test_illiquid_portfolio_is_critical(self, risk_service, portfolio_store, market_data) -> None:
        market_data.set("PRIV", SymbolMarketData())
        portfolio_store.add_portfolio(make_portfolio(
            [make_position("PRIV", 100, 100.0, asset_type=AssetType.PRIVATE, portfolio_id="pf-3")],
            portfolio_id="pf-3",
        ))
        metric = risk_service.calculate_portfolio_liquidity("pf-3")
        assert metric.value == 0.0
        assert metric.status == MetricStatus.CRITICAL


class TestPositionLimits:
    def test_breaches_graded(self, risk_service, portfolio_store) -> None:
        portfolio_store.add_portfolio(make_portfolio([
            make_position("BIG", 60, 100.0),
            make_position("MID", 30, 100.0),
            make_position("SMALL", 10, 100.0),
        ]))
        result = risk_service.check_position_limits("pf-1", 25.0)

        by_symbol = {v.symbol: v for v in result.violations}
        assert set(by_symbol) == {"BIG", "MID"}
        assert by_symbol["BIG"].severity == "CRITICAL"
        assert by_symbol["MID"].severity == "MAJOR"
        assert by_symbol["MID"].excess_percent == pytest.approx(5.0)
        assert result.compliance_score == 80.0
        assert result.status == "VIOLATION"
        assert result.total_positions == 3


class TestHistory:
    def test_history_filtered_by_type(self, risk_service, seeded) -> None:
        risk_service.calculate_portfolio_var("pf-1")
        risk_service.calculate_portfolio_liquidity("pf-1")

        assert len(risk_service.get_risk_metrics("pf-1")) == 2
        var_points = risk_service.get_risk_history("pf-1", MetricType.VAR)
        assert [p.metric_type for p in var_points] == [MetricType.VAR]
        assert len(risk_service.get_risk_history("pf-1")) == 2


class TestCancellation:
    def test_cancelled_var_not_persisted(self, risk_service, seeded, metric_store) -> None:
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(EvaluationCancelledError) as excinfo:
            risk_service.calculate_portfolio_var("pf-1", cancel=cancel)

        assert excinfo.value.portfolio_id == "pf-1"
        assert metric_store.metrics == []
        assert metric_store.history == []

    def test_cancelled_liquidity_not_persisted(self, risk_service, seeded, metric_store) -> None:
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(EvaluationCancelledError):
            risk_service.calculate_portfolio_liquidity("pf-1", cancel=cancel)
        assert metric_store.metrics == []

    def test_unset_event_is_ignored(self, risk_service, seeded, metric_store) -> None:
        metric = risk_service.calculate_portfolio_var("pf-1", cancel=threading.Event())
        assert metric_store.metrics == [metric]
